#!/usr/bin/env python3
"""
Demo script showing how to use the lifecycle simulation modules programmatically.
This plays one full career, compares policies with Monte Carlo, and prints the results.
"""

from ai_analysis import LifecycleAnalyzer, create_mock_analysis
from config_utils import get_ai_settings, get_history_path, get_policy_params, load_ui_config
from finance import CAREER_PROFILES, CareerType, make_rng
from io_utils import HistoryStore, export_year_by_year_csv, format_currency
from simulation import (
    GameStatus, LifecycleGame, MonteCarloParams, PolicyMonteCarlo, calculate_summary_stats,
)


def main():
    print("LifeWealth Lifecycle Demo")
    print("=" * 50)

    config = load_ui_config()
    policy = get_policy_params(config)
    history_store = HistoryStore(get_history_path(config))

    # 1. Play a single career
    career = CareerType.CYCLICAL
    profile = CAREER_PROFILES[career]
    print(f"\nCareer: {profile.title} ({profile.description})")
    print(f"   Policy: save {policy.savings_rate:.0%}, {policy.stock_allocation:.0%} stocks, "
          f"{policy.bond_allocation:.0%} bonds, {policy.cash_allocation:.0%} cash")

    game = LifecycleGame(rng=make_rng(42), history_store=history_store)
    game.start(career)
    sheet = game.balance_sheet
    print(f"   Human capital at 25: {format_currency(sheet['human_capital'])}, "
          f"financial wealth: {format_currency(sheet['financial_wealth'])}")

    while not game.is_game_over:
        game.advance_with_policy(policy)

    state = game.state
    summary = game.summary
    outcome = "ran out of money" if game.status == GameStatus.RUIN else "retired"
    print(f"\nOutcome: {outcome} at age {state.age}")
    print(f"   Final wealth: {format_currency(state.wealth)}")
    print(f"   Total utility: {state.total_utility:.2f} (score {summary.score:.1f})")

    # 2. First few years
    print(f"\nFirst 5 Years:")
    print(f"   {'Age':<5} {'Wealth':<12} {'Income':<12} {'Return':<8} Event")
    for record in state.history[1:6]:
        print(f"   {record.age:<5} ${record.wealth/1000:>9,.0f}K ${record.income/1000:>9,.0f}K "
              f"{record.portfolio_return:>7.1%} {record.event}")

    csv_text = export_year_by_year_csv(state.history)
    print(f"\n   Year-by-year CSV export: {len(csv_text.splitlines()) - 1} rows")

    # 3. Compare careers under the same policy
    print(f"\nMonte Carlo (1,000 careers each):")
    for career_type in CareerType:
        mc = PolicyMonteCarlo(MonteCarloParams(career_type=career_type, num_sims=1_000,
                                               random_seed=42, policy=policy))
        results = mc.run_simulation()
        stats = calculate_summary_stats(results.terminal_wealth)
        print(f"   {CAREER_PROFILES[career_type].title:<18} ruin {results.ruin_rate:.1%}, "
              f"terminal wealth P10/P50/P90: {format_currency(stats['p10'])} / "
              f"{format_currency(stats['p50'])} / {format_currency(stats['p90'])}")

    # 4. Coaching
    ai_settings = get_ai_settings(config)
    print(f"\nCoach:")
    if ai_settings['enable_ai_analysis']:
        analyzer = LifecycleAnalyzer(ai_settings['gemini_api_key'], ai_settings['gemini_model'])
        print(f"   {analyzer.analyze_run(state.history, summary)}")
    else:
        print(f"   {create_mock_analysis(summary)}")

    print(f"\nRecent runs saved in {history_store.filepath}: {len(history_store.records)}")


if __name__ == "__main__":
    main()
