"""
Unit tests for the lifecycle game loop and Monte Carlo runner.
"""
import math

import numpy as np
import pytest

from finance import CareerType, MarketYear, ShockType, calculate_human_capital, make_rng
from io_utils import HistoryStore
from simulation import (
    RETIREMENT_AGE, STARTING_AGE, STARTING_INCOME, STARTING_WEALTH,
    GameStatus, LifecycleGame, MonteCarloParams, PolicyMonteCarlo, PolicyParams,
    advance_state, calculate_percentiles, calculate_summary_stats, compute_portfolio_return,
    create_initial_state, format_year_event,
)


class ScriptedRandom:
    """Uniform source replaying fixed values, then repeating a fill value"""

    def __init__(self, values=(), fill=0.5):
        self.values = list(values)
        self.fill = fill

    def random(self):
        if self.values:
            return self.values.pop(0)
        return self.fill


# Stock return of about -126%: u close to 0 pushes Box-Muller to -7.4 sigma
CRASH_YEAR = [1e-12, 0.5] + [0.5, 0.25] * 4 + [0.99]


class RecordingStore:
    def __init__(self):
        self.added = []

    def add(self, summary):
        self.added.append(summary)


class FailingStore:
    def add(self, summary):
        raise OSError("disk full")


def play_to_end(game, **policy):
    advances = 0
    while not game.is_game_over:
        game.advance_year(**policy)
        advances += 1
    return advances


class TestPolicyParams:
    """Test policy validation used by callers of the game loop"""

    def test_defaults(self):
        policy = PolicyParams()
        assert policy.savings_rate == 0.2
        assert policy.stock_allocation == 0.8
        assert policy.bond_allocation == 0.1
        assert policy.cash_allocation == pytest.approx(0.1)
        policy.validate()

    def test_savings_rate_bounds(self):
        with pytest.raises(ValueError, match="Savings rate"):
            PolicyParams(savings_rate=0.9).validate()
        with pytest.raises(ValueError, match="Savings rate"):
            PolicyParams(savings_rate=-0.1).validate()

    def test_bond_allocation_limited_by_stocks(self):
        with pytest.raises(ValueError, match="Bond allocation"):
            PolicyParams(stock_allocation=0.7, bond_allocation=0.4).validate()
        PolicyParams(stock_allocation=0.7, bond_allocation=0.3).validate()

    def test_stock_allocation_bounds(self):
        with pytest.raises(ValueError, match="Stock allocation"):
            PolicyParams(stock_allocation=1.2, bond_allocation=0.0).validate()


class TestInitialState:
    """Test run initialization"""

    def test_initial_state(self):
        state = create_initial_state(CareerType.STABLE)
        assert state.age == STARTING_AGE == 25
        assert state.wealth == STARTING_WEALTH == 20_000
        assert state.income == STARTING_INCOME == 50_000
        assert state.career_type == CareerType.STABLE
        assert not state.is_game_over
        assert state.total_utility == 0

    def test_seed_year(self):
        seed_year = create_initial_state(CareerType.CYCLICAL).history[0]
        assert seed_year.age == 25
        assert seed_year.consumption == pytest.approx(40_000)
        assert seed_year.savings == pytest.approx(10_000)
        assert seed_year.portfolio_return == 0
        assert seed_year.utility == 0
        assert seed_year.event == "Started career"

    def test_career_name_accepted(self):
        assert create_initial_state("CYCLICAL").career_type == CareerType.CYCLICAL


class TestGameStateMachine:
    """Test LifecycleGame transitions"""

    def test_not_started(self):
        game = LifecycleGame(rng=ScriptedRandom())
        assert game.status == GameStatus.NOT_STARTED
        assert game.advance_year() is None
        assert game.state is None
        assert not game.is_game_over
        assert game.human_capital == 0

    def test_start(self):
        game = LifecycleGame(rng=ScriptedRandom())
        state = game.start(CareerType.STABLE)
        assert game.status == GameStatus.IN_PROGRESS
        assert game.state is state
        assert len(state.history) == 1

    def test_single_advance(self):
        game = LifecycleGame(rng=ScriptedRandom())
        game.start(CareerType.STABLE)
        record = game.advance_year(savings_rate=0.25, stock_allocation=0.6, bond_allocation=0.3)

        state = game.state
        assert record is state.history[-1]
        assert state.age == 26
        assert record.age == 26
        assert record.savings == pytest.approx(12_500)
        assert record.consumption == pytest.approx(37_500)
        assert record.utility == pytest.approx(math.log(37_500 / 40_000))
        assert state.total_utility == pytest.approx(record.utility)
        expected_wealth = 20_000 * (1 + record.portfolio_return) + 12_500
        assert state.wealth == pytest.approx(expected_wealth)
        assert state.income == record.income
        assert record.event.startswith("Markets: Stocks Down")

    def test_full_career_retires_at_65(self):
        game = LifecycleGame(rng=ScriptedRandom())
        game.start(CareerType.STABLE)
        ages = []
        while not game.is_game_over:
            game.advance_year(savings_rate=0.2, stock_allocation=0.8, bond_allocation=0.1)
            ages.append(game.state.age)
            assert game.state.wealth >= 0

        assert ages == list(range(26, 66))
        assert game.state.age == RETIREMENT_AGE
        assert len(game.state.history) == 41
        assert game.status == GameStatus.RETIRED

    def test_seeded_full_career(self):
        game = LifecycleGame(rng=make_rng(2025))
        game.start(CareerType.STABLE)
        advances = play_to_end(game, savings_rate=0.2, stock_allocation=0.8, bond_allocation=0.1)

        state = game.state
        assert state.is_game_over
        assert advances <= 40
        assert state.age == STARTING_AGE + advances
        assert len(state.history) == advances + 1
        if not state.was_ruin:
            assert state.age == 65
            assert len(state.history) == 41
            assert game.status == GameStatus.RETIRED

    def test_seeded_runs_are_reproducible(self):
        paths = []
        for _ in range(2):
            game = LifecycleGame(rng=make_rng(11))
            game.start(CareerType.CYCLICAL)
            play_to_end(game)
            paths.append([r.wealth for r in game.state.history])
        assert paths[0] == paths[1]

    def test_total_utility_is_sum_of_yearly_utility(self):
        game = LifecycleGame(rng=make_rng(3))
        game.start(CareerType.CYCLICAL)
        play_to_end(game)
        yearly = sum(r.utility for r in game.state.history[1:])
        assert game.state.total_utility == pytest.approx(yearly)

    def test_utility_baseline_is_first_year(self):
        """Utility compares against the seed year, not the prior year"""
        game = LifecycleGame(rng=ScriptedRandom())
        game.start(CareerType.STABLE)
        game.advance_year(savings_rate=0.2)
        second = game.advance_year(savings_rate=0.2)
        previous_income = game.state.history[1].income
        assert second.consumption == pytest.approx(previous_income * 0.8)
        assert second.utility == pytest.approx(math.log(second.consumption / 40_000))

    def test_ruin_before_retirement(self):
        game = LifecycleGame(rng=ScriptedRandom(CRASH_YEAR))
        game.start(CareerType.STABLE)
        record = game.advance_year(savings_rate=0.0, stock_allocation=1.0, bond_allocation=0.0)

        assert record.wealth == 0
        assert game.state.wealth == 0
        assert game.state.age == 26
        assert game.is_game_over
        assert game.status == GameStatus.RUIN
        assert game.summary.was_ruin
        assert game.summary.age_reached == 26

    def test_shock_can_cause_ruin(self):
        """Wealth floor applies after subtracting the shock cost"""
        game = LifecycleGame(rng=ScriptedRandom([0.5] * 10 + [0.06]))
        game.start(CareerType.STABLE)
        # All cash: a small loss, no savings, then a 20,000 layoff shock
        record = game.advance_year(savings_rate=0.0, stock_allocation=0.0, bond_allocation=0.0)
        assert "Layoff hit you for $20,000!" in record.event
        assert record.wealth == 0
        assert game.status == GameStatus.RUIN

    def test_no_op_after_termination(self):
        game = LifecycleGame(rng=ScriptedRandom(CRASH_YEAR))
        game.start(CareerType.CYCLICAL)
        game.advance_year(savings_rate=0.0, stock_allocation=1.0, bond_allocation=0.0)
        state = game.state
        summary = game.summary

        for _ in range(5):
            assert game.advance_year() is None

        assert game.state is state
        assert game.state.age == 26
        assert game.state.wealth == 0
        assert len(game.state.history) == 2
        assert game.summary is summary

    def test_no_op_after_retirement(self):
        game = LifecycleGame(rng=ScriptedRandom())
        game.start(CareerType.STABLE)
        play_to_end(game)
        before = (game.state.age, game.state.wealth, game.state.income, len(game.state.history))
        for _ in range(3):
            game.advance_year()
        after = (game.state.age, game.state.wealth, game.state.income, len(game.state.history))
        assert before == after

    def test_restart_discards_previous_run(self):
        game = LifecycleGame(rng=ScriptedRandom(CRASH_YEAR))
        game.start(CareerType.STABLE)
        game.advance_year(savings_rate=0.0, stock_allocation=1.0, bond_allocation=0.0)
        assert game.is_game_over

        game.start(CareerType.CYCLICAL)
        assert game.status == GameStatus.IN_PROGRESS
        assert game.summary is None
        assert game.state.career_type == CareerType.CYCLICAL
        assert game.advance_year() is not None

    def test_out_of_contract_weights_do_not_fail(self):
        game = LifecycleGame(rng=ScriptedRandom())
        game.start(CareerType.STABLE)
        record = game.advance_year(savings_rate=0.2, stock_allocation=1.2, bond_allocation=0.3)
        assert record is not None
        assert math.isfinite(record.portfolio_return)
        assert record.wealth >= 0


class TestStateTransition:
    """Test the pure year transition"""

    def test_prior_state_untouched(self):
        state = create_initial_state(CareerType.STABLE)
        new_state, record = advance_state(state, 0.2, 0.8, 0.1, ScriptedRandom())
        assert state.age == 25
        assert len(state.history) == 1
        assert new_state.age == 26
        assert new_state.history[:1] == state.history

    def test_terminated_state_returned_unchanged(self):
        state, _ = advance_state(create_initial_state(CareerType.STABLE), 0.0, 1.0, 0.0,
                                 ScriptedRandom(CRASH_YEAR))
        assert state.is_game_over
        same_state, record = advance_state(state, 0.2, 0.8, 0.1, ScriptedRandom())
        assert same_state is state
        assert record is None

    def test_portfolio_return_weights(self):
        year = MarketYear(stock_return=0.10, bond_return=0.04, cash_return=0.01, inflation=0.02,
                          shock_type=ShockType.NONE, shock_cost=0.0, new_income=1.0)
        assert compute_portfolio_return(0.8, 0.1, year) == pytest.approx(0.08 + 0.004 + 0.001)
        assert compute_portfolio_return(1.0, 0.0, year) == pytest.approx(0.10)
        assert compute_portfolio_return(0.0, 0.0, year) == pytest.approx(0.01)

    def test_event_text(self):
        up = MarketYear(0.073, 0.03, 0.01, 0.02, ShockType.NONE, 0.0, 1.0)
        assert format_year_event(up) == "Markets: Stocks Up (7.3%)"
        down = MarketYear(-0.12, 0.03, 0.01, 0.02, ShockType.HEALTH, 10_000.0, 1.0)
        assert format_year_event(down) == \
            "Markets: Stocks Down (-12.0%) | Medical emergency hit you for $10,000!"


class TestSummaryAndHistory:
    """Test run summaries and history store integration"""

    def test_summary_created_once(self):
        store = RecordingStore()
        game = LifecycleGame(rng=ScriptedRandom(), history_store=store)
        game.start(CareerType.STABLE)
        play_to_end(game)
        game.advance_year()

        assert len(store.added) == 1
        summary = store.added[0]
        assert summary is game.summary
        assert summary.career_type == CareerType.STABLE
        assert summary.final_wealth == game.state.wealth
        assert summary.age_reached == 65
        assert not summary.was_ruin
        assert summary.score == max(0.0, game.state.total_utility * 10)
        assert summary.score >= 0

    def test_no_summary_while_in_progress(self):
        store = RecordingStore()
        game = LifecycleGame(rng=ScriptedRandom(), history_store=store)
        game.start(CareerType.STABLE)
        game.advance_year()
        assert game.summary is None
        assert store.added == []

    def test_store_failure_does_not_affect_game(self, tmp_path):
        store = HistoryStore(tmp_path / "missing_dir" / "history.json")
        game = LifecycleGame(rng=ScriptedRandom(CRASH_YEAR), history_store=store)
        game.start(CareerType.STABLE)
        game.advance_year(savings_rate=0.0, stock_allocation=1.0, bond_allocation=0.0)
        assert game.status == GameStatus.RUIN
        assert game.summary is not None


    def test_raising_store_does_not_affect_game(self, capsys):
        game = LifecycleGame(rng=ScriptedRandom(CRASH_YEAR), history_store=FailingStore())
        game.start(CareerType.STABLE)
        game.advance_year(savings_rate=0.0, stock_allocation=1.0, bond_allocation=0.0)
        assert game.status == GameStatus.RUIN
        assert game.state.wealth == 0
        assert "disk full" in capsys.readouterr().out


class TestBalanceSheet:
    """Test human capital reporting on a live game"""

    def test_balance_sheet_at_start(self):
        game = LifecycleGame(rng=ScriptedRandom())
        game.start(CareerType.CYCLICAL)
        sheet = game.balance_sheet
        assert sheet['financial_wealth'] == 20_000
        assert sheet['human_capital'] == pytest.approx(2_000_000)
        assert sheet['total'] == pytest.approx(2_020_000)

    def test_human_capital_tracks_state(self):
        game = LifecycleGame(rng=ScriptedRandom())
        game.start(CareerType.STABLE)
        game.advance_year()
        state = game.state
        assert game.human_capital == pytest.approx(
            calculate_human_capital(state.age, state.income, CareerType.STABLE))

    def test_no_human_capital_at_retirement(self):
        game = LifecycleGame(rng=ScriptedRandom())
        game.start(CareerType.STABLE)
        play_to_end(game)
        assert game.human_capital == 0
        assert game.balance_sheet['total'] == game.state.wealth


class TestPolicyMonteCarlo:
    """Test fixed-policy Monte Carlo runs"""

    def test_invalid_policy_rejected(self):
        with pytest.raises(ValueError, match="Savings rate"):
            PolicyMonteCarlo(MonteCarloParams(policy=PolicyParams(savings_rate=0.95)))

    def test_invalid_num_sims_rejected(self):
        with pytest.raises(ValueError, match="Number of simulations"):
            PolicyMonteCarlo(MonteCarloParams(num_sims=0))

    def test_output_shapes(self):
        results = PolicyMonteCarlo(MonteCarloParams(num_sims=50, random_seed=1)).run_simulation()
        assert results.wealth_paths.shape == (50, 41)
        assert results.terminal_wealth.shape == (50,)
        assert results.ages_reached.shape == (50,)
        assert np.all(results.wealth_paths[:, 0] == STARTING_WEALTH)
        assert np.all(results.wealth_paths >= 0)
        assert 0 <= results.ruin_rate <= 1
        assert np.all(results.scores >= 0)

    def test_ages_match_outcomes(self):
        results = PolicyMonteCarlo(MonteCarloParams(career_type=CareerType.CYCLICAL,
                                                    num_sims=100, random_seed=5)).run_simulation()
        survived = ~results.ruin_flags
        assert np.all(results.ages_reached[survived] == 65)
        assert np.all(results.ages_reached[results.ruin_flags] <= 65)
        assert np.all(results.terminal_wealth[results.ruin_flags] == 0)

    def test_reproducible_with_seed(self):
        params = MonteCarloParams(num_sims=20, random_seed=42)
        first = PolicyMonteCarlo(params).run_simulation()
        second = PolicyMonteCarlo(params).run_simulation()
        np.testing.assert_array_equal(first.wealth_paths, second.wealth_paths)
        np.testing.assert_array_equal(first.total_utility, second.total_utility)


class TestSummaryStatistics:
    """Test percentile and summary helpers"""

    def test_percentiles(self):
        paths = np.tile(np.arange(1, 101, dtype=float)[:, None], (1, 3))
        bands = calculate_percentiles(paths)
        assert bands['p50'].shape == (3,)
        assert bands['p10'][0] < bands['p50'][0] < bands['p90'][0]

    def test_summary_stats(self):
        terminal = np.array([0.0, 250_000.0, 750_000.0, 2_000_000.0])
        stats = calculate_summary_stats(terminal)
        assert stats['mean'] == pytest.approx(750_000)
        assert stats['prob_ruin'] == pytest.approx(0.25)
        assert stats['prob_below_500k'] == pytest.approx(0.5)
        assert stats['prob_below_1m'] == pytest.approx(0.75)
