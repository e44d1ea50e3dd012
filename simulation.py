"""
Lifecycle simulation engine: a 40-year career played one year at a time.
Pure state transitions for the game loop plus a Monte Carlo runner for fixed policies,
decoupled from UI.
"""
import time
import uuid
from dataclasses import dataclass, replace
from enum import Enum
from typing import Dict, Optional, Tuple

import numpy as np

from finance import (
    CareerType, MarketYear, calculate_human_capital, calculate_utility,
    make_rng, simulate_year, ShockType,
)

STARTING_AGE = 25
RETIREMENT_AGE = 65
STARTING_WEALTH = 20_000.0
STARTING_INCOME = 50_000.0
INITIAL_SAVINGS_RATE = 0.2
MAX_SAVINGS_RATE = 0.8
SCORE_MULTIPLIER = 10


class GameStatus(str, Enum):
    NOT_STARTED = "NOT_STARTED"
    IN_PROGRESS = "IN_PROGRESS"
    RUIN = "RUIN"
    RETIRED = "RETIRED"


@dataclass
class PolicyParams:
    """Yearly decisions: savings rate and portfolio weights (cash is the remainder)"""
    savings_rate: float = 0.2
    stock_allocation: float = 0.8
    bond_allocation: float = 0.1

    @property
    def cash_allocation(self) -> float:
        return 1 - self.stock_allocation - self.bond_allocation

    def validate(self):
        """Check the bounds the game's controls enforce"""
        if not 0 <= self.savings_rate <= MAX_SAVINGS_RATE:
            raise ValueError(
                f"Savings rate must be between 0 and {MAX_SAVINGS_RATE}, got {self.savings_rate}")
        if not 0 <= self.stock_allocation <= 1:
            raise ValueError(
                f"Stock allocation must be between 0 and 1, got {self.stock_allocation}")
        max_bonds = 1 - self.stock_allocation
        if not 0 <= self.bond_allocation <= max_bonds + 1e-12:
            raise ValueError(
                f"Bond allocation must be between 0 and {max_bonds:.2f}, got {self.bond_allocation}")


@dataclass(frozen=True)
class YearRecord:
    """Snapshot of one simulated year"""
    age: int
    wealth: float
    income: float
    consumption: float
    savings: float
    portfolio_return: float
    inflation: float
    utility: float
    event: Optional[str] = None


@dataclass(frozen=True)
class SimulationState:
    """Financial state of a run; history is oldest first and starts with the seed year"""
    age: int
    wealth: float
    income: float
    career_type: CareerType
    history: Tuple[YearRecord, ...]
    is_game_over: bool = False
    total_utility: float = 0.0

    @property
    def baseline_consumption(self) -> float:
        return self.history[0].consumption

    @property
    def was_ruin(self) -> bool:
        return self.wealth <= 0


@dataclass(frozen=True)
class SimulationSummary:
    """Outcome of a completed run, kept in the cross-run history"""
    id: str
    timestamp: int
    career_type: CareerType
    final_wealth: float
    score: float
    age_reached: int
    was_ruin: bool


def create_initial_state(career_type: CareerType) -> SimulationState:
    """State at the start of a career, with the seed year recorded"""
    consumption = STARTING_INCOME * (1 - INITIAL_SAVINGS_RATE)
    seed_year = YearRecord(
        age=STARTING_AGE,
        wealth=STARTING_WEALTH,
        income=STARTING_INCOME,
        consumption=consumption,
        savings=STARTING_INCOME * INITIAL_SAVINGS_RATE,
        portfolio_return=0.0,
        inflation=0.0,
        utility=calculate_utility(consumption, consumption),
        event="Started career",
    )
    return SimulationState(
        age=STARTING_AGE,
        wealth=STARTING_WEALTH,
        income=STARTING_INCOME,
        career_type=CareerType(career_type),
        history=(seed_year,),
        is_game_over=False,
        total_utility=0.0,
    )


def compute_portfolio_return(stock_weight: float, bond_weight: float,
                             market_year: MarketYear) -> float:
    """Weighted blend of asset returns; cash holds whatever is not in stocks or bonds"""
    cash_weight = 1 - stock_weight - bond_weight
    return (stock_weight * market_year.stock_return
            + bond_weight * market_year.bond_return
            + cash_weight * market_year.cash_return)


def format_year_event(market_year: MarketYear) -> str:
    """Headline for the year, e.g. 'Markets: Stocks Up (7.3%) | Layoff hit you for $20,000!'"""
    direction = "Up" if market_year.stock_return > 0 else "Down"
    event = f"Markets: Stocks {direction} ({market_year.stock_return * 100:.1f}%)"
    if market_year.shock_occurred:
        label = "Medical emergency" if market_year.shock_type == ShockType.HEALTH else "Layoff"
        event += f" | {label} hit you for ${market_year.shock_cost:,.0f}!"
    return event


def advance_state(state: SimulationState, savings_rate: float, stock_allocation: float,
                  bond_allocation: float, rng) -> Tuple[SimulationState, Optional[YearRecord]]:
    """
    Play one year from a consistent snapshot of the prior state.

    Allocation bounds are the caller's responsibility; out-of-range weights
    still produce a defined (if meaningless) portfolio return.

    Args:
        state: Current simulation state
        savings_rate: Fraction of income saved this year
        stock_allocation: Portfolio weight in stocks
        bond_allocation: Portfolio weight in bonds
        rng: Uniform random source

    Returns:
        Tuple of (new state, new year record). A terminated state is returned
        unchanged with no record.
    """
    if state.is_game_over:
        return state, None

    market_year = simulate_year(state.career_type, state.income, rng)
    portfolio_return = compute_portfolio_return(stock_allocation, bond_allocation, market_year)

    returns_in_dollars = state.wealth * portfolio_return
    savings = state.income * savings_rate
    consumption = state.income - savings

    final_wealth = max(0.0, state.wealth + returns_in_dollars + savings - market_year.shock_cost)
    year_utility = calculate_utility(consumption, state.baseline_consumption)

    new_age = state.age + 1
    is_game_over = new_age >= RETIREMENT_AGE or final_wealth <= 0

    record = YearRecord(
        age=new_age,
        wealth=final_wealth,
        income=market_year.new_income,
        consumption=consumption,
        savings=savings,
        portfolio_return=portfolio_return,
        inflation=market_year.inflation,
        utility=year_utility,
        event=format_year_event(market_year),
    )

    new_state = replace(
        state,
        age=new_age,
        wealth=final_wealth,
        income=market_year.new_income,
        history=state.history + (record,),
        is_game_over=is_game_over,
        total_utility=state.total_utility + year_utility,
    )
    return new_state, record


def get_status(state: Optional[SimulationState]) -> GameStatus:
    if state is None:
        return GameStatus.NOT_STARTED
    if not state.is_game_over:
        return GameStatus.IN_PROGRESS
    if state.was_ruin:
        return GameStatus.RUIN
    return GameStatus.RETIRED


def calculate_score(total_utility: float) -> float:
    return max(0.0, total_utility * SCORE_MULTIPLIER)


def create_summary(state: SimulationState, timestamp: Optional[int] = None) -> SimulationSummary:
    """Summarize a finished run for the cross-run history"""
    if timestamp is None:
        timestamp = int(time.time() * 1000)
    return SimulationSummary(
        id=uuid.uuid4().hex[:7],
        timestamp=timestamp,
        career_type=state.career_type,
        final_wealth=state.wealth,
        score=calculate_score(state.total_utility),
        age_reached=state.age,
        was_ruin=state.was_ruin,
    )


def calculate_balance_sheet(state: SimulationState) -> Dict[str, float]:
    """Financial wealth, human capital and their total for the current state"""
    human_capital = calculate_human_capital(state.age, state.income, state.career_type)
    return {
        'financial_wealth': state.wealth,
        'human_capital': human_capital,
        'total': state.wealth + human_capital,
    }


class LifecycleGame:
    """
    One player's run through a career, advanced a year at a time.

    NOT_STARTED -> IN_PROGRESS on start(); each advance_year() either stays
    IN_PROGRESS or terminates in RUIN (wealth hit zero) or RETIRED (age 65).
    Advancing a game that is not in progress is a silent no-op.
    """

    def __init__(self, rng=None, history_store=None):
        """
        Args:
            rng: Uniform random source (numpy Generator or anything with random()).
                A fresh unseeded generator is created when omitted.
            history_store: Optional store with an add(summary) method that receives
                the summary of every completed run.
        """
        self.rng = rng if rng is not None else make_rng()
        self.history_store = history_store
        self._state: Optional[SimulationState] = None
        self._summary: Optional[SimulationSummary] = None

    @property
    def state(self) -> Optional[SimulationState]:
        return self._state

    @property
    def summary(self) -> Optional[SimulationSummary]:
        return self._summary

    @property
    def status(self) -> GameStatus:
        return get_status(self._state)

    @property
    def is_game_over(self) -> bool:
        return self._state is not None and self._state.is_game_over

    def start(self, career_type: CareerType) -> SimulationState:
        """Begin a new run, discarding any previous one"""
        self._state = create_initial_state(career_type)
        self._summary = None
        return self._state

    def advance_year(self, savings_rate: float = 0.2, stock_allocation: float = 0.8,
                     bond_allocation: float = 0.1) -> Optional[YearRecord]:
        """
        Simulate the next year of the run.

        Returns:
            The new YearRecord, or None if the game is not in progress
        """
        if self._state is None or self._state.is_game_over:
            return None

        new_state, record = advance_state(
            self._state, savings_rate, stock_allocation, bond_allocation, self.rng)
        self._state = new_state

        if new_state.is_game_over:
            self._summary = create_summary(new_state)
            if self.history_store is not None:
                try:
                    self.history_store.add(self._summary)
                except Exception as e:
                    print(f"Warning: Could not record finished run: {e}")
        return record

    def advance_with_policy(self, policy: PolicyParams) -> Optional[YearRecord]:
        return self.advance_year(policy.savings_rate, policy.stock_allocation,
                                 policy.bond_allocation)

    @property
    def human_capital(self) -> float:
        if self._state is None:
            return 0.0
        return calculate_human_capital(self._state.age, self._state.income,
                                       self._state.career_type)

    @property
    def balance_sheet(self) -> Dict[str, float]:
        if self._state is None:
            return {'financial_wealth': 0.0, 'human_capital': 0.0, 'total': 0.0}
        return calculate_balance_sheet(self._state)


@dataclass
class MonteCarloParams:
    """Parameters for running many games under one fixed policy"""
    career_type: CareerType = CareerType.STABLE
    num_sims: int = 1_000
    random_seed: Optional[int] = None
    policy: PolicyParams = None

    def __post_init__(self):
        if self.policy is None:
            self.policy = PolicyParams()
        self.career_type = CareerType(self.career_type)


@dataclass
class MonteCarloResults:
    """Results from a fixed-policy Monte Carlo run"""
    terminal_wealth: np.ndarray
    wealth_paths: np.ndarray
    ages_reached: np.ndarray
    total_utility: np.ndarray
    scores: np.ndarray
    ruin_flags: np.ndarray
    ruin_rate: float


class PolicyMonteCarlo:
    """Plays complete games with a fixed policy to show the spread of outcomes"""

    def __init__(self, params: MonteCarloParams):
        self.params = params
        self._validate_params()

    def _validate_params(self):
        """Validate simulation parameters"""
        if self.params.num_sims < 1:
            raise ValueError(f"Number of simulations must be positive, got {self.params.num_sims}")
        self.params.policy.validate()

    def run_simulation(self) -> MonteCarloResults:
        """Run Monte Carlo simulation"""
        rng = make_rng(self.params.random_seed)
        num_sims = self.params.num_sims
        horizon_years = RETIREMENT_AGE - STARTING_AGE

        # Paths stay at 0 after ruin
        wealth_paths = np.zeros((num_sims, horizon_years + 1))
        ages_reached = np.zeros(num_sims, dtype=int)
        total_utility = np.zeros(num_sims)
        ruin_flags = np.zeros(num_sims, dtype=bool)

        game = LifecycleGame(rng=rng)
        for sim in range(num_sims):
            game.start(self.params.career_type)
            while not game.is_game_over:
                game.advance_with_policy(self.params.policy)

            state = game.state
            path = [record.wealth for record in state.history]
            wealth_paths[sim, :len(path)] = path
            ages_reached[sim] = state.age
            total_utility[sim] = state.total_utility
            ruin_flags[sim] = state.was_ruin

        terminal_wealth = wealth_paths[:, -1].copy()
        scores = np.maximum(0.0, total_utility * SCORE_MULTIPLIER)

        return MonteCarloResults(
            terminal_wealth=terminal_wealth,
            wealth_paths=wealth_paths,
            ages_reached=ages_reached,
            total_utility=total_utility,
            scores=scores,
            ruin_flags=ruin_flags,
            ruin_rate=float(np.mean(ruin_flags)),
        )


def calculate_percentiles(wealth_paths: np.ndarray) -> Dict[str, np.ndarray]:
    """Calculate wealth percentile bands over time"""
    return {
        'p10': np.percentile(wealth_paths, 10, axis=0),
        'p50': np.percentile(wealth_paths, 50, axis=0),
        'p90': np.percentile(wealth_paths, 90, axis=0),
    }


def calculate_summary_stats(terminal_wealth: np.ndarray) -> Dict[str, float]:
    """Calculate summary statistics for terminal wealth"""
    return {
        'mean': float(np.mean(terminal_wealth)),
        'p10': float(np.percentile(terminal_wealth, 10)),
        'p50': float(np.percentile(terminal_wealth, 50)),
        'p90': float(np.percentile(terminal_wealth, 90)),
        'prob_ruin': float(np.mean(terminal_wealth <= 0)),
        'prob_below_500k': float(np.mean(terminal_wealth < 500_000)),
        'prob_below_1m': float(np.mean(terminal_wealth < 1_000_000)),
    }
