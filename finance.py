"""
Stochastic market, wage, utility and human capital models for the lifecycle game.
Pure functions: every random draw comes from an injected uniform source.
"""
import math
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Union

import numpy as np


@dataclass(frozen=True)
class ReturnDistribution:
    """Normal distribution of an annual rate"""
    mean: float
    std: float


@dataclass(frozen=True)
class MarketDynamics:
    """Annual return/inflation distributions, sampled independently each year"""
    stocks: ReturnDistribution = ReturnDistribution(0.08, 0.18)
    bonds: ReturnDistribution = ReturnDistribution(0.03, 0.05)
    cash: ReturnDistribution = ReturnDistribution(0.01, 0.01)
    inflation: ReturnDistribution = ReturnDistribution(0.02, 0.015)


MARKET_DYNAMICS = MarketDynamics()


class CareerType(str, Enum):
    STABLE = "STABLE"
    CYCLICAL = "CYCLICAL"


@dataclass(frozen=True)
class CareerProfile:
    """Wage dynamics of a career"""
    wage_growth: float  # annual drift
    volatility: float  # idiosyncratic wage shock std
    market_correlation: float  # loading of wage growth on stock return
    title: str = ""
    description: str = ""


CAREER_PROFILES = {
    CareerType.STABLE: CareerProfile(
        wage_growth=0.02,
        volatility=0.05,
        market_correlation=0.1,
        title="The Civil Servant",
        description="Low volatility, bond-like wages. Good for higher equity risk.",
    ),
    CareerType.CYCLICAL: CareerProfile(
        wage_growth=0.04,
        volatility=0.15,
        market_correlation=0.7,
        title="The Tech Founder",
        description="High growth potential but moves with the stock market.",
    ),
}


class ShockType(str, Enum):
    NONE = "NONE"
    HEALTH = "HEALTH"
    EMPLOYMENT = "EMPLOYMENT"


# Income shocks: cumulative probability thresholds and cost as fraction of income
HEALTH_SHOCK_PROBABILITY = 0.05
EMPLOYMENT_SHOCK_THRESHOLD = 0.08
HEALTH_SHOCK_COST = 0.2
EMPLOYMENT_SHOCK_COST = 0.4

UTILITY_PENALTY = -100.0

HUMAN_CAPITAL_RETIREMENT_AGE = 65
HUMAN_CAPITAL_DISCOUNT_RATE = 0.04


@dataclass(frozen=True)
class MarketYear:
    """One year of realized market, wage and shock outcomes"""
    stock_return: float
    bond_return: float
    cash_return: float
    inflation: float
    shock_type: ShockType
    shock_cost: float
    new_income: float

    @property
    def shock_occurred(self) -> bool:
        return self.shock_type != ShockType.NONE


def make_rng(seed: Optional[int] = None) -> np.random.Generator:
    """Create the uniform random source used by the simulation"""
    return np.random.default_rng(seed)


def get_career_profile(career: Union[CareerType, CareerProfile, str]) -> CareerProfile:
    """Resolve a career selector or profile to a CareerProfile"""
    if isinstance(career, CareerProfile):
        return career
    return CAREER_PROFILES[CareerType(career)]


def randn(rng) -> float:
    """
    Standard normal draw via the Box-Muller transform.

    Args:
        rng: Uniform source with a random() method returning floats in [0, 1)

    Returns:
        One N(0, 1) sample
    """
    u = 0.0
    v = 0.0
    while u == 0.0:
        u = rng.random()
    while v == 0.0:
        v = rng.random()
    return math.sqrt(-2.0 * math.log(u)) * math.cos(2.0 * math.pi * v)


def draw_normal(dist: ReturnDistribution, rng) -> float:
    return dist.mean + dist.std * randn(rng)


def draw_income_shock(rng, current_income: float):
    """Draw this year's income shock, returning (shock type, cost)"""
    draw = rng.random()
    if draw < HEALTH_SHOCK_PROBABILITY:
        return ShockType.HEALTH, current_income * HEALTH_SHOCK_COST
    elif draw < EMPLOYMENT_SHOCK_THRESHOLD:
        return ShockType.EMPLOYMENT, current_income * EMPLOYMENT_SHOCK_COST
    return ShockType.NONE, 0.0


def evolve_income(profile: CareerProfile, current_income: float,
                  stock_return: float, rng) -> float:
    """
    Next year's income given the career profile and the realized stock return.

    Wage growth loads on the stock market through market_correlation and adds
    a fresh idiosyncratic shock scaled by the profile's volatility.
    """
    market_factor = profile.market_correlation * stock_return
    idiosyncratic_factor = profile.volatility * randn(rng)
    wage_growth = profile.wage_growth + market_factor + idiosyncratic_factor
    return current_income * (1 + wage_growth)


def simulate_year(career: Union[CareerType, CareerProfile], current_income: float,
                  rng, dynamics: MarketDynamics = MARKET_DYNAMICS) -> MarketYear:
    """
    Realize one simulated year of market returns, wage growth and income shock.

    Args:
        career: Career selector or profile driving wage dynamics
        current_income: Income earned in the year being simulated
        rng: Uniform random source
        dynamics: Return distributions (process-wide defaults)

    Returns:
        MarketYear with all realized values and next year's income
    """
    profile = get_career_profile(career)

    stock_return = draw_normal(dynamics.stocks, rng)
    bond_return = draw_normal(dynamics.bonds, rng)
    cash_return = draw_normal(dynamics.cash, rng)
    inflation = draw_normal(dynamics.inflation, rng)

    new_income = evolve_income(profile, current_income, stock_return, rng)
    shock_type, shock_cost = draw_income_shock(rng, current_income)

    return MarketYear(
        stock_return=stock_return,
        bond_return=bond_return,
        cash_return=cash_return,
        inflation=inflation,
        shock_type=shock_type,
        shock_cost=shock_cost,
        new_income=new_income,
    )


def calculate_utility(consumption: float, baseline_consumption: float) -> float:
    """Log utility of consumption relative to the run's starting consumption"""
    if consumption <= 0:
        return UTILITY_PENALTY
    return math.log(consumption / baseline_consumption)


def calculate_human_capital(age: int, income: float,
                            career: Union[CareerType, CareerProfile]) -> float:
    """
    Present value of labor income from now until retirement.

    Growing annuity at the career's wage growth, discounted at a fixed rate.
    When growth equals the discount rate the annuity is the flat sum
    income * years_left.

    Args:
        age: Current age
        income: Current annual income
        career: Career selector or profile supplying the growth rate

    Returns:
        Human capital in today's dollars
    """
    years_left = max(0, HUMAN_CAPITAL_RETIREMENT_AGE - age)
    if years_left == 0:
        return 0.0

    growth_rate = get_career_profile(career).wage_growth
    discount_rate = HUMAN_CAPITAL_DISCOUNT_RATE
    r = discount_rate - growth_rate
    if r == 0:
        return income * years_left
    return income * (1 - ((1 + growth_rate) / (1 + discount_rate)) ** years_left) / r
