"""
simulation.py - Monte Carlo price-shock stress harness

Drives a live Engine through simulated collateral prices and liquidates
every account that falls below the minimum health factor.

Provides:
- generate_price_paths: geometric random walk price paths (vectorized)
- run_stress_scenario: replays one path against an engine
- StressReport / StepMetrics: what happened along the way

Prices are floats only inside this module. They are converted to the
feed's integer answers before the engine ever sees them.
"""

from __future__ import annotations
from dataclasses import dataclass
from datetime import timedelta
from typing import Iterable, List, Optional, Sequence, Tuple

import numpy as np

from .core import (
    EngineError,
    LIQUIDATION_BONUS, LIQUIDATION_PRECISION, MAX_HEALTH_FACTOR, MIN_HEALTH_FACTOR,
)
from .engine import Engine
from .oracle import StaticPriceFeed


# ============================================================================
# PRICE PATHS
# ============================================================================

def generate_price_paths(
    initial_price: float,
    volatility: float,
    steps: int,
    n_paths: int = 1,
    seed: Optional[int] = None,
    drift: float = 0.0,
) -> np.ndarray:
    """
    Geometric random walk price paths.

    Each step multiplies the price by exp((drift - volatility**2 / 2) + volatility * z)
    with z standard normal, so prices stay strictly positive.

    Args:
        initial_price: Price at step 0 (must be > 0)
        volatility: Per-step volatility (must be >= 0)
        steps: Number of steps after the initial price
        n_paths: Number of independent paths
        seed: Seed for numpy's default_rng (same seed -> same paths)
        drift: Per-step log drift

    Returns:
        Array of shape (n_paths, steps + 1); column 0 is initial_price.
    """
    if initial_price <= 0:
        raise ValueError(f"initial_price must be positive, got {initial_price}")
    if volatility < 0:
        raise ValueError(f"volatility cannot be negative, got {volatility}")
    if steps < 0 or n_paths < 1:
        raise ValueError(f"need steps >= 0 and n_paths >= 1, got {steps}, {n_paths}")

    rng = np.random.default_rng(seed)
    shocks = rng.standard_normal((n_paths, steps))
    log_returns = (drift - 0.5 * volatility ** 2) + volatility * shocks
    cumulative = np.concatenate(
        [np.zeros((n_paths, 1)), np.cumsum(log_returns, axis=1)], axis=1
    )
    return initial_price * np.exp(cumulative)


def price_to_answer(price: float, decimals: int) -> int:
    """Float USD price -> integer feed answer with the given decimals (at least 1)."""
    if not np.isfinite(price) or price <= 0:
        raise ValueError(f"price must be finite and positive, got {price}")
    return max(1, int(round(price * 10 ** decimals)))


# ============================================================================
# REPORTS
# ============================================================================

@dataclass(frozen=True, slots=True)
class StepMetrics:
    """Solvency snapshot after one price step has been processed."""
    step: int
    answer: int
    total_debt: int
    liquidations: int
    unhealthy_accounts: int
    min_health_factor: int


@dataclass(frozen=True, slots=True)
class StressReport:
    """
    Outcome of a stress run.

    Attributes:
        steps: Per-step metrics, in order
        liquidations_executed: Liquidations that committed
        failed_attempts: Liquidations that raised and were rolled back
        unhealthy_accounts: Accounts still below the minimum at the end
        min_health_factor: Lowest health factor seen across all steps
        bad_debt_accounts: Accounts whose collateral cannot cover their
            debt plus the liquidation bonus at the final price
    """
    steps: Tuple[StepMetrics, ...]
    liquidations_executed: int
    failed_attempts: int
    unhealthy_accounts: Tuple[str, ...]
    min_health_factor: int
    bad_debt_accounts: Tuple[str, ...]

    @property
    def final_debt(self) -> int:
        return self.steps[-1].total_debt if self.steps else 0


# ============================================================================
# SCENARIO DRIVER
# ============================================================================

def _max_cover(engine: Engine, liquidator: str, target: str, asset: str) -> int:
    """Largest debt_to_cover the liquidator can pay and the target's collateral can back."""
    affordable = engine.get_stable_token().balance_of(liquidator)
    collateral = engine.get_collateral_balance(target, asset)
    if collateral == 0:
        return 0
    backed = (engine.get_usd_value(asset, collateral) * LIQUIDATION_PRECISION
              // (LIQUIDATION_PRECISION + LIQUIDATION_BONUS))
    return min(affordable, engine.get_debt(target), backed)


def _is_bad_debt(engine: Engine, account: str, asset: str) -> bool:
    debt = engine.get_debt(account)
    if debt == 0:
        return False
    collateral_value = engine.get_usd_value(asset, engine.get_collateral_balance(account, asset))
    return collateral_value * LIQUIDATION_PRECISION < debt * (LIQUIDATION_PRECISION + LIQUIDATION_BONUS)


def run_stress_scenario(
    engine: Engine,
    feed: StaticPriceFeed,
    asset: str,
    path: Iterable[float],
    liquidator: str,
    accounts: Sequence[str],
    step: timedelta = timedelta(hours=1),
) -> StressReport:
    """
    Replay a price path against engine.

    For each price: advance the clock by step, publish the price on feed,
    then try to liquidate every unhealthy account in accounts with the
    largest cover the liquidator can afford. Failed liquidations are
    rolled back by the engine and counted, never retried within a step.

    Args:
        engine: Engine whose asset is priced by feed
        feed: Feed to update (must be the engine's feed for asset)
        asset: Collateral asset being shocked
        path: Sequence of float USD prices
        liquidator: Account holding stable units approved to engine custody
        accounts: Accounts to monitor

    Returns:
        StressReport
    """
    metrics: List[StepMetrics] = []
    executed = 0
    failed = 0
    lowest = MAX_HEALTH_FACTOR

    for i, price in enumerate(path):
        answer = price_to_answer(float(price), feed.decimals)
        if i > 0:
            engine.advance_time(engine.current_time + step)
        feed.update_answer(answer, updated_at=engine.current_time)

        step_liquidations = 0
        for account in accounts:
            health = engine.health_factor(account)
            lowest = min(lowest, health)
            if health >= MIN_HEALTH_FACTOR:
                continue
            cover = _max_cover(engine, liquidator, account, asset)
            if cover <= 0:
                failed += 1
                continue
            try:
                engine.liquidate(liquidator, account, asset, cover)
            except EngineError:
                failed += 1
            else:
                executed += 1
                step_liquidations += 1

        healths = [engine.health_factor(a) for a in accounts]
        unhealthy = sum(1 for h in healths if h < MIN_HEALTH_FACTOR)
        step_min = min(healths, default=MAX_HEALTH_FACTOR)
        metrics.append(StepMetrics(
            step=i,
            answer=answer,
            total_debt=engine.total_debt(),
            liquidations=step_liquidations,
            unhealthy_accounts=unhealthy,
            min_health_factor=step_min,
        ))

    return StressReport(
        steps=tuple(metrics),
        liquidations_executed=executed,
        failed_attempts=failed,
        unhealthy_accounts=tuple(a for a in accounts if not engine.solvency.is_healthy(a)),
        min_health_factor=lowest,
        bad_debt_accounts=tuple(a for a in accounts if _is_bad_debt(engine, a, asset)),
    )
