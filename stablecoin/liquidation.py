"""
liquidation.py - Forced closure of under-collateralized positions

A liquidator repays part (or all) of an unhealthy account's debt with their
own stable units and receives the equivalent collateral plus a bonus.

CRITICAL - Preconditions, in order (each one a hard failure):
    1. target health factor < MIN_HEALTH_FACTOR        else HealthFactorOk
    2. debt_to_cover > 0                               else InvalidAmount
    3-4. seized = debt_to_cover in collateral units, plus LIQUIDATION_BONUS %
    5. target holds at least the total seized          else InsufficientCollateral
    6. collateral leaves the target towards the liquidator
    7. target debt drops by debt_to_cover              else InsufficientDebt
    8. target health factor strictly improved          else LiquidationDidNotImprove
    9. liquidator health factor >= minimum             else HealthFactorBroken

Partial coverage is allowed; there is no minimum fraction of the debt that
a liquidator must repay.
"""

from __future__ import annotations
from typing import Tuple

from .core import (
    LiquidationResult, TokenMove,
    HealthFactorOk, InsufficientCollateral, LiquidationDidNotImprove,
    LIQUIDATION_BONUS, LIQUIDATION_PRECISION, MIN_HEALTH_FACTOR,
    MOVE_PULL, MOVE_BURN,
    format_wad, require_amount,
)
from .positions import PositionLedger
from .solvency import SolvencyEngine, calculate_token_amount_from_usd


def calculate_liquidation_amounts(debt_to_cover: int, price: int) -> Tuple[int, int]:
    """
    Collateral owed to a liquidator covering debt_to_cover at price.

    PURE FUNCTION - All inputs explicit.

    Returns:
        (collateral_seized, bonus) where bonus is LIQUIDATION_BONUS percent
        of collateral_seized.

    Example:
        $100 of debt at $18 per unit -> (5.5555... units, 0.5555... units)
    """
    collateral = calculate_token_amount_from_usd(price, debt_to_cover)
    bonus = collateral * LIQUIDATION_BONUS // LIQUIDATION_PRECISION
    return collateral, bonus


class LiquidationEngine:
    """
    Applies liquidations to the PositionLedger.

    The engine mutates positions directly and returns the token moves it
    needs; the caller runs it inside an atomic operation, so any failure
    after a mutation is rolled back by the caller's snapshot.
    """

    def __init__(self, positions: PositionLedger, solvency: SolvencyEngine, stable_symbol: str):
        self.positions = positions
        self.solvency = solvency
        self.stable_symbol = stable_symbol

    def preview(self, target: str, liquidator: str, asset: str, debt_to_cover: int) -> LiquidationResult:
        """Amounts a liquidation would move, without any health or balance checks."""
        require_amount(debt_to_cover, "debt_to_cover")
        self.positions.require_allowed(asset)
        collateral, bonus = calculate_liquidation_amounts(
            debt_to_cover, self.solvency.oracle.price(asset)
        )
        return LiquidationResult(
            target=target,
            liquidator=liquidator,
            asset=asset,
            debt_covered=debt_to_cover,
            collateral_seized=collateral,
            bonus=bonus,
        )

    def liquidate(self, liquidator: str, target: str, asset: str, debt_to_cover: int) -> LiquidationResult:
        """
        Liquidate target's position, mutating positions in place.

        Returns:
            LiquidationResult whose moves are, in order: pull the stable
            units from the liquidator, burn them, push the seized collateral
            to the liquidator.
        """
        starting_health = self.solvency.health_factor(target)
        if starting_health >= MIN_HEALTH_FACTOR:
            raise HealthFactorOk(
                "target is not liquidatable",
                target=target, health_factor=format_wad(starting_health),
            )
        plan = self.preview(target, liquidator, asset, debt_to_cover)

        available = self.positions.get_collateral(target, asset)
        if plan.total_seized > available:
            raise InsufficientCollateral(
                "target collateral cannot cover debt plus bonus",
                target=target, asset=asset, requested=plan.total_seized, available=available,
            )

        push = self.positions.withdraw(target, asset, plan.total_seized, liquidator)
        self.positions.decrease_debt(target, debt_to_cover)

        ending_health = self.solvency.health_factor(target)
        if ending_health <= starting_health:
            raise LiquidationDidNotImprove(
                "liquidation did not improve the target's health factor",
                target=target,
                before=format_wad(starting_health),
                after=format_wad(ending_health),
            )
        self.solvency.assert_healthy(liquidator)

        moves = (
            TokenMove(kind=MOVE_PULL, token=self.stable_symbol, account=liquidator, amount=debt_to_cover),
            TokenMove(kind=MOVE_BURN, token=self.stable_symbol, account=liquidator, amount=debt_to_cover),
            push,
        )
        return LiquidationResult(
            target=target,
            liquidator=liquidator,
            asset=asset,
            debt_covered=debt_to_cover,
            collateral_seized=plan.collateral_seized,
            bonus=plan.bonus,
            health_factor_before=starting_health,
            health_factor_after=ending_health,
            moves=moves,
        )
