"""
solvency.py - Collateral valuation and health factor

ARCHITECTURE (Pure Function Pattern):
=====================================

1. PURE CALCULATION FUNCTIONS (calculate_*):
   - Take all inputs explicitly as parameters
   - No ledger, no oracle, no hidden state
   - Example: calculate_health_factor(debt, collateral_value) -> int

2. SolvencyEngine:
   - Reads balances from the PositionLedger and prices from the OracleAdapter
   - Feeds them to the pure functions
   - assert_healthy() is the single enforcement point for the minimum
     health factor

Key Formulas (all 18-decimal fixed point, division floors):
    usd_value       = price * amount / PRECISION
    token_amount    = usd_value * PRECISION / price
    adjusted        = collateral_value * LIQUIDATION_THRESHOLD / LIQUIDATION_PRECISION
    health_factor   = adjusted * PRECISION / debt        (MAX_HEALTH_FACTOR if debt == 0)
"""

from __future__ import annotations
from typing import Dict, Mapping

from .core import (
    AccountInformation,
    HealthFactorBroken,
    PRECISION, LIQUIDATION_THRESHOLD, LIQUIDATION_PRECISION,
    MIN_HEALTH_FACTOR, MAX_HEALTH_FACTOR,
    format_wad,
)
from .oracle import OracleAdapter
from .positions import PositionLedger


# ============================================================================
# PURE CALCULATION FUNCTIONS
# ============================================================================

def calculate_usd_value(price: int, amount: int) -> int:
    """
    USD value of amount units of an asset priced at price.

    Both price and amount are 18-decimal fixed point.
    """
    if price <= 0:
        raise ValueError(f"price must be positive, got {price}")
    if amount < 0:
        raise ValueError(f"amount cannot be negative, got {amount}")
    return price * amount // PRECISION


def calculate_token_amount_from_usd(price: int, usd_amount: int) -> int:
    """
    Number of asset units worth usd_amount at price (rounded down).

    Example:
        price $2000, usd_amount $100 -> 0.05 units
    """
    if price <= 0:
        raise ValueError(f"price must be positive, got {price}")
    if usd_amount < 0:
        raise ValueError(f"usd_amount cannot be negative, got {usd_amount}")
    return usd_amount * PRECISION // price


def calculate_collateral_value(
    balances: Mapping[str, int],
    prices: Mapping[str, int],
) -> int:
    """
    Sum of price * balance over every asset in balances.

    Raises:
        ValueError: if an asset in balances has no price.
    """
    total = 0
    for asset, amount in balances.items():
        if asset not in prices:
            raise ValueError(f"Missing price for collateral asset '{asset}'")
        total += calculate_usd_value(prices[asset], amount)
    return total


def calculate_health_factor(total_debt: int, collateral_value: int) -> int:
    """
    Health factor of a position from its debt and USD collateral value.

    Positions without debt can never be broken and report MAX_HEALTH_FACTOR.
    """
    if total_debt < 0 or collateral_value < 0:
        raise ValueError("debt and collateral value cannot be negative")
    if total_debt == 0:
        return MAX_HEALTH_FACTOR
    adjusted = collateral_value * LIQUIDATION_THRESHOLD // LIQUIDATION_PRECISION
    return adjusted * PRECISION // total_debt


def max_mintable(collateral_value: int, total_debt: int) -> int:
    """Additional debt that keeps the health factor at or above the minimum."""
    adjusted = collateral_value * LIQUIDATION_THRESHOLD // LIQUIDATION_PRECISION
    ceiling = adjusted * PRECISION // MIN_HEALTH_FACTOR
    return max(0, ceiling - total_debt)


# ============================================================================
# SOLVENCY ENGINE
# ============================================================================

class SolvencyEngine:
    """
    Valuation and health checks over live positions and oracle prices.

    All methods are read-only. Prices are fetched on every call, once per
    asset, so a stale or broken feed fails the calling operation.
    """

    def __init__(self, positions: PositionLedger, oracle: OracleAdapter):
        self.positions = positions
        self.oracle = oracle

    def get_usd_value(self, asset: str, amount: int) -> int:
        self.positions.require_allowed(asset)
        return calculate_usd_value(self.oracle.price(asset), amount)

    def get_token_amount_from_usd(self, asset: str, usd_amount: int) -> int:
        self.positions.require_allowed(asset)
        return calculate_token_amount_from_usd(self.oracle.price(asset), usd_amount)

    def prices(self) -> Dict[str, int]:
        """Current price of every registered asset."""
        return {asset: self.oracle.price(asset) for asset in self.positions.collateral_assets}

    def collateral_value(self, account: str) -> int:
        """USD value of everything account has deposited, over all registered assets."""
        balances = self.positions.get_collateral_balances(account)
        return calculate_collateral_value(balances, self.prices())

    def account_information(self, account: str) -> AccountInformation:
        return AccountInformation(
            total_debt=self.positions.get_debt(account),
            collateral_value=self.collateral_value(account),
        )

    def health_factor(self, account: str) -> int:
        """
        Current health factor of account.

        Accounts without debt short-circuit to MAX_HEALTH_FACTOR without
        reading the oracle.
        """
        debt = self.positions.get_debt(account)
        if debt == 0:
            return MAX_HEALTH_FACTOR
        return calculate_health_factor(debt, self.collateral_value(account))

    def is_healthy(self, account: str) -> bool:
        return self.health_factor(account) >= MIN_HEALTH_FACTOR

    def assert_healthy(self, account: str) -> int:
        """
        Return the health factor of account.

        Raises:
            HealthFactorBroken: health factor below MIN_HEALTH_FACTOR
        """
        health_factor = self.health_factor(account)
        if health_factor < MIN_HEALTH_FACTOR:
            raise HealthFactorBroken(
                "health factor below minimum",
                account=account,
                health_factor=format_wad(health_factor),
                minimum=format_wad(MIN_HEALTH_FACTOR),
            )
        return health_factor
