"""
positions.py - Position Ledger

The PositionLedger is the authoritative store of per-account collateral
balances and minted debt. It is the only object that mutates balance state.

Key responsibilities:
    - Holds account -> asset -> deposited amount and account -> debt
    - Validates every change (positive amounts, registered assets,
      no balance ever going negative)
    - Stages the outbound token transfer for withdrawals instead of
      performing it, so the caller commits it in the same failure domain
    - Provides snapshot() / restore() for all-or-nothing execution
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Dict, Iterable, Mapping, Set, Tuple

from .core import (
    TokenMove, MOVE_PUSH,
    AssetNotAllowed, InsufficientCollateral, InsufficientDebt, InvalidConfiguration,
    require_amount,
)


@dataclass(frozen=True, slots=True)
class PositionSnapshot:
    """Immutable copy of all balances, used to roll back a failed operation."""
    collateral: Tuple[Tuple[str, Tuple[Tuple[str, int], ...]], ...]
    debt: Tuple[Tuple[str, int], ...]


class PositionLedger:
    """
    Per-account collateral buckets and debt for a fixed set of assets.

    Accounts are created implicitly on first deposit or mint and are never
    destroyed; emptied positions simply hold zero balances.

    Thread Safety:
        Not thread-safe. The engine serializes access.

    Example:
        positions = PositionLedger(["WETH", "WBTC"])
        positions.deposit("alice", "WETH", 10 * 10**18)
        positions.increase_debt("alice", 100 * 10**18)
    """

    def __init__(self, collateral_assets: Iterable[str]):
        assets = tuple(collateral_assets)
        if len(set(assets)) != len(assets):
            raise InvalidConfiguration("duplicate collateral asset", assets=assets)
        self._assets: Tuple[str, ...] = assets
        self._collateral: Dict[str, Dict[str, int]] = {}
        self._debt: Dict[str, int] = {}

    # ========================================================================
    # QUERIES
    # ========================================================================

    @property
    def collateral_assets(self) -> Tuple[str, ...]:
        """Registered assets, in construction order."""
        return self._assets

    def require_allowed(self, asset: str) -> None:
        if asset not in self._assets:
            raise AssetNotAllowed("asset is not an approved collateral", asset=asset)

    def get_collateral(self, account: str, asset: str) -> int:
        self.require_allowed(asset)
        return self._collateral.get(account, {}).get(asset, 0)

    def get_collateral_balances(self, account: str) -> Dict[str, int]:
        """All registered assets for an account, zero balances included."""
        held = self._collateral.get(account, {})
        return {asset: held.get(asset, 0) for asset in self._assets}

    def get_debt(self, account: str) -> int:
        return self._debt.get(account, 0)

    def accounts(self) -> Set[str]:
        """Accounts that have ever deposited or minted."""
        return set(self._collateral) | set(self._debt)

    def total_collateral(self, asset: str) -> int:
        self.require_allowed(asset)
        return sum(held.get(asset, 0) for held in self._collateral.values())

    def total_debt(self) -> int:
        return sum(self._debt.values())

    # ========================================================================
    # MUTATIONS
    # ========================================================================

    def deposit(self, account: str, asset: str, amount: int) -> None:
        """
        Increase collateral(account, asset) by amount.

        Raises:
            InvalidAmount: amount <= 0
            AssetNotAllowed: asset not registered
        """
        require_amount(amount)
        self.require_allowed(asset)
        held = self._collateral.setdefault(account, {})
        held[asset] = held.get(asset, 0) + amount

    def withdraw(self, account: str, asset: str, amount: int, beneficiary: str) -> TokenMove:
        """
        Decrease collateral(account, asset) by amount.

        Returns the outbound transfer of amount to beneficiary. The caller
        must commit it; if the transfer fails, the caller restores the
        snapshot taken before this call.

        Raises:
            InvalidAmount: amount <= 0
            AssetNotAllowed: asset not registered
            InsufficientCollateral: amount exceeds the deposited balance
        """
        require_amount(amount)
        available = self.get_collateral(account, asset)
        if amount > available:
            raise InsufficientCollateral(
                "withdrawal exceeds deposited collateral",
                account=account, asset=asset, requested=amount, available=available,
            )
        self._collateral[account][asset] = available - amount
        return TokenMove(kind=MOVE_PUSH, token=asset, account=beneficiary, amount=amount)

    def increase_debt(self, account: str, amount: int) -> None:
        require_amount(amount)
        self._debt[account] = self._debt.get(account, 0) + amount

    def decrease_debt(self, account: str, amount: int) -> None:
        """
        Raises:
            InvalidAmount: amount <= 0
            InsufficientDebt: amount exceeds the account's debt
        """
        require_amount(amount)
        current = self.get_debt(account)
        if amount > current:
            raise InsufficientDebt(
                "repayment exceeds minted debt",
                account=account, requested=amount, available=current,
            )
        self._debt[account] = current - amount

    # ========================================================================
    # SNAPSHOT / RESTORE
    # ========================================================================

    def snapshot(self) -> PositionSnapshot:
        return PositionSnapshot(
            collateral=tuple(
                (account, tuple(held.items()))
                for account, held in self._collateral.items()
            ),
            debt=tuple(self._debt.items()),
        )

    def restore(self, snapshot: PositionSnapshot) -> None:
        """Replace all balances with those captured in snapshot."""
        self._collateral = {account: dict(held) for account, held in snapshot.collateral}
        self._debt = dict(snapshot.debt)

    def state_dict(self) -> Mapping[str, object]:
        """Plain-dict view of all balances, for reports and test comparisons."""
        return {
            'collateral': {account: dict(held) for account, held in self._collateral.items()},
            'debt': dict(self._debt),
        }

    def __repr__(self):
        return (f"PositionLedger({len(self._assets)} assets, "
                f"{len(self.accounts())} accounts, debt={self.total_debt()})")
