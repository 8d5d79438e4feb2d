"""
tokens.py - Token ledger collaborators and the adapter the engine talks to

- TokenLedgerAdapter: turns the True/False results of a TokenLedger into
  TransferFailed / MintFailed / BurnFailed, and knows the engine's custody
  account.
- InMemoryToken: balance/allowance token ledger used for collateral mocks
  and the stable unit. Supports failure injection for atomicity tests.
"""

from __future__ import annotations
from collections import defaultdict
from typing import Dict, Optional, Tuple

from .core import (
    TokenLedger, TokenMove,
    TransferFailed, MintFailed, BurnFailed,
    MOVE_PULL, MOVE_PUSH, MOVE_MINT, MOVE_BURN,
)


class TokenLedgerAdapter:
    """
    Engine-side wrapper around one TokenLedger.

    Every method either succeeds or raises; a False result from the
    underlying ledger is never ignored.
    """

    def __init__(self, token: TokenLedger, custody: str):
        self.token = token
        self.custody = custody

    @property
    def symbol(self) -> str:
        return self.token.symbol

    def pull(self, source: str, amount: int) -> None:
        """Move amount from source into custody (requires an allowance)."""
        if not self.token.transfer_from(self.custody, source, self.custody, amount):
            raise TransferFailed(
                "transfer_from returned False",
                token=self.symbol, source=source, amount=amount,
            )

    def push(self, dest: str, amount: int) -> None:
        """Move amount out of custody to dest."""
        if not self.token.transfer(self.custody, dest, amount):
            raise TransferFailed(
                "transfer returned False",
                token=self.symbol, dest=dest, amount=amount,
            )

    def mint(self, dest: str, amount: int) -> None:
        if not self.token.mint(self.custody, dest, amount):
            raise MintFailed("mint returned False", token=self.symbol, dest=dest, amount=amount)

    def burn(self, amount: int) -> None:
        """Burn amount held in custody. A None result counts as success."""
        if self.token.burn(self.custody, amount) is False:
            raise BurnFailed("burn returned False", token=self.symbol, amount=amount)

    def apply(self, move: TokenMove) -> None:
        """Execute a staged TokenMove."""
        if move.kind == MOVE_PULL:
            self.pull(move.account, move.amount)
        elif move.kind == MOVE_PUSH:
            self.push(move.account, move.amount)
        elif move.kind == MOVE_MINT:
            self.mint(move.account, move.amount)
        else:
            self.burn(move.amount)

    def revert(self, move: TokenMove) -> None:
        """
        Undo a previously applied TokenMove.

        PULL is undone by pushing the funds back, BURN by minting them back
        into custody. PUSH and MINT would need the counterparty to return
        funds, so the engine orders them last in every operation and they
        are never reverted.

        Raises:
            ValueError: move is a PUSH or MINT
        """
        if move.kind == MOVE_PULL:
            self.push(move.account, move.amount)
        elif move.kind == MOVE_BURN:
            self.mint(self.custody, move.amount)
        else:
            raise ValueError(f"Outbound {move.kind} moves cannot be reverted: {move!r}")

    def balance_of(self, account: str) -> int:
        return self.token.balance_of(account)

    def __repr__(self):
        return f"TokenLedgerAdapter({self.symbol}, custody={self.custody})"


class InMemoryToken:
    """
    Fungible token ledger with balances, allowances, mint and burn.

    Mutating calls return False instead of raising when the operation is not
    possible (insufficient balance or allowance, unauthorized mint), which is
    the contract the engine expects from token ledgers.

    Thread Safety:
        Not thread-safe.

    Example:
        weth = InMemoryToken("WETH")
        weth.mint("anyone", "alice", 10 * 10**18)
        weth.approve("alice", "engine", 10 * 10**18)
    """

    def __init__(self, symbol: str, name: Optional[str] = None, decimals: int = 18,
                 owner: Optional[str] = None):
        """
        Args:
            symbol: Token symbol
            name: Human-readable name (defaults to symbol)
            decimals: Token decimals (the Engine only accepts 18)
            owner: Only this account may mint; None lets anyone mint
        """
        if not symbol or not symbol.strip():
            raise ValueError("Token symbol cannot be empty")
        self.symbol = symbol
        self.name = name or symbol
        self.decimals = decimals
        self.owner = owner
        self.balances: Dict[str, int] = defaultdict(int)
        self.allowances: Dict[Tuple[str, str], int] = defaultdict(int)
        self._supply = 0
        self._forced_failures: Dict[str, int] = defaultdict(int)

    # ------------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------------

    def balance_of(self, account: str) -> int:
        return self.balances.get(account, 0)

    def total_supply(self) -> int:
        return self._supply

    def allowance(self, holder: str, spender: str) -> int:
        return self.allowances.get((holder, spender), 0)

    def verify_supply(self) -> bool:
        """Conservation check: the sum of all balances equals total supply."""
        return sum(self.balances.values()) == self._supply

    # ------------------------------------------------------------------------
    # Failure injection
    # ------------------------------------------------------------------------

    def fail_next(self, operation: str, times: int = 1) -> None:
        """
        Make the next `times` calls of operation return False.

        operation is one of "transfer", "transfer_from", "mint", "burn".
        """
        if operation not in ("transfer", "transfer_from", "mint", "burn"):
            raise ValueError(f"Unknown token operation: {operation}")
        self._forced_failures[operation] += times

    def _forced_failure(self, operation: str) -> bool:
        if self._forced_failures[operation] > 0:
            self._forced_failures[operation] -= 1
            return True
        return False

    # ------------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------------

    @staticmethod
    def _check_amount(amount: int) -> None:
        if isinstance(amount, bool) or not isinstance(amount, int):
            raise ValueError(f"Token amount must be int, got {type(amount).__name__}")
        if amount < 0:
            raise ValueError(f"Token amount cannot be negative, got {amount}")

    def approve(self, holder: str, spender: str, amount: int) -> bool:
        self._check_amount(amount)
        self.allowances[(holder, spender)] = amount
        return True

    def transfer(self, sender: str, dest: str, amount: int) -> bool:
        self._check_amount(amount)
        if self._forced_failure("transfer"):
            return False
        if self.balance_of(sender) < amount:
            return False
        self.balances[sender] -= amount
        self.balances[dest] += amount
        return True

    def transfer_from(self, spender: str, source: str, dest: str, amount: int) -> bool:
        self._check_amount(amount)
        if self._forced_failure("transfer_from"):
            return False
        if source != spender and self.allowance(source, spender) < amount:
            return False
        if self.balance_of(source) < amount:
            return False
        if source != spender:
            self.allowances[(source, spender)] -= amount
        self.balances[source] -= amount
        self.balances[dest] += amount
        return True

    def mint(self, caller: str, dest: str, amount: int) -> bool:
        self._check_amount(amount)
        if self._forced_failure("mint"):
            return False
        if self.owner is not None and caller != self.owner:
            return False
        self.balances[dest] += amount
        self._supply += amount
        return True

    def burn(self, caller: str, amount: int) -> bool:
        self._check_amount(amount)
        if self._forced_failure("burn"):
            return False
        if self.balance_of(caller) < amount:
            return False
        self.balances[caller] -= amount
        self._supply -= amount
        return True

    def __repr__(self):
        return f"InMemoryToken({self.symbol}, supply={self._supply}, holders={len(self.balances)})"
