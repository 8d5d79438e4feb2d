"""
Core types and pure helpers for the stable-unit issuance engine.

This module provides the foundational pieces every other module builds on:
1. Constants: fixed-point scale and the immutable system parameters
2. Fixed-point helpers: to_wad / from_wad / format_wad
3. Exceptions: EngineError and the domain-specific error kinds
4. Protocols: PriceFeed and TokenLedger collaborator contracts
5. Immutable data structures: PriceRound, TokenMove, EngineEvent,
   AccountInformation, LiquidationResult

All monetary quantities are plain Python ints in 18-decimal fixed point.
No function in this module mutates engine state.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from decimal import Decimal, ROUND_DOWN
from typing import (
    Dict, Optional, Any, Protocol, Tuple, Union, runtime_checkable,
)


# ============================================================================
# CONSTANTS
# ============================================================================

# Fixed-point scale for every collateral amount, USD value, debt and
# health factor handled by the engine.
PRECISION = 10 ** 18
WAD_DECIMALS = 18

# Collateral counts at 50% of its value towards the health factor,
# i.e. positions must be at least 200% over-collateralized.
LIQUIDATION_THRESHOLD = 50
LIQUIDATION_PRECISION = 100

# Liquidators receive 10% extra collateral on top of the debt they cover.
LIQUIDATION_BONUS = 10

MIN_HEALTH_FACTOR = PRECISION

# Health factor reported for positions without debt.
MAX_HEALTH_FACTOR = 2 ** 256 - 1

# Oracle readings older than this are rejected.
ORACLE_TIMEOUT = timedelta(hours=3)

# Default decimals of a USD price feed answer.
DEFAULT_FEED_DECIMALS = 8

# Account under which the engine holds deposited collateral and receives
# stable units before burning them.
DEFAULT_CUSTODY = "engine"

# Token move kinds (strings, matching how the rest of the package tags things).
MOVE_PULL = "PULL"    # transfer_from(account -> custody)
MOVE_PUSH = "PUSH"    # transfer(custody -> account)
MOVE_MINT = "MINT"    # mint(account)
MOVE_BURN = "BURN"    # burn from custody

# Event names appended to the engine's event log.
EVENT_COLLATERAL_DEPOSITED = "CollateralDeposited"
EVENT_COLLATERAL_REDEEMED = "CollateralRedeemed"
EVENT_DEBT_MINTED = "DebtMinted"
EVENT_DEBT_BURNED = "DebtBurned"
EVENT_LIQUIDATION = "Liquidation"


# ============================================================================
# FIXED-POINT HELPERS
# ============================================================================

Numeric = Union[int, str, Decimal]


def to_wad(value: Numeric) -> int:
    """
    Convert a human-scale number to 18-decimal fixed point.

    Digits beyond the 18th decimal are truncated.

    Example:
        to_wad("2000") == 2000 * 10**18
        to_wad(Decimal("0.5")) == 5 * 10**17
    """
    if isinstance(value, float):
        raise ValueError("to_wad() does not accept float, pass a str or Decimal")
    d = value if isinstance(value, Decimal) else Decimal(str(value))
    if d.is_nan() or d.is_infinite():
        raise ValueError(f"to_wad() requires a finite value, got {value}")
    return int((d * PRECISION).to_integral_value(rounding=ROUND_DOWN))


def from_wad(amount: int) -> Decimal:
    """Convert an 18-decimal fixed-point int back to a Decimal."""
    return Decimal(amount) / Decimal(PRECISION)


def format_wad(amount: int, places: int = 4) -> str:
    """Render a fixed-point amount for receipts and reports."""
    if amount >= MAX_HEALTH_FACTOR:
        return "max"
    quantizer = Decimal(10) ** -places
    return f"{from_wad(amount).quantize(quantizer, rounding=ROUND_DOWN):,}"


def require_amount(value: Any, name: str = "amount") -> int:
    """
    Validate a quantity that must be a strictly positive int.

    Raises:
        ValueError: if value is not an int (bool excluded)
        InvalidAmount: if value is zero or negative
    """
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"{name} must be int, got {type(value).__name__}")
    if value <= 0:
        raise InvalidAmount(f"{name} must be greater than zero", **{name: value})
    return value


# ============================================================================
# EXCEPTIONS
# ============================================================================

class EngineError(Exception):
    """
    Base exception for all engine errors.

    Diagnostic values are passed as keyword arguments, kept on .details and
    rendered into the message (e.g. requested vs. available amounts).

    compensation_errors holds (TokenMove, exception) pairs for token moves
    that could not be reverted while rolling back the failed operation.
    """

    compensation_errors: Tuple[Tuple["TokenMove", Exception], ...] = ()

    def __init__(self, message: str = "", **details: Any):
        self.details: Dict[str, Any] = details
        if details:
            rendered = ", ".join(f"{k}={v}" for k, v in details.items())
            message = f"{message} ({rendered})" if message else rendered
        super().__init__(message or self.__class__.__name__)


class InvalidAmount(EngineError):
    """Raised when a zero or negative quantity is supplied where a positive one is required."""
    pass


class AssetNotAllowed(EngineError):
    """Raised when an operation references a collateral asset with no registered price feed."""
    pass


class AssetConfigMismatch(EngineError):
    """Raised at construction when the asset and price feed lists differ in length."""
    pass


class InvalidConfiguration(EngineError):
    """Raised at construction for duplicate assets, missing tokens and similar setup errors."""
    pass


class TransferFailed(EngineError):
    """Raised when a token ledger reports a failed transfer."""
    pass


class MintFailed(EngineError):
    """Raised when the stable-unit ledger reports a failed mint."""
    pass


class BurnFailed(EngineError):
    """Raised when the stable-unit ledger reports a failed burn."""
    pass


class InsufficientCollateral(EngineError):
    """Raised when a requested collateral decrease exceeds the deposited balance."""
    pass


class InsufficientDebt(EngineError):
    """Raised when a requested debt decrease exceeds the minted debt."""
    pass


class HealthFactorBroken(EngineError):
    """Raised when an operation would leave an account below the minimum health factor."""
    pass


class HealthFactorOk(EngineError):
    """Raised when liquidation is attempted on a healthy account."""
    pass


class LiquidationDidNotImprove(EngineError):
    """Raised when a liquidation fails to strictly improve the target's health factor."""
    pass


class InvalidPriceFeed(EngineError):
    """Raised for stale, non-positive or incomplete oracle readings."""
    pass


class ReentrantCall(EngineError):
    """Raised when a public operation is entered while another is in flight."""
    pass


# ============================================================================
# PRICE DATA
# ============================================================================

@dataclass(frozen=True, slots=True)
class PriceRound:
    """
    A single oracle reading.

    Attributes:
        answer: Signed price in feed decimals (e.g. 2000_00000000 for $2000 at 8 decimals)
        updated_at: When the feed last updated this answer
        round_complete: False while the round is still being aggregated
        round_id: Feed-specific round identifier (informational)
    """
    answer: int
    updated_at: datetime
    round_complete: bool = True
    round_id: int = 0


# ============================================================================
# PROTOCOLS
# ============================================================================

@runtime_checkable
class PriceFeed(Protocol):
    """
    Price source for a single collateral asset, quoted in USD.

    Implementations return the latest reading known at `as_of`. Sources that
    are not time-aware are free to ignore the argument.
    """
    decimals: int

    def latest_round(self, as_of: datetime) -> PriceRound:
        """Return the latest price reading at or before as_of."""
        ...


@runtime_checkable
class TokenLedger(Protocol):
    """
    Token ledger collaborator (collateral assets and the stable unit).

    Mutating calls return True on success and False on failure; the engine
    treats False as a hard failure. burn() may also return None, which is
    taken as success. A decimals attribute, when present, must be 18.
    """
    symbol: str

    def balance_of(self, account: str) -> int:
        ...

    def total_supply(self) -> int:
        ...

    def transfer(self, sender: str, dest: str, amount: int) -> bool:
        ...

    def transfer_from(self, spender: str, source: str, dest: str, amount: int) -> bool:
        ...

    def mint(self, caller: str, dest: str, amount: int) -> bool:
        ...

    def burn(self, caller: str, amount: int) -> Optional[bool]:
        ...


# ============================================================================
# TOKEN MOVES
# ============================================================================

@dataclass(frozen=True, slots=True)
class TokenMove:
    """
    A token side effect staged by an operation, committed after all checks pass.

    Attributes:
        kind: MOVE_PULL, MOVE_PUSH, MOVE_MINT or MOVE_BURN
        token: Collateral asset id, or the stable token's symbol
        account: Counterparty of the move (unused for MOVE_BURN)
        amount: Fixed-point quantity, strictly positive
    """
    kind: str
    token: str
    account: str
    amount: int

    def __post_init__(self):
        if self.kind not in (MOVE_PULL, MOVE_PUSH, MOVE_MINT, MOVE_BURN):
            raise ValueError(f"Unknown token move kind: {self.kind}")
        if not self.token:
            raise ValueError("TokenMove token cannot be empty")
        if self.amount <= 0:
            raise ValueError(f"TokenMove amount must be positive, got {self.amount}")

    def __repr__(self) -> str:
        arrow = {
            MOVE_PULL: f"{self.account}→custody",
            MOVE_PUSH: f"custody→{self.account}",
            MOVE_MINT: f"mint→{self.account}",
            MOVE_BURN: "custody→burn",
        }[self.kind]
        return f"TokenMove({self.kind} {format_wad(self.amount)} {self.token}: {arrow})"


# ============================================================================
# EVENTS AND QUERY RESULTS
# ============================================================================

@dataclass(frozen=True, slots=True)
class EngineEvent:
    """
    Immutable audit record appended to the event log when an operation commits.

    Attributes:
        event_type: One of the EVENT_* constants
        sequence_number: Monotonic within an engine
        timestamp: Engine logical time at commit
        account: Account whose position changed
        amount: Fixed-point quantity involved
        asset: Collateral asset (None for debt events)
        counterparty: Beneficiary of redeemed collateral, or the liquidator
    """
    event_type: str
    sequence_number: int
    timestamp: datetime
    account: str
    amount: int
    asset: Optional[str] = None
    counterparty: Optional[str] = None

    def __repr__(self) -> str:
        parts = [f"#{self.sequence_number} {self.event_type} {self.account}"]
        if self.asset:
            parts.append(f"{format_wad(self.amount)} {self.asset}")
        else:
            parts.append(format_wad(self.amount))
        if self.counterparty:
            parts.append(f"→ {self.counterparty}")
        return f"EngineEvent({' '.join(parts)})"


@dataclass(frozen=True, slots=True)
class AccountInformation:
    """Debt and USD collateral value of one account, both in fixed point."""
    total_debt: int
    collateral_value: int


@dataclass(frozen=True, slots=True)
class LiquidationResult:
    """
    Amounts moved by a liquidation (or computed by a preview).

    total_seized == collateral_seized + bonus; health factors are None for
    previews, which do not evaluate them.
    """
    target: str
    liquidator: str
    asset: str
    debt_covered: int
    collateral_seized: int
    bonus: int
    health_factor_before: Optional[int] = None
    health_factor_after: Optional[int] = None
    moves: Tuple[TokenMove, ...] = field(default=(), repr=False)

    @property
    def total_seized(self) -> int:
        return self.collateral_seized + self.bonus
