"""
engine.py - Engine facade

The Engine is the single entry point for depositing collateral, minting and
burning stable units, redeeming collateral and liquidating positions.

Key responsibilities:
    - Composes PositionLedger, SolvencyEngine and LiquidationEngine
    - Executes every public operation atomically: bookkeeping and solvency
      checks first, token moves last, full rollback on any failure
    - Refuses nested entry while an operation is in flight (ReentrantCall)
    - Keeps a logical clock for oracle staleness checks
    - Always logs: every committed operation appends EngineEvents
"""

from __future__ import annotations
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Dict, Iterator, List, Mapping, Optional, Sequence, Tuple

from .core import (
    # Types
    AccountInformation, EngineEvent, LiquidationResult, PriceFeed, TokenLedger, TokenMove,
    # Constants
    DEFAULT_CUSTODY, ORACLE_TIMEOUT, PRECISION, WAD_DECIMALS,
    LIQUIDATION_THRESHOLD, LIQUIDATION_PRECISION, LIQUIDATION_BONUS, MIN_HEALTH_FACTOR,
    MOVE_PULL, MOVE_MINT, MOVE_BURN,
    EVENT_COLLATERAL_DEPOSITED, EVENT_COLLATERAL_REDEEMED,
    EVENT_DEBT_MINTED, EVENT_DEBT_BURNED, EVENT_LIQUIDATION,
    # Exceptions
    AssetConfigMismatch, InvalidConfiguration, ReentrantCall,
    # Helpers
    format_wad,
)
from .liquidation import LiquidationEngine
from .oracle import OracleAdapter
from .positions import PositionLedger
from .solvency import SolvencyEngine, calculate_health_factor
from .tokens import TokenLedgerAdapter


@dataclass
class _Operation:
    """Token moves and events staged by one public operation."""
    name: str
    moves: List[TokenMove] = field(default_factory=list)
    events: List[Tuple[str, Dict[str, Any]]] = field(default_factory=list)

    def emit(self, event_type: str, **fields: Any) -> None:
        self.events.append((event_type, fields))


class Engine:
    """
    Over-collateralized stable-unit issuance engine.

    Design Principles:
        - All-or-nothing: an operation that raises leaves positions, token
          balances and the event log exactly as they were.
        - Checks before effects: validation and health checks run before any
          token ledger is called.
        - A user is never blocked from reducing their own risk: deposits skip
          the health check entirely.

    Thread Safety:
        Not thread-safe. Nested calls (e.g. from a token callback) are
        rejected with ReentrantCall.

    Example:
        engine = Engine(["WETH"], [eth_usd], dsc, collateral_tokens={"WETH": weth})
        engine.deposit_collateral_and_mint_debt("alice", "WETH", 10 * 10**18, 100 * 10**18)
    """

    def __init__(
        self,
        collateral_assets: Sequence[str],
        price_feeds: Sequence[PriceFeed],
        stable_token: TokenLedger,
        *,
        collateral_tokens: Mapping[str, TokenLedger],
        custody: str = DEFAULT_CUSTODY,
        initial_time: Optional[datetime] = None,
        oracle_timeout: timedelta = ORACLE_TIMEOUT,
        verbose: bool = False,
    ):
        """
        Create an engine.

        Args:
            collateral_assets: Approved collateral asset ids, in order
            price_feeds: One USD price feed per asset, same order
            stable_token: Token ledger of the stable unit; custody must be
                allowed to mint on it
            collateral_tokens: Asset id -> token ledger holding that asset
            custody: Account the engine uses on every token ledger
            initial_time: Starting logical time (default: 1970-01-01)
            oracle_timeout: Maximum accepted age of a price reading
            verbose: Print a receipt for every operation

        Raises:
            AssetConfigMismatch: asset and feed lists differ in length
            InvalidConfiguration: no assets, duplicate assets, missing tokens,
                tokens whose decimals attribute is not 18
        """
        assets = list(collateral_assets)
        feeds = list(price_feeds)
        if len(assets) != len(feeds):
            raise AssetConfigMismatch(
                "collateral assets and price feeds must have equal length",
                assets=len(assets), price_feeds=len(feeds),
            )
        if not assets:
            raise InvalidConfiguration("at least one collateral asset is required")
        if stable_token is None:
            raise InvalidConfiguration("stable token is required")
        missing = [a for a in assets if a not in collateral_tokens]
        if missing:
            raise InvalidConfiguration("collateral token missing", assets=missing)
        if stable_token.symbol in assets:
            raise InvalidConfiguration(
                "stable token symbol collides with a collateral asset", symbol=stable_token.symbol,
            )
        # amounts are valued as 18-decimal fixed point
        off_scale = {
            token.symbol: token.decimals
            for token in [stable_token] + [collateral_tokens[a] for a in assets]
            if getattr(token, "decimals", WAD_DECIMALS) != WAD_DECIMALS
        }
        if off_scale:
            raise InvalidConfiguration("tokens must use 18 decimals", decimals=off_scale)

        self.custody = custody
        self.verbose = verbose
        self._current_time: datetime = initial_time or datetime(1970, 1, 1)

        self.positions = PositionLedger(assets)
        self.oracle = OracleAdapter(dict(zip(assets, feeds)), clock=lambda: self._current_time,
                                    timeout=oracle_timeout)
        self.solvency = SolvencyEngine(self.positions, self.oracle)
        self.liquidations = LiquidationEngine(self.positions, self.solvency, stable_token.symbol)

        self._stable = TokenLedgerAdapter(stable_token, custody)
        self._tokens: Dict[str, TokenLedgerAdapter] = {
            asset: TokenLedgerAdapter(collateral_tokens[asset], custody) for asset in assets
        }
        self._tokens[stable_token.symbol] = self._stable

        self.event_log: List[EngineEvent] = []
        self._next_sequence: int = 0
        self._entered: bool = False

    # ========================================================================
    # TIME MANAGEMENT
    # ========================================================================

    @property
    def current_time(self) -> datetime:
        """Current logical time of the engine."""
        return self._current_time

    def advance_time(self, new_time: datetime) -> None:
        """
        Move the logical clock forward.

        Raises:
            ValueError: If new_time is before the current time
        """
        if new_time < self._current_time:
            raise ValueError(
                f"Cannot move time backwards: {new_time} < {self._current_time}"
            )
        self._current_time = new_time

    # ========================================================================
    # EXECUTION DISCIPLINE
    # ========================================================================

    @contextmanager
    def _operation(self, name: str) -> Iterator[_Operation]:
        """
        Run one public operation atomically.

        The body mutates positions and stages token moves and events. On
        normal exit the moves are committed in order; if the body or any
        move fails, positions are restored from the snapshot, committed moves
        are reverted in reverse order and the original error propagates. Moves
        that cannot be reverted are listed on its compensation_errors.
        """
        if self._entered:
            raise ReentrantCall("engine operation already in progress", operation=name)
        self._entered = True
        snapshot = self.positions.snapshot()
        op = _Operation(name)
        try:
            yield op
            self._commit(op)
        except Exception as exc:
            self.positions.restore(snapshot)
            if self.verbose:
                print(f"✗ REJECTED {name}: {type(exc).__name__}: {exc}")
            raise
        finally:
            self._entered = False

    def _commit(self, op: _Operation) -> None:
        applied: List[TokenMove] = []
        try:
            for move in op.moves:
                self._tokens[move.token].apply(move)
                applied.append(move)
        except Exception as exc:
            failures = self._compensate(applied)
            if failures:
                exc.compensation_errors = tuple(failures)
                if self.verbose:
                    for move, error in failures:
                        print(f"✗ COMPENSATION FAILED {move!r}: {type(error).__name__}: {error}")
            raise

        events = []
        for event_type, fields in op.events:
            events.append(EngineEvent(
                event_type=event_type,
                sequence_number=self._next_sequence,
                timestamp=self._current_time,
                **fields,
            ))
            self._next_sequence += 1
        self.event_log.extend(events)

        if self.verbose:
            self._print_receipt(op, events)

    def _compensate(self, applied: List[TokenMove]) -> List[Tuple[TokenMove, Exception]]:
        """
        Revert applied moves in reverse order.

        Every compensation is attempted even when an earlier one fails; the
        failures are returned, never raised, so the caller's error stays the
        one that propagates.
        """
        failures: List[Tuple[TokenMove, Exception]] = []
        for move in reversed(applied):
            try:
                self._tokens[move.token].revert(move)
            except Exception as error:
                failures.append((move, error))
        return failures

    def _print_receipt(self, op: _Operation, events: List[EngineEvent]) -> None:
        w = 80
        bar = "─" * w

        def pad(text: str) -> str:
            if len(text) > w:
                return text[:w-3] + "..."
            return text + " " * (w - len(text))

        lines = [
            f"┌{bar}┐",
            f"│{pad(' ' + op.name + ' @ ' + str(self._current_time))}│",
            f"├{bar}┤",
        ]
        for move in op.moves:
            lines.append(f"│{pad('   ' + repr(move))}│")
        for event in events:
            lines.append(f"│{pad('   ' + repr(event))}│")
        lines.append(f"├{bar}┤")
        lines.append(f"│{pad(' ✓ APPLIED')}│")
        lines.append(f"└{bar}┘")
        print("\n".join(lines))

    # ========================================================================
    # BUILDING BLOCKS (run inside an operation)
    # ========================================================================

    def _deposit(self, op: _Operation, account: str, asset: str, amount: int) -> None:
        self.positions.deposit(account, asset, amount)
        op.moves.append(TokenMove(kind=MOVE_PULL, token=asset, account=account, amount=amount))
        op.emit(EVENT_COLLATERAL_DEPOSITED, account=account, asset=asset, amount=amount)

    def _mint(self, op: _Operation, account: str, amount: int) -> None:
        self.positions.increase_debt(account, amount)
        self.solvency.assert_healthy(account)
        op.moves.append(TokenMove(kind=MOVE_MINT, token=self._stable.symbol, account=account, amount=amount))
        op.emit(EVENT_DEBT_MINTED, account=account, amount=amount)

    def _burn(self, op: _Operation, amount: int, on_behalf_of: str, payer: str) -> None:
        self.positions.decrease_debt(on_behalf_of, amount)
        symbol = self._stable.symbol
        op.moves.append(TokenMove(kind=MOVE_PULL, token=symbol, account=payer, amount=amount))
        op.moves.append(TokenMove(kind=MOVE_BURN, token=symbol, account=payer, amount=amount))
        op.emit(EVENT_DEBT_BURNED, account=on_behalf_of, amount=amount,
                counterparty=payer if payer != on_behalf_of else None)

    def _redeem(self, op: _Operation, asset: str, amount: int, source: str, beneficiary: str) -> None:
        op.moves.append(self.positions.withdraw(source, asset, amount, beneficiary))
        op.emit(EVENT_COLLATERAL_REDEEMED, account=source, asset=asset, amount=amount,
                counterparty=beneficiary)

    # ========================================================================
    # PUBLIC OPERATIONS
    # ========================================================================

    def deposit_collateral(self, account: str, asset: str, amount: int) -> None:
        """
        Lock amount of asset as collateral for account.

        No health check: a deposit can only improve a position.

        Raises:
            InvalidAmount, AssetNotAllowed, TransferFailed
        """
        with self._operation("deposit_collateral") as op:
            self._deposit(op, account, asset, amount)

    def mint_debt(self, account: str, amount: int) -> None:
        """
        Mint amount stable units to account against its collateral.

        The health check runs before the token ledger is asked to mint.

        Raises:
            InvalidAmount, HealthFactorBroken, InvalidPriceFeed, MintFailed
        """
        with self._operation("mint_debt") as op:
            self._mint(op, account, amount)

    def deposit_collateral_and_mint_debt(
        self, account: str, asset: str, collateral_amount: int, debt_amount: int,
    ) -> None:
        """Deposit collateral and mint against it in one step."""
        with self._operation("deposit_collateral_and_mint_debt") as op:
            self._deposit(op, account, asset, collateral_amount)
            self._mint(op, account, debt_amount)

    def burn_debt(self, account: str, amount: int) -> None:
        """
        Repay amount of account's debt with its own stable units.

        Raises:
            InvalidAmount, InsufficientDebt, TransferFailed, BurnFailed
        """
        with self._operation("burn_debt") as op:
            self._burn(op, amount, on_behalf_of=account, payer=account)
            self.solvency.assert_healthy(account)

    def redeem_collateral(self, account: str, asset: str, amount: int) -> None:
        """
        Withdraw amount of asset back to account.

        Raises:
            InvalidAmount, AssetNotAllowed, InsufficientCollateral,
            HealthFactorBroken, InvalidPriceFeed, TransferFailed
        """
        with self._operation("redeem_collateral") as op:
            self._redeem(op, asset, amount, source=account, beneficiary=account)
            self.solvency.assert_healthy(account)

    def redeem_collateral_for_debt(
        self, account: str, asset: str, collateral_amount: int, debt_amount: int,
    ) -> None:
        """Burn debt_amount stable units and withdraw collateral_amount in one step."""
        with self._operation("redeem_collateral_for_debt") as op:
            self._burn(op, debt_amount, on_behalf_of=account, payer=account)
            self._redeem(op, asset, collateral_amount, source=account, beneficiary=account)
            self.solvency.assert_healthy(account)

    def liquidate(self, liquidator: str, target: str, asset: str, debt_to_cover: int) -> LiquidationResult:
        """
        Repay debt_to_cover of target's debt from liquidator's stable units
        and transfer the equivalent asset collateral plus the bonus to
        liquidator.

        Returns:
            LiquidationResult with the amounts moved and both health factors.

        Raises:
            HealthFactorOk, InvalidAmount, InsufficientCollateral,
            InsufficientDebt, LiquidationDidNotImprove, HealthFactorBroken,
            InvalidPriceFeed, TransferFailed, BurnFailed
        """
        with self._operation("liquidate") as op:
            result = self.liquidations.liquidate(liquidator, target, asset, debt_to_cover)
            op.moves.extend(result.moves)
            op.emit(EVENT_COLLATERAL_REDEEMED, account=target, asset=asset,
                    amount=result.total_seized, counterparty=liquidator)
            op.emit(EVENT_DEBT_BURNED, account=target, amount=debt_to_cover, counterparty=liquidator)
            op.emit(EVENT_LIQUIDATION, account=target, asset=asset, amount=debt_to_cover,
                    counterparty=liquidator)
        return result

    # ========================================================================
    # QUERIES (read-only)
    # ========================================================================

    def get_account_information(self, account: str) -> AccountInformation:
        return self.solvency.account_information(account)

    def get_account_collateral_value(self, account: str) -> int:
        return self.solvency.collateral_value(account)

    def get_collateral_balance(self, account: str, asset: str) -> int:
        return self.positions.get_collateral(account, asset)

    def get_debt(self, account: str) -> int:
        return self.positions.get_debt(account)

    def health_factor(self, account: str) -> int:
        return self.solvency.health_factor(account)

    def calculate_health_factor(self, total_debt: int, collateral_value: int) -> int:
        return calculate_health_factor(total_debt, collateral_value)

    def get_usd_value(self, asset: str, amount: int) -> int:
        return self.solvency.get_usd_value(asset, amount)

    def get_token_amount_from_usd(self, asset: str, usd_amount: int) -> int:
        return self.solvency.get_token_amount_from_usd(asset, usd_amount)

    def preview_liquidation(self, target: str, asset: str, debt_to_cover: int,
                            liquidator: str = "") -> LiquidationResult:
        """Collateral and bonus a liquidation of debt_to_cover would transfer."""
        return self.liquidations.preview(target, liquidator, asset, debt_to_cover)

    def get_collateral_assets(self) -> Tuple[str, ...]:
        return self.positions.collateral_assets

    def get_price_feed(self, asset: str) -> PriceFeed:
        return self.oracle.feed_for(asset)

    def get_stable_token(self) -> TokenLedger:
        return self._stable.token

    def get_collateral_token(self, asset: str) -> TokenLedger:
        self.positions.require_allowed(asset)
        return self._tokens[asset].token

    def get_precision(self) -> int:
        return PRECISION

    def get_liquidation_threshold(self) -> int:
        return LIQUIDATION_THRESHOLD

    def get_liquidation_precision(self) -> int:
        return LIQUIDATION_PRECISION

    def get_liquidation_bonus(self) -> int:
        return LIQUIDATION_BONUS

    def get_min_health_factor(self) -> int:
        return MIN_HEALTH_FACTOR

    def total_debt(self) -> int:
        return self.positions.total_debt()

    def total_collateral(self, asset: str) -> int:
        return self.positions.total_collateral(asset)

    def verify_backing(self) -> Dict[str, Any]:
        """
        Check that token ledgers agree with the position ledger.

        For every collateral asset, custody must hold exactly the sum of all
        deposits; the stable unit's total supply must equal total debt
        (assuming the engine is the only minter).

        Returns:
            Dict with keys:
            - 'valid': bool - True if nothing disagrees
            - 'collateral': Dict[str, int] - custody balance per asset
            - 'stable_supply': int
            - 'discrepancies': List[Dict] - unit, expected, actual
        """
        discrepancies = []
        custody_balances = {}
        for asset in self.positions.collateral_assets:
            expected = self.positions.total_collateral(asset)
            actual = self._tokens[asset].balance_of(self.custody)
            custody_balances[asset] = actual
            if actual != expected:
                discrepancies.append({'unit': asset, 'expected': expected, 'actual': actual})

        supply = self._stable.token.total_supply()
        if supply != self.positions.total_debt():
            discrepancies.append({
                'unit': self._stable.symbol,
                'expected': self.positions.total_debt(),
                'actual': supply,
            })

        return {
            'valid': len(discrepancies) == 0,
            'collateral': custody_balances,
            'stable_supply': supply,
            'discrepancies': discrepancies,
        }

    def __repr__(self):
        return (f"Engine({len(self.positions.collateral_assets)} assets, "
                f"stable={self._stable.symbol}, debt={format_wad(self.total_debt())})")
