"""
oracle.py - Price feeds and the oracle adapter

Provides the pricing side of the engine:

- OracleAdapter: validates raw feed readings and normalizes them to the
  engine's 18-decimal scale. The only place the engine reads prices.
- StaticPriceFeed: mutable single-answer feed (deployments and tests)
- TimeSeriesPriceFeed: feed backed by a history of (time, answer) points

Every price is a USD price for one whole unit of the collateral asset.
"""

from __future__ import annotations
from bisect import bisect_right
from datetime import datetime, timedelta
from typing import Callable, Dict, List, Mapping, Optional, Tuple

from .core import (
    PriceFeed, PriceRound,
    AssetNotAllowed, InvalidPriceFeed,
    DEFAULT_FEED_DECIMALS, ORACLE_TIMEOUT, WAD_DECIMALS,
)


# Returned by feeds that have no observation yet; always rejected by the adapter.
_EPOCH = datetime(1970, 1, 1)


class OracleAdapter:
    """
    Validating front-end over one PriceFeed per collateral asset.

    A reading is rejected with InvalidPriceFeed when:
        - the answer is zero or negative
        - the round is not complete
        - current_time - updated_at exceeds the staleness bound

    Readings are never cached: each call queries the feed once.
    """

    def __init__(
        self,
        feeds: Mapping[str, PriceFeed],
        clock: Callable[[], datetime],
        timeout: timedelta = ORACLE_TIMEOUT,
    ):
        """
        Args:
            feeds: Collateral asset -> price feed
            clock: Returns the engine's current logical time
            timeout: Maximum accepted age of a reading
        """
        if timeout <= timedelta(0):
            raise ValueError(f"Oracle timeout must be positive, got {timeout}")
        self._feeds: Dict[str, PriceFeed] = dict(feeds)
        self._clock = clock
        self.timeout = timeout

    def feed_for(self, asset: str) -> PriceFeed:
        if asset not in self._feeds:
            raise AssetNotAllowed("asset has no registered price feed", asset=asset)
        return self._feeds[asset]

    def latest_round(self, asset: str) -> PriceRound:
        """Return the feed's latest round after validating it."""
        feed = self.feed_for(asset)
        now = self._clock()
        reading = feed.latest_round(now)

        if not reading.round_complete:
            raise InvalidPriceFeed("round not complete", asset=asset, round_id=reading.round_id)
        if reading.answer <= 0:
            raise InvalidPriceFeed("non-positive answer", asset=asset, answer=reading.answer)
        age = now - reading.updated_at
        if age > self.timeout:
            raise InvalidPriceFeed(
                "stale price", asset=asset, updated_at=reading.updated_at, age=age,
            )
        return reading

    def price(self, asset: str) -> int:
        """
        Return the USD price of one unit of asset, in 18-decimal fixed point.

        Example:
            A feed with 8 decimals answering 2000_00000000 yields 2000 * 10**18.
        """
        reading = self.latest_round(asset)
        decimals = self.feed_for(asset).decimals
        if decimals <= WAD_DECIMALS:
            return reading.answer * 10 ** (WAD_DECIMALS - decimals)
        normalized = reading.answer // 10 ** (decimals - WAD_DECIMALS)
        if normalized <= 0:
            raise InvalidPriceFeed("answer rounds to zero", asset=asset, answer=reading.answer)
        return normalized


class StaticPriceFeed:
    """
    Price feed with a single current answer, updated explicitly.

    The as_of argument is ignored; staleness is driven by updated_at.
    """

    def __init__(
        self,
        answer: int,
        decimals: int = DEFAULT_FEED_DECIMALS,
        updated_at: Optional[datetime] = None,
    ):
        """
        Args:
            answer: Initial answer in feed decimals
            decimals: Number of decimals in answers
            updated_at: Time of the initial answer (default: 1970-01-01)
        """
        if decimals < 0:
            raise ValueError(f"decimals must be non-negative, got {decimals}")
        self.decimals = decimals
        self._round = PriceRound(answer=answer, updated_at=updated_at or _EPOCH, round_id=1)

    def latest_round(self, as_of: datetime) -> PriceRound:
        return self._round

    @property
    def answer(self) -> int:
        return self._round.answer

    def update_answer(self, answer: int, updated_at: Optional[datetime] = None) -> None:
        """Publish a new complete round (updated_at defaults to the previous update time)."""
        self._round = PriceRound(
            answer=answer,
            updated_at=updated_at or self._round.updated_at,
            round_complete=True,
            round_id=self._round.round_id + 1,
        )

    def update_round(self, round_: PriceRound) -> None:
        """Replace the current round wholesale (incomplete or stale rounds included)."""
        self._round = round_

    def __repr__(self):
        return f"StaticPriceFeed(answer={self._round.answer}, decimals={self.decimals})"


class TimeSeriesPriceFeed:
    """
    Price feed backed by a history of observations.

    latest_round(as_of) returns the most recent observation at or before
    as_of, with updated_at set to that observation's time. Before the first
    observation the feed answers 0, which the adapter rejects.
    """

    def __init__(
        self,
        history: Optional[List[Tuple[datetime, int]]] = None,
        decimals: int = DEFAULT_FEED_DECIMALS,
    ):
        """
        Args:
            history: Optional list of (timestamp, answer) points, any order
            decimals: Number of decimals in answers

        Example:
            feed = TimeSeriesPriceFeed([(t0, 2000_00000000), (t1, 1800_00000000)])
        """
        self.decimals = decimals
        self.history: List[Tuple[datetime, int]] = sorted(history or [], key=lambda x: x[0])

    def add_answer(self, timestamp: datetime, answer: int) -> None:
        """Add an observation, keeping the history sorted by time."""
        self.history.append((timestamp, answer))
        self.history.sort(key=lambda x: x[0])

    def latest_round(self, as_of: datetime) -> PriceRound:
        timestamps = [ts for ts, _ in self.history]
        idx = bisect_right(timestamps, as_of)
        if idx == 0:
            return PriceRound(answer=0, updated_at=_EPOCH, round_complete=False)
        ts, answer = self.history[idx - 1]
        return PriceRound(answer=answer, updated_at=ts, round_complete=True, round_id=idx)

    def __repr__(self):
        return f"TimeSeriesPriceFeed({len(self.history)} observations, decimals={self.decimals})"
