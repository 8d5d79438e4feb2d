"""
fake_feed.py - Test doubles for price feeds

Provides feeds that record or misbehave, for testing the oracle adapter
and the engine's fail-closed behavior without a real feed.
"""

from __future__ import annotations
from datetime import datetime
from typing import List

from stablecoin import PriceRound


class CountingFeed:
    """
    Feed that answers a fixed round and records every query time.

    Example:
        feed = CountingFeed(2000_00000000, updated_at=t0)
        engine.health_factor("alice")
        assert len(feed.queries) == 1
    """

    def __init__(self, answer: int, updated_at: datetime, decimals: int = 8,
                 round_complete: bool = True):
        self.decimals = decimals
        self.round = PriceRound(answer=answer, updated_at=updated_at,
                                round_complete=round_complete, round_id=1)
        self.queries: List[datetime] = []

    def latest_round(self, as_of: datetime) -> PriceRound:
        self.queries.append(as_of)
        return self.round


class ExplodingFeed:
    """Feed whose every query raises, to prove a code path never reads prices."""

    decimals = 8

    def latest_round(self, as_of: datetime) -> PriceRound:
        raise AssertionError("price feed must not be queried here")
