"""
feeds.py - In-memory price feeds

Reference implementations of the PriceFeed protocol, used in tests and
simulations in place of an external oracle network.

Classes:
- StaticPriceFeed: a single answer that is updated explicitly
- TimeSeriesPriceFeed: a price path; the latest round at or before "now"

Answers are raw signed ints in the feed's own decimals (8 for USD pairs by
default). Normalisation to 18 decimals is the adapter's job, not the feed's.
"""

from __future__ import annotations
from bisect import bisect_right
from datetime import datetime, timezone
from typing import Callable, List, Optional, Tuple

from .core import Address, FeedRound


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class StaticPriceFeed:
    """
    Price feed with a single current answer.

    Every update stamps the round with the feed's clock, so a feed that is
    never updated eventually turns stale for the adapter.
    """

    def __init__(
        self,
        address: Address,
        answer: int,
        decimals: int = 8,
        clock: Optional[Callable[[], datetime]] = None,
        updated_at: Optional[datetime] = None,
    ):
        """
        Args:
            address: Feed identifier
            answer: Initial raw price
            decimals: Decimals of `answer`
            clock: Source of the current time (default: UTC wall clock)
            updated_at: Timestamp of the initial round (default: clock())
        """
        self.address = address
        self.decimals = decimals
        self._clock = clock or _utc_now
        self._round = FeedRound(answer, updated_at or self._clock(), decimals)

    def latest_price(self) -> FeedRound:
        return self._round

    def update_answer(self, answer: int, updated_at: Optional[datetime] = None) -> None:
        """Publish a new round."""
        self._round = FeedRound(answer, updated_at or self._clock(), self.decimals)

    def __repr__(self):
        return f"StaticPriceFeed({self.address}, answer={self._round.answer}, decimals={self.decimals})"


class TimeSeriesPriceFeed:
    """
    Price feed replaying a time-ordered price path.

    latest_price() returns the most recent round at or before the clock's
    current time. Useful for driving a scenario through a sequence of price
    moves with a logical clock.

    Example:
        feed = TimeSeriesPriceFeed("eth_usd", [(t0, 2000_00000000), (t1, 1500_00000000)],
                                   clock=lambda: now)
    """

    def __init__(
        self,
        address: Address,
        path: Optional[List[Tuple[datetime, int]]] = None,
        decimals: int = 8,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.address = address
        self.decimals = decimals
        self._clock = clock or _utc_now
        self.history: List[Tuple[datetime, int]] = sorted(path or [], key=lambda x: x[0])

    def add_price(self, timestamp: datetime, answer: int) -> None:
        """Add an observation, keeping the path in chronological order."""
        self.history.append((timestamp, answer))
        self.history.sort(key=lambda x: x[0])

    def latest_price(self) -> FeedRound:
        """
        Return the latest round at or before the current time.

        A feed with no observation yet reports a zero answer, which the
        adapter rejects as unavailable.
        """
        now = self._clock()
        timestamps = [ts for ts, _ in self.history]
        idx = bisect_right(timestamps, now)
        if idx == 0:
            return FeedRound(0, now, self.decimals)
        updated_at, answer = self.history[idx - 1]
        return FeedRound(answer, updated_at, self.decimals)

    def __repr__(self):
        return f"TimeSeriesPriceFeed({self.address}, {len(self.history)} observations, decimals={self.decimals})"
