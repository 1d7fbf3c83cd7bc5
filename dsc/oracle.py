"""
oracle.py - Price normalisation and USD conversion

PriceOracleAdapter turns raw feed rounds into a canonical 18-decimal USD price
and converts between collateral amounts and USD values.

Formulas:
    normalized_price = answer * 10**(18 - decimals)
    usd_value        = amount * normalized_price // PRECISION
    token_amount     = usd_amount * PRECISION // normalized_price

Prices are read from the feed on every call and never cached: a stale price
directly affects solvency decisions.
"""

from __future__ import annotations
from datetime import datetime, timedelta, timezone
import logging
from typing import Callable, Dict, Mapping, Optional

from .core import (
    PRECISION, ORACLE_TIMEOUT, USD_DECIMALS,
    Address, Amount, FeedRound, PriceFeed,
    PriceUnavailable, StalePrice, UnsupportedToken,
)

logger = logging.getLogger(__name__)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def normalize_price(answer: int, decimals: int) -> int:
    """
    Scale a raw feed answer to 18 decimals.

    Feeds with more than 18 decimals are scaled down with a single floor
    division.
    """
    if decimals <= USD_DECIMALS:
        return answer * 10 ** (USD_DECIMALS - decimals)
    return answer // 10 ** (decimals - USD_DECIMALS)


def stale_check_latest_price(
    feed: PriceFeed,
    token: Address,
    now: datetime,
    timeout: timedelta = ORACLE_TIMEOUT,
) -> FeedRound:
    """
    Read the feed and reject unusable rounds.

    Args:
        feed: Price feed to read
        token: Collateral token the feed prices (for error reporting)
        now: Current time
        timeout: Maximum allowed round age

    Returns:
        The latest FeedRound

    Raises:
        PriceUnavailable: If the answer is non-positive
        StalePrice: If the round is older than `timeout`
    """
    round_ = feed.latest_price()
    if round_.answer <= 0:
        logger.warning("Non-positive price from %s for %s: %s", feed.address, token, round_.answer)
        raise PriceUnavailable(token, round_.answer)
    age = now - round_.updated_at
    if age > timeout:
        logger.warning("Stale price from %s for %s: age %s > %s", feed.address, token, age, timeout)
        raise StalePrice(token, round_.updated_at, age)
    return round_


class PriceOracleAdapter:
    """
    Converts collateral amounts to USD and back using registered price feeds.

    The token -> feed mapping is fixed at construction.
    """

    def __init__(
        self,
        feeds: Mapping[Address, PriceFeed],
        timeout: timedelta = ORACLE_TIMEOUT,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        """
        Args:
            feeds: Mapping from collateral token address to its price feed
            timeout: Maximum allowed round age
            clock: Source of the current time (default: UTC wall clock)
        """
        self._feeds: Dict[Address, PriceFeed] = dict(feeds)
        self.timeout = timeout
        self._clock = clock or _utc_now

    def price_feed(self, token: Address) -> PriceFeed:
        """
        Return the feed registered for a token.

        Raises:
            UnsupportedToken: If the token has no registered feed
        """
        feed = self._feeds.get(token)
        if feed is None:
            raise UnsupportedToken(token)
        return feed

    def normalized_price(self, token: Address) -> int:
        """Latest usable price of one whole token unit, 18-decimal USD."""
        round_ = stale_check_latest_price(
            self.price_feed(token), token, self._clock(), self.timeout
        )
        price = normalize_price(round_.answer, round_.decimals)
        if price <= 0:
            raise PriceUnavailable(token, round_.answer)
        return price

    def usd_value(self, token: Address, amount: Amount) -> Amount:
        """
        Convert a raw collateral amount to 18-decimal USD.

        Example:
            # ETH at $2000 (8-decimal feed), 15 ETH
            adapter.usd_value("weth", 15 * 10**18)  # 30_000 * 10**18
        """
        return amount * self.normalized_price(token) // PRECISION

    def amount_from_usd_value(self, token: Address, usd_amount: Amount) -> Amount:
        """Convert an 18-decimal USD amount to a raw collateral amount (truncating)."""
        return usd_amount * PRECISION // self.normalized_price(token)
