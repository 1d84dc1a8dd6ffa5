"""Price validation and fixed-point conversion.

All decimal normalization between asset units, feed prices and 18-decimal USD
values happens here. Every division rounds down, in both directions, so
converting an amount to USD and back can never return more than it started
with.
"""

from enum import Enum
from typing import Any

from .constants import PRECISION, PRECISION_DECIMALS, STALENESS_TIMEOUT
from .errors import InvalidPrice


class DataQuality(Enum):
    HIGH = "HIGH"
    STALE = "STALE"
    INVALID = "INVALID"

def normalize_amount(amount: int, decimals: int) -> int:
    """Scale an amount in native units up to 18 decimals"""
    return amount * 10**(PRECISION_DECIMALS - decimals)

def denormalize_amount(amount: int, decimals: int) -> int:
    """Scale an 18-decimal amount down to native units, rounding down"""
    return amount // 10**(PRECISION_DECIMALS - decimals)

def scale_price(price: int, feed_decimals: int) -> int:
    """Scale a feed price up to 18 decimals"""
    return price * 10**(PRECISION_DECIMALS - feed_decimals)

def usd_value(amount: int, decimals: int, price: int, feed_decimals: int) -> int:
    """USD value (18 decimals) of ``amount`` native units"""
    return normalize_amount(amount, decimals) * scale_price(price, feed_decimals) // PRECISION

def token_amount(usd_amount: int, decimals: int, price: int, feed_decimals: int) -> int:
    """Native units worth ``usd_amount`` (18 decimals)"""
    return denormalize_amount(usd_amount * PRECISION // scale_price(price, feed_decimals), decimals)

def assess_round(round_data: Any, now: int, timeout: int = STALENESS_TIMEOUT) -> DataQuality:
    """Grade a feed round against the current block time"""
    if round_data.answer <= 0 or round_data.updated_at == 0:
        return DataQuality.INVALID
    if round_data.answered_in_round < round_data.round_id:
        return DataQuality.STALE
    if now - round_data.updated_at > timeout:
        return DataQuality.STALE
    return DataQuality.HIGH

class PriceOracleAdapter:
    """Reads price feeds on behalf of a contract and refuses untrusted rounds.

    The adapter calls feeds through its host contract, so reads happen inside
    the host's transaction and use the block time of that transaction.
    """

    def __init__(self, host, timeout: int = STALENESS_TIMEOUT):
        self.host = host
        self.timeout = timeout

    def price(self, feed: str) -> int:
        """Latest validated price, in the feed's own decimals"""
        round_data = self.host._call(feed, 'latest_round_data')
        quality = assess_round(round_data, self.host._now(), self.timeout)
        if quality is not DataQuality.HIGH:
            raise InvalidPrice(feed, quality.value)
        return round_data.answer

    def feed_decimals(self, feed: str) -> int:
        decimals = self.host._call(feed, 'get_decimals')
        if not 0 <= decimals <= PRECISION_DECIMALS:
            raise InvalidPrice(feed, DataQuality.INVALID.value)
        return decimals

    def usd_value(self, feed: str, amount: int, decimals: int) -> int:
        return usd_value(amount, decimals, self.price(feed), self.feed_decimals(feed))

    def token_amount(self, feed: str, usd_amount: int, decimals: int) -> int:
        return token_amount(usd_amount, decimals, self.price(feed), self.feed_decimals(feed))
