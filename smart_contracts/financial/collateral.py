"""Collateral allow-list"""

from typing import Callable, Dict, List
from dataclasses import dataclass

from .errors import AddressZero, AlreadyAllowed, ArrayMismatch, InvalidDecimals, NotAllowedCollateral

@dataclass(frozen=True)
class CollateralAsset:
    """An accepted collateral asset bound to its USD price feed"""
    asset: str
    price_feed: str
    decimals: int

class CollateralRegistry:
    """Append-only registry of collateral assets.

    Iteration order is registration order, which keeps collateral valuation
    summed in a deterministic order. Entries are never removed or rebound.
    Decimals are read through ``decimals_of`` only once an asset has passed
    the address and duplicate checks.
    """

    MAX_DECIMALS = 18

    def __init__(self):
        self._entries: Dict[str, CollateralAsset] = {}
        self._order: List[str] = []

    def allow(self, asset: str, price_feed: str, decimals_of: Callable[[str], int]) -> CollateralAsset:
        if not asset or not price_feed:
            raise AddressZero("collateral asset and price feed are required")
        if asset in self._entries:
            raise AlreadyAllowed(asset)

        decimals = decimals_of(asset)
        if not 0 <= decimals <= self.MAX_DECIMALS:
            raise InvalidDecimals(f"{asset} reports {decimals} decimals")

        entry = CollateralAsset(asset=asset, price_feed=price_feed, decimals=decimals)
        self._entries[asset] = entry
        self._order.append(asset)
        return entry

    def allow_many(self, assets: List[str], price_feeds: List[str],
                   decimals_of: Callable[[str], int]) -> List[CollateralAsset]:
        if len(assets) != len(price_feeds):
            raise ArrayMismatch(f"{len(assets)} assets, {len(price_feeds)} price feeds")
        return [self.allow(asset, feed, decimals_of) for asset, feed in zip(assets, price_feeds)]

    def is_allowed(self, asset: str) -> bool:
        return asset in self._entries

    def get(self, asset: str) -> CollateralAsset:
        entry = self._entries.get(asset)
        if entry is None:
            raise NotAllowedCollateral(asset)
        return entry

    def price_feed(self, asset: str) -> str:
        return self.get(asset).price_feed

    def decimals(self, asset: str) -> int:
        return self.get(asset).decimals

    def list(self) -> List[str]:
        return list(self._order)

    def entries(self) -> List[CollateralAsset]:
        return [self._entries[asset] for asset in self._order]
