"""Oracle Package

Price feed contracts that report USD prices to the protocol. Validation of
what a feed reports (freshness, sign, round consistency) lives with the
consumer in ``smart_contracts.financial.oracle_lib``.
"""

from typing import Optional

from .price_feed import PriceFeed, RoundData, EMPTY_ROUND

__version__ = "1.0.0"
__author__ = "PUSD Protocol Team"
__all__ = [
    "PriceFeed",
    "RoundData",
    "EMPTY_ROUND",
    "DEFAULT_FEED_DECIMALS",
    "create_price_feed"
]

# Chainlink USD pairs report with 8 decimals
DEFAULT_FEED_DECIMALS = 8

def create_price_feed(engine, owner: str, symbol: str, initial_price: Optional[int] = None,
                      decimals: int = DEFAULT_FEED_DECIMALS) -> str:
    """Deploy a price feed and optionally publish a first answer

    Args:
        engine: SmartContractEngine to deploy into
        owner: Address allowed to publish answers
        symbol: Asset symbol used in the feed description
        initial_price: First answer, already scaled to ``decimals``
        decimals: Feed decimals

    Returns:
        Address of the deployed feed
    """
    address, _ = engine.deploy_contract(PriceFeed, owner, [decimals, f"{symbol} / USD", owner])
    if initial_price is not None:
        receipt = engine.call_contract(address, 'update_answer', [initial_price], owner)
        if not receipt.success or not receipt.return_data:
            raise ValueError(f"Could not publish initial {symbol} price")
    return address
