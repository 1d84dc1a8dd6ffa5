"""Financial Smart Contracts Module

This module contains the PUSD protocol contracts:

- PUSD token (ERC-20 compatible, minted and burned by the controller)
- Controller holding collateral positions and enforcing the health factor
- Liquidation of unhealthy positions
- Flash mints of PUSD and flash loans of pooled collateral

All contracts run on top of the smart contract engine.
"""

from typing import Dict, List, Any, Optional
from dataclasses import dataclass, field

from .constants import (
    PRECISION,
    MAX_UINT256,
    LIQUIDATION_BONUS,
    LIQUIDATION_PRECISION,
    MAX_FLASH_FEE_RATE,
    STALENESS_TIMEOUT
)
from .errors import ProtocolError
from .token import ERC20Token, PUSDToken, TokenInfo
from .collateral import CollateralAsset, CollateralRegistry
from .oracle_lib import DataQuality, PriceOracleAdapter, usd_value, token_amount
from .transfers import NATIVE_ASSET, TokenTransferHelper, is_native
from .flash import FlashConfig, FlashOperations, FlashOpKind, FlashOpState, FlashReceiver
from .controller import (
    PUSDController,
    RiskParameters,
    FULL_LIQUIDATION_PARAMS,
    PARTIAL_LIQUIDATION_PARAMS,
    calculate_health_factor
)

__all__ = [
    # Tokens
    'ERC20Token',
    'PUSDToken',
    'TokenInfo',

    # Controller
    'PUSDController',
    'RiskParameters',
    'FULL_LIQUIDATION_PARAMS',
    'PARTIAL_LIQUIDATION_PARAMS',
    'calculate_health_factor',
    'CollateralAsset',
    'CollateralRegistry',

    # Prices and transfers
    'DataQuality',
    'PriceOracleAdapter',
    'usd_value',
    'token_amount',
    'NATIVE_ASSET',
    'TokenTransferHelper',
    'is_native',

    # Flash operations
    'FlashConfig',
    'FlashOperations',
    'FlashOpKind',
    'FlashOpState',
    'FlashReceiver',

    # Errors
    'ProtocolError',

    # Deployment
    'PUSDSystem',
    'RISK_VARIANTS',
    'create_pusd_system',

    # Constants
    'PRECISION',
    'MAX_UINT256',
    'LIQUIDATION_BONUS',
    'LIQUIDATION_PRECISION',
    'MAX_FLASH_FEE_RATE',
    'STALENESS_TIMEOUT'
]

__version__ = '1.0.0'
__author__ = 'PUSD Protocol Team'

RISK_VARIANTS = {
    'full': FULL_LIQUIDATION_PARAMS,
    'partial': PARTIAL_LIQUIDATION_PARAMS
}

@dataclass
class PUSDSystem:
    """Addresses of a deployed PUSD protocol"""
    engine: Any
    admin: str
    pusd: str
    controller: str
    collateral: Dict[str, str] = field(default_factory=dict)  # symbol -> asset
    price_feeds: Dict[str, str] = field(default_factory=dict)  # symbol -> feed

    def asset(self, symbol: str) -> str:
        return self.collateral[symbol]

    def symbol_of(self, asset: str) -> Optional[str]:
        for symbol, address in self.collateral.items():
            if address == asset:
                return symbol
        return None

def create_pusd_system(engine, admin: str, collateral: List[Dict[str, Any]],
                       variant: str = 'full', fee_recipient: Optional[str] = None,
                       fee_rate: int = 0) -> PUSDSystem:
    """Deploy PUSD, collateral price feeds and the controller

    Args:
        engine: SmartContractEngine to deploy into
        admin: Privileged role; also owns the price feeds and collateral tokens
        collateral: One entry per asset with ``symbol``, ``price`` (feed units),
            optional ``decimals`` (default 18), ``feed_decimals`` (default 8)
            and ``native`` (use the chain's native asset instead of a token)
        variant: 'full' or 'partial' liquidation
        fee_recipient: Flash fee recipient, defaults to the admin
        fee_rate: Flash fee in parts per 1e18

    Returns:
        PUSDSystem with all deployed addresses
    """
    from oracles import create_price_feed, DEFAULT_FEED_DECIMALS

    if variant not in RISK_VARIANTS:
        raise ValueError(f"Unknown liquidation variant: {variant}")

    system = PUSDSystem(engine=engine, admin=admin, pusd='', controller='')
    for entry in collateral:
        symbol = entry['symbol']
        if entry.get('native'):
            asset = NATIVE_ASSET
        else:
            asset, _ = engine.deploy_contract(
                ERC20Token, admin, [f"{symbol} Token", symbol, entry.get('decimals', 18), 0, admin]
            )
        system.collateral[symbol] = asset
        system.price_feeds[symbol] = create_price_feed(
            engine, admin, symbol, entry['price'], entry.get('feed_decimals', DEFAULT_FEED_DECIMALS)
        )

    system.pusd, _ = engine.deploy_contract(PUSDToken, admin, [admin])
    system.controller, _ = engine.deploy_contract(PUSDController, admin, [
        list(system.collateral.values()),
        list(system.price_feeds.values()),
        system.pusd,
        admin,
        fee_recipient or admin,
        RISK_VARIANTS[variant],
        fee_rate
    ])

    receipt = engine.call_contract(system.pusd, 'transfer_ownership', [system.controller], admin)
    if not receipt.success or not receipt.return_data:
        raise ProtocolError("Could not hand PUSD ownership to the controller")

    return system
