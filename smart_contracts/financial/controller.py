"""PUSD controller.

Users lock allowed collateral and mint PUSD against it. Every mint and
withdrawal must leave the position at or above the minimum health factor;
positions that fall below it can be liquidated by anyone who repays part of
the debt in exchange for the collateral plus a bonus.
"""

from typing import Dict, List, Any, Optional, Tuple
from dataclasses import dataclass, asdict
import logging

from ..engine import SmartContract
from .collateral import CollateralAsset, CollateralRegistry
from .constants import (
    CLOSE_FACTOR, FULL_LIQUIDATION_MIN_HEALTH_FACTOR, LIQUIDATION_BONUS, LIQUIDATION_FRACTION,
    LIQUIDATION_PRECISION, MAX_UINT256, PARTIAL_LIQUIDATION_MIN_HEALTH_FACTOR, PRECISION
)
from .errors import (
    AddressZero, ArithmeticUnderflow, BelowMinHealthFactor,
    InsufficientCollateralBalance, InvalidAmount, InvalidLiquidation, MintFailed,
    TransferFailed, Unauthorized
)
from .flash import FlashOperations
from .oracle_lib import PriceOracleAdapter
from .transfers import TokenTransferHelper, is_native

logger = logging.getLogger(__name__)

@dataclass(frozen=True)
class RiskParameters:
    """Solvency thresholds of a controller"""
    min_health_factor: int
    liquidation_bonus: int = LIQUIDATION_BONUS  # percent of seized collateral
    close_factor: Optional[int] = None  # set only when partial liquidation is enabled
    liquidation_fraction: int = LIQUIDATION_FRACTION

    @property
    def partial_liquidation(self) -> bool:
        return self.close_factor is not None

FULL_LIQUIDATION_PARAMS = RiskParameters(min_health_factor=FULL_LIQUIDATION_MIN_HEALTH_FACTOR)
PARTIAL_LIQUIDATION_PARAMS = RiskParameters(
    min_health_factor=PARTIAL_LIQUIDATION_MIN_HEALTH_FACTOR,
    close_factor=CLOSE_FACTOR
)

def calculate_health_factor(total_pusd_minted: int, collateral_value_usd: int) -> int:
    if total_pusd_minted == 0:
        return MAX_UINT256
    return collateral_value_usd * PRECISION // total_pusd_minted

class PUSDController(SmartContract):
    """Collateralized debt position ledger for PUSD.

    The controller must own the PUSD token: it mints on ``mint`` and burns on
    ``burn`` and ``liquidate``. Collateral decimals are read once when an asset
    is allowed and cached in the registry.
    """

    def __init__(self, collateral_assets: List[str], price_feeds: List[str], pusd: str,
                 admin: str, fee_recipient: Optional[str] = None,
                 params: RiskParameters = FULL_LIQUIDATION_PARAMS, fee_rate: int = 0):
        super().__init__()

        if not pusd or not admin:
            raise AddressZero("PUSD and admin addresses are required")

        self.pusd = pusd
        self.admin = admin
        self.params = params
        self.registry = CollateralRegistry()
        self._pending_collateral = (list(collateral_assets), list(price_feeds))

        # Position ledger
        self.collateral_deposited: Dict[str, Dict[str, int]] = {}  # user -> asset -> amount
        self.pusd_minted: Dict[str, int] = {}

        self.oracle = PriceOracleAdapter(self)
        self.transfers = TokenTransferHelper(self)
        self.flash = FlashOperations(self, self, admin, fee_recipient or admin, fee_rate)

    def _on_deploy(self):
        (assets, price_feeds), self._pending_collateral = self._pending_collateral, ([], [])
        for entry in self.registry.allow_many(assets, price_feeds, self.transfers.decimals):
            self._announce_collateral(entry)

    # Position operations

    def deposit(self, asset: str, recipient: str, amount: int) -> bool:
        if amount <= 0:
            raise InvalidAmount("deposit amount must be greater than zero")
        self.registry.get(asset)
        if not recipient:
            raise AddressZero("recipient is required")
        if not is_native(asset) and self._get_value():
            raise InvalidAmount("native value attached to a token deposit")

        caller = self._get_caller()
        user_collateral = self.collateral_deposited.setdefault(recipient, {})
        user_collateral[asset] = user_collateral.get(asset, 0) + amount
        self.transfers.pull(asset, caller, amount)

        self._emit_event('CollateralDeposited', {
            'user': recipient,
            'asset': asset,
            'amount': amount,
            'from': caller
        })
        return True

    def mint(self, amount: int) -> bool:
        self._reject_value()
        return self._mint(self._get_caller(), amount)

    def _mint(self, user: str, amount: int) -> bool:
        if amount <= 0:
            raise InvalidAmount("mint amount must be greater than zero")

        self.pusd_minted[user] = self.pusd_minted.get(user, 0) + amount
        self._revert_if_health_factor_is_broken(user)

        if not self._call(self.pusd, 'mint', user, amount):
            raise MintFailed(f"{amount} PUSD to {user}")

        self._emit_event('PUSDMinted', {'user': user, 'amount': amount})
        return True

    def withdraw(self, asset: str, amount: int) -> bool:
        self._reject_value()
        if amount <= 0:
            raise InvalidAmount("withdraw amount must be greater than zero")
        self.registry.get(asset)

        user = self._get_caller()
        self._redeem_collateral(asset, amount, user, user)
        self._revert_if_health_factor_is_broken(user)
        return True

    def burn(self, amount: int) -> bool:
        self._reject_value()
        if amount < 0:
            raise InvalidAmount("burn amount cannot be negative")
        if amount == 0:
            return True

        user = self._get_caller()
        self._burn_pusd(amount, user, user)
        self._emit_event('PUSDBurned', {'user': user, 'amount': amount})
        return True

    def deposit_and_mint(self, asset: str, amount_collateral: int, amount_to_mint: int) -> bool:
        user = self._get_caller()
        self.deposit(asset, user, amount_collateral)
        return self._mint(user, amount_to_mint)

    def burn_and_withdraw(self, asset: str, amount_collateral: int, amount_to_burn: int) -> bool:
        self.burn(amount_to_burn)
        return self.withdraw(asset, amount_collateral)

    def liquidate(self, user: str, collateral_asset: str, debt_to_cover: int) -> Dict[str, int]:
        self._reject_value()
        if debt_to_cover <= 0:
            raise InvalidAmount("debt to cover must be greater than zero")
        self.registry.get(collateral_asset)

        starting_health_factor = self.get_health_factor(user)
        if starting_health_factor >= self.params.min_health_factor:
            raise InvalidLiquidation(user)

        repay = debt_to_cover
        if self.params.partial_liquidation:
            repay = min(repay, self._max_repayable(user, starting_health_factor))

        seized = self.get_token_amount_from_usd(collateral_asset, repay)
        bonus = seized * self.params.liquidation_bonus // LIQUIDATION_PRECISION
        total_seized = seized + bonus

        if total_seized > self.get_collateral_balance_of_user(user, collateral_asset):
            raise InsufficientCollateralBalance(
                f"{user} holds less than {total_seized} of {collateral_asset}"
            )

        liquidator = self._get_caller()
        self._debit_collateral(user, collateral_asset, total_seized)
        liquidator_collateral = self.collateral_deposited.setdefault(liquidator, {})
        liquidator_collateral[collateral_asset] = liquidator_collateral.get(collateral_asset, 0) + total_seized
        self._burn_pusd(repay, user, liquidator)

        ending_health_factor = self.get_health_factor(user)
        if ending_health_factor <= starting_health_factor:
            raise InvalidLiquidation(user)

        logger.info(
            f"Liquidated {user}: repaid {repay} PUSD, seized {total_seized} of {collateral_asset} "
            f"for {liquidator}"
        )
        self._emit_event('Liquidated', {
            'user': user,
            'liquidator': liquidator,
            'asset': collateral_asset,
            'debt_repaid': repay,
            'collateral_seized': total_seized,
            'bonus': bonus
        })
        return {
            'debt_repaid': repay,
            'collateral_seized': total_seized,
            'health_factor_before': starting_health_factor,
            'health_factor_after': ending_health_factor
        }

    # Admin

    def allow_collateral(self, asset: str, price_feed: str) -> bool:
        self._reject_value()
        self._only_admin()
        self._announce_collateral(self.registry.allow(asset, price_feed, self.transfers.decimals))
        return True

    def set_fee_recipient(self, fee_recipient: str) -> bool:
        self._reject_value()
        self.flash.set_fee_recipient(fee_recipient)
        return True

    def set_fee_rate(self, fee_rate: int) -> bool:
        self._reject_value()
        self.flash.set_fee_rate(fee_rate)
        return True

    def set_flash_ops_paused(self, paused: bool) -> bool:
        self._reject_value()
        self.flash.set_paused(paused)
        return True

    def update_flash_config(self, fee_recipient: Optional[str] = None, fee_rate: Optional[int] = None,
                            paused: Optional[bool] = None) -> Dict[str, Any]:
        """Apply several flash settings in one transaction; any invalid one reverts them all"""
        self._reject_value()
        self._only_admin()
        if fee_recipient is None and fee_rate is None and paused is None:
            raise InvalidAmount("no flash settings to change")

        if fee_recipient is not None:
            self.flash.set_fee_recipient(fee_recipient)
        if fee_rate is not None:
            self.flash.set_fee_rate(fee_rate)
        if paused is not None:
            self.flash.set_paused(paused)
        return self.flash.get_config()

    # Flash operations

    def flash_op(self, receiver: str, asset: str, amount: int, user_data: Any, kind: str) -> bool:
        self._reject_value()
        return self.flash.execute(receiver, asset, amount, user_data, kind)

    def flash_fee(self, asset: str, amount: int) -> int:
        return self.flash.flash_fee(amount)

    def max_flash_amount(self, asset: str) -> int:
        return self.flash.max_flash_amount(asset)

    def get_flash_config(self) -> Dict[str, Any]:
        return self.flash.get_config()

    def is_allowed_collateral(self, asset: str) -> bool:
        return self.registry.is_allowed(asset)

    def synthetic_token(self) -> str:
        return self.pusd

    # Reads

    def get_allowed_collateral(self) -> List[str]:
        return self.registry.list()

    def get_collateral_price_feed(self, asset: str) -> str:
        return self.registry.price_feed(asset)

    def get_collateral_decimals(self, asset: str) -> int:
        return self.registry.decimals(asset)

    def get_collateral_balance_of_user(self, user: str, asset: str) -> int:
        return self.collateral_deposited.get(user, {}).get(asset, 0)

    def get_pusd_minted(self, user: str) -> int:
        return self.pusd_minted.get(user, 0)

    def get_account_information(self, user: str) -> Tuple[int, int]:
        """Return (PUSD minted, collateral value in USD) for a user"""
        return self.get_pusd_minted(user), self.get_collateral_value_usd(user)

    def get_collateral_value_usd(self, user: str) -> int:
        total = 0
        for entry in self.registry.entries():
            amount = self.get_collateral_balance_of_user(user, entry.asset)
            if amount:
                total += self.oracle.usd_value(entry.price_feed, amount, entry.decimals)
        return total

    def get_health_factor(self, user: str) -> int:
        total_pusd_minted, collateral_value_usd = self.get_account_information(user)
        return calculate_health_factor(total_pusd_minted, collateral_value_usd)

    def calculate_health_factor(self, total_pusd_minted: int, collateral_value_usd: int) -> int:
        return calculate_health_factor(total_pusd_minted, collateral_value_usd)

    def get_usd_value(self, asset: str, amount: int) -> int:
        entry = self.registry.get(asset)
        return self.oracle.usd_value(entry.price_feed, amount, entry.decimals)

    def get_token_amount_from_usd(self, asset: str, usd_amount: int) -> int:
        entry = self.registry.get(asset)
        return self.oracle.token_amount(entry.price_feed, usd_amount, entry.decimals)

    def get_risk_parameters(self) -> Dict[str, Any]:
        params = asdict(self.params)
        params['partial_liquidation'] = self.params.partial_liquidation
        return params

    # Internal

    def _announce_collateral(self, entry: CollateralAsset):
        logger.info(f"Collateral allowed: {entry.asset} priced by {entry.price_feed} ({entry.decimals} decimals)")
        self._emit_event('CollateralAllowed', {
            'asset': entry.asset,
            'price_feed': entry.price_feed,
            'decimals': entry.decimals
        })

    def _max_repayable(self, user: str, health_factor: int) -> int:
        debt = self.get_pusd_minted(user)
        if health_factor >= self.params.close_factor:
            return debt * self.params.liquidation_fraction // LIQUIDATION_PRECISION
        return debt

    def _redeem_collateral(self, asset: str, amount: int, from_user: str, to_address: str):
        self._debit_collateral(from_user, asset, amount)
        self.transfers.push(asset, to_address, amount)
        self._emit_event('CollateralWithdrawn', {
            'from': from_user,
            'to': to_address,
            'asset': asset,
            'amount': amount
        })

    def _debit_collateral(self, user: str, asset: str, amount: int):
        balance = self.get_collateral_balance_of_user(user, asset)
        if amount > balance:
            raise ArithmeticUnderflow(f"{user} holds {balance} of {asset}, needs {amount}")
        self.collateral_deposited[user][asset] = balance - amount

    def _burn_pusd(self, amount: int, on_behalf_of: str, pusd_from: str):
        debt = self.get_pusd_minted(on_behalf_of)
        if amount > debt:
            raise ArithmeticUnderflow(f"{on_behalf_of} owes {debt} PUSD, repaying {amount}")
        self.pusd_minted[on_behalf_of] = debt - amount

        if pusd_from == on_behalf_of:
            burned = self._call(self.pusd, 'burn_from', pusd_from, amount)
        else:
            # Third party repays: take custody first, then burn from the controller
            self.transfers.pull(self.pusd, pusd_from, amount)
            burned = self._call(self.pusd, 'burn', amount)
        if not burned:
            raise TransferFailed(f"burn of {amount} PUSD from {pusd_from}")

    def _revert_if_health_factor_is_broken(self, user: str):
        health_factor = self.get_health_factor(user)
        if health_factor < self.params.min_health_factor:
            raise BelowMinHealthFactor(health_factor)

    def _reject_value(self):
        if self._get_value():
            raise InvalidAmount("native value is only accepted by native collateral deposits")

    def _only_admin(self):
        caller = self._get_caller()
        if caller != self.admin:
            raise Unauthorized(caller)
