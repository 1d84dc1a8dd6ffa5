"""Flash mints of PUSD and flash loans of pooled collateral.

A flash operation hands out funds, calls back into the receiver, takes the
funds back plus a fee and then verifies the books: total PUSD supply must be
unchanged after a flash mint and the lender's balance of a loaned asset must
not have dropped. The receiver is untrusted and may call back into the
protocol; nothing it does can survive a failed settlement, because any error
aborts the whole transaction.
"""

from typing import Any, Dict, Protocol
from dataclasses import dataclass, asdict
from enum import Enum
import logging

from ..engine import SmartContract
from .constants import MAX_FLASH_FEE_RATE, MAX_UINT256, PRECISION
from .errors import (
    FlashOpsFailed, FlashOpsIsPaused, InvalidFeeBPS, InvalidFeeRecipient, InvalidFlashOp,
    MintFailed, NotAllowedCollateral, PUSDTotalSupplyHasChanged, TokenBalanceDecrease,
    TransferFailed, Unauthorized
)
from .transfers import TokenTransferHelper, is_native

logger = logging.getLogger(__name__)

FLASH_CALLBACK = 'on_flash_op'

class FlashOpKind(Enum):
    MINT = "MINT"
    LOAN = "LOAN"

class FlashOpState(Enum):
    IDLE = "IDLE"
    RECEIVER_INVOKED = "RECEIVER_INVOKED"
    SETTLEMENT_VERIFIED = "SETTLEMENT_VERIFIED"
    COMPLETE = "COMPLETE"
    ROLLED_BACK = "ROLLED_BACK"

@dataclass
class FlashConfig:
    """Flash operation settings, changed only by the admin"""
    fee_recipient: str
    fee_rate: int = 0  # parts per 1e18
    paused: bool = False

class FlashCapabilities(Protocol):
    """What flash operations need to know about the hosting protocol"""

    def is_allowed_collateral(self, asset: str) -> bool:
        ...

    def synthetic_token(self) -> str:
        ...

class FlashReceiver(SmartContract):
    """Base class for contracts that take flash operations.

    ``on_flash_op`` runs while the receiver holds the borrowed funds. It must
    leave ``amount + fee`` approved to the lender and return True.
    """

    def on_flash_op(self, initiator: str, asset: str, amount: int, fee: int, user_data: Any) -> bool:
        raise NotImplementedError

class FlashOperations:
    """Flash mint and flash loan protocol run on behalf of a host contract"""

    def __init__(self, host: SmartContract, capabilities: FlashCapabilities, admin: str,
                 fee_recipient: str, fee_rate: int = 0):
        if not fee_recipient:
            raise InvalidFeeRecipient()
        if not 0 <= fee_rate <= MAX_FLASH_FEE_RATE:
            raise InvalidFeeBPS(str(fee_rate))

        self.host = host
        self.capabilities = capabilities
        self.admin = admin
        self.config = FlashConfig(fee_recipient=fee_recipient, fee_rate=fee_rate)
        self.transfers = TokenTransferHelper(host)

    def execute(self, receiver: str, asset: str, amount: int, user_data: Any, kind) -> bool:
        if self.config.paused:
            raise FlashOpsIsPaused()
        if amount <= 0:
            raise InvalidFlashOp("amount must be greater than zero")
        if not self._is_receiver(receiver):
            raise InvalidFlashOp(f"{receiver} cannot receive flash operations")
        try:
            kind = FlashOpKind(kind)
        except ValueError:
            raise InvalidFlashOp(f"unknown flash operation {kind!r}") from None

        initiator = self.host._get_caller()
        fee = self.flash_fee(amount)
        fee_recipient = self.config.fee_recipient

        try:
            if kind is FlashOpKind.MINT:
                self._flash_mint(initiator, receiver, asset, amount, fee, fee_recipient, user_data)
            else:
                self._flash_loan(initiator, receiver, asset, amount, fee, fee_recipient, user_data)
        except Exception:
            logger.warning(f"Flash {kind.value} of {amount} {asset} to {receiver}: {FlashOpState.ROLLED_BACK.value}")
            raise

        self.host._emit_event('FlashOp', {
            'kind': kind.value,
            'initiator': initiator,
            'receiver': receiver,
            'asset': asset,
            'amount': amount,
            'fee': fee,
            'state': FlashOpState.COMPLETE.value
        })
        return True

    def _flash_mint(self, initiator: str, receiver: str, asset: str, amount: int, fee: int,
                    fee_recipient: str, user_data: Any):
        pusd = self.capabilities.synthetic_token()
        if asset != pusd:
            raise InvalidFlashOp(f"{asset} is not PUSD")

        supply_before = self._total_supply(pusd)
        if not self.host._call(pusd, 'mint', receiver, amount):
            raise MintFailed()

        self._invoke_receiver(initiator, receiver, asset, amount, fee, user_data)

        # Receiver pays principal and fee to the fee recipient, then the principal is burned there
        self.transfers.pull_to(pusd, receiver, fee_recipient, amount + fee)
        if not self.host._call(pusd, 'burn_from', fee_recipient, amount):
            raise TransferFailed(f"burn of {amount} PUSD from {fee_recipient}")

        if self._total_supply(pusd) != supply_before:
            raise PUSDTotalSupplyHasChanged()
        logger.debug(f"Flash mint {FlashOpState.SETTLEMENT_VERIFIED.value} for {receiver}")

    def _flash_loan(self, initiator: str, receiver: str, asset: str, amount: int, fee: int,
                    fee_recipient: str, user_data: Any):
        if not self.capabilities.is_allowed_collateral(asset):
            raise NotAllowedCollateral(asset)
        if is_native(asset):
            raise InvalidFlashOp("native collateral cannot be flash loaned")

        lender = self.host.address
        balance_before = self.transfers.balance_of(asset, lender)
        self.transfers.push(asset, receiver, amount)

        self._invoke_receiver(initiator, receiver, asset, amount, fee, user_data)

        self.transfers.pull(asset, receiver, amount + fee)
        if fee:
            self.transfers.push(asset, fee_recipient, fee)

        if self.transfers.balance_of(asset, lender) < balance_before:
            raise TokenBalanceDecrease(asset)
        logger.debug(f"Flash loan {FlashOpState.SETTLEMENT_VERIFIED.value} for {receiver}")

    def _invoke_receiver(self, initiator: str, receiver: str, asset: str, amount: int,
                         fee: int, user_data: Any):
        logger.debug(f"Flash operation entering {FlashOpState.RECEIVER_INVOKED.value} for {receiver}")
        if not self.host._call(receiver, FLASH_CALLBACK, initiator, asset, amount, fee, user_data):
            raise FlashOpsFailed(receiver)

    def _is_receiver(self, receiver: str) -> bool:
        if not receiver or not self.host._is_contract(receiver):
            return False
        contract = self.host.vm.get_contract(receiver)
        return callable(getattr(contract, FLASH_CALLBACK, None))

    def _total_supply(self, token: str) -> int:
        return self.host._call(token, 'get_token_info')['total_supply']

    # Reads

    def flash_fee(self, amount: int) -> int:
        return amount * self.config.fee_rate // PRECISION

    def max_flash_amount(self, asset: str) -> int:
        if asset == self.capabilities.synthetic_token():
            return MAX_UINT256 - self._total_supply(asset)
        if self.capabilities.is_allowed_collateral(asset) and not is_native(asset):
            return self.transfers.balance_of(asset, self.host.address)
        return 0

    def get_config(self) -> Dict[str, Any]:
        return asdict(self.config)

    # Admin

    def set_fee_recipient(self, fee_recipient: str):
        self._only_admin()
        if not fee_recipient:
            raise InvalidFeeRecipient()

        old = self.config.fee_recipient
        self.config.fee_recipient = fee_recipient
        self._emit_change('FeeRecipientUpdated', old, fee_recipient)

    def set_fee_rate(self, fee_rate: int):
        self._only_admin()
        if not 0 <= fee_rate <= MAX_FLASH_FEE_RATE:
            raise InvalidFeeBPS(str(fee_rate))

        old = self.config.fee_rate
        self.config.fee_rate = fee_rate
        self._emit_change('FeeBPSUpdated', old, fee_rate)

    def set_paused(self, paused: bool):
        self._only_admin()

        old = self.config.paused
        self.config.paused = bool(paused)
        self._emit_change('FlashOpsPauseUpdated', old, self.config.paused)

    def _only_admin(self):
        caller = self.host._get_caller()
        if caller != self.admin:
            raise Unauthorized(caller)

    def _emit_change(self, event_name: str, old: Any, new: Any):
        logger.info(f"{event_name}: {old} -> {new}")
        self.host._emit_event(event_name, {'old': old, 'new': new})
