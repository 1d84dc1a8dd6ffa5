"""Push/pull movement of native value and ERC-20 tokens for a host contract."""

from ..engine import SmartContract
from .errors import InvalidAmount, TransferFailed

# Sentinel address standing for the chain's native asset
NATIVE_ASSET = "0xEeeeeEeeeEeEeeEeEeEeeEEEeeeeEeeeeeeeEEeE"

def is_native(asset: str) -> bool:
    return asset == NATIVE_ASSET

class TokenTransferHelper:
    """Moves assets in and out of the host contract's custody.

    Pulling native value only works from the current caller, who must have
    attached exactly the pulled amount to the call. Tokens are pulled with
    ``transfer_from`` and need a prior approval of the host.
    """

    def __init__(self, host: SmartContract):
        self.host = host

    def pull(self, asset: str, from_address: str, amount: int):
        if is_native(asset):
            if from_address != self.host._get_caller() or self.host._get_value() != amount:
                raise InvalidAmount(f"expected {amount} native value attached")
            return

        if not self.host._call(asset, 'transfer_from', from_address, self.host.address, amount):
            raise TransferFailed(f"pull of {amount} {asset} from {from_address}")

    def pull_to(self, asset: str, from_address: str, to_address: str, amount: int):
        """Pull tokens from one account straight into another"""
        if is_native(asset):
            raise InvalidAmount("native value cannot be pulled on behalf of another account")

        if not self.host._call(asset, 'transfer_from', from_address, to_address, amount):
            raise TransferFailed(f"pull of {amount} {asset} from {from_address}")

    def push(self, asset: str, to_address: str, amount: int):
        if is_native(asset):
            self.host._send_value(to_address, amount)
            return

        if not self.host._call(asset, 'transfer', to_address, amount):
            raise TransferFailed(f"push of {amount} {asset} to {to_address}")

    def balance_of(self, asset: str, account: str) -> int:
        if is_native(asset):
            return self.host._get_balance(account)
        return self.host._call(asset, 'balance_of', account)

    def decimals(self, asset: str) -> int:
        if is_native(asset):
            return 18
        return self.host._call(asset, 'get_token_info')['decimals']
