"""Protocol errors.

Every error aborts the surrounding transaction; the VM restores all state
touched before the failure.
"""

from ..engine.vm import ContractRevert


class ProtocolError(ContractRevert):
    """Base error class for protocol errors"""
    pass

# Input validation

class InvalidAmount(ProtocolError):
    """Amount must be greater than zero"""
    pass

class AddressZero(ProtocolError):
    """A required address was empty"""
    pass

class ArrayMismatch(ProtocolError):
    """Collateral assets and price feeds differ in length"""
    pass

class InvalidDecimals(ProtocolError):
    """Asset decimals outside 0..18"""
    pass

# Authorization

class AlreadyAllowed(ProtocolError):
    pass

class NotAllowedCollateral(ProtocolError):
    pass

class Unauthorized(ProtocolError):
    """Caller does not hold the privileged role"""
    pass

# Solvency

class BelowMinHealthFactor(ProtocolError):
    """Health factor would fall below the protocol minimum"""

    def __init__(self, health_factor: int):
        super().__init__(f"health factor {health_factor}")
        self.health_factor = health_factor

class InvalidLiquidation(ProtocolError):
    """Position is healthy, or liquidating it would not improve it"""

    def __init__(self, user: str):
        super().__init__(f"user {user}")
        self.user = user

class InsufficientCollateralBalance(ProtocolError):
    pass

class ArithmeticUnderflow(ProtocolError):
    """Balance or debt would go below zero"""
    pass

# Token collaborator

class MintFailed(ProtocolError):
    pass

class TransferFailed(ProtocolError):
    pass

# Oracle

class InvalidPrice(ProtocolError):
    """Price feed round is zero, negative, stale or inconsistent"""

    def __init__(self, feed: str, reason: str = ""):
        super().__init__(f"{feed} {reason}".strip())
        self.feed = feed
        self.reason = reason

# Flash operations

class FlashOpsIsPaused(ProtocolError):
    pass

class InvalidFlashOp(ProtocolError):
    pass

class FlashOpsFailed(ProtocolError):
    """Receiver callback reported failure"""
    pass

class PUSDTotalSupplyHasChanged(ProtocolError):
    pass

class TokenBalanceDecrease(ProtocolError):
    pass

class InvalidFeeRecipient(ProtocolError):
    pass

class InvalidFeeBPS(ProtocolError):
    pass
