from typing import Dict, Any
from dataclasses import dataclass

from ..engine import SmartContract, ZERO_ADDRESS

@dataclass
class TokenInfo:
    """Token information structure"""
    name: str
    symbol: str
    decimals: int
    total_supply: int
    owner: str

class ERC20Token(SmartContract):
    """ERC-20 compatible token contract.

    Mutating entry points report failure by returning False rather than
    raising, the way ERC-20 tokens do; callers decide whether to abort.
    Only the owner may mint, and the owner may burn from any account.
    """

    def __init__(self, name: str, symbol: str, decimals: int = 18,
                 initial_supply: int = 0, owner: str = ""):
        super().__init__()

        # Token metadata
        self.name = name
        self.symbol = symbol
        self.decimals = decimals
        self.total_supply = initial_supply
        self.owner = owner

        # State variables
        self.balances: Dict[str, int] = {}
        self.allowances: Dict[str, Dict[str, int]] = {}  # owner -> spender -> amount

        # Initialize owner balance
        if initial_supply > 0 and owner:
            self.balances[owner] = initial_supply

    def balance_of(self, account: str) -> int:
        """Get token balance of account"""
        return self.balances.get(account, 0)

    def allowance(self, owner: str, spender: str) -> int:
        """Get allowance amount"""
        return self.allowances.get(owner, {}).get(spender, 0)

    def transfer(self, to: str, amount: int) -> bool:
        """Transfer tokens"""
        from_address = self._get_caller()
        return self._transfer(from_address, to, amount)

    def transfer_from(self, from_address: str, to: str, amount: int) -> bool:
        """Transfer tokens from approved account"""
        spender = self._get_caller()

        # Check allowance
        allowed = self.allowance(from_address, spender)
        if allowed < amount:
            self._emit_event('TransferFailed', {
                'from': from_address,
                'to': to,
                'amount': amount,
                'reason': 'Insufficient allowance'
            })
            return False

        if self.balances.get(from_address, 0) < amount:
            return False

        # Update allowance
        self.allowances.setdefault(from_address, {})[spender] = allowed - amount

        return self._transfer(from_address, to, amount)

    def approve(self, spender: str, amount: int) -> bool:
        """Approve spender to transfer tokens"""
        owner = self._get_caller()

        if amount < 0:
            return False

        self.allowances.setdefault(owner, {})[spender] = amount

        self._emit_event('Approval', {
            'owner': owner,
            'spender': spender,
            'amount': amount
        })

        return True

    def mint(self, to: str, amount: int) -> bool:
        """Mint new tokens"""
        caller = self._get_caller()

        # Only owner can mint
        if caller != self.owner or not to or amount < 0:
            return False

        self.balances[to] = self.balances.get(to, 0) + amount
        self.total_supply += amount

        self._emit_event('Transfer', {
            'from': ZERO_ADDRESS,
            'to': to,
            'amount': amount
        })

        return True

    def burn(self, amount: int) -> bool:
        """Burn tokens from caller's balance"""
        caller = self._get_caller()
        return self._burn(caller, amount)

    def burn_from(self, from_address: str, amount: int) -> bool:
        """Burn tokens from specified address"""
        caller = self._get_caller()

        # Check if caller has permission
        if caller != from_address and caller != self.owner:
            allowed = self.allowance(from_address, caller)
            if allowed < amount:
                return False
            if self.balances.get(from_address, 0) < amount:
                return False
            self.allowances.setdefault(from_address, {})[caller] = allowed - amount

        return self._burn(from_address, amount)

    def transfer_ownership(self, new_owner: str) -> bool:
        """Hand mint and burn rights to a new owner"""
        caller = self._get_caller()
        if caller != self.owner or not new_owner:
            return False

        previous_owner = self.owner
        self.owner = new_owner
        self._emit_event('OwnershipTransferred', {
            'previous_owner': previous_owner,
            'new_owner': new_owner
        })
        return True

    def _burn(self, from_address: str, amount: int) -> bool:
        if amount < 0 or self.balances.get(from_address, 0) < amount:
            return False

        self.balances[from_address] -= amount
        self.total_supply -= amount

        self._emit_event('Transfer', {
            'from': from_address,
            'to': ZERO_ADDRESS,
            'amount': amount
        })

        return True

    def _transfer(self, from_address: str, to: str, amount: int) -> bool:
        """Internal transfer function"""
        if not to or amount < 0:
            return False

        if self.balances.get(from_address, 0) < amount:
            return False

        self.balances[from_address] -= amount
        self.balances[to] = self.balances.get(to, 0) + amount

        self._emit_event('Transfer', {
            'from': from_address,
            'to': to,
            'amount': amount
        })

        return True

    def get_token_info(self) -> Dict[str, Any]:
        """Get token information"""
        return {
            'name': self.name,
            'symbol': self.symbol,
            'decimals': self.decimals,
            'total_supply': self.total_supply,
            'owner': self.owner
        }

class PUSDToken(ERC20Token):
    """The synthetic USD-pegged token minted against collateral"""

    def __init__(self, owner: str = ""):
        super().__init__(name="Peg USD", symbol="PUSD", decimals=18, owner=owner)
