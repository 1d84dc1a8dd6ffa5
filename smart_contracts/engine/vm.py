from typing import Dict, List, Any, Optional, Callable
import copy
import hashlib
import time
from dataclasses import dataclass, field

DEFAULT_GAS_LIMIT = 10000000
ZERO_ADDRESS = "0x" + "0" * 40


@dataclass
class ExecutionContext:
    """Context for a single call frame"""
    caller: str
    contract_address: str
    value: int = 0
    gas_limit: int = DEFAULT_GAS_LIMIT
    gas_used: int = 0
    block_number: int = 0
    timestamp: int = field(default_factory=lambda: int(time.time()))
    depth: int = 0


class ExecutionResult:
    """Result of contract execution"""
    def __init__(self, success: bool, return_data: Any = None,
                 gas_used: int = 0, error: str = None, logs: List[Dict] = None,
                 exception: Optional[BaseException] = None):
        self.success = success
        self.return_data = return_data
        self.gas_used = gas_used
        self.error = error
        self.logs = logs or []
        self.exception = exception


class VMException(Exception):
    """Virtual Machine Exception"""
    pass

# Alias for backward compatibility
VMError = VMException

class OutOfGasException(VMException):
    """Out of gas exception"""
    pass

class ContractNotFound(VMException):
    """Call target is not a deployed contract"""
    pass

class ContractRevert(VMException):
    """Raised by contract code to abort the current transaction"""
    pass


class SmartContractVM:
    """Smart Contract Virtual Machine

    Every top-level call runs as one transaction: the state of all deployed
    contracts, native balances and the event log are snapshotted first and
    restored if anything escapes the call. Nested calls between contracts
    share the transaction and push their own frame, so ``_get_caller`` always
    reports the immediate caller.
    """

    BASE_TRANSACTION_GAS = 21000
    CALL_GAS = 700
    MAX_CALL_DEPTH = 64

    def __init__(self, timestamp: Optional[int] = None, block_number: int = 1):
        self.balances: Dict[str, int] = {}
        self.contracts: Dict[str, 'SmartContract'] = {}
        self.logs: List[Dict] = []
        self.frames: List[ExecutionContext] = []
        self.block_timestamp = int(time.time()) if timestamp is None else timestamp
        self.block_number = block_number
        self._deploy_nonce = 0

    # Block clock

    def set_block(self, timestamp: Optional[int] = None, number: Optional[int] = None):
        """Move the block clock to an explicit position"""
        if timestamp is not None:
            self.block_timestamp = timestamp
        if number is not None:
            self.block_number = number

    def warp(self, seconds: int):
        """Advance block time, one block per 12 seconds"""
        self.block_timestamp += seconds
        self.block_number += max(1, seconds // 12)

    @property
    def current_context(self) -> Optional[ExecutionContext]:
        return self.frames[-1] if self.frames else None

    def new_context(self, caller: str, contract_address: str, value: int = 0,
                    gas_limit: int = DEFAULT_GAS_LIMIT) -> ExecutionContext:
        return ExecutionContext(
            caller=caller,
            contract_address=contract_address,
            value=value,
            gas_limit=gas_limit,
            block_number=self.block_number,
            timestamp=self.block_timestamp
        )

    # Transactions

    def execute_contract(self, contract_address: str, function_name: str,
                         args: List[Any], context: ExecutionContext) -> ExecutionResult:
        """Execute a public contract function as one atomic transaction"""
        def run():
            self._consume_gas(context, self.BASE_TRANSACTION_GAS)
            contract = self._resolve_contract(contract_address)
            func = self._resolve_function(contract, function_name)
            return self._invoke(func, args, context)

        return self._atomic(run, context)

    def static_call(self, contract_address: str, function_name: str,
                    args: List[Any], context: ExecutionContext) -> ExecutionResult:
        """Execute a contract function and discard every state change it made"""
        snapshot = self._snapshot()
        try:
            return self.execute_contract(contract_address, function_name, args, context)
        finally:
            self._restore(snapshot)

    def transact(self, caller: str, contract_address: str, function_name: str,
                 *args, value: int = 0, gas_limit: int = DEFAULT_GAS_LIMIT) -> Any:
        """Execute a transaction and re-raise its failure after rollback"""
        context = self.new_context(caller, contract_address, value, gas_limit)
        result = self.execute_contract(contract_address, function_name, list(args), context)
        if not result.success:
            raise result.exception
        return result.return_data

    def call(self, caller: str, contract_address: str, function_name: str,
             args: List[Any], value: int = 0) -> Any:
        """Nested call from one contract into another inside the running transaction"""
        parent = self.current_context
        if parent is None:
            raise VMException("No transaction in progress")

        self._consume_gas(parent, self.CALL_GAS)
        context = ExecutionContext(
            caller=caller,
            contract_address=contract_address,
            value=value,
            gas_limit=parent.gas_limit,
            gas_used=parent.gas_used,
            block_number=parent.block_number,
            timestamp=parent.timestamp,
            depth=parent.depth + 1
        )
        if context.depth > self.MAX_CALL_DEPTH:
            raise VMException("Call depth exceeded")

        try:
            contract = self._resolve_contract(contract_address)
            func = self._resolve_function(contract, function_name)
            return self._invoke(func, args, context)
        finally:
            parent.gas_used = context.gas_used

    def deploy_contract(self, contract: 'SmartContract', deployer: str) -> str:
        """Deploy a smart contract and run its deployment hook atomically"""
        contract_address = self._generate_contract_address(contract, deployer)
        context = self.new_context(deployer, contract_address)

        def run():
            contract.address = contract_address
            contract.vm = self
            self.contracts[contract_address] = contract
            self._consume_gas(context, self.BASE_TRANSACTION_GAS)
            return self._invoke(contract._on_deploy, [], context)

        result = self._atomic(run, context)
        if not result.success:
            contract.vm = None
            contract.address = None
            raise result.exception
        return contract_address

    def _atomic(self, run: Callable[[], Any], context: ExecutionContext) -> ExecutionResult:
        snapshot = self._snapshot()
        try:
            return_data = run()
        except OutOfGasException as e:
            self._restore(snapshot)
            return ExecutionResult(False, error="Out of gas", gas_used=context.gas_limit, exception=e)
        except Exception as e:
            self._restore(snapshot)
            return ExecutionResult(False, error=self._describe(e), gas_used=context.gas_used, exception=e)

        return ExecutionResult(
            success=True,
            return_data=return_data,
            gas_used=context.gas_used,
            logs=self.logs[snapshot['log_count']:]
        )

    def _invoke(self, func: Callable, args: List[Any], context: ExecutionContext) -> Any:
        if context.value:
            self.move_value(context.caller, context.contract_address, context.value)
        self.frames.append(context)
        try:
            return func(*args)
        finally:
            self.frames.pop()

    def _resolve_contract(self, contract_address: str) -> 'SmartContract':
        contract = self.contracts.get(contract_address)
        if contract is None:
            raise ContractNotFound(f"Contract not found: {contract_address}")
        return contract

    def _resolve_function(self, contract: 'SmartContract', function_name: str) -> Callable:
        if function_name.startswith('_'):
            raise VMException(f"Function {function_name} is not public")
        func = getattr(contract, function_name, None)
        if not callable(func):
            raise VMException(f"Function {function_name} not found")
        return func

    def _consume_gas(self, context: ExecutionContext, amount: int):
        """Consume gas and check limits"""
        context.gas_used += amount
        if context.gas_used > context.gas_limit:
            raise OutOfGasException("Gas limit exceeded")

    @staticmethod
    def _describe(error: Exception) -> str:
        message = str(error)
        name = type(error).__name__
        return f"{name}: {message}" if message else name

    # Snapshots

    def _snapshot(self) -> Dict[str, Any]:
        # Contracts and the VM map to themselves so cross references survive the copy
        memo: Dict[int, Any] = {id(self): self}
        for contract in self.contracts.values():
            memo[id(contract)] = contract

        return {
            'contracts': dict(self.contracts),
            'states': {
                address: copy.deepcopy(contract.__dict__, memo)
                for address, contract in self.contracts.items()
            },
            'balances': dict(self.balances),
            'log_count': len(self.logs)
        }

    def _restore(self, snapshot: Dict[str, Any]):
        self.contracts.clear()
        self.contracts.update(snapshot['contracts'])
        for address, state in snapshot['states'].items():
            contract = self.contracts[address]
            contract.__dict__.clear()
            contract.__dict__.update(state)
        self.balances = snapshot['balances']
        del self.logs[snapshot['log_count']:]

    # Accounts

    def _generate_contract_address(self, contract: 'SmartContract', deployer: str) -> str:
        """Generate a unique contract address"""
        self._deploy_nonce += 1
        data = f"{deployer}{contract.__class__.__name__}{self._deploy_nonce}"
        return "0x" + hashlib.sha256(data.encode()).hexdigest()[:40]

    def is_contract(self, address: str) -> bool:
        return address in self.contracts

    def get_contract(self, address: str) -> Optional['SmartContract']:
        return self.contracts.get(address)

    def get_balance(self, address: str) -> int:
        """Get native balance"""
        return self.balances.get(address, 0)

    def set_balance(self, address: str, amount: int):
        """Set native balance"""
        self.balances[address] = amount

    def add_balance(self, address: str, amount: int):
        """Add to native balance"""
        self.balances[address] = self.balances.get(address, 0) + amount

    def move_value(self, from_address: str, to_address: str, amount: int):
        if amount < 0:
            raise VMException("Negative value transfer")
        if self.balances.get(from_address, 0) < amount:
            raise VMException("Insufficient balance")
        self.balances[from_address] = self.balances.get(from_address, 0) - amount
        self.balances[to_address] = self.balances.get(to_address, 0) + amount


class SmartContract:
    """Base class for smart contracts"""

    def __init__(self):
        self.vm = None  # Will be set by the VM
        self.address = None  # Will be set when deployed

    def _on_deploy(self):
        """Runs once inside the deployment transaction"""
        pass

    @property
    def context(self) -> Optional[ExecutionContext]:
        if self.vm:
            return self.vm.current_context
        return None

    def _emit_event(self, event_name: str, data: Dict[str, Any]):
        """Emit an event"""
        if self.vm:
            self.vm.logs.append({
                'event': event_name,
                'contract': self.address,
                'data': data,
                'block_number': self.vm.block_number,
                'timestamp': self._now()
            })

    def _get_caller(self) -> str:
        """Get the caller address"""
        context = self.context
        return context.caller if context else ''

    def _get_value(self) -> int:
        """Native value attached to the current call"""
        context = self.context
        return context.value if context else 0

    def _now(self) -> int:
        context = self.context
        if context:
            return context.timestamp
        return self.vm.block_timestamp if self.vm else int(time.time())

    def _call(self, contract_address: str, function_name: str, *args, value: int = 0) -> Any:
        """Call another contract as this contract"""
        return self.vm.call(self.address, contract_address, function_name, list(args), value)

    def _is_contract(self, address: str) -> bool:
        return bool(self.vm) and self.vm.is_contract(address)

    def _get_balance(self, address: str) -> int:
        """Get native balance of an address"""
        if self.vm:
            return self.vm.get_balance(address)
        return 0

    def _send_value(self, to_address: str, amount: int):
        """Send native value held by this contract"""
        self.vm.move_value(self.address, to_address, amount)
