from typing import Dict, List, Any, Optional, Tuple, Type
import hashlib
import inspect
import time
from dataclasses import dataclass
import threading
import logging

from .vm import SmartContractVM, SmartContract, ExecutionResult, DEFAULT_GAS_LIMIT

logger = logging.getLogger(__name__)

@dataclass
class ContractMetadata:
    """Metadata for deployed contracts"""
    address: str
    name: str
    version: str
    deployer: str
    deployment_time: int
    source_code_hash: str
    abi: Dict[str, Any]
    gas_limit: int = DEFAULT_GAS_LIMIT
    is_active: bool = True

@dataclass
class TransactionReceipt:
    """Receipt for contract transactions"""
    transaction_hash: str
    contract_address: str
    function_name: str
    caller: str
    gas_used: int
    success: bool
    return_data: Any
    logs: List[Dict]
    timestamp: int
    block_number: int = 0
    error: Optional[str] = None
    error_type: Optional[str] = None

class ContractRegistry:
    """Registry for managing deployed contracts"""

    def __init__(self):
        self.contracts: Dict[str, ContractMetadata] = {}
        self.contract_instances: Dict[str, SmartContract] = {}
        self.lock = threading.RLock()

    def register_contract(self, metadata: ContractMetadata, instance: SmartContract):
        """Register a new contract"""
        with self.lock:
            self.contracts[metadata.address] = metadata
            self.contract_instances[metadata.address] = instance
            logger.info(f"Contract {metadata.name} registered at {metadata.address}")

    def get_contract(self, address: str) -> Optional[SmartContract]:
        """Get contract instance by address"""
        return self.contract_instances.get(address)

    def get_metadata(self, address: str) -> Optional[ContractMetadata]:
        """Get contract metadata by address"""
        return self.contracts.get(address)

    def list_contracts(self) -> List[ContractMetadata]:
        """List all registered contracts"""
        return list(self.contracts.values())

    def find_by_name(self, name: str) -> List[ContractMetadata]:
        return [metadata for metadata in self.contracts.values() if metadata.name == name]

class SmartContractEngine:
    """Deploys contracts and runs transactions against a single VM.

    Top-level calls are serialized with a re-entrant lock so each transaction
    completes, or rolls back, before the next one starts.
    """

    def __init__(self, vm: Optional[SmartContractVM] = None):
        self.vm = vm or SmartContractVM()
        self.registry = ContractRegistry()
        self.transaction_history: List[TransactionReceipt] = []
        self.lock = threading.RLock()
        self.default_gas_limit = DEFAULT_GAS_LIMIT

    def deploy_contract(self, contract_class: Type[SmartContract],
                       deployer: str, constructor_args: List[Any] = None,
                       gas_limit: int = None) -> Tuple[str, TransactionReceipt]:
        """Deploy a smart contract"""
        with self.lock:
            try:
                contract_instance = contract_class(*(constructor_args or []))
                log_count = len(self.vm.logs)
                contract_address = self.vm.deploy_contract(contract_instance, deployer)

                metadata = ContractMetadata(
                    address=contract_address,
                    name=contract_class.__name__,
                    version="1.0.0",
                    deployer=deployer,
                    deployment_time=self.vm.block_timestamp,
                    source_code_hash=self._hash_contract_code(contract_class),
                    abi=self._generate_abi(contract_class),
                    gas_limit=gas_limit or self.default_gas_limit
                )
                self.registry.register_contract(metadata, contract_instance)

                receipt = TransactionReceipt(
                    transaction_hash=self._generate_transaction_hash(deployer, contract_address, "constructor"),
                    contract_address=contract_address,
                    function_name="constructor",
                    caller=deployer,
                    gas_used=self.vm.BASE_TRANSACTION_GAS,
                    success=True,
                    return_data=contract_address,
                    logs=self.vm.logs[log_count:],
                    timestamp=self.vm.block_timestamp,
                    block_number=self.vm.block_number
                )
                self.transaction_history.append(receipt)

                logger.info(f"Contract {contract_class.__name__} deployed at {contract_address}")
                return contract_address, receipt

            except Exception as e:
                logger.error(f"Contract deployment failed: {e}")
                raise

    def call_contract(self, contract_address: str, function_name: str,
                     args: List[Any], caller: str, value: int = 0,
                     gas_limit: int = None) -> TransactionReceipt:
        """Call a contract function as one atomic transaction"""
        with self.lock:
            metadata = self.registry.get_metadata(contract_address)
            if metadata is not None and not metadata.is_active:
                result = ExecutionResult(False, error=f"Contract is inactive: {contract_address}")
            else:
                context = self.vm.new_context(
                    caller, contract_address, value,
                    gas_limit or (metadata.gas_limit if metadata else self.default_gas_limit)
                )
                result = self.vm.execute_contract(contract_address, function_name, args, context)

            receipt = TransactionReceipt(
                transaction_hash=self._generate_transaction_hash(caller, contract_address, function_name),
                contract_address=contract_address,
                function_name=function_name,
                caller=caller,
                gas_used=result.gas_used,
                success=result.success,
                return_data=result.return_data,
                logs=result.logs,
                timestamp=self.vm.block_timestamp,
                block_number=self.vm.block_number,
                error=result.error,
                error_type=type(result.exception).__name__ if result.exception else None
            )
            self.transaction_history.append(receipt)

            if result.success:
                logger.info(f"Contract call successful: {contract_address}.{function_name}")
            else:
                logger.error(f"Contract call failed: {contract_address}.{function_name}: {result.error}")

            return receipt

    def query(self, contract_address: str, function_name: str,
              args: List[Any] = None, caller: str = "") -> Any:
        """Run a read-only call; state changes are discarded, failures raise and nothing is recorded"""
        with self.lock:
            context = self.vm.new_context(caller, contract_address, gas_limit=self.default_gas_limit)
            result = self.vm.static_call(contract_address, function_name, args or [], context)
            if not result.success:
                raise result.exception
            return result.return_data

    def get_transaction_result(self, transaction_hash: str) -> Optional[TransactionReceipt]:
        """Look up a receipt by transaction hash"""
        for receipt in self.transaction_history:
            if receipt.transaction_hash == transaction_hash:
                return receipt
        return None

    def get_account_balance(self, address: str) -> int:
        """Get native account balance"""
        return self.vm.get_balance(address)

    def set_account_balance(self, address: str, amount: int):
        """Set native account balance (for testing)"""
        self.vm.set_balance(address, amount)

    def get_transaction_history(self, address: str = None,
                               contract_address: str = None) -> List[TransactionReceipt]:
        """Get transaction history with optional filtering"""
        history = self.transaction_history

        if address:
            history = [tx for tx in history if tx.caller == address]

        if contract_address:
            history = [tx for tx in history if tx.contract_address == contract_address]

        return history

    def _generate_transaction_hash(self, caller: str, contract_address: str,
                                  function_name: str = "") -> str:
        """Generate unique transaction hash"""
        data = f"{caller}{contract_address}{function_name}{len(self.transaction_history)}{time.time_ns()}"
        return "0x" + hashlib.sha256(data.encode()).hexdigest()

    def _hash_contract_code(self, contract_class: Type[SmartContract]) -> str:
        """Hash contract source code"""
        source = inspect.getsource(contract_class)
        return hashlib.sha256(source.encode()).hexdigest()

    def _generate_abi(self, contract_class: Type[SmartContract]) -> Dict[str, Any]:
        """Generate ABI for contract"""
        abi = {
            "name": contract_class.__name__,
            "functions": []
        }

        # Get public methods
        for name, method in inspect.getmembers(contract_class, predicate=inspect.isfunction):
            if not name.startswith('_'):
                sig = inspect.signature(method)
                abi["functions"].append({
                    "name": name,
                    "inputs": [{
                        "name": param_name,
                        "type": str(param.annotation) if param.annotation != param.empty else "any"
                    } for param_name, param in sig.parameters.items() if param_name != 'self'],
                    "outputs": [{
                        "type": str(sig.return_annotation) if sig.return_annotation != sig.empty else "any"
                    }]
                })

        return abi

    def get_engine_stats(self) -> Dict[str, Any]:
        """Get engine statistics"""
        return {
            "total_contracts": len(self.registry.contracts),
            "total_transactions": len(self.transaction_history),
            "successful_transactions": len([tx for tx in self.transaction_history if tx.success]),
            "failed_transactions": len([tx for tx in self.transaction_history if not tx.success]),
            "block_number": self.vm.block_number,
            "block_timestamp": self.vm.block_timestamp
        }

# Global engine instance
_engine_instance = None
_engine_lock = threading.Lock()

def get_engine() -> SmartContractEngine:
    """Get global engine instance (singleton)"""
    global _engine_instance
    if _engine_instance is None:
        with _engine_lock:
            if _engine_instance is None:
                _engine_instance = SmartContractEngine()
    return _engine_instance

def reset_engine():
    """Reset global engine instance (for testing)"""
    global _engine_instance
    with _engine_lock:
        _engine_instance = None
