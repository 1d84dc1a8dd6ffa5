"""Smart Contract Engine Module

This module provides the execution host for the protocol contracts:

- Virtual Machine (VM) with atomic transactions and rollback
- Call frames carrying caller identity, attached value and block time
- Smart Contract Engine for deployment, receipts and history
- Contract registry and metadata management
"""

from .vm import (
    SmartContractVM,
    SmartContract,
    ExecutionContext,
    ExecutionResult,
    VMException,
    OutOfGasException,
    ContractNotFound,
    ContractRevert,
    DEFAULT_GAS_LIMIT,
    ZERO_ADDRESS
)

from .engine import (
    SmartContractEngine,
    ContractRegistry,
    ContractMetadata,
    TransactionReceipt,
    get_engine,
    reset_engine
)

__all__ = [
    # VM classes
    'SmartContractVM',
    'SmartContract',
    'ExecutionContext',
    'ExecutionResult',
    'VMException',
    'OutOfGasException',
    'ContractNotFound',
    'ContractRevert',
    'DEFAULT_GAS_LIMIT',
    'ZERO_ADDRESS',

    # Engine classes
    'SmartContractEngine',
    'ContractRegistry',
    'ContractMetadata',
    'TransactionReceipt',
    'get_engine',
    'reset_engine'
]

__version__ = '1.0.0'
__author__ = 'PUSD Protocol Team'
