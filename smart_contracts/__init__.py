"""Smart Contracts Module

This module provides the PUSD protocol and the host it runs on:
- Virtual Machine for atomic contract execution
- Contract engine for deployment, receipts and history
- PUSD token, controller, liquidations and flash operations

Components:
- VM: Virtual machine with call frames, block clock and rollback
- Engine: Contract deployment and management
- Financial: PUSD protocol contracts
"""

# Import core smart contract components
from .engine.vm import SmartContractVM, SmartContract
from .engine.engine import SmartContractEngine, get_engine, reset_engine
from .financial.token import ERC20Token, PUSDToken
from .financial.controller import PUSDController
from .financial import create_pusd_system

__all__ = [
    'SmartContractVM',
    'SmartContract',
    'SmartContractEngine',
    'ERC20Token',
    'PUSDToken',
    'PUSDController',
    'create_contract_engine',
    'create_pusd_system',
    'get_engine',
    'reset_engine'
]

__version__ = '1.0.0'
__author__ = 'PUSD Protocol Team'

def create_contract_engine(timestamp=None, block_number=1):
    """Create a smart contract engine

    Args:
        timestamp: Initial block timestamp, defaults to the wall clock
        block_number: Initial block number

    Returns:
        SmartContractEngine: Engine on a fresh VM
    """
    return SmartContractEngine(SmartContractVM(timestamp=timestamp, block_number=block_number))
