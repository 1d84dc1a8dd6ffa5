import unittest
from unittest.mock import patch

# Import smart contract components
import sys
import os
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from smart_contracts import create_contract_engine
from smart_contracts.engine.vm import (
    SmartContractVM, SmartContract, VMError, OutOfGasException, ContractNotFound,
    ContractRevert
)
from smart_contracts.engine.engine import SmartContractEngine, TransactionReceipt, get_engine, reset_engine

class Counter(SmartContract):
    """Small contract used to exercise the VM"""

    def __init__(self, start: int = 0, fail_on_deploy: bool = False):
        super().__init__()
        self.count = start
        self.history = []
        self.fail_on_deploy = fail_on_deploy

    def _on_deploy(self):
        if self.fail_on_deploy:
            raise ContractRevert("deploy refused")
        self.history.append('deployed')

    def increment(self, by: int = 1) -> int:
        self.count += by
        self.history.append(self._get_caller())
        self._emit_event('Incremented', {'count': self.count})
        return self.count

    def increment_then_fail(self, by: int):
        self.increment(by)
        raise ContractRevert("after increment")

    def whoami(self) -> str:
        return self._get_caller()

    def call_other(self, other: str, function_name: str, *args):
        return self._call(other, function_name, *args)

    def pay(self, to: str, amount: int):
        self._send_value(to, amount)

    def received(self) -> int:
        return self._get_value()

    def now(self) -> int:
        return self._now()

    def recurse(self):
        return self._call(self.address, 'recurse')

    def _secret(self):
        return 'hidden'

class TestSmartContractVM(unittest.TestCase):
    """Test cases for the contract VM"""

    def setUp(self):
        self.vm = SmartContractVM(timestamp=1700000000, block_number=10)
        self.counter = Counter()
        self.other = Counter(100)
        self.address = self.vm.deploy_contract(self.counter, "0xdeployer")
        self.other_address = self.vm.deploy_contract(self.other, "0xdeployer")

    def test_execution_context_creation(self):
        context = self.vm.new_context("0x456", self.address, value=1000, gas_limit=100000)

        self.assertEqual(context.caller, "0x456")
        self.assertEqual(context.contract_address, self.address)
        self.assertEqual(context.value, 1000)
        self.assertEqual(context.block_number, 10)
        self.assertEqual(context.timestamp, 1700000000)
        self.assertEqual(context.gas_used, 0)

    def test_deploy_runs_hook_and_assigns_address(self):
        self.assertTrue(self.address.startswith("0x"))
        self.assertEqual(len(self.address), 42)
        self.assertNotEqual(self.address, self.other_address)
        self.assertEqual(self.counter.history, ['deployed'])
        self.assertTrue(self.vm.is_contract(self.address))

    def test_failed_deploy_is_undone(self):
        broken = Counter(fail_on_deploy=True)

        with self.assertRaises(ContractRevert):
            self.vm.deploy_contract(broken, "0xdeployer")

        self.assertIsNone(broken.address)
        self.assertEqual(len(self.vm.contracts), 2)

    def test_transact_returns_value_and_emits(self):
        result = self.vm.transact("0xalice", self.address, 'increment', 5)

        self.assertEqual(result, 5)
        self.assertEqual(self.vm.logs[-1]['event'], 'Incremented')
        self.assertEqual(self.vm.logs[-1]['contract'], self.address)
        self.assertEqual(self.vm.logs[-1]['block_number'], 10)

    def test_failure_rolls_back_state_and_logs(self):
        self.vm.transact("0xalice", self.address, 'increment', 1)
        log_count = len(self.vm.logs)

        context = self.vm.new_context("0xalice", self.address)
        result = self.vm.execute_contract(self.address, 'increment_then_fail', [10], context)

        self.assertFalse(result.success)
        self.assertIsInstance(result.exception, ContractRevert)
        self.assertIn('after increment', result.error)
        self.assertEqual(self.counter.count, 1)
        self.assertEqual(self.counter.history, ['deployed', '0xalice'])
        self.assertEqual(len(self.vm.logs), log_count)

    def test_nested_call_sees_calling_contract(self):
        caller = self.vm.transact("0xalice", self.address, 'call_other', self.other_address, 'whoami')

        self.assertEqual(caller, self.address)
        self.assertEqual(self.vm.transact("0xalice", self.address, 'whoami'), "0xalice")

    def test_nested_failure_rolls_back_outer_contract(self):
        with self.assertRaises(ContractRevert):
            self.vm.transact("0xalice", self.address, 'call_other', self.other_address, 'increment_then_fail', 1)

        self.assertEqual(self.other.count, 100)

    def test_private_and_missing_functions_are_rejected(self):
        with self.assertRaises(VMError):
            self.vm.transact("0xalice", self.address, '_secret')
        with self.assertRaises(VMError):
            self.vm.transact("0xalice", self.address, 'missing')
        with self.assertRaises(ContractNotFound):
            self.vm.transact("0xalice", "0xnowhere", 'increment')

    def test_value_moves_with_call(self):
        self.vm.set_balance("0xalice", 1000)

        received = self.vm.transact("0xalice", self.address, 'received', value=400)
        self.vm.transact("0xalice", self.address, 'pay', "0xbob", 150)

        self.assertEqual(received, 400)
        self.assertEqual(self.vm.get_balance("0xalice"), 600)
        self.assertEqual(self.vm.get_balance(self.address), 250)
        self.assertEqual(self.vm.get_balance("0xbob"), 150)

    def test_value_beyond_balance_fails(self):
        with self.assertRaises(VMError):
            self.vm.transact("0xalice", self.address, 'received', value=1)

    def test_block_clock(self):
        self.vm.warp(120)

        self.assertEqual(self.vm.transact("0xalice", self.address, 'now'), 1700000120)
        self.assertEqual(self.vm.block_number, 20)

        self.vm.set_block(timestamp=1800000000, number=99)
        self.assertEqual(self.vm.transact("0xalice", self.address, 'now'), 1800000000)

    def test_gas_limit(self):
        with self.assertRaises(OutOfGasException):
            self.vm.transact("0xalice", self.address, 'increment', gas_limit=1000)

        self.assertEqual(self.counter.count, 0)

    def test_call_depth_is_bounded(self):
        with self.assertRaises(VMError):
            self.vm.transact("0xalice", self.address, 'recurse')

        self.assertEqual(self.vm.frames, [])

    def test_nested_call_needs_transaction(self):
        with self.assertRaises(VMError):
            self.vm.call("0xalice", self.address, 'increment', [])

class TestSmartContractEngine(unittest.TestCase):
    """Test cases for the contract engine"""

    def setUp(self):
        self.engine = create_contract_engine(timestamp=1700000000)

    def test_deploy_contract_records_metadata(self):
        address, receipt = self.engine.deploy_contract(Counter, "0xdeployer", [7])

        self.assertIsInstance(receipt, TransactionReceipt)
        self.assertTrue(receipt.success)
        self.assertEqual(receipt.function_name, "constructor")

        metadata = self.engine.registry.get_metadata(address)
        self.assertEqual(metadata.name, "Counter")
        self.assertEqual(metadata.deployer, "0xdeployer")
        function_names = [function['name'] for function in metadata.abi['functions']]
        self.assertIn('increment', function_names)
        self.assertNotIn('_secret', function_names)

    def test_call_contract_receipts(self):
        address, _ = self.engine.deploy_contract(Counter, "0xdeployer")

        ok = self.engine.call_contract(address, 'increment', [2], "0xalice")
        failed = self.engine.call_contract(address, 'increment_then_fail', [2], "0xalice")

        self.assertTrue(ok.success)
        self.assertEqual(ok.return_data, 2)
        self.assertEqual(ok.logs[0]['event'], 'Incremented')
        self.assertFalse(failed.success)
        self.assertEqual(failed.error_type, 'ContractRevert')
        self.assertEqual(self.engine.query(address, 'increment', [0]), 2)

        self.assertEqual(self.engine.get_transaction_result(ok.transaction_hash), ok)
        self.assertEqual(len(self.engine.get_transaction_history(address="0xalice")), 2)

        stats = self.engine.get_engine_stats()
        self.assertEqual(stats['total_contracts'], 1)
        self.assertEqual(stats['failed_transactions'], 1)

    def test_query_raises_and_records_nothing(self):
        address, _ = self.engine.deploy_contract(Counter, "0xdeployer")
        history_length = len(self.engine.transaction_history)

        with self.assertRaises(ContractRevert):
            self.engine.query(address, 'increment_then_fail', [1])

        self.assertEqual(len(self.engine.transaction_history), history_length)

    def test_query_discards_state_changes(self):
        address, _ = self.engine.deploy_contract(Counter, "0xdeployer")
        self.engine.call_contract(address, 'increment', [1], "0xalice")
        log_count = len(self.engine.vm.logs)

        self.assertEqual(self.engine.query(address, 'increment', [5], caller="0xbob"), 6)

        counter = self.engine.vm.get_contract(address)
        self.assertEqual(counter.count, 1)
        self.assertEqual(counter.history, ['deployed', "0xalice"])
        self.assertEqual(len(self.engine.vm.logs), log_count)
        self.assertEqual(self.engine.query(address, 'increment', [0]), 1)

    def test_failed_deployment_logs_and_raises(self):
        with patch('smart_contracts.engine.engine.logger') as logger:
            with self.assertRaises(ContractRevert):
                self.engine.deploy_contract(Counter, "0xdeployer", [0, True])

        logger.error.assert_called_once()
        self.assertEqual(self.engine.registry.list_contracts(), [])

    def test_account_balances(self):
        self.engine.set_account_balance("0xalice", 50)
        self.assertEqual(self.engine.get_account_balance("0xalice"), 50)

    def test_global_engine_singleton(self):
        reset_engine()
        engine = get_engine()

        self.assertIs(get_engine(), engine)
        reset_engine()
        self.assertIsNot(get_engine(), engine)
        reset_engine()

if __name__ == '__main__':
    unittest.main(verbosity=2)
