import unittest

# Import oracle components
import sys
import os
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from smart_contracts import create_contract_engine
from smart_contracts.financial import STALENESS_TIMEOUT
from smart_contracts.financial.oracle_lib import (
    DataQuality, assess_round, normalize_amount, denormalize_amount, scale_price, usd_value, token_amount
)
from oracles import PriceFeed, RoundData, EMPTY_ROUND, DEFAULT_FEED_DECIMALS, create_price_feed

E18 = 10**18
E8 = 10**8
NOW = 1700000000

class TestPriceFeed(unittest.TestCase):
    """Test cases for the price feed contract"""

    def setUp(self):
        self.engine = create_contract_engine(timestamp=NOW)
        self.feed, _ = self.engine.deploy_contract(PriceFeed, "0xowner", [8, "WETH / USD", "0xowner"])

    def test_empty_feed(self):
        self.assertEqual(self.engine.query(self.feed, 'latest_round_data'), EMPTY_ROUND)
        self.assertTrue(EMPTY_ROUND.is_empty)

    def test_update_answer_opens_new_round(self):
        self.engine.call_contract(self.feed, 'update_answer', [2000 * E8], "0xowner")
        self.engine.vm.warp(60)
        self.engine.call_contract(self.feed, 'update_answer', [2100 * E8], "0xowner")

        latest = self.engine.query(self.feed, 'latest_round_data')
        self.assertEqual(latest.round_id, 2)
        self.assertEqual(latest.answer, 2100 * E8)
        self.assertEqual(latest.updated_at, NOW + 60)
        self.assertEqual(latest.answered_in_round, 2)
        self.assertEqual(self.engine.query(self.feed, 'get_round_data', [1]).answer, 2000 * E8)

    def test_only_owner_publishes(self):
        receipt = self.engine.call_contract(self.feed, 'update_answer', [1], "0xmallory")

        self.assertTrue(receipt.success)
        self.assertFalse(receipt.return_data)
        self.assertEqual(self.engine.query(self.feed, 'latest_round_data'), EMPTY_ROUND)

    def test_explicit_round_data(self):
        self.engine.call_contract(self.feed, 'update_round_data', [5, 1999 * E8, NOW - 10, None, 4], "0xowner")

        latest = self.engine.query(self.feed, 'latest_round_data')
        self.assertEqual(latest.round_id, 5)
        self.assertEqual(latest.started_at, NOW - 10)
        self.assertEqual(latest.answered_in_round, 4)

    def test_create_price_feed(self):
        feed = create_price_feed(self.engine, "0xowner", "WBTC", initial_price=30000 * E8)

        self.assertEqual(self.engine.query(feed, 'get_decimals'), DEFAULT_FEED_DECIMALS)
        self.assertEqual(self.engine.query(feed, 'get_description'), "WBTC / USD")
        self.assertEqual(self.engine.query(feed, 'latest_round_data').answer, 30000 * E8)

class TestRoundAssessment(unittest.TestCase):

    def round(self, answer=2000 * E8, updated_at=NOW, round_id=1, answered_in_round=1):
        return RoundData(round_id=round_id, answer=answer, started_at=updated_at,
                         updated_at=updated_at, answered_in_round=answered_in_round)

    def test_fresh_round(self):
        self.assertEqual(assess_round(self.round(), NOW), DataQuality.HIGH)
        self.assertEqual(assess_round(self.round(updated_at=NOW - STALENESS_TIMEOUT), NOW), DataQuality.HIGH)

    def test_non_positive_answers(self):
        self.assertEqual(assess_round(self.round(answer=0), NOW), DataQuality.INVALID)
        self.assertEqual(assess_round(self.round(answer=-1), NOW), DataQuality.INVALID)
        self.assertEqual(assess_round(EMPTY_ROUND, NOW), DataQuality.INVALID)

    def test_stale_rounds(self):
        old = self.round(updated_at=NOW - STALENESS_TIMEOUT - 1)
        carried_over = self.round(round_id=3, answered_in_round=2)

        self.assertEqual(assess_round(old, NOW), DataQuality.STALE)
        self.assertEqual(assess_round(carried_over, NOW), DataQuality.STALE)

class TestConversions(unittest.TestCase):

    def test_normalization(self):
        self.assertEqual(normalize_amount(1, 8), 10**10)
        self.assertEqual(denormalize_amount(10**10 + 5, 8), 1)
        self.assertEqual(scale_price(2000 * E8, 8), 2000 * E18)

    def test_usd_value(self):
        self.assertEqual(usd_value(E18, 18, 2000 * E8, 8), 2000 * E18)
        self.assertEqual(usd_value(E8 // 2, 8, 30000 * E8, 8), 15000 * E18)

    def test_token_amount(self):
        self.assertEqual(token_amount(2000 * E18, 18, 2000 * E8, 8), E18)
        self.assertEqual(token_amount(15000 * E18, 8, 30000 * E8, 8), E8 // 2)

    def test_rounding_goes_down(self):
        # 10 wei of USD buys 3.33 wei of a 3 USD asset
        self.assertEqual(token_amount(10, 18, 3 * E8, 8), 3)
        # Less than one satoshi of WBTC
        self.assertEqual(token_amount(10**13, 8, 30000 * E8, 8), 0)

    def test_round_trip_never_gains(self):
        cases = [
            (1, 18, 3 * E8, 8),
            (123456789, 18, 1999 * E8 + 12345678, 8),
            (7, 8, 30000 * E8, 8),
            (10**21 + 1, 18, 7 * 10**17, 18),
            (999, 6, 99999999, 8)
        ]
        for amount, decimals, price, feed_decimals in cases:
            value = usd_value(amount, decimals, price, feed_decimals)
            self.assertLessEqual(token_amount(value, decimals, price, feed_decimals), amount)

if __name__ == '__main__':
    unittest.main(verbosity=2)
