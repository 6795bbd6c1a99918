import sys
from pathlib import Path
import unittest

sys.path.insert(0, str(Path(__file__).resolve().parents[2] / "src"))

from guard.domain.models.resource import Resource
from guard.domain.services.resource_ledger import ResourceLedger


class ResourceLedgerTests(unittest.TestCase):
    def setUp(self) -> None:
        self.ledger = ResourceLedger()
        self.resource = Resource(id="res-1", name="Healing Potions", quantity=12, organization_id="org-1", version=1)

    def test_consume_everything_reaches_exactly_zero(self) -> None:
        result = self.ledger.consume(self.resource, 12)

        self.assertTrue(result.ok)
        self.assertEqual(0, result.record.quantity)
        self.assertTrue(result.record.is_empty)
        self.assertEqual(2, result.record.version)

    def test_consume_more_than_available_changes_nothing(self) -> None:
        result = self.ledger.consume(self.resource, 13)

        self.assertFalse(result.ok)
        self.assertEqual(12, result.record.quantity)
        self.assertEqual(1, result.record.version)
        self.assertIn("only 12 available", result.message)

    def test_non_positive_amounts_are_rejected(self) -> None:
        for amount in (0, -1, True, 1.5):
            self.assertFalse(self.ledger.consume(self.resource, amount).ok, amount)
            self.assertFalse(self.ledger.add(self.resource, amount).ok, amount)

    def test_add_increments(self) -> None:
        result = self.ledger.add(self.resource, 3)

        self.assertEqual(15, result.record.quantity)
        self.assertEqual(2, result.record.version)

    def test_set_quantity_allows_zero_and_rejects_negative(self) -> None:
        self.assertEqual(0, self.ledger.set_quantity(self.resource, 0).record.quantity)
        self.assertFalse(self.ledger.set_quantity(self.resource, -1).ok)

    def test_transfer_only_debits_the_source(self) -> None:
        result = self.ledger.transfer_to(self.resource, "org-2", 5)

        self.assertTrue(result.ok)
        self.assertEqual(7, result.record.quantity)
        self.assertEqual("org-1", result.record.organization_id)

    def test_transfer_needs_a_target_and_a_valid_amount(self) -> None:
        self.assertFalse(self.ledger.transfer_to(self.resource, "  ", 5).ok)
        self.assertFalse(self.ledger.transfer_to(self.resource, "org-2", 50).ok)

    def test_low_threshold(self) -> None:
        self.assertFalse(self.resource.is_low())
        self.assertTrue(Resource(quantity=5).is_low())
        self.assertTrue(Resource(quantity=12).is_low(threshold=12))


if __name__ == "__main__":
    unittest.main()
