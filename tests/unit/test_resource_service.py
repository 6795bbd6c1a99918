import sys
from pathlib import Path
import unittest

sys.path.insert(0, str(Path(__file__).resolve().parents[2] / "src"))

from guard.application.services.event_bus import EventBus
from guard.bootstrap import create_guard_management
from guard.domain.events import ResourceTransferred
from guard.domain.repositories import RecordKind
from guard.domain.results import CascadeError, DeclineReason
from guard.infrastructure.inmemory.inmemory_record_store import InMemoryRecordStore
from guard.settings import GuardSettings


class _FlakyResourceStore(InMemoryRecordStore):
    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self.fail_resource_create = False
        self.fail_update_id = None

    def create(self, kind, record):
        if self.fail_resource_create and kind is RecordKind.RESOURCE:
            raise RuntimeError("storage offline")
        return super().create(kind, record)

    def update(self, kind, record_id, fields):
        if record_id == self.fail_update_id:
            raise RuntimeError("storage offline")
        return super().update(kind, record_id, fields)


class ResourceServiceTests(unittest.TestCase):
    def setUp(self) -> None:
        bus = EventBus()
        self.management = create_guard_management(GuardSettings(), store=_FlakyResourceStore(bus), event_bus=bus)
        lifecycle = self.management.lifecycle
        self.city = lifecycle.create_organization("City Watch").record
        self.harbor = lifecycle.create_organization("Harbor Guard").record
        self.weapons = lifecycle.create_resource(self.city.id, "Steel Weapons", quantity=25, image="sword.png").record
        self.resources = self.management.resources

    def test_consume_add_and_set(self) -> None:
        self.assertEqual(20, self.resources.consume(self.weapons.id, 5).record.quantity)
        self.assertEqual(22, self.resources.add(self.weapons.id, 2).record.quantity)
        result = self.resources.set_quantity(self.weapons.id, 0)

        self.assertEqual(0, result.record.quantity)
        self.assertEqual(4, result.record.version)
        self.assertEqual(DeclineReason.VALIDATION, self.resources.consume(self.weapons.id, 1).reason)

    def test_transfer_creates_destination_resource(self) -> None:
        events = []
        self.management.event_bus.subscribe(ResourceTransferred, events.append)

        result = self.resources.transfer(self.weapons.id, self.harbor.id, 10)

        self.assertTrue(result.ok)
        self.assertEqual(15, result.record.source.quantity)
        self.assertEqual(10, result.record.destination.quantity)
        self.assertEqual("Steel Weapons", result.record.destination.name)
        self.assertEqual("sword.png", result.record.destination.image)
        self.assertEqual(self.harbor.id, result.record.destination.organization_id)
        harbor = self.management.store.get(RecordKind.ORGANIZATION, self.harbor.id)
        self.assertEqual([result.record.destination.id], harbor.resources)
        self.assertEqual(1, len(events))
        self.assertEqual(10, events[0].amount)

    def test_transfer_credits_existing_resource_ignoring_case(self) -> None:
        existing = self.management.lifecycle.create_resource(self.harbor.id, "steel weapons", quantity=3).record

        result = self.resources.transfer(self.weapons.id, self.harbor.id, 4)

        self.assertEqual(existing.id, result.record.destination.id)
        self.assertEqual(7, self.resources.get(existing.id).quantity)
        self.assertEqual(1, len(self.resources.list_for_organization(self.harbor.id)))

    def test_transfer_declines_without_changes(self) -> None:
        too_much = self.resources.transfer(self.weapons.id, self.harbor.id, 26)
        missing = self.resources.transfer(self.weapons.id, "ghost", 1)
        same = self.resources.transfer(self.weapons.id, self.city.id, 1)
        zero = self.resources.transfer(self.weapons.id, self.harbor.id, 0)

        self.assertEqual(DeclineReason.VALIDATION, too_much.reason)
        self.assertEqual(DeclineReason.NOT_FOUND, missing.reason)
        self.assertEqual(DeclineReason.VALIDATION, same.reason)
        self.assertEqual(DeclineReason.VALIDATION, zero.reason)
        self.assertEqual(25, self.resources.get(self.weapons.id).quantity)
        self.assertEqual([], self.resources.list_for_organization(self.harbor.id))

    def test_transfer_rolls_back_debit_when_destination_create_fails(self) -> None:
        store = self.management.store
        store.fail_resource_create = True

        with self.assertLogs("guard.application.services.lifecycle_manager", level="ERROR"):
            with self.assertRaises(CascadeError):
                self.resources.transfer(self.weapons.id, self.harbor.id, 10)

        source = self.resources.get(self.weapons.id)
        self.assertEqual(25, source.quantity)
        self.assertEqual(1, source.version)
        self.assertEqual([], self.resources.list_for_organization(self.harbor.id))
        self.assertEqual([], store.get(RecordKind.ORGANIZATION, self.harbor.id).resources)

    def test_transfer_rolls_back_debit_when_credit_fails(self) -> None:
        existing = self.management.lifecycle.create_resource(self.harbor.id, "Steel Weapons", quantity=3).record
        self.management.store.fail_update_id = existing.id

        with self.assertLogs("guard.application.services.lifecycle_manager", level="ERROR"):
            with self.assertRaises(CascadeError) as raised:
                self.resources.transfer(self.weapons.id, self.harbor.id, 10)

        self.assertIsInstance(raised.exception.__cause__, RuntimeError)
        self.assertEqual(25, self.resources.get(self.weapons.id).quantity)
        self.assertEqual(3, self.resources.get(existing.id).quantity)

    def test_list_low(self) -> None:
        potions = self.management.lifecycle.create_resource(self.city.id, "Healing Potions", quantity=4).record

        low = self.resources.list_low(self.city.id)

        self.assertEqual([potions.id], [row.id for row in low])

    def test_update_validates_fields(self) -> None:
        self.assertEqual(
            DeclineReason.VALIDATION,
            self.resources.update(self.weapons.id, {"quantity": -1}).reason,
        )
        self.assertEqual(
            DeclineReason.VALIDATION,
            self.resources.update(self.weapons.id, {"organization_id": self.harbor.id}).reason,
        )

        result = self.resources.update(self.weapons.id, {"name": "  Iron Weapons ", "description": "Dull"})

        self.assertEqual("Iron Weapons", result.record.name)
        self.assertEqual(2, result.record.version)

    def test_create_and_delete_through_service(self) -> None:
        rope = self.resources.create(self.city.id, "Rope", quantity=2).record

        self.assertTrue(self.resources.delete(rope.id).ok)
        self.assertIsNone(self.resources.get(rope.id))
        self.assertEqual([self.weapons.id], self.management.store.get(RecordKind.ORGANIZATION, self.city.id).resources)

    def test_missing_resource(self) -> None:
        self.assertEqual(DeclineReason.NOT_FOUND, self.resources.add("ghost", 1).reason)
        self.assertEqual(DeclineReason.NOT_FOUND, self.resources.transfer("ghost", self.harbor.id, 1).reason)


if __name__ == "__main__":
    unittest.main()
