import sys
from pathlib import Path
import unittest

sys.path.insert(0, str(Path(__file__).resolve().parents[2] / "src"))

from guard.application.services.event_bus import EventBus
from guard.domain.events import RecordChanged
from guard.domain.models.organization import GuardOrganization
from guard.domain.models.resource import Resource
from guard.domain.repositories import RecordKind
from guard.infrastructure.inmemory.inmemory_record_store import InMemoryRecordStore


class InMemoryRecordStoreTests(unittest.TestCase):
    def setUp(self) -> None:
        self.bus = EventBus()
        self.events: list[RecordChanged] = []
        self.bus.subscribe(RecordChanged, self.events.append)
        self.store = InMemoryRecordStore(self.bus)

    def test_create_allocates_hex_id_and_keeps_version(self) -> None:
        created = self.store.create(RecordKind.ORGANIZATION, GuardOrganization(name="City Watch"))

        self.assertEqual(16, len(created.id))
        int(created.id, 16)
        self.assertEqual(1, created.version)
        self.assertEqual("create", self.events[0].operation)

    def test_records_returned_are_copies(self) -> None:
        created = self.store.create(RecordKind.ORGANIZATION, GuardOrganization(name="City Watch"))
        created.patrols.append("ghost")
        created.base_stats["robustismo"] = 50

        stored = self.store.get(RecordKind.ORGANIZATION, created.id)
        self.assertEqual([], stored.patrols)
        self.assertEqual(0, stored.base_stats["robustismo"])

    def test_update_accepts_dotted_paths(self) -> None:
        created = self.store.create(RecordKind.ORGANIZATION, GuardOrganization(name="City Watch"))

        updated = self.store.update(
            RecordKind.ORGANIZATION,
            created.id,
            {"base_stats.robustismo": 7, "version": 2},
        )

        self.assertEqual(7, updated.base_stats["robustismo"])
        self.assertEqual(0, updated.base_stats["analitica"])
        self.assertEqual(2, updated.version)
        self.assertEqual(("base_stats.robustismo", "version"), self.events[-1].fields)

    def test_missing_records(self) -> None:
        self.assertIsNone(self.store.get(RecordKind.PATROL, "nope"))
        self.assertIsNone(self.store.update(RecordKind.PATROL, "nope", {"name": "x"}))
        self.assertFalse(self.store.delete(RecordKind.PATROL, "nope"))

    def test_duplicate_id_is_rejected(self) -> None:
        self.store.create(RecordKind.RESOURCE, Resource(id="res-1", name="Rope"))

        with self.assertRaises(ValueError):
            self.store.create(RecordKind.RESOURCE, Resource(id="res-1", name="Rope"))

    def test_find_by_organization_filters_owner(self) -> None:
        self.store.create(RecordKind.RESOURCE, Resource(name="Rope", organization_id="org-1"))
        self.store.create(RecordKind.RESOURCE, Resource(name="Oil", organization_id="org-2"))

        owned = self.store.find_by_organization(RecordKind.RESOURCE, "org-1")

        self.assertEqual(["Rope"], [row.name for row in owned])

    def test_transaction_rollback_restores_state_and_drops_events(self) -> None:
        kept = self.store.create(RecordKind.RESOURCE, Resource(name="Rope", quantity=3))
        self.events.clear()

        with self.assertRaises(RuntimeError):
            with self.store.transaction():
                self.store.create(RecordKind.RESOURCE, Resource(name="Oil"))
                self.store.update(RecordKind.RESOURCE, kept.id, {"quantity": 0, "version": 2})
                self.store.delete(RecordKind.RESOURCE, kept.id)
                raise RuntimeError("interrupted")

        self.assertEqual(["Rope"], [row.name for row in self.store.list_all(RecordKind.RESOURCE)])
        self.assertEqual(3, self.store.get(RecordKind.RESOURCE, kept.id).quantity)
        self.assertEqual([], self.events)

    def test_events_wait_for_outermost_commit(self) -> None:
        with self.store.transaction():
            with self.store.transaction():
                self.store.create(RecordKind.RESOURCE, Resource(name="Rope"))
            self.assertEqual([], self.events)
            self.store.create(RecordKind.RESOURCE, Resource(name="Oil"))
            self.assertEqual([], self.events)

        self.assertEqual(["create", "create"], [event.operation for event in self.events])


if __name__ == "__main__":
    unittest.main()
