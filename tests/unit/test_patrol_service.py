import sys
from pathlib import Path
import unittest

sys.path.insert(0, str(Path(__file__).resolve().parents[2] / "src"))

from guard.application.services.event_bus import EventBus
from guard.bootstrap import create_guard_management
from guard.domain.events import RecordChanged
from guard.domain.models.patrol import DAY_MS, LastOrderAge
from guard.domain.repositories import RecordKind
from guard.domain.results import DeclineReason
from guard.infrastructure.inmemory.inmemory_record_store import InMemoryRecordStore
from guard.settings import GuardSettings

PATROL_BASE = {"robustismo": 5, "analitica": 4, "subterfugio": 3, "elocuencia": 2}


class _Clock:
    def __init__(self, now: int) -> None:
        self.now = now

    def __call__(self) -> int:
        return self.now


class PatrolServiceTests(unittest.TestCase):
    def setUp(self) -> None:
        self.clock = _Clock(1_000_000)
        bus = EventBus()
        self.management = create_guard_management(
            GuardSettings(),
            store=InMemoryRecordStore(bus),
            event_bus=bus,
            clock=self.clock,
        )
        lifecycle = self.management.lifecycle
        self.organization = lifecycle.create_organization("City Watch").record
        self.patrol = lifecycle.create_patrol(self.organization.id, "Alpha", base_stats=PATROL_BASE).record
        self.patrols = self.management.patrols

    def _activate_drill(self):
        modifier = self.management.modifiers.create(
            "Drilled Recruits",
            [("robustismo", 2)],
            organization_id=self.organization.id,
        ).record
        self.management.modifiers.activate(self.organization.id, modifier.id)
        return modifier

    def test_layered_derivation_end_to_end(self) -> None:
        self._activate_drill()
        result = self.patrols.add_effect(self.patrol.id, "Well rested", {"robustismo": 3})
        self.assertTrue(result.ok)

        breakdown = self.patrols.stat_breakdown(self.patrol.id)["robustismo"]

        self.assertEqual(5, breakdown.base)
        self.assertEqual(3, breakdown.effects_total)
        self.assertEqual(2, breakdown.org_total)
        self.assertEqual(10, breakdown.total)
        self.assertEqual(10, self.patrols.get(self.patrol.id).derived_stats["robustismo"])
        self.assertEqual(4, self.patrols.get(self.patrol.id).derived_stats["analitica"])

    def test_removing_an_effect_drops_its_contribution(self) -> None:
        self._activate_drill()
        patrol = self.patrols.add_effect(self.patrol.id, "Well rested", {"robustismo": 3}).record
        effect_id = patrol.patrol_effects[0].id

        result = self.patrols.remove_effect(self.patrol.id, effect_id)

        breakdown = self.patrols.stat_breakdown(self.patrol.id)["robustismo"]
        self.assertTrue(result.ok)
        self.assertEqual(7, breakdown.total)
        self.assertEqual((), breakdown.effects)
        self.assertEqual(7, result.record.derived_stats["robustismo"])
        self.assertEqual(DeclineReason.NOT_FOUND, self.patrols.remove_effect(self.patrol.id, effect_id).reason)

    def test_custom_modifiers_are_labelled_and_removed_by_index(self) -> None:
        self.patrols.add_custom_modifier(self.patrol.id, "analitica", 2)
        self.patrols.add_custom_modifier(self.patrol.id, "analitica", -1)

        breakdown = self.patrols.stat_breakdown(self.patrol.id)["analitica"]
        self.assertEqual(["Custom modifier", "Custom modifier"], [item.source_label for item in breakdown.effects])
        self.assertEqual(5, breakdown.total)

        result = self.patrols.remove_custom_modifier(self.patrol.id, 0)
        self.assertEqual(3, result.record.derived_stats["analitica"])
        self.assertEqual(DeclineReason.VALIDATION, self.patrols.remove_custom_modifier(self.patrol.id, 5).reason)

    def test_effect_stops_counting_once_expired(self) -> None:
        self.patrols.add_effect(self.patrol.id, "Adrenaline", {"robustismo": 4}, duration_ms=1_000)
        expires_at = self.patrols.get(self.patrol.id).patrol_effects[0].expires_at
        self.assertEqual(self.clock.now + 1_000, expires_at)

        self.clock.now = expires_at
        self.assertEqual(9, self.patrols.stat_breakdown(self.patrol.id)["robustismo"].total)

        self.clock.now = expires_at + 1
        self.assertEqual(5, self.patrols.stat_breakdown(self.patrol.id)["robustismo"].total)

        purged = self.patrols.purge_expired_effects(self.patrol.id)
        self.assertEqual([], purged.record.patrol_effects)
        self.assertEqual(5, purged.record.derived_stats["robustismo"])

    def test_reading_a_patrol_drops_expired_effects_from_the_cache(self) -> None:
        self.patrols.add_effect(self.patrol.id, "Rested", {"robustismo": 3}, expires_at=self.clock.now + 1_000)
        version = self.patrols.get(self.patrol.id).version
        self.assertEqual(8, self.patrols.get(self.patrol.id).derived_stats["robustismo"])

        self.clock.now += 4_000
        patrol = self.patrols.get(self.patrol.id)

        self.assertEqual(5, patrol.derived_stats["robustismo"])
        self.assertEqual(self.patrols.stat_breakdown(self.patrol.id)["robustismo"].total, patrol.derived_stats["robustismo"])
        self.assertEqual(version + 1, patrol.version)
        self.assertEqual(version + 1, self.patrols.get_all()[0].version)
        self.assertEqual(5, self.patrols.list_for_organization(self.organization.id)[0].derived_stats["robustismo"])
        self.assertEqual(1, len(patrol.patrol_effects))

    def test_add_effect_validation(self) -> None:
        both = self.patrols.add_effect(self.patrol.id, "Odd", {"robustismo": 1}, expires_at=5, duration_ms=5)
        too_big = self.patrols.add_effect(self.patrol.id, "Giant", {"robustismo": 100})
        unknown = self.patrols.add_effect(self.patrol.id, "Odd", {}, source_type="spell")
        bad_expiry = self.patrols.add_effect(self.patrol.id, "Rested", {"robustismo": 3}, expires_at="tomorrow")
        bad_duration = self.patrols.add_effect(self.patrol.id, "Rested", {"robustismo": 3}, duration_ms="1h")
        negative = self.patrols.add_effect(self.patrol.id, "Rested", {"robustismo": 3}, duration_ms=-5)

        for result in (both, too_big, unknown, bad_expiry, bad_duration, negative):
            self.assertEqual(DeclineReason.VALIDATION, result.reason)
        self.assertEqual(1, self.patrols.get(self.patrol.id).version)

    def test_soldiers_allow_duplicates_and_remove_first_match(self) -> None:
        self.patrols.add_soldier(self.patrol.id, "actor-1", name="Brann")
        self.patrols.add_soldier(self.patrol.id, "actor-2", name="Ilse")
        self.patrols.add_soldier(self.patrol.id, "actor-1", name="Brann")

        result = self.patrols.remove_soldier(self.patrol.id, "actor-1")

        self.assertEqual(["actor-2", "actor-1"], [soldier.actor_id for soldier in result.record.soldiers])
        self.assertEqual(self.clock.now, result.record.soldiers[0].added_at)

        version = result.record.version
        absent = self.patrols.remove_soldier(self.patrol.id, "actor-9")
        self.assertTrue(absent.ok)
        self.assertEqual(version, absent.record.version)

    def test_officer_assignment(self) -> None:
        assigned = self.patrols.assign_officer(self.patrol.id, "actor-7", name="Sergeant Vell", is_linked=False)

        self.assertEqual("Sergeant Vell", assigned.record.officer.name)
        self.assertFalse(assigned.record.officer.is_linked)
        self.assertIsNone(self.patrols.clear_officer(self.patrol.id).record.officer)
        self.assertEqual(DeclineReason.VALIDATION, self.patrols.assign_officer(self.patrol.id, " ").reason)

    def test_last_order_age_thresholds(self) -> None:
        self.assertIsNone(self.patrols.last_order_age(self.patrol.id))
        self.patrols.update_last_order(self.patrol.id, "Hold the gate")
        issued = self.clock.now

        self.clock.now = issued + 7 * DAY_MS
        self.assertEqual(LastOrderAge.NORMAL, self.patrols.last_order_age(self.patrol.id))
        self.clock.now = issued + 8 * DAY_MS
        self.assertEqual(LastOrderAge.WARNING, self.patrols.last_order_age(self.patrol.id))
        self.clock.now = issued + 31 * DAY_MS
        self.assertEqual(LastOrderAge.DANGER, self.patrols.last_order_age(self.patrol.id))

        self.assertEqual(DeclineReason.VALIDATION, self.patrols.update_last_order(self.patrol.id, "  ").reason)

    def test_dotted_base_stat_update_writes_once(self) -> None:
        events = []
        self.management.event_bus.subscribe(RecordChanged, events.append)

        result = self.patrols.update(self.patrol.id, {"base_stats.robustismo": 9})

        patrol_updates = [event for event in events if event.kind == RecordKind.PATROL.value]
        self.assertEqual(1, len(patrol_updates))
        self.assertEqual(9, result.record.base_stats["robustismo"])
        self.assertEqual(9, result.record.derived_stats["robustismo"])
        self.assertEqual(4, result.record.base_stats["analitica"])
        self.assertEqual(2, result.record.version)

    def test_update_rejects_derived_and_reference_fields(self) -> None:
        for fields in ({"derived_stats": {"robustismo": 50}}, {"organization_id": "x"}, {"soldiers": []}):
            self.assertEqual(DeclineReason.VALIDATION, self.patrols.update(self.patrol.id, fields).reason)

    def test_create_and_delete_through_service(self) -> None:
        beta = self.patrols.create(self.organization.id, "Beta").record

        self.assertEqual(2, len(self.patrols.list_for_organization(self.organization.id)))
        self.assertTrue(self.patrols.delete(beta.id).ok)
        self.assertEqual([self.patrol.id], [row.id for row in self.patrols.list_for_organization(self.organization.id)])

    def test_missing_patrol(self) -> None:
        self.assertEqual(DeclineReason.NOT_FOUND, self.patrols.add_soldier("ghost", "actor-1").reason)
        self.assertIsNone(self.patrols.stat_breakdown("ghost"))


if __name__ == "__main__":
    unittest.main()
