"""Ownership graph for guard organizations.

An organization lists the ids of its patrols, resources and reputation
entries; each of those records names the organization that owns it. This
manager keeps both sides in step, runs cascading deletes inside one store
transaction, and keeps each patrol's ``derived_stats`` cache current whenever
an input to the stat derivation changes.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass, replace
from typing import Any, Callable, Dict, Iterator, List, Mapping, Optional

from guard.application.services.event_bus import EventBus
from guard.application.services.record_validation import (
    level_errors,
    name_errors,
    quantity_errors,
    update_errors,
)
from guard.domain.events import OrganizationDeleted, RecordChanged
from guard.domain.models.organization import GuardModifier, GuardOrganization
from guard.domain.models.patrol import Patrol, current_time_ms
from guard.domain.models.reputation import Reputation
from guard.domain.models.resource import Resource
from guard.domain.models.stats import STAT_LIMIT, stat_errors, stats_from_mapping
from guard.domain.repositories import RecordKind, RecordStore
from guard.domain.results import CascadeError, MutationResult
from guard.domain.services.stat_derivation import DerivedStats, StatDerivationEngine

logger = logging.getLogger(__name__)

REFERENCE_FIELDS: Dict[RecordKind, str] = {
    RecordKind.PATROL: "patrols",
    RecordKind.RESOURCE: "resources",
    RecordKind.REPUTATION: "reputation",
}


@dataclass(frozen=True)
class ReferenceIssue:
    organization_id: str
    field: str
    record_id: str
    problem: str  # "missing" or "foreign"


class LifecycleManager:
    def __init__(
        self,
        store: RecordStore,
        engine: StatDerivationEngine | None = None,
        event_bus: EventBus | None = None,
        *,
        clock: Callable[[], int] | None = None,
        stat_limit: int = STAT_LIMIT,
    ) -> None:
        self.store = store
        self.engine = engine or StatDerivationEngine()
        self.event_bus = event_bus
        self.clock = clock or current_time_ms
        self.stat_limit = int(stat_limit)
        self._unsubscribe: Callable[[], None] | None = None
        if event_bus is not None:
            self._unsubscribe = event_bus.subscribe(RecordChanged, self._on_record_changed)

    def close(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    @contextmanager
    def cascade(self, operation: str, record_id: str) -> Iterator[RecordStore]:
        """Run a multi-record change in one transaction; failures roll back."""

        try:
            with self.store.transaction():
                yield self.store
        except CascadeError:
            raise
        except Exception as exc:
            logger.exception(
                "Guard cascade rolled back",
                extra={"operation": operation, "record_id": str(record_id)},
            )
            raise CascadeError(operation, str(record_id)) from exc

    # Organizations

    def create_organization(
        self,
        name: str,
        *,
        subtitle: str = "",
        base_stats: Mapping[str, int] | None = None,
    ) -> MutationResult[GuardOrganization]:
        errors = name_errors(name) + stat_errors(base_stats, limit=self.stat_limit)
        if errors:
            return MutationResult.invalid("; ".join(errors))
        organization = GuardOrganization(
            name=name.strip(),
            subtitle=str(subtitle or ""),
            base_stats=stats_from_mapping(base_stats, limit=self.stat_limit),
        )
        return MutationResult.accepted(self.store.create(RecordKind.ORGANIZATION, organization))

    def get_organization(self, organization_id: str) -> Optional[GuardOrganization]:
        organization = self.store.get(RecordKind.ORGANIZATION, organization_id)
        if organization is None:
            return None
        return self._without_dangling(organization)

    def list_organizations(self) -> List[GuardOrganization]:
        return [self._without_dangling(row) for row in self.store.list_all(RecordKind.ORGANIZATION)]

    def update_organization(self, organization_id: str, fields: Mapping[str, Any]) -> MutationResult[GuardOrganization]:
        organization = self.store.get(RecordKind.ORGANIZATION, organization_id)
        if organization is None:
            return MutationResult.not_found("organization", organization_id)
        errors = update_errors(RecordKind.ORGANIZATION, fields, limit=self.stat_limit)
        if errors:
            return MutationResult.invalid("; ".join(errors), organization)
        changes = dict(fields)
        changes["version"] = organization.version + 1
        with self.cascade("update_organization", organization_id):
            updated = self.store.update(RecordKind.ORGANIZATION, organization_id, changes)
            if any(str(path).split(".", 1)[0] == "base_stats" for path in fields):
                self.recompute_organization_patrols(organization_id)
        return MutationResult.accepted(updated)

    def delete_organization(self, organization_id: str) -> MutationResult[GuardOrganization]:
        organization = self.store.get(RecordKind.ORGANIZATION, organization_id)
        if organization is None:
            return MutationResult.not_found("organization", organization_id)

        counts: Dict[RecordKind, int] = {}
        with self.cascade("delete_organization", organization_id) as store:
            for kind in (RecordKind.PATROL, RecordKind.RESOURCE, RecordKind.REPUTATION, RecordKind.MODIFIER):
                owned = store.find_by_organization(kind, organization_id)
                for record in owned:
                    store.delete(kind, record.id)
                counts[kind] = len(owned)
            store.delete(RecordKind.ORGANIZATION, organization_id)

        logger.info(
            "Deleted organization %s with %d patrols, %d resources, %d reputation entries, %d modifiers",
            organization_id,
            counts[RecordKind.PATROL],
            counts[RecordKind.RESOURCE],
            counts[RecordKind.REPUTATION],
            counts[RecordKind.MODIFIER],
        )
        if self.event_bus is not None:
            self.event_bus.publish(
                OrganizationDeleted(
                    organization_id=organization_id,
                    patrols=counts[RecordKind.PATROL],
                    resources=counts[RecordKind.RESOURCE],
                    reputation=counts[RecordKind.REPUTATION],
                    modifiers=counts[RecordKind.MODIFIER],
                )
            )
        return MutationResult.accepted(organization)

    def organization_modifiers(self, organization: GuardOrganization) -> List[GuardModifier]:
        modifiers = []
        for modifier_id in organization.active_modifiers:
            modifier = self.store.get(RecordKind.MODIFIER, modifier_id)
            if modifier is not None:
                modifiers.append(modifier)
        return modifiers

    def organization_effective_stats(self, organization_id: str) -> Optional[Dict[str, int]]:
        organization = self.store.get(RecordKind.ORGANIZATION, organization_id)
        if organization is None:
            return None
        return self.engine.organization_effective_stats(
            organization.base_stats,
            self.organization_modifiers(organization),
        )

    # Child records

    def create_patrol(
        self,
        organization_id: str,
        name: str,
        *,
        subtitle: str = "",
        base_stats: Mapping[str, int] | None = None,
    ) -> MutationResult[Patrol]:
        errors = name_errors(name) + stat_errors(base_stats, limit=self.stat_limit)
        if errors:
            return MutationResult.invalid("; ".join(errors))
        patrol = Patrol(
            name=name.strip(),
            organization_id=organization_id,
            subtitle=str(subtitle or ""),
            base_stats=stats_from_mapping(base_stats, limit=self.stat_limit),
        )
        patrol = replace(patrol, derived_stats=self.derive_patrol_stats(patrol).values)
        return self._create_child(RecordKind.PATROL, patrol)

    def create_resource(
        self,
        organization_id: str,
        name: str,
        *,
        description: str = "",
        quantity: int = 1,
        image: str = "",
    ) -> MutationResult[Resource]:
        errors = name_errors(name) + quantity_errors(quantity)
        if errors:
            return MutationResult.invalid("; ".join(errors))
        resource = Resource(
            name=name.strip(),
            description=str(description or ""),
            quantity=quantity,
            organization_id=organization_id,
            image=str(image or ""),
        )
        return self._create_child(RecordKind.RESOURCE, resource)

    def create_reputation(
        self,
        organization_id: str,
        name: str,
        *,
        level: int = 4,
        description: str = "",
        faction: str = "",
        relationship: str = "",
        notes: str = "",
        image: str = "",
    ) -> MutationResult[Reputation]:
        errors = name_errors(name) + level_errors(level)
        if errors:
            return MutationResult.invalid("; ".join(errors))
        reputation = Reputation(
            name=name.strip(),
            description=str(description or ""),
            level=level,
            organization_id=organization_id,
            faction=str(faction or ""),
            relationship=str(relationship or ""),
            notes=str(notes or ""),
            image=str(image or ""),
        )
        return self._create_child(RecordKind.REPUTATION, reputation)

    def _create_child(self, kind: RecordKind, record: Any) -> MutationResult[Any]:
        organization_id = str(record.organization_id or "")
        if not self.store.exists(RecordKind.ORGANIZATION, organization_id):
            return MutationResult.not_found("organization", organization_id)
        with self.cascade(f"create_{kind.value}", organization_id):
            # The child must exist before the organization points at it.
            created = self.store.create(kind, record)
            self._link(organization_id, kind, created.id)
        return MutationResult.accepted(created)

    def add_patrol(self, organization_id: str, patrol_id: str) -> MutationResult[GuardOrganization]:
        return self._add_reference(organization_id, RecordKind.PATROL, patrol_id)

    def add_resource(self, organization_id: str, resource_id: str) -> MutationResult[GuardOrganization]:
        return self._add_reference(organization_id, RecordKind.RESOURCE, resource_id)

    def add_reputation(self, organization_id: str, reputation_id: str) -> MutationResult[GuardOrganization]:
        return self._add_reference(organization_id, RecordKind.REPUTATION, reputation_id)

    def remove_patrol_from_organization(self, organization_id: str, patrol_id: str) -> MutationResult[GuardOrganization]:
        return self._remove_reference(organization_id, RecordKind.PATROL, patrol_id)

    def remove_resource_from_organization(
        self,
        organization_id: str,
        resource_id: str,
    ) -> MutationResult[GuardOrganization]:
        return self._remove_reference(organization_id, RecordKind.RESOURCE, resource_id)

    def remove_reputation_from_organization(
        self,
        organization_id: str,
        reputation_id: str,
    ) -> MutationResult[GuardOrganization]:
        return self._remove_reference(organization_id, RecordKind.REPUTATION, reputation_id)

    def delete_patrol(self, patrol_id: str) -> MutationResult[Patrol]:
        return self._delete_child(RecordKind.PATROL, patrol_id)

    def delete_resource(self, resource_id: str) -> MutationResult[Resource]:
        return self._delete_child(RecordKind.RESOURCE, resource_id)

    def delete_reputation(self, reputation_id: str) -> MutationResult[Reputation]:
        return self._delete_child(RecordKind.REPUTATION, reputation_id)

    def _add_reference(self, organization_id: str, kind: RecordKind, record_id: str) -> MutationResult[GuardOrganization]:
        organization = self.store.get(RecordKind.ORGANIZATION, organization_id)
        if organization is None:
            return MutationResult.not_found("organization", organization_id)
        child = self.store.get(kind, record_id)
        if child is None:
            return MutationResult.not_found(kind.value, record_id)
        if child.organization_id not in (None, organization_id):
            return MutationResult.invalid(
                f"{kind.value} {record_id} belongs to organization {child.organization_id}",
                organization,
            )

        references = getattr(organization, REFERENCE_FIELDS[kind])
        if record_id in references and child.organization_id == organization_id:
            return MutationResult.accepted(organization)

        with self.cascade(f"add_{kind.value}", organization_id):
            if child.organization_id is None:
                adopted = {"organization_id": organization_id, "version": child.version + 1}
                if kind is RecordKind.PATROL:
                    owned = replace(child, organization_id=organization_id)
                    adopted["derived_stats"] = self.derive_patrol_stats(owned).values
                self.store.update(kind, record_id, adopted)
            updated = self._link(organization_id, kind, record_id)
        return MutationResult.accepted(updated)

    def _remove_reference(
        self,
        organization_id: str,
        kind: RecordKind,
        record_id: str,
    ) -> MutationResult[GuardOrganization]:
        organization = self.store.get(RecordKind.ORGANIZATION, organization_id)
        if organization is None:
            return MutationResult.not_found("organization", organization_id)
        return MutationResult.accepted(self._unlink(organization, kind, record_id))

    def _delete_child(self, kind: RecordKind, record_id: str) -> MutationResult[Any]:
        record = self.store.get(kind, record_id)
        if record is None:
            return MutationResult.not_found(kind.value, record_id)
        with self.cascade(f"delete_{kind.value}", record_id) as store:
            # Reference first, so no reader sees an id without its record.
            if record.organization_id:
                organization = store.get(RecordKind.ORGANIZATION, record.organization_id)
                if organization is not None:
                    self._unlink(organization, kind, record_id)
            store.delete(kind, record_id)
        return MutationResult.accepted(record)

    def _link(self, organization_id: str, kind: RecordKind, record_id: str) -> GuardOrganization:
        organization = self.store.get(RecordKind.ORGANIZATION, organization_id)
        field = REFERENCE_FIELDS[kind]
        references = list(getattr(organization, field))
        if record_id in references:
            return organization
        references.append(record_id)
        return self.store.update(
            RecordKind.ORGANIZATION,
            organization_id,
            {field: references, "version": organization.version + 1},
        )

    def _unlink(self, organization: GuardOrganization, kind: RecordKind, record_id: str) -> GuardOrganization:
        field = REFERENCE_FIELDS[kind]
        references = list(getattr(organization, field))
        if record_id not in references:
            return organization
        return self.store.update(
            RecordKind.ORGANIZATION,
            organization.id,
            {field: [ref for ref in references if ref != record_id], "version": organization.version + 1},
        )

    # Reference integrity

    def audit_references(self, organization_id: str | None = None) -> List[ReferenceIssue]:
        if organization_id is None:
            organizations = self.store.list_all(RecordKind.ORGANIZATION)
        else:
            found = self.store.get(RecordKind.ORGANIZATION, organization_id)
            organizations = [found] if found is not None else []
        issues: List[ReferenceIssue] = []
        for organization in organizations:
            issues.extend(self._reference_issues(organization))
        return issues

    def repair_references(self, organization_id: str) -> MutationResult[GuardOrganization]:
        organization = self.store.get(RecordKind.ORGANIZATION, organization_id)
        if organization is None:
            return MutationResult.not_found("organization", organization_id)
        issues = self._reference_issues(organization)
        if not issues:
            return MutationResult.accepted(organization)
        cleaned = self._strip(organization, issues)
        changes = {
            "patrols": cleaned.patrols,
            "resources": cleaned.resources,
            "reputation": cleaned.reputation,
            "active_modifiers": cleaned.active_modifiers,
            "version": organization.version + 1,
        }
        logger.warning("Repairing %d broken references on organization %s", len(issues), organization_id)
        return MutationResult.accepted(self.store.update(RecordKind.ORGANIZATION, organization_id, changes))

    def _reference_issues(self, organization: GuardOrganization) -> List[ReferenceIssue]:
        issues: List[ReferenceIssue] = []
        for kind, field in REFERENCE_FIELDS.items():
            for record_id in getattr(organization, field):
                child = self.store.get(kind, record_id)
                if child is None:
                    issues.append(ReferenceIssue(organization.id, field, record_id, "missing"))
                elif child.organization_id != organization.id:
                    issues.append(ReferenceIssue(organization.id, field, record_id, "foreign"))
        for modifier_id in organization.active_modifiers:
            if not self.store.exists(RecordKind.MODIFIER, modifier_id):
                issues.append(ReferenceIssue(organization.id, "active_modifiers", modifier_id, "missing"))
        return issues

    @staticmethod
    def _strip(organization: GuardOrganization, issues: List[ReferenceIssue]) -> GuardOrganization:
        broken: Dict[str, set[str]] = {}
        for issue in issues:
            broken.setdefault(issue.field, set()).add(issue.record_id)
        return replace(
            organization,
            patrols=[ref for ref in organization.patrols if ref not in broken.get("patrols", ())],
            resources=[ref for ref in organization.resources if ref not in broken.get("resources", ())],
            reputation=[ref for ref in organization.reputation if ref not in broken.get("reputation", ())],
            active_modifiers=[
                ref for ref in organization.active_modifiers if ref not in broken.get("active_modifiers", ())
            ],
        )

    def _without_dangling(self, organization: GuardOrganization) -> GuardOrganization:
        issues = self._reference_issues(organization)
        if not issues:
            return organization
        logger.warning(
            "Organization %s has %d broken references; hiding them: %s",
            organization.id,
            len(issues),
            ", ".join(f"{issue.field}:{issue.record_id}" for issue in issues),
        )
        return self._strip(organization, issues)

    # Derivation

    def derive_patrol_stats(self, patrol: Patrol) -> DerivedStats:
        organization = None
        if patrol.organization_id:
            organization = self.store.get(RecordKind.ORGANIZATION, patrol.organization_id)
        return self.engine.derive(
            patrol_base=patrol.base_stats,
            organization_base=organization.base_stats if organization is not None else None,
            organization_modifiers=self.organization_modifiers(organization) if organization is not None else (),
            custom_modifiers=patrol.custom_modifiers,
            effects=patrol.patrol_effects,
            now_ms=self.clock(),
        )

    def recompute_patrol(self, patrol_id: str) -> MutationResult[Patrol]:
        patrol = self.store.get(RecordKind.PATROL, patrol_id)
        if patrol is None:
            return MutationResult.not_found("patrol", patrol_id)
        derived = self.derive_patrol_stats(patrol).values
        if derived == patrol.derived_stats:
            return MutationResult.accepted(patrol)
        updated = self.store.update(
            RecordKind.PATROL,
            patrol_id,
            {"derived_stats": derived, "version": patrol.version + 1},
        )
        return MutationResult.accepted(updated)

    def recompute_organization_patrols(self, organization_id: str) -> List[Patrol]:
        """Re-derive every patrol of the organization; returns those that changed."""

        changed: List[Patrol] = []
        with self.cascade("recompute_organization_patrols", organization_id) as store:
            for patrol in store.find_by_organization(RecordKind.PATROL, organization_id):
                result = self.recompute_patrol(patrol.id)
                if result.ok and result.record.version != patrol.version:
                    changed.append(result.record)
        return changed

    def organizations_using_modifier(self, modifier_id: str) -> List[GuardOrganization]:
        return self.store.query(
            RecordKind.ORGANIZATION,
            lambda organization: modifier_id in organization.active_modifiers,
        )

    def _on_record_changed(self, event: RecordChanged) -> None:
        if event.kind == RecordKind.ORGANIZATION.value and event.operation == "update":
            if event.touches("active_modifiers", "base_stats"):
                if self.store.exists(RecordKind.ORGANIZATION, event.record_id):
                    self.recompute_organization_patrols(event.record_id)
            return
        if event.kind == RecordKind.MODIFIER.value:
            if event.operation == "update" and not event.touches("stat_modifications"):
                return
            if event.operation == "create":
                return
            for organization in self.organizations_using_modifier(event.record_id):
                self.recompute_organization_patrols(organization.id)
