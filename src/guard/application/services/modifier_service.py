from __future__ import annotations

from typing import Any, Iterable, List, Mapping, Optional

from guard.application.services.lifecycle_manager import LifecycleManager
from guard.application.services.record_validation import modification_errors, name_errors, update_errors
from guard.domain.models.organization import GuardModifier, GuardOrganization, ModifierType
from guard.domain.models.stats import modifications_from_rows
from guard.domain.repositories import RecordKind
from guard.domain.results import MutationResult


class ModifierService:
    """Organization modifiers and their activation.

    Any change to what an organization has active, or to the stat
    modifications of an active modifier, re-derives the affected patrols in
    the same transaction.
    """

    def __init__(self, lifecycle: LifecycleManager) -> None:
        self.lifecycle = lifecycle
        self.store = lifecycle.store

    def create(
        self,
        name: str,
        stat_modifications: Iterable[Any] = (),
        *,
        description: str = "",
        type: ModifierType | str = ModifierType.NEUTRAL,
        organization_id: str | None = None,
        image: str = "",
    ) -> MutationResult[GuardModifier]:
        rows = list(stat_modifications or ())
        errors = name_errors(name) + modification_errors(rows, limit=self.lifecycle.stat_limit)
        errors += update_errors(RecordKind.MODIFIER, {"type": type})
        if errors:
            return MutationResult.invalid("; ".join(errors))
        if organization_id is not None and not self.store.exists(RecordKind.ORGANIZATION, organization_id):
            return MutationResult.not_found("organization", organization_id)
        modifier = GuardModifier(
            name=name.strip(),
            description=str(description or ""),
            type=ModifierType.normalize(type.value if isinstance(type, ModifierType) else type),
            stat_modifications=modifications_from_rows(rows),
            organization_id=organization_id,
            image=str(image or ""),
        )
        return MutationResult.accepted(self.store.create(RecordKind.MODIFIER, modifier))

    def get(self, modifier_id: str) -> Optional[GuardModifier]:
        return self.store.get(RecordKind.MODIFIER, modifier_id)

    def get_all(self) -> List[GuardModifier]:
        return self.store.list_all(RecordKind.MODIFIER)

    def list_for_organization(self, organization_id: str) -> List[GuardModifier]:
        return self.store.find_by_organization(RecordKind.MODIFIER, organization_id)

    def list_active(self, organization_id: str) -> List[GuardModifier]:
        organization = self.store.get(RecordKind.ORGANIZATION, organization_id)
        if organization is None:
            return []
        return self.lifecycle.organization_modifiers(organization)

    def update(self, modifier_id: str, fields: Mapping[str, Any]) -> MutationResult[GuardModifier]:
        modifier = self.get(modifier_id)
        if modifier is None:
            return MutationResult.not_found("modifier", modifier_id)
        errors = update_errors(RecordKind.MODIFIER, fields, limit=self.lifecycle.stat_limit)
        if errors:
            return MutationResult.invalid("; ".join(errors), modifier)

        changes = dict(fields)
        if "name" in changes:
            changes["name"] = changes["name"].strip()
        if "type" in changes:
            raw = changes["type"]
            changes["type"] = ModifierType.normalize(raw.value if isinstance(raw, ModifierType) else raw)
        if "stat_modifications" in changes:
            changes["stat_modifications"] = modifications_from_rows(changes["stat_modifications"])
        changes["version"] = modifier.version + 1

        with self.lifecycle.cascade("update_modifier", modifier_id):
            updated = self.store.update(RecordKind.MODIFIER, modifier_id, changes)
            if "stat_modifications" in changes:
                for organization in self.lifecycle.organizations_using_modifier(modifier_id):
                    self.lifecycle.recompute_organization_patrols(organization.id)
        return MutationResult.accepted(updated)

    def delete(self, modifier_id: str) -> MutationResult[GuardModifier]:
        modifier = self.get(modifier_id)
        if modifier is None:
            return MutationResult.not_found("modifier", modifier_id)
        with self.lifecycle.cascade("delete_modifier", modifier_id) as store:
            affected = self.lifecycle.organizations_using_modifier(modifier_id)
            for organization in affected:
                self._set_active(organization, [ref for ref in organization.active_modifiers if ref != modifier_id])
            store.delete(RecordKind.MODIFIER, modifier_id)
            for organization in affected:
                self.lifecycle.recompute_organization_patrols(organization.id)
        return MutationResult.accepted(modifier)

    def activate(self, organization_id: str, modifier_id: str) -> MutationResult[GuardOrganization]:
        organization = self.store.get(RecordKind.ORGANIZATION, organization_id)
        if organization is None:
            return MutationResult.not_found("organization", organization_id)
        modifier = self.get(modifier_id)
        if modifier is None:
            return MutationResult.not_found("modifier", modifier_id)
        if modifier.organization_id not in (None, organization_id):
            return MutationResult.invalid(
                f"modifier {modifier_id} belongs to organization {modifier.organization_id}",
                organization,
            )
        if modifier_id in organization.active_modifiers:
            return MutationResult.accepted(organization)
        with self.lifecycle.cascade("activate_modifier", organization_id):
            updated = self._set_active(organization, [*organization.active_modifiers, modifier_id])
            self.lifecycle.recompute_organization_patrols(organization_id)
        return MutationResult.accepted(updated)

    def deactivate(self, organization_id: str, modifier_id: str) -> MutationResult[GuardOrganization]:
        organization = self.store.get(RecordKind.ORGANIZATION, organization_id)
        if organization is None:
            return MutationResult.not_found("organization", organization_id)
        if modifier_id not in organization.active_modifiers:
            return MutationResult.accepted(organization)
        with self.lifecycle.cascade("deactivate_modifier", organization_id):
            updated = self._set_active(
                organization,
                [ref for ref in organization.active_modifiers if ref != modifier_id],
            )
            self.lifecycle.recompute_organization_patrols(organization_id)
        return MutationResult.accepted(updated)

    def _set_active(self, organization: GuardOrganization, active: List[str]) -> GuardOrganization:
        return self.store.update(
            RecordKind.ORGANIZATION,
            organization.id,
            {"active_modifiers": active, "version": organization.version + 1},
        )
