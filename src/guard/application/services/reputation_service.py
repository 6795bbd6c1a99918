from __future__ import annotations

from typing import Any, List, Mapping, Optional

from guard.application.services.lifecycle_manager import LifecycleManager
from guard.application.services.record_validation import update_errors
from guard.domain.models.reputation import Reputation
from guard.domain.repositories import RecordKind
from guard.domain.results import MutationResult
from guard.domain.services.reputation_state import ReputationStateMachine


class ReputationService:
    def __init__(self, lifecycle: LifecycleManager, machine: ReputationStateMachine | None = None) -> None:
        self.lifecycle = lifecycle
        self.store = lifecycle.store
        self.machine = machine or ReputationStateMachine()

    def create(self, organization_id: str, name: str, **fields: Any) -> MutationResult[Reputation]:
        """Create a reputation entry; ``fields`` are the keyword options of
        ``LifecycleManager.create_reputation``."""

        return self.lifecycle.create_reputation(organization_id, name, **fields)

    def delete(self, reputation_id: str) -> MutationResult[Reputation]:
        return self.lifecycle.delete_reputation(reputation_id)

    def get(self, reputation_id: str) -> Optional[Reputation]:
        return self.store.get(RecordKind.REPUTATION, reputation_id)

    def get_all(self) -> List[Reputation]:
        return self.store.list_all(RecordKind.REPUTATION)

    def list_for_organization(self, organization_id: str) -> List[Reputation]:
        return self.store.find_by_organization(RecordKind.REPUTATION, organization_id)

    def find_by_faction(self, faction: str, organization_id: str | None = None) -> List[Reputation]:
        wanted = str(faction or "").strip().casefold()
        return self.store.query(
            RecordKind.REPUTATION,
            lambda row: row.faction.strip().casefold() == wanted
            and (organization_id is None or row.organization_id == organization_id),
        )

    def list_by_level(self, organization_id: str | None = None) -> List[Reputation]:
        """Best standing first; ties keep name order."""

        rows = self.get_all() if organization_id is None else self.list_for_organization(organization_id)
        return sorted(rows, key=lambda row: (-int(row.level), row.name.casefold()))

    def update(self, reputation_id: str, fields: Mapping[str, Any]) -> MutationResult[Reputation]:
        reputation = self.get(reputation_id)
        if reputation is None:
            return MutationResult.not_found("reputation", reputation_id)
        errors = update_errors(RecordKind.REPUTATION, fields)
        if errors:
            return MutationResult.invalid("; ".join(errors), reputation)
        changes = {path: value.strip() if path == "name" else value for path, value in fields.items()}
        changes["version"] = reputation.version + 1
        return MutationResult.accepted(self.store.update(RecordKind.REPUTATION, reputation_id, changes))

    def improve(self, reputation_id: str) -> MutationResult[Reputation]:
        reputation = self.get(reputation_id)
        if reputation is None:
            return MutationResult.not_found("reputation", reputation_id)
        return self._persist(self.machine.improve(reputation))

    def worsen(self, reputation_id: str) -> MutationResult[Reputation]:
        reputation = self.get(reputation_id)
        if reputation is None:
            return MutationResult.not_found("reputation", reputation_id)
        return self._persist(self.machine.worsen(reputation))

    def set_level(self, reputation_id: str, level: int) -> MutationResult[Reputation]:
        reputation = self.get(reputation_id)
        if reputation is None:
            return MutationResult.not_found("reputation", reputation_id)
        return self._persist(self.machine.set_level(reputation, level))

    def _persist(self, result: MutationResult[Reputation]) -> MutationResult[Reputation]:
        if not result.ok:
            return result
        record = result.record
        updated = self.store.update(
            RecordKind.REPUTATION,
            record.id,
            {"level": record.level, "version": record.version},
        )
        return MutationResult.accepted(updated)
