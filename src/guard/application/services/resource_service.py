from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, List, Mapping, Optional

from guard.application.services.lifecycle_manager import LifecycleManager
from guard.application.services.record_validation import update_errors
from guard.domain.events import ResourceTransferred
from guard.domain.models.resource import LOW_RESOURCE_THRESHOLD, Resource
from guard.domain.repositories import RecordKind
from guard.domain.results import MutationResult
from guard.domain.services.resource_ledger import ResourceLedger

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ResourceTransfer:
    source: Resource
    destination: Resource
    amount: int


class ResourceService:
    def __init__(
        self,
        lifecycle: LifecycleManager,
        ledger: ResourceLedger | None = None,
        *,
        low_threshold: int = LOW_RESOURCE_THRESHOLD,
    ) -> None:
        self.lifecycle = lifecycle
        self.store = lifecycle.store
        self.ledger = ledger or ResourceLedger()
        self.low_threshold = int(low_threshold)

    def create(
        self,
        organization_id: str,
        name: str,
        *,
        description: str = "",
        quantity: int = 1,
        image: str = "",
    ) -> MutationResult[Resource]:
        return self.lifecycle.create_resource(
            organization_id,
            name,
            description=description,
            quantity=quantity,
            image=image,
        )

    def delete(self, resource_id: str) -> MutationResult[Resource]:
        return self.lifecycle.delete_resource(resource_id)

    def get(self, resource_id: str) -> Optional[Resource]:
        return self.store.get(RecordKind.RESOURCE, resource_id)

    def get_all(self) -> List[Resource]:
        return self.store.list_all(RecordKind.RESOURCE)

    def list_for_organization(self, organization_id: str) -> List[Resource]:
        return self.store.find_by_organization(RecordKind.RESOURCE, organization_id)

    def list_low(self, organization_id: str) -> List[Resource]:
        return [row for row in self.list_for_organization(organization_id) if row.is_low(self.low_threshold)]

    def update(self, resource_id: str, fields: Mapping[str, Any]) -> MutationResult[Resource]:
        resource = self.get(resource_id)
        if resource is None:
            return MutationResult.not_found("resource", resource_id)
        errors = update_errors(RecordKind.RESOURCE, fields)
        if errors:
            return MutationResult.invalid("; ".join(errors), resource)
        changes = {path: value.strip() if path == "name" else value for path, value in fields.items()}
        changes["version"] = resource.version + 1
        return MutationResult.accepted(self.store.update(RecordKind.RESOURCE, resource_id, changes))

    def consume(self, resource_id: str, amount: int) -> MutationResult[Resource]:
        resource = self.get(resource_id)
        if resource is None:
            return MutationResult.not_found("resource", resource_id)
        return self._persist(self.ledger.consume(resource, amount))

    def add(self, resource_id: str, amount: int) -> MutationResult[Resource]:
        resource = self.get(resource_id)
        if resource is None:
            return MutationResult.not_found("resource", resource_id)
        return self._persist(self.ledger.add(resource, amount))

    def set_quantity(self, resource_id: str, quantity: int) -> MutationResult[Resource]:
        resource = self.get(resource_id)
        if resource is None:
            return MutationResult.not_found("resource", resource_id)
        return self._persist(self.ledger.set_quantity(resource, quantity))

    def transfer(self, resource_id: str, target_organization_id: str, amount: int) -> MutationResult[ResourceTransfer]:
        """Move ``amount`` to the same-named resource of another organization.

        The destination is matched by name, ignoring case, and created in the
        target organization when it has none. Debit and credit commit together.
        """

        source = self.get(resource_id)
        if source is None:
            return MutationResult.not_found("resource", resource_id)
        if not self.store.exists(RecordKind.ORGANIZATION, target_organization_id):
            return MutationResult.not_found("organization", target_organization_id)
        if target_organization_id == source.organization_id:
            return MutationResult.invalid("source and target organization are the same")

        debit = self.ledger.transfer_to(source, target_organization_id, amount)
        if not debit.ok:
            return MutationResult.invalid(debit.message)

        with self.lifecycle.cascade("transfer_resource", resource_id):
            updated_source = self._write_quantity(debit.record)
            destination = self._find_by_name(target_organization_id, source.name)
            if destination is None:
                created = self.lifecycle.create_resource(
                    target_organization_id,
                    source.name,
                    description=source.description,
                    quantity=amount,
                    image=source.image,
                )
                if not created.ok:
                    raise ValueError(created.message)
                destination = created.record
            else:
                credit = self.ledger.add(destination, amount)
                destination = self._write_quantity(credit.record)

        logger.info(
            "Transferred %d of %s from %s to organization %s",
            amount,
            source.name,
            source.organization_id,
            target_organization_id,
        )
        if self.lifecycle.event_bus is not None:
            self.lifecycle.event_bus.publish(
                ResourceTransferred(
                    source_id=updated_source.id,
                    destination_id=destination.id,
                    target_organization_id=target_organization_id,
                    amount=amount,
                )
            )
        return MutationResult.accepted(ResourceTransfer(updated_source, destination, amount))

    def _find_by_name(self, organization_id: str, name: str) -> Optional[Resource]:
        wanted = name.strip().casefold()
        for resource in self.list_for_organization(organization_id):
            if resource.name.strip().casefold() == wanted:
                return resource
        return None

    def _persist(self, result: MutationResult[Resource]) -> MutationResult[Resource]:
        if not result.ok:
            return result
        return MutationResult.accepted(self._write_quantity(result.record))

    def _write_quantity(self, resource: Resource) -> Resource:
        return self.store.update(
            RecordKind.RESOURCE,
            resource.id,
            {"quantity": resource.quantity, "version": resource.version},
        )
