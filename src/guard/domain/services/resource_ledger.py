from __future__ import annotations

from dataclasses import replace

from guard.domain.models.resource import Resource
from guard.domain.results import MutationResult


def _is_count(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


class ResourceLedger:
    def consume(self, resource: Resource, amount: int) -> MutationResult[Resource]:
        if not _is_count(amount) or amount <= 0:
            return MutationResult.invalid("amount must be a positive integer", resource)
        if amount > int(resource.quantity):
            return MutationResult.invalid(
                f"cannot consume {amount}; only {resource.quantity} available",
                resource,
            )
        return self._with_quantity(resource, int(resource.quantity) - amount)

    def add(self, resource: Resource, amount: int) -> MutationResult[Resource]:
        if not _is_count(amount) or amount <= 0:
            return MutationResult.invalid("amount must be a positive integer", resource)
        return self._with_quantity(resource, int(resource.quantity) + amount)

    def set_quantity(self, resource: Resource, quantity: int) -> MutationResult[Resource]:
        if not _is_count(quantity) or quantity < 0:
            return MutationResult.invalid("quantity must be a non-negative integer", resource)
        return self._with_quantity(resource, quantity)

    def transfer_to(self, resource: Resource, target_organization_id: str, amount: int) -> MutationResult[Resource]:
        """Debit side of a transfer.

        Crediting the target organization is left to the caller so the
        debit and the credit can share one transaction.
        """

        if not str(target_organization_id or "").strip():
            return MutationResult.invalid("target organization is required", resource)
        return self.consume(resource, amount)

    @staticmethod
    def _with_quantity(resource: Resource, quantity: int) -> MutationResult[Resource]:
        return MutationResult.accepted(replace(resource, quantity=int(quantity), version=int(resource.version) + 1))
