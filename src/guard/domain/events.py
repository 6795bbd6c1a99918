from dataclasses import dataclass, field
from typing import Tuple


@dataclass(frozen=True)
class RecordChanged:
    kind: str
    record_id: str
    operation: str
    fields: Tuple[str, ...] = field(default_factory=tuple)

    def touches(self, *names: str) -> bool:
        """True when any changed path is one of ``names`` or nested below it."""

        for path in self.fields:
            root = path.split(".", 1)[0]
            if root in names:
                return True
        return False


@dataclass(frozen=True)
class OrganizationDeleted:
    organization_id: str
    patrols: int
    resources: int
    reputation: int
    modifiers: int


@dataclass(frozen=True)
class ResourceTransferred:
    source_id: str
    destination_id: str
    target_organization_id: str
    amount: int
