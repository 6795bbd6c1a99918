from __future__ import annotations

from abc import ABC, abstractmethod
from contextlib import AbstractContextManager
from enum import Enum
from typing import Any, Callable, List, Mapping, Optional


class RecordKind(str, Enum):
    ORGANIZATION = "organization"
    MODIFIER = "modifier"
    PATROL = "patrol"
    RESOURCE = "resource"
    REPUTATION = "reputation"


class RecordStore(ABC):
    """Document storage consumed by the guard services.

    Records are the dataclasses in ``guard.domain.models``. ``update`` takes
    flat dotted paths (``"base_stats.robustismo"``) and writes exactly what it
    is given; version bookkeeping belongs to the callers.
    """

    @abstractmethod
    def create(self, kind: RecordKind, record: Any) -> Any:
        raise NotImplementedError

    @abstractmethod
    def get(self, kind: RecordKind, record_id: str) -> Optional[Any]:
        raise NotImplementedError

    @abstractmethod
    def list_all(self, kind: RecordKind) -> List[Any]:
        raise NotImplementedError

    @abstractmethod
    def update(self, kind: RecordKind, record_id: str, fields: Mapping[str, Any]) -> Optional[Any]:
        raise NotImplementedError

    @abstractmethod
    def delete(self, kind: RecordKind, record_id: str) -> bool:
        raise NotImplementedError

    @abstractmethod
    def transaction(self) -> AbstractContextManager:
        raise NotImplementedError

    def query(self, kind: RecordKind, predicate: Callable[[Any], bool]) -> List[Any]:
        return [record for record in self.list_all(kind) if predicate(record)]

    def find_by_organization(self, kind: RecordKind, organization_id: str) -> List[Any]:
        return self.query(kind, lambda record: getattr(record, "organization_id", None) == organization_id)

    def exists(self, kind: RecordKind, record_id: str) -> bool:
        return self.get(kind, record_id) is not None
