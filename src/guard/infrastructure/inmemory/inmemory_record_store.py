from __future__ import annotations

import copy
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Mapping, Optional

from guard.application.services.event_bus import EventBus
from guard.domain.events import RecordChanged
from guard.domain.models.stats import STAT_LIMIT
from guard.domain.repositories import RecordKind, RecordStore
from guard.infrastructure.record_codec import (
    apply_dotted_update,
    new_record_id,
    payload_to_record,
    record_to_payload,
)


class InMemoryRecordStore(RecordStore):
    """Dict-backed store with snapshot rollback for transactions.

    Payloads are stored rather than record objects so callers never share
    mutable state with the store.
    """

    def __init__(self, event_bus: EventBus | None = None, *, stat_limit: int = STAT_LIMIT) -> None:
        self._records: Dict[RecordKind, Dict[str, dict]] = {kind: {} for kind in RecordKind}
        self._event_bus = event_bus
        self._stat_limit = int(stat_limit)
        self._depth = 0
        self._pending: List[RecordChanged] = []

    def create(self, kind: RecordKind, record: Any) -> Any:
        kind = RecordKind(kind)
        payload = record_to_payload(record)
        record_id = str(payload.get("id") or "") or new_record_id()
        if record_id in self._records[kind]:
            raise ValueError(f"{kind.value} {record_id} already exists")
        payload["id"] = record_id
        self._records[kind][record_id] = payload
        self._notify(RecordChanged(kind.value, record_id, "create", tuple(payload.keys())))
        return self._hydrate(kind, payload)

    def get(self, kind: RecordKind, record_id: str) -> Optional[Any]:
        payload = self._records[RecordKind(kind)].get(str(record_id))
        if payload is None:
            return None
        return self._hydrate(kind, payload)

    def list_all(self, kind: RecordKind) -> List[Any]:
        kind = RecordKind(kind)
        return [self._hydrate(kind, payload) for payload in self._records[kind].values()]

    def update(self, kind: RecordKind, record_id: str, fields: Mapping[str, Any]) -> Optional[Any]:
        kind = RecordKind(kind)
        current = self._records[kind].get(str(record_id))
        if current is None:
            return None
        payload = apply_dotted_update(current, fields)
        payload["id"] = str(record_id)
        self._records[kind][str(record_id)] = payload
        self._notify(RecordChanged(kind.value, str(record_id), "update", tuple(fields.keys())))
        return self._hydrate(kind, payload)

    def delete(self, kind: RecordKind, record_id: str) -> bool:
        kind = RecordKind(kind)
        removed = self._records[kind].pop(str(record_id), None)
        if removed is None:
            return False
        self._notify(RecordChanged(kind.value, str(record_id), "delete"))
        return True

    @contextmanager
    def transaction(self) -> Iterator["InMemoryRecordStore"]:
        if self._depth > 0:
            self._depth += 1
            try:
                yield self
            finally:
                self._depth -= 1
            return

        snapshot = copy.deepcopy(self._records)
        self._depth = 1
        try:
            yield self
        except BaseException:
            self._records = snapshot
            self._pending = []
            raise
        finally:
            self._depth = 0
        self._flush()

    def _hydrate(self, kind: RecordKind, payload: Mapping[str, Any]) -> Any:
        return payload_to_record(kind, copy.deepcopy(payload), stat_limit=self._stat_limit)

    def _notify(self, event: RecordChanged) -> None:
        if self._event_bus is None:
            return
        self._pending.append(event)
        if self._depth == 0:
            self._flush()

    def _flush(self) -> None:
        pending, self._pending = self._pending, []
        if self._event_bus is None:
            return
        for event in pending:
            self._event_bus.publish(event)
