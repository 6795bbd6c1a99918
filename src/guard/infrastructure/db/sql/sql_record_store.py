from __future__ import annotations

import json
from contextlib import contextmanager
from typing import Any, Iterator, List, Mapping, Optional

from sqlalchemy import text
from sqlalchemy.orm import Session, sessionmaker

from guard.application.services.event_bus import EventBus
from guard.domain.events import RecordChanged
from guard.domain.models.stats import STAT_LIMIT
from guard.domain.repositories import RecordKind, RecordStore
from guard.infrastructure.db.sql.schema import TABLE_NAME
from guard.infrastructure.record_codec import (
    apply_dotted_update,
    new_record_id,
    payload_to_record,
    record_to_payload,
)


def _columns(payload: Mapping[str, Any]) -> dict[str, Any]:
    organization_id = payload.get("organization_id")
    try:
        version = int(payload.get("version") or 1)
    except (TypeError, ValueError):
        version = 1
    return {
        "organization_id": str(organization_id) if organization_id else None,
        "version": version,
        "payload": json.dumps(payload, sort_keys=True),
    }


class SqlRecordStore(RecordStore):
    """``guard_record`` table store.

    Outside ``transaction()`` every call commits on its own. Inside it, all
    calls share one session and commit or roll back together.
    """

    def __init__(
        self,
        session_factory: sessionmaker,
        event_bus: EventBus | None = None,
        *,
        stat_limit: int = STAT_LIMIT,
    ) -> None:
        self._session_factory = session_factory
        self._event_bus = event_bus
        self._stat_limit = int(stat_limit)
        self._active: Session | None = None
        self._depth = 0
        self._pending: List[RecordChanged] = []

    @contextmanager
    def _session(self) -> Iterator[Session]:
        if self._active is not None:
            yield self._active
            return
        try:
            with self._session_factory.begin() as session:
                yield session
        except BaseException:
            self._pending = []
            raise
        self._flush()

    def _fetch_payload(self, session: Session, kind: RecordKind, record_id: str) -> Optional[dict]:
        row = session.execute(
            text(f"SELECT payload FROM {TABLE_NAME} WHERE kind = :kind AND record_id = :record_id"),
            {"kind": kind.value, "record_id": str(record_id)},
        ).first()
        if row is None:
            return None
        return json.loads(row.payload)

    def create(self, kind: RecordKind, record: Any) -> Any:
        kind = RecordKind(kind)
        payload = record_to_payload(record)
        record_id = str(payload.get("id") or "") or new_record_id()
        payload["id"] = record_id
        with self._session() as session:
            if self._fetch_payload(session, kind, record_id) is not None:
                raise ValueError(f"{kind.value} {record_id} already exists")
            session.execute(
                text(
                    f"""
                    INSERT INTO {TABLE_NAME} (kind, record_id, organization_id, version, payload)
                    VALUES (:kind, :record_id, :organization_id, :version, :payload)
                    """
                ),
                {"kind": kind.value, "record_id": record_id, **_columns(payload)},
            )
            self._notify(RecordChanged(kind.value, record_id, "create", tuple(payload.keys())))
        return self._hydrate(kind, payload)

    def get(self, kind: RecordKind, record_id: str) -> Optional[Any]:
        kind = RecordKind(kind)
        with self._session() as session:
            payload = self._fetch_payload(session, kind, record_id)
        return None if payload is None else self._hydrate(kind, payload)

    def list_all(self, kind: RecordKind) -> List[Any]:
        kind = RecordKind(kind)
        with self._session() as session:
            rows = session.execute(
                text(f"SELECT payload FROM {TABLE_NAME} WHERE kind = :kind ORDER BY record_id"),
                {"kind": kind.value},
            ).all()
        return [self._hydrate(kind, json.loads(row.payload)) for row in rows]

    def find_by_organization(self, kind: RecordKind, organization_id: str) -> List[Any]:
        kind = RecordKind(kind)
        with self._session() as session:
            rows = session.execute(
                text(
                    f"""
                    SELECT payload FROM {TABLE_NAME}
                    WHERE kind = :kind AND organization_id = :organization_id
                    ORDER BY record_id
                    """
                ),
                {"kind": kind.value, "organization_id": str(organization_id)},
            ).all()
        return [self._hydrate(kind, json.loads(row.payload)) for row in rows]

    def update(self, kind: RecordKind, record_id: str, fields: Mapping[str, Any]) -> Optional[Any]:
        kind = RecordKind(kind)
        with self._session() as session:
            current = self._fetch_payload(session, kind, record_id)
            if current is None:
                return None
            payload = apply_dotted_update(current, fields)
            payload["id"] = str(record_id)
            session.execute(
                text(
                    f"""
                    UPDATE {TABLE_NAME}
                    SET organization_id = :organization_id, version = :version, payload = :payload
                    WHERE kind = :kind AND record_id = :record_id
                    """
                ),
                {"kind": kind.value, "record_id": str(record_id), **_columns(payload)},
            )
            self._notify(RecordChanged(kind.value, str(record_id), "update", tuple(fields.keys())))
        return self._hydrate(kind, payload)

    def delete(self, kind: RecordKind, record_id: str) -> bool:
        kind = RecordKind(kind)
        with self._session() as session:
            result = session.execute(
                text(f"DELETE FROM {TABLE_NAME} WHERE kind = :kind AND record_id = :record_id"),
                {"kind": kind.value, "record_id": str(record_id)},
            )
            deleted = int(result.rowcount or 0) > 0
            if deleted:
                self._notify(RecordChanged(kind.value, str(record_id), "delete"))
        return deleted

    @contextmanager
    def transaction(self) -> Iterator["SqlRecordStore"]:
        if self._depth > 0:
            self._depth += 1
            try:
                yield self
            finally:
                self._depth -= 1
            return

        self._depth = 1
        try:
            with self._session_factory.begin() as session:
                self._active = session
                yield self
        except BaseException:
            self._pending = []
            raise
        finally:
            self._active = None
            self._depth = 0
        self._flush()

    def _hydrate(self, kind: RecordKind, payload: Mapping[str, Any]) -> Any:
        return payload_to_record(kind, payload, stat_limit=self._stat_limit)

    def _notify(self, event: RecordChanged) -> None:
        if self._event_bus is not None:
            self._pending.append(event)

    def _flush(self) -> None:
        pending, self._pending = self._pending, []
        if self._event_bus is None:
            return
        for event in pending:
            self._event_bus.publish(event)
