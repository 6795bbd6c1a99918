"""Conversion between guard records and plain JSON-ready payloads.

Stores keep payloads; services see dataclasses. Hydration is the only place
where stored values are clamped back into range.
"""

from __future__ import annotations

import copy
import dataclasses
import uuid
from enum import Enum
from typing import Any, Callable, Dict, Mapping

from guard.domain.models.organization import GuardModifier, GuardOrganization, ModifierType
from guard.domain.models.patrol import (
    EffectSource,
    LastOrder,
    Patrol,
    PatrolEffect,
    PatrolOfficer,
    PatrolSoldier,
)
from guard.domain.models.reputation import Reputation, clamp_level
from guard.domain.models.resource import Resource
from guard.domain.models.stats import STAT_LIMIT, modifications_from_rows, stats_from_mapping
from guard.domain.repositories import RecordKind


def to_plain(value: Any) -> Any:
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return {f.name: to_plain(getattr(value, f.name)) for f in dataclasses.fields(value)}
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, Mapping):
        return {str(key): to_plain(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_plain(item) for item in value]
    return value


def new_record_id() -> str:
    return uuid.uuid4().hex[:16]


def record_to_payload(record: Any) -> Dict[str, Any]:
    return to_plain(record)


def apply_dotted_update(payload: Mapping[str, Any], fields: Mapping[str, Any]) -> Dict[str, Any]:
    """Return a copy of ``payload`` with each dotted path set to its value."""

    updated = copy.deepcopy(dict(payload))
    for path, value in fields.items():
        parts = [part for part in str(path).split(".") if part]
        if not parts:
            raise KeyError(f"empty update path: {path!r}")
        cursor = updated
        for part in parts[:-1]:
            nested = cursor.get(part)
            if not isinstance(nested, dict):
                nested = {}
                cursor[part] = nested
            cursor = nested
        cursor[parts[-1]] = to_plain(value)
    return updated


def _text(raw: Any) -> str:
    return "" if raw is None else str(raw)


def _optional_text(raw: Any) -> str | None:
    text = _text(raw).strip()
    return text or None


def _version(raw: Any) -> int:
    try:
        return max(1, int(raw))
    except Exception:
        return 1


def _organization(payload: Mapping[str, Any], limit: int) -> GuardOrganization:
    return GuardOrganization(
        id=_text(payload.get("id")),
        name=_text(payload.get("name")),
        subtitle=_text(payload.get("subtitle")),
        base_stats=stats_from_mapping(payload.get("base_stats"), limit=limit),
        active_modifiers=[str(item) for item in payload.get("active_modifiers") or []],
        resources=[str(item) for item in payload.get("resources") or []],
        reputation=[str(item) for item in payload.get("reputation") or []],
        patrols=[str(item) for item in payload.get("patrols") or []],
        version=_version(payload.get("version")),
    )


def _modifier(payload: Mapping[str, Any], limit: int) -> GuardModifier:
    return GuardModifier(
        id=_text(payload.get("id")),
        name=_text(payload.get("name")),
        description=_text(payload.get("description")),
        type=ModifierType.normalize(payload.get("type")),
        stat_modifications=modifications_from_rows(payload.get("stat_modifications")),
        organization_id=_optional_text(payload.get("organization_id")),
        image=_text(payload.get("image")),
        version=_version(payload.get("version")),
    )


def _effect(raw: Mapping[str, Any]) -> PatrolEffect:
    expires = raw.get("expires_at")
    try:
        source = EffectSource(str(raw.get("source_type") or EffectSource.MANUAL.value))
    except ValueError:
        source = EffectSource.MANUAL
    return PatrolEffect(
        id=_text(raw.get("id")),
        label=_text(raw.get("label")),
        modifiers={str(k): int(v) for k, v in (raw.get("modifiers") or {}).items()},
        image=_text(raw.get("image")),
        description=_text(raw.get("description")),
        expires_at=None if expires is None else int(expires),
        source_type=source,
    )


def _officer(raw: Mapping[str, Any] | None) -> PatrolOfficer | None:
    if not raw or not _text(raw.get("actor_id")).strip():
        return None
    return PatrolOfficer(
        actor_id=_text(raw.get("actor_id")),
        name=_text(raw.get("name")),
        image=_text(raw.get("image")),
        token_id=_optional_text(raw.get("token_id")),
        scene_id=_optional_text(raw.get("scene_id")),
        is_linked=bool(raw.get("is_linked", True)),
    )


def _soldier(raw: Mapping[str, Any]) -> PatrolSoldier:
    return PatrolSoldier(
        actor_id=_text(raw.get("actor_id")),
        name=_text(raw.get("name")),
        image=_text(raw.get("image")),
        token_id=_optional_text(raw.get("token_id")),
        scene_id=_optional_text(raw.get("scene_id")),
        reference_type=_text(raw.get("reference_type") or "linked"),
        added_at=int(raw.get("added_at") or 0),
    )


def _last_order(raw: Mapping[str, Any] | None) -> LastOrder | None:
    if not raw or not _text(raw.get("text")).strip():
        return None
    return LastOrder(text=_text(raw.get("text")), issued_at=int(raw.get("issued_at") or 0))


def _patrol(payload: Mapping[str, Any], limit: int) -> Patrol:
    derived = payload.get("derived_stats") or {}
    return Patrol(
        id=_text(payload.get("id")),
        name=_text(payload.get("name")),
        organization_id=_optional_text(payload.get("organization_id")),
        subtitle=_text(payload.get("subtitle")),
        base_stats=stats_from_mapping(payload.get("base_stats"), limit=limit),
        derived_stats={str(k): int(v) for k, v in derived.items()},
        custom_modifiers=modifications_from_rows(payload.get("custom_modifiers")),
        patrol_effects=[_effect(row) for row in payload.get("patrol_effects") or [] if isinstance(row, Mapping)],
        officer=_officer(payload.get("officer")),
        soldiers=[_soldier(row) for row in payload.get("soldiers") or [] if isinstance(row, Mapping)],
        last_order=_last_order(payload.get("last_order")),
        version=_version(payload.get("version")),
    )


def _resource(payload: Mapping[str, Any], limit: int) -> Resource:
    try:
        quantity = max(0, int(payload.get("quantity", 0)))
    except Exception:
        quantity = 0
    return Resource(
        id=_text(payload.get("id")),
        name=_text(payload.get("name")),
        description=_text(payload.get("description")),
        quantity=quantity,
        organization_id=_optional_text(payload.get("organization_id")),
        image=_text(payload.get("image")),
        version=_version(payload.get("version")),
    )


def _reputation(payload: Mapping[str, Any], limit: int) -> Reputation:
    return Reputation(
        id=_text(payload.get("id")),
        name=_text(payload.get("name")),
        description=_text(payload.get("description")),
        level=clamp_level(payload.get("level")),
        organization_id=_optional_text(payload.get("organization_id")),
        faction=_text(payload.get("faction")),
        relationship=_text(payload.get("relationship")),
        notes=_text(payload.get("notes")),
        image=_text(payload.get("image")),
        version=_version(payload.get("version")),
    )


_HYDRATORS: Dict[RecordKind, Callable[[Mapping[str, Any], int], Any]] = {
    RecordKind.ORGANIZATION: _organization,
    RecordKind.MODIFIER: _modifier,
    RecordKind.PATROL: _patrol,
    RecordKind.RESOURCE: _resource,
    RecordKind.REPUTATION: _reputation,
}


def payload_to_record(kind: RecordKind, payload: Mapping[str, Any], *, stat_limit: int = STAT_LIMIT) -> Any:
    return _HYDRATORS[RecordKind(kind)](payload, int(stat_limit))

