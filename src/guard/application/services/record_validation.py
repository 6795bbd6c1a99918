"""Input validation shared by the guard services.

Validators return a list of messages; an empty list means the input may be
written. Nothing here touches the store.
"""

from __future__ import annotations

from typing import Any, Iterable, Mapping

from guard.domain.models.organization import ModifierType
from guard.domain.models.reputation import MAX_LEVEL, MIN_LEVEL
from guard.domain.models.stats import STAT_LIMIT, StatModification, stat_errors
from guard.domain.repositories import RecordKind

# Fields a caller may set through the generic ``update`` operations. Reference
# sets, ownership, derived caches and versions are maintained by the services.
EDITABLE_FIELDS: dict[RecordKind, frozenset[str]] = {
    RecordKind.ORGANIZATION: frozenset({"name", "subtitle", "base_stats"}),
    RecordKind.MODIFIER: frozenset({"name", "description", "type", "stat_modifications", "image"}),
    RecordKind.PATROL: frozenset({"name", "subtitle", "base_stats"}),
    RecordKind.RESOURCE: frozenset({"name", "description", "quantity", "image"}),
    RecordKind.REPUTATION: frozenset(
        {"name", "description", "level", "faction", "relationship", "notes", "image"}
    ),
}


def is_count(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def name_errors(name: Any) -> list[str]:
    if not isinstance(name, str) or not name.strip():
        return ["name is required"]
    return []


def stat_value_errors(stat_name: str, value: Any, *, limit: int = STAT_LIMIT) -> list[str]:
    return stat_errors({stat_name: value}, limit=limit)


def modification_errors(rows: Iterable[Any] | None, *, limit: int = STAT_LIMIT) -> list[str]:
    errors: list[str] = []
    for row in rows or ():
        if isinstance(row, StatModification):
            name, value = row.stat_name, row.value
        elif isinstance(row, Mapping):
            name, value = row.get("stat_name"), row.get("value")
        elif isinstance(row, (list, tuple)) and len(row) == 2:
            name, value = row
        else:
            errors.append("stat modifications must be (stat_name, value) pairs")
            continue
        errors.extend(stat_value_errors(str(name or ""), value, limit=limit))
    return errors


def quantity_errors(quantity: Any) -> list[str]:
    if not is_count(quantity) or quantity < 0:
        return ["quantity must be a non-negative integer"]
    return []


def level_errors(level: Any) -> list[str]:
    if not is_count(level) or level < MIN_LEVEL or level > MAX_LEVEL:
        return [f"reputation level must be an integer within [{MIN_LEVEL}, {MAX_LEVEL}]"]
    return []


def _field_errors(root: str, rest: str, value: Any, limit: int) -> list[str]:
    if root == "name":
        return name_errors(value)
    if root == "base_stats":
        if rest:
            return stat_value_errors(rest, value, limit=limit)
        if not isinstance(value, Mapping):
            return ["base_stats must be a mapping of name to integer"]
        return stat_errors(value, limit=limit)
    if root == "stat_modifications":
        return modification_errors(value, limit=limit)
    if root == "quantity":
        return quantity_errors(value)
    if root == "level":
        return level_errors(value)
    if root == "type":
        allowed = {member.value for member in ModifierType}
        text = value.value if isinstance(value, ModifierType) else str(value or "").strip().lower()
        if text not in allowed:
            return [f"type must be one of {sorted(allowed)}"]
        return []
    if value is not None and not isinstance(value, str):
        return [f"{root} must be text"]
    return []


def update_errors(kind: RecordKind, fields: Mapping[str, Any], *, limit: int = STAT_LIMIT) -> list[str]:
    """Check a dotted-path update against the editable fields of ``kind``."""

    if not fields:
        return ["no fields to update"]
    editable = EDITABLE_FIELDS[RecordKind(kind)]
    errors: list[str] = []
    for path, value in fields.items():
        root, _, rest = str(path).partition(".")
        if root not in editable:
            errors.append(f"field '{path}' cannot be updated")
            continue
        if rest and root != "base_stats":
            errors.append(f"field '{path}' cannot be updated")
            continue
        errors.extend(_field_errors(root, rest, value, limit))
    return errors
