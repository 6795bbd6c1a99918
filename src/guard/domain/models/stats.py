from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Iterable, Mapping

STAT_NAMES = ("robustismo", "analitica", "subterfugio", "elocuencia")
STAT_LIMIT = 99

DEFAULT_GUARD_STATS: Dict[str, int] = {name: 0 for name in STAT_NAMES}


@dataclass(frozen=True)
class StatModification:
    stat_name: str
    value: int


def default_stats() -> Dict[str, int]:
    return dict(DEFAULT_GUARD_STATS)


def clamp_stat(value: Any, limit: int = STAT_LIMIT) -> int:
    try:
        number = int(value)
    except Exception:
        return 0
    return max(-int(limit), min(int(limit), number))


def stats_from_mapping(raw: Mapping[str, Any] | None, *, limit: int = STAT_LIMIT) -> Dict[str, int]:
    """Hydrate a stat block from stored data, clamping into the allowed range.

    Missing default stats are filled with 0 so every record exposes the full
    default set; extra stat names are preserved.
    """

    stats = default_stats()
    for key, value in (raw or {}).items():
        name = str(key).strip()
        if name:
            stats[name] = clamp_stat(value, limit)
    return stats


def stat_errors(raw: Mapping[str, Any] | None, *, limit: int = STAT_LIMIT) -> list[str]:
    errors: list[str] = []
    if raw is None:
        return errors
    if not isinstance(raw, Mapping):
        return ["stats must be a mapping of name to integer"]
    for key, value in raw.items():
        name = str(key or "").strip()
        if not name:
            errors.append("stat names must not be blank")
            continue
        if isinstance(value, bool) or not isinstance(value, int):
            errors.append(f"stat '{name}' must be an integer")
            continue
        if value < -int(limit) or value > int(limit):
            errors.append(f"stat '{name}' must be within [-{limit}, {limit}]")
    return errors


def modifications_from_rows(rows: Iterable[Any] | None) -> list[StatModification]:
    mods: list[StatModification] = []
    for row in rows or ():
        if isinstance(row, StatModification):
            mods.append(row)
            continue
        if isinstance(row, Mapping):
            name = str(row.get("stat_name", "") or "").strip()
            value = row.get("value", 0)
        else:
            try:
                name, value = row
            except (TypeError, ValueError):
                continue
            name = str(name or "").strip()
        if not name:
            continue
        try:
            mods.append(StatModification(stat_name=name, value=int(value)))
        except (TypeError, ValueError):
            continue
    return mods
