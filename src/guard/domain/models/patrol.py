from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional

from guard.domain.models.stats import StatModification, default_stats

DAY_MS = 24 * 60 * 60 * 1000


class EffectSource(str, Enum):
    TEMP = "temp"
    ORGANIZATION = "organization"
    MANUAL = "manual"


class LastOrderAge(str, Enum):
    NORMAL = "normal"
    WARNING = "warning"
    DANGER = "danger"


@dataclass(frozen=True)
class PatrolEffect:
    id: str
    label: str
    modifiers: Dict[str, int] = field(default_factory=dict)
    image: str = ""
    description: str = ""
    expires_at: Optional[int] = None
    source_type: EffectSource = EffectSource.MANUAL

    def is_active(self, now_ms: int) -> bool:
        return self.expires_at is None or int(self.expires_at) >= int(now_ms)


@dataclass(frozen=True)
class PatrolOfficer:
    actor_id: str
    name: str = ""
    image: str = ""
    token_id: Optional[str] = None
    scene_id: Optional[str] = None
    is_linked: bool = True


@dataclass(frozen=True)
class PatrolSoldier:
    actor_id: str
    name: str = ""
    image: str = ""
    token_id: Optional[str] = None
    scene_id: Optional[str] = None
    reference_type: str = "linked"
    added_at: int = 0


@dataclass(frozen=True)
class LastOrder:
    text: str
    issued_at: int


@dataclass
class Patrol:
    id: str = ""
    name: str = ""
    organization_id: Optional[str] = None
    subtitle: str = ""
    base_stats: Dict[str, int] = field(default_factory=default_stats)
    derived_stats: Dict[str, int] = field(default_factory=dict)
    custom_modifiers: List[StatModification] = field(default_factory=list)
    patrol_effects: List[PatrolEffect] = field(default_factory=list)
    officer: Optional[PatrolOfficer] = None
    soldiers: List[PatrolSoldier] = field(default_factory=list)
    last_order: Optional[LastOrder] = None
    version: int = 1

    def effect(self, effect_id: str) -> Optional[PatrolEffect]:
        for effect in self.patrol_effects:
            if effect.id == effect_id:
                return effect
        return None


def classify_last_order_age(
    last_order: LastOrder,
    now_ms: int,
    *,
    warning_days: int = 7,
    danger_days: int = 30,
) -> LastOrderAge:
    age = int(now_ms) - int(last_order.issued_at)
    if age > int(danger_days) * DAY_MS:
        return LastOrderAge.DANGER
    if age > int(warning_days) * DAY_MS:
        return LastOrderAge.WARNING
    return LastOrderAge.NORMAL


def current_time_ms() -> int:
    return int(time.time() * 1000)
