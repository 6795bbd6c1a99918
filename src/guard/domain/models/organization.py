from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional

from guard.domain.models.stats import StatModification, default_stats


class ModifierType(str, Enum):
    POSITIVE = "positive"
    NEGATIVE = "negative"
    NEUTRAL = "neutral"

    @classmethod
    def normalize(cls, value: str | None) -> "ModifierType":
        lowered = str(value or "").strip().lower()
        for member in cls:
            if member.value == lowered:
                return member
        return cls.NEUTRAL


@dataclass
class GuardModifier:
    """Organization-scoped set of stat adjustments.

    ``type`` is descriptive only; nothing checks it against the sign of the
    modifications. A modifier without ``organization_id`` is a shared template
    any organization may activate.
    """

    id: str = ""
    name: str = ""
    description: str = ""
    type: ModifierType = ModifierType.NEUTRAL
    stat_modifications: List[StatModification] = field(default_factory=list)
    organization_id: Optional[str] = None
    image: str = ""
    version: int = 1

    def total_for(self, stat_name: str) -> int:
        return sum(int(mod.value) for mod in self.stat_modifications if mod.stat_name == stat_name)


@dataclass
class GuardOrganization:
    id: str = ""
    name: str = ""
    subtitle: str = ""
    base_stats: Dict[str, int] = field(default_factory=default_stats)
    active_modifiers: List[str] = field(default_factory=list)
    resources: List[str] = field(default_factory=list)
    reputation: List[str] = field(default_factory=list)
    patrols: List[str] = field(default_factory=list)
    version: int = 1

    @property
    def total_stats(self) -> int:
        return sum(int(value) for value in self.base_stats.values())

    @property
    def patrol_count(self) -> int:
        return len(self.patrols)

    @property
    def resource_count(self) -> int:
        return len(self.resources)

    @property
    def reputation_count(self) -> int:
        return len(self.reputation)

    @property
    def modifier_count(self) -> int:
        return len(self.active_modifiers)
