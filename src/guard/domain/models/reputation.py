from __future__ import annotations

from dataclasses import dataclass
from enum import Enum, IntEnum
from typing import Optional


class ReputationLevel(IntEnum):
    ENEMIES = 1
    HOSTILE = 2
    DISTRUSTFUL = 3
    NEUTRAL = 4
    FRIENDLY = 5
    TRUSTING = 6
    ALLIED = 7

    @property
    def label(self) -> str:
        return self.name.replace("_", " ").title()


MIN_LEVEL = int(ReputationLevel.ENEMIES)
MAX_LEVEL = int(ReputationLevel.ALLIED)


class ReputationStanding(str, Enum):
    HOSTILE = "hostile"
    NEUTRAL = "neutral"
    FRIENDLY = "friendly"


STANDING_COLORS = {
    ReputationStanding.HOSTILE: "#dc3545",
    ReputationStanding.NEUTRAL: "#6c757d",
    ReputationStanding.FRIENDLY: "#28a745",
}


def clamp_level(value) -> int:
    try:
        level = int(value)
    except Exception:
        return int(ReputationLevel.NEUTRAL)
    return max(MIN_LEVEL, min(MAX_LEVEL, level))


def standing_for_level(level: int) -> ReputationStanding:
    if int(level) <= int(ReputationLevel.HOSTILE):
        return ReputationStanding.HOSTILE
    if int(level) >= int(ReputationLevel.FRIENDLY):
        return ReputationStanding.FRIENDLY
    return ReputationStanding.NEUTRAL


@dataclass
class Reputation:
    """A faction relationship held by one organization.

    Everything below ``level`` is derived on access; only the level itself is
    persisted.
    """

    id: str = ""
    name: str = ""
    description: str = ""
    level: int = int(ReputationLevel.NEUTRAL)
    organization_id: Optional[str] = None
    faction: str = ""
    relationship: str = ""
    notes: str = ""
    image: str = ""
    version: int = 1

    @property
    def label(self) -> str:
        return ReputationLevel(clamp_level(self.level)).label

    @property
    def modifier(self) -> int:
        return int(self.level) - int(ReputationLevel.NEUTRAL)

    @property
    def standing(self) -> ReputationStanding:
        return standing_for_level(self.level)

    @property
    def color(self) -> str:
        return STANDING_COLORS[self.standing]

    def can_trade(self) -> bool:
        return int(self.level) >= int(ReputationLevel.NEUTRAL)

    def can_request_aid(self) -> bool:
        return int(self.level) >= int(ReputationLevel.FRIENDLY)

    def can_form_alliance(self) -> bool:
        return int(self.level) >= int(ReputationLevel.TRUSTING)
