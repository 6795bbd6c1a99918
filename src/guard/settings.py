from __future__ import annotations

import os
from dataclasses import dataclass

from guard.domain.models.resource import LOW_RESOURCE_THRESHOLD
from guard.domain.models.stats import STAT_LIMIT


def _flag(name: str, default: str = "0") -> bool:
    return os.getenv(name, default).strip().lower() in {"1", "true", "yes"}


def _int(name: str, default: int) -> int:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from exc


@dataclass(frozen=True)
class GuardSettings:
    database_url: str = ""
    sql_echo: bool = False
    stat_limit: int = STAT_LIMIT
    low_resource_threshold: int = LOW_RESOURCE_THRESHOLD
    order_warning_days: int = 7
    order_danger_days: int = 30
    log_level: str = "WARNING"

    @classmethod
    def from_env(cls) -> "GuardSettings":
        settings = cls(
            database_url=os.getenv("GUARD_DATABASE_URL", "").strip(),
            sql_echo=_flag("GUARD_SQL_ECHO"),
            stat_limit=_int("GUARD_STAT_LIMIT", STAT_LIMIT),
            low_resource_threshold=_int("GUARD_LOW_RESOURCE_THRESHOLD", LOW_RESOURCE_THRESHOLD),
            order_warning_days=_int("GUARD_ORDER_WARNING_DAYS", 7),
            order_danger_days=_int("GUARD_ORDER_DANGER_DAYS", 30),
            log_level=os.getenv("GUARD_LOG_LEVEL", "WARNING").strip().upper() or "WARNING",
        )
        if settings.stat_limit <= 0:
            raise ValueError("GUARD_STAT_LIMIT must be positive")
        if settings.order_danger_days < settings.order_warning_days:
            raise ValueError("GUARD_ORDER_DANGER_DAYS must not be lower than GUARD_ORDER_WARNING_DAYS")
        return settings
