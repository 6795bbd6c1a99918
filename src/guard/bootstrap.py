import os
import socket
from typing import Callable
from urllib.parse import urlparse

from guard.application.services.event_bus import EventBus
from guard.application.services.guard_management import GuardManagement
from guard.application.services.lifecycle_manager import LifecycleManager
from guard.application.services.modifier_service import ModifierService
from guard.application.services.patrol_service import PatrolService
from guard.application.services.reputation_service import ReputationService
from guard.application.services.resource_service import ResourceService
from guard.domain.repositories import RecordStore
from guard.domain.services.reputation_state import ReputationStateMachine
from guard.domain.services.resource_ledger import ResourceLedger
from guard.domain.services.stat_derivation import StatDerivationEngine
from guard.infrastructure.inmemory.inmemory_record_store import InMemoryRecordStore
from guard.settings import GuardSettings


def _looks_like_local_database_unreachable(database_url: str) -> bool:
    if not database_url:
        return False

    parsed = urlparse(database_url)
    if parsed.scheme.startswith("sqlite"):
        return False

    host = (parsed.hostname or "").strip().lower()
    if host not in {"localhost", "127.0.0.1", "::1"}:
        return False

    port = parsed.port or (5432 if parsed.scheme.startswith("postgres") else 3306)
    timeout = float(os.getenv("GUARD_DB_CONNECT_PROBE_TIMEOUT_S", "0.35"))

    try:
        with socket.create_connection((host, port), timeout=timeout):
            return False
    except OSError:
        return True


def _build_sql_store(settings: GuardSettings, event_bus: EventBus) -> RecordStore:
    from guard.infrastructure.db.sql.connection import create_guard_engine, create_session_factory
    from guard.infrastructure.db.sql.schema import apply_schema
    from guard.infrastructure.db.sql.sql_record_store import SqlRecordStore

    engine = create_guard_engine(settings.database_url, echo=settings.sql_echo)
    apply_schema(engine)
    return SqlRecordStore(create_session_factory(engine), event_bus, stat_limit=settings.stat_limit)


def _build_store(settings: GuardSettings, event_bus: EventBus) -> RecordStore:
    if settings.database_url:
        if _looks_like_local_database_unreachable(settings.database_url):
            print("Database appears unreachable, falling back to in-memory.")
        else:
            try:
                return _build_sql_store(settings, event_bus)
            except Exception as exc:  # pragma: no cover - best-effort fallback
                print(f"Database unavailable, falling back to in-memory. Reason: {exc}")
    return InMemoryRecordStore(event_bus, stat_limit=settings.stat_limit)


def create_guard_management(
    settings: GuardSettings | None = None,
    *,
    store: RecordStore | None = None,
    event_bus: EventBus | None = None,
    clock: Callable[[], int] | None = None,
) -> GuardManagement:
    settings = settings or GuardSettings.from_env()
    event_bus = event_bus or EventBus()
    store = store or _build_store(settings, event_bus)

    lifecycle = LifecycleManager(
        store,
        StatDerivationEngine(),
        event_bus,
        clock=clock,
        stat_limit=settings.stat_limit,
    )
    return GuardManagement(
        store=store,
        event_bus=event_bus,
        lifecycle=lifecycle,
        patrols=PatrolService(
            lifecycle,
            order_warning_days=settings.order_warning_days,
            order_danger_days=settings.order_danger_days,
        ),
        resources=ResourceService(lifecycle, ResourceLedger(), low_threshold=settings.low_resource_threshold),
        reputation=ReputationService(lifecycle, ReputationStateMachine()),
        modifiers=ModifierService(lifecycle),
    )


def seed_sample_data(management: GuardManagement) -> str:
    """Create the City Watch sample organization and return its id."""

    lifecycle = management.lifecycle
    organization = lifecycle.create_organization(
        "City Watch",
        subtitle="Protectors of the Realm",
        base_stats={"robustismo": 12, "analitica": 10, "subterfugio": 8, "elocuencia": 11},
    ).record

    drilled = management.modifiers.create(
        "Drilled Recruits",
        [("robustismo", 2), ("elocuencia", -1)],
        description="Daily drills in the barracks yard",
        type="positive",
        organization_id=organization.id,
    ).record
    management.modifiers.activate(organization.id, drilled.id)

    patrol = lifecycle.create_patrol(
        organization.id,
        "Alpha Patrol",
        subtitle="Market district",
        base_stats={"robustismo": 5, "analitica": 4, "subterfugio": 3, "elocuencia": 2},
    ).record
    management.patrols.assign_officer(patrol.id, "officer-1", name="Sergeant Vell")
    management.patrols.add_soldier(patrol.id, "soldier-1", name="Brann")
    management.patrols.add_soldier(patrol.id, "soldier-2", name="Ilse")
    management.patrols.add_effect(patrol.id, "Well rested", {"robustismo": 3})
    management.patrols.update_last_order(patrol.id, "Hold the market gate until dusk.")

    lifecycle.create_resource(
        organization.id,
        "Steel Weapons",
        description="High-quality steel swords and shields",
        quantity=25,
    )
    lifecycle.create_resource(
        organization.id,
        "Healing Potions",
        description="Minor healing potions for field use",
        quantity=4,
    )
    lifecycle.create_reputation(
        organization.id,
        "Noble Houses",
        description="Reputation with the local nobility",
        level=5,
        faction="Nobility",
    )
    return organization.id
