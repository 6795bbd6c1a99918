"""Schema for the single-table guard record store.

Every record kind shares one table; ``organization_id`` and ``version`` are
copied out of the JSON payload so they can be filtered on without parsing.
"""

from __future__ import annotations

from sqlalchemy import text
from sqlalchemy.engine import Engine

TABLE_NAME = "guard_record"
ORGANIZATION_INDEX = "ix_guard_record_kind_org"


def _create_table_sql(dialect: str) -> str:
    payload_type = "LONGTEXT" if dialect == "mysql" else "TEXT"
    return f"""
        CREATE TABLE IF NOT EXISTS {TABLE_NAME} (
            kind VARCHAR(32) NOT NULL,
            record_id VARCHAR(64) NOT NULL,
            organization_id VARCHAR(64) NULL,
            version INTEGER NOT NULL DEFAULT 1,
            payload {payload_type} NOT NULL,
            PRIMARY KEY (kind, record_id)
        )
    """


def _index_exists(conn, dialect: str) -> bool:
    if dialect == "sqlite":
        row = conn.execute(
            text("SELECT name FROM sqlite_master WHERE type = 'index' AND name = :name"),
            {"name": ORGANIZATION_INDEX},
        ).first()
        return row is not None

    row = conn.execute(
        text(
            """
            SELECT INDEX_NAME
            FROM INFORMATION_SCHEMA.STATISTICS
            WHERE TABLE_SCHEMA = DATABASE()
              AND TABLE_NAME = :table_name
              AND INDEX_NAME = :name
            """
        ),
        {"table_name": TABLE_NAME, "name": ORGANIZATION_INDEX},
    ).first()
    return row is not None


def apply_schema(engine: Engine) -> None:
    dialect = engine.dialect.name
    with engine.begin() as conn:
        conn.execute(text(_create_table_sql(dialect)))
        if not _index_exists(conn, dialect):
            conn.execute(text(f"CREATE INDEX {ORGANIZATION_INDEX} ON {TABLE_NAME} (kind, organization_id)"))
