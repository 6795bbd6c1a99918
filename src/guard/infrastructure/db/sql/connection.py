from __future__ import annotations

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker


def create_guard_engine(database_url: str, *, echo: bool = False) -> Engine:
    if not str(database_url or "").strip():
        raise ValueError("A database URL is required for the SQL record store.")
    return create_engine(database_url, echo=bool(echo), future=True, pool_pre_ping=True)


def create_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(bind=engine, autoflush=False, autocommit=False)
