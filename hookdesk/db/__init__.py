"""Database engine and session management for the shared preference store.

Every hook invocation is its own process, so the registry's read-modify-write
cycles are serialized by SQLite itself: each transaction starts with
``BEGIN IMMEDIATE`` and concurrent writers wait on the busy timeout.
"""

from __future__ import annotations

import os
import time

import structlog
from sqlalchemy import Engine, event
from sqlmodel import Field, SQLModel, Session as DBSession, create_engine

from hookdesk.settings import settings

logger = structlog.get_logger(__name__)

BUSY_TIMEOUT_SECONDS = 10.0


class Preference(SQLModel, table=True):
    """Key/value row holding one JSON-encoded preference."""
    __tablename__ = "preferences"

    key: str = Field(primary_key=True)
    value: str
    updated_at: float = Field(default_factory=time.time)


# Lazy-initialized engine
_engine: Engine | None = None


def _install_locking(engine: Engine) -> None:
    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record) -> None:
        # Let SQLAlchemy emit BEGIN itself instead of pysqlite's deferred BEGIN.
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _on_begin(conn) -> None:
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def _get_engine() -> Engine:
    """Get or create the database engine."""
    global _engine
    if _engine is None:
        state_dir = settings.state_dir()
        os.makedirs(state_dir, exist_ok=True)
        _engine = create_engine(
            get_db_url(),
            echo=False,
            connect_args={"check_same_thread": False, "timeout": BUSY_TIMEOUT_SECONDS},
        )
        _install_locking(_engine)
        SQLModel.metadata.create_all(bind=_engine)
    return _engine


def reset_engine() -> None:
    """Reset the engine so it will be recreated with current settings.

    Used by tests to point at a fresh database after changing HOOKDESK_STATE_DIR.
    """
    global _engine
    if _engine is not None:
        _engine.dispose()
        _engine = None


def get_db_url() -> str:
    db_path = os.path.join(settings.state_dir(), "hookdesk.db")
    return f"sqlite:///{db_path}"


def get_session() -> DBSession:
    """Get a new database session."""
    return DBSession(_get_engine())


def init_db() -> None:
    """Create the schema if it does not exist yet."""
    SQLModel.metadata.create_all(bind=_get_engine())
    logger.debug("Preference store ready", url=get_db_url())


__all__ = [
    "DBSession",
    "Preference",
    "get_db_url",
    "get_session",
    "init_db",
    "reset_engine",
]
