"""
Dataroom Session Management.

Single entry point for DB initialisation plus context managers for
transactional DB access. Uses the global EngineRegistry.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Generator, Optional

from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from dataroom.db.base import Base, engine_registry

logger = logging.getLogger("dataroom.db.session")

CORE_ENGINE = "dataroom_core"

# Snapshot-level isolation per dialect. SQLite has no REPEATABLE READ; its
# default (SERIALIZABLE) is the closest equivalent.
_SNAPSHOT_LEVELS = {
    "postgresql": "REPEATABLE READ",
    "mysql": "REPEATABLE READ",
    "sqlite": "SERIALIZABLE",
}

_session_factory: Optional[sessionmaker] = None


def init_db(
    db_url: str,
    create_tables: bool = False,
    pool_size: int = 10,
    max_overflow: int = 20,
    pool_timeout: int = 30,
    pool_recycle: int = 1800,
    pool_pre_ping: bool = True,
) -> sessionmaker:
    """
    Initialise the core database.

    1. Registers the "dataroom_core" engine in the EngineRegistry
       (replacing a previous registration).
    2. Optionally calls Base.metadata.create_all() (dev / CLI init only).
    3. Stores the session factory as the module-level default.

    Returns:
        The sessionmaker bound to the engine.
    """
    global _session_factory

    # Models must be imported before create_all()
    from dataroom.db import models  # noqa: F401

    if CORE_ENGINE in engine_registry.registered_names:
        engine_registry.dispose(CORE_ENGINE)

    engine_registry.register(
        CORE_ENGINE, db_url,
        pool_size=pool_size,
        max_overflow=max_overflow,
        pool_timeout=pool_timeout,
        pool_recycle=pool_recycle,
        pool_pre_ping=pool_pre_ping,
    )
    engine = engine_registry.get(CORE_ENGINE)

    if create_tables:
        Base.metadata.create_all(engine)
        logger.info("Created dataroom tables")

    _session_factory = engine_registry.get_session_factory(CORE_ENGINE)
    return _session_factory


def get_session_factory() -> sessionmaker:
    """Get the default session factory."""
    if _session_factory is None:
        raise RuntimeError("Database not initialized. Call init_db() first.")
    return _session_factory


def snapshot_isolation_level(engine: Engine) -> str:
    """Return the isolation level that gives a consistent snapshot on this dialect."""
    return _SNAPSHOT_LEVELS.get(engine.dialect.name, "SERIALIZABLE")


@contextmanager
def session_scope(
    factory: Optional[sessionmaker] = None,
    isolation_level: Optional[str] = None,
) -> Generator[Session, None, None]:
    """
    Context manager for one transaction with auto-commit/rollback.

    Args:
        factory: Session factory; defaults to the one from init_db().
        isolation_level: Optional isolation level for this transaction only.
            Pass "snapshot" to get the dialect's snapshot level.

    Usage:
        with session_scope(isolation_level="snapshot") as session:
            folders = session.query(DataroomFolder).all()
    """
    factory = factory or get_session_factory()
    if isolation_level:
        engine = factory.kw["bind"]
        if isolation_level == "snapshot":
            isolation_level = snapshot_isolation_level(engine)
        session = factory(bind=engine.execution_options(isolation_level=isolation_level))
    else:
        session = factory()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def close_all_sessions() -> None:
    """Dispose all engines. Used during shutdown."""
    global _session_factory
    _session_factory = None
    engine_registry.dispose()
