"""
Per-dataroom serialization of structural mutations.

On PostgreSQL every structural writer on a dataroom holds an advisory lock
keyed by the dataroom id, so two writers on the same dataroom never
interleave. Other dialects get no lock (SQLite already serializes writers).

Two forms share one key:

- Moves, folder edits and materialization run at READ COMMITTED and take
  the transaction-scoped lock as their first statement. COMMIT/ROLLBACK
  releases it.
- Index rebuilds read through a snapshot. The snapshot is fixed at the
  first statement of its transaction, so the lock must be held before that
  transaction opens: the rebuild takes a session-scoped lock on a separate
  autocommit connection, opens the snapshot while holding it and unlocks
  after the snapshot transaction has committed.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Generator

from sqlalchemy import text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session

from dataroom.engine.config import get_config

logger = logging.getLogger("dataroom.tree.locking")

_ADVISORY_LOCK_SQL = text("SELECT pg_advisory_xact_lock(hashtextextended(:key, 0))")
_SESSION_LOCK_SQL = text("SELECT pg_advisory_lock(hashtextextended(:key, 0))")
_SESSION_UNLOCK_SQL = text("SELECT pg_advisory_unlock(hashtextextended(:key, 0))")


def _lock_key(dataroom_id: str) -> dict:
    return {"key": f"dataroom:{dataroom_id}"}


def lock_dataroom(session: Session, dataroom_id: str) -> bool:
    """
    Block until this transaction holds the dataroom's structural lock.

    Returns True when a lock was taken.
    """
    if not get_config().indexing.lock_structural_mutations:
        return False
    if session.get_bind().dialect.name != "postgresql":
        return False
    session.execute(_ADVISORY_LOCK_SQL, _lock_key(dataroom_id))
    logger.debug(f"Acquired structural lock for dataroom {dataroom_id}")
    return True


@contextmanager
def hold_dataroom_lock(engine: Engine, dataroom_id: str) -> Generator[bool, None, None]:
    """
    Hold the dataroom's structural lock for the duration of the block.

    Yields True when a lock was taken. Transactions opened inside the block
    must not call lock_dataroom for the same dataroom: they run on another
    connection and would wait on this one.
    """
    if not get_config().indexing.lock_structural_mutations or engine.dialect.name != "postgresql":
        yield False
        return

    key = _lock_key(dataroom_id)
    with engine.connect() as connection:
        connection = connection.execution_options(isolation_level="AUTOCOMMIT")
        connection.execute(_SESSION_LOCK_SQL, key)
        logger.debug(f"Acquired session lock for dataroom {dataroom_id}")
        try:
            yield True
        finally:
            connection.execute(_SESSION_UNLOCK_SQL, key)
            logger.debug(f"Released session lock for dataroom {dataroom_id}")
