"""
Hierarchical index persistence.

Reads every folder and placement of one dataroom inside a single snapshot
transaction, rebuilds the tree, assigns dotted indexes and writes them back
in bounded batches. All batches commit together or nothing changes.

On PostgreSQL the dataroom lock is taken before the snapshot opens, so the
rebuild always reads the tree as left by the last committed structural
writer.

Serialization failures (SQLSTATE 40001 / 40P01) are retried with backoff;
any other failure surfaces as DataroomIndexingError with existing indexes
left untouched.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional

from sqlalchemy import select, update
from sqlalchemy.exc import DBAPIError
from sqlalchemy.orm import Session, sessionmaker

from dataroom.db.models import Dataroom, DataroomDocument, DataroomFolder, Document
from dataroom.db.session import get_session_factory, session_scope
from dataroom.engine.config import get_config
from dataroom.engine.errors import DataroomIndexingError, DataroomNotFoundError
from dataroom.engine.logging import log, log_index_rebuild
from dataroom.tree.hierarchy import DOCUMENT, FOLDER, IndexedItem, TreeArena, TreeItem
from dataroom.tree.locking import hold_dataroom_lock, lock_dataroom

logger = logging.getLogger("dataroom.tree.indexer")

INDEXING_FAILED_MESSAGE = "Failed to calculate and update hierarchical indexes"
RETRYABLE_SQLSTATES = {"40001", "40P01"}


@dataclass(frozen=True)
class IndexResult:
    folders_updated: int
    documents_updated: int

    def to_dict(self) -> Dict[str, int]:
        return {
            "folders_updated": self.folders_updated,
            "documents_updated": self.documents_updated,
        }


def is_retryable_error(exc: BaseException) -> bool:
    """True for snapshot conflicts and deadlocks reported by the database."""
    if not isinstance(exc, DBAPIError):
        return False
    orig = exc.orig
    code = getattr(orig, "pgcode", None) or getattr(orig, "sqlstate", None)
    if code in RETRYABLE_SQLSTATES:
        return True
    return "database is locked" in str(orig)


def load_tree_items(session: Session, dataroom_id: str) -> List[TreeItem]:
    """All folders and placements of a dataroom as TreeItems (folders first)."""
    folder_rows = session.execute(
        select(
            DataroomFolder.id,
            DataroomFolder.name,
            DataroomFolder.parent_id,
            DataroomFolder.order_index,
        ).where(DataroomFolder.dataroom_id == dataroom_id)
    ).all()
    document_rows = session.execute(
        select(
            DataroomDocument.id,
            Document.name,
            DataroomDocument.folder_id,
            DataroomDocument.order_index,
        )
        .join(Document, Document.id == DataroomDocument.document_id)
        .where(DataroomDocument.dataroom_id == dataroom_id)
    ).all()

    items = [
        TreeItem(id=row.id, name=row.name, kind=FOLDER, parent_id=row.parent_id, order_index=row.order_index)
        for row in folder_rows
    ]
    items.extend(
        TreeItem(id=row.id, name=row.name, kind=DOCUMENT, parent_id=row.folder_id, order_index=row.order_index)
        for row in document_rows
    )
    return items


def _chunks(rows: List[IndexedItem], size: int):
    for start in range(0, len(rows), size):
        yield rows[start:start + size]


class HierarchicalIndexer:
    """
    Recomputes and persists hierarchical indexes for one dataroom at a time.

    Usage:
        indexer = HierarchicalIndexer()
        result = indexer.recompute("3f2a...")
        result.folders_updated, result.documents_updated
    """

    def __init__(
        self,
        session_factory: Optional[sessionmaker] = None,
        batch_size: Optional[int] = None,
        max_retries: Optional[int] = None,
        retry_delay: Optional[float] = None,
        backoff: Optional[str] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        cfg = get_config().indexing
        self._session_factory = session_factory
        self._batch_size = batch_size or cfg.batch_size
        self._max_retries = cfg.max_retries if max_retries is None else max_retries
        self._retry_delay = cfg.retry_delay if retry_delay is None else retry_delay
        self._backoff = backoff or cfg.backoff
        self._sleep = sleep

    @property
    def batch_size(self) -> int:
        return self._batch_size

    def recompute(self, dataroom_id: str) -> IndexResult:
        """
        Recompute every hierarchical index of a dataroom in one snapshot transaction.

        Raises:
            DataroomNotFoundError: unknown dataroom.
            DataroomIndexingError: anything else; nothing was written.
        """
        factory = self._session_factory or get_session_factory()
        start_time = time.monotonic()
        attempt = 0

        while True:
            attempt += 1
            try:
                with hold_dataroom_lock(factory.kw["bind"], dataroom_id) as locked:
                    with session_scope(factory, isolation_level="snapshot") as session:
                        result = self.recompute_in_session(session, dataroom_id, lock=not locked)
            except DataroomNotFoundError:
                raise
            except Exception as e:
                if is_retryable_error(e) and attempt <= self._max_retries:
                    delay = self._calc_delay(attempt - 1)
                    logger.warning(
                        f"Index rebuild for dataroom {dataroom_id} hit a conflict, "
                        f"retrying in {delay}s (attempt {attempt}/{self._max_retries})"
                    )
                    self._sleep(delay)
                    continue

                duration_ms = (time.monotonic() - start_time) * 1000
                logger.error(f"Error calculating hierarchical indexes for {dataroom_id}: {e}")
                log(log_index_rebuild(dataroom_id, duration_ms, success=False, attempts=attempt, error=str(e)))
                raise DataroomIndexingError(
                    INDEXING_FAILED_MESSAGE,
                    dataroom_id=dataroom_id,
                    operation="recompute_hierarchical_indexes",
                    attempts=attempt,
                ) from e

            duration_ms = (time.monotonic() - start_time) * 1000
            logger.info(
                f"Hierarchical indexes rebuilt for dataroom {dataroom_id}: "
                f"{result.folders_updated} folders, {result.documents_updated} documents "
                f"({duration_ms:.1f}ms)"
            )
            log(log_index_rebuild(
                dataroom_id, duration_ms, success=True,
                folders_updated=result.folders_updated,
                documents_updated=result.documents_updated,
                attempts=attempt,
            ))
            return result

    def recompute_in_session(self, session: Session, dataroom_id: str, lock: bool = True) -> IndexResult:
        """
        Recompute inside a caller-owned transaction (used by move with
        recompute_indexes=True). The caller commits or rolls back.

        Pass lock=False only when the dataroom lock is already held for
        this transaction.
        """
        if lock:
            lock_dataroom(session, dataroom_id)
        if session.get(Dataroom, dataroom_id) is None:
            raise DataroomNotFoundError(
                f"Dataroom '{dataroom_id}' not found",
                dataroom_id=dataroom_id,
                record_type="dataroom",
                record_id=dataroom_id,
            )

        session.flush()
        arena = TreeArena(load_tree_items(session, dataroom_id)).assign_indexes()
        flattened = arena.flatten()

        folder_updates = [row for row in flattened if row.kind == FOLDER]
        document_updates = [row for row in flattened if row.kind == DOCUMENT]

        for chunk in _chunks(folder_updates, self._batch_size):
            session.execute(
                update(DataroomFolder),
                [{"id": row.id, "hierarchical_index": row.hierarchical_index} for row in chunk],
            )
        for chunk in _chunks(document_updates, self._batch_size):
            session.execute(
                update(DataroomDocument),
                [{"id": row.id, "hierarchical_index": row.hierarchical_index} for row in chunk],
            )
        session.expire_all()

        return IndexResult(
            folders_updated=len(folder_updates),
            documents_updated=len(document_updates),
        )

    def _calc_delay(self, attempt: int) -> float:
        """Retry delay with backoff."""
        if self._backoff == "exponential":
            return self._retry_delay * (2 ** attempt)
        elif self._backoff == "linear":
            return self._retry_delay * (attempt + 1)
        return self._retry_delay


def recompute_hierarchical_indexes(
    dataroom_id: str,
    session_factory: Optional[sessionmaker] = None,
) -> IndexResult:
    """Recompute and persist all hierarchical indexes of one dataroom."""
    return HierarchicalIndexer(session_factory=session_factory).recompute(dataroom_id)
