"""
Dataroom Audit Logging — Structured JSONL logging with an async queue.

Implements:
- FileLogger: Per-object-type, per-category log files (daily rotation)
- AsyncLogQueue: In-memory queue with background flush
- Log entry builders for index rebuilds, tree mutations and notifications

Layout: {log_dir}/{object_type}/{category}/{YYYY-MM-DD}.jsonl
"""

from __future__ import annotations

import json
import logging
import threading
import time
from collections import defaultdict
from datetime import date, datetime, timezone
from pathlib import Path
from queue import Empty, Full, Queue
from typing import Any, Dict, List, Optional

logger = logging.getLogger("dataroom.engine.logging")

OBJECT_TYPE_CATEGORIES = {
    "indexes": ["execution", "performance"],
    "folders": ["execution"],
    "datarooms": ["execution"],
    "notifications": ["execution"],
    "system": ["execution"],
}


class LogEntry:
    """A structured log entry destined for a specific file."""

    __slots__ = ("object_type", "category", "data")

    def __init__(self, object_type: str, category: str, data: Dict[str, Any]):
        self.object_type = object_type
        self.category = category
        self.data = data

    def to_json(self) -> str:
        return json.dumps(self.data, default=str, separators=(",", ":"))


class FileLogger:
    """
    Writes structured JSON log entries to per-object-type, per-category files.

    Thread-safe — uses a lock per file path.
    """

    def __init__(self, log_dir: str = "logs"):
        self._log_dir = Path(log_dir)
        self._file_locks: Dict[str, threading.Lock] = defaultdict(threading.Lock)
        self._ensure_directories()

    def _ensure_directories(self) -> None:
        for obj_type, categories in OBJECT_TYPE_CATEGORIES.items():
            for cat in categories:
                (self._log_dir / obj_type / cat).mkdir(parents=True, exist_ok=True)

    def write(self, entry: LogEntry) -> None:
        """Write a single log entry to the appropriate file."""
        self.write_batch([entry])

    def write_batch(self, entries: List[LogEntry]) -> None:
        """Write a batch of log entries, grouping by file path."""
        grouped: Dict[str, List[LogEntry]] = defaultdict(list)
        for entry in entries:
            file_path = str(self._resolve_path(entry.object_type, entry.category))
            grouped[file_path].append(entry)

        for file_path, batch in grouped.items():
            with self._file_locks[file_path]:
                Path(file_path).parent.mkdir(parents=True, exist_ok=True)
                with open(file_path, "a", encoding="utf-8") as f:
                    for entry in batch:
                        f.write(entry.to_json())
                        f.write("\n")

    def _resolve_path(self, object_type: str, category: str) -> Path:
        today = date.today().isoformat()
        return self._log_dir / object_type / category / f"{today}.jsonl"

    @property
    def log_dir(self) -> Path:
        return self._log_dir

    def read_today(self, object_type: str, category: str) -> List[Dict[str, Any]]:
        """Return today's entries for one object_type/category, oldest first."""
        path = self._resolve_path(object_type, category)
        if not path.exists():
            return []
        entries: List[Dict[str, Any]] = []
        with open(path, "r", encoding="utf-8") as f:
            for line in f:
                line = line.strip()
                if not line:
                    continue
                try:
                    entries.append(json.loads(line))
                except json.JSONDecodeError:
                    continue
        return entries


class AsyncLogQueue:
    """
    In-memory queue with a background flush thread.

    A background thread flushes to FileLogger every flush_interval_ms or when
    flush_batch_size entries accumulate, whichever comes first.
    """

    def __init__(
        self,
        file_logger: FileLogger,
        flush_interval_ms: int = 100,
        flush_batch_size: int = 50,
        max_queue_size: int = 10000,
    ):
        self._logger = file_logger
        self._flush_interval = flush_interval_ms / 1000.0
        self._flush_batch_size = flush_batch_size
        self._queue: Queue[LogEntry] = Queue(maxsize=max_queue_size)
        self._running = False
        self._flush_thread: Optional[threading.Thread] = None
        self._dropped_count = 0

    def start(self) -> None:
        """Start the background flush thread."""
        if self._running:
            return
        self._running = True
        self._flush_thread = threading.Thread(
            target=self._flush_loop,
            name="dataroom-log-flush",
            daemon=True,
        )
        self._flush_thread.start()
        logger.info("Async log queue started")

    def stop(self, timeout: float = 5.0) -> None:
        """Stop the flush thread and drain remaining entries."""
        self._running = False
        if self._flush_thread and self._flush_thread.is_alive():
            self._flush_thread.join(timeout=timeout)
        self._drain()
        logger.info(f"Async log queue stopped (dropped: {self._dropped_count})")

    def push(self, entry: LogEntry) -> bool:
        """Push a log entry to the queue. Returns False if dropped (queue full)."""
        try:
            self._queue.put_nowait(entry)
            return True
        except Full:
            self._dropped_count += 1
            return False

    def _flush_loop(self) -> None:
        while self._running:
            batch = self._collect_batch()
            if batch:
                try:
                    self._logger.write_batch(batch)
                except OSError as e:
                    logger.error(f"Log flush error: {e}")
            else:
                time.sleep(self._flush_interval)

    def _collect_batch(self) -> List[LogEntry]:
        batch: List[LogEntry] = []
        deadline = time.monotonic() + self._flush_interval

        while len(batch) < self._flush_batch_size:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                break
            try:
                batch.append(self._queue.get(timeout=min(remaining, 0.01)))
            except Empty:
                if batch:
                    break
        return batch

    def _drain(self) -> None:
        batch: List[LogEntry] = []
        while not self._queue.empty():
            try:
                batch.append(self._queue.get_nowait())
            except Empty:
                break
        if batch:
            try:
                self._logger.write_batch(batch)
            except OSError as e:
                logger.error(f"Log drain error: {e}")

    @property
    def pending_count(self) -> int:
        return self._queue.qsize()

    @property
    def dropped_count(self) -> int:
        return self._dropped_count


# ---------------------------------------------------------------------------
# Log Entry Builders
# ---------------------------------------------------------------------------

def _base_entry(event: str, level: str, dataroom_id: Optional[str], **extra: Any) -> Dict[str, Any]:
    entry: Dict[str, Any] = {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "level": level,
        "event": event,
    }
    if dataroom_id:
        entry["dataroom_id"] = dataroom_id
    entry.update(extra)
    return entry


def log_index_rebuild(
    dataroom_id: str,
    duration_ms: float,
    success: bool,
    folders_updated: int = 0,
    documents_updated: int = 0,
    attempts: int = 1,
    error: Optional[str] = None,
) -> LogEntry:
    """Build a hierarchical index rebuild log entry."""
    data = _base_entry(
        event="indexes_rebuilt",
        level="INFO" if success else "ERROR",
        dataroom_id=dataroom_id,
        duration_ms=round(duration_ms, 2),
        success=success,
        folders_updated=folders_updated,
        documents_updated=documents_updated,
        attempts=attempts,
    )
    if error:
        data["error"] = error
    return LogEntry("indexes", "execution", data)


def log_tree_mutation(
    operation: str,
    dataroom_id: str,
    object_type: str = "folders",
    details: Optional[Dict[str, Any]] = None,
    success: bool = True,
    error: Optional[str] = None,
) -> LogEntry:
    """Build a tree mutation entry (move, duplicate, template, create-from-folder)."""
    data = _base_entry(
        event=operation,
        level="INFO" if success else "ERROR",
        dataroom_id=dataroom_id,
        success=success,
    )
    if details:
        data["details"] = details
    if error:
        data["error"] = error
    return LogEntry(object_type, "execution", data)


def log_notification(
    dataroom_id: str,
    action: str,
    task_id: Optional[str] = None,
    error: Optional[str] = None,
) -> LogEntry:
    """Build a change-notification log entry (scheduled / revoked / failed)."""
    data = _base_entry(
        event=f"notification_{action}",
        level="ERROR" if error else "INFO",
        dataroom_id=dataroom_id,
    )
    if task_id:
        data["task_id"] = task_id
    if error:
        data["error"] = error
    return LogEntry("notifications", "execution", data)


def log_system_event(
    event: str,
    level: str = "INFO",
    details: Optional[Dict[str, Any]] = None,
) -> LogEntry:
    """Build a system event log entry (startup, shutdown, schema creation)."""
    data = _base_entry(event=event, level=level, dataroom_id=None)
    if details:
        data["details"] = details
    return LogEntry("system", "execution", data)


# ---------------------------------------------------------------------------
# Global Log Queue Singleton
# ---------------------------------------------------------------------------

_global_queue: Optional[AsyncLogQueue] = None


def init_logging(
    log_dir: str = "logs",
    flush_interval_ms: int = 100,
    flush_batch_size: int = 50,
    max_queue_size: int = 10000,
) -> AsyncLogQueue:
    """Initialize the global async log queue."""
    global _global_queue
    file_logger = FileLogger(log_dir=log_dir)
    _global_queue = AsyncLogQueue(
        file_logger=file_logger,
        flush_interval_ms=flush_interval_ms,
        flush_batch_size=flush_batch_size,
        max_queue_size=max_queue_size,
    )
    _global_queue.start()
    return _global_queue


def get_log_queue() -> Optional[AsyncLogQueue]:
    return _global_queue


def log(entry: LogEntry) -> bool:
    """Push a log entry to the global queue. No-op until init_logging() ran."""
    if _global_queue is None:
        return False
    return _global_queue.push(entry)


def shutdown_logging() -> None:
    """Flush and stop the global log queue."""
    global _global_queue
    if _global_queue:
        _global_queue.stop()
        _global_queue = None


def configure_stdlib_logging(level: str = "INFO") -> None:
    """Attach a console handler to the ``dataroom`` logger tree."""
    root = logging.getLogger("dataroom")
    if not root.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(
            logging.Formatter("%(asctime)s - %(levelname)s - %(name)s - %(message)s")
        )
        root.addHandler(handler)
    root.setLevel(level.upper())
