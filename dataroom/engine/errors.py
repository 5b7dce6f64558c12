"""
Dataroom Error Hierarchy — Structured exceptions for tree operations.

Every error carries a serializable context so route handlers can translate
it into a response and the audit log can store it verbatim.

Hierarchy:
    DataroomError
    ├── DataroomNotFoundError     — Dataroom / folder / placement not in scope
    ├── DataroomValidationError   — Bad input (cycle, path mismatch, ...)
    ├── FolderNameConflictError   — Duplicate sibling name on move
    ├── DataroomIndexingError     — Hierarchical index recomputation failed
    ├── DataroomDuplicationError  — Duplication / template materialization failed
    ├── DataroomConfigError       — Invalid dataroom.yaml
    └── DataroomNotificationError — Change-notification job could not be handled
"""

from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional


class DataroomError(Exception):
    """
    Base error for all dataroom tree failures.
    All context is serializable to JSON.
    """

    status_code: int = 500

    def __init__(self, message: str, **context: Any):
        self.message = message
        self.dataroom_id: Optional[str] = context.get("dataroom_id")
        self.operation: Optional[str] = context.get("operation")
        self.error_type: str = self.__class__.__name__
        self.context: Dict[str, Any] = context
        self.timestamp: str = datetime.now(timezone.utc).isoformat()
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize error to JSON-compatible dict for logging and responses."""
        return {
            "error_type": self.error_type,
            "message": self.message,
            "status_code": self.status_code,
            "dataroom_id": self.dataroom_id,
            "operation": self.operation,
            "timestamp": self.timestamp,
            "context": {
                k: str(v) for k, v in self.context.items()
                if k not in ("dataroom_id", "operation")
            },
        }

    def to_json(self) -> str:
        """Serialize to JSON string."""
        return json.dumps(self.to_dict(), default=str)

    def __repr__(self) -> str:
        parts = [f"{self.error_type}: {self.message}"]
        if self.dataroom_id:
            parts.append(f"dataroom_id={self.dataroom_id}")
        if self.operation:
            parts.append(f"operation={self.operation}")
        return " | ".join(parts)


class DataroomNotFoundError(DataroomError):
    """Dataroom, folder or placement does not resolve within the given scope."""

    status_code = 404

    def __init__(self, message: str, **context: Any):
        self.record_type: Optional[str] = context.get("record_type")
        self.record_id: Optional[str] = context.get("record_id")
        super().__init__(message, **context)

    def to_dict(self) -> Dict[str, Any]:
        d = super().to_dict()
        d["record_type"] = self.record_type
        d["record_id"] = self.record_id
        return d


class DataroomValidationError(DataroomError):
    """Input validation failed (cycles, path mismatch, too many name retries)."""

    status_code = 400


class FolderNameConflictError(DataroomError):
    """
    One or more moved folders would share a name (or path) with a sibling
    in the target location. Raised before any write.
    """

    status_code = 409

    def __init__(self, message: str, **context: Any):
        self.conflicting_names: List[str] = list(context.get("conflicting_names", []))
        super().__init__(message, **context)

    def to_dict(self) -> Dict[str, Any]:
        d = super().to_dict()
        d["conflicting_names"] = self.conflicting_names
        return d


class DataroomIndexingError(DataroomError):
    """Hierarchical index recomputation failed and was rolled back."""

    def __init__(self, message: str, **context: Any):
        self.attempts: Optional[int] = context.get("attempts")
        super().__init__(message, **context)


class DataroomDuplicationError(DataroomError):
    """Duplication, template or create-from-folder materialization failed."""
    pass


class DataroomConfigError(DataroomError):
    """Configuration error — invalid dataroom.yaml."""

    status_code = 500


class DataroomNotificationError(DataroomError):
    """Change-notification job could not be handled."""
    pass
