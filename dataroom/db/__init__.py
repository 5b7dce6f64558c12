"""
Dataroom storage layer — SQLAlchemy models and session management.
"""

from dataroom.db.base import Base, engine_registry, new_id
from dataroom.db.models import (
    Dataroom,
    DataroomDocument,
    DataroomFolder,
    Document,
    Folder,
)
from dataroom.db.session import get_session_factory, init_db, session_scope

__all__ = [
    "Base",
    "engine_registry",
    "new_id",
    "Dataroom",
    "DataroomDocument",
    "DataroomFolder",
    "Document",
    "Folder",
    "get_session_factory",
    "init_db",
    "session_scope",
]
