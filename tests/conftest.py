"""
Dataroom Test Suite — Shared fixtures and configuration.

Run:  pytest tests/ -v
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional
from unittest.mock import MagicMock

import pytest
from sqlalchemy import func, select


# ---------------------------------------------------------------------------
# Environment setup: avoid touching real Redis / Postgres in unit tests
# ---------------------------------------------------------------------------

@pytest.fixture(autouse=True)
def _isolate_config(monkeypatch, tmp_path):
    """Reset global singletons between tests and keep dataroom.yaml discovery local."""
    import dataroom.engine.config as cfg_mod

    monkeypatch.delenv("DATAROOM_CONFIG", raising=False)
    monkeypatch.chdir(tmp_path)
    cfg_mod._config = None
    yield
    cfg_mod._config = None


@pytest.fixture
def session_factory():
    """Fresh in-memory SQLite database with all tables."""
    from dataroom.db.session import close_all_sessions, init_db

    factory = init_db("sqlite://", create_tables=True)
    yield factory
    close_all_sessions()


@pytest.fixture
def tree(session_factory):
    return TreeBuilder(session_factory)


@pytest.fixture
def mock_redis():
    """Return a mock Redis client."""
    client = MagicMock()
    client.ping.return_value = True
    client.get.return_value = None
    client.set.return_value = True
    client.delete.return_value = 1
    return client


# ---------------------------------------------------------------------------
# Tree builder
# ---------------------------------------------------------------------------

class TreeBuilder:
    """Inserts rows directly so tests can set up arbitrary trees."""

    def __init__(self, factory):
        self.factory = factory

    def dataroom(self, name: str = "Deal Room", team_id: str = "team_1", **kwargs: Any) -> str:
        from dataroom.db.models import Dataroom
        from dataroom.db.session import session_scope

        with session_scope(self.factory) as session:
            dataroom = Dataroom(team_id=team_id, name=name, **kwargs)
            session.add(dataroom)
            session.flush()
            return dataroom.id

    def folder(
        self,
        dataroom_id: str,
        name: str,
        parent: Optional[str] = None,
        order_index: Optional[int] = None,
        hierarchical_index: Optional[str] = None,
    ) -> str:
        from dataroom.db.models import DataroomFolder
        from dataroom.db.session import session_scope
        from dataroom.tree.paths import child_path

        with session_scope(self.factory) as session:
            parent_path = session.get(DataroomFolder, parent).path if parent else None
            folder = DataroomFolder(
                dataroom_id=dataroom_id,
                name=name,
                path=child_path(parent_path, name),
                parent_id=parent,
                order_index=order_index,
                hierarchical_index=hierarchical_index,
            )
            session.add(folder)
            session.flush()
            return folder.id

    def document(self, name: str, team_id: str = "team_1", folder_id: Optional[str] = None) -> str:
        from dataroom.db.models import Document
        from dataroom.db.session import session_scope

        with session_scope(self.factory) as session:
            document = Document(team_id=team_id, name=name, folder_id=folder_id)
            session.add(document)
            session.flush()
            return document.id

    def place(
        self,
        dataroom_id: str,
        name: str,
        folder_id: Optional[str] = None,
        order_index: Optional[int] = None,
        hierarchical_index: Optional[str] = None,
    ) -> str:
        """Create a document named ``name`` and place it; returns the placement id."""
        from dataroom.db.models import DataroomDocument
        from dataroom.db.session import session_scope

        document_id = self.document(name)
        with session_scope(self.factory) as session:
            placement = DataroomDocument(
                dataroom_id=dataroom_id,
                document_id=document_id,
                folder_id=folder_id,
                order_index=order_index,
                hierarchical_index=hierarchical_index,
            )
            session.add(placement)
            session.flush()
            return placement.id

    def team_folder(self, name: str, parent: Optional[str] = None, team_id: str = "team_1") -> str:
        from dataroom.db.models import Folder
        from dataroom.db.session import session_scope
        from dataroom.tree.paths import child_path

        with session_scope(self.factory) as session:
            parent_path = session.get(Folder, parent).path if parent else None
            folder = Folder(team_id=team_id, name=name, path=child_path(parent_path, name), parent_id=parent)
            session.add(folder)
            session.flush()
            return folder.id

    # ── Reads ──

    def get_folder(self, folder_id: str) -> Dict[str, Any]:
        from dataroom.db.models import DataroomFolder
        from dataroom.db.session import session_scope

        with session_scope(self.factory) as session:
            f = session.get(DataroomFolder, folder_id)
            return {
                "id": f.id, "name": f.name, "path": f.path, "parent_id": f.parent_id,
                "order_index": f.order_index, "hierarchical_index": f.hierarchical_index,
            }

    def get_placement(self, placement_id: str) -> Dict[str, Any]:
        from dataroom.db.models import DataroomDocument
        from dataroom.db.session import session_scope

        with session_scope(self.factory) as session:
            p = session.get(DataroomDocument, placement_id)
            return {
                "id": p.id, "document_id": p.document_id, "folder_id": p.folder_id,
                "order_index": p.order_index, "hierarchical_index": p.hierarchical_index,
            }

    def folders(self, dataroom_id: str) -> List[Dict[str, Any]]:
        from dataroom.db.models import DataroomFolder
        from dataroom.db.session import session_scope

        with session_scope(self.factory) as session:
            rows = session.execute(
                select(
                    DataroomFolder.id, DataroomFolder.name, DataroomFolder.path,
                    DataroomFolder.parent_id, DataroomFolder.order_index,
                    DataroomFolder.hierarchical_index,
                ).where(DataroomFolder.dataroom_id == dataroom_id)
            ).all()
            return [row._asdict() for row in rows]

    def placements(self, dataroom_id: str) -> List[Dict[str, Any]]:
        from dataroom.db.models import DataroomDocument
        from dataroom.db.session import session_scope

        with session_scope(self.factory) as session:
            rows = session.execute(
                select(
                    DataroomDocument.id, DataroomDocument.document_id, DataroomDocument.folder_id,
                    DataroomDocument.order_index, DataroomDocument.hierarchical_index,
                ).where(DataroomDocument.dataroom_id == dataroom_id)
            ).all()
            return [row._asdict() for row in rows]

    def count(self, model) -> int:
        from dataroom.db.session import session_scope

        with session_scope(self.factory) as session:
            return session.scalar(select(func.count()).select_from(model))

    def path_rows(self, dataroom_id: str):
        """``(id, name, parent_id, path)`` tuples for find_path_mismatches."""
        return [(f["id"], f["name"], f["parent_id"], f["path"]) for f in self.folders(dataroom_id)]


@pytest.fixture
def file_db(tmp_path):
    """File-backed SQLite database shared with CLI commands: ``(url, TreeBuilder)``."""
    from dataroom.db.session import close_all_sessions, init_db

    url = f"sqlite:///{tmp_path / 'dataroom.db'}"
    factory = init_db(url, create_tables=True)
    # The CLI registers its own engine; drop ours from the registry but keep the factory.
    close_all_sessions()
    yield url, TreeBuilder(factory)
    factory.kw["bind"].dispose()
    close_all_sessions()
