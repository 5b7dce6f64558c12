"""
Folder and placement operations on a dataroom tree.

- create_folder: new folder under a parent path, de-duplicating the name
- add_document: place a document and schedule the change notification
- reorder: set manual order_index values, then renumber
- list_tree: nested display-order view with stored indexes
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import select, update
from sqlalchemy.orm import Session, sessionmaker

from dataroom.db.models import Dataroom, DataroomDocument, DataroomFolder, Document
from dataroom.db.session import get_session_factory, session_scope
from dataroom.engine.errors import DataroomNotFoundError, DataroomValidationError
from dataroom.engine.logging import log, log_tree_mutation
from dataroom.tree.hierarchy import DOCUMENT, FOLDER, TreeArena
from dataroom.tree.indexer import HierarchicalIndexer, load_tree_items
from dataroom.tree.locking import lock_dataroom
from dataroom.tree.paths import ROOT_PATH, child_path, normalize_parent_path

logger = logging.getLogger("dataroom.tree.folders")

MAX_NAME_ATTEMPTS = 50


class FolderService:
    """
    Everyday tree edits for one dataroom at a time.

    Usage:
        service = FolderService()
        folder = service.create_folder(dataroom_id, "Contracts", parent_path="/legal")
        service.add_document(dataroom_id, document_id, folder_path=folder["path"])
    """

    def __init__(
        self,
        session_factory: Optional[sessionmaker] = None,
        indexer: Optional[HierarchicalIndexer] = None,
        notifier=None,
    ):
        self._session_factory = session_factory
        self._indexer = indexer
        self._notifier = notifier

    def _factory(self) -> sessionmaker:
        return self._session_factory or get_session_factory()

    def _get_indexer(self) -> HierarchicalIndexer:
        if self._indexer is None:
            self._indexer = HierarchicalIndexer(session_factory=self._session_factory)
        return self._indexer

    def _get_notifier(self):
        if self._notifier is None:
            from dataroom.jobs.notifications import get_notification_trigger
            self._notifier = get_notification_trigger()
        return self._notifier

    # -------------------------------------------------------------------
    # Folders
    # -------------------------------------------------------------------

    def create_folder(
        self,
        dataroom_id: str,
        name: str,
        parent_path: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Create a folder under ``parent_path`` (root when empty).

        A taken path is retried as ``"name (1)"``, ``"name (2)"`` ... up to
        MAX_NAME_ATTEMPTS candidates.

        Returns:
            ``{"id", "name", "path", "parent_id"}`` of the new folder.
        """
        name = (name or "").strip()
        if not name:
            raise DataroomValidationError(
                "Folder name must not be empty", dataroom_id=dataroom_id, operation="create_folder",
            )

        with session_scope(self._factory()) as session:
            lock_dataroom(session, dataroom_id)
            self._require_dataroom(session, dataroom_id)
            parent = self._folder_by_path(session, dataroom_id, parent_path)
            base_path = parent.path if parent is not None else ROOT_PATH

            taken = set(session.scalars(
                select(DataroomFolder.path).where(DataroomFolder.dataroom_id == dataroom_id)
            ))
            for attempt in range(MAX_NAME_ATTEMPTS):
                candidate = name if attempt == 0 else f"{name} ({attempt})"
                path = child_path(base_path, candidate)
                if path not in taken:
                    break
            else:
                raise DataroomValidationError(
                    f"Could not find a free name for '{name}' after {MAX_NAME_ATTEMPTS} attempts",
                    dataroom_id=dataroom_id, operation="create_folder",
                )

            folder = DataroomFolder(
                dataroom_id=dataroom_id,
                name=candidate,
                path=path,
                parent_id=parent.id if parent is not None else None,
            )
            session.add(folder)
            session.flush()
            result = {"id": folder.id, "name": folder.name, "path": folder.path, "parent_id": folder.parent_id}

        logger.info(f"Created folder {result['path']} in dataroom {dataroom_id}")
        log(log_tree_mutation("folder_created", dataroom_id, details=result))
        return result

    # -------------------------------------------------------------------
    # Placements
    # -------------------------------------------------------------------

    def add_document(
        self,
        dataroom_id: str,
        document_id: str,
        folder_path: Optional[str] = None,
        sender_user_id: Optional[str] = None,
    ) -> str:
        """
        Place an existing document into the dataroom at ``folder_path``.

        Schedules the change notification after the placement is committed
        when the dataroom has notifications enabled.

        Returns:
            The new placement id.
        """
        with session_scope(self._factory()) as session:
            dataroom = self._require_dataroom(session, dataroom_id)
            if session.get(Document, document_id) is None:
                raise DataroomNotFoundError(
                    f"Document '{document_id}' not found",
                    dataroom_id=dataroom_id, record_type="document", record_id=document_id,
                )
            folder = self._folder_by_path(session, dataroom_id, folder_path)
            placement = DataroomDocument(
                dataroom_id=dataroom_id,
                document_id=document_id,
                folder_id=folder.id if folder is not None else None,
            )
            session.add(placement)
            session.flush()
            placement_id = placement.id
            notify = dataroom.enable_change_notifications
            team_id = dataroom.team_id

        log(log_tree_mutation(
            "document_added", dataroom_id, object_type="folders",
            details={"placement_id": placement_id, "document_id": document_id},
        ))
        if notify:
            self._get_notifier().trigger(
                dataroom_id, placement_id, sender_user_id=sender_user_id, team_id=team_id,
            )
        return placement_id

    # -------------------------------------------------------------------
    # Ordering
    # -------------------------------------------------------------------

    def reorder(
        self,
        dataroom_id: str,
        items: Iterable[Dict[str, Any]],
        recompute_indexes: bool = True,
    ) -> int:
        """
        Set manual ``order_index`` values.

        Args:
            items: ``{"id", "kind": "folder"|"document", "order_index"}`` dicts.
                ``order_index`` None clears the manual position.
            recompute_indexes: Renumber the dataroom in the same transaction.

        Returns:
            Number of rows updated.
        """
        folder_rows: List[Dict[str, Any]] = []
        document_rows: List[Dict[str, Any]] = []
        for item in items:
            row = {"id": item["id"], "order_index": item.get("order_index")}
            kind = item.get("kind", FOLDER)
            if kind == FOLDER:
                folder_rows.append(row)
            elif kind == DOCUMENT:
                document_rows.append(row)
            else:
                raise DataroomValidationError(
                    f"Unknown item kind '{kind}'", dataroom_id=dataroom_id, operation="reorder",
                )

        with session_scope(self._factory()) as session:
            lock_dataroom(session, dataroom_id)
            self._require_dataroom(session, dataroom_id)
            self._require_members(session, dataroom_id, DataroomFolder, folder_rows)
            self._require_members(session, dataroom_id, DataroomDocument, document_rows)

            if folder_rows:
                session.execute(update(DataroomFolder), folder_rows)
            if document_rows:
                session.execute(update(DataroomDocument), document_rows)
            if recompute_indexes:
                self._get_indexer().recompute_in_session(session, dataroom_id)

        count = len(folder_rows) + len(document_rows)
        log(log_tree_mutation("items_reordered", dataroom_id, details={"count": count}))
        return count

    @staticmethod
    def _require_members(session: Session, dataroom_id: str, model, rows: List[Dict[str, Any]]) -> None:
        if not rows:
            return
        ids = [row["id"] for row in rows]
        found = set(session.scalars(
            select(model.id).where(model.dataroom_id == dataroom_id, model.id.in_(ids))
        ))
        missing = [i for i in ids if i not in found]
        if missing:
            raise DataroomNotFoundError(
                f"{len(missing)} item(s) not found in dataroom: {missing[:10]}",
                dataroom_id=dataroom_id,
                record_type=model.__tablename__,
                record_id=missing[0],
            )

    # -------------------------------------------------------------------
    # Read
    # -------------------------------------------------------------------

    def list_tree(self, dataroom_id: str) -> List[Dict[str, Any]]:
        """
        Nested view of the dataroom in display order.

        Each node: ``{"id", "kind", "name", "hierarchical_index", "children"}``;
        folders also carry ``"path"``. Indexes are the stored values, which
        may be stale after a move without recomputation.
        """
        with session_scope(self._factory()) as session:
            self._require_dataroom(session, dataroom_id)
            items = load_tree_items(session, dataroom_id)
            folders = {
                row.id: row for row in session.execute(
                    select(DataroomFolder.id, DataroomFolder.path, DataroomFolder.hierarchical_index)
                    .where(DataroomFolder.dataroom_id == dataroom_id)
                )
            }
            documents = dict(session.execute(
                select(DataroomDocument.id, DataroomDocument.hierarchical_index)
                .where(DataroomDocument.dataroom_id == dataroom_id)
            ).all())

        roots: List[Dict[str, Any]] = []
        # levels[d] is the children list that receives nodes at depth d + 1
        levels: List[List[Dict[str, Any]]] = [roots]
        for item, _, depth in TreeArena(items).walk():
            node: Dict[str, Any] = {"id": item.id, "kind": item.kind, "name": item.name}
            if item.kind == FOLDER:
                node["path"] = folders[item.id].path
                node["hierarchical_index"] = folders[item.id].hierarchical_index
            else:
                node["hierarchical_index"] = documents[item.id]
            node["children"] = []
            del levels[depth:]
            levels[depth - 1].append(node)
            levels.append(node["children"])
        return roots

    # -------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------

    @staticmethod
    def _require_dataroom(session: Session, dataroom_id: str) -> Dataroom:
        dataroom = session.get(Dataroom, dataroom_id)
        if dataroom is None:
            raise DataroomNotFoundError(
                f"Dataroom '{dataroom_id}' not found",
                dataroom_id=dataroom_id, record_type="dataroom", record_id=dataroom_id,
            )
        return dataroom

    @staticmethod
    def _folder_by_path(session: Session, dataroom_id: str, path: Optional[str]) -> Optional[DataroomFolder]:
        path = normalize_parent_path(path)
        if path == ROOT_PATH:
            return None
        folder = session.scalars(
            select(DataroomFolder).where(
                DataroomFolder.dataroom_id == dataroom_id,
                DataroomFolder.path == path,
            )
        ).first()
        if folder is None:
            raise DataroomNotFoundError(
                f"Folder '{path}' not found",
                dataroom_id=dataroom_id, record_type="dataroom_folder", record_id=path,
            )
        return folder
