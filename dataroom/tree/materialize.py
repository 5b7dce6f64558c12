"""
Tree materialization: dataroom duplication, folder templates and
create-from-folder.

Every operation stages the complete set of new rows in memory first (fresh
ids, paths rebuilt from slugified names under the new root) and inserts them
inside one transaction. Either the whole copy exists afterwards or none of
it does.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Set, Union

from sqlalchemy import insert, select
from sqlalchemy.orm import Session, sessionmaker

from dataroom.db.base import new_id
from dataroom.db.models import (
    Dataroom,
    DataroomDocument,
    DataroomFolder,
    Document,
    Folder,
)
from dataroom.db.session import get_session_factory, session_scope
from dataroom.engine.config import get_config
from dataroom.engine.errors import (
    DataroomDuplicationError,
    DataroomError,
    DataroomNotFoundError,
    DataroomValidationError,
)
from dataroom.engine.logging import log, log_tree_mutation
from dataroom.tree.hierarchy import DOCUMENT, FOLDER, TreeArena, TreeItem
from dataroom.tree.indexer import HierarchicalIndexer, load_tree_items
from dataroom.tree.locking import lock_dataroom
from dataroom.tree.paths import ROOT_PATH, unique_child_path
from dataroom.tree.templates import FolderTemplate, get_template, parse_folder_templates

logger = logging.getLogger("dataroom.tree.materialize")

TemplateInput = Union[FolderTemplate, Dict[str, Any]]


@dataclass
class StagedTree:
    """New rows for one dataroom, in insertion order (parents before children)."""

    dataroom_id: str
    folders: List[Dict[str, Any]] = field(default_factory=list)
    documents: List[Dict[str, Any]] = field(default_factory=list)
    taken_paths: Set[str] = field(default_factory=set)
    _folder_paths: Dict[Optional[str], str] = field(default_factory=dict)

    def add_folder(self, name: str, parent_id: Optional[str], order_index: Optional[int] = None) -> str:
        parent_path = self._folder_paths.get(parent_id, ROOT_PATH) if parent_id else ROOT_PATH
        folder_id = new_id()
        path = unique_child_path(parent_path, name, self.taken_paths)
        self._folder_paths[folder_id] = path
        self.folders.append({
            "id": folder_id,
            "dataroom_id": self.dataroom_id,
            "name": name,
            "path": path,
            "parent_id": parent_id,
            "order_index": order_index,
        })
        return folder_id

    def add_document(
        self, document_id: str, folder_id: Optional[str], order_index: Optional[int] = None,
    ) -> str:
        placement_id = new_id()
        self.documents.append({
            "id": placement_id,
            "dataroom_id": self.dataroom_id,
            "document_id": document_id,
            "folder_id": folder_id,
            "order_index": order_index,
        })
        return placement_id

    def register_existing(self, folder_id: str, path: str) -> None:
        """Make an existing folder usable as a parent for staged rows."""
        self._folder_paths[folder_id] = path

    def flush_into(self, session: Session, batch_size: int) -> None:
        for start in range(0, len(self.folders), batch_size):
            session.execute(insert(DataroomFolder), self.folders[start:start + batch_size])
        for start in range(0, len(self.documents), batch_size):
            session.execute(insert(DataroomDocument), self.documents[start:start + batch_size])


class TreeMaterializer:
    """
    Creates new folder and placement rows from an existing tree or a template.

    Usage:
        materializer = TreeMaterializer()
        copy_id = materializer.duplicate_dataroom(source_id)
        materializer.apply_template(copy_id, DATAROOM_TEMPLATES["sales-dataroom"].folders)
    """

    def __init__(
        self,
        session_factory: Optional[sessionmaker] = None,
        indexer: Optional[HierarchicalIndexer] = None,
        batch_size: Optional[int] = None,
    ):
        self._session_factory = session_factory
        self._indexer = indexer
        self._batch_size = batch_size or get_config().indexing.batch_size

    def _factory(self) -> sessionmaker:
        return self._session_factory or get_session_factory()

    # -------------------------------------------------------------------
    # Duplication
    # -------------------------------------------------------------------

    def duplicate_dataroom(
        self,
        source_id: str,
        name: Optional[str] = None,
        team_id: Optional[str] = None,
        require_template: bool = False,
        index_after: bool = False,
    ) -> str:
        """
        Copy a dataroom's folder shape and placements into a new dataroom.

        Placements keep their ``document_id``; every row gets a fresh id.
        ``hierarchical_index`` is not copied. Each copied row gets its
        1-based rank among the source siblings as ``order_index``, so the
        copy shows the source's order even where names tie.

        Args:
            source_id: Dataroom to copy.
            name: Name of the copy; defaults to ``"<source name> (Copy)"``.
            team_id: For plain duplication the team the source must belong to.
                For template duplication the team that receives the copy.
            require_template: Source must be flagged ``is_template``.
            index_after: Recompute hierarchical indexes of the copy afterwards.

        Returns:
            The new dataroom id.
        """
        operation = "duplicate_template" if require_template else "duplicate_dataroom"
        try:
            with session_scope(self._factory()) as session:
                source = session.get(Dataroom, source_id)
                if source is None or (not require_template and team_id and source.team_id != team_id):
                    raise DataroomNotFoundError(
                        f"Dataroom '{source_id}' not found",
                        dataroom_id=source_id, record_type="dataroom", record_id=source_id,
                    )
                if require_template and not source.is_template:
                    raise DataroomValidationError(
                        f"Dataroom '{source_id}' is not a template",
                        dataroom_id=source_id, operation=operation,
                    )

                if require_template:
                    new_name = name or source.name
                    new_team = team_id or source.team_id
                else:
                    new_name = name or f"{source.name} (Copy)"
                    new_team = source.team_id

                lock_dataroom(session, source_id)
                items = load_tree_items(session, source_id)
                document_ids = dict(session.execute(
                    select(DataroomDocument.id, DataroomDocument.document_id)
                    .where(DataroomDocument.dataroom_id == source_id)
                ).all())

                target = Dataroom(
                    id=new_id(),
                    team_id=new_team,
                    name=new_name,
                    is_template=False,
                    enable_change_notifications=source.enable_change_notifications,
                )
                session.add(target)
                session.flush()

                staged = self._stage_copy(target.id, items, document_ids)
                staged.flush_into(session, self._batch_size)
                if index_after:
                    self._get_indexer().recompute_in_session(session, target.id)
                new_dataroom_id = target.id
        except DataroomError:
            raise
        except Exception as e:
            raise self._failure(operation, source_id, e) from e

        logger.info(
            f"Duplicated dataroom {source_id} -> {new_dataroom_id} "
            f"({len(staged.folders)} folders, {len(staged.documents)} placements)"
        )
        log(log_tree_mutation(
            operation, new_dataroom_id, object_type="datarooms",
            details={"source_id": source_id, "folders": len(staged.folders),
                     "documents": len(staged.documents)},
        ))
        return new_dataroom_id

    @staticmethod
    def _stage_copy(
        dataroom_id: str,
        items: Sequence[TreeItem],
        document_ids: Dict[str, str],
    ) -> StagedTree:
        staged = StagedTree(dataroom_id=dataroom_id)
        id_map: Dict[str, str] = {}
        arena = TreeArena(items).assign_indexes()

        for item, index, _ in arena.walk():
            new_parent = id_map[item.parent_id] if item.parent_id else None
            # Last segment of the source index is the item's rank among its siblings.
            rank = int(index.rsplit(".", 1)[-1])
            if item.kind == FOLDER:
                id_map[item.id] = staged.add_folder(item.name, new_parent, order_index=rank)
            elif item.kind == DOCUMENT:
                staged.add_document(document_ids[item.id], new_parent, order_index=rank)

        skipped = arena.unreachable
        if skipped:
            logger.warning(
                f"Skipped {len(skipped)} unreachable item(s) while copying into {dataroom_id}"
            )
        return staged

    # -------------------------------------------------------------------
    # Templates
    # -------------------------------------------------------------------

    def apply_template(
        self,
        dataroom_id: str,
        template_folders: Sequence[TemplateInput],
        parent_folder_id: Optional[str] = None,
    ) -> List[str]:
        """
        Create the template's folders (no documents) under ``parent_folder_id``.

        Returns:
            Ids of the new folders in pre-order.
        """
        folders = self._coerce_templates(template_folders)
        try:
            with session_scope(self._factory()) as session:
                lock_dataroom(session, dataroom_id)
                if session.get(Dataroom, dataroom_id) is None:
                    raise DataroomNotFoundError(
                        f"Dataroom '{dataroom_id}' not found",
                        dataroom_id=dataroom_id, record_type="dataroom", record_id=dataroom_id,
                    )
                staged = StagedTree(dataroom_id=dataroom_id)
                staged.taken_paths.update(session.scalars(
                    select(DataroomFolder.path).where(DataroomFolder.dataroom_id == dataroom_id)
                ))
                if parent_folder_id is not None:
                    parent = session.get(DataroomFolder, parent_folder_id)
                    if parent is None or parent.dataroom_id != dataroom_id:
                        raise DataroomNotFoundError(
                            f"Folder '{parent_folder_id}' not found",
                            dataroom_id=dataroom_id,
                            record_type="dataroom_folder",
                            record_id=parent_folder_id,
                        )
                    staged.register_existing(parent.id, parent.path)

                self._stage_template(staged, folders, parent_folder_id)
                staged.flush_into(session, self._batch_size)
        except DataroomError:
            raise
        except Exception as e:
            raise self._failure("apply_template", dataroom_id, e) from e

        created = [row["id"] for row in staged.folders]
        logger.info(f"Applied template to dataroom {dataroom_id}: {len(created)} folders")
        log(log_tree_mutation(
            "template_applied", dataroom_id,
            details={"parent_folder_id": parent_folder_id, "folders": len(created)},
        ))
        return created

    def create_from_template(self, team_id: str, template_key: str, name: Optional[str] = None) -> str:
        """Create a new dataroom laid out from a built-in template."""
        template = get_template(template_key)
        try:
            with session_scope(self._factory()) as session:
                dataroom = Dataroom(id=new_id(), team_id=team_id, name=name or template.name)
                session.add(dataroom)
                session.flush()
                staged = StagedTree(dataroom_id=dataroom.id)
                self._stage_template(staged, template.folders, None)
                staged.flush_into(session, self._batch_size)
                new_dataroom_id = dataroom.id
        except DataroomError:
            raise
        except Exception as e:
            raise self._failure("create_from_template", None, e) from e

        logger.info(f"Created dataroom {new_dataroom_id} from template '{template_key}'")
        log(log_tree_mutation(
            "created_from_template", new_dataroom_id, object_type="datarooms",
            details={"template": template_key, "folders": len(staged.folders)},
        ))
        return new_dataroom_id

    @staticmethod
    def _coerce_templates(template_folders: Sequence[TemplateInput]) -> List[FolderTemplate]:
        if all(isinstance(t, FolderTemplate) for t in template_folders):
            return list(template_folders)
        try:
            return parse_folder_templates([
                t.model_dump() if isinstance(t, FolderTemplate) else t for t in template_folders
            ])
        except ValueError as e:
            raise DataroomValidationError(f"Invalid folder template: {e}", operation="apply_template") from e

    @staticmethod
    def _stage_template(
        staged: StagedTree,
        folders: Sequence[FolderTemplate],
        parent_folder_id: Optional[str],
    ) -> None:
        stack = [(node, parent_folder_id) for node in reversed(folders)]
        while stack:
            node, parent_id = stack.pop()
            folder_id = staged.add_folder(node.name, parent_id)
            stack.extend((child, folder_id) for child in reversed(node.subfolders))

    # -------------------------------------------------------------------
    # Create from a regular folder
    # -------------------------------------------------------------------

    def create_from_folder(self, team_id: str, folder_id: str, name: Optional[str] = None) -> str:
        """
        Build a new dataroom from a team folder.

        The folder's own documents become root placements and its child
        folders become root folders. Paths are rebuilt relative to the new root
        and every row is ranked by name order among its siblings.
        """
        try:
            with session_scope(self._factory()) as session:
                source = session.get(Folder, folder_id)
                if source is None or source.team_id != team_id:
                    raise DataroomNotFoundError(
                        f"Folder '{folder_id}' not found",
                        record_type="folder", record_id=folder_id,
                    )

                prefix = source.path.rstrip("/") + "/"
                subtree = list(session.execute(
                    select(Folder.id, Folder.name, Folder.parent_id)
                    .where(Folder.team_id == team_id, Folder.path.startswith(prefix, autoescape=True))
                ).all())
                folder_ids = [source.id] + [row.id for row in subtree]
                documents = list(session.execute(
                    select(Document.id, Document.name, Document.folder_id)
                    .where(Document.folder_id.in_(folder_ids))
                ).all())

                items = [
                    TreeItem(
                        id=row.id, name=row.name, kind=FOLDER,
                        parent_id=None if row.parent_id == source.id else row.parent_id,
                    )
                    for row in subtree
                ]
                items.extend(
                    TreeItem(
                        id=row.id, name=row.name, kind=DOCUMENT,
                        parent_id=None if row.folder_id == source.id else row.folder_id,
                    )
                    for row in documents
                )

                dataroom = Dataroom(id=new_id(), team_id=team_id, name=name or source.name)
                session.add(dataroom)
                session.flush()
                staged = self._stage_copy(dataroom.id, items, {row.id: row.id for row in documents})
                staged.flush_into(session, self._batch_size)
                new_dataroom_id = dataroom.id
        except DataroomError:
            raise
        except Exception as e:
            raise self._failure("create_from_folder", None, e) from e

        logger.info(
            f"Created dataroom {new_dataroom_id} from folder {folder_id} "
            f"({len(staged.folders)} folders, {len(staged.documents)} documents)"
        )
        log(log_tree_mutation(
            "created_from_folder", new_dataroom_id, object_type="datarooms",
            details={"folder_id": folder_id, "folders": len(staged.folders),
                     "documents": len(staged.documents)},
        ))
        return new_dataroom_id

    # -------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------

    def _get_indexer(self) -> HierarchicalIndexer:
        if self._indexer is None:
            self._indexer = HierarchicalIndexer(session_factory=self._session_factory)
        return self._indexer

    @staticmethod
    def _failure(operation: str, dataroom_id: Optional[str], exc: Exception) -> DataroomDuplicationError:
        logger.error(f"{operation} failed for {dataroom_id}: {exc}")
        log(log_tree_mutation(
            operation, dataroom_id, object_type="datarooms", success=False, error=str(exc),
        ))
        return DataroomDuplicationError(
            f"Error in {operation.replace('_', ' ')}; no rows were created",
            dataroom_id=dataroom_id,
            operation=operation,
        )
