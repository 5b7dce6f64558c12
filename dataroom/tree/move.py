"""
Subtree moves.

Moving a folder changes the moved folder's ``parent_id``, ``path`` and
``order_index`` (reset to None) and rewrites the path prefix of every
descendant. Descendants keep their ``parent_id``; placements keep their
``folder_id``.

The whole move is one transaction. Name conflicts in the target are
detected before the first write and reject the entire batch.
"""

from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence

from sqlalchemy import select
from sqlalchemy.orm import Session, sessionmaker

from dataroom.db.models import Dataroom, DataroomDocument, DataroomFolder
from dataroom.db.session import get_session_factory, session_scope
from dataroom.engine.errors import (
    DataroomNotFoundError,
    DataroomValidationError,
    FolderNameConflictError,
)
from dataroom.engine.logging import log, log_tree_mutation
from dataroom.tree.indexer import HierarchicalIndexer
from dataroom.tree.locking import lock_dataroom
from dataroom.tree.paths import (
    ROOT_PATH,
    child_path,
    is_descendant_path,
    normalize_parent_path,
    rebase_path,
)

logger = logging.getLogger("dataroom.tree.move")


@dataclass(frozen=True)
class MoveResult:
    updated_count: int
    new_path: Optional[str] = None

    def to_dict(self) -> Dict[str, object]:
        d: Dict[str, object] = {"updated_count": self.updated_count}
        if self.new_path is not None:
            d["new_path"] = self.new_path
        return d


class FolderMover:
    """
    Moves folders (with their subtrees) and placements inside one dataroom.

    Usage:
        mover = FolderMover()
        mover.move_folders(dataroom_id, [folder_id], target_parent_id=None)
    """

    def __init__(
        self,
        session_factory: Optional[sessionmaker] = None,
        indexer: Optional[HierarchicalIndexer] = None,
    ):
        self._session_factory = session_factory
        self._indexer = indexer

    def _factory(self) -> sessionmaker:
        return self._session_factory or get_session_factory()

    # -------------------------------------------------------------------
    # Folder moves
    # -------------------------------------------------------------------

    def move_folders(
        self,
        dataroom_id: str,
        folder_ids: Sequence[str],
        target_parent_id: Optional[str] = None,
        target_path: Optional[str] = None,
        recompute_indexes: bool = False,
    ) -> MoveResult:
        """
        Move folders (and their subtrees) under ``target_parent_id`` (None = root).

        Args:
            dataroom_id: Dataroom owning every folder involved.
            folder_ids: Folders to move; each becomes a direct child of the target.
            target_parent_id: Destination folder, or None for root.
            target_path: Destination path as seen by the caller; must match the
                destination's stored path when given.
            recompute_indexes: Rebuild hierarchical indexes in the same transaction.

        Raises:
            DataroomNotFoundError, DataroomValidationError, FolderNameConflictError
        """
        folder_ids = list(dict.fromkeys(folder_ids))
        if not folder_ids:
            raise DataroomValidationError(
                "No folders selected", dataroom_id=dataroom_id, operation="move_folders",
            )

        with session_scope(self._factory()) as session:
            lock_dataroom(session, dataroom_id)
            self._require_dataroom(session, dataroom_id)

            destination = self._resolve_target(session, dataroom_id, target_parent_id, target_path)
            destination_path = destination.path if destination is not None else ROOT_PATH

            all_folders: List[DataroomFolder] = list(
                session.scalars(select(DataroomFolder).where(DataroomFolder.dataroom_id == dataroom_id))
            )
            by_id = {f.id: f for f in all_folders}

            missing = [fid for fid in folder_ids if fid not in by_id]
            if missing:
                raise DataroomNotFoundError(
                    f"Folder(s) not found in dataroom: {missing}",
                    dataroom_id=dataroom_id,
                    record_type="dataroom_folder",
                    record_id=missing[0],
                )
            moved = [by_id[fid] for fid in folder_ids]

            self._check_not_into_own_subtree(moved, destination, dataroom_id)
            moved = self._drop_nested(moved)
            self._check_conflicts(all_folders, moved, target_parent_id, destination_path, dataroom_id)

            # Snapshot old paths before any write; prefixes must not chase each other.
            plan = [(folder, folder.path, child_path(destination_path, folder.name)) for folder in moved]
            moved_ids = {folder.id for folder in moved}

            for folder, old_path, new_path in plan:
                descendants = [
                    f for f in all_folders
                    if f.id not in moved_ids and is_descendant_path(f.path, old_path)
                ]
                for descendant in descendants:
                    descendant.path = rebase_path(descendant.path, old_path, new_path)
                folder.parent_id = target_parent_id
                folder.path = new_path
                folder.order_index = None
                logger.info(
                    f"Moved folder {folder.id} '{old_path}' -> '{new_path}' "
                    f"({len(descendants)} descendant path(s) rewritten)"
                )

            if recompute_indexes:
                session.flush()
                self._get_indexer().recompute_in_session(session, dataroom_id)

        result = MoveResult(
            updated_count=len(plan),
            new_path=destination_path if destination is not None else None,
        )
        log(log_tree_mutation(
            "folders_moved", dataroom_id,
            details={"folder_ids": folder_ids, "target_parent_id": target_parent_id,
                     "updated_count": result.updated_count},
        ))
        return result

    def _resolve_target(
        self,
        session: Session,
        dataroom_id: str,
        target_parent_id: Optional[str],
        target_path: Optional[str],
    ) -> Optional[DataroomFolder]:
        if target_parent_id is None:
            if normalize_parent_path(target_path) != ROOT_PATH:
                raise DataroomValidationError(
                    f"Target path '{target_path}' given without a target folder",
                    dataroom_id=dataroom_id, operation="move_folders",
                )
            return None

        target = session.get(DataroomFolder, target_parent_id)
        if target is None or target.dataroom_id != dataroom_id:
            raise DataroomNotFoundError(
                f"Target folder '{target_parent_id}' not found",
                dataroom_id=dataroom_id,
                record_type="dataroom_folder",
                record_id=target_parent_id,
            )
        if target_path is not None and normalize_parent_path(target_path) != target.path:
            raise DataroomValidationError(
                f"Target path '{target_path}' does not match folder path '{target.path}'",
                dataroom_id=dataroom_id, operation="move_folders",
            )
        return target

    @staticmethod
    def _check_not_into_own_subtree(
        moved: List[DataroomFolder],
        destination: Optional[DataroomFolder],
        dataroom_id: str,
    ) -> None:
        if destination is None:
            return
        for folder in moved:
            if destination.id == folder.id or is_descendant_path(destination.path, folder.path):
                raise DataroomValidationError(
                    f"Cannot move folder '{folder.name}' into itself or one of its subfolders",
                    dataroom_id=dataroom_id, operation="move_folders",
                )

    @staticmethod
    def _drop_nested(moved: List[DataroomFolder]) -> List[DataroomFolder]:
        """A folder selected together with one of its ancestors travels with the ancestor."""
        return [
            folder for folder in moved
            if not any(other is not folder and is_descendant_path(folder.path, other.path) for other in moved)
        ]

    @staticmethod
    def _check_conflicts(
        all_folders: List[DataroomFolder],
        moved: List[DataroomFolder],
        target_parent_id: Optional[str],
        destination_path: str,
        dataroom_id: str,
    ) -> None:
        moved_ids = {f.id for f in moved}
        siblings = [
            f for f in all_folders
            if f.parent_id == target_parent_id and f.id not in moved_ids
        ]
        sibling_names = {f.name for f in siblings}
        taken_paths = {f.path for f in all_folders if f.id not in moved_ids}

        conflicts: List[str] = []
        for folder in moved:
            if folder.name in sibling_names or child_path(destination_path, folder.name) in taken_paths:
                conflicts.append(folder.name)

        name_counts = Counter(folder.name for folder in moved)
        conflicts.extend(name for name, count in name_counts.items() if count > 1)

        path_counts = Counter(child_path(destination_path, folder.name) for folder in moved)
        conflicts.extend(
            folder.name for folder in moved
            if path_counts[child_path(destination_path, folder.name)] > 1
        )

        if conflicts:
            names = sorted(set(conflicts))
            raise FolderNameConflictError(
                f"Folder(s) with the same name already exist in the destination: {', '.join(names)}",
                dataroom_id=dataroom_id,
                operation="move_folders",
                conflicting_names=names,
            )

    # -------------------------------------------------------------------
    # Placement moves
    # -------------------------------------------------------------------

    def move_documents(
        self,
        dataroom_id: str,
        placement_ids: Sequence[str],
        target_folder_id: Optional[str] = None,
    ) -> MoveResult:
        """Re-parent placements under ``target_folder_id`` (None = root); resets their order."""
        placement_ids = list(dict.fromkeys(placement_ids))
        with session_scope(self._factory()) as session:
            lock_dataroom(session, dataroom_id)
            self._require_dataroom(session, dataroom_id)
            destination = self._resolve_target(session, dataroom_id, target_folder_id, None)

            placements = list(session.scalars(
                select(DataroomDocument).where(
                    DataroomDocument.dataroom_id == dataroom_id,
                    DataroomDocument.id.in_(placement_ids),
                )
            ))
            found = {p.id for p in placements}
            missing = [pid for pid in placement_ids if pid not in found]
            if missing:
                raise DataroomNotFoundError(
                    f"Document(s) not found in dataroom: {missing}",
                    dataroom_id=dataroom_id,
                    record_type="dataroom_document",
                    record_id=missing[0],
                )
            for placement in placements:
                placement.folder_id = target_folder_id
                placement.order_index = None

        log(log_tree_mutation(
            "documents_moved", dataroom_id,
            details={"placement_ids": placement_ids, "target_folder_id": target_folder_id},
        ))
        return MoveResult(
            updated_count=len(placements),
            new_path=destination.path if destination is not None else None,
        )

    # -------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------

    def _get_indexer(self) -> HierarchicalIndexer:
        if self._indexer is None:
            self._indexer = HierarchicalIndexer(session_factory=self._session_factory)
        return self._indexer

    @staticmethod
    def _require_dataroom(session: Session, dataroom_id: str) -> Dataroom:
        dataroom = session.get(Dataroom, dataroom_id)
        if dataroom is None:
            raise DataroomNotFoundError(
                f"Dataroom '{dataroom_id}' not found",
                dataroom_id=dataroom_id,
                record_type="dataroom",
                record_id=dataroom_id,
            )
        return dataroom


def move_folders(
    dataroom_id: str,
    folder_ids: Sequence[str],
    target_parent_id: Optional[str] = None,
    target_path: Optional[str] = None,
    recompute_indexes: bool = False,
) -> MoveResult:
    """Module-level shortcut for FolderMover().move_folders()."""
    return FolderMover().move_folders(
        dataroom_id, folder_ids, target_parent_id, target_path, recompute_indexes,
    )
