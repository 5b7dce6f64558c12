"""Dataroom tree — ordering, hierarchical indexes, moves and materialization."""

from dataroom.tree.folders import FolderService  # noqa: F401
from dataroom.tree.hierarchy import TreeArena, TreeItem, compute_hierarchical_indexes  # noqa: F401
from dataroom.tree.indexer import HierarchicalIndexer, IndexResult, recompute_hierarchical_indexes  # noqa: F401
from dataroom.tree.materialize import TreeMaterializer  # noqa: F401
from dataroom.tree.move import FolderMover, MoveResult, move_folders  # noqa: F401
from dataroom.tree.templates import DATAROOM_TEMPLATES, FolderTemplate  # noqa: F401

__all__ = [
    "FolderService",
    "TreeArena",
    "TreeItem",
    "compute_hierarchical_indexes",
    "HierarchicalIndexer",
    "IndexResult",
    "recompute_hierarchical_indexes",
    "TreeMaterializer",
    "FolderMover",
    "MoveResult",
    "move_folders",
    "DATAROOM_TEMPLATES",
    "FolderTemplate",
]
