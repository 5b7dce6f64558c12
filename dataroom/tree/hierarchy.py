"""
Tree reconstruction and hierarchical index assignment.

Folders and placements arrive as flat rows. ``TreeArena`` rebuilds the
forest as an arena: nodes live in one list, each node keeps the positions
of its children, and the root is implicit. Folders and placements share the
parent key space and are ordered together as siblings.

Traversal is iterative so arbitrarily deep trees do not hit the recursion
limit.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Tuple

from dataroom.tree.ordering import sibling_sort_key

logger = logging.getLogger("dataroom.tree.hierarchy")

FOLDER = "folder"
DOCUMENT = "document"


@dataclass(frozen=True)
class TreeItem:
    """
    One folder or placement row reduced to what ordering needs.

    ``parent_id`` is the folder's ``parent_id`` or the placement's ``folder_id``.
    """
    id: str
    name: str
    kind: str
    parent_id: Optional[str] = None
    order_index: Optional[int] = None


@dataclass(frozen=True)
class IndexedItem:
    id: str
    kind: str
    hierarchical_index: str
    depth: int


class TreeArena:
    """
    Arena-of-nodes forest built from flat rows.

    Usage:
        arena = TreeArena(items).assign_indexes()
        for row in arena.flatten():
            ...
    """

    def __init__(self, items: Iterable[TreeItem]):
        self.items: List[TreeItem] = list(items)
        self.roots: List[int] = []
        self.children: List[List[int]] = [[] for _ in self.items]
        self.indexes: List[Optional[str]] = [None] * len(self.items)
        self.depths: List[int] = [0] * len(self.items)
        self._preorder: List[int] = []
        self._orphans: List[int] = []
        self._build()

    def _build(self) -> None:
        folder_positions: Dict[str, int] = {}
        for pos, item in enumerate(self.items):
            if item.kind == FOLDER:
                folder_positions[item.id] = pos

        for pos, item in enumerate(self.items):
            if item.parent_id is None:
                self.roots.append(pos)
                continue
            parent_pos = folder_positions.get(item.parent_id)
            if parent_pos is None:
                self._orphans.append(pos)
            else:
                self.children[parent_pos].append(pos)

        self._sort(self.roots)
        for group in self.children:
            if len(group) > 1:
                self._sort(group)

    def _sort(self, group: List[int]) -> None:
        group.sort(key=lambda pos: sibling_sort_key(self.items[pos]))

    def assign_indexes(self) -> "TreeArena":
        """
        Assign dotted 1-based ranks depth-first. Depth-1 nodes get ``"n"``,
        their children ``"n.m"`` and so on. Previous values are never read.
        """
        self._preorder = []
        self.indexes = [None] * len(self.items)

        stack: List[Tuple[int, str, int]] = [
            (pos, str(rank), 1) for rank, pos in reversed(list(enumerate(self.roots, start=1)))
        ]
        while stack:
            pos, index, depth = stack.pop()
            self.indexes[pos] = index
            self.depths[pos] = depth
            self._preorder.append(pos)
            kids = self.children[pos]
            for rank in range(len(kids), 0, -1):
                stack.append((kids[rank - 1], f"{index}.{rank}", depth + 1))

        unreachable = self.unreachable
        if unreachable:
            logger.warning(
                f"{len(unreachable)} tree item(s) unreachable from root "
                f"(missing parent or cycle): {[item.id for item in unreachable[:10]]}"
            )
        return self

    @property
    def unreachable(self) -> List[TreeItem]:
        """Items with no index after assignment (orphans and cycle members)."""
        return [self.items[pos] for pos, index in enumerate(self.indexes) if index is None]

    def flatten(self) -> List[IndexedItem]:
        """Indexed items in depth-first pre-order."""
        if not self._preorder and self.items:
            self.assign_indexes()
        return [
            IndexedItem(
                id=self.items[pos].id,
                kind=self.items[pos].kind,
                hierarchical_index=self.indexes[pos],
                depth=self.depths[pos],
            )
            for pos in self._preorder
        ]

    def walk(self) -> Iterable[Tuple[TreeItem, str, int]]:
        """Yield ``(item, hierarchical_index, depth)`` in display order."""
        if not self._preorder and self.items:
            self.assign_indexes()
        for pos in self._preorder:
            yield self.items[pos], self.indexes[pos], self.depths[pos]

    def __len__(self) -> int:
        return len(self.items)


def compute_hierarchical_indexes(items: Iterable[TreeItem]) -> Dict[Tuple[str, str], str]:
    """``{(kind, id): hierarchical_index}`` for every reachable item."""
    arena = TreeArena(items).assign_indexes()
    return {(row.kind, row.id): row.hierarchical_index for row in arena.flatten()}
