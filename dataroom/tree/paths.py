"""
Materialized path helpers.

A folder's ``path`` caches its ancestor chain: ``/`` + slugified names joined
by ``/``. The ``parent_id`` pointers are the source of truth; paths are
rebuilt or prefix-rewritten from them and never trusted on their own.
"""

from __future__ import annotations

import re
import unicodedata
from typing import Dict, Iterable, List, Optional, Set, Tuple

ROOT_PATH = "/"

_CAMEL_BOUNDARY = re.compile(r"([a-z\d])([A-Z])")
_NON_ALNUM = re.compile(r"[^a-z0-9]+")


def slugify(name: str) -> str:
    """
    Lowercase ASCII slug of a folder name.

    Transliterates accents, splits camelCase, collapses every run of
    non-alphanumerics into one dash. Empty results become "untitled".
    """
    text = unicodedata.normalize("NFKD", name or "")
    text = text.encode("ascii", "ignore").decode("ascii")
    text = text.replace("&", " and ")
    text = _CAMEL_BOUNDARY.sub(r"\1-\2", text)
    text = _NON_ALNUM.sub("-", text.lower()).strip("-")
    return text or "untitled"


def normalize_parent_path(path: Optional[str]) -> str:
    """``None``, ``""`` and ``"/"`` all mean root; otherwise ensure one leading slash."""
    if not path or path == ROOT_PATH:
        return ROOT_PATH
    return "/" + path.strip("/")


def child_path(parent_path: Optional[str], name: str) -> str:
    """Path of a folder named ``name`` under ``parent_path`` (root when falsy)."""
    parent = normalize_parent_path(parent_path)
    if parent == ROOT_PATH:
        return "/" + slugify(name)
    return f"{parent}/{slugify(name)}"


def is_descendant_path(path: str, ancestor: str) -> bool:
    """True when ``path`` lies strictly below ``ancestor``."""
    return path.startswith(ancestor.rstrip("/") + "/")


def rebase_path(path: str, old_prefix: str, new_prefix: str) -> str:
    """Replace the ``old_prefix`` of ``path`` with ``new_prefix``; suffix kept byte-identical."""
    if path == old_prefix:
        return new_prefix
    if not is_descendant_path(path, old_prefix):
        raise ValueError(f"'{path}' is not under '{old_prefix}'")
    return new_prefix + path[len(old_prefix):]


def unique_child_path(parent_path: Optional[str], name: str, taken: Set[str]) -> str:
    """
    Child path not already in ``taken``; appends ``-2``, ``-3`` ... on collision.
    The chosen path is added to ``taken``.
    """
    base = child_path(parent_path, name)
    candidate = base
    n = 2
    while candidate in taken:
        candidate = f"{base}-{n}"
        n += 1
    taken.add(candidate)
    return candidate


def reconstruct_paths(folders: Iterable[Tuple[str, str, Optional[str]]]) -> Dict[str, Optional[str]]:
    """
    Rebuild every folder's path from its parent chain.

    Args:
        folders: ``(id, name, parent_id)`` tuples.

    Returns:
        ``{id: path}``; ``None`` for folders whose chain is broken or cyclic.
    """
    rows = {fid: (name, parent_id) for fid, name, parent_id in folders}
    resolved: Dict[str, Optional[str]] = {}

    for start in rows:
        if start in resolved:
            continue
        chain: List[str] = []
        seen: Set[str] = set()
        current: Optional[str] = start
        base: Optional[str] = ROOT_PATH
        while current is not None:
            if current in resolved:
                base = resolved[current]
                break
            if current in seen or current not in rows:
                base = None
                break
            seen.add(current)
            chain.append(current)
            current = rows[current][1]

        for fid in reversed(chain):
            if base is None:
                resolved[fid] = None
                continue
            base = child_path(base, rows[fid][0])
            resolved[fid] = base
    return resolved


def find_path_mismatches(
    folders: Iterable[Tuple[str, str, Optional[str], str]],
) -> List[Tuple[str, str, Optional[str]]]:
    """
    Compare stored paths with paths rebuilt from ``parent_id`` pointers.

    Args:
        folders: ``(id, name, parent_id, stored_path)`` tuples.

    Returns:
        ``(id, stored_path, expected_path)`` for every mismatch.
    """
    rows = list(folders)
    expected = reconstruct_paths((fid, name, parent_id) for fid, name, parent_id, _ in rows)
    return [
        (fid, stored, expected[fid])
        for fid, _, _, stored in rows
        if expected[fid] != stored
    ]
