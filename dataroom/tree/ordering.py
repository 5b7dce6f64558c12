"""
Sibling ordering.

Items with a manual ``order_index`` come first, ascending. Items without one
follow. Inside each group names decide, compared the way a locale collator
does: accents and case are ignored first, then accents count, then
lowercase sorts before uppercase. The id is the last tie-breaker so the
order is total.

Primary comparison groups characters like the root collation: whitespace,
then punctuation, then symbols, then digits, then letters.
"""

from __future__ import annotations

import unicodedata
from typing import Any, List, Sequence, Tuple, TypeVar

T = TypeVar("T")

# unicodedata category prefix -> primary weight group
_CHAR_GROUPS = {"Z": 0, "P": 1, "S": 2, "N": 3}
_LETTER_GROUP = 4


def _strip_accents(text: str) -> str:
    decomposed = unicodedata.normalize("NFKD", text)
    return "".join(c for c in decomposed if not unicodedata.combining(c))


def _char_weight(c: str) -> Tuple[int, str]:
    if c.isspace():
        return (0, c)
    return (_CHAR_GROUPS.get(unicodedata.category(c)[0], _LETTER_GROUP), c)


def name_collation_key(name: str) -> Tuple[Tuple[Tuple[int, str], ...], str, str]:
    name = name or ""
    primary = tuple(_char_weight(c) for c in _strip_accents(name).casefold())
    return (primary, name.casefold(), name.swapcase())


def sibling_sort_key(item: Any) -> Tuple:
    """Sort key for anything exposing ``order_index``, ``name`` and ``id``."""
    order_index = item.order_index
    if order_index is None:
        return (1, 0, name_collation_key(item.name), str(item.id))
    return (0, order_index, name_collation_key(item.name), str(item.id))


def sort_siblings(items: Sequence[T]) -> List[T]:
    """Return a new list of siblings in display order."""
    return sorted(items, key=sibling_sort_key)
