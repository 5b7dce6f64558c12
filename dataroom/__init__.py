"""
Dataroom Tree Indexer

Keeps a dataroom's folders and document placements in a consistent,
numbered tree: dotted hierarchical indexes, subtree moves with materialized
path rewrites, and all-or-nothing duplication / template materialization.
"""

__version__ = "1.0.0"
__all__ = ["db", "engine", "tree", "jobs", "cli"]
