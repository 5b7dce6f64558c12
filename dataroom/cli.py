"""
Dataroom CLI — schema bootstrap and tree maintenance commands.

Commands:
- dataroom init                — Create the dataroom tables
- dataroom reindex             — Recompute hierarchical indexes of a dataroom
- dataroom move                — Move folders (with subtrees) to a new parent
- dataroom duplicate           — Copy a dataroom (or a template dataroom)
- dataroom apply-template      — Create template folders inside a dataroom
- dataroom create-from-template — New dataroom from a built-in template
- dataroom create-from-folder  — New dataroom from a team folder
- dataroom templates           — List built-in templates
- dataroom check-paths         — Verify stored paths against parent pointers
- dataroom tree                — Print a dataroom tree with its indexes
"""

from __future__ import annotations

import argparse
import logging
from typing import Any, Dict, List, Optional

logger = logging.getLogger("dataroom.cli")


def main(argv: Optional[list] = None) -> int:
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        prog="dataroom",
        description="Dataroom Tree Indexer",
    )
    parser.add_argument("--config", help="Path to dataroom.yaml (default: auto-discover)")
    parser.add_argument("--db-url", help="Database URL (overrides config)")
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # dataroom init
    subparsers.add_parser("init", help="Create the dataroom tables")

    # dataroom reindex
    reindex_parser = subparsers.add_parser("reindex", help="Recompute hierarchical indexes")
    reindex_parser.add_argument("dataroom_id", help="Dataroom id")

    # dataroom move
    move_parser = subparsers.add_parser("move", help="Move folders to a new parent")
    move_parser.add_argument("dataroom_id", help="Dataroom id")
    move_parser.add_argument("folder_ids", nargs="+", help="Folder ids to move")
    move_parser.add_argument("--target", help="Target folder id (default: root)")
    move_parser.add_argument("--target-path", help="Expected path of the target folder")
    move_parser.add_argument(
        "--reindex", action="store_true", help="Recompute indexes in the same transaction"
    )

    # dataroom duplicate
    dup_parser = subparsers.add_parser("duplicate", help="Duplicate a dataroom")
    dup_parser.add_argument("dataroom_id", help="Source dataroom id")
    dup_parser.add_argument("--name", help="Name of the copy (default: '<name> (Copy)')")
    dup_parser.add_argument("--team", help="Team scope (template: receiving team)")
    dup_parser.add_argument("--template", action="store_true", help="Source must be a template dataroom")
    dup_parser.add_argument("--reindex", action="store_true", help="Index the copy")

    # dataroom apply-template
    apply_parser = subparsers.add_parser("apply-template", help="Apply a folder template")
    apply_parser.add_argument("dataroom_id", help="Dataroom id")
    source = apply_parser.add_mutually_exclusive_group(required=True)
    source.add_argument("--template", help="Built-in template key")
    source.add_argument("--file", help="YAML file with a [{name, subfolders}] list")
    apply_parser.add_argument("--parent", help="Parent folder id (default: root)")

    # dataroom create-from-template
    cft_parser = subparsers.add_parser("create-from-template", help="New dataroom from a template")
    cft_parser.add_argument("team_id", help="Owning team id")
    cft_parser.add_argument("template", help="Built-in template key")
    cft_parser.add_argument("--name", help="Dataroom name (default: template name)")

    # dataroom create-from-folder
    cff_parser = subparsers.add_parser("create-from-folder", help="New dataroom from a team folder")
    cff_parser.add_argument("team_id", help="Owning team id")
    cff_parser.add_argument("folder_id", help="Source folder id")
    cff_parser.add_argument("--name", help="Dataroom name (default: folder name)")

    # dataroom templates
    subparsers.add_parser("templates", help="List built-in templates")

    # dataroom check-paths
    check_parser = subparsers.add_parser("check-paths", help="Verify materialized paths")
    check_parser.add_argument("dataroom_id", help="Dataroom id")

    # dataroom tree
    tree_parser = subparsers.add_parser("tree", help="Print a dataroom tree")
    tree_parser.add_argument("dataroom_id", help="Dataroom id")

    args = parser.parse_args(argv)

    commands = {
        "init": cmd_init,
        "reindex": cmd_reindex,
        "move": cmd_move,
        "duplicate": cmd_duplicate,
        "apply-template": cmd_apply_template,
        "create-from-template": cmd_create_from_template,
        "create-from-folder": cmd_create_from_folder,
        "templates": cmd_templates,
        "check-paths": cmd_check_paths,
        "tree": cmd_tree,
    }
    handler = commands.get(args.command)
    if handler is None:
        parser.print_help()
        return 0

    from dataroom.engine.errors import DataroomError

    try:
        return handler(args)
    except DataroomError as e:
        print(f"[ERROR] {e.message}")
        logger.debug(repr(e))
        return 1


def _bootstrap(args: argparse.Namespace, create_tables: bool = False):
    """Load config, configure logging and open the database."""
    from dataroom.db.session import init_db
    from dataroom.engine.config import load_config
    from dataroom.engine.logging import configure_stdlib_logging, init_logging

    config = load_config(args.config)
    configure_stdlib_logging(config.logging.level)
    if config.logging.audit:
        q = config.logging.async_queue
        init_logging(
            log_dir=config.logging.directory,
            flush_interval_ms=q.flush_interval_ms,
            flush_batch_size=q.flush_batch_size,
            max_queue_size=q.max_queue_size,
        )

    db = config.database
    init_db(
        args.db_url or db.url,
        create_tables=create_tables,
        pool_size=db.pool_size,
        max_overflow=db.max_overflow,
        pool_timeout=db.pool_timeout,
        pool_recycle=db.pool_recycle,
        pool_pre_ping=db.pool_pre_ping,
    )
    return config


def _shutdown() -> None:
    from dataroom.db.session import close_all_sessions
    from dataroom.engine.logging import shutdown_logging

    shutdown_logging()
    close_all_sessions()


def cmd_init(args: argparse.Namespace) -> int:
    """Create all dataroom tables."""
    from dataroom.engine.logging import log, log_system_event

    try:
        _bootstrap(args, create_tables=True)
    except Exception as e:
        print(f"[ERROR] Failed to create tables: {e}")
        return 1
    log(log_system_event("schema_created"))
    print("[OK] Dataroom tables created")
    _shutdown()
    return 0


def cmd_reindex(args: argparse.Namespace) -> int:
    from dataroom.tree.indexer import recompute_hierarchical_indexes

    _bootstrap(args)
    try:
        result = recompute_hierarchical_indexes(args.dataroom_id)
    finally:
        _shutdown()
    print(
        f"[OK] Reindexed {args.dataroom_id}: "
        f"{result.folders_updated} folders, {result.documents_updated} documents"
    )
    return 0


def cmd_move(args: argparse.Namespace) -> int:
    from dataroom.tree.move import FolderMover

    _bootstrap(args)
    try:
        result = FolderMover().move_folders(
            args.dataroom_id,
            args.folder_ids,
            target_parent_id=args.target,
            target_path=args.target_path,
            recompute_indexes=args.reindex,
        )
    finally:
        _shutdown()
    print(f"[OK] Moved {result.updated_count} folder(s) to {result.new_path or '/'}")
    return 0


def cmd_duplicate(args: argparse.Namespace) -> int:
    from dataroom.tree.materialize import TreeMaterializer

    _bootstrap(args)
    try:
        new_id = TreeMaterializer().duplicate_dataroom(
            args.dataroom_id,
            name=args.name,
            team_id=args.team,
            require_template=args.template,
            index_after=args.reindex,
        )
    finally:
        _shutdown()
    print(f"[OK] Created dataroom {new_id}")
    return 0


def cmd_apply_template(args: argparse.Namespace) -> int:
    from dataroom.tree.materialize import TreeMaterializer
    from dataroom.tree.templates import get_template

    if args.file:
        import yaml

        try:
            with open(args.file, "r", encoding="utf-8") as f:
                folders = yaml.safe_load(f) or []
        except OSError as e:
            print(f"[ERROR] Cannot read template file {args.file}: {e}")
            return 1
        except yaml.YAMLError as e:
            print(f"[ERROR] Invalid YAML in template file {args.file}: {e}")
            return 1
        if not isinstance(folders, list):
            print(f"[ERROR] Template file must contain a list: {args.file}")
            return 1
    else:
        folders = get_template(args.template).folders

    _bootstrap(args)
    try:
        created = TreeMaterializer().apply_template(
            args.dataroom_id, folders, parent_folder_id=args.parent,
        )
    finally:
        _shutdown()
    print(f"[OK] Created {len(created)} folder(s)")
    return 0


def cmd_create_from_template(args: argparse.Namespace) -> int:
    from dataroom.tree.materialize import TreeMaterializer

    _bootstrap(args)
    try:
        new_id = TreeMaterializer().create_from_template(args.team_id, args.template, name=args.name)
    finally:
        _shutdown()
    print(f"[OK] Created dataroom {new_id}")
    return 0


def cmd_create_from_folder(args: argparse.Namespace) -> int:
    from dataroom.tree.materialize import TreeMaterializer

    _bootstrap(args)
    try:
        new_id = TreeMaterializer().create_from_folder(args.team_id, args.folder_id, name=args.name)
    finally:
        _shutdown()
    print(f"[OK] Created dataroom {new_id}")
    return 0


def cmd_templates(args: argparse.Namespace) -> int:
    from dataroom.tree.templates import DATAROOM_TEMPLATES

    for key, template in DATAROOM_TEMPLATES.items():
        print(f"  {key:<26} {template.name} ({template.folder_count} folders)")
    return 0


def cmd_check_paths(args: argparse.Namespace) -> int:
    """Exit 1 when any stored path disagrees with its parent chain."""
    from sqlalchemy import select

    from dataroom.db.models import DataroomFolder
    from dataroom.db.session import session_scope
    from dataroom.tree.paths import find_path_mismatches

    _bootstrap(args)
    try:
        with session_scope() as session:
            rows = session.execute(
                select(DataroomFolder.id, DataroomFolder.name, DataroomFolder.parent_id, DataroomFolder.path)
                .where(DataroomFolder.dataroom_id == args.dataroom_id)
            ).all()
    finally:
        _shutdown()

    mismatches = find_path_mismatches(tuple(row) for row in rows)
    if not mismatches:
        print(f"[OK] {len(rows)} folder path(s) consistent")
        return 0
    for folder_id, stored, expected in mismatches:
        print(f"[MISMATCH] {folder_id}: stored '{stored}', expected '{expected}'")
    return 1


def cmd_tree(args: argparse.Namespace) -> int:
    from dataroom.tree.folders import FolderService

    _bootstrap(args)
    try:
        nodes = FolderService().list_tree(args.dataroom_id)
    finally:
        _shutdown()
    for line in _render(nodes):
        print(line)
    return 0


def _render(nodes: List[Dict[str, Any]]) -> List[str]:
    lines: List[str] = []
    stack = [(node, 0) for node in reversed(nodes)]
    while stack:
        node, depth = stack.pop()
        index = node.get("hierarchical_index") or "-"
        suffix = "/" if node["kind"] == "folder" else ""
        lines.append(f"{'  ' * depth}{index} {node['name']}{suffix}")
        stack.extend((child, depth + 1) for child in reversed(node["children"]))
    return lines
