"""
Command line tool for docarchive.

Operates on a SQLite document store:
- insert: Add documents to a collection
- find: Print documents (or a collection's archive entries)
- archive: Move matching documents into the archive collection
- restore: Move archived documents back
- delete: Delete through the archive policy (or permanently)

Usage:
    docarchive --db docs.db insert things '{"name": "test"}'
    docarchive --db docs.db archive things '{"name": "test"}'
    docarchive --db docs.db find things --archived
    docarchive --db docs.db restore things '{"name": "test"}'
    docarchive --db docs.db delete things '{"name": "test"}' --permanent

Selectors and documents are JSON. Defaults come from the environment
(DOCARCHIVE_DB_PATH, DOCARCHIVE_COLLECTION, DOCARCHIVE_EXCLUDE, LOG_LEVEL,
LOG_FORMAT); flags override them.

Invariants:
    - Exit code 0 on success, 1 on any archive/store error
    - find output is one JSON document per line
"""

from __future__ import annotations

import argparse
import asyncio
import dataclasses
import json
import logging
import sys
from typing import Any

import json_log_formatter

from ..config import LoggingConfig, Settings, StoreBackend
from ..engine import ArchiveEngine
from ..errors import ArchiveError
from ..store import create_store

logger = logging.getLogger(__name__)


def setup_logging(config: LoggingConfig) -> None:
    """Configure logging based on configuration.

    Args:
        config: Logging configuration
    """
    level = getattr(logging, config.log_level.upper(), logging.INFO)

    if config.log_format == "json":
        # Emits message, time and every extra={...} field
        formatter = json_log_formatter.JSONFormatter()
    else:
        formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers = [handler]


def _json_arg(value: str) -> Any:
    try:
        return json.loads(value)
    except json.JSONDecodeError as e:
        raise argparse.ArgumentTypeError(f"invalid JSON: {e}")


def _selector_arg(value: str) -> Any:
    selector = _json_arg(value)
    if not isinstance(selector, (dict, str)):
        raise argparse.ArgumentTypeError("selector must be a JSON object or an id string")
    return selector


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="docarchive",
        description="Archive and restore documents in a SQLite document store",
    )
    parser.add_argument("--db", help="SQLite database file (default: $DOCARCHIVE_DB_PATH)")
    parser.add_argument("--archive-name", help="Archive collection name")
    parser.add_argument("--exclude", help="Comma-separated collections that never archive")
    parser.add_argument(
        "--no-override-remove",
        action="store_true",
        help="Make delete permanent unless archive is called explicitly",
    )
    parser.add_argument(
        "--fresh-ids",
        action="store_true",
        help="Give restored documents new identifiers",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Verbose output")

    subparsers = parser.add_subparsers(dest="command", required=True)

    insert_parser = subparsers.add_parser("insert", help="Insert documents")
    insert_parser.add_argument("collection")
    insert_parser.add_argument("documents", type=_json_arg, help="JSON object or array of objects")

    find_parser = subparsers.add_parser("find", help="Print matching documents")
    find_parser.add_argument("collection")
    find_parser.add_argument("selector", nargs="?", type=_selector_arg, default=None)
    find_parser.add_argument(
        "--archived",
        action="store_true",
        help="Show archive entries removed from the collection",
    )

    for command, help_text in (
        ("archive", "Archive matching documents"),
        ("restore", "Restore matching archived documents"),
    ):
        command_parser = subparsers.add_parser(command, help=help_text)
        command_parser.add_argument("collection")
        command_parser.add_argument("selector", nargs="?", type=_selector_arg, default=None)

    delete_parser = subparsers.add_parser("delete", help="Delete through the archive policy")
    delete_parser.add_argument("collection")
    delete_parser.add_argument("selector", nargs="?", type=_selector_arg, default=None)
    delete_parser.add_argument(
        "--permanent",
        action="store_true",
        help="Delete forever instead of archiving",
    )

    return parser


def _build_engine(args: argparse.Namespace, settings: Settings) -> ArchiveEngine:
    storage = dataclasses.replace(settings.storage, backend=StoreBackend.SQLITE)
    if args.db:
        storage = dataclasses.replace(storage, db_path=args.db)

    engine = ArchiveEngine(create_store(storage), settings.archive)

    options: dict[str, Any] = {}
    if args.archive_name:
        options["name"] = args.archive_name
    if args.exclude is not None:
        options["exclude"] = [name.strip() for name in args.exclude.split(",") if name.strip()]
    if args.no_override_remove:
        options["overrideRemove"] = False
    if args.fresh_ids:
        options["preserveIds"] = False
    if options:
        engine.configure(options)
    return engine


async def _run_command(engine: ArchiveEngine, args: argparse.Namespace) -> None:
    collection = engine.collection(args.collection)

    if args.command == "insert":
        documents = args.documents if isinstance(args.documents, list) else [args.documents]
        if not all(isinstance(doc, dict) for doc in documents):
            raise ArchiveError("documents must be JSON objects", code="INVALID_DOCUMENT")
        for doc_id in await collection.insert_many(documents):
            print(doc_id)

    elif args.command == "find":
        if args.archived:
            docs = await collection.archived(args.selector)
        else:
            docs = await collection.fetch(args.selector)
        for doc in docs:
            print(json.dumps(doc, sort_keys=True, default=str))

    elif args.command == "archive":
        count = await collection.archive(args.selector)
        print(f"Archived {count} document(s)")

    elif args.command == "restore":
        count = await collection.restore(args.selector)
        print(f"Restored {count} document(s)")

    elif args.command == "delete":
        count = await collection.delete(args.selector, permanent=args.permanent)
        print(f"Deleted {count} document(s)")


def run(argv: list[str] | None = None) -> int:
    """Parse arguments, run one command and return the exit code."""
    args = build_parser().parse_args(argv)

    try:
        settings = Settings.from_env()
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    log_config = settings.logging
    if args.verbose:
        log_config = dataclasses.replace(log_config, log_level="DEBUG")
    setup_logging(log_config)

    try:
        engine = _build_engine(args, settings)
        asyncio.run(_run_command(engine, args))
    except ArchiveError as e:
        logger.debug(f"Command failed: {e.code}", exc_info=True)
        print(f"Error: {e}", file=sys.stderr)
        return 1
    return 0


def main() -> None:
    """CLI entry point."""
    sys.exit(run())


if __name__ == "__main__":
    main()
