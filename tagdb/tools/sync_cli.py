"""
Snapshot sync CLI tool for TagDB.

Exports the local tag database as a shareable SQLite file and merges
peer snapshots back in.

Usage:
    tagdb-sync export --user-id <id> [--out <dir>] [--filename <name>]
    tagdb-sync import --dir <dir> [--strategy merge|replace|skip-existing]
    tagdb-sync import --url <base-url> [--strategy ...]
    tagdb-sync import <file> [<file> ...] [--strategy ...]
    tagdb-sync stats

Storage and logging settings come from TAGDB_* environment variables
(see tagdb.config).

Invariants:
    - A multi-file import is applied completely or not at all
    - Exit code is 0 on success, 1 on any TagDB error
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys

import json_log_formatter

from ..config import Settings
from ..errors import TagDbError
from ..models import MergeStrategy
from ..store import TagStore
from ..sync import DirectorySnapshotSource, HttpSnapshotSource

logger = logging.getLogger(__name__)


def setup_logging(settings: Settings, verbose: bool = False) -> None:
    """Configure root logging from settings."""
    level = logging.DEBUG if verbose else getattr(logging, settings.log_level.upper(), logging.INFO)

    if settings.log_format == "json":
        formatter: logging.Formatter = json_log_formatter.JSONFormatter()
    else:
        formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    handler = logging.StreamHandler()
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers = [handler]

    # Reduce noise from libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


async def _export(store: TagStore, args: argparse.Namespace) -> None:
    artifact = await store.sync.export_to_snapshot(args.user_id, filename=args.filename)
    path = await asyncio.to_thread(artifact.write_to, args.out)
    print(f"Exported {len(artifact.data)} bytes to {path}")


async def _import(store: TagStore, args: argparse.Namespace) -> None:
    settings = store.settings
    strategy = MergeStrategy(args.strategy) if args.strategy else settings.default_strategy

    if args.url:
        source = HttpSnapshotSource(
            args.url,
            manifest_name=settings.manifest_name,
            timeout=settings.http_timeout_seconds,
        )
        summary = await store.sync.import_from_source(source, strategy)
    elif args.dir:
        source = DirectorySnapshotSource(args.dir, manifest_name=settings.manifest_name)
        summary = await store.sync.import_from_source(source, strategy)
    elif args.files:
        summary = await store.sync.import_from_files(args.files, strategy)
    elif settings.sync_base_url or settings.sync_dir:
        source = (
            HttpSnapshotSource(settings.sync_base_url, settings.manifest_name)
            if settings.sync_base_url
            else DirectorySnapshotSource(settings.sync_dir, settings.manifest_name)
        )
        summary = await store.sync.import_from_source(source, strategy)
    else:
        raise SystemExit("import needs --url, --dir or snapshot files")

    print(f"Import completed ({strategy.value})")
    for key, value in summary.items():
        print(f"  {key}: {value}")


async def _stats(store: TagStore, args: argparse.Namespace) -> None:
    for table, count in (await store.stats()).items():
        print(f"{table}: {count}")


async def run(settings: Settings, args: argparse.Namespace) -> None:
    async with TagStore.open(settings) as store:
        await args.handler(store, args)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="tagdb-sync",
        description="Export and import TagDB snapshots",
    )
    parser.add_argument("--data-dir", help="Directory of the tag database")
    parser.add_argument("-v", "--verbose", action="store_true", help="Verbose output")
    commands = parser.add_subparsers(dest="command", required=True)

    export = commands.add_parser("export", help="Export the database as a snapshot file")
    export.add_argument("--user-id", required=True, help="User the snapshot belongs to")
    export.add_argument("--out", default=".", help="Output directory")
    export.add_argument("--filename", help="Output file name")
    export.set_defaults(handler=_export)

    imp = commands.add_parser("import", help="Merge peer snapshots into the database")
    imp.add_argument("files", nargs="*", help="Snapshot files to import in order")
    imp.add_argument("--url", help="Base URL serving manifest.json and snapshots")
    imp.add_argument("--dir", help="Directory holding manifest.json and snapshots")
    imp.add_argument(
        "--strategy",
        choices=[s.value for s in MergeStrategy],
        help="Merge strategy (default from TAGDB_DEFAULT_STRATEGY)",
    )
    imp.set_defaults(handler=_import)

    stats = commands.add_parser("stats", help="Show row counts")
    stats.set_defaults(handler=_stats)

    return parser


def main(argv: list[str] | None = None) -> None:
    """CLI entry point for the sync tool."""
    args = build_parser().parse_args(argv)

    settings = Settings(data_dir=args.data_dir) if args.data_dir else Settings()
    setup_logging(settings, verbose=args.verbose)

    try:
        asyncio.run(run(settings, args))
    except TagDbError as e:
        print(f"{args.command} failed [{e.code}]: {e.message}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
