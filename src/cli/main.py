"""ght-import CLI entry points.
This module exposes the snapshot import and staging commands.
It maps argparse commands onto the import pipeline and staging helpers.
"""

from __future__ import annotations

import argparse
import json
import logging
from dataclasses import replace
from typing import Any, Sequence

from sqlalchemy.engine import URL

from core.config import ImportConfig, normalize_extension
from core.errors import GhtConfigError, GhtError
from core.import_spec import ImportSpec, load_import_spec
from core.logging_config import configure_logging, get_logger
from core.types import ExistingRowPolicy, ImportOptions, ImportReport, SnapshotOrder, WriteStrategy
from ingest.import_events import ImportEvents
from ingest.pipeline import import_snapshots
from store.connection import StoreConnection, build_database_url
from store.integrity_toggler import supports_constraint_toggling
from store.staging import prepare_staging_table, promote_staged_repositories

_LOGGER = get_logger(__name__)

_ORDER_CHOICES: dict[str, SnapshotOrder] = {"newest": "newest_first", "oldest": "oldest_first"}
_STRATEGY_CHOICES: dict[str, WriteStrategy] = {
    "transactional": "transactional",
    "in-place": "in_place",
    "staging": "staging",
}
_EXISTING_CHOICES: dict[str, ExistingRowPolicy] = {
    "update-if-newer": "update_if_newer",
    "skip": "skip_existing",
}


def build_parser() -> argparse.ArgumentParser:
    """Build the top-level CLI parser.

    Returns:
        Configured argument parser.
    """
    parser = argparse.ArgumentParser(
        prog="ght-import",
        description="Import GHTorrent BSON snapshots into a DevMine database",
    )
    parser.add_argument(
        "--database-url",
        help="SQLAlchemy database URL overriding GHT_DATABASE_URL and the config file",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Log every record outcome")
    parser.add_argument(
        "-d", "--debug", action="store_true", help="Log every event with its call site"
    )
    subparsers = parser.add_subparsers(dest="command", required=True)
    _add_import_command(subparsers)
    _add_prepare_staging_command(subparsers)
    _add_promote_staging_command(subparsers)
    return parser


def main(argv: Sequence[str] | None = None) -> int:
    """Run the ght-import CLI.

    Args:
        argv: Optional argument vector.

    Returns:
        Process exit code.
    """
    parser = build_parser()
    args = parser.parse_args(argv)
    _configure_logging(args)
    try:
        config = ImportConfig.from_env()
        spec = load_import_spec(args.config)
        store = StoreConnection(_resolve_database_url(args.database_url, config, spec))
        try:
            store.verify()
            if args.command == "import":
                return _run_import_command(store, spec, config, args)
            if args.command == "prepare-staging":
                return _run_prepare_staging_command(store)
            if args.command == "promote-staging":
                return _run_promote_staging_command(store)
        finally:
            store.dispose()
    except GhtError as error:
        _LOGGER.error("run_failed", command=args.command, error=str(error))
        return 1
    parser.error(f"Unsupported command: {args.command}")
    return 2


def _configure_logging(args: argparse.Namespace) -> None:
    """Map verbosity flags onto the structlog level."""
    level = logging.DEBUG if args.verbose or args.debug else logging.INFO
    configure_logging(level=level, include_callsite=args.debug)


def _resolve_database_url(
    cli_url: str | None,
    config: ImportConfig,
    spec: ImportSpec,
) -> str | URL:
    """Pick the database URL by precedence: flag, environment, config file.

    Raises:
        GhtConfigError: If no source defines the database.
    """
    if cli_url:
        return cli_url
    if config.database_url:
        return config.database_url
    if spec.database is not None:
        return build_database_url(spec.database)
    raise GhtConfigError(
        "No target database configured. Add 'devmine_database' to the import config, "
        "set GHT_DATABASE_URL, or pass --database-url."
    )


def _run_import_command(
    store: StoreConnection,
    spec: ImportSpec,
    config: ImportConfig,
    args: argparse.Namespace,
) -> int:
    """Handle import command.

    Args:
        store: Target store.
        spec: Loaded import config file.
        config: Environment configuration.
        args: Parsed CLI args.

    Returns:
        Exit code.
    """
    options = ImportOptions(
        order=_ORDER_CHOICES[args.order],
        strategy=_STRATEGY_CHOICES[args.strategy],
        existing_policy=_EXISTING_CHOICES[args.existing],
        check_existing=not args.nocheck,
        extension=config.snapshot_extension,
        staging_chunk_size=config.staging_chunk_size,
    )
    if args.extension:
        options = replace(options, extension=normalize_extension(args.extension))
    report = import_snapshots(spec.source_folders, options, store, ImportEvents())
    print(json.dumps(_summarize(report), sort_keys=True))
    return 0


def _run_prepare_staging_command(store: StoreConnection) -> int:
    """Handle prepare-staging command."""
    with store.connect() as connection, connection.begin():
        prepare_staging_table(connection)
    print(json.dumps({"staging_table": "ready"}))
    return 0


def _run_promote_staging_command(store: StoreConnection) -> int:
    """Handle promote-staging command.

    Constraint toggling needs transactional DDL, so it is only used on
    PostgreSQL.
    """
    toggle_constraints = supports_constraint_toggling(store.dialect_name)
    with store.connect() as connection, connection.begin():
        promoted = promote_staged_repositories(connection, toggle_constraints=toggle_constraints)
    print(json.dumps({"promoted": promoted}))
    return 0


def _summarize(report: ImportReport) -> dict[str, Any]:
    """Build the one-line JSON run summary."""
    return {
        "committed_files": report.committed_files,
        "failed_files": report.failed_files,
        "failed_records": report.failed_records,
        "skipped_names": len(report.skipped_names),
        "outcomes": report.outcome_totals(),
    }


def _add_import_command(subparsers: Any) -> None:
    """Register import subcommand."""
    parser = subparsers.add_parser("import", help="Import snapshot folders listed in CONFIG")
    parser.add_argument("config", help="YAML or JSON import config file")
    parser.add_argument(
        "--order",
        choices=sorted(_ORDER_CHOICES),
        default="newest",
        help="Snapshot processing order inside each folder",
    )
    parser.add_argument(
        "--strategy",
        choices=list(_STRATEGY_CHOICES),
        default="transactional",
        help="Write strategy; staging buffers repositories for promote-staging",
    )
    parser.add_argument(
        "--existing",
        choices=list(_EXISTING_CHOICES),
        default="update-if-newer",
        help="How records that already exist in the database are handled",
    )
    parser.add_argument(
        "--nocheck",
        action="store_true",
        help="Insert without looking up existing rows; only for duplicate-free input",
    )
    parser.add_argument("--extension", help="Snapshot file extension, default .bson")


def _add_prepare_staging_command(subparsers: Any) -> None:
    """Register prepare-staging subcommand."""
    parser = subparsers.add_parser(
        "prepare-staging", help="Create or empty the repository staging table"
    )
    parser.add_argument("config", help="YAML or JSON import config file")


def _add_promote_staging_command(subparsers: Any) -> None:
    """Register promote-staging subcommand."""
    parser = subparsers.add_parser(
        "promote-staging", help="Move staged repositories into the repository tables"
    )
    parser.add_argument("config", help="YAML or JSON import config file")
