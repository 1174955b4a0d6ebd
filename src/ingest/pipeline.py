"""Snapshot import orchestration.

This module walks entity directories, imports each snapshot file in one
transaction and isolates every record behind a savepoint so a bad record
never aborts the file.
"""

from __future__ import annotations

from pathlib import Path
from typing import BinaryIO, Sequence, cast

from sqlalchemy.engine import Connection
from sqlalchemy.exc import SQLAlchemyError

from core.errors import (
    FramingError,
    GhtConfigError,
    GhtIngestError,
    GhtStoreError,
    StagingFlushError,
)
from core.types import (
    SUPPORTED_ENTITY_KINDS,
    EntityKind,
    FileReport,
    ImportOptions,
    ImportReport,
    RecordOutcome,
    SnapshotFile,
    WriteStrategy,
)
from ingest.document_reader import iter_documents
from ingest.import_events import ImportEvents
from ingest.record_decoder import decode_record
from ingest.snapshot_selector import select_snapshots
from store.connection import StoreConnection
from store.integrity_toggler import IntegrityToggler, supports_constraint_toggling, toggler_for
from store.staging import ensure_staging_empty
from store.upsert_engine import UpsertEngine, build_upsert_engine

_COMMITTED_OUTCOMES: frozenset[RecordOutcome] = frozenset({"inserted", "updated", "staged"})


class ImportPipelineRunner:
    """Runner importing snapshot directories into one store."""

    def __init__(
        self,
        options: ImportOptions,
        store: StoreConnection,
        events: ImportEvents | None = None,
    ) -> None:
        self._options = options
        self._store = store
        self._events = events if events is not None else ImportEvents()
        self._engine: UpsertEngine = build_upsert_engine(
            options.strategy,
            existing_policy=options.existing_policy,
            check_existing=options.check_existing,
            staging_chunk_size=options.staging_chunk_size,
        )

    def run(self, source_dirs: Sequence[Path]) -> ImportReport:
        """Import every snapshot of every directory, in the given order.

        Raises:
            GhtConfigError: If a directory name is not an entity kind.
            SnapshotListingError: If a directory cannot be listed.
            StoreConnectionError: If the store cannot be reached.
            StagingTableNotReadyError: If a staging run finds leftover rows.
        """
        plan = [(Path(directory), resolve_entity_kind(Path(directory))) for directory in source_dirs]
        report = ImportReport()
        self._events.run_started([directory for directory, _ in plan], self._options)
        with self._store.connect() as connection:
            stages_repositories = self._options.strategy == "staging" and any(
                kind == "repos" for _, kind in plan
            )
            if stages_repositories:
                with connection.begin():
                    ensure_staging_empty(connection)
            for directory, kind in plan:
                self._import_directory(connection, directory, kind, report)
        if stages_repositories:
            self._events.staging_pending()
        self._events.run_completed(report)
        return report

    def _import_directory(
        self,
        connection: Connection,
        directory: Path,
        kind: EntityKind,
        report: ImportReport,
    ) -> None:
        def _skip(name: str) -> None:
            report.skipped_names.append(str(directory / name))
            self._events.file_skipped(directory, name)

        snapshots = select_snapshots(
            directory, self._options.extension, self._options.order, on_skip=_skip
        )
        self._events.directory_started(directory, kind, len(snapshots))
        for snapshot in snapshots:
            report.files.append(self._import_file(connection, kind, snapshot))

    def _import_file(
        self,
        connection: Connection,
        kind: EntityKind,
        snapshot: SnapshotFile,
    ) -> FileReport:
        file_report = FileReport(path=str(snapshot.path))
        toggler = select_toggler(self._options.strategy, kind, self._store.dialect_name)
        self._events.file_started(snapshot.path)
        try:
            with snapshot.path.open("rb") as stream, connection.begin():
                if toggler is not None:
                    toggler.disable(connection)
                self._import_records(connection, kind, snapshot.path, stream, file_report)
                self._engine.flush(connection)
                if toggler is not None:
                    toggler.enable(connection)
        except (OSError, SQLAlchemyError, GhtStoreError) as error:
            self._engine.discard()
            file_report.error = str(error)
            self._events.file_failed(snapshot.path, error)
            return file_report
        file_report.committed = True
        self._events.file_committed(file_report)
        return file_report

    def _import_records(
        self,
        connection: Connection,
        kind: EntityKind,
        path: Path,
        stream: BinaryIO,
        file_report: FileReport,
    ) -> None:
        index = 0
        try:
            for raw_document in iter_documents(stream):
                self._import_record(connection, kind, path, index, raw_document, file_report)
                index += 1
        except FramingError as error:
            # The stream cannot be resynchronised; keep what was imported.
            file_report.failed_records += 1
            self._events.stream_truncated(path, index, error)

    def _import_record(
        self,
        connection: Connection,
        kind: EntityKind,
        path: Path,
        index: int,
        raw_document: bytes,
        file_report: FileReport,
    ) -> None:
        try:
            record = decode_record(kind, raw_document)
            with connection.begin_nested() as savepoint:
                outcome = self._engine.apply(connection, record)
                if outcome not in _COMMITTED_OUTCOMES:
                    savepoint.rollback()
        except StagingFlushError:
            raise
        except (GhtIngestError, GhtStoreError, SQLAlchemyError) as error:
            file_report.failed_records += 1
            self._events.record_failed(path, index, error)
            return
        file_report.count(outcome)
        self._events.record_processed(path, index, outcome)

def resolve_entity_kind(directory: Path) -> EntityKind:
    """Map a source directory onto the entity kind named by its basename.

    Raises:
        GhtConfigError: If the basename is not a supported entity kind.
    """
    name = directory.name
    if name not in SUPPORTED_ENTITY_KINDS:
        supported = ", ".join(SUPPORTED_ENTITY_KINDS)
        raise GhtConfigError(
            f"Unsupported snapshot directory {str(directory)!r}: basename must be one of "
            f"{supported}. Rename the directory or fix ghtorrent_folders."
        )
    return cast(EntityKind, name)


def import_snapshots(
    source_dirs: Sequence[Path],
    options: ImportOptions,
    store: StoreConnection,
    events: ImportEvents | None = None,
) -> ImportReport:
    """Import snapshot directories into the store.

    Args:
        source_dirs: Entity directories, processed in order.
        options: Import run options.
        store: Target store connection.
        events: Event sink, defaults to structured logging.

    Returns:
        Per-file import report.

    Raises:
        GhtConfigError: If a directory name is not an entity kind.
        SnapshotListingError: If a directory cannot be listed.
        StoreConnectionError: If the store cannot be reached.
        StagingTableNotReadyError: If a staging run finds leftover rows.
    """
    runner = ImportPipelineRunner(options, store, events)
    return runner.run(source_dirs)


def select_toggler(
    strategy: WriteStrategy,
    kind: EntityKind,
    dialect_name: str,
) -> IntegrityToggler | None:
    """Pick the constraint toggler wrapping each file of one entity kind.

    Returns:
        None when constraints stay in place, either because the strategy
        writes around them or because the store cannot toggle them.
    """
    if strategy == "in_place" or not supports_constraint_toggling(dialect_name):
        return None
    if strategy == "staging" and kind == "repos":
        return None
    return toggler_for(kind)
