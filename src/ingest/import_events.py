"""Leveled import events.

The import runner reports what happens through this collaborator instead
of reading verbosity flags. Run and file events are info level, record
outcomes are debug level, failures are warning or error level; the
logging configuration decides which of them are rendered.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Sequence

from core.logging_config import get_logger
from core.types import EntityKind, FileReport, ImportOptions, ImportReport, RecordOutcome


class ImportEvents:
    """Structured event sink for one import run."""

    def __init__(self, logger: Any | None = None) -> None:
        self._logger = logger if logger is not None else get_logger("ingest.events")

    def run_started(self, source_dirs: Sequence[Path], options: ImportOptions) -> None:
        self._logger.info(
            "import_started",
            source_dirs=[str(path) for path in source_dirs],
            order=options.order,
            strategy=options.strategy,
            existing_policy=options.existing_policy,
            check_existing=options.check_existing,
        )

    def directory_started(self, directory: Path, kind: EntityKind, file_count: int) -> None:
        self._logger.info(
            "directory_started", directory=str(directory), kind=kind, file_count=file_count
        )

    def file_skipped(self, directory: Path, name: str) -> None:
        self._logger.warning(
            "snapshot_name_skipped",
            directory=str(directory),
            name=name,
            hint="Snapshot files must be named YYYY-MM-DD followed by the snapshot extension.",
        )

    def file_started(self, path: Path) -> None:
        self._logger.info("file_started", path=str(path))

    def file_committed(self, report: FileReport) -> None:
        self._logger.info(
            "file_committed",
            path=report.path,
            outcomes=dict(report.outcomes),
            failed_records=report.failed_records,
        )

    def file_failed(self, path: Path, error: Exception) -> None:
        self._logger.error(
            "file_failed",
            path=str(path),
            error=str(error),
            error_type=type(error).__name__,
        )

    def record_processed(self, path: Path, index: int, outcome: RecordOutcome) -> None:
        self._logger.debug("record_processed", path=str(path), index=index, outcome=outcome)

    def record_failed(self, path: Path, index: int, error: Exception) -> None:
        self._logger.warning(
            "record_failed",
            path=str(path),
            index=index,
            error=str(error),
            error_type=type(error).__name__,
        )

    def stream_truncated(self, path: Path, index: int, error: Exception) -> None:
        self._logger.error("stream_truncated", path=str(path), index=index, error=str(error))

    def staging_pending(self) -> None:
        self._logger.info(
            "staging_pending",
            hint="Run 'ght-import promote-staging' to move staged repositories.",
        )

    def run_completed(self, report: ImportReport) -> None:
        self._logger.info(
            "import_completed",
            committed_files=report.committed_files,
            failed_files=report.failed_files,
            failed_records=report.failed_records,
            skipped_names=len(report.skipped_names),
            outcomes=report.outcome_totals(),
        )
