"""Dated snapshot file selection.

This module lists one entity directory, keeps files named
``YYYY-MM-DD<extension>`` and orders them by the embedded date.
"""

from __future__ import annotations

import re
from datetime import datetime
from pathlib import Path
from typing import Callable

from core.constants import SNAPSHOT_DATE_FORMAT, SNAPSHOT_NAME_PATTERN
from core.errors import SnapshotListingError
from core.types import SnapshotFile, SnapshotOrder


def select_snapshots(
    directory: Path,
    extension: str,
    order: SnapshotOrder = "newest_first",
    on_skip: Callable[[str], None] | None = None,
) -> list[SnapshotFile]:
    """Select and order the snapshot files of one directory.

    Args:
        directory: Entity directory to list.
        extension: Snapshot file extension including the dot.
        order: ``newest_first`` or ``oldest_first``.
        on_skip: Callback receiving each entry name that is not a snapshot.

    Returns:
        Snapshot files in processing order. Files with the same date are
        ordered by name for determinism.

    Raises:
        SnapshotListingError: If the directory cannot be listed.
    """
    try:
        entries = sorted(directory.iterdir())
    except OSError as error:
        raise SnapshotListingError(
            f"Failed to list snapshot directory {directory}: {error}. "
            "Check the ghtorrent_folders entries in the import config."
        ) from error
    name_pattern = re.compile(f"^({SNAPSHOT_NAME_PATTERN}){re.escape(extension)}$")
    snapshots: list[SnapshotFile] = []
    for entry in entries:
        snapshot = _parse_snapshot(entry, name_pattern)
        if snapshot is None:
            if on_skip is not None:
                on_skip(entry.name)
            continue
        snapshots.append(snapshot)
    snapshots.sort(key=lambda item: (item.snapshot_date, item.path.name))
    if order == "newest_first":
        snapshots.reverse()
    return snapshots


def _parse_snapshot(entry: Path, name_pattern: re.Pattern[str]) -> SnapshotFile | None:
    """Return a snapshot for a well-named regular file, else None."""
    match = name_pattern.match(entry.name)
    if match is None or not entry.is_file():
        return None
    try:
        snapshot_date = datetime.strptime(match.group(1), SNAPSHOT_DATE_FORMAT).date()
    except ValueError:
        return None
    return SnapshotFile(path=entry, snapshot_date=snapshot_date)
