"""Shared snapshot file and record builders for tests."""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Sequence

from sqlalchemy import func, select

from core.types import (
    AccountRecord,
    CollaborationRecord,
    EntityKind,
    EntityRecord,
    RepositoryRecord,
)
from ingest.record_decoder import encode_record


def utc(year: int, month: int, day: int) -> datetime:
    """Build an aware UTC midnight timestamp."""
    return datetime(year, month, day, tzinfo=timezone.utc)


def write_snapshot(
    directory: Path,
    name: str,
    kind: EntityKind,
    records: Sequence[EntityRecord],
) -> Path:
    """Write records as one framed BSON snapshot file.

    Args:
        directory: Entity directory, created when missing.
        name: Snapshot file name.
        kind: Entity kind used for field mapping.
        records: Records to serialize, in file order.

    Returns:
        Path of the written snapshot.
    """
    directory.mkdir(parents=True, exist_ok=True)
    snapshot_path = directory / name
    snapshot_path.write_bytes(b"".join(encode_record(kind, record) for record in records))
    return snapshot_path


def user_account(github_id: int, login: str, **overrides: Any) -> AccountRecord:
    """Build an individual account record."""
    return AccountRecord(github_id=github_id, login=login, account_type="User", **overrides)


def organization_account(github_id: int, login: str, **overrides: Any) -> AccountRecord:
    """Build an organization account record."""
    return AccountRecord(
        github_id=github_id, login=login, account_type="Organization", **overrides
    )


def repository(github_id: int, owner_login: str, name: str, **overrides: Any) -> RepositoryRecord:
    """Build a repository record with a matching clone URL and full name."""
    values: dict[str, Any] = {
        "full_name": f"{owner_login}/{name}",
        "clone_url": f"https://github.com/{owner_login}/{name}.git",
    }
    values.update(overrides)
    return RepositoryRecord(github_id=github_id, name=name, owner_login=owner_login, **values)


def collaboration(login: str, owner: str, repo: str) -> CollaborationRecord:
    """Build a repository collaboration record."""
    return CollaborationRecord(login=login, owner=owner, repo=repo)


def count_rows(store: Any, table: Any) -> int:
    """Count rows of one table in a store."""
    with store.engine.connect() as connection:
        return int(connection.execute(select(func.count()).select_from(table)).scalar_one())


def fetch_rows(store: Any, table: Any) -> list[Any]:
    """Fetch every row of one table as mappings."""
    with store.engine.connect() as connection:
        return list(connection.execute(select(table)).mappings().all())
