"""Repository staging table lifecycle.

Staging imports only append to ``tmp_gh_repositories``. Promotion picks
one winning staged row per clone path and copies the winners into the
constrained repository tables, then empties the staging table.
"""

from __future__ import annotations

from contextlib import nullcontext
from typing import Any

from sqlalchemy import delete, func, inspect, insert, select
from sqlalchemy.engine import Connection

from core.errors import StagingTableNotReadyError
from core.logging_config import get_logger
from store.integrity_toggler import PROMOTION_CONSTRAINTS, IntegrityToggler
from store.schema import gh_repositories, repositories, tmp_gh_repositories

_LOGGER = get_logger(__name__)

_IDENTITY_COLUMNS = ("name", "primary_language", "clone_url", "clone_path", "vcs")


def prepare_staging_table(connection: Connection) -> None:
    """Create the staging table when missing and remove any leftover rows."""
    tmp_gh_repositories.create(connection, checkfirst=True)
    result = connection.execute(delete(tmp_gh_repositories))
    _LOGGER.info("staging_table_prepared", removed_rows=max(result.rowcount, 0))


def ensure_staging_empty(connection: Connection) -> None:
    """Check that a staging run can start.

    Raises:
        StagingTableNotReadyError: If the table is missing or holds rows.
    """
    if not inspect(connection).has_table(tmp_gh_repositories.name):
        raise StagingTableNotReadyError(
            f"Staging table {tmp_gh_repositories.name} does not exist. "
            "Run 'ght-import prepare-staging' first."
        )
    row_count = connection.execute(
        select(func.count()).select_from(tmp_gh_repositories)
    ).scalar_one()
    if row_count:
        raise StagingTableNotReadyError(
            f"Staging table {tmp_gh_repositories.name} holds {row_count} rows from an earlier "
            "run. Run 'ght-import promote-staging' or 'ght-import prepare-staging' first."
        )


def promote_staged_repositories(connection: Connection, toggle_constraints: bool = True) -> int:
    """Copy winning staged repositories into the repository tables.

    The winner of each clone path has the latest ``updated_at``, then the
    latest ``pushed_at``, then the fewest open issues; missing values rank
    last. Winners are skipped when their github id already has a profile
    row, when their clone path and language already exist, when their
    clone URL or clone path is empty, or when a more recent winner carried
    the same github id. Runs inside the caller's transaction.

    Args:
        connection: Connection with an open transaction.
        toggle_constraints: Drop the repository constraints for the
            duration of the copy, as done on PostgreSQL.

    Returns:
        Number of promoted repositories.
    """
    toggler = IntegrityToggler(PROMOTION_CONSTRAINTS)
    guard = toggler.relaxed(connection) if toggle_constraints else nullcontext()
    promoted = 0
    with guard:
        seen_github_ids: set[int] = set()
        for row in connection.execute(_winners_statement()).mappings().all():
            if row["github_id"] in seen_github_ids:
                continue
            seen_github_ids.add(row["github_id"])
            _insert_winner(connection, row)
            promoted += 1
    connection.execute(delete(tmp_gh_repositories))
    _LOGGER.info("staging_promoted", promoted_count=promoted)
    return promoted


def _winners_statement() -> Any:
    staged = tmp_gh_repositories
    rank = (
        func.row_number()
        .over(partition_by=staged.c.clone_path, order_by=_recency_order(staged.c))
        .label("clone_path_rank")
    )
    ranked = select(*staged.c, rank).subquery("ranked")
    existing_profile = gh_repositories.alias("existing_profile")
    existing_repository = repositories.alias("existing_repository")
    return (
        select(*[ranked.c[column.name] for column in staged.c])
        .select_from(
            ranked.outerjoin(
                existing_profile, existing_profile.c.github_id == ranked.c.github_id
            ).outerjoin(
                existing_repository,
                (existing_repository.c.clone_path == ranked.c.clone_path)
                & (existing_repository.c.primary_language == ranked.c.primary_language),
            )
        )
        .where(
            ranked.c.clone_path_rank == 1,
            existing_profile.c.id.is_(None),
            existing_repository.c.id.is_(None),
            ranked.c.clone_url != "",
            ranked.c.clone_path != "",
        )
        .order_by(*_recency_order(ranked.c), ranked.c.clone_path)
    )


def _recency_order(columns: Any) -> tuple[Any, ...]:
    return (
        columns.updated_at.desc().nulls_last(),
        columns.pushed_at.desc().nulls_last(),
        columns.open_issues_count.asc().nulls_last(),
    )


def _insert_winner(connection: Connection, row: Any) -> None:
    identity_values = {name: row[name] for name in _IDENTITY_COLUMNS}
    result = connection.execute(insert(repositories).values(**identity_values))
    repository_id = result.inserted_primary_key[0]
    profile_values = {
        column.name: row[column.name]
        for column in tmp_gh_repositories.c
        if column.name not in _IDENTITY_COLUMNS
    }
    connection.execute(
        insert(gh_repositories).values(repository_id=repository_id, **profile_values)
    )
