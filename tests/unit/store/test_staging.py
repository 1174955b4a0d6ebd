"""Unit tests for the repository staging table lifecycle."""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest
from sqlalchemy import insert

from core.errors import StagingTableNotReadyError
from store.schema import gh_repositories, repositories, tmp_gh_repositories
from store.staging import (
    ensure_staging_empty,
    prepare_staging_table,
    promote_staged_repositories,
)
from store.upsert_engine import staging_row_values
from tests.snapshot_files import count_rows, fetch_rows, repository, utc


def _stage(connection, *records) -> None:
    connection.execute(
        insert(tmp_gh_repositories), [staging_row_values(record) for record in records]
    )


def test_ensure_staging_empty_rejects_leftover_rows(sqlite_store) -> None:
    """A staging run must not mix with rows of an earlier run."""
    with sqlite_store.engine.begin() as connection:
        _stage(connection, repository(1, "acme", "tool"))

    with sqlite_store.engine.connect() as connection:
        with pytest.raises(StagingTableNotReadyError, match="holds 1 rows"):
            ensure_staging_empty(connection)


def test_prepare_staging_table_empties_table(sqlite_store) -> None:
    """Preparing the table removes leftovers so a run can start."""
    with sqlite_store.engine.begin() as connection:
        _stage(connection, repository(1, "acme", "tool"))
    with sqlite_store.engine.begin() as connection:
        prepare_staging_table(connection)

    with sqlite_store.engine.connect() as connection:
        ensure_staging_empty(connection)

    assert count_rows(sqlite_store, tmp_gh_repositories) == 0


def test_prepare_staging_table_creates_missing_table(sqlite_store) -> None:
    """A dropped staging table is recreated."""
    tmp_gh_repositories.drop(sqlite_store.engine)
    with sqlite_store.engine.connect() as connection:
        with pytest.raises(StagingTableNotReadyError, match="does not exist"):
            ensure_staging_empty(connection)

    with sqlite_store.engine.begin() as connection:
        prepare_staging_table(connection)

    assert count_rows(sqlite_store, tmp_gh_repositories) == 0


def test_promote_picks_latest_row_per_clone_path(sqlite_store) -> None:
    """The winner has the latest update, then latest push, then fewest issues."""
    with sqlite_store.engine.begin() as connection:
        same_activity = {"updated_at": utc(2020, 1, 1), "pushed_at": utc(2020, 1, 1)}
        _stage(
            connection,
            repository(1, "acme", "tool", description="old", updated_at=utc(2020, 1, 1)),
            repository(1, "acme", "tool", description="new", updated_at=utc(2020, 2, 1)),
            repository(2, "acme", "lib", description="busy", open_issues_count=9, **same_activity),
            repository(2, "acme", "lib", description="calm", open_issues_count=1, **same_activity),
        )
    with sqlite_store.engine.begin() as connection:
        promoted = promote_staged_repositories(connection, toggle_constraints=False)

    descriptions = sorted(row["description"] for row in fetch_rows(sqlite_store, gh_repositories))
    assert promoted == 2
    assert descriptions == ["calm", "new"]
    assert count_rows(sqlite_store, tmp_gh_repositories) == 0


def test_promote_skips_existing_and_incomplete_rows(sqlite_store) -> None:
    """Known github ids, known clone locations, and empty clone URLs are skipped."""
    with sqlite_store.engine.begin() as connection:
        repository_id = connection.execute(
            insert(repositories).values(
                name="tool",
                primary_language="Go",
                clone_url="https://github.com/acme/tool.git",
                clone_path="go/acme/tool",
                vcs="git",
            )
        ).inserted_primary_key[0]
        connection.execute(
            insert(gh_repositories).values(repository_id=repository_id, github_id=1)
        )
        _stage(
            connection,
            repository(1, "acme", "renamed", language="Go"),
            repository(5, "acme", "tool", language="Go"),
            repository(6, "acme", "empty", language="Go", clone_url=""),
            repository(7, "acme", "fresh", language=""),
        )
    with sqlite_store.engine.begin() as connection:
        promoted = promote_staged_repositories(connection, toggle_constraints=False)

    clone_paths = sorted(row["clone_path"] for row in fetch_rows(sqlite_store, repositories))
    assert promoted == 1
    assert clone_paths == ["go/acme/tool", "unknown/acme/fresh"]


def test_promote_keeps_one_winner_per_github_id(sqlite_store) -> None:
    """A renamed repository staged under two clone paths is promoted once."""
    with sqlite_store.engine.begin() as connection:
        _stage(
            connection,
            repository(1, "acme", "tool", language="Go"),
            repository(1, "acme", "tool", language="Rust"),
        )
    with sqlite_store.engine.begin() as connection:
        promoted = promote_staged_repositories(connection, toggle_constraints=False)

    assert promoted == 1
    assert count_rows(sqlite_store, gh_repositories) == 1


def test_promote_prefers_latest_row_across_clone_paths(sqlite_store) -> None:
    """A language change keeps the most recently updated snapshot."""
    with sqlite_store.engine.begin() as connection:
        _stage(
            connection,
            repository(1, "acme", "tool", language="C", updated_at=utc(2020, 1, 1)),
            repository(1, "acme", "tool", language="Go", updated_at=utc(2020, 2, 1)),
        )
    with sqlite_store.engine.begin() as connection:
        promoted = promote_staged_repositories(connection, toggle_constraints=False)

    languages = [row["primary_language"] for row in fetch_rows(sqlite_store, repositories)]
    assert promoted == 1
    assert languages == ["Go"]


def test_promote_toggles_repository_constraints() -> None:
    """Promotion drops the repository constraints and restores them."""
    connection = MagicMock()
    connection.execute.return_value.mappings.return_value.all.return_value = []

    promote_staged_repositories(connection)

    statements = [str(call.args[0]) for call in connection.execute.call_args_list]
    toggles = [statement for statement in statements if statement.startswith("ALTER TABLE")]
    assert len(toggles) == 6
    assert toggles[0].endswith("DROP CONSTRAINT repositories_unique_clone_path")
    assert toggles[-1].endswith("REFERENCES repositories(id)")
