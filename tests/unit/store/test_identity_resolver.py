"""Unit tests for existing-row resolution."""

from __future__ import annotations

from unittest.mock import MagicMock

from sqlalchemy import insert
from sqlalchemy.exc import OperationalError

from core.types import MembershipRecord
from store.identity_resolver import IdentityResolver
from store.schema import (
    gh_organizations,
    gh_repositories,
    gh_users,
    gh_users_organizations,
    repositories,
    users,
    users_repositories,
)
from tests.snapshot_files import (
    collaboration,
    organization_account,
    repository,
    user_account,
    utc,
)


def _seed_user(connection, github_id: int, login: str, updated_at=None) -> tuple[int, int]:
    user_id = connection.execute(insert(users).values(username=login)).inserted_primary_key[0]
    profile_id = connection.execute(
        insert(gh_users).values(
            user_id=user_id, github_id=github_id, login=login, updated_at=updated_at
        )
    ).inserted_primary_key[0]
    return profile_id, user_id


def _seed_repository(connection, github_id: int, full_name: str, clone_path: str) -> int:
    repository_id = connection.execute(
        insert(repositories).values(
            name=full_name.split("/")[1],
            primary_language="go",
            clone_url=f"https://github.com/{full_name}.git",
            clone_path=clone_path,
            vcs="git",
        )
    ).inserted_primary_key[0]
    connection.execute(
        insert(gh_repositories).values(
            repository_id=repository_id, github_id=github_id, full_name=full_name
        )
    )
    return repository_id


def test_resolve_account_is_absent_for_unknown_id(sqlite_store) -> None:
    """Unknown github ids must be inserted."""
    with sqlite_store.engine.begin() as connection:
        resolution = IdentityResolver(connection).resolve_account(user_account(1, "alice"))

    assert resolution.status == "absent"


def test_resolve_account_is_present_for_newer_record(sqlite_store) -> None:
    """A strictly newer record resolves to the existing profile and identity rows."""
    with sqlite_store.engine.begin() as connection:
        profile_id, user_id = _seed_user(connection, 1, "alice", utc(2020, 1, 1))
        resolution = IdentityResolver(connection).resolve_account(
            user_account(1, "alice", updated_at=utc(2020, 6, 1))
        )

    assert (resolution.status, resolution.row_id, resolution.parent_id) == (
        "present",
        profile_id,
        user_id,
    )


def test_resolve_account_uses_creation_time_when_not_updated(sqlite_store) -> None:
    """Records without updated_at are compared by created_at."""
    with sqlite_store.engine.begin() as connection:
        _seed_user(connection, 1, "alice", utc(2020, 1, 1))
        resolution = IdentityResolver(connection).resolve_account(
            user_account(1, "alice", created_at=utc(2021, 1, 1))
        )

    assert resolution.status == "present"


def test_resolve_account_is_stale_for_equal_timestamp(sqlite_store) -> None:
    """An equally old record carries nothing new."""
    with sqlite_store.engine.begin() as connection:
        _seed_user(connection, 1, "alice", utc(2020, 1, 1))
        resolution = IdentityResolver(connection).resolve_account(
            user_account(1, "alice", updated_at=utc(2020, 1, 1))
        )

    assert resolution.status == "stale_or_error" and resolution.error is None


def test_resolve_account_skip_existing_never_updates(sqlite_store) -> None:
    """Skip-existing policy treats any existing row as stale."""
    with sqlite_store.engine.begin() as connection:
        _seed_user(connection, 1, "alice", utc(2020, 1, 1))
        resolver = IdentityResolver(connection, existing_policy="skip_existing")
        resolution = resolver.resolve_account(user_account(1, "alice", updated_at=utc(2030, 1, 1)))

    assert resolution.status == "stale_or_error"


def test_resolve_account_looks_up_organizations_separately(sqlite_store) -> None:
    """Organizations live in their own table with no identity row."""
    with sqlite_store.engine.begin() as connection:
        organization_id = connection.execute(
            insert(gh_organizations).values(github_id=9, login="acme")
        ).inserted_primary_key[0]
        resolution = IdentityResolver(connection).resolve_account(
            organization_account(9, "acme", updated_at=utc(2020, 1, 1))
        )

    assert (resolution.status, resolution.row_id, resolution.parent_id) == (
        "present",
        organization_id,
        None,
    )


def test_resolve_account_folds_lookup_errors_into_stale() -> None:
    """Failed lookups are a negative verdict that carries the error."""
    connection = MagicMock()
    connection.execute.side_effect = OperationalError("SELECT", {}, Exception("gone"))

    resolution = IdentityResolver(connection).resolve_account(user_account(1, "alice"))

    assert resolution.status == "stale_or_error" and resolution.error is not None


def test_no_check_mode_never_queries() -> None:
    """No-check mode reports absent without touching the store."""
    connection = MagicMock()
    resolver = IdentityResolver(connection, check_existing=False)

    statuses = [
        resolver.resolve_account(user_account(1, "alice")).status,
        resolver.resolve_repository(repository(1, "acme", "tool")).status,
        resolver.resolve_collaboration(collaboration("alice", "acme", "tool")).status,
    ]

    assert statuses == ["absent", "absent", "absent"]
    assert connection.execute.called is False


def test_resolve_repository_prefers_github_id_match(sqlite_store) -> None:
    """A github id match wins over another row sharing the clone path."""
    with sqlite_store.engine.begin() as connection:
        _seed_repository(connection, 5, "other/tool", "go/acme/tool")
        expected_id = _seed_repository(connection, 1, "acme/tool", "go/acme/tool-old")
        resolution = IdentityResolver(connection).resolve_repository(
            repository(1, "acme", "tool", language="Go", updated_at=utc(2020, 1, 1))
        )

    assert (resolution.status, resolution.parent_id) == ("present", expected_id)


def test_resolve_repository_falls_back_to_clone_path(sqlite_store) -> None:
    """A native repository row without profile is found by clone path."""
    with sqlite_store.engine.begin() as connection:
        repository_id = connection.execute(
            insert(repositories).values(
                name="tool",
                primary_language="go",
                clone_url="git://example.org/tool.git",
                clone_path="go/acme/tool",
                vcs="git",
            )
        ).inserted_primary_key[0]
        resolution = IdentityResolver(connection).resolve_repository(
            repository(1, "acme", "tool", language="Go", updated_at=utc(2020, 1, 1))
        )

    assert (resolution.status, resolution.row_id, resolution.parent_id) == (
        "present",
        None,
        repository_id,
    )


def test_resolve_relations_by_natural_keys(sqlite_store) -> None:
    """Existing relations are stale; missing ones are absent."""
    with sqlite_store.engine.begin() as connection:
        profile_id, user_id = _seed_user(connection, 1, "alice")
        organization_id = connection.execute(
            insert(gh_organizations).values(github_id=9, login="acme")
        ).inserted_primary_key[0]
        repository_id = _seed_repository(connection, 3, "acme/tool", "go/acme/tool")
        connection.execute(
            insert(gh_users_organizations).values(
                gh_user_id=profile_id, gh_organization_id=organization_id
            )
        )
        connection.execute(
            insert(users_repositories).values(user_id=user_id, repository_id=repository_id)
        )
        resolver = IdentityResolver(connection)
        statuses = [
            resolver.resolve_membership(MembershipRecord(login="alice", org="acme")).status,
            resolver.resolve_membership(MembershipRecord(login="bob", org="acme")).status,
            resolver.resolve_collaboration(collaboration("alice", "acme", "tool")).status,
            resolver.resolve_collaboration(collaboration("alice", "acme", "other")).status,
        ]

    assert statuses == ["stale_or_error", "absent", "stale_or_error", "absent"]


def test_endpoint_finders_return_store_ids(sqlite_store) -> None:
    """Endpoint lookups map natural keys to the foreign key targets."""
    with sqlite_store.engine.begin() as connection:
        profile_id, user_id = _seed_user(connection, 1, "alice")
        repository_id = _seed_repository(connection, 3, "acme/tool", "go/acme/tool")
        resolver = IdentityResolver(connection)
        found = (
            resolver.find_profile_id_by_login("alice"),
            resolver.find_user_id_by_login("alice"),
            resolver.find_repository_id_by_full_name("acme/tool"),
            resolver.find_organization_id_by_login("acme"),
        )

    assert found == (profile_id, user_id, repository_id, None)
