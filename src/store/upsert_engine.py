"""Record writers behind one upsert interface.

Each engine turns a decoded record into inserts or updates on the file
transaction's connection. The engine never commits; the import runner
wraps every ``apply`` call in a savepoint and commits once per file.
"""

from __future__ import annotations

from typing import Any, Protocol

from sqlalchemy import insert, update
from sqlalchemy.engine import Connection
from sqlalchemy.exc import SQLAlchemyError

from core.constants import ACCOUNT_TYPE_ORGANIZATION, DEFAULT_STAGING_CHUNK_SIZE, DEFAULT_VCS
from core.errors import MissingEndpointError, StagingFlushError
from core.field_values import build_clone_path, effective_timestamp, remove_null_bytes
from core.logging_config import get_logger
from core.types import (
    AccountRecord,
    CollaborationRecord,
    EngineCapability,
    EntityRecord,
    ExistingRowPolicy,
    MembershipRecord,
    RecordOutcome,
    RepositoryRecord,
    Resolution,
    WriteStrategy,
)
from store.identity_resolver import IdentityResolver
from store.schema import (
    gh_organizations,
    gh_repositories,
    gh_users,
    gh_users_organizations,
    repositories,
    tmp_gh_repositories,
    users,
    users_repositories,
)

_LOGGER = get_logger(__name__)


class UpsertEngine(Protocol):
    """Write interface shared by every import strategy."""

    @property
    def capabilities(self) -> frozenset[EngineCapability]:
        """Write capabilities offered by this engine."""

    def apply(self, connection: Connection, record: EntityRecord) -> RecordOutcome:
        """Write one record and report what happened to it."""

    def flush(self, connection: Connection) -> int:
        """Write buffered rows and return how many were written."""

    def discard(self) -> None:
        """Forget buffered rows of a rolled back file."""


class InsertOrUpdateEngine:
    """Insert absent entities and update strictly newer ones in place."""

    def __init__(
        self,
        existing_policy: ExistingRowPolicy = "update_if_newer",
        check_existing: bool = True,
    ) -> None:
        self._existing_policy = existing_policy
        self._check_existing = check_existing

    @property
    def capabilities(self) -> frozenset[EngineCapability]:
        return frozenset({"insert_or_update"})

    def apply(self, connection: Connection, record: EntityRecord) -> RecordOutcome:
        """Write one record.

        Args:
            connection: Connection of the current file transaction.
            record: Decoded snapshot record.

        Returns:
            Outcome of the write.

        Raises:
            MissingEndpointError: If a relation references an entity that
                has not been imported.
            sqlalchemy.exc.SQLAlchemyError: If a write statement fails.
        """
        resolver = self._resolver(connection)
        if isinstance(record, AccountRecord):
            return self._apply_account(connection, resolver, record)
        if isinstance(record, RepositoryRecord):
            return self._apply_repository(connection, resolver, record)
        if isinstance(record, MembershipRecord):
            return self._apply_membership(connection, resolver, record)
        return self._apply_collaboration(connection, resolver, record)

    def flush(self, connection: Connection) -> int:
        return 0

    def discard(self) -> None:
        return None

    def _resolver(self, connection: Connection) -> IdentityResolver:
        return IdentityResolver(connection, self._existing_policy, self._check_existing)

    def _apply_account(
        self,
        connection: Connection,
        resolver: IdentityResolver,
        record: AccountRecord,
    ) -> RecordOutcome:
        resolution = resolver.resolve_account(record)
        if resolution.status == "stale_or_error":
            return _negative_outcome(resolution, record)
        if record.account_type == ACCOUNT_TYPE_ORGANIZATION:
            values = _organization_values(record)
            if resolution.status == "absent":
                connection.execute(insert(gh_organizations).values(**values))
                return "inserted"
            connection.execute(
                update(gh_organizations)
                .where(gh_organizations.c.id == resolution.row_id)
                .values(**values)
            )
            return "updated"
        if resolution.status == "absent":
            user_id = _insert_identity(connection, users, _identity_values(record))
            connection.execute(
                insert(gh_users).values(user_id=user_id, **_profile_values(record))
            )
            return "inserted"
        user_id = resolution.parent_id
        if user_id is None:
            user_id = _insert_identity(connection, users, _identity_values(record))
        else:
            connection.execute(
                update(users).where(users.c.id == user_id).values(**_identity_values(record))
            )
        connection.execute(
            update(gh_users)
            .where(gh_users.c.id == resolution.row_id)
            .values(user_id=user_id, **_profile_values(record))
        )
        return "updated"

    def _apply_repository(
        self,
        connection: Connection,
        resolver: IdentityResolver,
        record: RepositoryRecord,
    ) -> RecordOutcome:
        resolution = resolver.resolve_repository(record)
        if resolution.status == "stale_or_error":
            return _negative_outcome(resolution, record)
        if resolution.status == "absent":
            repository_id = _insert_identity(
                connection, repositories, repository_identity_values(record)
            )
            connection.execute(
                insert(gh_repositories).values(
                    repository_id=repository_id, **repository_profile_values(record)
                )
            )
            return "inserted"
        connection.execute(
            update(repositories)
            .where(repositories.c.id == resolution.parent_id)
            .values(**repository_identity_values(record))
        )
        if resolution.row_id is None:
            connection.execute(
                insert(gh_repositories).values(
                    repository_id=resolution.parent_id, **repository_profile_values(record)
                )
            )
        else:
            connection.execute(
                update(gh_repositories)
                .where(gh_repositories.c.id == resolution.row_id)
                .values(repository_id=resolution.parent_id, **repository_profile_values(record))
            )
        return "updated"

    def _apply_membership(
        self,
        connection: Connection,
        resolver: IdentityResolver,
        record: MembershipRecord,
    ) -> RecordOutcome:
        resolution = resolver.resolve_membership(record)
        if resolution.status == "stale_or_error":
            return _negative_outcome(resolution, record)
        profile_id = resolver.find_profile_id_by_login(record.login)
        if profile_id is None:
            raise MissingEndpointError(
                f"Endpoint not found: no user with login {record.login!r} for membership "
                f"in {record.org!r}. Import the users snapshots before org_members."
            )
        organization_id = resolver.find_organization_id_by_login(record.org)
        if organization_id is None:
            raise MissingEndpointError(
                f"Endpoint not found: no organization with login {record.org!r} for member "
                f"{record.login!r}. Import the users snapshots before org_members."
            )
        connection.execute(
            insert(gh_users_organizations).values(
                gh_user_id=profile_id, gh_organization_id=organization_id
            )
        )
        return "inserted"

    def _apply_collaboration(
        self,
        connection: Connection,
        resolver: IdentityResolver,
        record: CollaborationRecord,
    ) -> RecordOutcome:
        resolution = resolver.resolve_collaboration(record)
        if resolution.status == "stale_or_error":
            return _negative_outcome(resolution, record)
        user_id = resolver.find_user_id_by_login(record.login)
        if user_id is None:
            raise MissingEndpointError(
                f"Endpoint not found: no user with login {record.login!r} for collaboration "
                f"on {record.full_name!r}. Import the users snapshots before repo_collaborators."
            )
        repository_id = resolver.find_repository_id_by_full_name(record.full_name)
        if repository_id is None:
            raise MissingEndpointError(
                f"Endpoint not found: no repository {record.full_name!r} for collaborator "
                f"{record.login!r}. Import the repos snapshots before repo_collaborators."
            )
        connection.execute(
            insert(users_repositories).values(user_id=user_id, repository_id=repository_id)
        )
        return "inserted"


class InsertOrStageEngine:
    """Buffer repositories into the staging table; write other kinds in place.

    Staged rows are not deduplicated here; ``promote_staged_repositories``
    picks one row per clone path after the run.
    """

    def __init__(
        self,
        delegate: InsertOrUpdateEngine,
        chunk_size: int = DEFAULT_STAGING_CHUNK_SIZE,
    ) -> None:
        self._delegate = delegate
        self._chunk_size = chunk_size
        self._pending: list[dict[str, Any]] = []

    @property
    def capabilities(self) -> frozenset[EngineCapability]:
        return frozenset({"insert_or_stage"}) | self._delegate.capabilities

    @property
    def pending_rows(self) -> int:
        return len(self._pending)

    def apply(self, connection: Connection, record: EntityRecord) -> RecordOutcome:
        if not isinstance(record, RepositoryRecord):
            return self._delegate.apply(connection, record)
        self._pending.append(staging_row_values(record))
        if len(self._pending) >= self._chunk_size:
            self.flush(connection)
        return "staged"

    def flush(self, connection: Connection) -> int:
        """Bulk insert buffered staging rows.

        The buffer is cleared even when the insert fails so a rolled back
        file cannot leak rows into the next one.

        Raises:
            StagingFlushError: If the bulk insert fails. The whole file must
                be rolled back since earlier staged rows are lost.
        """
        if not self._pending:
            return 0
        rows, self._pending = self._pending, []
        try:
            connection.execute(insert(tmp_gh_repositories), rows)
        except SQLAlchemyError as error:
            raise StagingFlushError(
                f"Failed to write {len(rows)} staged repositories: {error}. "
                "Run prepare-staging to recreate the staging table."
            ) from error
        _LOGGER.debug("staging_rows_flushed", row_count=len(rows))
        return len(rows)

    def discard(self) -> None:
        """Drop buffered rows of a file that is being rolled back."""
        self._pending = []


def build_upsert_engine(
    strategy: WriteStrategy,
    existing_policy: ExistingRowPolicy = "update_if_newer",
    check_existing: bool = True,
    staging_chunk_size: int = DEFAULT_STAGING_CHUNK_SIZE,
) -> UpsertEngine:
    """Build the engine implementing one write strategy."""
    engine = InsertOrUpdateEngine(existing_policy, check_existing)
    if strategy == "staging":
        return InsertOrStageEngine(engine, staging_chunk_size)
    return engine


def repository_identity_values(record: RepositoryRecord) -> dict[str, Any]:
    """Return ``repositories`` column values for a repository record."""
    return _sanitize(
        {
            "name": record.name,
            "primary_language": record.language,
            "clone_url": record.clone_url,
            "clone_path": build_clone_path(record.language, record.owner_login, record.name),
            "vcs": DEFAULT_VCS,
        }
    )


def repository_profile_values(record: RepositoryRecord) -> dict[str, Any]:
    """Return ``gh_repositories`` column values, without the parent link."""
    return _sanitize(
        {
            "github_id": record.github_id,
            "full_name": record.full_name or f"{record.owner_login}/{record.name}",
            "description": record.description,
            "homepage": record.homepage,
            "fork": record.fork,
            "default_branch": record.default_branch,
            "master_branch": record.master_branch,
            "html_url": record.html_url,
            "forks_count": record.forks_count,
            "open_issues_count": record.open_issues_count,
            "stargazers_count": record.stargazers_count,
            "subscribers_count": record.subscribers_count,
            "watchers_count": record.watchers_count,
            "size_in_kb": record.size_in_kb,
            "created_at": record.created_at,
            "updated_at": record.updated_at,
            "pushed_at": record.pushed_at,
        }
    )


def staging_row_values(record: RepositoryRecord) -> dict[str, Any]:
    """Return one ``tmp_gh_repositories`` row for a repository record."""
    return {**repository_identity_values(record), **repository_profile_values(record)}


def _identity_values(record: AccountRecord) -> dict[str, Any]:
    return _sanitize({"username": record.login, "name": record.name, "email": record.email})


def _profile_values(record: AccountRecord) -> dict[str, Any]:
    return _sanitize(
        {
            "github_id": record.github_id,
            "login": record.login,
            "bio": record.bio,
            "company": record.company,
            "email": record.email,
            "hireable": record.hireable,
            "location": record.location,
            "avatar_url": record.avatar_url,
            "html_url": record.html_url,
            "followers_count": record.followers,
            "following_count": record.following,
            "created_at": record.created_at,
            "updated_at": effective_timestamp(record.updated_at, record.created_at),
        }
    )


def _organization_values(record: AccountRecord) -> dict[str, Any]:
    return _sanitize(
        {
            "login": record.login,
            "github_id": record.github_id,
            "avatar_url": record.avatar_url,
            "html_url": record.html_url,
            "name": record.name,
            "company": record.company,
            "location": record.location,
            "email": record.email,
            "created_at": record.created_at,
            "updated_at": effective_timestamp(record.updated_at, record.created_at),
        }
    )


def _insert_identity(connection: Connection, table: Any, values: dict[str, Any]) -> int:
    """Insert an identity row and return its generated id."""
    result = connection.execute(insert(table).values(**values))
    return int(result.inserted_primary_key[0])


def _sanitize(values: dict[str, Any]) -> dict[str, Any]:
    return {
        key: remove_null_bytes(value) if isinstance(value, str) else value
        for key, value in values.items()
    }


def _negative_outcome(resolution: Resolution, record: EntityRecord) -> RecordOutcome:
    if resolution.error is None:
        return "skipped"
    _LOGGER.error(
        "record_lookup_failed",
        record_type=type(record).__name__,
        error=str(resolution.error),
    )
    return "lookup_failed"
