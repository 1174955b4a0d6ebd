"""Existing-row resolution for incoming snapshot records.

This module decides, per record, whether the target store already holds
the entity and whether the incoming copy should replace it. Lookup
failures fold into the same negative verdict as stale records; the
failure is carried on the resolution so callers can log it.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Callable

from sqlalchemy import and_, case, or_, select
from sqlalchemy.engine import Connection, Row
from sqlalchemy.exc import SQLAlchemyError

from core.constants import ACCOUNT_TYPE_ORGANIZATION
from core.field_values import build_clone_path, effective_timestamp, is_newer
from core.types import (
    ABSENT,
    STALE,
    AccountRecord,
    CollaborationRecord,
    ExistingRowPolicy,
    MembershipRecord,
    RepositoryRecord,
    Resolution,
)
from store.schema import (
    gh_organizations,
    gh_repositories,
    gh_users,
    gh_users_organizations,
    repositories,
    users_repositories,
)


class IdentityResolver:
    """Resolve records against the rows visible on one connection.

    Args:
        connection: Connection of the file transaction being imported.
        existing_policy: ``update_if_newer`` replaces existing rows only
            for strictly newer records; ``skip_existing`` never replaces.
        check_existing: When False every record resolves to ``absent``
            without querying.
    """

    def __init__(
        self,
        connection: Connection,
        existing_policy: ExistingRowPolicy = "update_if_newer",
        check_existing: bool = True,
    ) -> None:
        self._connection = connection
        self._existing_policy = existing_policy
        self._check_existing = check_existing

    def resolve_account(self, record: AccountRecord) -> Resolution:
        """Resolve an individual or organization account by github id."""
        if record.account_type == ACCOUNT_TYPE_ORGANIZATION:
            statement = select(gh_organizations.c.id, gh_organizations.c.updated_at).where(
                gh_organizations.c.github_id == record.github_id
            )
            return self._resolve_versioned(
                lambda: self._connection.execute(statement).first(),
                effective_timestamp(record.updated_at, record.created_at),
                lambda row: Resolution(status="present", row_id=row.id),
            )
        statement = select(gh_users.c.id, gh_users.c.user_id, gh_users.c.updated_at).where(
            gh_users.c.github_id == record.github_id
        )
        return self._resolve_versioned(
            lambda: self._connection.execute(statement).first(),
            effective_timestamp(record.updated_at, record.created_at),
            lambda row: Resolution(status="present", row_id=row.id, parent_id=row.user_id),
        )

    def resolve_repository(self, record: RepositoryRecord) -> Resolution:
        """Resolve a repository by github id, then by clone URL or clone path.

        A github id match wins over a clone location match. A repository row
        without a profile row resolves to ``present`` with no ``row_id``.
        """
        clone_path = build_clone_path(record.language, record.owner_login, record.name)
        matches = [gh_repositories.c.github_id == record.github_id]
        matches.append(repositories.c.clone_path == clone_path)
        if record.clone_url:
            matches.append(repositories.c.clone_url == record.clone_url)
        statement = (
            select(
                repositories.c.id.label("repository_id"),
                gh_repositories.c.id.label("profile_id"),
                gh_repositories.c.updated_at,
            )
            .select_from(
                repositories.outerjoin(
                    gh_repositories, gh_repositories.c.repository_id == repositories.c.id
                )
            )
            .where(or_(*matches))
            .order_by(case((gh_repositories.c.github_id == record.github_id, 0), else_=1))
            .limit(1)
        )
        return self._resolve_versioned(
            lambda: self._connection.execute(statement).first(),
            effective_timestamp(record.updated_at, record.created_at),
            lambda row: Resolution(
                status="present", row_id=row.profile_id, parent_id=row.repository_id
            ),
        )

    def resolve_membership(self, record: MembershipRecord) -> Resolution:
        """Resolve an organization membership by member and organization login."""
        statement = (
            select(gh_users_organizations.c.gh_user_id)
            .select_from(
                gh_users_organizations.join(
                    gh_users, gh_users.c.id == gh_users_organizations.c.gh_user_id
                ).join(
                    gh_organizations,
                    gh_organizations.c.id == gh_users_organizations.c.gh_organization_id,
                )
            )
            .where(and_(gh_users.c.login == record.login, gh_organizations.c.login == record.org))
            .limit(1)
        )
        return self._resolve_relation(statement)

    def resolve_collaboration(self, record: CollaborationRecord) -> Resolution:
        """Resolve a repository collaboration by login and ``owner/repo``."""
        statement = (
            select(users_repositories.c.user_id)
            .select_from(
                users_repositories.join(
                    gh_users, gh_users.c.user_id == users_repositories.c.user_id
                ).join(
                    gh_repositories,
                    gh_repositories.c.repository_id == users_repositories.c.repository_id,
                )
            )
            .where(
                and_(
                    gh_users.c.login == record.login,
                    gh_repositories.c.full_name == record.full_name,
                )
            )
            .limit(1)
        )
        return self._resolve_relation(statement)

    def find_profile_id_by_login(self, login: str) -> int | None:
        """Return ``gh_users.id`` of an individual account, None when unknown."""
        return self._scalar(select(gh_users.c.id).where(gh_users.c.login == login).limit(1))

    def find_user_id_by_login(self, login: str) -> int | None:
        """Return the ``users.id`` linked to an individual account login."""
        return self._scalar(
            select(gh_users.c.user_id)
            .where(and_(gh_users.c.login == login, gh_users.c.user_id.is_not(None)))
            .limit(1)
        )

    def find_organization_id_by_login(self, login: str) -> int | None:
        """Return ``gh_organizations.id`` for an organization login."""
        return self._scalar(
            select(gh_organizations.c.id).where(gh_organizations.c.login == login).limit(1)
        )

    def find_repository_id_by_full_name(self, full_name: str) -> int | None:
        """Return the ``repositories.id`` whose profile carries ``owner/repo``."""
        return self._scalar(
            select(gh_repositories.c.repository_id)
            .where(
                and_(
                    gh_repositories.c.full_name == full_name,
                    gh_repositories.c.repository_id.is_not(None),
                )
            )
            .limit(1)
        )

    def _resolve_versioned(
        self,
        fetch_row: Callable[[], Row[Any] | None],
        incoming_timestamp: datetime | None,
        present: Callable[[Row[Any]], Resolution],
    ) -> Resolution:
        if not self._check_existing:
            return ABSENT
        try:
            row = fetch_row()
        except SQLAlchemyError as error:
            return Resolution(status="stale_or_error", error=error)
        if row is None:
            return ABSENT
        if self._existing_policy == "skip_existing":
            return STALE
        if not is_newer(incoming_timestamp, row.updated_at):
            return STALE
        return present(row)

    def _resolve_relation(self, statement: Any) -> Resolution:
        if not self._check_existing:
            return ABSENT
        try:
            row = self._connection.execute(statement).first()
        except SQLAlchemyError as error:
            return Resolution(status="stale_or_error", error=error)
        if row is None:
            return ABSENT
        return STALE

    def _scalar(self, statement: Any) -> int | None:
        value = self._connection.execute(statement).scalar()
        if value is None:
            return None
        return int(value)
