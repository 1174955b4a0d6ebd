"""Foreign-key and uniqueness constraint toggling around bulk imports.

PostgreSQL DDL is transactional, so dropping a constraint inside the
import transaction and adding it back before commit never leaves the
schema relaxed after a successful commit. Re-adding validates every row
written in between; a failure propagates and the transaction rolls back.
"""

from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass
from typing import Iterator, Mapping

from sqlalchemy import text
from sqlalchemy.engine import Connection

from core.logging_config import get_logger
from core.types import EntityKind

_LOGGER = get_logger(__name__)

TOGGLING_DIALECT = "postgresql"


@dataclass(frozen=True)
class ConstraintSpec:
    """One named table constraint and the DDL needed to recreate it."""

    table: str
    name: str
    definition: str


GH_USERS_FK_USERS = ConstraintSpec(
    "gh_users", "gh_users_fk_users", "FOREIGN KEY (user_id) REFERENCES users(id)"
)
GH_USERS_ORGANIZATIONS_FK_ORGANIZATION = ConstraintSpec(
    "gh_users_organizations",
    "gh_users_organizations_fk_organization",
    "FOREIGN KEY (gh_organization_id) REFERENCES gh_organizations(id)",
)
GH_USERS_ORGANIZATIONS_FK_USERS = ConstraintSpec(
    "gh_users_organizations",
    "gh_users_organizations_fk_users",
    "FOREIGN KEY (gh_user_id) REFERENCES gh_users(id)",
)
GH_REPOSITORIES_FK_REPOSITORIES = ConstraintSpec(
    "gh_repositories",
    "gh_repositories_fk_repositories",
    "FOREIGN KEY (repository_id) REFERENCES repositories(id)",
)
USERS_REPOSITORIES_FK_REPOSITORY = ConstraintSpec(
    "users_repositories",
    "users_repositories_fk_repository",
    "FOREIGN KEY (repository_id) REFERENCES repositories(id)",
)
USERS_REPOSITORIES_FK_USERS = ConstraintSpec(
    "users_repositories",
    "users_repositories_fk_users",
    "FOREIGN KEY (user_id) REFERENCES users(id)",
)
REPOSITORIES_UNIQUE_CLONE_PATH = ConstraintSpec(
    "repositories", "repositories_unique_clone_path", "UNIQUE (clone_path)"
)
REPOSITORIES_UNIQUE_CLONE_URL = ConstraintSpec(
    "repositories", "repositories_unique_clone_url", "UNIQUE (clone_url)"
)

IMPORT_CONSTRAINTS: Mapping[EntityKind, tuple[ConstraintSpec, ...]] = {
    "users": (GH_USERS_FK_USERS,),
    "org_members": (
        GH_USERS_ORGANIZATIONS_FK_ORGANIZATION,
        GH_USERS_ORGANIZATIONS_FK_USERS,
    ),
    "repos": (GH_REPOSITORIES_FK_REPOSITORIES,),
    "repo_collaborators": (
        USERS_REPOSITORIES_FK_REPOSITORY,
        USERS_REPOSITORIES_FK_USERS,
    ),
}

PROMOTION_CONSTRAINTS: tuple[ConstraintSpec, ...] = (
    REPOSITORIES_UNIQUE_CLONE_PATH,
    REPOSITORIES_UNIQUE_CLONE_URL,
    GH_REPOSITORIES_FK_REPOSITORIES,
)


class IntegrityToggler:
    """Drops and restores a fixed set of constraints on one connection."""

    def __init__(self, constraints: tuple[ConstraintSpec, ...]) -> None:
        self._constraints = constraints

    @property
    def constraints(self) -> tuple[ConstraintSpec, ...]:
        return self._constraints

    def disable(self, connection: Connection) -> None:
        """Drop every managed constraint inside the current transaction."""
        for constraint in self._constraints:
            connection.execute(
                text(f"ALTER TABLE ONLY {constraint.table} DROP CONSTRAINT {constraint.name}")
            )
            _LOGGER.debug("constraint_disabled", table=constraint.table, name=constraint.name)

    def enable(self, connection: Connection) -> None:
        """Re-add every managed constraint inside the current transaction."""
        for constraint in self._constraints:
            connection.execute(
                text(
                    f"ALTER TABLE ONLY {constraint.table} "
                    f"ADD CONSTRAINT {constraint.name} {constraint.definition}"
                )
            )
            _LOGGER.debug("constraint_enabled", table=constraint.table, name=constraint.name)

    @contextmanager
    def relaxed(self, connection: Connection) -> Iterator[None]:
        """Disable constraints for the body and restore them when it succeeds.

        When the body raises, constraints are left dropped; the caller is
        expected to roll back, which restores them.
        """
        self.disable(connection)
        yield
        self.enable(connection)


def toggler_for(kind: EntityKind) -> IntegrityToggler:
    """Return the toggler guarding per-record imports of one entity kind."""
    return IntegrityToggler(IMPORT_CONSTRAINTS[kind])


def supports_constraint_toggling(dialect_name: str) -> bool:
    """Return whether a dialect can drop and re-add constraints in a transaction.

    Only PostgreSQL has transactional ``ALTER TABLE ... DROP CONSTRAINT``;
    other stores, such as SQLite dry runs, import with constraints in place.
    """
    return dialect_name == TOGGLING_DIALECT
