"""Target relational schema description.

The tables are owned by external DDL scripts; this metadata mirrors them
so statements can be built with SQLAlchemy Core and so local SQLite
stores can be created for dry runs and tests. Constraint names match the
ones toggled around bulk imports.
"""

from __future__ import annotations

from sqlalchemy import (
    BigInteger,
    Boolean,
    Column,
    DateTime,
    ForeignKeyConstraint,
    Integer,
    MetaData,
    PrimaryKeyConstraint,
    String,
    Table,
    UniqueConstraint,
)

metadata = MetaData()

# SQLite only autoincrements INTEGER PRIMARY KEY columns.
_Identifier = BigInteger().with_variant(Integer(), "sqlite")


def _timestamp_column(name: str) -> Column:
    return Column(name, DateTime(timezone=True), nullable=True)


users = Table(
    "users",
    metadata,
    Column("id", _Identifier, primary_key=True, autoincrement=True),
    Column("username", String, nullable=False),
    Column("name", String),
    Column("email", String),
)

gh_users = Table(
    "gh_users",
    metadata,
    Column("id", _Identifier, primary_key=True, autoincrement=True),
    Column("user_id", BigInteger),
    Column("github_id", BigInteger, nullable=False, unique=True),
    Column("login", String, nullable=False),
    Column("bio", String),
    Column("company", String),
    Column("email", String),
    Column("hireable", Boolean),
    Column("location", String),
    Column("avatar_url", String),
    Column("html_url", String),
    Column("followers_count", Integer),
    Column("following_count", Integer),
    _timestamp_column("created_at"),
    _timestamp_column("updated_at"),
    ForeignKeyConstraint(["user_id"], ["users.id"], name="gh_users_fk_users"),
)

gh_organizations = Table(
    "gh_organizations",
    metadata,
    Column("id", _Identifier, primary_key=True, autoincrement=True),
    Column("login", String, nullable=False),
    Column("github_id", BigInteger, nullable=False, unique=True),
    Column("avatar_url", String),
    Column("html_url", String),
    Column("name", String),
    Column("company", String),
    Column("location", String),
    Column("email", String),
    _timestamp_column("created_at"),
    _timestamp_column("updated_at"),
)

repositories = Table(
    "repositories",
    metadata,
    Column("id", _Identifier, primary_key=True, autoincrement=True),
    Column("name", String, nullable=False),
    Column("primary_language", String, nullable=False),
    Column("clone_url", String, nullable=False),
    Column("clone_path", String, nullable=False),
    Column("vcs", String, nullable=False),
    UniqueConstraint("clone_path", name="repositories_unique_clone_path"),
    UniqueConstraint("clone_url", name="repositories_unique_clone_url"),
)


def _repository_profile_columns() -> list[Column]:
    return [
        Column("github_id", BigInteger, nullable=False),
        Column("full_name", String),
        Column("description", String),
        Column("homepage", String),
        Column("fork", Boolean),
        Column("default_branch", String),
        Column("master_branch", String),
        Column("html_url", String),
        Column("forks_count", Integer),
        Column("open_issues_count", Integer),
        Column("stargazers_count", Integer),
        Column("subscribers_count", Integer),
        Column("watchers_count", Integer),
        Column("size_in_kb", Integer),
        _timestamp_column("created_at"),
        _timestamp_column("updated_at"),
        _timestamp_column("pushed_at"),
    ]


gh_repositories = Table(
    "gh_repositories",
    metadata,
    Column("id", _Identifier, primary_key=True, autoincrement=True),
    Column("repository_id", BigInteger),
    *_repository_profile_columns(),
    ForeignKeyConstraint(
        ["repository_id"], ["repositories.id"], name="gh_repositories_fk_repositories"
    ),
)

gh_users_organizations = Table(
    "gh_users_organizations",
    metadata,
    Column("gh_user_id", BigInteger, nullable=False),
    Column("gh_organization_id", BigInteger, nullable=False),
    PrimaryKeyConstraint("gh_user_id", "gh_organization_id"),
    ForeignKeyConstraint(
        ["gh_user_id"], ["gh_users.id"], name="gh_users_organizations_fk_users"
    ),
    ForeignKeyConstraint(
        ["gh_organization_id"],
        ["gh_organizations.id"],
        name="gh_users_organizations_fk_organization",
    ),
)

users_repositories = Table(
    "users_repositories",
    metadata,
    Column("user_id", BigInteger, nullable=False),
    Column("repository_id", BigInteger, nullable=False),
    PrimaryKeyConstraint("user_id", "repository_id"),
    ForeignKeyConstraint(["user_id"], ["users.id"], name="users_repositories_fk_users"),
    ForeignKeyConstraint(
        ["repository_id"], ["repositories.id"], name="users_repositories_fk_repository"
    ),
)

# Staging rows carry both repository tables' columns and no constraints.
tmp_gh_repositories = Table(
    "tmp_gh_repositories",
    metadata,
    Column("name", String, nullable=False),
    Column("primary_language", String, nullable=False),
    Column("clone_url", String, nullable=False),
    Column("clone_path", String, nullable=False),
    Column("vcs", String, nullable=False),
    *_repository_profile_columns(),
)
