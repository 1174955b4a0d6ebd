"""Core constants used across ght-import modules.

This module centralizes entity names, file naming rules, and SQL
placeholders. Keeping values here avoids magic literals in pipeline logic.
"""

from __future__ import annotations

DEFAULT_SNAPSHOT_EXTENSION = ".bson"
SNAPSHOT_DATE_FORMAT = "%Y-%m-%d"
SNAPSHOT_NAME_PATTERN = r"\d{4}-\d{2}-\d{2}"
DEFAULT_STAGING_CHUNK_SIZE = 1000

USERS_ENTITY = "users"
ORG_MEMBERS_ENTITY = "org_members"
REPOS_ENTITY = "repos"
REPO_COLLABORATORS_ENTITY = "repo_collaborators"

ACCOUNT_TYPE_USER = "User"
ACCOUNT_TYPE_ORGANIZATION = "Organization"

LENGTH_PREFIX_SIZE = 4
MIN_DOCUMENT_SIZE = 5
# BSON document size limit enforced by MongoDB.
MAX_DOCUMENT_SIZE = 16 * 1024 * 1024

UNKNOWN_LANGUAGE = "unknown"
PLACEHOLDER_OWNER_LOGIN = "john_doe"
PLACEHOLDER_REPOSITORY_NAME = "42"
DEFAULT_VCS = "git"

DATABASE_URL_ENV = "GHT_DATABASE_URL"
SNAPSHOT_EXTENSION_ENV = "GHT_SNAPSHOT_EXTENSION"
STAGING_CHUNK_SIZE_ENV = "GHT_STAGING_CHUNK_SIZE"
