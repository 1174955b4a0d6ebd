"""BSON record decoding for GHTorrent snapshot documents.

This module maps raw documents onto typed entity records, one field
mapping per entity kind. Extra document fields are ignored; only the
keys that identify an entity are required.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Callable, Mapping

import bson
from bson.errors import BSONError

from core.constants import ACCOUNT_TYPE_ORGANIZATION, ACCOUNT_TYPE_USER
from core.errors import RecordDecodeError
from core.field_values import format_timestamp, parse_timestamp
from core.types import (
    AccountRecord,
    CollaborationRecord,
    EntityKind,
    EntityRecord,
    MembershipRecord,
    RepositoryRecord,
)


def decode_record(kind: EntityKind, raw_document: bytes) -> EntityRecord:
    """Decode one framed BSON document into a typed record.

    Args:
        kind: Entity kind of the snapshot the document came from.
        raw_document: Complete document bytes, length prefix included.

    Returns:
        Typed record for the entity kind.

    Raises:
        RecordDecodeError: If the document is malformed or lacks required keys.
    """
    try:
        document = bson.decode(raw_document)
    except (BSONError, ValueError) as error:
        raise RecordDecodeError(f"Malformed {kind} document: {error}.") from error
    return _DECODERS[kind](document)


def encode_record(kind: EntityKind, record: EntityRecord) -> bytes:
    """Serialize a typed record into a framed BSON document.

    The output uses the GHTorrent field names, so ``decode_record`` reads it
    back into an equal record.
    """
    return bson.encode(_ENCODERS[kind](record))


def _decode_account(document: Mapping[str, Any]) -> AccountRecord:
    return AccountRecord(
        github_id=_required_id(document, "users"),
        login=_required_text(document, "login", "users"),
        account_type=_account_type(document),
        name=_text(document, "name"),
        company=_text(document, "company"),
        bio=_text(document, "bio"),
        location=_text(document, "location"),
        email=_text(document, "email"),
        hireable=_flag(document, "hireable"),
        avatar_url=_text(document, "avatar_url"),
        html_url=_text(document, "html_url"),
        followers=_integer(document, "followers"),
        following=_integer(document, "following"),
        created_at=_timestamp(document, "created_at"),
        updated_at=_timestamp(document, "updated_at"),
    )


def _decode_membership(document: Mapping[str, Any]) -> MembershipRecord:
    return MembershipRecord(
        login=_required_text(document, "login", "org_members"),
        org=_required_text(document, "org", "org_members"),
        github_id=_integer(document, "id"),
        member_type=_text(document, "type") or "User",
    )


def _decode_repository(document: Mapping[str, Any]) -> RepositoryRecord:
    owner = document.get("owner")
    owner_login = ""
    if isinstance(owner, Mapping):
        owner_login = _text(owner, "login")
    return RepositoryRecord(
        github_id=_required_id(document, "repos"),
        name=_text(document, "name"),
        owner_login=owner_login,
        full_name=_text(document, "full_name"),
        language=_text(document, "language"),
        clone_url=_text(document, "clone_url"),
        description=_text(document, "description"),
        homepage=_text(document, "homepage"),
        fork=_flag(document, "fork"),
        default_branch=_text(document, "default_branch"),
        master_branch=_text(document, "master_branch"),
        html_url=_text(document, "html_url"),
        forks_count=_integer(document, "forks_count"),
        open_issues_count=_integer(document, "open_issues_count"),
        stargazers_count=_integer(document, "stargazers_count"),
        subscribers_count=_integer(document, "subscribers_count"),
        watchers_count=_integer(document, "watchers_count"),
        size_in_kb=_integer(document, "size_in_kb"),
        created_at=_timestamp(document, "created_at"),
        updated_at=_timestamp(document, "updated_at"),
        pushed_at=_timestamp(document, "pushed_at"),
    )


def _decode_collaboration(document: Mapping[str, Any]) -> CollaborationRecord:
    return CollaborationRecord(
        login=_required_text(document, "login", "repo_collaborators"),
        owner=_required_text(document, "owner", "repo_collaborators"),
        repo=_required_text(document, "repo", "repo_collaborators"),
        github_id=_integer(document, "id"),
    )


def _encode_account(record: AccountRecord) -> dict[str, Any]:
    return {
        "id": record.github_id,
        "login": record.login,
        "type": record.account_type,
        "name": record.name,
        "company": record.company,
        "bio": record.bio,
        "location": record.location,
        "email": record.email,
        "hireable": record.hireable,
        "avatar_url": record.avatar_url,
        "html_url": record.html_url,
        "followers": record.followers,
        "following": record.following,
        "created_at": format_timestamp(record.created_at),
        "updated_at": format_timestamp(record.updated_at),
    }


def _encode_membership(record: MembershipRecord) -> dict[str, Any]:
    return {
        "id": record.github_id,
        "login": record.login,
        "org": record.org,
        "type": record.member_type,
    }


def _encode_repository(record: RepositoryRecord) -> dict[str, Any]:
    return {
        "id": record.github_id,
        "name": record.name,
        "full_name": record.full_name,
        "owner": {"login": record.owner_login},
        "language": record.language,
        "clone_url": record.clone_url,
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
        "created_at": format_timestamp(record.created_at),
        "updated_at": format_timestamp(record.updated_at),
        "pushed_at": format_timestamp(record.pushed_at),
    }


def _encode_collaboration(record: CollaborationRecord) -> dict[str, Any]:
    return {
        "id": record.github_id,
        "login": record.login,
        "owner": record.owner,
        "repo": record.repo,
    }


def _required_id(document: Mapping[str, Any], kind: str) -> int:
    if document.get("id") is None:
        raise RecordDecodeError(f"Invalid {kind} document: missing required key 'id'.")
    return _integer(document, "id")


def _required_text(document: Mapping[str, Any], key: str, kind: str) -> str:
    value = _text(document, key)
    if not value:
        raise RecordDecodeError(f"Invalid {kind} document: missing required key '{key}'.")
    return value


def _account_type(document: Mapping[str, Any]) -> str:
    account_type = _text(document, "type") or ACCOUNT_TYPE_USER
    if account_type not in (ACCOUNT_TYPE_USER, ACCOUNT_TYPE_ORGANIZATION):
        raise RecordDecodeError(
            f"Invalid users document: unsupported account type {account_type!r}. "
            f"Expected '{ACCOUNT_TYPE_USER}' or '{ACCOUNT_TYPE_ORGANIZATION}'."
        )
    return account_type


def _text(document: Mapping[str, Any], key: str) -> str:
    value = document.get(key)
    if value is None:
        return ""
    return str(value)


def _integer(document: Mapping[str, Any], key: str) -> int:
    value = document.get(key)
    if value is None:
        return 0
    try:
        return int(value)
    except (TypeError, ValueError, OverflowError) as error:
        raise RecordDecodeError(
            f"Invalid document field '{key}': expected integer, got {value!r}."
        ) from error


def _flag(document: Mapping[str, Any], key: str) -> bool:
    return bool(document.get(key) or False)


def _timestamp(document: Mapping[str, Any], key: str) -> datetime | None:
    value = document.get(key)
    try:
        return parse_timestamp(value)
    except ValueError as error:
        raise RecordDecodeError(
            f"Invalid document field '{key}': expected ISO-8601 timestamp, got {value!r}."
        ) from error


_DECODERS: dict[str, Callable[[Mapping[str, Any]], EntityRecord]] = {
    "users": _decode_account,
    "org_members": _decode_membership,
    "repos": _decode_repository,
    "repo_collaborators": _decode_collaboration,
}

_ENCODERS: dict[str, Callable[[Any], dict[str, Any]]] = {
    "users": _encode_account,
    "org_members": _encode_membership,
    "repos": _encode_repository,
    "repo_collaborators": _encode_collaboration,
}
