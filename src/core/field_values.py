"""Field value normalization shared by decoder and writers.

This module owns timestamp parsing, NUL-byte stripping, and the derived
repository clone path so every writer applies the same rules.
"""

from __future__ import annotations

import posixpath
from datetime import datetime, timezone

from core.constants import (
    PLACEHOLDER_OWNER_LOGIN,
    PLACEHOLDER_REPOSITORY_NAME,
    UNKNOWN_LANGUAGE,
)


def parse_timestamp(raw_value: object) -> datetime | None:
    """Parse a snapshot timestamp into an aware UTC datetime.

    Args:
        raw_value: ISO-8601 text, a datetime, or None.

    Returns:
        Aware UTC datetime, or None when the value is empty.

    Raises:
        ValueError: If text is present but not ISO-8601.
    """
    if raw_value is None:
        return None
    if isinstance(raw_value, datetime):
        return as_utc(raw_value)
    text = str(raw_value).strip()
    if not text:
        return None
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    return as_utc(datetime.fromisoformat(text))


def as_utc(value: datetime) -> datetime:
    """Return an aware UTC datetime, treating naive values as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def format_timestamp(value: datetime | None) -> str:
    """Render a timestamp the way GHTorrent dumps store it."""
    if value is None:
        return ""
    return as_utc(value).strftime("%Y-%m-%dT%H:%M:%SZ")


def effective_timestamp(
    updated_at: datetime | None,
    created_at: datetime | None,
) -> datetime | None:
    """Return last-modified time, falling back to creation time."""
    return updated_at if updated_at is not None else created_at


def is_newer(incoming: datetime | None, stored: datetime | None) -> bool:
    """Return whether an incoming timestamp strictly postdates the stored one.

    A missing incoming timestamp is never newer; a missing stored timestamp
    is older than any known incoming timestamp.
    """
    if incoming is None:
        return False
    if stored is None:
        return True
    return as_utc(incoming) > as_utc(stored)


def remove_null_bytes(value: str) -> str:
    """Remove NUL characters, which PostgreSQL text columns reject."""
    return value.replace("\x00", "")


def build_clone_path(language: str, owner_login: str, name: str) -> str:
    """Build the lowercase ``language/owner/name`` clone path of a repository."""
    return posixpath.join(
        language or UNKNOWN_LANGUAGE,
        owner_login or PLACEHOLDER_OWNER_LOGIN,
        name or PLACEHOLDER_REPOSITORY_NAME,
    ).lower()
