"""Unit tests for shared field value rules."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from core.field_values import (
    build_clone_path,
    effective_timestamp,
    format_timestamp,
    is_newer,
    parse_timestamp,
    remove_null_bytes,
)


def test_parse_timestamp_reads_zulu_suffix() -> None:
    """GHTorrent timestamps end with Z and must parse as UTC."""
    parsed = parse_timestamp("2014-03-01T10:20:30Z")

    assert parsed == datetime(2014, 3, 1, 10, 20, 30, tzinfo=timezone.utc)


def test_parse_timestamp_treats_empty_as_absent() -> None:
    """Empty timestamps become None so they are stored as NULL."""
    assert [parse_timestamp(value) for value in (None, "", "  ")] == [None, None, None]


def test_parse_timestamp_normalizes_offsets_to_utc() -> None:
    """Offset timestamps and naive datetimes normalize to aware UTC."""
    offset_value = parse_timestamp("2014-03-01T12:00:00+02:00")
    naive_value = parse_timestamp(datetime(2014, 3, 1, 10, 0, 0))

    assert offset_value == naive_value
    assert offset_value is not None and offset_value.utcoffset() == timedelta(0)


def test_parse_timestamp_rejects_garbage() -> None:
    """Malformed timestamps raise ValueError for the decoder to report."""
    with pytest.raises(ValueError):
        parse_timestamp("yesterday")


def test_format_timestamp_matches_dump_format() -> None:
    """Formatted timestamps use the second-precision Z form."""
    value = datetime(2014, 3, 1, 10, 20, 30, 999, tzinfo=timezone.utc)

    assert (format_timestamp(value), format_timestamp(None)) == ("2014-03-01T10:20:30Z", "")


def test_effective_timestamp_falls_back_to_creation() -> None:
    """Records without an update time are versioned by creation time."""
    created = datetime(2014, 1, 1, tzinfo=timezone.utc)

    assert effective_timestamp(None, created) == created


def test_is_newer_is_strict() -> None:
    """Equal timestamps are not newer; unknown stored values are older."""
    stored = datetime(2014, 1, 1, tzinfo=timezone.utc)

    assert is_newer(stored, stored) is False
    assert is_newer(stored + timedelta(seconds=1), stored) is True
    assert is_newer(stored, None) is True
    assert is_newer(None, stored) is False


def test_remove_null_bytes_strips_every_nul() -> None:
    """PostgreSQL rejects NUL characters in text columns."""
    assert remove_null_bytes("a\x00b\x00") == "ab"


def test_build_clone_path_lowercases_and_substitutes() -> None:
    """Clone paths use placeholders for missing parts."""
    assert build_clone_path("Go", "Acme", "Tool") == "go/acme/tool"
    assert build_clone_path("", "", "") == "unknown/john_doe/42"
