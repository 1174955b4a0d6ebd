"""Runtime configuration model for ght-import.

This module owns all environment variable parsing and validation.
Other modules consume a typed config object instead of raw env reads.
"""

from __future__ import annotations

from dataclasses import dataclass
import os

from core.constants import (
    DATABASE_URL_ENV,
    DEFAULT_SNAPSHOT_EXTENSION,
    DEFAULT_STAGING_CHUNK_SIZE,
    SNAPSHOT_EXTENSION_ENV,
    STAGING_CHUNK_SIZE_ENV,
)
from core.errors import GhtConfigError


@dataclass(frozen=True)
class ImportConfig:
    """Validated runtime configuration.

    Attributes:
        database_url: Optional SQLAlchemy URL overriding config-file settings.
        snapshot_extension: Snapshot file extension including the dot.
        staging_chunk_size: Rows per bulk insert into the staging table.
    """

    database_url: str | None
    snapshot_extension: str
    staging_chunk_size: int

    @classmethod
    def from_env(cls) -> "ImportConfig":
        """Build config from process environment variables.

        Returns:
            A validated config object.

        Raises:
            GhtConfigError: If environment values are invalid.
        """
        database_url = os.getenv(DATABASE_URL_ENV) or None
        extension_value = os.getenv(SNAPSHOT_EXTENSION_ENV, DEFAULT_SNAPSHOT_EXTENSION)
        chunk_size_value = os.getenv(STAGING_CHUNK_SIZE_ENV, str(DEFAULT_STAGING_CHUNK_SIZE))
        return cls(
            database_url=database_url,
            snapshot_extension=normalize_extension(extension_value),
            staging_chunk_size=_parse_chunk_size(chunk_size_value),
        )


def normalize_extension(raw_value: str) -> str:
    """Return a snapshot extension with exactly one leading dot.

    Raises:
        GhtConfigError: If the extension is empty.
    """
    extension = raw_value.strip().lstrip(".")
    if not extension:
        raise GhtConfigError(
            f"Invalid {SNAPSHOT_EXTENSION_ENV} value: extension must not be empty. "
            "Set it to a value such as '.bson'."
        )
    return f".{extension}"


def _parse_chunk_size(raw_value: str) -> int:
    """Parse the staging chunk size environment value.

    Args:
        raw_value: Raw string from environment.

    Returns:
        Parsed positive chunk size.

    Raises:
        GhtConfigError: If value is not a positive integer.
    """
    try:
        chunk_size = int(raw_value)
    except ValueError as error:
        raise GhtConfigError(
            f"Invalid {STAGING_CHUNK_SIZE_ENV} value: "
            f"expected integer, got '{raw_value}'. "
            f"Set {STAGING_CHUNK_SIZE_ENV} to a positive number."
        ) from error
    if chunk_size <= 0:
        raise GhtConfigError(
            f"Invalid {STAGING_CHUNK_SIZE_ENV} value: expected a positive integer, "
            f"got {chunk_size}."
        )
    return chunk_size
