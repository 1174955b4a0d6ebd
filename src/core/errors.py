"""ght-import exception hierarchy.

This module defines traceable domain errors with clear boundaries.
Each subsystem raises a specific error type for debuggability.
"""

from __future__ import annotations


class GhtError(Exception):
    """Base exception for all ght-import failures."""


class GhtConfigError(GhtError):
    """Raised for invalid runtime configuration or config files."""


class GhtIngestError(GhtError):
    """Raised for snapshot reading and decoding failures."""


class FramingError(GhtIngestError):
    """Raised when a snapshot stream is not a valid sequence of framed documents."""


class RecordDecodeError(GhtIngestError):
    """Raised when a raw document cannot be mapped onto a typed record."""


class SnapshotListingError(GhtIngestError):
    """Raised when a source directory cannot be listed."""


class GhtStoreError(GhtError):
    """Raised for relational store failures."""


class StoreConnectionError(GhtStoreError):
    """Raised when the relational store cannot be reached."""


class MissingEndpointError(GhtStoreError):
    """Raised when a relation references an account or repository not yet imported."""


class StagingTableNotReadyError(GhtStoreError):
    """Raised when the repository staging table is missing or not empty."""


class StagingFlushError(GhtStoreError):
    """Raised when buffered staging rows cannot be written; aborts the file."""
