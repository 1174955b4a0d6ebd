"""Shared typed models.

This module defines immutable data models used by the ingest and store
layers to keep interfaces between reader, resolver, and writer explicit.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from pathlib import Path
from typing import Literal, Union

from core.constants import DEFAULT_SNAPSHOT_EXTENSION, DEFAULT_STAGING_CHUNK_SIZE

EntityKind = Literal["users", "org_members", "repos", "repo_collaborators"]
SUPPORTED_ENTITY_KINDS: tuple[EntityKind, ...] = (
    "users",
    "org_members",
    "repos",
    "repo_collaborators",
)

SnapshotOrder = Literal["newest_first", "oldest_first"]
WriteStrategy = Literal["transactional", "in_place", "staging"]
ExistingRowPolicy = Literal["update_if_newer", "skip_existing"]
ResolutionStatus = Literal["absent", "stale_or_error", "present"]
RecordOutcome = Literal["inserted", "updated", "skipped", "lookup_failed", "staged"]
EngineCapability = Literal["insert_or_update", "insert_or_stage"]


@dataclass(frozen=True)
class AccountRecord:
    """GitHub account, either an individual user or an organization.

    Attributes:
        github_id: External numeric identity.
        login: Login handle.
        account_type: ``User`` or ``Organization``.
        created_at: Creation timestamp in UTC, None when absent.
        updated_at: Last-modified timestamp in UTC, None when absent.
    """

    github_id: int
    login: str
    account_type: str
    name: str = ""
    company: str = ""
    bio: str = ""
    location: str = ""
    email: str = ""
    hireable: bool = False
    avatar_url: str = ""
    html_url: str = ""
    followers: int = 0
    following: int = 0
    created_at: datetime | None = None
    updated_at: datetime | None = None


@dataclass(frozen=True)
class MembershipRecord:
    """Relation between an individual account and an organization, by login."""

    login: str
    org: str
    github_id: int = 0
    member_type: str = "User"


@dataclass(frozen=True)
class RepositoryRecord:
    """GitHub repository.

    Attributes:
        github_id: External numeric identity.
        name: Repository name.
        owner_login: Login of the owning account.
        language: Primary language, empty when unknown.
        clone_url: Git clone URL.
        created_at: Creation timestamp in UTC.
        updated_at: Last-modified timestamp in UTC.
        pushed_at: Last push timestamp in UTC.
    """

    github_id: int
    name: str
    owner_login: str = ""
    full_name: str = ""
    language: str = ""
    clone_url: str = ""
    description: str = ""
    homepage: str = ""
    fork: bool = False
    default_branch: str = ""
    master_branch: str = ""
    html_url: str = ""
    forks_count: int = 0
    open_issues_count: int = 0
    stargazers_count: int = 0
    subscribers_count: int = 0
    watchers_count: int = 0
    size_in_kb: int = 0
    created_at: datetime | None = None
    updated_at: datetime | None = None
    pushed_at: datetime | None = None


@dataclass(frozen=True)
class CollaborationRecord:
    """Relation between an account and a repository, by natural keys."""

    login: str
    owner: str
    repo: str
    github_id: int = 0

    @property
    def full_name(self) -> str:
        """Return the ``owner/repo`` key used by the repository profile table."""
        return f"{self.owner}/{self.repo}"


EntityRecord = Union[AccountRecord, MembershipRecord, RepositoryRecord, CollaborationRecord]


@dataclass(frozen=True)
class SnapshotFile:
    """One dated snapshot file selected for import."""

    path: Path
    snapshot_date: date


@dataclass(frozen=True)
class Resolution:
    """Identity resolver verdict for one incoming record.

    Attributes:
        status: ``absent``, ``stale_or_error``, or ``present``.
        row_id: Existing profile row id when present.
        parent_id: Existing identity row id linked to the profile row.
        error: Lookup failure folded into ``stale_or_error``.
    """

    status: ResolutionStatus
    row_id: int | None = None
    parent_id: int | None = None
    error: Exception | None = None


ABSENT = Resolution(status="absent")
STALE = Resolution(status="stale_or_error")


@dataclass(frozen=True)
class ImportOptions:
    """Import run options.

    Attributes:
        order: Snapshot processing order inside each directory.
        strategy: Write strategy shared by all entity kinds.
        existing_policy: Whether existing rows are updated or skipped.
        check_existing: Query the store before inserting; disable only
            when the input is known to be free of duplicates.
        extension: Snapshot file extension including the dot.
        staging_chunk_size: Buffered staging rows per bulk insert.
    """

    order: SnapshotOrder = "newest_first"
    strategy: WriteStrategy = "transactional"
    existing_policy: ExistingRowPolicy = "update_if_newer"
    check_existing: bool = True
    extension: str = DEFAULT_SNAPSHOT_EXTENSION
    staging_chunk_size: int = DEFAULT_STAGING_CHUNK_SIZE


@dataclass
class FileReport:
    """Counters for one processed snapshot file."""

    path: str
    committed: bool = False
    outcomes: dict[str, int] = field(default_factory=dict)
    failed_records: int = 0
    error: str | None = None

    def count(self, outcome: str) -> None:
        """Increment the counter for one record outcome."""
        self.outcomes[outcome] = self.outcomes.get(outcome, 0) + 1


@dataclass
class ImportReport:
    """Summary of a full import run."""

    files: list[FileReport] = field(default_factory=list)
    skipped_names: list[str] = field(default_factory=list)

    @property
    def committed_files(self) -> int:
        return sum(1 for item in self.files if item.committed)

    @property
    def failed_files(self) -> int:
        return sum(1 for item in self.files if not item.committed)

    @property
    def failed_records(self) -> int:
        return sum(item.failed_records for item in self.files)

    def outcome_totals(self) -> dict[str, int]:
        """Return record outcome counts summed over all files."""
        totals: dict[str, int] = {}
        for file_report in self.files:
            for outcome, count in file_report.outcomes.items():
                totals[outcome] = totals.get(outcome, 0) + count
        return totals
