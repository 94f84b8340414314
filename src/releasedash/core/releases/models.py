"""
Pydantic models for releases and their dependent records.

These models provide type-safe data structures for:
- Release: One tracked release cycle with its derived branch and build fields
- Library / Change / CheckRun: Facts mirrored from GitHub for a release
- ReleaseErrorRecord: Append-only record of a failed sync
- ReleaseDraft / ReleaseEdit: Validated input for creating and modifying releases
- ReleasePatch: Partial store update, including the sync-owned state and artifact
- ReleaseView: Denormalized release returned to the dashboard

API payloads use camelCase keys (``releaseName``, ``codeFreezeDate``); Python
attributes stay snake_case. All models accept either form on input.
"""

from __future__ import annotations

import hashlib
import re
from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

# Valid release names are of the form "M<releaseNumber>" with an optional suffix
RELEASE_NAME_PATTERN = re.compile(r"^M(\d+)\S*$")

# Trailing pull request reference in a squashed commit title, e.g. "Fix crash (#1234)"
_PR_SUFFIX_PATTERN = re.compile(r"\s*\(#\d+\)\s*$")


class ReleaseState(str, Enum):
    """Lifecycle states for a release.

    Every state except ERROR is derivable from the release dates and the
    completion flag. ERROR is set only by a failed sync and cleared only by
    a later successful one.
    """

    SCHEDULED = "SCHEDULED"
    CODE_FREEZE = "CODE_FREEZE"
    RELEASE_DAY = "RELEASE_DAY"
    RELEASED = "RELEASED"
    DELAYED = "DELAYED"
    ERROR = "ERROR"


class CamelModel(BaseModel):
    """Base model with camelCase aliases for API payloads."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


def ensure_utc(value: datetime) -> datetime:
    """Return ``value`` as an aware UTC datetime (naive values are taken as UTC)."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def release_number(release_name: str) -> int:
    """
    Extract the numeric part of a release name.

    Args:
        release_name: Release name such as "M134" or "M134.1"

    Returns:
        The release number (134)

    Raises:
        ValueError: If the name is not of the form M<digits>
    """
    match = RELEASE_NAME_PATTERN.match(release_name)
    if not match:
        raise ValueError(f"Invalid release name: {release_name!r}")
    return int(match.group(1))


def library_id(library_name: str, updated_version: str) -> str:
    """
    Deterministic identifier for a library row.

    The id only depends on the library name and its version, so a library
    that keeps releasing at the same version keeps the same id across syncs.
    """
    digest = hashlib.sha1(f"{library_name}@{updated_version}".encode()).hexdigest()
    return digest[:20]


def parse_commit_title(message: str) -> str:
    """
    Derive a commit title from a raw commit message.

    Takes the first line of the message and drops the trailing pull request
    reference that squash merges append, e.g. ``"Fix crash (#1234)"``.
    """
    first_line = message.strip().splitlines()[0] if message.strip() else ""
    return _PR_SUFFIX_PATTERN.sub("", first_line).strip()


class BranchNaming(BaseModel):
    """Derives the snapshot and release branch fields from a release name."""

    branch_prefix: str = "releases/"
    repo_url: str = "https://github.com/firebase/firebase-android-sdk"

    def snapshot_branch(self, release_name: str) -> str:
        return f"{self.branch_prefix}{release_name}"

    def release_branch(self, release_name: str) -> str:
        return f"{self.branch_prefix}{release_name}.release"

    def branch_fields(self, release_name: str) -> dict[str, str]:
        """Return the four derived branch fields for a release name."""
        snapshot = self.snapshot_branch(release_name)
        release = self.release_branch(release_name)
        return {
            "snapshot_branch_name": snapshot,
            "snapshot_branch_link": f"{self.repo_url}/tree/{snapshot}",
            "release_branch_name": release,
            "release_branch_link": f"{self.repo_url}/tree/{release}",
        }


class BuildArtifact(CamelModel):
    """Status of the build-artifact workflow run on the release branch."""

    status: str = ""
    conclusion: str = ""
    link: str = ""
    job_id: str = ""


class Release(CamelModel):
    """A tracked release cycle.

    Example:
        >>> release = Release(
        ...     id="a1b2",
        ...     release_name="M134",
        ...     release_operator="octocat",
        ...     code_freeze_date=datetime(2026, 6, 1, tzinfo=timezone.utc),
        ...     release_date=datetime(2026, 6, 8, tzinfo=timezone.utc),
        ...     **BranchNaming().branch_fields("M134"),
        ... )
        >>> release.state
        <ReleaseState.SCHEDULED: 'SCHEDULED'>
    """

    id: str = Field(..., description="Store-assigned release identifier")
    release_name: str = Field(..., description="Release name, e.g. M134")
    release_operator: str = Field(..., description="Person running the release")
    code_freeze_date: datetime
    release_date: datetime
    snapshot_branch_name: str = ""
    snapshot_branch_link: str = ""
    release_branch_name: str = ""
    release_branch_link: str = ""
    state: ReleaseState = ReleaseState.SCHEDULED
    is_complete: bool = False
    build_artifact: BuildArtifact = Field(default_factory=BuildArtifact)

    @field_validator("code_freeze_date", "release_date")
    @classmethod
    def _to_utc(cls, value: datetime) -> datetime:
        return ensure_utc(value)


class ReleaseDraft(CamelModel):
    """A validated request to schedule a new release."""

    release_name: str
    release_operator: str
    code_freeze_date: datetime
    release_date: datetime

    @field_validator("code_freeze_date", "release_date")
    @classmethod
    def _to_utc(cls, value: datetime) -> datetime:
        return ensure_utc(value)


class ReleasePatch(CamelModel):
    """Partial update for a release. Only fields that were set are applied."""

    release_name: str | None = None
    release_operator: str | None = None
    code_freeze_date: datetime | None = None
    release_date: datetime | None = None
    is_complete: bool | None = None
    state: ReleaseState | None = None
    build_artifact: BuildArtifact | None = None

    @field_validator("code_freeze_date", "release_date")
    @classmethod
    def _to_utc(cls, value: datetime | None) -> datetime | None:
        return ensure_utc(value) if value is not None else None

    def changes(self) -> dict[str, object]:
        """Return only the fields explicitly set on this patch."""
        return {name: getattr(self, name) for name in self.model_fields_set}


class ReleaseEdit(CamelModel):
    """
    Operator changes to a scheduled release.

    Covers the fields an operator owns. Dashboard clients echo back derived
    fields, so anything else is dropped, including ``state`` and
    ``buildArtifact`` which only a sync may write.
    """

    model_config = ConfigDict(extra="ignore")

    release_name: str | None = None
    release_operator: str | None = None
    code_freeze_date: datetime | None = None
    release_date: datetime | None = None
    is_complete: bool | None = None

    def to_patch(self) -> ReleasePatch:
        """Store patch carrying only the fields set on this edit."""
        return ReleasePatch(**self.model_dump(exclude_unset=True))


class LibraryMetadata(CamelModel):
    """Per-library release metadata derived by the reconciler."""

    updated_version: str
    opted_in: bool = False
    opted_out: bool = False
    library_group_release: bool = False

    @model_validator(mode="after")
    def _check_flags(self) -> LibraryMetadata:
        if self.opted_in and self.opted_out:
            raise ValueError("A library cannot be both opted in and opted out")
        return self


class Library(LibraryMetadata):
    """A library row owned by one release."""

    id: str
    release_id: str
    library_name: str


class Change(CamelModel):
    """A commit included in a release for one library."""

    release_id: str
    library_id: str
    commit_id: str
    commit_link: str = ""
    pull_request_id: str = ""
    pull_request_link: str = ""
    author: str = ""
    commit_title: str = ""
    message: str = ""


class CheckRun(CamelModel):
    """A single CI check run on the release branch head."""

    id: int = Field(..., description="GitHub-assigned check run id")
    release_id: str | None = None
    name: str
    head_sha: str = Field(default="", alias="headSHA")
    status: str = ""
    conclusion: str | None = None
    output_title: str | None = None
    https_url: str = ""


class ReleaseErrorRecord(CamelModel):
    """An append-only record of a failed sync."""

    id: int
    release_id: str
    message: str
    stack_trace: str
    context_msg: str
    timestamp: datetime


class LibraryView(Library):
    """Library with its changes nested, for the dashboard."""

    changes: list[Change] = Field(default_factory=list)


class ReleaseView(Release):
    """Release denormalized with its libraries, checks and latest error."""

    libraries: list[LibraryView] = Field(default_factory=list)
    checks: list[CheckRun] = Field(default_factory=list)
    error: ReleaseErrorRecord | None = None


class SyncResult(BaseModel):
    """Result of syncing one release.

    Example:
        >>> result = SyncResult(
        ...     release_id="a1b2",
        ...     state=ReleaseState.CODE_FREEZE,
        ...     fetched=True,
        ...     libraries_written=12,
        ...     changes_written=40,
        ...     check_runs_written=7,
        ...     duration_seconds=2.5,
        ... )
    """

    release_id: str = Field(..., description="Release that was synced")
    state: ReleaseState = Field(..., description="State written by the sync")
    fetched: bool = Field(default=False, description="Whether GitHub was consulted")
    libraries_written: int = Field(default=0, ge=0, description="Library rows written")
    changes_written: int = Field(default=0, ge=0, description="Change rows written")
    check_runs_written: int = Field(default=0, ge=0, description="Check run rows written")
    duration_seconds: float = Field(default=0.0, ge=0.0, description="Sync duration")
