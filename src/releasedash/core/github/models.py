"""
GitHub data models for releasedash.

Defines Pydantic models for repository info and for the documents read from
a release branch. Every document crossing the GitHub boundary is parsed here
and rejected if its shape is wrong.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, computed_field, field_validator

from releasedash.core.releases.models import BuildArtifact, CheckRun


def normalize_library_name(name: str) -> str:
    """
    Convert a Gradle project path into a library name.

    Example:
        >>> normalize_library_name(":firebase-common:ktx")
        'firebase-common/ktx'
    """
    return name.removeprefix(":").replace(":", "/")


class RepoInfo(BaseModel):
    """
    GitHub repository information.

    Example:
        >>> RepoInfo(owner="firebase", repo="firebase-android-sdk").full_name
        'firebase/firebase-android-sdk'
    """

    owner: str = Field(..., description="Repository owner (user or organization)")
    repo: str = Field(..., description="Repository name")

    @computed_field
    @property
    def full_name(self) -> str:
        """Full repository name (owner/repo)."""
        return f"{self.owner}/{self.repo}"


class ManifestDoc(BaseModel):
    """
    The release manifest (release.json) on a release branch.

    Library names are normalized on parse, so ``":firebase-common:ktx"``
    becomes ``"firebase-common/ktx"``.
    """

    model_config = ConfigDict(extra="ignore")

    name: str
    libraries: list[str]

    @field_validator("libraries")
    @classmethod
    def _normalize(cls, value: list[str]) -> list[str]:
        return [normalize_library_name(lib) for lib in value]


class ChangeEntry(BaseModel):
    """One change as listed in the change report."""

    model_config = ConfigDict(
        populate_by_name=True,
        coerce_numbers_to_str=True,
        extra="ignore",
    )

    commit_id: str = Field(..., alias="commitId")
    commit_link: str = Field(default="", alias="commitLink")
    pr_id: str = Field(default="", alias="prId")
    pr_link: str = Field(default="", alias="prLink")
    message: str = ""
    author: str = ""

    @field_validator("pr_id", "pr_link", "commit_link", "message", "author", mode="before")
    @classmethod
    def _none_to_empty(cls, value: Any) -> Any:
        return "" if value is None else value


class ChangeReportDoc(BaseModel):
    """
    The change report (release_report.json) on a release branch.

    Only ``changesByLibraryName`` is read; other keys are ignored.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    changes_by_library_name: dict[str, list[ChangeEntry]] = Field(
        ..., alias="changesByLibraryName"
    )

    @field_validator("changes_by_library_name")
    @classmethod
    def _normalize(cls, value: dict[str, list[ChangeEntry]]) -> dict[str, list[ChangeEntry]]:
        normalized: dict[str, list[ChangeEntry]] = {}
        for name, entries in value.items():
            normalized.setdefault(normalize_library_name(name), []).extend(entries)
        return normalized


class WorkflowRun(BaseModel):
    """A GitHub Actions workflow run, reduced to the fields we track."""

    model_config = ConfigDict(extra="ignore", coerce_numbers_to_str=True)

    id: str
    name: str
    status: str | None = None
    conclusion: str | None = None
    html_url: str = ""

    def to_build_artifact(self) -> BuildArtifact:
        return BuildArtifact(
            status=self.status or "",
            conclusion=self.conclusion or "",
            link=self.html_url,
            job_id=self.id,
        )


def check_run_from_api(data: dict[str, Any]) -> CheckRun:
    """
    Create a CheckRun from a check-runs API item.

    Args:
        data: One element of ``check_runs`` from
            ``GET /repos/{owner}/{repo}/commits/{ref}/check-runs``

    Returns:
        CheckRun instance (without a release id)
    """
    output = data.get("output") or {}
    return CheckRun(
        id=data["id"],
        name=data.get("name", ""),
        head_sha=data.get("head_sha", ""),
        status=data.get("status", ""),
        conclusion=data.get("conclusion"),
        output_title=output.get("title") if isinstance(output, dict) else None,
        https_url=data.get("html_url", ""),
    )
