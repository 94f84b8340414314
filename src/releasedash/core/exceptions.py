"""
Custom exceptions for releasedash.

This module defines a hierarchy of exceptions for the release sync engine,
providing structured error handling with context preservation.

Exception Hierarchy:
    ReleaseDashError (base)
    ├── ReleaseNotFoundError
    ├── ReleaseAlreadyExistsError
    ├── ReleaseValidationError (request-level, never persisted)
    ├── IndeterminateStateError (invalid date pair)
    ├── HostIntegrationError (GitHub-side problems during a sync)
    │   ├── BranchMissingError
    │   ├── MalformedManifestError
    │   ├── MalformedChangeReportError
    │   ├── WorkflowNotFoundError
    │   ├── VersionNotFoundError
    │   ├── MalformedHostResponseError
    │   └── GitHubClientError (network, auth, rate limit)
    └── DataIntegrityError (store contents violate an invariant)
        ├── DuplicateReleaseNameError
        └── UnknownLibraryError

Host-integration and data-integrity errors raised during a sync are recorded
as ReleaseError rows and move the release into the ERROR state.

Example:
    >>> from releasedash.core.exceptions import BranchMissingError
    >>> try:
    ...     raise BranchMissingError("releases/M134.release")
    ... except BranchMissingError as e:
    ...     print(e.context["branch_name"])
    releases/M134.release
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from releasedash.core.releases.validation import ValidationIssue


class ReleaseDashError(Exception):
    """
    Base exception for all releasedash errors.

    Attributes:
        message: Human-readable error message
        context: Optional dictionary of additional context
    """

    def __init__(self, message: str, **context: object) -> None:
        super().__init__(message)
        self.message = message
        self.context = context

    def __str__(self) -> str:
        """Return string representation of the error."""
        return self.message


class ReleaseNotFoundError(ReleaseDashError):
    """Raised when no release exists with the given id."""

    def __init__(self, release_id: str) -> None:
        super().__init__(f"No release found with ID: {release_id}", release_id=release_id)
        self.release_id = release_id


class ReleaseValidationError(ReleaseDashError):
    """
    Raised when release data fails validation.

    Carries the full list of issues so request handlers can report all of
    them at once.
    """

    def __init__(self, issues: list[ValidationIssue]) -> None:
        kinds = ", ".join(sorted({issue.kind.value for issue in issues}))
        super().__init__(f"Release validation failed: {kinds}", issue_count=len(issues))
        self.issues = issues


class ReleaseAlreadyExistsError(ReleaseDashError):
    """Raised when scheduling a release whose name is already taken."""

    def __init__(self, release_name: str) -> None:
        super().__init__(f"Release already exists: {release_name}", release_name=release_name)
        self.release_name = release_name


class IndeterminateStateError(ReleaseDashError):
    """Raised when a release state cannot be derived from its dates."""


class HostIntegrationError(ReleaseDashError):
    """Base exception for failures talking to or interpreting GitHub data."""


class BranchMissingError(HostIntegrationError):
    """Raised when the release branch does not exist on GitHub."""

    def __init__(self, branch_name: str) -> None:
        super().__init__(
            f"Release branch does not exist on GitHub: {branch_name}",
            branch_name=branch_name,
        )
        self.branch_name = branch_name


class MalformedManifestError(HostIntegrationError):
    """Raised when the release manifest cannot be parsed."""


class MalformedChangeReportError(HostIntegrationError):
    """Raised when the release change report cannot be parsed."""


class WorkflowNotFoundError(HostIntegrationError):
    """Raised when no build-artifact workflow run exists on a branch."""

    def __init__(self, workflow_name: str, branch_name: str) -> None:
        super().__init__(
            f"No {workflow_name} workflow found on {branch_name}",
            workflow_name=workflow_name,
            branch_name=branch_name,
        )


class VersionNotFoundError(HostIntegrationError):
    """Raised when a version descriptor has no version assignment."""


class MalformedHostResponseError(HostIntegrationError):
    """Raised when a GitHub API response does not have the expected shape."""


class GitHubClientError(HostIntegrationError):
    """
    Error from GitHub API operations.

    Attributes:
        status_code: HTTP status code, if a response was received
    """

    def __init__(self, message: str, status_code: int | None = None, **context: object) -> None:
        super().__init__(message, status_code=status_code, **context)
        self.status_code = status_code


class DataIntegrityError(ReleaseDashError):
    """Base exception for store contents that violate a system invariant."""


class DuplicateReleaseNameError(DataIntegrityError):
    """Raised when more than one release shares a name."""

    def __init__(self, release_name: str, count: int) -> None:
        super().__init__(
            f"There should be at most one release with name {release_name}, "
            f"instead {count} releases were found",
            release_name=release_name,
            count=count,
        )


class UnknownLibraryError(DataIntegrityError):
    """Raised when a change references a library not written in this sync."""

    def __init__(self, library_name: str, release_id: str) -> None:
        super().__init__(
            f"Library in change report does not exist in the store: {library_name}",
            library_name=library_name,
            release_id=release_id,
        )


__all__ = [
    "ReleaseDashError",
    "ReleaseNotFoundError",
    "ReleaseValidationError",
    "ReleaseAlreadyExistsError",
    "IndeterminateStateError",
    "HostIntegrationError",
    "BranchMissingError",
    "MalformedManifestError",
    "MalformedChangeReportError",
    "WorkflowNotFoundError",
    "VersionNotFoundError",
    "MalformedHostResponseError",
    "GitHubClientError",
    "DataIntegrityError",
    "DuplicateReleaseNameError",
    "UnknownLibraryError",
]
