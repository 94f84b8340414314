"""
Release domain: models, state classification, validation and version
extraction.

The service layer (service.py) is imported directly by its callers.
"""

from releasedash.core.releases.models import (
    BranchNaming,
    BuildArtifact,
    Change,
    CheckRun,
    Library,
    LibraryMetadata,
    Release,
    ReleaseDraft,
    ReleaseEdit,
    ReleaseErrorRecord,
    ReleasePatch,
    ReleaseState,
    ReleaseView,
    SyncResult,
)
from releasedash.core.releases.state import (
    ReleaseClassification,
    classify_release_state,
    days_until,
)
from releasedash.core.releases.validation import (
    ValidationErrorKind,
    ValidationIssue,
    validate_new_releases,
    validate_release,
)
from releasedash.core.releases.version import extract_version

__all__ = [
    "BranchNaming",
    "BuildArtifact",
    "Change",
    "CheckRun",
    "Library",
    "LibraryMetadata",
    "Release",
    "ReleaseClassification",
    "ReleaseDraft",
    "ReleaseEdit",
    "ReleaseErrorRecord",
    "ReleasePatch",
    "ReleaseState",
    "ReleaseView",
    "SyncResult",
    "ValidationErrorKind",
    "ValidationIssue",
    "classify_release_state",
    "days_until",
    "extract_version",
    "validate_new_releases",
    "validate_release",
]
