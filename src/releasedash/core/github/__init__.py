"""
GitHub integration for releasedash.

Read-only REST access to release branches, plus webhook verification and
routing.
"""

from releasedash.core.github.client import GitHubClient
from releasedash.core.github.models import (
    ChangeEntry,
    ChangeReportDoc,
    ManifestDoc,
    RepoInfo,
    WorkflowRun,
)

__all__ = [
    "ChangeEntry",
    "ChangeReportDoc",
    "GitHubClient",
    "ManifestDoc",
    "RepoInfo",
    "WorkflowRun",
]
