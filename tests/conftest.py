"""
Pytest configuration and shared fixtures.

Provides a temporary release store, an in-memory GitHub stand-in with canned
release data, and helpers for building releases relative to a reference time.
"""

from datetime import datetime, timedelta, timezone
from typing import Any

import pytest

from releasedash.core.config import clear_cache
from releasedash.core.dashboard.db.gateway import SqliteReleaseStore
from releasedash.core.exceptions import GitHubClientError
from releasedash.core.github.models import ChangeEntry, ChangeReportDoc, ManifestDoc, WorkflowRun
from releasedash.core.releases.models import CheckRun, ReleaseDraft

# Fixed reference time used by tests that pass ``now`` explicitly
NOW = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)


# ==============================================================================
# GitHub stand-in
# ==============================================================================


class FakeHost:
    """
    In-memory SourceHost with one release branch worth of data.

    Individual operations can be made to fail by putting an exception into
    ``failures`` under the operation name.
    """

    def __init__(self) -> None:
        self.branches: set[str] = set()
        self.manifest = ManifestDoc(
            name="M134",
            libraries=[":firebase-common", ":firebase-common:ktx", ":firebase-firestore"],
        )
        self.report = ChangeReportDoc(
            changes_by_library_name={
                ":firebase-common": [
                    ChangeEntry(
                        commit_id="c1",
                        commit_link="https://github.com/firebase/firebase-android-sdk/commit/c1",
                        pr_id="101",
                        pr_link="https://github.com/firebase/firebase-android-sdk/pull/101",
                        author="alice",
                        message="Fix startup crash (#101)\n\nDetails here.",
                    )
                ],
                ":firebase-common:ktx": [
                    ChangeEntry(commit_id="c2", author="bob", message="Add ktx helper (#102)")
                ],
                ":firebase-database": [],
            }
        )
        self.workflow = WorkflowRun(
            id="9001",
            name="Build Release Artifacts",
            status="completed",
            conclusion="success",
            html_url="https://github.com/firebase/firebase-android-sdk/actions/runs/9001",
        )
        self.check_runs = [
            CheckRun(id=1, name="lint", head_sha="abc123", status="completed", conclusion="success"),
            CheckRun(id=2, name="unit-tests", head_sha="abc123", status="in_progress"),
        ]
        self.versions = {
            "firebase-common": "21.0.1",
            "firebase-firestore": "25.1.0",
            "firebase-database": "21.0.0",
        }
        self.failures: dict[str, Exception] = {}
        self.calls: list[str] = []

    def _call(self, operation: str) -> None:
        self.calls.append(operation)
        if operation in self.failures:
            raise self.failures[operation]

    async def branch_exists(self, branch_name: str) -> bool:
        self._call("branch_exists")
        return branch_name in self.branches

    async def fetch_manifest(self, branch_ref: str) -> ManifestDoc:
        self._call("fetch_manifest")
        return self.manifest

    async def fetch_change_report(self, branch_ref: str) -> ChangeReportDoc:
        self._call("fetch_change_report")
        return self.report

    async def fetch_build_workflow(self, branch_name: str) -> WorkflowRun:
        self._call("fetch_build_workflow")
        return self.workflow

    async def list_check_runs(self, branch_ref: str) -> list[CheckRun]:
        self._call("list_check_runs")
        return list(self.check_runs)

    async def fetch_version_descriptor(self, branch_ref: str, library_path: str) -> str:
        self._call("fetch_version_descriptor")
        if library_path not in self.versions:
            raise GitHubClientError(f"GitHub API error 404 for {library_path}", status_code=404)
        return f"# generated\nversion={self.versions[library_path]}\nlatestReleasedVersion=0.0.1\n"


# ==============================================================================
# Fixtures
# ==============================================================================


@pytest.fixture(autouse=True)
def _fresh_config_cache():
    """Never leak a cached config between tests."""
    clear_cache()
    yield
    clear_cache()


@pytest.fixture
def db_path(tmp_path):
    return tmp_path / "releases.db"


@pytest.fixture
def store(db_path):
    """Provide an empty SQLite release store."""
    release_store = SqliteReleaseStore(db_path)
    release_store.ensure_schema()
    return release_store


@pytest.fixture
def host():
    """Provide a FakeHost with the M134 release branch present."""
    fake = FakeHost()
    fake.branches.add("releases/M134.release")
    return fake


def _make_draft(
    name: str = "M134",
    *,
    now: datetime = NOW,
    code_freeze_in: timedelta = timedelta(days=-1),
    release_in: timedelta = timedelta(days=6),
    operator: str = "octocat",
) -> ReleaseDraft:
    """Build a draft whose dates are offsets from ``now``."""
    return ReleaseDraft(
        release_name=name,
        release_operator=operator,
        code_freeze_date=now + code_freeze_in,
        release_date=now + release_in,
    )


def _release_payload(
    name: str,
    *,
    now: datetime,
    code_freeze_in: timedelta,
    release_in: timedelta,
    operator: str = "octocat",
) -> dict[str, Any]:
    """Build a camelCase release payload as the API receives it."""
    return {
        "releaseName": name,
        "releaseOperator": operator,
        "codeFreezeDate": (now + code_freeze_in).isoformat(),
        "releaseDate": (now + release_in).isoformat(),
    }


@pytest.fixture
def now():
    """Fixed reference time."""
    return NOW


@pytest.fixture
def make_draft():
    return _make_draft


@pytest.fixture
def release_payload():
    return _release_payload
