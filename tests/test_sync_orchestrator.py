"""
Tests for SyncOrchestrator.

Tests validate:
- State-only syncs far ahead of code freeze
- Full syncs writing libraries, changes, check runs and the build artifact
- Idempotence of repeated syncs
- Failure recording and recovery
"""

import asyncio
from datetime import timedelta

import pytest

from releasedash.core.dashboard.sync import SyncOrchestrator
from releasedash.core.exceptions import (
    BranchMissingError,
    IndeterminateStateError,
    MalformedManifestError,
    ReleaseNotFoundError,
)
from releasedash.core.releases.models import ReleaseState


@pytest.fixture
def orchestrator(store, host):
    return SyncOrchestrator(store, host)


class TestStateOnlySync:
    """Syncs that never need release branch data."""

    @pytest.mark.asyncio
    async def test_far_from_code_freeze(self, store, host, orchestrator, make_draft, now) -> None:
        draft = make_draft(code_freeze_in=timedelta(days=10), release_in=timedelta(days=17))
        [release] = await store.create_releases([draft])

        result = await orchestrator.sync(release.id, now=now)

        assert result.state == ReleaseState.SCHEDULED
        assert not result.fetched
        assert host.calls == []
        assert (await store.get_release(release.id)).state == ReleaseState.SCHEDULED

    @pytest.mark.asyncio
    async def test_branch_not_cut_yet(self, store, host, orchestrator, make_draft, now) -> None:
        host.branches.clear()
        draft = make_draft(code_freeze_in=timedelta(days=1), release_in=timedelta(days=8))
        [release] = await store.create_releases([draft])

        result = await orchestrator.sync(release.id, now=now)

        assert result.state == ReleaseState.SCHEDULED
        assert host.calls == ["branch_exists"]
        assert await store.list_release_errors(release.id) == []

    @pytest.mark.asyncio
    async def test_unknown_release_records_nothing(self, store, orchestrator) -> None:
        with pytest.raises(ReleaseNotFoundError):
            await orchestrator.sync("nope")


class TestFullSync:
    """Syncs that mirror release branch data."""

    @pytest.mark.asyncio
    async def test_writes_everything(self, store, orchestrator, make_draft, now) -> None:
        [release] = await store.create_releases([make_draft("M134")])

        result = await orchestrator.sync(release.id, now=now)

        assert result.fetched
        assert result.state == ReleaseState.CODE_FREEZE
        assert result.libraries_written == 3
        assert result.changes_written == 2
        assert result.check_runs_written == 2

        stored = await store.get_release(release.id)
        assert stored.state == ReleaseState.CODE_FREEZE
        assert stored.build_artifact.job_id == "9001"
        assert stored.build_artifact.conclusion == "success"

        libraries = {lib.library_name: lib for lib in await store.list_libraries(release.id)}
        assert set(libraries) == {"firebase-common", "firebase-firestore", "firebase-database"}
        assert libraries["firebase-common"].updated_version == "21.0.1"
        assert libraries["firebase-firestore"].opted_in
        assert libraries["firebase-database"].opted_out
        assert libraries["firebase-database"].library_group_release

        changes = {c.commit_id: c for c in await store.list_changes(release.id)}
        assert set(changes) == {"c1", "c2"}
        # The ktx change is folded into its root library
        assert changes["c2"].library_id == libraries["firebase-common"].id
        assert changes["c1"].commit_title == "Fix startup crash"
        assert changes["c1"].pull_request_id == "101"

        assert [run.name for run in await store.list_check_runs(release.id)] == ["lint", "unit-tests"]

    @pytest.mark.asyncio
    async def test_repeated_sync_is_idempotent(self, store, orchestrator, make_draft, now) -> None:
        [release] = await store.create_releases([make_draft("M134")])

        await orchestrator.sync(release.id, now=now)
        first = await store.get_releases_denormalized()
        await orchestrator.sync(release.id, now=now)
        second = await store.get_releases_denormalized()

        assert first == second

    @pytest.mark.asyncio
    async def test_version_bump_replaces_library(self, store, host, orchestrator, make_draft, now) -> None:
        [release] = await store.create_releases([make_draft("M134")])
        await orchestrator.sync(release.id, now=now)

        host.versions["firebase-common"] = "21.0.2"
        await orchestrator.sync(release.id, now=now)

        libraries = await store.list_libraries(release.id)
        assert len(libraries) == 3
        common = next(lib for lib in libraries if lib.library_name == "firebase-common")
        assert common.updated_version == "21.0.2"
        changes = await store.list_changes(release.id)
        assert {c.library_id for c in changes} == {common.id}

    @pytest.mark.asyncio
    async def test_overdue_release_is_delayed(self, store, orchestrator, make_draft, now) -> None:
        [release] = await store.create_releases(
            [make_draft("M134", code_freeze_in=timedelta(days=-10), release_in=timedelta(days=-2))]
        )
        result = await orchestrator.sync(release.id, now=now)
        assert result.state == ReleaseState.DELAYED

    @pytest.mark.asyncio
    async def test_concurrent_syncs_of_one_release(self, store, orchestrator, make_draft, now) -> None:
        [release] = await store.create_releases([make_draft("M134")])

        results = await asyncio.gather(
            orchestrator.sync(release.id, now=now),
            orchestrator.sync(release.id, now=now),
        )

        assert all(r.state == ReleaseState.CODE_FREEZE for r in results)
        assert len(await store.list_libraries(release.id)) == 3
        assert len(await store.list_changes(release.id)) == 2


class TestSyncFailures:
    """Failure recording and recovery."""

    @pytest.mark.asyncio
    async def test_manifest_failure_records_one_error(
        self, store, host, orchestrator, make_draft, now
    ) -> None:
        [release] = await store.create_releases([make_draft("M134")])
        host.failures["fetch_manifest"] = MalformedManifestError("Malformed release manifest")

        with pytest.raises(MalformedManifestError):
            await orchestrator.sync(release.id, now=now)

        assert (await store.get_release(release.id)).state == ReleaseState.ERROR
        [error] = await store.list_release_errors(release.id)
        assert error.message == "Malformed release manifest"
        assert "fetching release data" in error.context_msg
        assert "M134" in error.context_msg
        assert "MalformedManifestError" in error.stack_trace
        assert await store.list_libraries(release.id) == []

    @pytest.mark.asyncio
    async def test_missing_branch_after_code_freeze(
        self, store, host, orchestrator, make_draft, now
    ) -> None:
        host.branches.clear()
        [release] = await store.create_releases([make_draft("M134")])

        with pytest.raises(BranchMissingError):
            await orchestrator.sync(release.id, now=now)

        assert (await store.get_release(release.id)).state == ReleaseState.ERROR
        assert len(await store.list_release_errors(release.id)) == 1

    @pytest.mark.asyncio
    async def test_successful_sync_clears_error_state(
        self, store, host, orchestrator, make_draft, now
    ) -> None:
        [release] = await store.create_releases([make_draft("M134")])
        host.failures["list_check_runs"] = MalformedManifestError("boom")
        with pytest.raises(MalformedManifestError):
            await orchestrator.sync(release.id, now=now)

        del host.failures["list_check_runs"]
        result = await orchestrator.sync(release.id, now=now)

        assert result.state == ReleaseState.CODE_FREEZE
        assert (await store.get_release(release.id)).state == ReleaseState.CODE_FREEZE
        # Errors are history and are kept
        assert len(await store.list_release_errors(release.id)) == 1

    @pytest.mark.asyncio
    async def test_indeterminate_dates_are_recorded(self, store, orchestrator, make_draft, now) -> None:
        [release] = await store.create_releases(
            [make_draft("M134", code_freeze_in=timedelta(0), release_in=timedelta(0))]
        )

        with pytest.raises(IndeterminateStateError):
            await orchestrator.sync(release.id, now=now)

        assert (await store.get_release(release.id)).state == ReleaseState.ERROR
        [error] = await store.list_release_errors(release.id)
        assert "classifying release state" in error.context_msg
