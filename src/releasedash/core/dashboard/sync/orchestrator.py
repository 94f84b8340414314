"""
Sync orchestrator for a single release.

Mirrors a release's facts from GitHub into the release store.

Sync Flow:
1. Take the per-release lock and load the release
2. Classify its lifecycle state from the dates and completion flag
3. Far ahead of code freeze, write the state and stop
4. Look up the release branch; a missing branch before code freeze is expected
5. Fetch the manifest, change report and build workflow concurrently
6. Reconcile library metadata (including versions) and list check runs
7. Persist libraries, then changes and check runs, then the release itself

Failure Handling:
- Any exception after the release is loaded records exactly one release
  error, moves the release to ERROR and propagates
- A later successful sync overwrites ERROR with the derived state
- Writes are ordered but not transactional across collections; re-running
  the sync repairs a partial write

Usage:
    from releasedash.core.dashboard.sync import SyncOrchestrator

    orchestrator = SyncOrchestrator(store, github_client)
    result = await orchestrator.sync(release_id)
    print(f"{result.release_id}: {result.state.value}")
"""

from __future__ import annotations

import logging
import time
import traceback
from datetime import datetime
from typing import Protocol

from releasedash.core.dashboard.db.gateway import ReleaseStore
from releasedash.core.dashboard.sync.concurrency import ReleaseLocks, gather_or_cancel
from releasedash.core.dashboard.sync.reconciler import (
    DEFAULT_COMPANION_SUFFIX,
    MetadataReconciler,
)
from releasedash.core.exceptions import BranchMissingError
from releasedash.core.github.models import ChangeReportDoc, ManifestDoc, WorkflowRun
from releasedash.core.releases.models import (
    CheckRun,
    Release,
    ReleasePatch,
    ReleaseState,
    SyncResult,
)
from releasedash.core.releases.state import classify_release_state

logger = logging.getLogger(__name__)


class SourceHost(Protocol):
    """The read-only GitHub operations a sync depends on."""

    async def branch_exists(self, branch_name: str) -> bool: ...

    async def fetch_manifest(self, branch_ref: str) -> ManifestDoc: ...

    async def fetch_change_report(self, branch_ref: str) -> ChangeReportDoc: ...

    async def fetch_build_workflow(self, branch_name: str) -> WorkflowRun: ...

    async def list_check_runs(self, branch_ref: str) -> list[CheckRun]: ...

    async def fetch_version_descriptor(self, branch_ref: str, library_path: str) -> str: ...


class SyncOrchestrator:
    """
    Runs the sync state machine for one release at a time.

    Example:
        >>> orchestrator = SyncOrchestrator(store, client)
        >>> result = await orchestrator.sync("a1b2")
        >>> result.fetched
        True
    """

    def __init__(
        self,
        store: ReleaseStore,
        host: SourceHost,
        *,
        companion_suffix: str = DEFAULT_COMPANION_SUFFIX,
        locks: ReleaseLocks | None = None,
    ) -> None:
        """
        Initialize the SyncOrchestrator.

        Args:
            store: Release store to read from and write to
            host: GitHub client (or any SourceHost)
            companion_suffix: Suffix of companion libraries folded into their root
            locks: Shared lock registry; share one per process so concurrent
                triggers for the same release queue up
        """
        self.store = store
        self.host = host
        self.reconciler = MetadataReconciler(host, companion_suffix)
        self.locks = locks or ReleaseLocks()

    async def sync(self, release_id: str, *, now: datetime | None = None) -> SyncResult:
        """
        Sync one release from GitHub.

        Args:
            release_id: Release to sync
            now: Reference time for classification (defaults to current UTC time)

        Returns:
            SyncResult describing what was written

        Raises:
            ReleaseNotFoundError: If the release does not exist (nothing is recorded)
            ReleaseDashError: Any failure after loading, after it has been
                recorded and the release moved to ERROR
        """
        async with self.locks.hold(release_id):
            release = await self.store.get_release(release_id)
            return await self._sync_loaded(release, now)

    async def _sync_loaded(self, release: Release, now: datetime | None) -> SyncResult:
        start_time = time.time()
        phase = "classifying release state"
        logger.info(f"Starting sync of release {release.release_name} ({release.id})")

        try:
            classification = classify_release_state(
                release.code_freeze_date,
                release.release_date,
                release.is_complete,
                now,
            )
            state = classification.state
            logger.info(
                f"Release {release.release_name} is {state.value} "
                f"(code freeze in {classification.days_until_code_freeze}d, "
                f"release in {classification.days_until_release}d)"
            )

            if not classification.needs_host_data:
                phase = "updating release state"
                await self.store.update_release(release.id, ReleasePatch(state=state))
                return self._result(release, state, start_time)

            phase = "checking release branch"
            branch = release.release_branch_name
            if not await self.host.branch_exists(branch):
                if not classification.branch_required:
                    logger.info(f"Release branch {branch} not cut yet, nothing to fetch")
                    phase = "updating release state"
                    await self.store.update_release(release.id, ReleasePatch(state=state))
                    return self._result(release, state, start_time)
                raise BranchMissingError(branch)

            phase = "fetching release data from GitHub"
            manifest, report, workflow = await gather_or_cancel(
                self.host.fetch_manifest(branch),
                self.host.fetch_change_report(branch),
                self.host.fetch_build_workflow(branch),
            )

            phase = "reconciling library metadata"
            reconciled = await self.reconciler.reconcile(branch, manifest, report)
            logger.info(f"Reconciled {len(reconciled.libraries)} libraries")

            phase = "listing check runs"
            check_runs = await self.host.list_check_runs(branch)

            phase = "writing libraries"
            libraries = await self.store.replace_libraries(release.id, reconciled.libraries)

            phase = "writing changes and check runs"
            changes_written, check_runs_written = await gather_or_cancel(
                self.store.replace_changes(release.id, reconciled.changes_by_library),
                self.store.replace_check_runs(release.id, check_runs),
            )

            phase = "updating release state"
            await self.store.update_release(
                release.id,
                ReleasePatch(state=state, build_artifact=workflow.to_build_artifact()),
            )
        except Exception as e:
            await self._record_failure(release, phase, e)
            raise

        result = self._result(
            release,
            state,
            start_time,
            fetched=True,
            libraries_written=len(libraries),
            changes_written=changes_written,
            check_runs_written=check_runs_written,
        )
        logger.info(
            f"Synced release {release.release_name}: {result.libraries_written} libraries, "
            f"{result.changes_written} changes, {result.check_runs_written} check runs "
            f"in {result.duration_seconds:.2f}s"
        )
        return result

    async def _record_failure(self, release: Release, phase: str, error: Exception) -> None:
        """Record one release error and move the release to ERROR."""
        logger.error(f"Sync of release {release.id} failed while {phase}: {error}")
        stack_trace = "".join(traceback.format_exception(type(error), error, error.__traceback__))
        await self.store.record_error(
            release.id,
            message=str(error) or type(error).__name__,
            stack_trace=stack_trace,
            context_msg=f"Error while {phase} for release {release.release_name}",
        )
        await self.store.update_release(release.id, ReleasePatch(state=ReleaseState.ERROR))

    @staticmethod
    def _result(
        release: Release,
        state: ReleaseState,
        start_time: float,
        **counts: int | bool,
    ) -> SyncResult:
        return SyncResult(
            release_id=release.id,
            state=state,
            duration_seconds=time.time() - start_time,
            **counts,
        )
