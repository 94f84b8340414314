"""
Release actions exposed to the API and the CLI.

ReleaseService validates requests, applies them through the release store
and triggers syncs through the orchestrator. Request validation always
happens before anything is written.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import Any

from releasedash.core.dashboard.db.gateway import ReleaseStore
from releasedash.core.dashboard.sync.orchestrator import SyncOrchestrator
from releasedash.core.exceptions import (
    ReleaseAlreadyExistsError,
    ReleaseNotFoundError,
    ReleaseValidationError,
)
from releasedash.core.releases.models import Release, ReleaseEdit, ReleaseView, SyncResult
from releasedash.core.releases.validation import to_draft, validate_new_releases

logger = logging.getLogger(__name__)


class ReleaseService:
    """
    Scheduling, refresh, modification and deletion of releases.

    Example:
        >>> service = ReleaseService(store, SyncOrchestrator(store, client))
        >>> created = await service.create_releases([{"releaseName": "M135", ...}])
    """

    def __init__(self, store: ReleaseStore, orchestrator: SyncOrchestrator) -> None:
        self.store = store
        self.orchestrator = orchestrator

    async def create_releases(
        self,
        raw_releases: list[dict[str, Any]] | None,
        *,
        now: datetime | None = None,
    ) -> list[Release]:
        """
        Schedule new releases and sync each of them once.

        The initial syncs run concurrently and are best effort: a failing
        sync is recorded on its release but does not fail the request.

        Args:
            raw_releases: Release payloads using camelCase keys
            now: Reference time for validation (defaults to current UTC time)

        Returns:
            The created releases, as stored after their initial sync

        Raises:
            ReleaseValidationError: If any release is invalid
            ReleaseAlreadyExistsError: If a release with the same name exists
        """
        existing = await self.store.list_releases()
        existing_names = {release.release_name for release in existing}
        for raw in raw_releases or []:
            name = raw.get("releaseName") if isinstance(raw, dict) else None
            if isinstance(name, str) and name in existing_names:
                raise ReleaseAlreadyExistsError(name)

        issues = validate_new_releases(raw_releases, existing, now)
        if issues:
            raise ReleaseValidationError(issues)

        drafts = [to_draft(raw) for raw in raw_releases or []]
        created = await self.store.create_releases(drafts)

        results = await asyncio.gather(
            *(self.orchestrator.sync(release.id) for release in created),
            return_exceptions=True,
        )
        for release, result in zip(created, results):
            if isinstance(result, BaseException):
                logger.warning(f"Initial sync of release {release.release_name} failed: {result}")

        return [await self.store.get_release(release.id) for release in created]

    async def refresh_release(self, release_id: str) -> SyncResult:
        """
        Re-sync a release on demand.

        Raises:
            ReleaseNotFoundError: If the release does not exist
            ReleaseDashError: If the sync fails (already recorded on the release)
        """
        if not await self.store.release_exists(release_id):
            raise ReleaseNotFoundError(release_id)
        return await self.orchestrator.sync(release_id)

    async def modify_release(self, release_id: str, edit: ReleaseEdit) -> Release:
        """
        Apply an operator's changes to a release, then re-sync it.

        State and build artifact are never taken from the edit; the re-sync
        derives them.

        Raises:
            ReleaseNotFoundError: If the release does not exist
            ReleaseValidationError: If the modified release is invalid
            ReleaseDashError: If the re-sync fails (already recorded on the release)
        """
        await self.store.update_release(release_id, edit.to_patch())
        await self.orchestrator.sync(release_id)
        return await self.store.get_release(release_id)

    async def delete_release(self, release_id: str) -> None:
        """
        Delete a release and everything that belongs to it.

        Raises:
            ReleaseNotFoundError: If the release does not exist
        """
        async with self.orchestrator.locks.hold(release_id):
            await self.store.delete_release_cascade(release_id)
        self.orchestrator.locks.discard(release_id)

    async def get_releases(self) -> list[ReleaseView]:
        """All releases with their libraries, changes, checks and latest error."""
        return await self.store.get_releases_denormalized()
