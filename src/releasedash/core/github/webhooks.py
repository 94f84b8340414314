"""
GitHub webhook handling.

Deliveries are authenticated with the shared webhook secret (HMAC-SHA256 over
the raw request body). Pull request activity on a tracked release branch
triggers a sync of that release. Failures of any kind are logged and never
surface to GitHub; sync failures are already recorded on the release.
"""

from __future__ import annotations

import hashlib
import hmac
import logging
from typing import Any

from pydantic import BaseModel

from releasedash.core.dashboard.db.gateway import ReleaseStore
from releasedash.core.dashboard.sync.orchestrator import SyncOrchestrator

logger = logging.getLogger(__name__)

SIGNATURE_HEADER = "X-Hub-Signature-256"
EVENT_HEADER = "X-GitHub-Event"

# Pull request actions that mean the branch head may have new release data
SYNC_ACTIONS = frozenset({"opened", "synchronize"})


def compute_signature(raw_body: bytes, secret: str) -> str:
    """Signature header value GitHub sends for ``raw_body``."""
    digest = hmac.new(secret.encode(), raw_body, hashlib.sha256).hexdigest()
    return f"sha256={digest}"


def verify_signature(raw_body: bytes, secret: str, header: str | None) -> bool:
    """
    Check a delivery's X-Hub-Signature-256 header.

    Args:
        raw_body: Request body exactly as received
        secret: Shared webhook secret
        header: Value of the signature header (None if absent)

    Returns:
        True if the signature matches
    """
    if not header or not secret:
        return False
    return hmac.compare_digest(compute_signature(raw_body, secret), header)


class WebhookOutcome(BaseModel):
    """What the handler did with a delivery."""

    triggered: bool = False
    release_id: str | None = None
    reason: str = ""


class WebhookHandler:
    """
    Routes verified webhook events to release syncs.

    Example:
        >>> handler = WebhookHandler(store, orchestrator)
        >>> outcome = await handler.handle("pull_request", payload)
        >>> outcome.triggered
        True
    """

    def __init__(self, store: ReleaseStore, orchestrator: SyncOrchestrator) -> None:
        self.store = store
        self.orchestrator = orchestrator

    async def handle(self, event_type: str | None, payload: dict[str, Any]) -> WebhookOutcome:
        """
        Handle one webhook delivery.

        Only pull_request events are acted on; everything else is ignored.
        """
        logger.debug(f"Received GitHub webhook event {event_type}")
        if event_type == "pull_request":
            return await self._handle_pull_request(payload)
        return WebhookOutcome(reason=f"ignored event {event_type}")

    async def _handle_pull_request(self, payload: dict[str, Any]) -> WebhookOutcome:
        action = payload.get("action")
        if action not in SYNC_ACTIONS:
            return WebhookOutcome(reason=f"ignored pull_request action {action}")

        pull_request = payload.get("pull_request") or {}
        branch_name = (pull_request.get("head") or {}).get("ref")
        if not branch_name:
            return WebhookOutcome(reason="pull_request without head ref")

        try:
            release_id = await self.store.get_release_id_by_branch(branch_name)
        except Exception:
            logger.exception("Failed to look up release for branch %s", branch_name)
            return WebhookOutcome(reason="release lookup failed")

        if release_id is None:
            logger.info(f"Pull request {action} on untracked branch {branch_name}")
            return WebhookOutcome(reason=f"untracked branch {branch_name}")

        logger.info(f"Pull request {action} on {branch_name}, syncing release {release_id}")
        try:
            await self.orchestrator.sync(release_id)
        except Exception:
            logger.exception("Webhook-triggered sync of release %s failed", release_id)
            return WebhookOutcome(triggered=True, release_id=release_id, reason="sync failed")

        return WebhookOutcome(triggered=True, release_id=release_id, reason="synced")
