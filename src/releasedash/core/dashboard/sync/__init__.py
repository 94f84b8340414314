"""
Sync layer: mirrors release facts from GitHub into the release store.

Main components:
- orchestrator.py: SyncOrchestrator, the per-release sync state machine
- reconciler.py: Manifest and change report reconciliation
- concurrency.py: Per-release locks and cancel-on-failure fan-out
"""

from releasedash.core.dashboard.sync.concurrency import ReleaseLocks, gather_or_cancel
from releasedash.core.dashboard.sync.orchestrator import SourceHost, SyncOrchestrator
from releasedash.core.dashboard.sync.reconciler import (
    MetadataReconciler,
    ReconciledRelease,
    derive_library_flags,
    fold_companions,
)

__all__ = [
    "MetadataReconciler",
    "ReconciledRelease",
    "ReleaseLocks",
    "SourceHost",
    "SyncOrchestrator",
    "derive_library_flags",
    "fold_companions",
    "gather_or_cancel",
]
