"""
Concurrency helpers for the sync engine.

- gather_or_cancel: run awaitables concurrently; the first failure cancels
  the rest and propagates
- ReleaseLocks: per-release asyncio locks so two syncs of the same release
  never interleave within one process
"""

import asyncio
import logging
from collections.abc import AsyncIterator, Awaitable
from contextlib import asynccontextmanager
from typing import Any

logger = logging.getLogger(__name__)


async def _drain(tasks: set[asyncio.Future[Any]]) -> None:
    for task in tasks:
        task.cancel()
    # Results of cancelled siblings are discarded
    await asyncio.gather(*tasks, return_exceptions=True)


async def gather_or_cancel(*aws: Awaitable[Any]) -> list[Any]:
    """
    Await all of ``aws`` concurrently and return their results in order.

    Unlike ``asyncio.gather``, the first exception cancels every task that
    is still running before it is re-raised, so no fetch outlives a failed
    sync.

    Raises:
        Exception: The first exception raised by any awaitable
    """
    tasks = [asyncio.ensure_future(aw) for aw in aws]
    if not tasks:
        return []

    try:
        done, pending = await asyncio.wait(tasks, return_when=asyncio.FIRST_EXCEPTION)
    except asyncio.CancelledError:
        await _drain(set(tasks))
        raise

    for task in tasks:
        if task in done and not task.cancelled() and task.exception() is not None:
            if pending:
                logger.debug(f"Cancelling {len(pending)} sibling tasks after failure")
            await _drain(pending)
            raise task.exception()  # type: ignore[misc]

    return [task.result() for task in tasks]


class ReleaseLocks:
    """
    Registry of per-release locks.

    Example:
        >>> locks = ReleaseLocks()
        >>> async with locks.hold("a1b2"):
        ...     ...  # no other sync of release a1b2 runs here
    """

    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}

    def get(self, release_id: str) -> asyncio.Lock:
        """Return the lock for a release, creating it on first use."""
        lock = self._locks.get(release_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[release_id] = lock
        return lock

    def is_locked(self, release_id: str) -> bool:
        lock = self._locks.get(release_id)
        return lock is not None and lock.locked()

    @asynccontextmanager
    async def hold(self, release_id: str) -> AsyncIterator[None]:
        """Hold the lock for a release for the duration of the block."""
        lock = self.get(release_id)
        if lock.locked():
            logger.debug(f"Release {release_id} is already syncing, waiting")
        async with lock:
            yield

    def discard(self, release_id: str) -> None:
        """Forget the lock of a deleted release unless it is in use."""
        lock = self._locks.get(release_id)
        if lock is not None and not lock.locked():
            del self._locks[release_id]
