"""Per-key asyncio locks.

Operations on the same (project, branch) pair are serialized while
different pairs proceed in parallel. Locks are created lazily under a
meta-lock so two coroutines racing on a new key get the same lock.

Two independent registries are used at runtime: one serializes queue
mutations, the other serializes anything touching a checkout's working
directory (creation, removal, sync, conflict resolution). Code holding a
checkout lock may take a queue lock, never the reverse.
"""

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from worktree_orchestrator.models.domain import QueueKey


class KeyedLocks:
    """Registry of asyncio locks keyed by (project, branch)."""

    def __init__(self) -> None:
        self._locks: dict[QueueKey, asyncio.Lock] = {}
        # Meta-lock for lock creation
        self._locks_lock = asyncio.Lock()

    async def get(self, key: QueueKey) -> asyncio.Lock:
        """Get or create the lock for ``key``.

        Locks are never discarded; the number of keys is bounded by the
        number of checkouts the process has seen.
        """
        async with self._locks_lock:
            if key not in self._locks:
                self._locks[key] = asyncio.Lock()
            return self._locks[key]

    @asynccontextmanager
    async def hold(self, key: QueueKey) -> AsyncIterator[None]:
        """Hold the lock for ``key`` for the duration of the block."""
        lock = await self.get(key)
        async with lock:
            yield

    def locked(self, key: QueueKey) -> bool:
        """Check if ``key`` is currently held."""
        lock = self._locks.get(key)
        return lock is not None and lock.locked()
