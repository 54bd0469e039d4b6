"""
Trade Engine - Per-User Locks.

Serializes read-evaluate-write sequences for one user while
letting different users proceed in parallel. Locks are created
on demand and discarded once no task holds or awaits them.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict


logger = logging.getLogger(__name__)


class KeyedLockRegistry:
    """Registry of asyncio locks keyed by string."""

    def __init__(self):
        self._locks: Dict[str, asyncio.Lock] = {}
        self._refcounts: Dict[str, int] = {}

    @asynccontextmanager
    async def hold(self, key: str) -> AsyncIterator[None]:
        """Hold the lock for key for the duration of the block."""
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        self._refcounts[key] = self._refcounts.get(key, 0) + 1

        try:
            async with lock:
                yield
        finally:
            self._refcounts[key] -= 1
            if self._refcounts[key] == 0:
                del self._refcounts[key]
                del self._locks[key]

    def is_locked(self, key: str) -> bool:
        lock = self._locks.get(key)
        return lock is not None and lock.locked()

    def __len__(self) -> int:
        return len(self._locks)
