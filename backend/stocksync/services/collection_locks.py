"""Collection Locks — single-writer critical sections keyed by collection set.

Invariants:
    - One asyncio.Lock per collection name, created on first use
    - hold() acquires in canonical (sorted) order and releases in reverse:
      overlapping lock sets can never deadlock
    - asyncio.Lock wakes waiters FIFO: a mutation issued while a sync holds a
      collection queues behind the sync's persist step
    - Locks are not re-entrant: a holder must not call hold() on the same name

Design Decisions:
    - Lock table over one global lock: item-only reads and spot edits do not
      wait on unrelated project writes
"""

import asyncio
import logging
from collections.abc import AsyncIterator
from contextlib import AsyncExitStack, asynccontextmanager

logger = logging.getLogger(__name__)


class CollectionLocks:
    """Per-collection lock table shared by every service of one engine."""

    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}

    def _lock_for(self, name: str) -> asyncio.Lock:
        lock = self._locks.get(name)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[name] = lock
        return lock

    def is_held(self, name: str) -> bool:
        lock = self._locks.get(name)
        return lock is not None and lock.locked()

    @asynccontextmanager
    async def hold(self, *names: str) -> AsyncIterator[None]:
        """Hold every named collection for the duration of the block."""
        ordered = sorted(set(names))
        async with AsyncExitStack() as stack:
            for name in ordered:
                await stack.enter_async_context(self._lock_for(name))
            logger.debug(f"Holding collections {ordered}")
            yield
