"""
Per-key locking for ledger writes.

Storage writes are single-document, so the read-modify-write done by a
ledger (e.g. recomputing average cost) must not interleave with another
writer on the same document. Each (owner_id, kind, id) key gets its own
asyncio.Lock; different keys never contend.

A key's lock only lives while some coroutine holds or waits for it, so
transaction ids and sale tokens do not pile up in a long-running process.

Locks are not re-entrant. A coroutine holding a key must not call
into code that takes the same key.
"""

import asyncio
from contextlib import AsyncExitStack, asynccontextmanager
from typing import AsyncIterator, Hashable


LockKey = tuple[str, str, Hashable]


class KeyedLocks:
    """Lazily created asyncio locks, one per key in use."""

    def __init__(self):
        self._locks: dict[LockKey, asyncio.Lock] = {}
        self._users: dict[LockKey, int] = {}

    @asynccontextmanager
    async def _hold_one(self, key: LockKey) -> AsyncIterator[None]:
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        self._users[key] = self._users.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._users[key] -= 1
            if self._users[key] == 0:
                del self._users[key]
                del self._locks[key]

    @asynccontextmanager
    async def hold(self, *keys: LockKey) -> AsyncIterator[None]:
        """
        Acquire every key, in sorted order so two callers asking for
        overlapping sets cannot deadlock.
        """
        ordered = sorted({key for key in keys}, key=lambda k: tuple(str(part) for part in k))
        async with AsyncExitStack() as stack:
            for key in ordered:
                await stack.enter_async_context(self._hold_one(key))
            yield

    def is_locked(self, key: LockKey) -> bool:
        lock = self._locks.get(key)
        return lock is not None and lock.locked()

    def __len__(self) -> int:
        return len(self._locks)
