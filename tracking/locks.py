"""
Per-key asyncio locks.

Tracking toggles and location ingestion for the same shipment must not
interleave their read-decide-write sequences; work on different shipments
proceeds in parallel.
"""

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict


class KeyedLock:
    """
    A family of asyncio.Lock objects, one per key, created on demand.

    Locks are reference counted and dropped once no coroutine holds or
    waits on them, so the map does not grow with every shipment ever seen.

    Example:
        locks = KeyedLock()

        async with locks.acquire(shipment_id):
            ...
    """

    def __init__(self):
        self._locks: Dict[str, asyncio.Lock] = {}
        self._users: Dict[str, int] = {}

    @asynccontextmanager
    async def acquire(self, key: str) -> AsyncIterator[None]:
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

    def __len__(self) -> int:
        return len(self._locks)
