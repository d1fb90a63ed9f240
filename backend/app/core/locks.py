# app/core/locks.py
"""
Per-key asyncio locks.

Used to serialise read-modify-write sequences that belong to one identity
(quota counters, lifetime counters, session appends) while requests for
different identities keep running concurrently.
"""
import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict


class KeyedLock:
    """
    A registry of asyncio.Lock objects, one per key.

    Entries are reference counted and dropped once no coroutine holds or
    waits on them, so the registry does not grow with the number of identities.

    A task that already holds a key may enter `hold(key)` again; the nested
    block runs without re-acquiring. This lets a caller hold an identity's
    lock across a database transaction that calls other locked operations.
    """

    def __init__(self):
        self._locks: Dict[str, asyncio.Lock] = {}
        self._waiters: Dict[str, int] = {}
        self._owners: Dict[str, asyncio.Task] = {}

    @asynccontextmanager
    async def hold(self, key: str) -> AsyncIterator[None]:
        if self.held_by_current_task(key):
            yield
            return

        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        self._waiters[key] = self._waiters.get(key, 0) + 1
        try:
            async with lock:
                self._owners[key] = asyncio.current_task()
                try:
                    yield
                finally:
                    del self._owners[key]
        finally:
            self._waiters[key] -= 1
            if self._waiters[key] == 0:
                del self._waiters[key]
                del self._locks[key]

    def held_by_current_task(self, key: str) -> bool:
        task = asyncio.current_task()
        return task is not None and self._owners.get(key) is task

    def __len__(self) -> int:
        return len(self._locks)
