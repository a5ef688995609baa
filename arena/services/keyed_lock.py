"""
Per-key asyncio locks.

One lock per battle id, tournament id or user id gives single-writer
discipline per entity without serializing unrelated work.
"""

import asyncio
from collections import defaultdict
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict, Iterable


class KeyedLock:
    """Hands out one ``asyncio.Lock`` per key."""

    def __init__(self):
        self._locks: Dict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

    def lock_for(self, key: str) -> asyncio.Lock:
        return self._locks[key]

    @asynccontextmanager
    async def hold(self, key: str) -> AsyncIterator[None]:
        async with self._locks[key]:
            yield

    @asynccontextmanager
    async def hold_many(self, keys: Iterable[str]) -> AsyncIterator[None]:
        """Acquire several keys in sorted order so two callers never deadlock"""
        ordered = sorted(set(keys))
        acquired = []
        try:
            for key in ordered:
                await self._locks[key].acquire()
                acquired.append(key)
            yield
        finally:
            for key in reversed(acquired):
                self._locks[key].release()

    def is_locked(self, key: str) -> bool:
        return key in self._locks and self._locks[key].locked()

    def discard(self, key: str) -> None:
        """Forget an idle lock for a deleted entity"""
        lock = self._locks.get(key)
        if lock is not None and not lock.locked():
            del self._locks[key]
