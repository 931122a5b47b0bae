"""Per-name serialization of container operations."""

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict


class NameLocks:
    """Table of asyncio locks keyed by logical container name.

    Operations on the same name run one at a time, distinct names never
    contend. Entries are dropped once nobody holds or waits on them.
    """

    def __init__(self):
        self._locks: Dict[str, asyncio.Lock] = {}
        self._users: Dict[str, int] = {}

    @asynccontextmanager
    async def hold(self, name: str) -> AsyncIterator[None]:
        lock = self._locks.get(name)
        if lock is None:
            lock = self._locks[name] = asyncio.Lock()
        self._users[name] = self._users.get(name, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._users[name] -= 1
            if not self._users[name]:
                del self._users[name]
                del self._locks[name]

    def locked(self, name: str) -> bool:
        """Whether an operation currently holds name."""
        lock = self._locks.get(name)
        return bool(lock and lock.locked())

    def __len__(self) -> int:
        return len(self._locks)
