import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict


class SessionLocks:
    """Per-session exclusive sections shared by the write path and the reaper.

    A lock exists only while somebody holds or waits for it, so sessions that
    were assembled or reaped leave no entry behind.
    """

    def __init__(self):
        self._locks: Dict[str, asyncio.Lock] = {}
        self._users: Dict[str, int] = {}

    def __contains__(self, identifier: str) -> bool:
        return identifier in self._locks

    def __len__(self) -> int:
        return len(self._locks)

    @asynccontextmanager
    async def hold(self, identifier: str) -> AsyncIterator[None]:
        lock = self._locks.setdefault(identifier, asyncio.Lock())
        self._users[identifier] = self._users.get(identifier, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._users[identifier] -= 1
            if not self._users[identifier]:
                del self._users[identifier]
                del self._locks[identifier]

    @asynccontextmanager
    async def try_hold(self, identifier: str) -> AsyncIterator[bool]:
        """Yield True with the section held, or False at once if it is busy."""
        if identifier in self._locks:
            yield False
            return
        async with self.hold(identifier):
            yield True
