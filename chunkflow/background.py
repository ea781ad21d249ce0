import asyncio
import logging
import time
from typing import List, Optional

from .errors import InvalidIdentifierError, StorageError
from .locks import SessionLocks
from .storage import ChunkStore

logger = logging.getLogger(__name__)


class StaleSessionReaper:
    """Deletes session storage that saw no chunk for longer than ``timeout`` seconds."""

    def __init__(self, store: ChunkStore, locks: SessionLocks, interval: float = 3600, timeout: float = 3600):
        self.store = store
        self.locks = locks
        self.interval = interval
        self.timeout = timeout
        self._task: Optional[asyncio.Task] = None

    async def reap(self, now: Optional[float] = None) -> List[str]:
        now = time.time() if now is None else now
        reaped = []
        for identifier in await self.store.list_sessions():
            try:
                last_activity = self.store.last_activity(identifier)
            except InvalidIdentifierError:
                logger.warning(f"Skipping unexpected entry {identifier!r} in the upload directory")
                continue
            if last_activity is None or now - last_activity <= self.timeout:
                continue

            async with self.locks.try_hold(identifier) as held:
                if not held:
                    logger.info(f"Session {identifier} is busy, skipping it this round")
                    continue
                try:
                    await self.store.remove_session(identifier)
                except StorageError as e:
                    logger.error(f"Failed to reap session {identifier}: {e}")
                    continue
            logger.info(f"Reaped stale session {identifier}")
            reaped.append(identifier)
        return reaped

    async def run_forever(self):
        while True:
            await asyncio.sleep(self.interval)
            try:
                await self.reap()
            except OSError:
                logger.exception("Stale session sweep failed")

    def start(self) -> asyncio.Task:
        if self._task is None or self._task.done():
            self._task = asyncio.get_running_loop().create_task(self.run_forever())
        return self._task

    async def stop(self):
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
