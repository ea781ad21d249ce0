import asyncio
import logging
import os
import shutil
import tempfile
from pathlib import Path
from typing import Optional

import aiofiles

from .errors import ConfigurationError, ProbeFailure

logger = logging.getLogger(__name__)

# Hidden names are never valid session identifiers
TEST_DIRECTORY = ".probe-5d58061677944334bb616ba19cec5cc4"
TEST_PART = "42"
TEST_FILENAME = "probe"
TEST_CONTENT = (
    "For instance, on the planet Earth, man had always assumed that he was more "
    "intelligent than dolphins because he had achieved so much, the wheel, New York, "
    "wars and so on, whilst all the dolphins had ever done was muck about in the water "
    "having a good time."
).encode("utf-8")


class DirectoryProbe:
    """Checks once that the upload root supports create/write/read/delete.

    The first outcome is cached; later calls never touch the filesystem.
    """

    def __init__(self, root):
        self.root = Path(root)
        self.computed = False
        self.failure: Optional[ProbeFailure] = None
        self._lock = asyncio.Lock()

    async def check(self) -> None:
        if not self.computed:
            async with self._lock:
                if not self.computed:
                    self.failure = await self._run()
                    self.computed = True
        if self.failure is not None:
            raise ConfigurationError(self.failure)

    async def _run(self) -> Optional[ProbeFailure]:
        if not self.root.is_dir():
            logger.error(f"Upload directory {self.root} does not exist")
            return ProbeFailure.NO_ROOT_DIRECTORY

        test_root = self.root / TEST_DIRECTORY
        test_dir = test_root / TEST_PART
        try:
            test_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            logger.error(f"Probe could not create {test_dir}: {e}")
            return ProbeFailure.CANNOT_CREATE

        test_file = test_dir / TEST_FILENAME
        try:
            async with aiofiles.open(test_file, "wb") as f:
                await f.write(TEST_CONTENT)
        except OSError as e:
            logger.error(f"Probe could not write {test_file}: {e}")
            return ProbeFailure.CANNOT_WRITE

        try:
            async with aiofiles.open(test_file, "rb") as f:
                data = await f.read()
        except OSError as e:
            logger.error(f"Probe could not read {test_file}: {e}")
            return ProbeFailure.CANNOT_READ
        if data != TEST_CONTENT:
            logger.error(f"Probe read back unexpected data from {test_file}")
            return ProbeFailure.CANNOT_READ

        try:
            await asyncio.to_thread(shutil.rmtree, test_root)
        except OSError as e:
            logger.error(f"Probe could not delete {test_root}: {e}")
            return ProbeFailure.CANNOT_DELETE

        if os.path.realpath(self.root) == os.path.realpath(tempfile.gettempdir()):
            logger.warning(
                "Uploads are stored directly in the system temp directory, "
                "consider a dedicated subdirectory"
            )
        logger.info(f"Upload directory {self.root} passed the capability probe")
        return None
