import asyncio
import logging
import os
import shutil
import uuid
from pathlib import Path
from typing import List, Optional, Set, Tuple

import aiofiles
import aiofiles.os

from .errors import SizeMismatchError, SizeOverflowError, StorageError
from .models import ChunkRecord, ChunkStatus, FlowChunk, UploadSession
from .utils import check_identifier, target_subdirectory

logger = logging.getLogger(__name__)

COPY_BUFFER = 1024 * 1024


class ChunkStore:
    """Chunk payloads on disk, laid out as <root>/<identifier>/<index>."""

    def __init__(self, root):
        self.root = Path(root)

    def session_dir(self, identifier: str) -> Path:
        return self.root / check_identifier(identifier)

    def chunk_path(self, identifier: str, index: int) -> Path:
        return self.session_dir(identifier) / str(index)

    async def store(self, identifier: str, index: int, payload: bytes) -> ChunkRecord:
        session_dir = self.session_dir(identifier)
        chunk_path = session_dir / str(index)
        partial = session_dir / f".{index}.{uuid.uuid4().hex}"
        try:
            await aiofiles.os.makedirs(session_dir, exist_ok=True)
            async with aiofiles.open(partial, "wb") as f:
                await f.write(payload)
            await aiofiles.os.replace(partial, chunk_path)
            await self.touch(identifier)
        except OSError as e:
            _discard(partial)
            raise StorageError(f"Can't write chunk {identifier}:{index}: {e}") from e
        return ChunkRecord(identifier=identifier, index=index, size=len(payload), path=str(chunk_path))

    async def exists(self, identifier: str, index: int) -> bool:
        return await aiofiles.os.path.isfile(self.chunk_path(identifier, index))

    async def size(self, identifier: str, index: int) -> Optional[int]:
        try:
            return await aiofiles.os.path.getsize(self.chunk_path(identifier, index))
        except FileNotFoundError:
            return None

    async def list_indices(self, identifier: str) -> Set[int]:
        try:
            names = await aiofiles.os.listdir(self.session_dir(identifier))
        except FileNotFoundError:
            return set()
        return {int(name) for name in names if name.isdigit()}

    async def touch(self, identifier: str) -> None:
        await asyncio.to_thread(os.utime, self.session_dir(identifier))

    def last_activity(self, identifier: str) -> Optional[float]:
        try:
            return self.session_dir(identifier).stat().st_mtime
        except FileNotFoundError:
            return None

    async def list_sessions(self) -> List[str]:
        try:
            entries = await aiofiles.os.scandir(self.root)
        except FileNotFoundError:
            return []
        with entries:
            return [entry.name for entry in entries if entry.is_dir(follow_symlinks=False)]

    async def remove_session(self, identifier: str) -> None:
        session_dir = self.session_dir(identifier)
        try:
            await asyncio.to_thread(shutil.rmtree, session_dir)
        except FileNotFoundError:
            pass
        except OSError as e:
            raise StorageError(f"Can't delete {session_dir}: {e}") from e


class CompletionDetector:
    def __init__(self, store: ChunkStore, final_chunk_tolerance: float = 2.0):
        self.store = store
        self.final_chunk_tolerance = final_chunk_tolerance

    def check_chunk_size(self, chunk: FlowChunk, length: int) -> None:
        if not chunk.is_final:
            if length != chunk.chunk_size:
                raise SizeMismatchError(
                    f"Chunk {chunk.identifier}:{chunk.chunk_number} has {length} bytes, expected {chunk.chunk_size}"
                )
        elif length > chunk.chunk_size * self.final_chunk_tolerance:
            raise SizeMismatchError(
                f"Final chunk {chunk.identifier}:{chunk.chunk_number} has {length} bytes, "
                f"more than {self.final_chunk_tolerance}x the chunk size {chunk.chunk_size}"
            )

    async def stored_size(self, identifier: str) -> int:
        total = 0
        for index in await self.store.list_indices(identifier):
            size = await self.store.size(identifier, index)
            total += size or 0
        return total

    async def is_complete(self, identifier: str, total_size: int, total_chunks: int) -> bool:
        """True once every index 1..total_chunks is stored and the sizes add up to total_size."""
        received = await self.stored_size(identifier)
        if received > total_size:
            raise SizeOverflowError(
                f"Session {identifier} holds {received} bytes but declared {total_size}"
            )
        if not set(range(1, total_chunks + 1)) <= await self.store.list_indices(identifier):
            return False
        return received == total_size


class Assembler:
    def __init__(self, store: ChunkStore, completed_dir):
        self.store = store
        self.completed_dir = Path(completed_dir)

    def final_path(self, session: UploadSession) -> Path:
        return self.completed_dir / target_subdirectory(session.relative_path) / session.filename

    async def assemble(self, session: UploadSession) -> str:
        """Concatenate chunks 1..total_chunks and publish the result atomically.

        Must be called with the session lock held. On failure nothing is
        published and the chunks are left for a retry.
        """
        identifier = session.identifier
        final_path = self.final_path(session)
        partial = final_path.with_name(f".{final_path.name}.{identifier}.{uuid.uuid4().hex}")
        try:
            await aiofiles.os.makedirs(final_path.parent, exist_ok=True)
            async with aiofiles.open(partial, "wb") as outfile:
                for index in range(1, session.total_chunks + 1):
                    chunk_path = self.store.chunk_path(identifier, index)
                    async with aiofiles.open(chunk_path, "rb") as infile:
                        while True:
                            data = await infile.read(COPY_BUFFER)
                            if not data:
                                break
                            await outfile.write(data)
            await aiofiles.os.replace(partial, final_path)
        except OSError as e:
            _discard(partial)
            logger.error(f"Failed to assemble session {identifier}: {e}")
            raise StorageError(f"Can't assemble {identifier}: {e}") from e

        try:
            await self.store.remove_session(identifier)
        except StorageError as e:
            logger.warning(f"Assembled {identifier} but left its chunks behind: {e}")

        logger.info(f"Assembled {session.total_chunks} chunks of {identifier} into {final_path}")
        return str(final_path)


class StatusReporter:
    def __init__(self, store: ChunkStore):
        self.store = store

    async def status(self, chunk: FlowChunk) -> Tuple[str, ChunkStatus]:
        part = f"{chunk.identifier}:{chunk.chunk_number}"
        size = await self.store.size(chunk.identifier, chunk.chunk_number)
        if size is None:
            return f"The part {part} isn't started yet!", ChunkStatus.NOT_STARTED
        if not chunk.is_final and size != chunk.chunk_size:
            return f"The part {part} is the wrong size!", ChunkStatus.CORRUPT
        return f"The part {part} looks great!", ChunkStatus.OK


def _discard(path: Path) -> None:
    try:
        os.remove(path)
    except FileNotFoundError:
        pass
    except OSError as e:
        logger.warning(f"Could not remove temporary file {path}: {e}")
