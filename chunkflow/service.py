import logging
from pathlib import Path
from typing import Optional, Tuple

from .config import Settings
from .errors import ConfigurationError
from .locks import SessionLocks
from .models import ChunkStatus, FlowChunk, SessionProgress
from .probe import DirectoryProbe
from .storage import Assembler, ChunkStore, CompletionDetector, StatusReporter

logger = logging.getLogger(__name__)


class FlowUploader:
    """Entry point for chunk uploads and chunk status queries.

    Built once per application and shared by every request.
    """

    def __init__(self, temp_dir, completed_dir, final_chunk_tolerance: float = 2.0):
        temp_dir = Path(temp_dir)
        completed_dir = Path(completed_dir)
        if completed_dir.resolve().is_relative_to(temp_dir.resolve()):
            raise ValueError("The completed directory must live outside the temporary directory")

        self.locks = SessionLocks()
        self.probe = DirectoryProbe(temp_dir)
        self.store = ChunkStore(temp_dir)
        self.detector = CompletionDetector(self.store, final_chunk_tolerance)
        self.assembler = Assembler(self.store, completed_dir)
        self.reporter = StatusReporter(self.store)

    @classmethod
    def from_settings(cls, settings: Settings) -> "FlowUploader":
        return cls(
            settings.UPLOAD_TEMP_DIR,
            settings.UPLOAD_COMPLETED_DIR,
            settings.FINAL_CHUNK_TOLERANCE,
        )

    async def part_upload(self, chunk: FlowChunk, payload: bytes) -> Optional[str]:
        """Store one chunk; return the assembled file's path once the upload is complete.

        Returns None while chunks are still missing.
        """
        await self.probe.check()
        self.detector.check_chunk_size(chunk, len(payload))

        identifier = chunk.identifier
        async with self.locks.hold(identifier):
            await self.store.store(identifier, chunk.chunk_number, payload)
            logger.info(f"Stored chunk {chunk.chunk_number}/{chunk.total_chunks} of {identifier}")

            if not await self.detector.is_complete(identifier, chunk.total_size, chunk.total_chunks):
                return None
            return await self.assembler.assemble(chunk)

    async def part_status(self, chunk: FlowChunk) -> Tuple[str, ChunkStatus]:
        try:
            await self.probe.check()
        except ConfigurationError as e:
            return f"Directory is broken: {e}", ChunkStatus.CORRUPT
        return await self.reporter.status(chunk)

    async def progress(self, identifier: str) -> Optional[SessionProgress]:
        indices = await self.store.list_indices(identifier)
        if not indices:
            return None
        return SessionProgress(
            identifier=identifier,
            received_chunks=sorted(indices),
            received_bytes=await self.detector.stored_size(identifier),
            last_activity=self.store.last_activity(identifier),
        )
