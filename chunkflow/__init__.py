"""Server side of the flow.js chunked upload protocol."""

from .errors import (
    ConfigurationError,
    FlowUploadError,
    InvalidIdentifierError,
    ProbeFailure,
    SizeMismatchError,
    SizeOverflowError,
    StorageError,
    ValidationError,
)
from .models import ChunkRecord, ChunkStatus, FlowChunk, SessionProgress, UploadSession
from .service import FlowUploader

__version__ = "1.0.0"
