from enum import Enum
from typing import List, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator, model_validator

from .utils import check_filename, check_identifier, check_relative_path


def _alias(name: str) -> AliasChoices:
    # flow.js prefixes every field with "flow"
    return AliasChoices(name, "flow" + name[0].upper() + name[1:])


class UploadSession(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    identifier: str = Field(min_length=1, validation_alias=_alias("identifier"))
    total_size: int = Field(gt=0, validation_alias=_alias("totalSize"))
    total_chunks: int = Field(gt=0, validation_alias=_alias("totalChunks"))
    chunk_size: int = Field(gt=0, validation_alias=_alias("chunkSize"))
    filename: str = Field(min_length=1, validation_alias=_alias("filename"))
    relative_path: str = Field(min_length=1, validation_alias=_alias("relativePath"))

    @field_validator("identifier")
    @classmethod
    def safe_identifier(cls, value: str) -> str:
        return check_identifier(value)

    @field_validator("filename")
    @classmethod
    def safe_filename(cls, value: str) -> str:
        return check_filename(value)

    @field_validator("relative_path")
    @classmethod
    def safe_relative_path(cls, value: str) -> str:
        return check_relative_path(value)


class FlowChunk(UploadSession):
    chunk_number: int = Field(gt=0, validation_alias=_alias("chunkNumber"))

    @model_validator(mode="after")
    def chunk_in_range(self):
        if self.chunk_number > self.total_chunks:
            raise ValueError(f"chunkNumber {self.chunk_number} is past totalChunks {self.total_chunks}")
        return self

    @property
    def is_final(self) -> bool:
        return self.chunk_number == self.total_chunks


class ChunkRecord(BaseModel):
    identifier: str
    index: int
    size: int
    path: str


class ChunkStatus(int, Enum):
    OK = 200
    NOT_STARTED = 404
    CORRUPT = 500


class SessionProgress(BaseModel):
    identifier: str
    received_chunks: List[int]
    received_bytes: int
    last_activity: Optional[float]
