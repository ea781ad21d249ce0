"""Pytest configuration and fixtures"""

import math
import shutil
import tempfile
from pathlib import Path

import pytest

from chunkflow.models import FlowChunk
from chunkflow.service import FlowUploader


@pytest.fixture
def temp_dir():
    """Create temporary directory for chunk storage"""
    tmpdir = tempfile.mkdtemp()
    yield Path(tmpdir)
    shutil.rmtree(tmpdir, ignore_errors=True)


@pytest.fixture
def completed_dir():
    """Create temporary directory for assembled files"""
    tmpdir = tempfile.mkdtemp()
    yield Path(tmpdir)
    shutil.rmtree(tmpdir, ignore_errors=True)


@pytest.fixture
def uploader(temp_dir, completed_dir):
    return FlowUploader(temp_dir, completed_dir)


def make_chunk(identifier, number, total_size, chunk_size, total_chunks=None,
               filename="file.bin", relative_path=None):
    if total_chunks is None:
        total_chunks = math.ceil(total_size / chunk_size)
    return FlowChunk(
        identifier=identifier,
        chunk_number=number,
        total_chunks=total_chunks,
        chunk_size=chunk_size,
        total_size=total_size,
        filename=filename,
        relative_path=relative_path or filename,
    )


def split(data: bytes, chunk_size: int):
    return [data[i:i + chunk_size] for i in range(0, len(data), chunk_size)]
