"""End-to-end tests for the upload service"""

import asyncio
import itertools
import os

import pydantic
import pytest

from chunkflow.errors import ConfigurationError, SizeMismatchError, SizeOverflowError
from chunkflow.models import ChunkStatus, FlowChunk
from chunkflow.service import FlowUploader

from .conftest import make_chunk, split


@pytest.mark.asyncio
async def test_three_chunk_upload(uploader, completed_dir):
    parts = [b"a" * 10000, b"b" * 10000, b"c" * 10000]

    assert await uploader.part_upload(make_chunk("abc123", 1, 30000, 10000), parts[0]) is None
    assert await uploader.part_upload(make_chunk("abc123", 2, 30000, 10000), parts[1]) is None

    message, code = await uploader.part_status(make_chunk("abc123", 3, 30000, 10000))
    assert code is ChunkStatus.NOT_STARTED

    path = await uploader.part_upload(make_chunk("abc123", 3, 30000, 10000), parts[2])
    assert path == str(completed_dir / "file.bin")
    with open(path, "rb") as f:
        assert f.read() == b"".join(parts)
    assert not uploader.store.session_dir("abc123").exists()

    _, code = await uploader.part_status(make_chunk("abc123", 1, 30000, 10000))
    assert code is ChunkStatus.NOT_STARTED
    assert "abc123" not in uploader.locks


@pytest.mark.asyncio
async def test_any_arrival_order_gives_same_file(uploader):
    data = os.urandom(14)
    parts = split(data, 4)

    for n, order in enumerate(itertools.permutations(range(1, 5))):
        identifier = f"perm-{n}"
        results = []
        for index in order:
            chunk = make_chunk(identifier, index, len(data), 4, filename=f"{identifier}.bin")
            results.append(await uploader.part_upload(chunk, parts[index - 1]))

        assert results[:-1] == [None, None, None]
        with open(results[-1], "rb") as f:
            assert f.read() == data


@pytest.mark.asyncio
async def test_resubmitted_chunk_overwrites(uploader):
    await uploader.part_upload(make_chunk("redo", 1, 8, 4), b"old!")
    await uploader.part_upload(make_chunk("redo", 1, 8, 4), b"new!")
    path = await uploader.part_upload(make_chunk("redo", 2, 8, 4), b"tail")

    with open(path, "rb") as f:
        assert f.read() == b"new!tail"


@pytest.mark.asyncio
async def test_concurrent_final_chunks_assemble_once(uploader, completed_dir):
    parts = [b"1" * 5, b"2" * 5, b"3" * 5]
    await uploader.part_upload(make_chunk("race", 1, 15, 5), parts[0])

    results = await asyncio.gather(
        uploader.part_upload(make_chunk("race", 2, 15, 5), parts[1]),
        uploader.part_upload(make_chunk("race", 3, 15, 5), parts[2]),
    )

    paths = [r for r in results if r is not None]
    assert len(paths) == 1
    assert os.listdir(completed_dir) == ["file.bin"]
    with open(paths[0], "rb") as f:
        assert f.read() == b"".join(parts)
    assert len(uploader.locks) == 0


@pytest.mark.asyncio
async def test_wrong_size_is_rejected_before_writing(uploader):
    with pytest.raises(SizeMismatchError):
        await uploader.part_upload(make_chunk("short", 1, 20, 10), b"x" * 9)

    assert await uploader.store.list_indices("short") == set()


@pytest.mark.asyncio
async def test_overshooting_session_is_flagged(uploader):
    # The declared total is smaller than what the chunks carry
    await uploader.part_upload(make_chunk("over", 1, 15, 10, total_chunks=2), b"x" * 10)

    with pytest.raises(SizeOverflowError):
        await uploader.part_upload(make_chunk("over", 2, 15, 10, total_chunks=2), b"y" * 12)


@pytest.mark.asyncio
async def test_oversized_final_chunk_waits_for_missing_chunks(uploader, completed_dir):
    await uploader.part_upload(make_chunk("early", 1, 30, 10), b"a" * 10)

    # Bytes add up to the total, but chunk 2 has not arrived yet
    assert await uploader.part_upload(make_chunk("early", 3, 30, 10), b"c" * 20) is None
    assert os.listdir(completed_dir) == []
    assert await uploader.store.list_indices("early") == {1, 3}

    with pytest.raises(SizeOverflowError):
        await uploader.part_upload(make_chunk("early", 2, 30, 10), b"b" * 10)
    assert os.listdir(completed_dir) == []


@pytest.mark.asyncio
async def test_broken_directory(temp_dir, completed_dir):
    uploader = FlowUploader(temp_dir / "missing", completed_dir)

    with pytest.raises(ConfigurationError):
        await uploader.part_upload(make_chunk("s", 1, 4, 4), b"data")

    message, code = await uploader.part_status(make_chunk("s", 1, 4, 4))
    assert code is ChunkStatus.CORRUPT
    assert message.startswith("Directory is broken")


@pytest.mark.asyncio
async def test_progress(uploader):
    assert await uploader.progress("prog") is None

    await uploader.part_upload(make_chunk("prog", 3, 30, 10), b"z" * 10)
    await uploader.part_upload(make_chunk("prog", 1, 30, 10), b"a" * 10)

    progress = await uploader.progress("prog")
    assert progress.received_chunks == [1, 3]
    assert progress.received_bytes == 20
    assert progress.last_activity is not None


def test_completed_dir_inside_temp_dir_is_refused(temp_dir):
    with pytest.raises(ValueError):
        FlowUploader(temp_dir, temp_dir / "completed")


def test_chunk_validation():
    fields = {
        "flowChunkNumber": "2",
        "flowTotalChunks": "3",
        "flowChunkSize": "10",
        "flowTotalSize": "30",
        "flowIdentifier": "abc123",
        "flowFilename": "a.txt",
        "flowRelativePath": "a.txt",
    }
    chunk = FlowChunk.model_validate(fields)
    assert chunk.chunk_number == 2
    assert not chunk.is_final

    for key, bad in [
        ("flowChunkNumber", "two"),
        ("flowChunkNumber", "4"),
        ("flowTotalSize", "0"),
        ("flowIdentifier", ""),
        ("flowIdentifier", "../etc"),
        ("flowFilename", "a/b.txt"),
        ("flowRelativePath", "../a.txt"),
    ]:
        with pytest.raises(pydantic.ValidationError):
            FlowChunk.model_validate({**fields, key: bad})

    with pytest.raises(pydantic.ValidationError):
        FlowChunk.model_validate({k: v for k, v in fields.items() if k != "flowTotalChunks"})
