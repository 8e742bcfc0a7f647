"""Shared pytest fixtures for all tests."""

import io

import pytest
from fastapi.testclient import TestClient

from blob_transfer.core.config import Settings
from blob_transfer.core.exceptions import TransientStoreError
from blob_transfer.core.memory_store import MemoryBlockStore, MemoryBlockUpload
from blob_transfer.core.transfer import BlobTransferService
from blob_transfer.main import create_app

MiB = 1024 * 1024


class RecordingBlockUpload(MemoryBlockUpload):
    """Memory upload that remembers every block and block list it sees."""

    async def stage(self, block):
        self.store.staged.append((block.sequence, block.block_id, block.size))
        return await super().stage(block)

    async def commit(self, receipts):
        self.store.committed_block_lists.append([r.block_id for r in receipts])
        return await super().commit(receipts)


class RecordingBlockStore(MemoryBlockStore):
    """Memory store whose uploads record their calls."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.staged = []
        self.committed_block_lists = []

    async def begin_upload(self, name, content_type):
        self.stats.uploads_begun += 1
        return RecordingBlockUpload(self, name, content_type)


class FailingBlockUpload(MemoryBlockUpload):
    """Memory upload that fails where its store says to."""

    async def stage(self, block):
        self.store.stage_calls.append(block.sequence)
        if block.sequence == self.store.fail_stage_at:
            raise self.store.error("store went away", name=self.name)
        return await super().stage(block)

    async def commit(self, receipts):
        if self.store.fail_commit:
            raise self.store.error("commit rejected", name=self.name)
        return await super().commit(receipts)


class FailingBlockStore(MemoryBlockStore):
    """
    Memory store that fails staging block fail_stage_at, or the commit.

    Every stage call is recorded by sequence number in stage_calls.
    """

    def __init__(self, fail_stage_at=None, fail_commit=False, error=TransientStoreError, **kwargs):
        super().__init__(**kwargs)
        self.fail_stage_at = fail_stage_at
        self.fail_commit = fail_commit
        self.error = error
        self.stage_calls = []

    async def begin_upload(self, name, content_type):
        self.stats.uploads_begun += 1
        return FailingBlockUpload(self, name, content_type)


class FakeReadable:
    """Async file-like object; max_read simulates short reads."""

    def __init__(self, data: bytes, max_read: int = 0):
        self.buffer = io.BytesIO(data)
        self.max_read = max_read
        self.closed = False

    async def read(self, size: int = -1) -> bytes:
        if self.max_read and (size < 0 or size > self.max_read):
            size = self.max_read
        return self.buffer.read(size)

    async def close(self) -> None:
        self.closed = True


async def pieces(data: bytes, piece_size: int):
    """Yield data in pieces of piece_size bytes."""
    for offset in range(0, len(data), piece_size):
        yield data[offset:offset + piece_size]


@pytest.fixture
def test_settings() -> Settings:
    """Settings for the in-memory backend with small blocks."""
    return Settings(
        _env_file=None,
        STORAGE_BACKEND="memory",
        CONTAINER_NAME="test-uploads",
        CHUNK_SIZE=1024,
        DOWNLOAD_CHUNK_SIZE=512,
        LOG_LEVEL="DEBUG",
    )


@pytest.fixture
def recording_store() -> RecordingBlockStore:
    return RecordingBlockStore(container="test-uploads")


@pytest.fixture
def transfer_service(recording_store) -> BlobTransferService:
    """Service over the recording store with 1 MiB blocks."""
    return BlobTransferService(recording_store, chunk_size=MiB)


@pytest.fixture
def client(test_settings, recording_store):
    """FastAPI test client with lifespan events."""
    app = create_app(test_settings, recording_store)
    with TestClient(app) as test_client:
        yield test_client
