"""
In-process block store.
Keeps staged blocks and committed objects in dictionaries. Used for local
development (STORAGE_BACKEND=memory) and tests.
"""

import hashlib
import logging
import uuid
from dataclasses import dataclass
from typing import AsyncIterator, Dict, Sequence, Tuple

from blob_transfer.core.blocks import Block, BlockReceipt
from blob_transfer.core.exceptions import BlockListError, ObjectNotFoundError
from blob_transfer.core.store import ObjectInfo, ObjectStream

logger = logging.getLogger(__name__)

# Same cap Azure block blobs apply per object
MEMORY_MAX_BLOCKS = 50_000


async def _iter_slices(data: bytes, chunk_size: int) -> AsyncIterator[bytes]:
    for offset in range(0, len(data), chunk_size):
        yield data[offset:offset + chunk_size]


@dataclass
class StoreStats:
    """Call counters, mostly useful for assertions in tests."""

    uploads_begun: int = 0
    blocks_staged: int = 0
    commits: int = 0
    aborts: int = 0


class MemoryBlockUpload:
    """Upload handle for MemoryBlockStore."""

    def __init__(self, store: "MemoryBlockStore", name: str, content_type: str):
        self.store = store
        self.name = name
        self.content_type = content_type
        self.upload_id = uuid.uuid4().hex

    async def stage(self, block: Block) -> BlockReceipt:
        staged = self.store.uncommitted.setdefault(self.upload_id, {})
        staged[block.block_id] = block.data
        self.store.stats.blocks_staged += 1
        return BlockReceipt(
            sequence=block.sequence,
            block_id=block.block_id,
            size=block.size,
            etag=hashlib.md5(block.data, usedforsecurity=False).hexdigest()
        )

    async def commit(self, receipts: Sequence[BlockReceipt]) -> ObjectInfo:
        staged = self.store.uncommitted.get(self.upload_id, {})
        missing = [r.block_id for r in receipts if r.block_id not in staged]
        if missing:
            raise BlockListError(f"Blocks were never staged: {missing}", name=self.name)

        data = b"".join(staged[r.block_id] for r in receipts)
        self.store.objects[self.name] = (data, self.content_type)
        self.store.uncommitted.pop(self.upload_id, None)
        self.store.stats.commits += 1

        logger.debug(f"Committed {self.name} ({len(receipts)} blocks, {len(data)} bytes)")
        return ObjectInfo(
            name=self.name,
            content_type=self.content_type,
            size=len(data),
            etag=hashlib.md5(data, usedforsecurity=False).hexdigest()
        )

    async def abort(self) -> None:
        self.store.uncommitted.pop(self.upload_id, None)
        self.store.stats.aborts += 1


class MemoryBlockStore:
    """Block store held entirely in process memory."""

    def __init__(self, container: str = "uploads", max_blocks: int = MEMORY_MAX_BLOCKS):
        self.container = container
        self.max_blocks = max_blocks
        self.objects: Dict[str, Tuple[bytes, str]] = {}
        self.uncommitted: Dict[str, Dict[str, bytes]] = {}
        self.stats = StoreStats()

    async def begin_upload(self, name: str, content_type: str) -> MemoryBlockUpload:
        self.stats.uploads_begun += 1
        return MemoryBlockUpload(self, name, content_type)

    async def exists(self, name: str) -> bool:
        return name in self.objects

    async def open(self, name: str, chunk_size: int) -> ObjectStream:
        if name not in self.objects:
            raise ObjectNotFoundError(f"Object not found: {name}", name=name)
        data, content_type = self.objects[name]
        info = ObjectInfo(
            name=name,
            content_type=content_type,
            size=len(data),
            etag=hashlib.md5(data, usedforsecurity=False).hexdigest()
        )
        return ObjectStream(info=info, chunks=_iter_slices(data, chunk_size))

    async def ensure_container(self) -> None:
        logger.info(f"Memory container ready: {self.container}")

    async def ping(self) -> None:
        return None

    def close(self) -> None:
        return None
