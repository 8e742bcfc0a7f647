"""
Chunked blob transfer.

Uploads stage every chunk of a stream as a block and then commit the ordered
block list in one call; nothing is visible to readers until that commit
succeeds. A failed upload is aborted so the store drops the staged blocks.
Downloads check existence and then stream the object in bounded pieces.
"""

import asyncio
import logging
import time
from contextlib import aclosing
from dataclasses import dataclass, field
from enum import Enum
from typing import AsyncIterator, List, Optional

from blob_transfer.core.blocks import Block, BlockReceipt, ordered_block_list
from blob_transfer.core.config import Settings
from blob_transfer.core.exceptions import (
    EmptyInputError,
    InvalidInputError,
    ObjectNotFoundError,
)
from blob_transfer.core.store import BlockStore, BlockUpload, ObjectStream
from blob_transfer.utils.content_type import is_valid_object_name
from blob_transfer.utils.streaming import StreamStats

logger = logging.getLogger(__name__)


class TransferState(str, Enum):
    """Lifecycle of one upload."""
    IDLE = "idle"
    STAGING = "staging"
    COMMITTING = "committing"
    COMMITTED = "committed"
    FAILED = "failed"


@dataclass
class UploadSession:
    """Progress of one upload, logged as it moves through its states."""

    name: str
    content_type: str
    state: TransferState = TransferState.IDLE
    blocks_staged: int = 0
    bytes_staged: int = 0
    started_at: float = field(default_factory=time.monotonic)

    def transition(self, state: TransferState) -> None:
        logger.debug(f"[UPLOAD] {self.name}: {self.state.value} -> {state.value}")
        self.state = state

    @property
    def elapsed(self) -> float:
        return time.monotonic() - self.started_at


@dataclass(frozen=True)
class TransferResult:
    """Outcome of a committed upload."""

    name: str
    content_type: str
    size_bytes: int
    block_count: int
    sha256: Optional[str]
    etag: Optional[str]
    duration_seconds: float


class BlobTransferService:
    """Moves byte streams into and out of a block store."""

    def __init__(
        self,
        store: BlockStore,
        chunk_size: int = 1024 * 1024,
        stage_concurrency: int = 1,
        download_chunk_size: int = 256 * 1024
    ):
        if chunk_size <= 0 or download_chunk_size <= 0:
            raise ValueError("chunk sizes must be positive")
        if stage_concurrency < 1:
            raise ValueError("stage_concurrency must be at least 1")

        self.store = store
        self.chunk_size = chunk_size
        self.stage_concurrency = stage_concurrency
        self.download_chunk_size = download_chunk_size

    @classmethod
    def from_settings(cls, settings: Settings, store: BlockStore) -> "BlobTransferService":
        return cls(
            store,
            chunk_size=settings.CHUNK_SIZE,
            stage_concurrency=settings.STAGE_CONCURRENCY,
            download_chunk_size=settings.DOWNLOAD_CHUNK_SIZE
        )

    async def upload(
        self,
        name: str,
        chunks: AsyncIterator[bytes],
        content_type: str
    ) -> TransferResult:
        """
        Stage every chunk as a block and commit them as one object.

        The first chunk is read before the store is contacted, so an empty
        stream never begins an upload, and the chunk source has started and
        will be closed even when the name is then rejected. Any failure after
        that aborts the store upload and re-raises.

        Args:
            name: Object name (storage key)
            chunks: Chunks of at most chunk_size bytes, in byte order
            content_type: MIME type recorded on the object

        Returns:
            TransferResult of the committed object

        Raises:
            InvalidInputError: Bad name, or more blocks than the store accepts
            EmptyInputError: The stream had no bytes
            TransferError: Staging or commit failed
        """
        async with aclosing(chunks):
            first = await anext(chunks, None)

            if not is_valid_object_name(name):
                raise InvalidInputError(f"Invalid object name: {name!r}", name=name)
            if not first:
                raise EmptyInputError("Upload contains no data", name=name)

            session = UploadSession(name=name, content_type=content_type)
            stats = StreamStats()
            upload = await self.store.begin_upload(name, content_type)
            logger.info(f"[UPLOAD] Starting: {self.store.container}/{name} ({content_type})")

            try:
                session.transition(TransferState.STAGING)
                receipts = await self._stage_all(upload, session, stats, first, chunks)

                session.transition(TransferState.COMMITTING)
                info = await upload.commit(ordered_block_list(receipts))
            except BaseException as e:
                session.transition(TransferState.FAILED)
                logger.error(
                    f"[UPLOAD] Failed: {self.store.container}/{name} after "
                    f"{session.blocks_staged} blocks :: {e!r}"
                )
                await self._abort(upload)
                raise

            session.transition(TransferState.COMMITTED)

        result = TransferResult(
            name=name,
            content_type=content_type,
            size_bytes=stats.total_bytes,
            block_count=stats.chunks,
            sha256=stats.get_checksum(),
            etag=info.etag,
            duration_seconds=session.elapsed
        )
        logger.info(
            f"[UPLOAD] Completed: {self.store.container}/{name} "
            f"({result.size_bytes / 1024 / 1024:.2f}MB in {result.block_count} blocks, "
            f"{result.duration_seconds:.2f}s, SHA256: {result.sha256})"
        )
        return result

    async def _stage_all(
        self,
        upload: BlockUpload,
        session: UploadSession,
        stats: StreamStats,
        first: bytes,
        chunks: AsyncIterator[bytes]
    ) -> List[BlockReceipt]:
        """
        Stage blocks with at most stage_concurrency in flight.

        The next chunk is not handed out until a slot frees up. Receipts come
        back in completion order; the caller sorts them for the commit.
        """
        slots = asyncio.Semaphore(self.stage_concurrency)
        in_flight: set = set()
        receipts: List[BlockReceipt] = []
        failures: List[BaseException] = []

        async def stage(block: Block) -> None:
            try:
                receipt = await upload.stage(block)
            except Exception as e:
                # Recorded before the slot frees so the producer sees it
                failures.append(e)
                raise
            finally:
                slots.release()
            receipts.append(receipt)
            session.blocks_staged += 1
            session.bytes_staged += receipt.size

        def on_done(task: asyncio.Task) -> None:
            in_flight.discard(task)
            if not task.cancelled():
                task.exception()  # marks it retrieved; stage() recorded it

        try:
            sequence = 0
            chunk: Optional[bytes] = first
            while chunk is not None:
                if not chunk:
                    chunk = await anext(chunks, None)
                    continue
                if sequence >= self.store.max_blocks:
                    raise InvalidInputError(
                        f"Upload needs more than {self.store.max_blocks} blocks of {self.chunk_size} bytes",
                        name=session.name
                    )
                stats.update(chunk)
                block = Block(sequence=sequence, data=chunk)

                await slots.acquire()
                if failures:
                    slots.release()
                    raise failures[0]

                task = asyncio.ensure_future(stage(block))
                in_flight.add(task)
                task.add_done_callback(on_done)

                sequence += 1
                chunk = await anext(chunks, None)

            while in_flight and not failures:
                await asyncio.wait(set(in_flight), return_when=asyncio.FIRST_EXCEPTION)
            if failures:
                raise failures[0]
        except BaseException:
            for task in in_flight:
                task.cancel()
            if in_flight:
                await asyncio.gather(*in_flight, return_exceptions=True)
            raise

        return receipts

    async def _abort(self, upload: BlockUpload) -> None:
        try:
            await upload.abort()
        except Exception as e:
            logger.error(f"[UPLOAD] Abort failed for {upload.name}, staged blocks may be orphaned :: {e}")

    async def open_download(self, name: Optional[str]) -> ObjectStream:
        """
        Check the object exists and open it for streaming.

        Args:
            name: Object name

        Returns:
            ObjectStream yielding pieces of at most download_chunk_size bytes

        Raises:
            InvalidInputError: No name given
            ObjectNotFoundError: The object was never committed
            TransferError: The store failed
        """
        if not name:
            raise InvalidInputError("fileName is required")

        if not await self.store.exists(name):
            raise ObjectNotFoundError(f"Object not found: {name}", name=name)

        stream = await self.store.open(name, self.download_chunk_size)
        logger.info(
            f"[DOWNLOAD] Streaming: {self.store.container}/{name} "
            f"({stream.info.size} bytes, {stream.info.content_type})"
        )
        return stream
