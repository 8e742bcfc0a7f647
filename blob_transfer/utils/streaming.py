"""
Streaming utilities.
Chunk producers that turn upload streams into fixed-size blocks.
"""

import hashlib
import logging
from typing import AsyncIterator, Optional, Protocol

logger = logging.getLogger(__name__)


class AsyncReadable(Protocol):
    """Anything with an async read(size) and close(), e.g. Starlette's UploadFile."""

    async def read(self, size: int = -1) -> bytes:
        ...

    async def close(self) -> None:
        ...


async def iter_file_chunks(source: AsyncReadable, chunk_size: int) -> AsyncIterator[bytes]:
    """
    Read a file-like source in chunks of exactly chunk_size bytes.

    Every chunk has chunk_size bytes except possibly the last, which has
    between 1 and chunk_size. The source is closed once iteration stops,
    whether it finished, failed, or was abandoned by the consumer.

    Args:
        source: Readable with async read(size) and close()
        chunk_size: Block size in bytes

    Yields:
        Byte chunks in stream order
    """
    if chunk_size <= 0:
        raise ValueError("chunk_size must be positive")

    try:
        buffer = bytearray()
        while True:
            data = await source.read(chunk_size - len(buffer))
            if not data:
                break
            buffer.extend(data)
            if len(buffer) == chunk_size:
                yield bytes(buffer)
                buffer.clear()
        if buffer:
            yield bytes(buffer)
    finally:
        await source.close()


async def rechunk(pieces: AsyncIterator[bytes], chunk_size: int) -> AsyncIterator[bytes]:
    """
    Regroup arbitrarily sized pieces (e.g. request.stream()) into chunk_size blocks.

    Same contract as iter_file_chunks; the source iterator is closed when
    iteration stops if it supports aclose().
    """
    if chunk_size <= 0:
        raise ValueError("chunk_size must be positive")

    try:
        buffer = bytearray()
        async for piece in pieces:
            buffer.extend(piece)
            while len(buffer) >= chunk_size:
                yield bytes(buffer[:chunk_size])
                del buffer[:chunk_size]
        if buffer:
            yield bytes(buffer)
    finally:
        aclose = getattr(pieces, "aclose", None)
        if aclose is not None:
            await aclose()


class StreamStats:
    """
    Running SHA256 checksum and byte count of a stream.

    Fed in stream order, so the digest matches the committed object.
    """

    def __init__(self, calculate_checksum: bool = True):
        self.sha256 = hashlib.sha256() if calculate_checksum else None
        self.total_bytes = 0
        self.chunks = 0

    def update(self, chunk: bytes) -> None:
        if self.sha256:
            self.sha256.update(chunk)
        self.total_bytes += len(chunk)
        self.chunks += 1

    def get_checksum(self) -> Optional[str]:
        """
        Get SHA256 checksum of the data seen so far.

        Returns:
            Hex string of SHA256 checksum, or None if checksum not calculated
        """
        if self.sha256:
            return self.sha256.hexdigest()
        return None
