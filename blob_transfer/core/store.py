"""
Block store contract.

A block store accepts bounded-size blocks for a named object and makes them
visible as one object only when the ordered block list is committed.
"""

from dataclasses import dataclass, field
from typing import AsyncIterator, Callable, Optional, Protocol, Sequence

from blob_transfer.core.blocks import Block, BlockReceipt


@dataclass(frozen=True)
class ObjectInfo:
    """Metadata of a committed object."""

    name: str
    content_type: str
    size: int
    etag: Optional[str] = None


@dataclass
class ObjectStream:
    """A committed object opened for reading."""

    info: ObjectInfo
    chunks: AsyncIterator[bytes]
    close: Callable[[], None] = field(default=lambda: None)


class BlockUpload(Protocol):
    """One in-progress upload of a named object."""

    name: str

    async def stage(self, block: Block) -> BlockReceipt:
        """Stage one block. Safe to call concurrently for distinct blocks."""
        ...

    async def commit(self, receipts: Sequence[BlockReceipt]) -> ObjectInfo:
        """Atomically materialize the blocks, in the given order, as the object."""
        ...

    async def abort(self) -> None:
        """Discard every block staged by this upload."""
        ...


class BlockStore(Protocol):
    """Backing store consumed by the transfer service."""

    container: str
    max_blocks: int

    async def begin_upload(self, name: str, content_type: str) -> BlockUpload:
        ...

    async def exists(self, name: str) -> bool:
        ...

    async def open(self, name: str, chunk_size: int) -> ObjectStream:
        """
        Fetch an object for reading in pieces of at most chunk_size bytes.

        Raises ObjectNotFoundError when the object was never committed.
        """
        ...

    async def ensure_container(self) -> None:
        ...

    async def ping(self) -> None:
        """Raise if the store cannot be reached."""
        ...

    def close(self) -> None:
        ...
