"""
Block data models and the block identifier scheme.

A block id is the base64 text of the block's sequence number packed as a
little-endian unsigned 32-bit integer. Every id is 8 characters long, so
the ids of one upload always share the same width.
"""

import base64
import binascii
import struct
from dataclasses import dataclass
from typing import List, Optional, Sequence

from blob_transfer.core.exceptions import BlockListError

BLOCK_ID_FORMAT = "<I"
BLOCK_ID_WIDTH = struct.calcsize(BLOCK_ID_FORMAT)
MAX_SEQUENCE = 2 ** (8 * BLOCK_ID_WIDTH) - 1


def block_id_for(sequence: int) -> str:
    """
    Map a block sequence number to its store-legal identifier.

    Args:
        sequence: 0-based block position within the upload

    Returns:
        Base64 text of the little-endian packed sequence number

    Raises:
        ValueError: If sequence is outside [0, 2**32)
    """
    if sequence < 0 or sequence > MAX_SEQUENCE:
        raise ValueError(f"Block sequence out of range: {sequence}")
    return base64.b64encode(struct.pack(BLOCK_ID_FORMAT, sequence)).decode("ascii")


def sequence_of(block_id: str) -> int:
    """Inverse of block_id_for. Raises ValueError for foreign ids."""
    try:
        raw = base64.b64decode(block_id, validate=True)
    except (binascii.Error, ValueError) as e:
        raise ValueError(f"Malformed block id: {block_id!r}") from e
    if len(raw) != BLOCK_ID_WIDTH:
        raise ValueError(f"Malformed block id: {block_id!r}")
    return struct.unpack(BLOCK_ID_FORMAT, raw)[0]


@dataclass(frozen=True)
class Block:
    """One chunk of an object, ready to be staged."""

    sequence: int
    data: bytes

    @property
    def block_id(self) -> str:
        return block_id_for(self.sequence)

    @property
    def size(self) -> int:
        return len(self.data)


@dataclass(frozen=True)
class BlockReceipt:
    """What the store acknowledged for a staged block."""

    sequence: int
    block_id: str
    size: int
    etag: Optional[str] = None  # S3 part ETag; None for stores that do not issue one


def ordered_block_list(receipts: Sequence[BlockReceipt]) -> List[BlockReceipt]:
    """
    Sort receipts into commit order and check they form blocks 0..n-1.

    Stage calls may complete in any order; the commit must list blocks in
    byte order. Each receipt's id must also be the id this scheme produces
    for its sequence number.

    Args:
        receipts: Receipts collected from the stage calls of one upload

    Returns:
        Receipts sorted by sequence number

    Raises:
        BlockListError: If a block is missing, duplicated, or carries a foreign id
    """
    ordered = sorted(receipts, key=lambda r: r.sequence)
    for expected, receipt in enumerate(ordered):
        if receipt.sequence != expected:
            raise BlockListError(
                f"Block list is not contiguous: expected block {expected}, got {receipt.sequence}"
            )
        if receipt.block_id != block_id_for(receipt.sequence):
            raise BlockListError(
                f"Block {receipt.sequence} was staged as {receipt.block_id!r}, "
                f"expected {block_id_for(receipt.sequence)!r}"
            )
    return ordered
