"""
Shared dependencies for FastAPI endpoints.
"""

import logging
from typing import Annotated

from fastapi import Depends, Request

from blob_transfer.core.config import Settings
from blob_transfer.core.memory_store import MemoryBlockStore
from blob_transfer.core.store import BlockStore
from blob_transfer.core.transfer import BlobTransferService
from blob_transfer.s3.client import S3BlockStore
from transfer_schemas.transfer import StorageBackend

logger = logging.getLogger(__name__)


def build_block_store(settings: Settings) -> BlockStore:
    """Create the block store selected by STORAGE_BACKEND."""
    if settings.STORAGE_BACKEND == StorageBackend.MEMORY:
        logger.warning("Using in-memory block store; objects are lost on restart")
        return MemoryBlockStore(container=settings.CONTAINER_NAME)

    return S3BlockStore(settings)


def get_transfer_service(request: Request) -> BlobTransferService:
    """The service instance created by the app factory."""
    return request.app.state.transfer_service


# Dependency annotations
TransferService = Annotated[BlobTransferService, Depends(get_transfer_service)]
