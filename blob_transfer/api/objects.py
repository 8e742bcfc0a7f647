"""
Object API endpoints.
Streaming download by name and raw-body streaming upload.
"""

import logging
from typing import Optional
from urllib.parse import quote

from fastapi import APIRouter, Request
from fastapi.responses import StreamingResponse
from starlette.background import BackgroundTask

from blob_transfer.core.dependencies import TransferService
from blob_transfer.utils.content_type import detect_content_type
from blob_transfer.utils.streaming import rechunk
from transfer_schemas.common import SuccessResponse
from transfer_schemas.transfer import UploadResponse

logger = logging.getLogger(__name__)

router = APIRouter(tags=["objects"])


@router.get("/download")
async def download(service: TransferService, fileName: Optional[str] = None):
    """
    Stream an object back with its stored content type.

    The body is read from the store in DOWNLOAD_CHUNK_SIZE pieces as the
    client consumes it. Unknown names answer 404, store trouble 503/502.

    Args:
        fileName: Object name

    Returns:
        File stream
    """
    stream = await service.open_download(fileName)
    filename = quote(fileName.rsplit("/", 1)[-1])

    return StreamingResponse(
        stream.chunks,
        media_type=stream.info.content_type,
        headers={
            'Content-Disposition': f"attachment; filename*=UTF-8''{filename}",
            'Content-Length': str(stream.info.size),
        },
        background=BackgroundTask(stream.close)
    )


@router.put("/objects/{name:path}", response_model=SuccessResponse[UploadResponse])
async def put_object(name: str, request: Request, service: TransferService):
    """
    Upload an object from the raw request body.

    The body is regrouped into CHUNK_SIZE blocks as it arrives, so nothing is
    buffered beyond the blocks in flight.

    Example:
        curl -X PUT "http://server/objects/archive.tar.gz" \\
          -H "Content-Type: application/gzip" \\
          --data-binary "@archive.tar.gz"

    Args:
        name: Object name (from URL path)
        request: FastAPI Request with raw binary body

    Returns:
        Upload result with size, block count and SHA256
    """
    content_type = detect_content_type(name, request.headers.get("content-type"))

    result = await service.upload(
        name,
        rechunk(request.stream(), service.chunk_size),
        content_type
    )

    return SuccessResponse(
        success=True,
        message="Object committed",
        data=UploadResponse(
            name=result.name,
            container=service.store.container,
            content_type=result.content_type,
            size_bytes=result.size_bytes,
            block_count=result.block_count,
            sha256=result.sha256,
            etag=result.etag
        )
    )
