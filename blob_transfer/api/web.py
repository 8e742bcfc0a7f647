"""
Browser-facing endpoints.
Upload form, multipart upload with redirect, and the result pages.
"""

import html
import logging
from typing import Optional
from urllib.parse import urlencode

from fastapi import APIRouter, File, UploadFile, status
from fastapi.responses import HTMLResponse, RedirectResponse

from blob_transfer.core.dependencies import TransferService
from blob_transfer.core.exceptions import EmptyInputError, InvalidInputError, TransferError
from blob_transfer.utils.content_type import detect_content_type, upload_object_name
from blob_transfer.utils.streaming import iter_file_chunks
from transfer_schemas.transfer import ErrorKind

logger = logging.getLogger(__name__)

router = APIRouter(tags=["web"])

ERROR_MESSAGES = {
    ErrorKind.INVALID_INPUT: "The upload was empty or not acceptable.",
    ErrorKind.NOT_FOUND: "The requested file does not exist.",
    ErrorKind.TRANSIENT: "The storage service is temporarily unavailable. Please try again.",
    ErrorKind.PERMANENT: "The storage service rejected the upload.",
}

PAGE = """<!DOCTYPE html>
<html>
<head><meta charset="utf-8"><title>{title}</title></head>
<body>
<h1>{title}</h1>
{body}
</body>
</html>
"""


def _page(title: str, body: str, status_code: int = status.HTTP_200_OK) -> HTMLResponse:
    return HTMLResponse(PAGE.format(title=html.escape(title), body=body), status_code=status_code)


@router.get("/", response_class=HTMLResponse)
async def index():
    """Upload form."""
    return _page(
        "Upload a file",
        '<form action="/upload" method="post" enctype="multipart/form-data">'
        '<input type="file" name="file">'
        '<button type="submit">Upload</button>'
        '</form>'
    )


@router.post("/upload")
async def upload(service: TransferService, file: Optional[UploadFile] = File(None)):
    """
    Upload a file from the form in fixed-size blocks.

    Redirects to /success on commit, or to /error with the failure kind.
    Empty uploads never reach the store.
    """
    try:
        if file is None or file.size == 0:
            raise EmptyInputError("No file or empty file")

        name = upload_object_name(file.filename)
        if name is None:
            raise InvalidInputError("Uploaded file has no name")

        content_type = detect_content_type(name, file.content_type)
        await service.upload(
            name,
            iter_file_chunks(file, service.chunk_size),
            content_type
        )

    except TransferError as e:
        logger.warning(f"[UPLOAD] Rejected ({e.kind.value}): {e.message}")
        return RedirectResponse(
            f"/error?{urlencode({'kind': e.kind.value})}",
            status_code=status.HTTP_303_SEE_OTHER
        )
    except Exception as e:
        logger.error(f"[UPLOAD] Unexpected error: {e}", exc_info=True)
        return RedirectResponse(
            f"/error?{urlencode({'kind': ErrorKind.PERMANENT.value})}",
            status_code=status.HTTP_303_SEE_OTHER
        )

    return RedirectResponse(
        f"/success?{urlencode({'fileName': name})}",
        status_code=status.HTTP_303_SEE_OTHER
    )


@router.get("/success", response_class=HTMLResponse)
async def success(fileName: Optional[str] = None):
    """Upload succeeded."""
    body = "<p>Your file was uploaded.</p>"
    if fileName:
        link = html.escape(f"/download?{urlencode({'fileName': fileName})}")
        body += f'<p><a href="{link}">Download {html.escape(fileName)}</a></p>'
    return _page("Upload complete", body)


@router.get("/error", response_class=HTMLResponse)
async def error(kind: Optional[ErrorKind] = None):
    """Upload failed."""
    message = ERROR_MESSAGES.get(kind, "Something went wrong.")
    return _page("Upload failed", f"<p>{html.escape(message)}</p><p><a href=\"/\">Back</a></p>")
