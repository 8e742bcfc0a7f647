"""
Blob Transfer Service API schemas.
Type-safe contracts for the upload, download and health endpoints.
"""

from enum import Enum
from typing import Optional
from pydantic import BaseModel


class ErrorKind(str, Enum):
    """Failure category reported to callers."""
    INVALID_INPUT = "invalid_input"
    NOT_FOUND = "not_found"
    TRANSIENT = "transient"
    PERMANENT = "permanent"


class StorageBackend(str, Enum):
    """Backing block store implementation."""
    S3 = "s3"
    MEMORY = "memory"


# ============================================================================
# Upload Endpoints
# ============================================================================

class UploadResponse(BaseModel):
    """Response from a committed upload."""
    name: str
    container: str
    content_type: str
    size_bytes: int
    block_count: int
    sha256: Optional[str] = None  # SHA256 of the bytes in stream order
    etag: Optional[str] = None


# ============================================================================
# Health Check
# ============================================================================

class HealthCheckResponse(BaseModel):
    """Health check response."""
    status: str
    storage_backend: StorageBackend
    storage_connection: str
