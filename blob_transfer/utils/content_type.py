"""
Content-Type and object name utilities.
"""

import mimetypes
import posixpath
from typing import Optional

# S3 keys are limited to 1024 bytes of UTF-8
MAX_OBJECT_NAME_BYTES = 1024


def detect_content_type(filename: str, provided_type: Optional[str] = None) -> str:
    """
    Detect Content-Type from filename extension.

    Falls back to provided type if detection fails, or 'application/octet-stream' as last resort.

    Args:
        filename: Filename or path (e.g., "document.pdf", "path/to/file.tar.gz")
        provided_type: Optional explicitly provided Content-Type from client

    Returns:
        MIME type string (e.g., "application/pdf", "image/jpeg")

    Examples:
        >>> detect_content_type("document.pdf")
        'application/pdf'

        >>> detect_content_type("unknown.xyz")
        'application/octet-stream'

        >>> detect_content_type("file.txt", "text/custom")
        'text/custom'
    """
    # If client provided a specific type (not generic), use it
    if provided_type and provided_type != "application/octet-stream":
        return provided_type

    # Try to guess from file extension
    guessed_type, _ = mimetypes.guess_type(filename)

    # Priority: guessed > provided > fallback
    return guessed_type or provided_type or "application/octet-stream"


def upload_object_name(filename: Optional[str]) -> Optional[str]:
    """
    Object name for a browser-supplied filename.

    Some browsers send the full client path; only the last component is kept.
    """
    if not filename:
        return None
    name = posixpath.basename(filename.replace("\\", "/")).strip()
    return name or None


def is_valid_object_name(name: str) -> bool:
    """Non-empty, no control characters, and within the S3 key length limit."""
    if not name or len(name.encode("utf-8")) > MAX_OBJECT_NAME_BYTES:
        return False
    return not any(ord(ch) < 32 or ord(ch) == 127 for ch in name)
