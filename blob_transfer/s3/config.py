"""
S3 Block Store Configuration.
Protocol limits for multipart uploads.
"""

# Multipart Upload Limits
S3_MIN_PART_SIZE = 5 * 1024 * 1024     # 5MB (S3/MinIO minimum for every part but the last)
S3_MAX_PART_SIZE = 5 * 1024 ** 3       # 5GB per part
S3_MAX_PARTS = 10_000                  # Part numbers run 1..10000

# Error codes treated as transient (throttling, server side trouble)
TRANSIENT_ERROR_CODES = frozenset({
    "InternalError",
    "RequestTimeout",
    "RequestTimeTooSkewed",
    "ServiceUnavailable",
    "SlowDown",
    "Throttling",
    "ThrottlingException",
})

# Error codes meaning the object (or the upload) does not exist
NOT_FOUND_ERROR_CODES = frozenset({"404", "NoSuchKey", "NotFound"})
