"""
Shared API schemas for the blob transfer service.
Provides type-safe contracts for the HTTP API.
"""

__version__ = "0.1.0"

# Export commonly used schemas
from transfer_schemas.common import *  # noqa: F403, F401
from transfer_schemas.transfer import *  # noqa: F403, F401
