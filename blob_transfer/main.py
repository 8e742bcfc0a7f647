"""
Blob Transfer Service - Main Application
FastAPI app that moves uploads into a block store in fixed-size chunks.
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from transfer_schemas.common import ErrorResponse
from transfer_schemas.transfer import ErrorKind, HealthCheckResponse
from blob_transfer import __version__
from blob_transfer.api import objects, web
from blob_transfer.core.config import Settings, get_settings
from blob_transfer.core.dependencies import build_block_store
from blob_transfer.core.exceptions import TransferError
from blob_transfer.core.store import BlockStore
from blob_transfer.core.transfer import BlobTransferService

logger = logging.getLogger(__name__)

STATUS_BY_KIND = {
    ErrorKind.INVALID_INPUT: status.HTTP_400_BAD_REQUEST,
    ErrorKind.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorKind.TRANSIENT: status.HTTP_503_SERVICE_UNAVAILABLE,
    ErrorKind.PERMANENT: status.HTTP_502_BAD_GATEWAY,
}


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.
    Runs on startup and shutdown.
    """
    # Startup
    logger.info("Starting Blob Transfer Service...")
    store: BlockStore = app.state.transfer_service.store

    try:
        await store.ensure_container()
    except Exception as e:
        logger.error(f"Failed to initialize container: {e}")
        # Continue anyway - the health check reports the store as unreachable

    logger.info("Blob Transfer Service started successfully")

    yield

    # Shutdown
    logger.info("Shutting down Blob Transfer Service...")
    store.close()


def create_app(settings: Optional[Settings] = None, store: Optional[BlockStore] = None) -> FastAPI:
    """
    Build the application.

    Args:
        settings: Settings to use (read from the environment when omitted)
        store: Block store to use (built from settings when omitted)

    Returns:
        Configured FastAPI app
    """
    settings = settings or get_settings()

    # Configure logging
    logging.basicConfig(
        level=getattr(logging, settings.LOG_LEVEL),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    if store is None:
        store = build_block_store(settings)

    app = FastAPI(
        title="Blob Transfer Service",
        description="Chunked uploads into a block store with ordered commit, and streaming downloads",
        version=__version__,
        lifespan=lifespan
    )
    app.state.settings = settings
    app.state.transfer_service = BlobTransferService.from_settings(settings, store)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "OPTIONS"],
        allow_headers=["*"],
    )

    app.include_router(web.router)
    app.include_router(objects.router)

    @app.get("/health", tags=["health"], response_model=HealthCheckResponse)
    async def health_check():
        """Health check endpoint."""
        try:
            await store.ping()

            return HealthCheckResponse(
                status="healthy",
                storage_backend=settings.STORAGE_BACKEND,
                storage_connection="ok"
            )
        except Exception as e:
            logger.error(f"Health check failed: {e}")
            return JSONResponse(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                content=HealthCheckResponse(
                    status="unhealthy",
                    storage_backend=settings.STORAGE_BACKEND,
                    storage_connection="failed"
                ).model_dump(mode="json")
            )

    @app.exception_handler(TransferError)
    async def transfer_exception_handler(request: Request, exc: TransferError):
        """Map transfer failures to a status code by kind."""
        if exc.kind in (ErrorKind.TRANSIENT, ErrorKind.PERMANENT):
            logger.error(f"Transfer failed on {request.url.path}: {exc.message}")
        return JSONResponse(
            status_code=STATUS_BY_KIND[exc.kind],
            content=ErrorResponse(detail=exc.message, error_code=exc.kind.value).model_dump()
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        """Global exception handler for unhandled errors."""
        logger.error(f"Unhandled exception: {exc}", exc_info=True)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=ErrorResponse(detail="Internal server error").model_dump()
        )

    return app


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "blob_transfer.main:create_app",
        factory=True,
        host="0.0.0.0",
        port=8000,
        log_level=get_settings().LOG_LEVEL.lower(),
        timeout_keep_alive=7200,  # 2 hours for very large file uploads
    )
