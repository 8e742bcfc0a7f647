"""
Configuration management for Blob Transfer Service.
Loads environment variables once; the resulting Settings object is passed
explicitly into the app factory and the block stores.
"""

from functools import lru_cache
from typing import List, Optional, Union

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings

from transfer_schemas.transfer import StorageBackend


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Backing store
    STORAGE_BACKEND: StorageBackend = StorageBackend.S3

    # S3 / MinIO Configuration
    S3_ENDPOINT: Optional[str] = None   # e.g. 192.168.1.100:9000; None targets AWS
    S3_ACCESS_KEY: Optional[str] = None
    S3_SECRET_KEY: Optional[str] = None
    S3_SECURE: bool = False             # Only used when S3_ENDPOINT has no scheme
    S3_REGION: str = "us-east-1"
    S3_MAX_WORKERS: int = Field(default=8, ge=1)

    # Target container (bucket)
    CONTAINER_NAME: str = "uploads"

    # Chunked transfer
    CHUNK_SIZE: int = Field(default=1024 * 1024, gt=0)           # 1 MiB per block
    STAGE_CONCURRENCY: int = Field(default=1, ge=1)              # Blocks in flight per upload
    DOWNLOAD_CHUNK_SIZE: int = Field(default=256 * 1024, gt=0)   # 256KB read buffer

    # Application
    LOG_LEVEL: str = "INFO"
    CORS_ORIGINS: Union[str, List[str]] = ["*"]

    @model_validator(mode="before")
    @classmethod
    def parse_cors_origins(cls, values):
        """Parse CORS_ORIGINS from comma-separated string to list."""
        if isinstance(values, dict) and isinstance(values.get("CORS_ORIGINS"), str):
            values["CORS_ORIGINS"] = [
                origin.strip() for origin in values["CORS_ORIGINS"].split(",")
                if origin.strip()
            ]
        return values

    @model_validator(mode="after")
    def check_log_level(self):
        """Normalise LOG_LEVEL and reject names logging does not know."""
        level = self.LOG_LEVEL.upper()
        if level not in ("CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"):
            raise ValueError(f"Unknown LOG_LEVEL: {self.LOG_LEVEL}")
        self.LOG_LEVEL = level
        return self

    @property
    def s3_endpoint_url(self) -> Optional[str]:
        """Endpoint URL with protocol, or None for the AWS default."""
        if not self.S3_ENDPOINT:
            return None
        if self.S3_ENDPOINT.startswith(('http://', 'https://')):
            return self.S3_ENDPOINT
        protocol = 'https' if self.S3_SECURE else 'http'
        return f"{protocol}://{self.S3_ENDPOINT}"

    class Config:
        env_file = ".env"
        case_sensitive = True


@lru_cache
def get_settings() -> Settings:
    """Settings read from the environment, built once per process."""
    return Settings()
