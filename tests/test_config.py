"""Tests for settings loading and backend selection."""

import pytest
from pydantic import ValidationError

from blob_transfer.core.config import Settings
from blob_transfer.core.dependencies import build_block_store
from blob_transfer.core.memory_store import MemoryBlockStore
from transfer_schemas.transfer import StorageBackend


def test_defaults():
    settings = Settings(_env_file=None)

    assert settings.STORAGE_BACKEND == StorageBackend.S3
    assert settings.CONTAINER_NAME == "uploads"
    assert settings.CHUNK_SIZE == 1024 * 1024
    assert settings.STAGE_CONCURRENCY == 1
    assert settings.CORS_ORIGINS == ["*"]
    assert settings.s3_endpoint_url is None


def test_values_come_from_environment(monkeypatch):
    monkeypatch.setenv("CONTAINER_NAME", "env-bucket")
    monkeypatch.setenv("CHUNK_SIZE", "5242880")
    monkeypatch.setenv("CORS_ORIGINS", "http://a.example, http://b.example")
    monkeypatch.setenv("LOG_LEVEL", "debug")

    settings = Settings(_env_file=None)

    assert settings.CONTAINER_NAME == "env-bucket"
    assert settings.CHUNK_SIZE == 5242880
    assert settings.CORS_ORIGINS == ["http://a.example", "http://b.example"]
    assert settings.LOG_LEVEL == "DEBUG"


def test_unknown_log_level_is_rejected():
    with pytest.raises(ValidationError):
        Settings(_env_file=None, LOG_LEVEL="chatty")


@pytest.mark.parametrize("field", ["CHUNK_SIZE", "DOWNLOAD_CHUNK_SIZE", "STAGE_CONCURRENCY"])
def test_transfer_tuning_must_be_positive(field):
    with pytest.raises(ValidationError):
        Settings(_env_file=None, **{field: 0})


@pytest.mark.parametrize("endpoint,secure,expected", [
    ("minio:9000", False, "http://minio:9000"),
    ("minio:9000", True, "https://minio:9000"),
    ("https://s3.example.com", False, "https://s3.example.com"),
])
def test_s3_endpoint_url(endpoint, secure, expected):
    settings = Settings(_env_file=None, S3_ENDPOINT=endpoint, S3_SECURE=secure)
    assert settings.s3_endpoint_url == expected


def test_memory_backend_builds_memory_store():
    settings = Settings(_env_file=None, STORAGE_BACKEND="memory", CONTAINER_NAME="scratch")

    store = build_block_store(settings)

    assert isinstance(store, MemoryBlockStore)
    assert store.container == "scratch"
