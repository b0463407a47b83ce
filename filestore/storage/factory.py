"""
Storage factory for creating storage adapter instances.

The backend is chosen once from configuration; the rest of the application
only sees the StorageAdapter interface.
"""

import logging
from typing import Optional

from filestore.common.errors import ConfigurationError
from filestore.config.settings import Settings, get_settings
from filestore.storage.adapter import StorageAdapter
from filestore.storage.filesystem import FilesystemStorage
from filestore.storage.s3 import S3Storage

logger = logging.getLogger(__name__)

FILESYSTEM_BACKENDS = {"fs", "fs://", "filesystem"}
S3_BACKENDS = {"s3", "s3://"}


def create_storage_adapter(settings: Optional[Settings] = None) -> StorageAdapter:
    """
    Build a storage adapter from settings.

    Args:
        settings: Settings to use (process settings if None)

    Returns:
        StorageAdapter instance (FilesystemStorage or S3Storage)

    Raises:
        ConfigurationError: If the backend is not supported or unusable
    """
    settings = settings or get_settings()
    backend = settings.storage_backend.lower().strip()

    if backend in FILESYSTEM_BACKENDS:
        adapter: StorageAdapter = FilesystemStorage(base_path=settings.storage_path)
    elif backend in S3_BACKENDS:
        adapter = S3Storage(
            bucket=settings.s3_bucket,
            endpoint_url=settings.s3_endpoint_url,
            region=settings.s3_region,
            access_key_id=settings.aws_access_key_id,
            secret_access_key=settings.aws_secret_access_key,
            create_bucket=settings.s3_create_bucket,
            connect_timeout=settings.s3_connect_timeout,
            read_timeout=settings.s3_read_timeout,
            max_attempts=settings.s3_max_attempts,
        )
    else:
        raise ConfigurationError(
            f"Unsupported storage backend: {settings.storage_backend}. "
            "Supported backends: 'fs', 'filesystem', 's3'"
        )

    logger.info(f"Storage adapter initialized: {adapter.name}")
    return adapter

