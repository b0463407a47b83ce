"""
Storage backend abstraction for file content and metadata.

Provides adapters for filesystem and S3 storage backends.
"""

from filestore.storage.adapter import LocalStorageAdapter, RemoteStorageAdapter, StorageAdapter
from filestore.storage.factory import create_storage_adapter
from filestore.storage.filesystem import FilesystemStorage
from filestore.storage.metadata import FileMetadata, ProvidedFile, UploadedFile
from filestore.storage.s3 import S3Storage

__all__ = [
    "StorageAdapter",
    "LocalStorageAdapter",
    "RemoteStorageAdapter",
    "FilesystemStorage",
    "S3Storage",
    "FileMetadata",
    "ProvidedFile",
    "UploadedFile",
    "create_storage_adapter",
]
