"""
Error taxonomy shared by every layer of the file store.

All errors derive from FileStoreError so callers at the transport boundary
can map them to responses in one place.
"""

from typing import Optional


class FileStoreError(Exception):
    """Base class for file store errors."""
    pass


class NotFoundError(FileStoreError):
    """Raised when a content object or its metadata does not exist."""

    def __init__(self, message: str, file_id: Optional[str] = None):
        super().__init__(message)
        self.file_id = file_id


class ValidationError(FileStoreError):
    """Raised for disallowed uploads and malformed transform options."""
    pass


class StorageBackendError(FileStoreError):
    """Wrapped backend or transport failure."""

    def __init__(self, message: str, code: Optional[str] = None):
        super().__init__(message)
        self.code = code


class CorruptMetadataError(FileStoreError):
    """Raised when a persisted metadata record cannot be read."""
    pass


class ConfigurationError(FileStoreError):
    """Raised at startup for unusable storage or cache locations."""
    pass
