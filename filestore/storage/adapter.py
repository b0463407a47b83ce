"""
Abstract base classes for storage backends.

Defines the interface that all storage implementations must follow. Backends
come in two flavours selected once from configuration:

- local adapters keep bytes on a filesystem the process can read directly
- remote adapters keep bytes elsewhere and can download them on request

Callers never inspect which flavour they hold; they ask the adapter to
``materialize`` a file and each flavour answers in its own way.
"""

from abc import ABC, abstractmethod
from pathlib import Path
from typing import TYPE_CHECKING, Optional, Union

from filestore.storage.metadata import FileMetadata

if TYPE_CHECKING:
    from filestore.cache.materialization import MaterializationCache


class StorageAdapter(ABC):
    """
    Abstract base class for storage backends.

    Every content object is stored together with one metadata record carrying
    the same id.
    """

    #: Short backend name used in logs and metrics
    name: str = "abstract"

    @abstractmethod
    def exists(self, file_id: str) -> bool:
        """
        Check if a file exists.

        Args:
            file_id: File identifier

        Returns:
            True if file exists, False otherwise
        """
        pass

    @abstractmethod
    def get_metadata(self, file_id: str) -> FileMetadata:
        """
        Load the metadata record of a file.

        Raises:
            NotFoundError: If the file does not exist
            CorruptMetadataError: If the record cannot be read
        """
        pass

    @abstractmethod
    def upload(
        self,
        file_id: str,
        source_path: Union[str, Path],
        original_name: str,
        mime: str,
        size: Optional[int] = None,
    ) -> FileMetadata:
        """
        Store a staged file under ``file_id``.

        The adapter computes the md5 digest, byte size and ingestion time
        itself; ``mime`` and ``size`` are client hints.

        Args:
            file_id: Freshly allocated identifier
            source_path: Path of the staged upload
            original_name: Client-side file name
            mime: Declared MIME type
            size: Declared size in bytes

        Returns:
            The stored metadata record
        """
        pass

    @abstractmethod
    def copy(self, file_id: str, new_file_id: str) -> FileMetadata:
        """
        Duplicate a file's bytes and metadata under ``new_file_id``.

        The copy gets a fresh ingestion time and inherits everything else.

        Raises:
            NotFoundError: If the source does not exist
        """
        pass

    @abstractmethod
    def delete(self, file_id: str) -> None:
        """
        Delete a file and its metadata.

        Raises:
            NotFoundError: If the file does not exist
        """
        pass

    @abstractmethod
    def materialize(self, file_id: str, cache: "MaterializationCache") -> Path:
        """
        Return a local path holding the file's bytes now.

        Args:
            file_id: File identifier
            cache: Local cache remote backends may download into
        """
        pass


class LocalStorageAdapter(StorageAdapter):
    """Backend whose content is directly readable from the local filesystem."""

    @abstractmethod
    def local_path(self, file_id: str) -> Path:
        """
        Absolute path of the stored content.

        Raises:
            NotFoundError: If the file does not exist
        """
        pass

    def materialize(self, file_id: str, cache: "MaterializationCache") -> Path:
        return self.local_path(file_id)


class RemoteStorageAdapter(StorageAdapter):
    """Backend whose content has to be downloaded before local use."""

    @abstractmethod
    def download_to(self, file_id: str, dest_path: Union[str, Path]) -> None:
        """
        Download a file's content to ``dest_path``.

        Any pre-existing file at ``dest_path`` is replaced and the produced
        file's modification time is set to the object's ingestion time.

        Raises:
            NotFoundError: If the file does not exist
        """
        pass

    def materialize(self, file_id: str, cache: "MaterializationCache") -> Path:
        return cache.fetch(file_id, self.download_to)
