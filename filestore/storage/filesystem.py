"""
Filesystem storage backend implementation.

Stores files flat in a single root directory:
- {root}/{file_id}       - content
- {root}/{file_id}.json  - metadata sidecar
"""

import errno
import logging
import os
import shutil
from pathlib import Path
from typing import Callable, Optional, Union

from filestore.common.errors import ConfigurationError, CorruptMetadataError, NotFoundError
from filestore.common.metrics import track_storage_operation
from filestore.storage.adapter import LocalStorageAdapter
from filestore.storage.metadata import FileMetadata, compute_md5, now_ms

logger = logging.getLogger(__name__)

META_SUFFIX = ".json"


class FilesystemStorage(LocalStorageAdapter):
    """
    Filesystem-based storage implementation.

    The root directory is validated on construction so a misconfigured
    deployment fails at startup instead of on the first upload.
    """

    name = "fs"

    def __init__(self, base_path: Union[str, Path]):
        """
        Initialize filesystem storage.

        Args:
            base_path: Absolute root directory for all content

        Raises:
            ConfigurationError: If the root is relative, cannot be created,
                is not a directory or is not writable
        """
        self.base_path = Path(base_path)
        self._ensure_structure()
        logger.info(f"Storing files into: {self.base_path}")

    def _ensure_structure(self) -> None:
        """Validate the root directory, creating it if needed."""
        if not str(self.base_path) or not self.base_path.is_absolute():
            raise ConfigurationError(
                f"Storage path must be absolute: '{self.base_path}'")

        try:
            self.base_path.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise ConfigurationError(
                f"Cannot create storage directory {self.base_path}: {e}") from e

        if not self.base_path.is_dir():
            raise ConfigurationError(f"Storage path is not a directory: {self.base_path}")
        if not os.access(self.base_path, os.W_OK):
            raise ConfigurationError(f"Storage directory is not writable: {self.base_path}")

    def _file_path(self, file_id: str) -> Path:
        return self.base_path / file_id

    def _meta_path(self, file_id: str) -> Path:
        return self.base_path / f"{file_id}{META_SUFFIX}"

    @staticmethod
    def _is_valid_id(file_id: str) -> bool:
        """Ids must name a plain entry directly below the root."""
        return (
            bool(file_id)
            and not file_id.startswith(".")
            and "/" not in file_id
            and "\\" not in file_id
            and "\x00" not in file_id
        )

    def _require(self, file_id: str) -> None:
        if not self.exists(file_id):
            raise NotFoundError(f"File not found: {file_id}", file_id=file_id)

    def exists(self, file_id: str) -> bool:
        """Check if a file exists."""
        if not self._is_valid_id(file_id):
            return False
        return self._file_path(file_id).is_file()

    def local_path(self, file_id: str) -> Path:
        """Absolute path of the stored content."""
        self._require(file_id)
        path = self._file_path(file_id)
        logger.debug(f"File {file_id} located at: {path}")
        return path

    def get_metadata(self, file_id: str) -> FileMetadata:
        """Load the metadata sidecar."""
        self._require(file_id)
        return self._read_meta(file_id)

    @track_storage_operation("fs", "upload")
    def upload(
        self,
        file_id: str,
        source_path: Union[str, Path],
        original_name: str,
        mime: str,
        size: Optional[int] = None,
    ) -> FileMetadata:
        """Move a staged file into the store."""
        if not self._is_valid_id(file_id):
            raise NotFoundError(f"Invalid file id: {file_id}", file_id=file_id)

        source_path = Path(source_path)
        meta_path = self._meta_path(file_id)
        file_path = self._file_path(file_id)

        metadata = FileMetadata(
            id=file_id,
            original_name=original_name,
            mime=mime,
            size=source_path.stat().st_size,
            iat=now_ms(),
            md5=compute_md5(source_path),
        )
        if size is not None and size != metadata.size:
            logger.debug(
                f"Declared size {size} differs from actual size {metadata.size} for {file_id}")

        logger.debug(f"Target: {file_path}, {meta_path}")

        try:
            meta_path.write_text(metadata.to_json())
            self._transfer_safe(shutil.move, source_path, file_path)
            os.utime(file_path, None)
        except Exception:
            self._remove_quietly(meta_path, file_path)
            raise

        return metadata

    @track_storage_operation("fs", "copy")
    def copy(self, file_id: str, new_file_id: str) -> FileMetadata:
        """Duplicate a file under a new id."""
        self._require(file_id)
        if not self._is_valid_id(new_file_id):
            raise NotFoundError(f"Invalid file id: {new_file_id}", file_id=new_file_id)

        old_meta = self._read_meta(file_id)
        old_file_path = self._file_path(file_id)
        new_meta_path = self._meta_path(new_file_id)
        new_file_path = self._file_path(new_file_id)

        # Bytes are copied verbatim, so the digest carries over.
        new_meta = FileMetadata(
            id=new_file_id,
            original_name=old_meta.original_name,
            mime=old_meta.mime,
            size=old_meta.size,
            iat=now_ms(),
            md5=old_meta.md5,
        )

        logger.debug(f"Target: {new_file_path}, {new_meta_path}")

        try:
            new_meta_path.write_text(new_meta.to_json())
            self._transfer_safe(shutil.copyfile, old_file_path, new_file_path)
            os.utime(new_file_path, None)
        except Exception:
            self._remove_quietly(new_meta_path, new_file_path)
            raise

        return new_meta

    @track_storage_operation("fs", "delete")
    def delete(self, file_id: str) -> None:
        """Delete content and sidecar; either may already be gone."""
        self._require(file_id)

        meta_path = self._meta_path(file_id)
        file_path = self._file_path(file_id)
        logger.debug(f"Deleting {file_id}: meta={meta_path.exists()}, content={file_path.exists()}")

        meta_path.unlink(missing_ok=True)
        file_path.unlink(missing_ok=True)

    # ---

    def _read_meta(self, file_id: str) -> FileMetadata:
        meta_path = self._meta_path(file_id)
        if not meta_path.exists():
            raise NotFoundError(f"No metadata for file: {file_id}", file_id=file_id)

        try:
            payload = meta_path.read_bytes()
        except OSError as e:
            raise CorruptMetadataError(f"Error while reading metadata of {file_id}: {e}") from e

        return FileMetadata.from_json(payload)

    @staticmethod
    def _transfer_safe(
        transfer: Callable[[Path, Path], object],
        source: Path,
        destination: Path,
    ) -> None:
        """
        Move or copy ``source`` to ``destination``.

        Moving onto a mount that cannot hold POSIX permissions (SMB, some
        container volumes) raises EPERM while setting the mode even though the
        bytes arrived. The error is ignored when the destination exists.
        """
        try:
            transfer(source, destination)
        except PermissionError as e:
            if e.errno == errno.EPERM and destination.exists():
                logger.warning(
                    f"Ignoring permission error after transfer to {destination}: {e}")
                return
            logger.error(f"Failed to transfer '{source}' --> '{destination}': {e}")
            raise

    @staticmethod
    def _remove_quietly(*paths: Path) -> None:
        for path in paths:
            try:
                path.unlink(missing_ok=True)
            except OSError as e:
                logger.warning(f"Rollback could not remove {path}: {e}")
