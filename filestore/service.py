"""File service: the operations collaborators call."""

import logging
import mimetypes
from pathlib import Path
from typing import Optional

from filestore.cache.materialization import MaterializationCache
from filestore.cache.metadata import MetadataCache
from filestore.common.logging_config import setup_logging
from filestore.config.settings import Settings, get_settings
from filestore.ingest.allocator import IdentifierAllocator
from filestore.ingest.validator import UNKNOWN_MIMES, UploadValidator
from filestore.media.icons import IconSet
from filestore.media.options import TransformOptions
from filestore.media.service import ImageDerivationService, ProvidedImage
from filestore.storage.adapter import StorageAdapter
from filestore.storage.factory import create_storage_adapter
from filestore.storage.metadata import FileMetadata, ProvidedFile, UploadedFile

logger = logging.getLogger(__name__)

DEFAULT_MIME = "application/octet-stream"


class FileService:
    """
    Orchestrates uploads, copies, deletes and local access to stored files.

    Each call is a sequential chain of blocking I/O; the service itself is
    safe to share between request threads.
    """

    def __init__(
        self,
        adapter: StorageAdapter,
        metadata_cache: MetadataCache,
        materialization_cache: MaterializationCache,
        images: ImageDerivationService,
        validator: UploadValidator,
        allocator: Optional[IdentifierAllocator] = None,
    ):
        self.adapter = adapter
        self.metadata_cache = metadata_cache
        self.materialization_cache = materialization_cache
        self.images = images
        self.validator = validator
        self.allocator = allocator or IdentifierAllocator(adapter)

    def file_exists(self, file_id: str) -> bool:
        return self.adapter.exists(file_id)

    def get_file_meta(self, file_id: str) -> FileMetadata:
        """
        Metadata of a stored file.

        Raises:
            NotFoundError: If the file does not exist
        """
        return self.metadata_cache.get(file_id)

    def provide_local_file(self, file_id: str) -> ProvidedFile:
        """
        Metadata plus a local path holding the file's bytes.

        Raises:
            NotFoundError: If the file does not exist
        """
        metadata = self.metadata_cache.get(file_id)
        local_path = self.materialization_cache.materialize(file_id)
        return ProvidedFile(metadata=metadata, local_path=local_path)

    def create_file_from_upload(self, upload: UploadedFile) -> FileMetadata:
        """
        Validate and store a staged upload under a fresh id.

        The staged file is removed afterwards unless the adapter consumed it.

        Args:
            upload: Staged upload

        Returns:
            Metadata of the stored file

        Raises:
            ValidationError: If the upload is rejected
        """
        staged = Path(upload.path)
        try:
            detected = self.validator.validate(staged, upload.original_name)
            mime = self._resolve_mime(upload, detected.mime)

            file_id = self.allocator.allocate()
            metadata = self.adapter.upload(
                file_id, staged, upload.original_name, mime, upload.size)
            self.metadata_cache.put(metadata)
        finally:
            self._discard_staged(staged)

        logger.info(
            f"Stored upload {upload.original_name} as {metadata.id}",
            extra={"extra_fields": {
                "file_id": metadata.id,
                "mime": metadata.mime,
                "size": metadata.size,
            }},
        )
        return metadata

    def copy_file(self, file_id: str) -> FileMetadata:
        """
        Duplicate a stored file under a fresh id.

        Raises:
            NotFoundError: If the source does not exist
        """
        new_file_id = self.allocator.allocate()
        metadata = self.adapter.copy(file_id, new_file_id)
        self.metadata_cache.put(metadata)
        logger.info(f"Copied {file_id} to {new_file_id}")
        return metadata

    def delete_file(self, file_id: str) -> None:
        """
        Delete a stored file and forget its metadata.

        Raises:
            NotFoundError: If the file does not exist
        """
        self.adapter.delete(file_id)
        self.metadata_cache.invalidate(file_id)
        logger.info(f"Deleted {file_id}")

    def provide_local_image_file(self, file_id: str, options: TransformOptions) -> ProvidedImage:
        """Image for ``file_id``, or an icon or placeholder standing in for it."""
        return self.images.provide_image(file_id, options)

    def close(self) -> None:
        """Stop background work."""
        self.metadata_cache.stop()

    @staticmethod
    def _resolve_mime(upload: UploadedFile, sniffed: Optional[str]) -> str:
        declared = (upload.mime or "").strip()
        if declared and declared.lower() != DEFAULT_MIME:
            return declared
        if sniffed and sniffed not in UNKNOWN_MIMES:
            return sniffed
        guessed, _ = mimetypes.guess_type(upload.original_name)
        return guessed or DEFAULT_MIME

    @staticmethod
    def _discard_staged(staged: Path) -> None:
        try:
            staged.unlink(missing_ok=True)
        except OSError as e:
            logger.warning(f"Could not remove staged upload {staged}: {e}")


def create_file_service(
    settings: Optional[Settings] = None,
    adapter: Optional[StorageAdapter] = None,
    configure_logging: bool = False,
) -> FileService:
    """
    Wire a FileService from settings.

    Args:
        settings: Settings to use (process settings if None)
        adapter: Storage adapter (built from settings if None)
        configure_logging: Also configure the root logger

    Raises:
        ConfigurationError: If a storage or cache location is unusable
    """
    settings = settings or get_settings()
    if configure_logging:
        setup_logging(settings.log_level, json_format=settings.log_json)

    adapter = adapter or create_storage_adapter(settings)
    cache_root = Path(settings.local_cache_path)
    derived_dir = cache_root / "derived"

    metadata_cache = MetadataCache(
        adapter,
        ttl_seconds=settings.metadata_cache_ttl_seconds,
        check_period_seconds=settings.metadata_cache_check_period_seconds,
        max_entries=settings.metadata_cache_max_entries,
    )
    materialization_cache = MaterializationCache(adapter, cache_root)
    icons = IconSet(
        icons_dir=settings.icons_base_dir,
        available_icons=settings.thumbnail_file_icons,
        fallback_dir=derived_dir,
        no_image_filename=settings.no_image_filename,
        blank_filename=settings.blank_image_filename,
    )
    images = ImageDerivationService(
        metadata_cache,
        materialization_cache,
        icons,
        derived_dir=derived_dir,
        max_image_size=settings.max_image_size,
    )
    validator = UploadValidator(
        settings.allowed_file_types, max_size=settings.max_upload_file_size)

    metadata_cache.start()
    return FileService(
        adapter=adapter,
        metadata_cache=metadata_cache,
        materialization_cache=materialization_cache,
        images=images,
        validator=validator,
    )
