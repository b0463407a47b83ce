"""
Image derivation service.

Serves resized variants of stored images. Non-image files are represented by
a type icon and unknown ids by a placeholder, so a caller asking for an image
always gets one. Rendered variants are kept on disk for good: ids are never
reused, so a variant that exists is always current.
"""

import logging
import re
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Optional, Union

from filestore.cache.materialization import MaterializationCache, ensure_writable_dir
from filestore.cache.metadata import MetadataCache
from filestore.common.errors import CorruptMetadataError, NotFoundError
from filestore.common.logging_config import PerformanceTracker
from filestore.common.metrics import image_derivations_total, image_transform_duration_seconds
from filestore.media.icons import IconSet, extract_file_type
from filestore.media.options import TransformOptions
from filestore.media.processor import ImageTransformer, derivative_extension
from filestore.storage.metadata import FileMetadata, ProvidedFile

logger = logging.getLogger(__name__)

UNSAFE_NAME_CHARS = re.compile(r"[^A-Za-z0-9_.-]")


class SubstitutionReason(str, Enum):
    """Why a substitute image was served instead of the file itself."""
    ICON = "icon"
    NOT_FOUND = "not_found"
    PROCESSING_FAILED = "processing_failed"


@dataclass
class Found(ProvidedFile):
    """A derivative of the requested image."""
    pass


@dataclass
class Substituted(ProvidedFile):
    """An icon or placeholder standing in for the requested file."""
    reason: SubstitutionReason


ProvidedImage = Union[Found, Substituted]


@dataclass
class _Source:
    identity: str
    metadata: FileMetadata
    local_path: Optional[Path] = None
    reason: Optional[SubstitutionReason] = None


def _safe_name(value: str) -> str:
    return UNSAFE_NAME_CHARS.sub("_", value)


class ImageDerivationService:
    """
    Resolves a file id to a transformed image on local disk.
    """

    def __init__(
        self,
        metadata_cache: MetadataCache,
        materialization_cache: MaterializationCache,
        icons: IconSet,
        derived_dir: Union[str, Path],
        max_image_size: int = 1600,
        transformer: Optional[ImageTransformer] = None,
    ):
        """
        Initialize the service.

        Args:
            metadata_cache: Metadata lookups
            materialization_cache: Local copies of stored images
            icons: Type icons and placeholders
            derived_dir: Directory holding rendered variants
            max_image_size: Upper bound for requested width and height
            transformer: Image renderer (Pillow based by default)
        """
        self.metadata_cache = metadata_cache
        self.materialization_cache = materialization_cache
        self.icons = icons
        self.derived_dir = ensure_writable_dir(derived_dir, "derived image cache")
        self.max_image_size = max_image_size
        self.transformer = transformer or ImageTransformer()

    def provide_image(self, file_id: str, options: TransformOptions) -> ProvidedImage:
        """
        Image for ``file_id`` transformed by ``options``.

        Missing files and failed transforms yield a placeholder instead of an
        error.

        Raises:
            StorageBackendError: If the backend cannot be reached
        """
        options = options.clamped(self.max_image_size)
        source = self._resolve_source(file_id)

        target = self._target_for(source, options)
        if target.exists():
            return self._cached(source, target)

        if source.local_path is None:
            try:
                source.local_path = self.materialization_cache.materialize(file_id)
            except NotFoundError as e:
                # Metadata outlived its content
                logger.warning(f"Content of {file_id} is missing: {e}")
                source = self._placeholder_source()
                target = self._target_for(source, options)
                if target.exists():
                    return self._cached(source, target)

        return self._render(file_id, source, target, options)

    def _target_for(self, source: _Source, options: TransformOptions) -> Path:
        extension = derivative_extension(source.metadata.mime)
        return self.derived_dir / f"{_safe_name(source.identity)}_{options.cache_key()}.{extension}"

    def _cached(self, source: _Source, target: Path) -> ProvidedImage:
        image_derivations_total.labels(outcome=self._outcome(source, "cached")).inc()
        return self._result(source, target)

    def _render(
        self,
        file_id: str,
        source: _Source,
        target: Path,
        options: TransformOptions,
    ) -> ProvidedImage:
        try:
            with PerformanceTracker(
                "image_transform", logger, file_id=file_id, source=source.identity
            ) as tracker:
                self.transformer.transform(
                    source.local_path, target, options, mtime=source.metadata.iat_seconds)
            image_transform_duration_seconds.observe(tracker.duration_seconds)
        except Exception as e:
            logger.error(f"Failed to render image for {file_id}: {e}", exc_info=True)
            image_derivations_total.labels(outcome=SubstitutionReason.PROCESSING_FAILED.value).inc()
            placeholder = self.icons.no_image.provided
            return Substituted(
                metadata=placeholder.metadata,
                local_path=placeholder.local_path,
                reason=SubstitutionReason.PROCESSING_FAILED,
            )

        image_derivations_total.labels(outcome=self._outcome(source, "rendered")).inc()
        return self._result(source, target)

    def _placeholder_source(self) -> _Source:
        placeholder = self.icons.no_image.provided
        return _Source(
            identity="no-image",
            metadata=placeholder.metadata,
            local_path=placeholder.local_path,
            reason=SubstitutionReason.NOT_FOUND,
        )

    def _resolve_source(self, file_id: str) -> _Source:
        try:
            metadata = self.metadata_cache.get(file_id)
        except (NotFoundError, CorruptMetadataError) as e:
            logger.info(f"No image for {file_id}, using placeholder: {e}")
            return self._placeholder_source()

        if metadata.is_image:
            # Materialized only when the variant has to be rendered.
            return _Source(identity=metadata.id, metadata=metadata)

        token = extract_file_type(metadata)
        icon = self.icons.icon_for(token)
        if icon is self.icons.blank.provided:
            identity = "blank"
        else:
            identity = f"icon-{token.lower()}"

        return _Source(
            identity=identity,
            metadata=icon.metadata.with_id(file_id),
            local_path=icon.local_path,
            reason=SubstitutionReason.ICON,
        )

    @staticmethod
    def _outcome(source: _Source, default: str) -> str:
        return source.reason.value if source.reason else default

    @staticmethod
    def _result(source: _Source, path: Path) -> ProvidedImage:
        if source.reason is None:
            return Found(metadata=source.metadata, local_path=path)
        return Substituted(metadata=source.metadata, local_path=path, reason=source.reason)
