"""
Upload validator.

Admits or rejects staged uploads by their sniffed content type, checked
against a configured allow-list of file type tokens (extensions).
"""

import codecs
import logging
import mimetypes
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Optional, Union

import magic

from filestore.common.errors import ValidationError
from filestore.common.metrics import upload_rejections_total

logger = logging.getLogger(__name__)

# Number of header bytes handed to libmagic
SNIFF_BYTES = 2048

# Old binary office formats libmagic reports only as generic OLE containers
LEGACY_OFFICE_TYPES = {"doc", "xls", "ppt"}

# Types libmagic reports for content that is plain text at heart
TEXTUAL_MIMES = {
    "application/json",
    "application/xml",
    "application/x-empty",
    "inode/x-empty",
    "image/svg+xml",
    "application/csv",
    "application/x-ndjson",
}

EMPTY_MIMES = {"application/x-empty", "inode/x-empty"}

UNKNOWN_MIMES = {"application/octet-stream", "application/x-data", ""}

MIME_EXTENSIONS = {
    "image/jpeg": "jpg",
    "image/png": "png",
    "image/gif": "gif",
    "image/webp": "webp",
    "image/tiff": "tif",
    "image/bmp": "bmp",
    "image/x-ms-bmp": "bmp",
    "image/jp2": "jp2",
    "image/jpx": "jpx",
    "image/jpm": "jpm",
    "image/flif": "flif",
    "application/zip": "zip",
    "application/x-tar": "tar",
    "application/gzip": "gz",
    "application/x-gzip": "gz",
    "application/x-bzip2": "bz2",
    "application/x-7z-compressed": "7z",
    "video/mp4": "mp4",
    "audio/ogg": "ogg",
    "video/ogg": "ogg",
    "application/ogg": "ogg",
    "video/x-matroska": "mkv",
    "video/webm": "webm",
    "video/quicktime": "mov",
    "video/x-msvideo": "avi",
    "audio/mpeg": "mp3",
    "audio/x-wav": "wav",
    "audio/wav": "wav",
    "application/pdf": "pdf",
    "text/rtf": "rtf",
    "application/rtf": "rtf",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document": "docx",
    "application/vnd.openxmlformats-officedocument.presentationml.presentation": "pptx",
    "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet": "xlsx",
    "application/msword": "doc",
    "application/vnd.ms-excel": "xls",
    "application/vnd.ms-powerpoint": "ppt",
    "application/vnd.oasis.opendocument.text": "odt",
    "application/vnd.oasis.opendocument.spreadsheet": "ods",
    "application/vnd.oasis.opendocument.presentation": "odp",
}


@dataclass(frozen=True)
class DetectedType:
    """Outcome of a successful validation."""
    extension: str
    mime: Optional[str] = None


def file_extension(filename: str) -> str:
    """Lower-cased extension of ``filename`` without the dot."""
    return Path(filename).suffix[1:].lower()


def extension_for_mime(mime: str) -> Optional[str]:
    """Canonical extension for a MIME type, or None if unknown."""
    mime = mime.lower()
    if mime in MIME_EXTENSIONS:
        return MIME_EXTENSIONS[mime]
    guessed = mimetypes.guess_extension(mime)
    return guessed[1:] if guessed else None


def looks_like_text(chunk: bytes) -> bool:
    """
    Heuristic text check on a header chunk.

    Text has no NUL bytes and either decodes as UTF-8 (a multi-byte sequence
    cut at the chunk boundary is fine) or is mostly printable.
    """
    if not chunk:
        return True
    if b"\x00" in chunk:
        return False

    try:
        codecs.getincrementaldecoder("utf-8")().decode(chunk, final=False)
        return True
    except UnicodeDecodeError:
        pass

    printable = sum(1 for byte in chunk if byte >= 0x20 or byte in b"\t\n\r\f\b")
    return printable / len(chunk) >= 0.95


def is_textual_mime(mime: str) -> bool:
    return mime.startswith("text/") or mime in TEXTUAL_MIMES


class UploadValidator:
    """
    Validator for staged uploads.

    Binary content is identified by its signature and must map to an allowed
    type; text content has no signature, so its file name extension decides.
    """

    def __init__(self, allowed_types: Iterable[str], max_size: Optional[int] = None):
        """
        Initialize the validator.

        Args:
            allowed_types: Allowed type tokens (extensions, without dot)
            max_size: Maximum upload size in bytes (unlimited if None)
        """
        self.allowed_types = {t.lower().lstrip(".") for t in allowed_types}
        self.max_size = max_size

    def is_allowed(self, token: Optional[str]) -> bool:
        return bool(token) and token.lower() in self.allowed_types

    def validate(self, path: Union[str, Path], original_name: str) -> DetectedType:
        """
        Check a staged upload against the allow-list.

        Args:
            path: Path of the staged file
            original_name: Client-side file name

        Returns:
            The detected type

        Raises:
            ValidationError: If the upload is not acceptable
        """
        path = Path(path)
        ext = file_extension(original_name)
        logger.debug(f"validate(): original_name={original_name}, ext={ext}")

        try:
            size = path.stat().st_size
        except OSError as e:
            raise ValidationError(f"Cannot read uploaded file: {e}") from e

        if self.max_size is not None and size > self.max_size:
            upload_rejections_total.labels(reason="size").inc()
            raise ValidationError(
                f"File size {size} exceeds maximum {self.max_size}")

        if ext in LEGACY_OFFICE_TYPES and self.is_allowed(ext):
            return DetectedType(extension=ext, mime=mimetypes.guess_type(original_name)[0])

        try:
            with open(path, "rb") as f:
                chunk = f.read(SNIFF_BYTES)
            mime = (magic.from_buffer(chunk, mime=True) or "").lower()
        except (OSError, magic.MagicException) as e:
            raise ValidationError(f"Error while reading or detecting the file: {e}") from e

        logger.debug(f"validate(): sniffed mime={mime}")

        if is_textual_mime(mime) or (mime in UNKNOWN_MIMES and looks_like_text(chunk)):
            if not self.is_allowed(ext):
                self._reject(f"Text file type not allowed: '{ext}'")
            if mime in EMPTY_MIMES or mime in UNKNOWN_MIMES:
                return DetectedType(extension=ext)
            return DetectedType(extension=ext, mime=mime)

        if mime in UNKNOWN_MIMES:
            self._reject("File type unknown")

        identified = extension_for_mime(mime)
        if not self.is_allowed(identified):
            self._reject(f"File type not allowed: {mime}")

        return DetectedType(extension=identified, mime=mime)

    @staticmethod
    def _reject(message: str) -> None:
        upload_rejections_total.labels(reason="type").inc()
        raise ValidationError(f"Invalid file: {message}")
