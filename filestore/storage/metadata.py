"""
Metadata records kept alongside every stored content object.

The persisted JSON layout is ``{id, originalName, mime, size, iat, md5}``
with ``iat`` in epoch milliseconds.
"""

import hashlib
import json
import time
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, Dict, Optional, Union

from filestore.common.errors import CorruptMetadataError

NIL_FILE_ID = "00000000-0000-0000-0000-000000000000"

HASH_CHUNK_SIZE = 1024 * 1024

REQUIRED_KEYS = ("id", "originalName", "mime", "size", "iat", "md5")


def now_ms() -> int:
    """Current time as epoch milliseconds."""
    return int(time.time() * 1000)


def compute_md5(path: Union[str, Path]) -> str:
    """Hex MD5 digest of a file, read in chunks."""
    digest = hashlib.md5()
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(HASH_CHUNK_SIZE), b""):
            digest.update(chunk)
    return digest.hexdigest()


@dataclass(frozen=True)
class FileMetadata:
    """Metadata of one stored object. Immutable once created."""
    id: str
    original_name: str
    mime: str
    size: int
    iat: int  # epoch milliseconds
    md5: str

    @property
    def is_image(self) -> bool:
        return self.mime.lower().startswith("image/")

    @property
    def iat_seconds(self) -> float:
        return self.iat / 1000

    def with_id(self, file_id: str) -> "FileMetadata":
        return replace(self, id=file_id)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "originalName": self.original_name,
            "mime": self.mime,
            "size": self.size,
            "iat": self.iat,
            "md5": self.md5,
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), indent=4)

    @classmethod
    def from_dict(cls, data: Any) -> "FileMetadata":
        """
        Build a record from its persisted form.

        Raises:
            CorruptMetadataError: If the payload is not a complete record
        """
        if not isinstance(data, dict):
            raise CorruptMetadataError("Metadata record is not an object")

        missing = [key for key in REQUIRED_KEYS if key not in data]
        if missing:
            raise CorruptMetadataError(
                f"Metadata record is missing fields: {', '.join(missing)}")
        if not data["id"]:
            raise CorruptMetadataError("Metadata record has an empty id")

        try:
            return cls(
                id=str(data["id"]),
                original_name=str(data["originalName"]),
                mime=str(data["mime"]),
                size=int(data["size"]),
                iat=int(data["iat"]),
                md5=str(data["md5"]),
            )
        except (TypeError, ValueError) as e:
            raise CorruptMetadataError(f"Metadata record has invalid values: {e}") from e

    @classmethod
    def from_json(cls, payload: Union[str, bytes]) -> "FileMetadata":
        try:
            data = json.loads(payload)
        except (ValueError, UnicodeDecodeError) as e:
            raise CorruptMetadataError(f"Metadata record is not valid JSON: {e}") from e
        return cls.from_dict(data)

    def to_response(self) -> Dict[str, Any]:
        """
        Summary handed to collaborators (document layer, transport).

        Returns:
            Dictionary with id, split mime type, raw mime, name, image flag and md5
        """
        parts = self.mime.split("/")
        if len(parts) == 2:
            mime_type = [part.lower() for part in parts]
        else:
            mime_type = ["binary", "octet-stream"]

        return {
            "id": self.id,
            "mimeType": mime_type,
            "mimeTypeRaw": self.mime,
            "name": self.original_name,
            "isImage": mime_type[0] == "image",
            "md5": self.md5,
        }


@dataclass
class UploadedFile:
    """A staged upload. ``mime`` and ``size`` are client-declared hints."""
    path: Path
    original_name: str
    mime: str = ""
    size: Optional[int] = None


@dataclass
class ProvidedFile:
    """
    Metadata plus a local path that is readable at return time.

    The path may point into a cache that external housekeeping sweeps, so it
    should be consumed promptly.
    """
    metadata: FileMetadata
    local_path: Path
