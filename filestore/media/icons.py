"""
File type icons and built-in placeholder images.

Non-image files are represented by a per-type icon from a configured icon
directory. Two placeholders back the lookup up: "blank" for types without an
icon and "no-image" for missing or unrenderable content.
"""

import logging
import mimetypes
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterable, Optional, Union

from PIL import Image, ImageDraw

from filestore.common.errors import ConfigurationError
from filestore.storage.metadata import NIL_FILE_ID, FileMetadata, ProvidedFile, compute_md5

logger = logging.getLogger(__name__)

PLACEHOLDER_SIZE = 256
PLACEHOLDER_IAT = 0


@dataclass(frozen=True)
class Placeholder:
    """A built-in image substituted for real content."""
    key: str
    display_name: str
    provided: ProvidedFile


def extract_file_type(metadata: FileMetadata) -> Optional[str]:
    """
    Type token of a stored file.

    The file name extension (two characters or more) wins; the MIME type
    is the fallback.
    """
    extension = Path(metadata.original_name).suffix[1:]
    if len(extension) > 1:
        return extension

    guessed = mimetypes.guess_extension(metadata.mime) if metadata.mime else None
    if guessed and len(guessed) > 1:
        return guessed[1:]

    return None


def _render_placeholder(path: Path, crossed: bool) -> None:
    """Draw a neutral placeholder PNG at ``path``."""
    image = Image.new("RGBA", (PLACEHOLDER_SIZE, PLACEHOLDER_SIZE), (235, 235, 235, 255))
    if crossed:
        draw = ImageDraw.Draw(image)
        edge = PLACEHOLDER_SIZE - 1
        margin = PLACEHOLDER_SIZE // 4
        draw.rectangle((margin, margin, edge - margin, edge - margin), outline=(160, 160, 160, 255), width=6)
        draw.line((margin, margin, edge - margin, edge - margin), fill=(160, 160, 160, 255), width=6)
        draw.line((margin, edge - margin, edge - margin, margin), fill=(160, 160, 160, 255), width=6)
    image.save(path, format="PNG")


class IconSet:
    """
    Resolves type tokens to icon files, memoizing each lookup.

    Icon metadata (including the md5 digest) is computed once per token and
    kept for the life of the process.
    """

    def __init__(
        self,
        icons_dir: Union[str, Path],
        available_icons: Iterable[str],
        fallback_dir: Union[str, Path],
        no_image_filename: str = "_no-image.png",
        blank_filename: str = "_blank.png",
    ):
        """
        Initialize the icon set.

        Args:
            icons_dir: Directory containing ``<token>.png`` icons and placeholders
            available_icons: Icon file names present in ``icons_dir``
            fallback_dir: Writable directory for rendered placeholders when the
                configured placeholder files are missing
            no_image_filename: Placeholder for missing content
            blank_filename: Placeholder for types without an icon
        """
        self.icons_dir = Path(icons_dir)
        self.available_icons = {name.lower() for name in available_icons}
        self.fallback_dir = Path(fallback_dir)

        self.no_image = self._load_placeholder("no-image", no_image_filename, crossed=True)
        self.blank = self._load_placeholder("blank", blank_filename, crossed=False)

        self._memo: Dict[str, ProvidedFile] = {}
        self._memo_lock = threading.Lock()

    def _load_placeholder(self, key: str, filename: str, crossed: bool) -> Placeholder:
        display_name = filename.lstrip("_")
        path = self.icons_dir / filename
        if not path.is_file():
            path = self.fallback_dir / f"_{key}.png"
            if not path.is_file():
                logger.info(f"Rendering built-in placeholder '{key}' at {path}")
                try:
                    self.fallback_dir.mkdir(parents=True, exist_ok=True)
                    _render_placeholder(path, crossed)
                except OSError as e:
                    raise ConfigurationError(f"Cannot render placeholder {path}: {e}") from e

        metadata = FileMetadata(
            id=NIL_FILE_ID,
            original_name=display_name,
            mime="image/png",
            size=0,
            iat=PLACEHOLDER_IAT,
            md5="",
        )
        return Placeholder(key=key, display_name=display_name, provided=ProvidedFile(metadata, path))

    def icon_for(self, token: Optional[str]) -> ProvidedFile:
        """
        Icon representing files of type ``token``.

        Returns:
            The icon, or the blank placeholder when no icon exists
        """
        if not token:
            return self.blank.provided

        token = token.lower()
        with self._memo_lock:
            cached = self._memo.get(token)
        if cached is not None:
            return cached

        icon_name = f"{token}.png"
        icon_path = self.icons_dir / icon_name
        if icon_name not in self.available_icons or not icon_path.is_file():
            provided = self.blank.provided
        else:
            stats = icon_path.stat()
            provided = ProvidedFile(
                metadata=FileMetadata(
                    id=NIL_FILE_ID,
                    original_name=icon_name,
                    mime="image/png",
                    size=stats.st_size,
                    iat=int(stats.st_mtime * 1000),
                    md5=compute_md5(icon_path),
                ),
                local_path=icon_path,
            )

        with self._memo_lock:
            self._memo[token] = provided
        return provided
