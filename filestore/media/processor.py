"""
Image transformer for derivatives.

Loads a source image, applies the EXIF orientation, resizes according to the
requested fit mode and writes the result in the format implied by the output
file's extension.
"""

import logging
import os
import uuid
from pathlib import Path
from typing import Optional, Tuple, Union

from PIL import Image, ImageOps

from filestore.media.options import FitMode, TransformOptions

logger = logging.getLogger(__name__)

# Output formats keyed by file extension
EXTENSION_FORMATS = {
    "png": "PNG",
    "jpg": "JPEG",
    "jpeg": "JPEG",
    "gif": "GIF",
    "webp": "WEBP",
    "bmp": "BMP",
    "tif": "TIFF",
    "tiff": "TIFF",
}

# Derivative extension for a source MIME type; anything else renders as PNG
MIME_EXTENSIONS = {
    "image/png": "png",
    "image/jpeg": "jpg",
    "image/pjpeg": "jpg",
    "image/gif": "gif",
    "image/webp": "webp",
    "image/bmp": "bmp",
    "image/x-ms-bmp": "bmp",
    "image/tiff": "tiff",
}

ALPHA_FORMATS = {"PNG", "WEBP", "TIFF", "GIF"}

TRANSPARENT = (0, 0, 0, 0)
BLACK = (0, 0, 0, 255)


class ImageProcessingError(Exception):
    """Exception raised while rendering a derivative."""
    pass


def derivative_extension(mime: str) -> str:
    """File extension a derivative of a ``mime`` source is written with."""
    return MIME_EXTENSIONS.get(mime.lower(), "png")


def _scaled(size: Tuple[int, int], factor: float) -> Tuple[int, int]:
    return max(1, round(size[0] * factor)), max(1, round(size[1] * factor))


def compute_target_size(
    size: Tuple[int, int],
    width: Optional[int],
    height: Optional[int],
    fit: FitMode,
) -> Tuple[Tuple[int, int], Optional[Tuple[int, int]]]:
    """
    Work out how to resize an image.

    Args:
        size: Source (width, height)
        width: Requested width or None
        height: Requested height or None
        fit: Fit mode

    Returns:
        (resized size, canvas size) where canvas size is the final box for
        ``cover`` (crop) and ``contain`` (pad), None otherwise
    """
    src_w, src_h = size
    if width is None and height is None:
        return size, None

    # One side given: proportional scale regardless of fit mode
    if width is None:
        return _scaled(size, height / src_h), None
    if height is None:
        return _scaled(size, width / src_w), None

    if fit is FitMode.FILL:
        return (width, height), None

    ratio_w = width / src_w
    ratio_h = height / src_h

    if fit is FitMode.COVER:
        return _scaled(size, max(ratio_w, ratio_h)), (width, height)
    if fit is FitMode.CONTAIN:
        return _scaled(size, min(ratio_w, ratio_h)), (width, height)
    if fit is FitMode.INSIDE:
        return _scaled(size, min(ratio_w, ratio_h)), None
    # OUTSIDE
    return _scaled(size, max(ratio_w, ratio_h)), None


class ImageTransformer:
    """
    Renders image derivatives with Pillow.
    """

    def __init__(self, resample: int = Image.Resampling.LANCZOS):
        self.resample = resample

    def transform(
        self,
        input_path: Union[str, Path],
        output_path: Union[str, Path],
        options: TransformOptions,
        mtime: float,
    ) -> Path:
        """
        Render ``input_path`` into ``output_path``.

        Args:
            input_path: Source image
            output_path: Target file; its extension selects the format
            options: Already clamped transform options
            mtime: Modification time (epoch seconds) stamped on the result

        Returns:
            The output path

        Raises:
            ImageProcessingError: If the source cannot be decoded or written
        """
        output_path = Path(output_path)
        fmt = EXTENSION_FORMATS.get(output_path.suffix[1:].lower())
        if fmt is None:
            raise ImageProcessingError(f"Unsupported output format: {output_path.suffix}")

        part_path = output_path.with_name(f".{output_path.name}.{uuid.uuid4().hex}.part")
        try:
            with Image.open(input_path) as source:
                image = ImageOps.exif_transpose(source)
                if options.wants_resize:
                    image = self._resize(image, options, fmt)
                image = self._prepare_for_format(image, fmt, options)
                image.save(part_path, format=fmt)

            os.utime(part_path, (mtime, mtime))
            os.replace(part_path, output_path)
        except (OSError, ValueError, Image.DecompressionBombError) as e:
            raise ImageProcessingError(f"Cannot process image {input_path}: {e}") from e
        finally:
            part_path.unlink(missing_ok=True)

        return output_path

    def _resize(self, image: Image.Image, options: TransformOptions, fmt: str) -> Image.Image:
        target, canvas = compute_target_size(
            image.size, options.width, options.height, options.fit)

        if image.mode not in ("RGB", "RGBA"):
            image = image.convert("RGBA")
        if target != image.size:
            image = image.resize(target, self.resample)

        if canvas is None:
            return image

        if options.fit is FitMode.COVER:
            left = (target[0] - canvas[0]) // 2
            top = (target[1] - canvas[1]) // 2
            return image.crop((left, top, left + canvas[0], top + canvas[1]))

        # CONTAIN: centre on a canvas of the requested size
        fill = options.background_rgba or (TRANSPARENT if fmt in ALPHA_FORMATS else BLACK)
        background = Image.new("RGBA", canvas, fill)
        offset = ((canvas[0] - target[0]) // 2, (canvas[1] - target[1]) // 2)
        background.paste(image.convert("RGBA"), offset)
        return background

    @staticmethod
    def _prepare_for_format(image: Image.Image, fmt: str, options: TransformOptions) -> Image.Image:
        if fmt in ("JPEG", "BMP") and image.mode not in ("RGB", "L"):
            rgba = image.convert("RGBA")
            flat = Image.new("RGB", rgba.size, (options.background_rgba or BLACK)[:3])
            flat.paste(rgba, mask=rgba.getchannel("A"))
            return flat
        return image
