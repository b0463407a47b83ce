"""
Image derivatives, type icons and placeholders.
"""

from filestore.media.icons import IconSet, extract_file_type
from filestore.media.options import FitMode, TransformOptions
from filestore.media.processor import ImageProcessingError, ImageTransformer
from filestore.media.service import (
    Found,
    ImageDerivationService,
    ProvidedImage,
    Substituted,
    SubstitutionReason,
)

__all__ = [
    "IconSet",
    "extract_file_type",
    "FitMode",
    "TransformOptions",
    "ImageProcessingError",
    "ImageTransformer",
    "Found",
    "ImageDerivationService",
    "ProvidedImage",
    "Substituted",
    "SubstitutionReason",
]
