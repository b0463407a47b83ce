"""
Transform options for image derivatives.
"""

import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Mapping, Optional, Tuple

from filestore.common.errors import ValidationError

BACKGROUND_PATTERN = re.compile(r"^#?([0-9a-fA-F]{6})$")


class FitMode(str, Enum):
    """How an image is fitted into the requested box."""
    COVER = "cover"
    CONTAIN = "contain"
    FILL = "fill"
    INSIDE = "inside"
    OUTSIDE = "outside"


def parse_background(value: Optional[str]) -> Optional[Tuple[int, int, int, int]]:
    """
    Parse an RGB hex color with optional leading ``#``.

    Returns:
        Opaque RGBA tuple, or None when the value is missing or malformed
    """
    if not value:
        return None
    match = BACKGROUND_PATTERN.match(value.strip())
    if not match:
        return None
    color = int(match.group(1), 16)
    return (color >> 16) & 0xFF, (color >> 8) & 0xFF, color & 0xFF, 255


def _parse_dimension(name: str, value: Any) -> Optional[int]:
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        raise ValidationError(f"{name} must be a positive integer")
    try:
        number = int(value)
    except (TypeError, ValueError) as e:
        raise ValidationError(f"{name} must be a positive integer, got {value!r}") from e
    if isinstance(value, float) and number != value:
        raise ValidationError(f"{name} must be a positive integer, got {value!r}")
    if number <= 0:
        raise ValidationError(f"{name} must be a positive integer, got {value!r}")
    return number


def _parse_fit(value: Any) -> FitMode:
    if isinstance(value, FitMode):
        return value
    try:
        return FitMode(str(value).lower())
    except ValueError as e:
        allowed = ", ".join(mode.value for mode in FitMode)
        raise ValidationError(f"fit must be one of {allowed}, got {value!r}") from e


@dataclass(frozen=True)
class TransformOptions:
    """Requested size, background and fit of a derivative."""
    width: Optional[int] = None
    height: Optional[int] = None
    background: Optional[str] = None
    fit: FitMode = FitMode.CONTAIN

    def __post_init__(self):
        object.__setattr__(self, "width", _parse_dimension("width", self.width))
        object.__setattr__(self, "height", _parse_dimension("height", self.height))
        if not isinstance(self.fit, FitMode):
            object.__setattr__(self, "fit", _parse_fit(self.fit))

    @classmethod
    def from_query(cls, params: Mapping[str, Any]) -> "TransformOptions":
        """
        Build options from query-style parameters ``w``, ``h``, ``bg``, ``fit``.

        A malformed ``bg`` is ignored; bad sizes or fit modes are rejected.

        Raises:
            ValidationError: If a size or fit mode is invalid
        """
        return cls(
            width=params.get("w"),
            height=params.get("h"),
            background=params.get("bg") or None,
            fit=_parse_fit(params.get("fit") or FitMode.CONTAIN),
        )

    @property
    def background_rgba(self) -> Optional[Tuple[int, int, int, int]]:
        return parse_background(self.background)

    @property
    def wants_resize(self) -> bool:
        return (
            self.width is not None
            or self.height is not None
            or self.background_rgba is not None
        )

    def clamped(self, max_size: int) -> "TransformOptions":
        """Copy with width and height limited to ``max_size``."""
        return TransformOptions(
            width=min(self.width, max_size) if self.width is not None else None,
            height=min(self.height, max_size) if self.height is not None else None,
            background=self.background,
            fit=self.fit,
        )

    def cache_key(self) -> str:
        """
        Canonical filename-safe serialization.

        A malformed background serializes like an absent one, as both render
        the same image.
        """
        rgba = self.background_rgba
        bg = "%02x%02x%02x" % rgba[:3] if rgba else ""
        return "w{}_h{}_bg{}_fit{}".format(
            self.width or "",
            self.height or "",
            bg,
            self.fit.value,
        )
