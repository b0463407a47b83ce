"""
Unit tests for image transform options.
"""

import pytest

from filestore.common.errors import ValidationError
from filestore.media.options import FitMode, TransformOptions, parse_background


class TestParseBackground:
    """Tests for background color parsing."""

    @pytest.mark.parametrize("value", ["ff8000", "#ff8000", "FF8000"])
    def test_valid(self, value):
        assert parse_background(value) == (255, 128, 0, 255)

    @pytest.mark.parametrize("value", [None, "", "fff", "#ff80001", "zzzzzz", "ff8000ff"])
    def test_invalid_is_ignored(self, value):
        assert parse_background(value) is None


class TestTransformOptions:
    """Tests for TransformOptions."""

    def test_from_query(self):
        """Query parameters w/h/bg/fit are parsed."""
        options = TransformOptions.from_query({"w": "200", "h": "100", "bg": "#000000", "fit": "cover"})

        assert options.width == 200
        assert options.height == 100
        assert options.background_rgba == (0, 0, 0, 255)
        assert options.fit is FitMode.COVER

    def test_defaults(self):
        """Without parameters nothing is resized and fit is contain."""
        options = TransformOptions.from_query({})

        assert options.width is None
        assert options.height is None
        assert options.fit is FitMode.CONTAIN
        assert options.wants_resize is False

    @pytest.mark.parametrize("value", ["0", "-5", "abc", "1.5", 2.5])
    def test_bad_dimensions_rejected(self, value):
        with pytest.raises(ValidationError):
            TransformOptions.from_query({"w": value})

    def test_integral_float_accepted(self):
        assert TransformOptions(width=100.0).width == 100

    def test_unknown_fit_rejected(self):
        with pytest.raises(ValidationError):
            TransformOptions.from_query({"fit": "squash"})

    def test_malformed_background_does_not_trigger_resize(self):
        """A malformed bg is treated as absent."""
        options = TransformOptions.from_query({"bg": "red"})

        assert options.background_rgba is None
        assert options.wants_resize is False

    def test_background_alone_triggers_resize(self):
        assert TransformOptions(background="ffffff").wants_resize is True

    def test_clamped(self):
        """Width and height are limited to the maximum size."""
        options = TransformOptions(width=5000, height=20).clamped(1600)

        assert options.width == 1600
        assert options.height == 20

    def test_cache_key_is_canonical(self):
        """Equivalent options share a cache key."""
        a = TransformOptions.from_query({"w": "100", "bg": "#FFAA00", "fit": "COVER"})
        b = TransformOptions(width=100, background="ffaa00", fit=FitMode.COVER)

        assert a.cache_key() == b.cache_key() == "w100_h_bgffaa00_fitcover"

    def test_cache_key_ignores_malformed_background(self):
        assert TransformOptions(background="nope").cache_key() == TransformOptions().cache_key()

    def test_cache_key_distinguishes_fit(self):
        assert (
            TransformOptions(width=10, height=10, fit="cover").cache_key()
            != TransformOptions(width=10, height=10, fit="fill").cache_key()
        )
