"""
Unit tests for metadata records.
"""

import json

import pytest

from filestore.common.errors import CorruptMetadataError
from filestore.storage.metadata import FileMetadata


@pytest.fixture
def meta():
    return FileMetadata(
        id="abc", original_name="photo.JPG", mime="image/jpeg", size=10, iat=1_700_000_000_123, md5="d41d")


class TestFileMetadata:
    """Tests for FileMetadata."""

    def test_json_layout(self, meta):
        """Persisted records use camelCase keys and 4-space indentation."""
        payload = meta.to_json()

        assert json.loads(payload) == {
            "id": "abc",
            "originalName": "photo.JPG",
            "mime": "image/jpeg",
            "size": 10,
            "iat": 1_700_000_000_123,
            "md5": "d41d",
        }
        assert '\n    "id": "abc"' in payload

    def test_from_json(self, meta):
        assert FileMetadata.from_json(meta.to_json()) == meta

    @pytest.mark.parametrize("payload", [
        "not json",
        "[]",
        '{"id": "abc"}',
        '{"id": "", "originalName": "a", "mime": "b", "size": 1, "iat": 1, "md5": ""}',
        '{"id": "a", "originalName": "a", "mime": "b", "size": "big", "iat": 1, "md5": ""}',
    ])
    def test_corrupt_records(self, payload):
        with pytest.raises(CorruptMetadataError):
            FileMetadata.from_json(payload)

    def test_is_image(self, meta):
        assert meta.is_image is True
        assert meta.with_id("x").id == "x"

    def test_iat_seconds(self, meta):
        assert meta.iat_seconds == pytest.approx(1_700_000_000.123)

    def test_to_response(self, meta):
        assert meta.to_response() == {
            "id": "abc",
            "mimeType": ["image", "jpeg"],
            "mimeTypeRaw": "image/jpeg",
            "name": "photo.JPG",
            "isImage": True,
            "md5": "d41d",
        }

    def test_to_response_with_odd_mime(self):
        response = FileMetadata(
            id="abc", original_name="x", mime="weird", size=0, iat=0, md5="").to_response()

        assert response["mimeType"] == ["binary", "octet-stream"]
        assert response["isImage"] is False
