"""
Unit tests for the S3 storage backend, against moto's in-memory S3.
"""

import os
from unittest.mock import patch

import boto3
import pytest
from botocore.exceptions import ClientError, EndpointConnectionError

from filestore.cache.materialization import MaterializationCache
from filestore.common.errors import (
    ConfigurationError,
    CorruptMetadataError,
    NotFoundError,
    StorageBackendError,
)
from filestore.storage.metadata import compute_md5
from filestore.storage.s3 import ClientState, S3Storage, translate_error

BUCKET = "filestore-test"
FILE_ID = "8d3c6f4e-1111-4000-8000-000000000001"


@pytest.fixture
def raw_client(s3_storage):
    """Plain boto3 client on the same bucket, created on demand."""
    s3_storage._get_client()
    return boto3.client("s3", region_name="us-east-1")


def _client_error(code, status=400):
    return ClientError(
        {"Error": {"Code": code, "Message": code}, "ResponseMetadata": {"HTTPStatusCode": status}},
        "HeadObject",
    )


class TestClientLifecycle:
    """Test lazy client construction."""

    def test_bucket_required(self):
        """An empty bucket name is a configuration error."""
        with pytest.raises(ConfigurationError):
            S3Storage(bucket="")

    def test_client_created_on_first_use(self, s3_storage):
        """The client is built lazily and reused."""
        assert s3_storage.state is ClientState.UNINITIALIZED

        s3_storage.exists(FILE_ID)

        assert s3_storage.state is ClientState.READY
        assert s3_storage._get_client() is s3_storage._get_client()

    def test_failed_construction_is_permanent(self, aws_credentials):
        """A failed client construction is not retried."""
        storage = S3Storage(bucket=BUCKET)

        with patch("filestore.storage.s3.boto3.client", side_effect=ValueError("bad endpoint")) as factory:
            with pytest.raises(ConfigurationError):
                storage.exists(FILE_ID)
            with pytest.raises(ConfigurationError):
                storage.exists(FILE_ID)

        assert storage.state is ClientState.FAILED
        assert factory.call_count == 1


class TestUploadAndRead:
    """Test uploads and metadata reads."""

    def test_upload_stores_content_and_metadata(self, s3_storage, raw_client, staged_file):
        """Content and metadata objects are written under the id."""
        source = staged_file(b"remote bytes", "data.bin")
        expected_md5 = compute_md5(source)

        meta = s3_storage.upload(FILE_ID, source, "data.bin", "application/octet-stream")

        body = raw_client.get_object(Bucket=BUCKET, Key=FILE_ID)["Body"].read()
        assert body == b"remote bytes"
        assert meta.md5 == expected_md5
        assert meta.size == len(b"remote bytes")
        assert s3_storage.get_metadata(FILE_ID) == meta

    def test_exists_checks_metadata_object(self, s3_storage, raw_client, staged_file):
        """A content object without metadata does not exist."""
        raw_client.put_object(Bucket=BUCKET, Key=FILE_ID, Body=b"orphan")
        assert s3_storage.exists(FILE_ID) is False

        s3_storage.upload(FILE_ID, staged_file(), "a.txt", "text/plain")
        assert s3_storage.exists(FILE_ID) is True

    def test_get_metadata_missing(self, s3_storage):
        """Unknown ids raise NotFoundError."""
        with pytest.raises(NotFoundError):
            s3_storage.get_metadata("missing")

    def test_get_metadata_corrupt(self, s3_storage, raw_client):
        """A malformed metadata object raises CorruptMetadataError."""
        raw_client.put_object(Bucket=BUCKET, Key=f"{FILE_ID}.json", Body=b"[1, 2]")

        with pytest.raises(CorruptMetadataError):
            s3_storage.get_metadata(FILE_ID)


class TestDownload:
    """Test materializing remote content."""

    def test_download_sets_mtime_to_iat(self, s3_storage, staged_file, tmp_path):
        """The downloaded file carries the ingestion time as mtime."""
        meta = s3_storage.upload(FILE_ID, staged_file(b"abc"), "a.txt", "text/plain")
        dest = tmp_path / "out"
        dest.write_bytes(b"stale content that is longer")

        s3_storage.download_to(FILE_ID, dest)

        assert dest.read_bytes() == b"abc"
        assert os.stat(dest).st_mtime == pytest.approx(meta.iat_seconds, abs=1e-3)

    def test_download_missing(self, s3_storage, tmp_path):
        """Downloading an unknown id raises NotFoundError."""
        with pytest.raises(NotFoundError):
            s3_storage.download_to("missing", tmp_path / "out")

    def test_materialize_downloads_once(self, s3_storage, staged_file, tmp_path):
        """The second materialization is served from the local cache."""
        s3_storage.upload(FILE_ID, staged_file(b"cached"), "a.txt", "text/plain")
        cache = MaterializationCache(s3_storage, tmp_path / "cache")

        with patch.object(s3_storage, "download_to", wraps=s3_storage.download_to) as download:
            first = cache.materialize(FILE_ID)
            second = cache.materialize(FILE_ID)

        assert first == second == tmp_path / "cache" / FILE_ID
        assert first.read_bytes() == b"cached"
        assert download.call_count == 1


class TestCopyAndDelete:
    """Test copy and delete."""

    def test_copy(self, s3_storage, raw_client, staged_file):
        """Copy duplicates the content object and writes fresh metadata."""
        original = s3_storage.upload(FILE_ID, staged_file(b"twin"), "a.txt", "text/plain")
        new_id = "8d3c6f4e-1111-4000-8000-000000000002"

        copy = s3_storage.copy(FILE_ID, new_id)

        assert copy.id == new_id
        assert copy.md5 == original.md5
        assert copy.original_name == original.original_name
        assert raw_client.get_object(Bucket=BUCKET, Key=new_id)["Body"].read() == b"twin"
        assert s3_storage.get_metadata(new_id) == copy

    def test_copy_missing(self, s3_storage):
        """Copying an unknown id raises NotFoundError."""
        with pytest.raises(NotFoundError):
            s3_storage.copy("missing", "new")

    def test_delete(self, s3_storage, raw_client, staged_file):
        """Delete removes both objects."""
        s3_storage.upload(FILE_ID, staged_file(), "a.txt", "text/plain")

        s3_storage.delete(FILE_ID)

        assert s3_storage.exists(FILE_ID) is False
        listing = raw_client.list_objects_v2(Bucket=BUCKET)
        assert listing.get("KeyCount", 0) == 0

    def test_delete_missing(self, s3_storage):
        """Deleting an unknown id raises NotFoundError."""
        with pytest.raises(NotFoundError):
            s3_storage.delete("missing")


class TestTranslateError:
    """Test boto error mapping."""

    @pytest.mark.parametrize("code", ["404", "NoSuchKey", "NotFound"])
    def test_not_found_codes(self, code):
        """Missing-object codes become NotFoundError."""
        assert isinstance(translate_error(_client_error(code), "op"), NotFoundError)

    def test_status_404(self):
        """An HTTP 404 becomes NotFoundError whatever the code."""
        assert isinstance(translate_error(_client_error("Weird", 404), "op"), NotFoundError)

    def test_other_client_errors(self):
        """Other service errors keep their code."""
        err = translate_error(_client_error("AccessDenied", 403), "op")

        assert isinstance(err, StorageBackendError)
        assert err.code == "AccessDenied"

    def test_transport_errors(self):
        """Transport failures become StorageBackendError."""
        err = translate_error(EndpointConnectionError(endpoint_url="http://nowhere"), "op")

        assert isinstance(err, StorageBackendError)
        assert err.code is None

    def test_backend_error_propagates_from_exists(self, s3_storage):
        """exists() does not mask backend failures as absence."""
        client = s3_storage._get_client()
        with patch.object(client, "head_object", side_effect=_client_error("AccessDenied", 403)):
            with pytest.raises(StorageBackendError):
                s3_storage.exists(FILE_ID)
