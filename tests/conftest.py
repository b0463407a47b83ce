# Test configuration

from pathlib import Path

import pytest
from moto import mock_aws
from PIL import Image

from filestore.cache.materialization import MaterializationCache
from filestore.cache.metadata import MetadataCache
from filestore.config.settings import Settings
from filestore.storage.filesystem import FilesystemStorage
from filestore.storage.s3 import S3Storage


def write_image(path, size=(40, 20), color=(200, 30, 30), fmt="PNG", mode="RGB"):
    """Write a solid-color test image and return its path."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    Image.new(mode, size, color).save(path, format=fmt)
    return path


@pytest.fixture
def test_settings(tmp_path):
    """Override settings for testing"""
    return Settings(
        _env_file=None,
        storage_backend="fs",
        storage_path=str(tmp_path / "files"),
        local_cache_path=str(tmp_path / "localcache"),
        icons_base_dir=str(tmp_path / "icons"),
        log_json=False,
    )


@pytest.fixture
def fs_storage(tmp_path):
    """Filesystem adapter rooted in a temporary directory."""
    return FilesystemStorage(tmp_path / "files")


@pytest.fixture
def staged_file(tmp_path):
    """Factory writing a staged upload with the given content."""
    counter = {"n": 0}

    def _make(content: bytes = b"hello world\n", name: str = "upload.bin") -> Path:
        counter["n"] += 1
        path = tmp_path / "staging" / f"{counter['n']}-{name}"
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(content)
        return path

    return _make


@pytest.fixture
def fs_caches(tmp_path, fs_storage):
    """Metadata and materialization caches in front of the filesystem adapter."""
    metadata_cache = MetadataCache(fs_storage)
    materialization_cache = MaterializationCache(fs_storage, tmp_path / "localcache")
    return metadata_cache, materialization_cache


@pytest.fixture
def make_image():
    """Factory writing solid-color test images."""
    return write_image


S3_BUCKET = "filestore-test"


@pytest.fixture
def aws_credentials(monkeypatch):
    """Fake credentials so nothing can reach real AWS."""
    monkeypatch.setenv("AWS_ACCESS_KEY_ID", "testing")
    monkeypatch.setenv("AWS_SECRET_ACCESS_KEY", "testing")
    monkeypatch.setenv("AWS_SECURITY_TOKEN", "testing")
    monkeypatch.setenv("AWS_SESSION_TOKEN", "testing")
    monkeypatch.setenv("AWS_DEFAULT_REGION", "us-east-1")


@pytest.fixture
def s3_storage(aws_credentials):
    """S3 adapter bound to a fresh moto bucket."""
    with mock_aws():
        yield S3Storage(bucket=S3_BUCKET, region="us-east-1", create_bucket=True)
