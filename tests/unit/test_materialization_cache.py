"""
Unit tests for the local materialization cache.
"""

import os
import threading
import time
from pathlib import Path

import pytest

from filestore.cache.materialization import MaterializationCache, ensure_writable_dir
from filestore.common.errors import ConfigurationError, NotFoundError
from filestore.storage.adapter import RemoteStorageAdapter


class FakeRemoteStorage(RemoteStorageAdapter):
    """Remote adapter keeping content in a dict and counting downloads."""

    name = "fake"

    def __init__(self, contents=None, delay=0.0):
        self.contents = dict(contents or {})
        self.delay = delay
        self.downloads = 0
        self._lock = threading.Lock()

    def exists(self, file_id):
        return file_id in self.contents

    def get_metadata(self, file_id):
        raise NotImplementedError

    def upload(self, file_id, source_path, original_name, mime, size=None):
        raise NotImplementedError

    def copy(self, file_id, new_file_id):
        raise NotImplementedError

    def delete(self, file_id):
        self.contents.pop(file_id)

    def download_to(self, file_id, dest_path):
        if file_id not in self.contents:
            raise NotFoundError(f"File not found: {file_id}", file_id=file_id)
        with self._lock:
            self.downloads += 1
        time.sleep(self.delay)
        Path(dest_path).write_bytes(self.contents[file_id])


class TestEnsureWritableDir:
    """Test cache directory preconditions."""

    def test_creates_directory(self, tmp_path):
        """Missing directories are created."""
        path = ensure_writable_dir(tmp_path / "a" / "b", "test")
        assert path.is_dir()

    def test_file_in_the_way(self, tmp_path):
        """A regular file at the path is a configuration error."""
        blocker = tmp_path / "blocker"
        blocker.write_text("x")

        with pytest.raises(ConfigurationError):
            ensure_writable_dir(blocker, "test")


class TestMaterialization:
    """Test download-once semantics."""

    def test_miss_downloads_then_hits(self, tmp_path):
        """Content is downloaded once and served from disk afterwards."""
        adapter = FakeRemoteStorage({"abc": b"bytes"})
        cache = MaterializationCache(adapter, tmp_path / "cache")

        first = cache.materialize("abc")
        second = cache.materialize("abc")

        assert first == second == tmp_path / "cache" / "abc"
        assert first.read_bytes() == b"bytes"
        assert adapter.downloads == 1

    def test_present_file_is_never_revalidated(self, tmp_path):
        """A file already in the cache is returned even if the backend lost it."""
        adapter = FakeRemoteStorage({"abc": b"bytes"})
        cache = MaterializationCache(adapter, tmp_path / "cache")
        cache.materialize("abc")
        adapter.delete("abc")

        assert cache.materialize("abc").read_bytes() == b"bytes"

    def test_missing_file(self, tmp_path):
        """NotFoundError propagates and nothing is left behind."""
        adapter = FakeRemoteStorage()
        cache = MaterializationCache(adapter, tmp_path / "cache")

        with pytest.raises(NotFoundError):
            cache.materialize("nope")

        assert os.listdir(cache.cache_dir) == []

    def test_failed_download_leaves_no_partial_file(self, tmp_path):
        """A download error never leaves a file at the cache path."""

        class Broken(FakeRemoteStorage):
            def download_to(self, file_id, dest_path):
                Path(dest_path).write_bytes(b"partial")
                raise OSError("connection reset")

        cache = MaterializationCache(Broken({"abc": b"x"}), tmp_path / "cache")

        with pytest.raises(OSError):
            cache.materialize("abc")

        assert os.listdir(cache.cache_dir) == []

    def test_concurrent_misses_download_once(self, tmp_path):
        """Concurrent requests for one id share a single download."""
        adapter = FakeRemoteStorage({"abc": b"bytes"}, delay=0.2)
        cache = MaterializationCache(adapter, tmp_path / "cache")
        results = []

        def worker():
            results.append(cache.materialize("abc"))

        threads = [threading.Thread(target=worker) for _ in range(5)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert adapter.downloads == 1
        assert len(results) == 5
        assert all(path.read_bytes() == b"bytes" for path in results)
