"""
Local mirror of stored content.

Guarantees a filesystem path holding a file's bytes regardless of where the
adapter keeps them. Remote content is downloaded once per id and kept
indefinitely: ids are never reused for different content, so a present file
is always valid.
"""

import logging
import os
import threading
import uuid
from pathlib import Path
from typing import Callable, Dict, Union

from filestore.common.errors import ConfigurationError
from filestore.common.metrics import materializations_total
from filestore.storage.adapter import StorageAdapter

logger = logging.getLogger(__name__)

Downloader = Callable[[str, Path], None]


def ensure_writable_dir(path: Union[str, Path], purpose: str) -> Path:
    """
    Create ``path`` if needed and verify it is a writable directory.

    Raises:
        ConfigurationError: If the directory cannot be used
    """
    path = Path(path)
    try:
        path.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise ConfigurationError(
            f"Failed to ensure existence of {purpose} folder {path}: {e}") from e

    if not path.is_dir() or not os.access(path, os.W_OK):
        raise ConfigurationError(f"{purpose.capitalize()} folder is not writable: {path}")
    return path


class MaterializationCache:
    """
    Presence-only cache of downloaded content, keyed by file id.

    Concurrent misses for the same id are serialized by a per-id lock so only
    one download runs. A delete racing a download can still leave a stale
    mirror file behind; nothing here reconciles that.
    """

    def __init__(self, adapter: StorageAdapter, cache_dir: Union[str, Path]):
        """
        Initialize the cache.

        Args:
            adapter: Storage adapter holding the content
            cache_dir: Directory for downloaded copies
        """
        self.adapter = adapter
        self.cache_dir = ensure_writable_dir(cache_dir, "local file cache")
        self._locks: Dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()
        logger.info(f"Local file cache path: {self.cache_dir}")

    def path_for(self, file_id: str) -> Path:
        """Deterministic cache location of a file id."""
        return self.cache_dir / file_id

    def materialize(self, file_id: str) -> Path:
        """
        Return a local path holding the file's bytes now.

        Raises:
            NotFoundError: If the file does not exist
        """
        return self.adapter.materialize(file_id, self)

    def fetch(self, file_id: str, download: Downloader) -> Path:
        """
        Return the cached copy of ``file_id``, downloading it on a miss.

        Args:
            file_id: File identifier
            download: Callable writing the content to a given path
        """
        cache_path = self.path_for(file_id)
        if cache_path.exists():
            materializations_total.labels(result="hit").inc()
            return cache_path

        with self._lock_for(file_id):
            try:
                if cache_path.exists():
                    materializations_total.labels(result="hit").inc()
                    return cache_path

                # Download beside the target and rename so readers never see
                # a partial file.
                part_path = cache_path.with_name(f".{file_id}.{uuid.uuid4().hex}.part")
                try:
                    download(file_id, part_path)
                    os.replace(part_path, cache_path)
                finally:
                    part_path.unlink(missing_ok=True)

                materializations_total.labels(result="download").inc()
                logger.debug(f"Cached {file_id} at {cache_path}")
                return cache_path
            finally:
                self._release_lock(file_id)

    def _lock_for(self, file_id: str) -> threading.Lock:
        with self._locks_guard:
            entry = self._locks.get(file_id)
            if entry is None:
                entry = self._locks[file_id] = threading.Lock()
            return entry

    def _release_lock(self, file_id: str) -> None:
        with self._locks_guard:
            # Waiters still hold a reference to the same lock object.
            self._locks.pop(file_id, None)
