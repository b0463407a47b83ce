"""
In-process TTL cache of metadata records.

Metadata is immutable once written, so the only invalidation path is an
explicit removal after delete. Entries otherwise expire after a fixed TTL and
a background sweeper evicts expired entries periodically.
"""

import logging
import threading
import time
from typing import Callable, Optional

from cachetools import TTLCache

from filestore.common.metrics import metadata_cache_entries, metadata_cache_requests_total
from filestore.storage.adapter import StorageAdapter
from filestore.storage.metadata import FileMetadata

logger = logging.getLogger(__name__)


class MetadataCache:
    """
    Read-through cache of ``file_id -> FileMetadata`` in front of an adapter.
    """

    def __init__(
        self,
        adapter: StorageAdapter,
        ttl_seconds: float = 600,
        check_period_seconds: float = 60,
        max_entries: int = 100_000,
        timer: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize the cache.

        Args:
            adapter: Storage adapter consulted on misses
            ttl_seconds: Lifetime of an entry since insertion
            check_period_seconds: Interval of the background sweep
            max_entries: Upper bound before least recently used entries go
            timer: Clock, injectable for tests
        """
        self.adapter = adapter
        self.check_period_seconds = check_period_seconds
        self._cache: TTLCache = TTLCache(maxsize=max_entries, ttl=ttl_seconds, timer=timer)
        self._lock = threading.Lock()
        self._stop = threading.Event()
        self._sweeper: Optional[threading.Thread] = None

    def __len__(self) -> int:
        with self._lock:
            return len(self._cache)

    def get(self, file_id: str) -> FileMetadata:
        """
        Metadata of ``file_id``, from memory when fresh.

        Raises:
            NotFoundError: If the adapter does not know the file
            CorruptMetadataError: If the stored record is unreadable
        """
        with self._lock:
            cached = self._cache.get(file_id)
        if cached is not None:
            metadata_cache_requests_total.labels(result="hit").inc()
            return cached

        metadata_cache_requests_total.labels(result="miss").inc()
        metadata = self.adapter.get_metadata(file_id)
        self.put(metadata)
        return metadata

    def put(self, metadata: FileMetadata) -> None:
        """Insert a freshly created record."""
        with self._lock:
            self._cache[metadata.id] = metadata
            metadata_cache_entries.set(len(self._cache))

    def invalidate(self, file_id: str) -> None:
        """Drop ``file_id`` from the cache."""
        with self._lock:
            self._cache.pop(file_id, None)
            metadata_cache_entries.set(len(self._cache))

    def sweep(self) -> int:
        """
        Evict expired entries.

        Returns:
            Number of evicted entries
        """
        with self._lock:
            expired = self._cache.expire() or []
            metadata_cache_entries.set(len(self._cache))
        if expired:
            logger.debug(f"Evicted {len(expired)} expired metadata entries")
        return len(expired)

    def start(self) -> None:
        """Start the background sweeper thread."""
        if self._sweeper is not None and self._sweeper.is_alive():
            return
        self._stop.clear()
        self._sweeper = threading.Thread(
            target=self._sweep_loop, name="metadata-cache-sweeper", daemon=True)
        self._sweeper.start()

    def stop(self, timeout: Optional[float] = 5.0) -> None:
        """Stop the background sweeper thread."""
        self._stop.set()
        if self._sweeper is not None:
            self._sweeper.join(timeout=timeout)
            self._sweeper = None

    def _sweep_loop(self) -> None:
        while not self._stop.wait(self.check_period_seconds):
            try:
                self.sweep()
            except Exception as e:
                logger.error(f"Metadata cache sweep failed: {e}", exc_info=True)
