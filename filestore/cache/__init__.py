"""
Caches in front of the storage adapters.

- MaterializationCache: presence-only local mirror of content files
- MetadataCache: TTL cache of metadata records
"""

from filestore.cache.materialization import MaterializationCache
from filestore.cache.metadata import MetadataCache

__all__ = ["MaterializationCache", "MetadataCache"]
