"""
Upload intake: type validation and identifier allocation.
"""

from filestore.ingest.allocator import IdentifierAllocator, random_file_id
from filestore.ingest.validator import DetectedType, UploadValidator

__all__ = ["IdentifierAllocator", "random_file_id", "DetectedType", "UploadValidator"]
