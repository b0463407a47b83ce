"""
filestore: file storage with pluggable backends, local caching and image
derivatives.
"""

from filestore.service import FileService, create_file_service

__version__ = "0.1.0"

__all__ = ["FileService", "create_file_service", "__version__"]
