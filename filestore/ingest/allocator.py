"""
Identifier allocation for new content objects.
"""

import logging
import uuid
from typing import Callable

from filestore.storage.adapter import StorageAdapter

logger = logging.getLogger(__name__)


def random_file_id() -> str:
    """Random 128-bit id in canonical UUID text form."""
    return str(uuid.uuid4())


class IdentifierAllocator:
    """
    Draws random ids until one is unused by the adapter.

    There is no locking: uniqueness rests on the size of the id space plus an
    existence check before use.
    """

    def __init__(self, adapter: StorageAdapter, id_factory: Callable[[], str] = random_file_id):
        self.adapter = adapter
        self.id_factory = id_factory

    def allocate(self) -> str:
        """Return an id that does not exist in the adapter."""
        file_id = self.id_factory()
        while self.adapter.exists(file_id):
            logger.warning(f"File id collision, drawing again: {file_id}")
            file_id = self.id_factory()
        return file_id
