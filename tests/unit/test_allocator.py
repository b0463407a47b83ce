"""
Unit tests for identifier allocation.
"""

import uuid
from unittest.mock import Mock

from filestore.ingest.allocator import IdentifierAllocator, random_file_id


class TestIdentifierAllocator:
    """Tests for IdentifierAllocator."""

    def test_random_ids_are_canonical_uuid4(self):
        """Ids are version 4 UUIDs in canonical text form."""
        file_id = random_file_id()

        assert str(uuid.UUID(file_id)) == file_id
        assert uuid.UUID(file_id).version == 4

    def test_returns_unused_id(self):
        """A free id is returned immediately."""
        adapter = Mock()
        adapter.exists.return_value = False
        allocator = IdentifierAllocator(adapter, id_factory=lambda: "fresh")

        assert allocator.allocate() == "fresh"
        adapter.exists.assert_called_once_with("fresh")

    def test_redraws_on_collision(self):
        """Taken ids are skipped until a free one is drawn."""
        taken = {"a", "b"}
        candidates = iter(["a", "b", "c"])
        adapter = Mock()
        adapter.exists.side_effect = lambda file_id: file_id in taken

        allocator = IdentifierAllocator(adapter, id_factory=lambda: next(candidates))

        assert allocator.allocate() == "c"
        assert adapter.exists.call_count == 3
