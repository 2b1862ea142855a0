"""Tests for keyset-paged extraction."""

from __future__ import annotations

import pytest
from helpers import seed

from recsync.store.sql import SqlRecordStore
from recsync.sync.extract import ExtractSetting, Extractor


class TestExtractor:
    """Tests for Extractor iteration."""

    def test_pages_in_key_order(self, people: SqlRecordStore) -> None:
        """Batches should cover every record once, with cursor settings."""
        seed(people, [{"id": i} for i in (3, 1, 5, 2, 4)])

        batches = list(Extractor(people, batch_size=2))

        assert [[r.key for r in b.records] for b in batches] == [[1, 2], [3, 4], [5]]
        assert [b.settings for b in batches] == [
            ExtractSetting(batch_index=0, start_key=None, batch_size=2, row=0),
            ExtractSetting(batch_index=1, start_key=2, batch_size=2, row=2),
            ExtractSetting(batch_index=2, start_key=4, batch_size=2, row=4),
        ]
        assert all(b.fetch_ms >= 0 for b in batches)

    def test_exact_multiple_ends_cleanly(self, people: SqlRecordStore) -> None:
        """A full last page should be followed by one empty probe and no batch."""
        seed(people, [{"id": i} for i in range(1, 5)])
        assert [len(b.records) for b in Extractor(people, batch_size=2)] == [2, 2]

    def test_empty_store(self, people: SqlRecordStore) -> None:
        """An empty store should yield no batches."""
        assert list(Extractor(people)) == []

    def test_resume_after_key(self, people: SqlRecordStore) -> None:
        """start_key should skip records up to and including it."""
        seed(people, [{"id": i} for i in range(1, 6)])

        batches = list(Extractor(people, batch_size=10, start_key=3))

        assert [r.key for r in batches[0].records] == [4, 5]
        assert batches[0].settings.start_key == 3

    def test_invalid_batch_size(self, people: SqlRecordStore) -> None:
        """A batch size below one should be rejected."""
        with pytest.raises(ValueError, match="batch_size"):
            Extractor(people, batch_size=0)
