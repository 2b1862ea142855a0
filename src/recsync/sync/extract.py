"""Batch extraction from a source store.

This module provides:
- ExtractSetting: Where a batch came from (cursor position and size)
- ExtractedBatch: A batch of source records with its fetch time
- Extractor: Keyset-paged iteration over a source store
"""

from __future__ import annotations

import logging
import time
from collections.abc import Iterator
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from recsync.core.config import DEFAULT_BATCH_SIZE

if TYPE_CHECKING:
    from recsync.store.base import Record, RecordStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ExtractSetting:
    """Extraction settings of one batch.

    Attributes:
        batch_index: Zero-based position of the batch in the run.
        start_key: Records of the batch have keys greater than this (None = first).
        batch_size: Maximum rows requested.
        row: Offset of the batch's first record in the run.
    """

    batch_index: int
    start_key: Any
    batch_size: int
    row: int


@dataclass
class ExtractedBatch:
    """A batch handed to the engine."""

    records: list[Record]
    settings: ExtractSetting
    fetch_ms: float


class Extractor:
    """Reads a source store in key order, one page per batch.

    Uses keyset pagination (key > last seen key) rather than offsets, so
    pages stay stable while the target is being written.
    """

    def __init__(
        self,
        store: RecordStore,
        batch_size: int = DEFAULT_BATCH_SIZE,
        start_key: Any = None,
    ) -> None:
        """Initialize the extractor.

        Args:
            store: Source store.
            batch_size: Rows per batch.
            start_key: Resume after this key (None starts from the beginning).
        """
        if batch_size < 1:
            raise ValueError(f"batch_size must be >= 1, got {batch_size}")
        self._store = store
        self._batch_size = batch_size
        self._start_key = start_key

    def __iter__(self) -> Iterator[ExtractedBatch]:
        key = self._start_key
        row = 0
        index = 0

        while True:
            start = time.perf_counter()
            records = self._store.find_after(key, self._batch_size)
            fetch_ms = (time.perf_counter() - start) * 1000
            if not records:
                return

            settings = ExtractSetting(
                batch_index=index,
                start_key=key,
                batch_size=self._batch_size,
                row=row,
            )
            logger.debug(f"Extracted batch {index}: {len(records)} rows after key {key!r}")
            yield ExtractedBatch(records=records, settings=settings, fetch_ms=fetch_ms)

            if len(records) < self._batch_size:
                return
            key = records[-1].key
            row += len(records)
            index += 1
