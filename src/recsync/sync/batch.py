"""Transactional processing of one batch of source records.

This module provides:
- BatchSynchronizer: Runs a per-row sync function over a batch inside a
  single target-store transaction, applying the row error policy
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from typing import TYPE_CHECKING

from recsync.sync.types import ConfigurationError

if TYPE_CHECKING:
    from recsync.store.base import Record, RecordStore
    from recsync.sync.extract import ExtractSetting
    from recsync.sync.types import ErrorHook

logger = logging.getLogger(__name__)


class BatchSynchronizer:
    """Wraps per-row synchronization in one transaction per batch.

    Each row runs under its own savepoint. A row failure undoes that row
    only and is handed to the error hook. A skip decision drops the row;
    an abort decision raises, and the whole batch is rolled back.
    """

    def __init__(
        self,
        target: RecordStore | None,
        sync_item: Callable[[Record], Record],
        on_error: ErrorHook,
    ) -> None:
        """Initialize the batch synchronizer.

        Args:
            target: Store whose transaction scopes the batch.
            sync_item: Synchronizes one source record and returns its target.
            on_error: Error hook consulted for each failing row.
        """
        self._target = target
        self._sync_item = sync_item
        self._on_error = on_error

    def sync_batch(
        self,
        records: Sequence[Record],
        settings: ExtractSetting | None = None,
    ) -> int:
        """Synchronize a batch under one transaction.

        Args:
            records: Source records, processed in order.
            settings: Extraction settings, forwarded to the error hook.

        Returns:
            Number of rows persisted.

        Raises:
            ConfigurationError: If there is no target store.
            Exception: Whatever the error hook escalates, or a transaction
                failure. The batch is rolled back first.
        """
        target = self._target
        if target is None:
            raise ConfigurationError("Target store is not set")

        count = 0
        target.begin_transaction()
        try:
            for source in records:
                # A failing row rolls back to here and no further
                target.begin_savepoint()
                try:
                    self._sync_item(source)
                except Exception as e:
                    target.rollback_savepoint()
                    decision = self._on_error(source, settings, e)
                    if decision.is_abort:
                        raise decision.error or e
                    continue
                target.release_savepoint()
                count += 1
            target.commit()
        except BaseException:
            logger.error(f"Rolling back batch of {len(records)} rows after {count} synced")
            target.rollback()
            raise

        return count
