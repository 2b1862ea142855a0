"""Per-record reconciliation against a target store.

This module provides:
- Reconciler: Finds or creates the target of a source record, copies the
  same-named fields, and persists the result
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from recsync.store.base import Record, RecordStore
    from recsync.sync.stats import SyncStats
    from recsync.sync.types import RowTransform

logger = logging.getLogger(__name__)


class Reconciler:
    """Decides insert vs. update for one source record and applies it.

    The source key is read by the *source* store's unique-key name and
    written to the target by the *target* store's unique-key name, so the
    two may differ.
    """

    def __init__(
        self,
        target: RecordStore,
        stats: SyncStats,
        row_transform: RowTransform | None = None,
    ) -> None:
        """Initialize the reconciler.

        Args:
            target: Store that receives the records.
            stats: Run counters (inserts and changes are held as pending here).
            row_transform: Optional callable(source, target, is_new) run after
                the default field copy, for custom mappings or derived values.
        """
        self._target = target
        self._stats = stats
        self._row_transform = row_transform

    @property
    def target(self) -> RecordStore:
        """Get the target store."""
        return self._target

    def get_or_create(self, source: Record, lookup: bool = True) -> tuple[Record, bool]:
        """Find the target counterpart of source, or create it.

        Args:
            source: Source record.
            lookup: When False, skip the lookup and always build a new record.

        Returns:
            Tuple of (target, is_new).
        """
        key = source[source.store.unique_key]
        target_store = self._target

        if lookup:
            found = target_store.find_by_key(key)
            if found is not None:
                return found, False

        target = target_store.create()
        target[target_store.unique_key] = key
        return target, True

    def sync_fields(self, source: Record, target: Record, is_new: bool) -> Record:
        """Copy every same-named field from source to target, overwriting.

        The row transform, if any, runs after the copy.
        """
        target.copy_from(source, force=True)
        if self._row_transform is not None:
            self._row_transform(source, target, is_new)
        return target

    def save_item(self, target: Record, is_new: bool) -> None:
        """Insert a new target or update an existing one."""
        if is_new:
            target.insert()
            self._stats.add_insert()
        else:
            target.update()
            self._stats.add_change()
