"""Sync engines coordinating batch reconciliation.

This module provides:
- SyncEngine: Generic engine; source and target share type, store and location
- RecordSync: Source and target are different record types
- TableSync: Same record type, written to an explicit target connection/table

Lifecycle of one run: CREATED -> start() -> STARTED -> process_batch()* ->
finish() -> FINISHED. run() drives the whole sequence from an Extractor.
"""

from __future__ import annotations

import functools
import logging
import threading
import time
from collections.abc import Iterable, Sequence
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from typing import TYPE_CHECKING

from recsync.core.config import SyncConfig
from recsync.core.types import EngineState
from recsync.sync.batch import BatchSynchronizer
from recsync.sync.extract import ExtractedBatch, Extractor
from recsync.sync.reconciler import Reconciler
from recsync.sync.stats import StatsSnapshot, SyncStats
from recsync.sync.types import (
    BatchResult,
    ConfigurationError,
    ErrorDecision,
    RowError,
    SyncError,
)

if TYPE_CHECKING:
    from recsync.store.base import Record, RecordStore
    from recsync.sync.extract import ExtractSetting
    from recsync.sync.types import ErrorHook, FinishedCallback, RowTransform

logger = logging.getLogger(__name__)


class SyncEngine:
    """Synchronizes batches of source records into a target store.

    Subclasses customize the per-row step by overriding sync_item() or
    sync_fields(); callers can instead pass a row_transform.
    """

    def __init__(
        self,
        source: RecordStore,
        target: RecordStore | None,
        config: SyncConfig | None = None,
        stats: SyncStats | None = None,
        on_error: ErrorHook | None = None,
        on_finished: FinishedCallback | None = None,
        row_transform: RowTransform | None = None,
    ) -> None:
        """Initialize the engine.

        Args:
            source: Store the records are extracted from.
            target: Store the records are written to.
            config: Run settings (defaults to SyncConfig()).
            stats: Shared counters (a fresh SyncStats if omitted).
            on_error: Replaces the default row error policy.
            on_finished: Called with each BatchResult after the stats update.
            row_transform: Called as (source, target, is_new) after the field copy.
        """
        self.source = source
        self.target = target
        self.config = config or SyncConfig()
        self.stats = stats or SyncStats()
        self.insert_only = self.config.insert_only

        self._error_hook = on_error
        self._finished_callback = on_finished
        self._state = EngineState.CREATED
        self._state_lock = threading.Lock()

        self.reconciler = Reconciler(target, self.stats, row_transform)
        self._batches = BatchSynchronizer(target, self.sync_item, self.on_error)

    @property
    def state(self) -> EngineState:
        """Get the lifecycle state."""
        return self._state

    def describe_target(self) -> str:
        """Describe where rows are written, for log messages."""
        return repr(self.target)

    # === Startup ===

    def check_config(self) -> None:
        """Validate settings before the run.

        Raises:
            ConfigurationError: If the target store is missing.
        """
        self.require_target()

    def require_target(self) -> RecordStore:
        """Get the target store.

        Raises:
            ConfigurationError: If the target store is missing.
        """
        if self.target is None:
            raise ConfigurationError("Target store is not set")
        return self.target

    def count_target(self) -> int:
        """Count the rows currently in the target."""
        return self.require_target().count()

    def start(self) -> None:
        """Validate the configuration and decide on insert-only mode.

        Raises:
            SyncError: If the engine was already started.
            ConfigurationError: If a required setting is missing.
        """
        with self._state_lock:
            if self._state != EngineState.CREATED:
                raise SyncError(f"Cannot start engine in state '{self._state.value}'")

            self.check_config()

            # An empty target can only receive inserts
            if not self.insert_only and self.config.auto_insert_only:
                if self.count_target() == 0:
                    logger.info(f"Target {self.describe_target()} is empty, using insert-only mode")
                    self.insert_only = True

            self._state = EngineState.STARTED

        logger.info(
            f"Sync started: {self.source!r} -> {self.describe_target()} "
            f"(insert_only={self.insert_only})"
        )

    # === Row processing ===

    def sync_item(self, source: Record) -> Record:
        """Synchronize one source record and return its target.

        In insert-only mode the source record is inserted as-is when it
        already belongs to the target store; otherwise a new target is built.
        """
        if self.insert_only:
            if source.store is self.target:
                target, is_new = source, True
            else:
                target, is_new = self.reconciler.get_or_create(source, lookup=False)
        else:
            target, is_new = self.reconciler.get_or_create(source)

        self.sync_fields(source, target, is_new)
        self.reconciler.save_item(target, is_new)
        return target

    def sync_fields(self, source: Record, target: Record, is_new: bool) -> Record:
        """Copy fields from source to target (override for custom mappings)."""
        return self.reconciler.sync_fields(source, target, is_new)

    def on_error(
        self,
        record: Record,
        settings: ExtractSetting | None,
        error: Exception,
    ) -> ErrorDecision:
        """Decide what to do with a failing row.

        Every failure is counted. A hook given at construction decides;
        otherwise the row is skipped until max_errors failures were seen.
        """
        errors = self.stats.add_error()
        if self._error_hook is not None:
            return self._error_hook(record, settings, error)

        logger.warning(f"Failed to sync {record!r}: {error}")
        if self.config.max_errors and errors >= self.config.max_errors:
            escalated = RowError(
                f"Too many row errors ({errors}), last on {record!r}: {error}",
                record=record,
                settings=settings,
            )
            escalated.__cause__ = error
            return ErrorDecision.abort(escalated)
        return ErrorDecision.skip()

    # === Batch processing ===

    def on_sync(self, records: Sequence[Record], settings: ExtractSetting | None) -> int:
        """Synchronize a batch in one transaction. Returns rows persisted."""
        return self._batches.sync_batch(records, settings)

    def process_batch(
        self,
        records: Sequence[Record],
        settings: ExtractSetting | None = None,
        fetch_ms: float = 0.0,
    ) -> BatchResult:
        """Synchronize one extracted batch and report its completion.

        Safe to call from several threads at once for different batches.

        Args:
            records: Source records of the batch.
            settings: Extraction settings of the batch.
            fetch_ms: Time the caller spent extracting the batch.

        Returns:
            BatchResult with the success count and timings.
        """
        if self._state != EngineState.STARTED:
            raise SyncError(f"Cannot process a batch in state '{self._state.value}'")

        start = time.perf_counter()
        try:
            count = self.on_sync(records, settings)
        except BaseException:
            self.stats.discard_pending()
            raise
        sync_ms = (time.perf_counter() - start) * 1000

        result = BatchResult(
            records=records,
            settings=settings,
            count=count,
            fetch_ms=fetch_ms,
            sync_ms=sync_ms,
        )
        self.on_finished(result)
        return result

    def on_finished(self, result: BatchResult) -> None:
        """Fold a finished batch into the stats and notify the callback."""
        self.stats.add_batch(result.count, result.fetch_ms, result.sync_ms)

        index = result.settings.batch_index if result.settings else "-"
        logger.info(
            f"Batch {index}: {result.count}/{len(result.records)} rows synced "
            f"(fetch {result.fetch_ms:.1f} ms, sync {result.sync_ms:.1f} ms)"
        )
        if self._finished_callback is not None:
            self._finished_callback(result)

    # === Run ===

    def finish(self) -> StatsSnapshot:
        """End the run and log a summary.

        Returns:
            Final counters.
        """
        with self._state_lock:
            self._state = EngineState.FINISHED

        summary = self.stats.snapshot()
        logger.info(
            f"Sync finished: {summary.total} rows in {summary.batches} batches "
            f"({summary.inserts} inserted, {summary.changes} updated, {summary.errors} errors)"
        )
        return summary

    def run(self, batches: Iterable[ExtractedBatch] | None = None) -> StatsSnapshot:
        """Run start -> all batches -> finish.

        Args:
            batches: Batch source (defaults to an Extractor over the source store).

        Returns:
            Final counters.
        """
        self.start()
        if batches is None:
            batches = Extractor(self.source, batch_size=self.config.batch_size)

        try:
            if self.config.max_workers > 1:
                self._run_concurrent(batches, self.config.max_workers)
            else:
                for batch in batches:
                    self.process_batch(batch.records, batch.settings, batch.fetch_ms)
        finally:
            summary = self.finish()
        return summary

    def _run_concurrent(self, batches: Iterable[ExtractedBatch], max_workers: int) -> None:
        """Process batches on a thread pool, extracting ahead of the workers."""
        pending: set[Future[BatchResult]] = set()

        with ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="recsync") as pool:
            try:
                for batch in batches:
                    pending.add(
                        pool.submit(self.process_batch, batch.records, batch.settings, batch.fetch_ms)
                    )
                    # Bound the number of extracted batches held in memory
                    if len(pending) >= max_workers * 2:
                        done, pending = wait(pending, return_when=FIRST_COMPLETED)
                        for future in done:
                            future.result()

                for future in pending:
                    future.result()
            except BaseException:
                for future in pending:
                    future.cancel()
                raise


class RecordSync(SyncEngine):
    """Synchronizes records of one type into a store of another type.

    Only same-named fields are copied. The target is always a fresh or
    looked-up record of the target type, never the source object itself.
    """

    def sync_item(self, source: Record) -> Record:
        """Synchronize one source record into the target type."""
        target, is_new = self.reconciler.get_or_create(source, lookup=not self.insert_only)
        self.sync_fields(source, target, is_new)
        self.reconciler.save_item(target, is_new)
        return target


class TableSync(SyncEngine):
    """Synchronizes records into another table and/or connection of the same type.

    The source store is also the target store; every target-side operation
    (count probe, lookups, writes, transaction) runs under
    store.run_under(target_connection, target_table, ...).
    """

    def __init__(
        self,
        store: RecordStore,
        config: SyncConfig | None = None,
        stats: SyncStats | None = None,
        on_error: ErrorHook | None = None,
        on_finished: FinishedCallback | None = None,
        row_transform: RowTransform | None = None,
    ) -> None:
        """Initialize the engine.

        Args:
            store: Store of the record type; read at its default location,
                written at config.target_connection/config.target_table.
            config: Run settings; target_connection and target_table are required.
            stats: Shared counters.
            on_error: Replaces the default row error policy.
            on_finished: Called with each BatchResult.
            row_transform: Called as (source, target, is_new) after the field copy.
        """
        super().__init__(
            store,
            store,
            config=config,
            stats=stats,
            on_error=on_error,
            on_finished=on_finished,
            row_transform=row_transform,
        )

    @property
    def target_connection(self) -> str | None:
        """Connection name rows are written to."""
        return self.config.target_connection

    @property
    def target_table(self) -> str | None:
        """Table name rows are written to."""
        return self.config.target_table

    def describe_target(self) -> str:
        """Describe the target connection/table."""
        return f"{self.target_connection}/{self.target_table}"

    def check_config(self) -> None:
        """Require a target store, connection and table."""
        super().check_config()
        if not self.target_connection:
            raise ConfigurationError("target_connection is required")
        if not self.target_table:
            raise ConfigurationError("target_table is required")

    def count_target(self) -> int:
        """Count the rows at the configured target connection/table."""
        store = self.require_target()
        return store.run_under(self.target_connection, self.target_table, store.count)

    def on_sync(self, records: Sequence[Record], settings: ExtractSetting | None) -> int:
        """Synchronize a batch with the store routed to the target location."""
        return self.require_target().run_under(
            self.target_connection,
            self.target_table,
            functools.partial(super().on_sync, records, settings),
        )
