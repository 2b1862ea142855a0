"""Run statistics shared by every batch of an engine run."""

from __future__ import annotations

import threading
from dataclasses import dataclass


@dataclass(frozen=True)
class StatsSnapshot:
    """Point-in-time copy of the counters."""

    total: int
    inserts: int
    changes: int
    errors: int
    batches: int
    fetch_ms: float
    sync_ms: float

    @property
    def rows_per_second(self) -> float:
        """Sync throughput, ignoring extraction time."""
        if self.sync_ms <= 0:
            return 0.0
        return self.total * 1000.0 / self.sync_ms


class SyncStats:
    """Thread-safe counters for one engine run.

    Batches may be processed on several worker threads at once, so the
    totals are only updated under a lock. Inserts and changes are held per thread
    until the batch that made them commits (add_batch) or is rolled back
    (discard_pending), so the totals only count persisted rows.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._local = threading.local()
        self._total = 0
        self._inserts = 0
        self._changes = 0
        self._errors = 0
        self._batches = 0
        self._fetch_ms = 0.0
        self._sync_ms = 0.0

    @property
    def total(self) -> int:
        """Rows synchronized successfully."""
        return self._total

    @property
    def inserts(self) -> int:
        """Rows inserted by committed batches."""
        return self._inserts

    @property
    def changes(self) -> int:
        """Rows updated by committed batches."""
        return self._changes

    @property
    def errors(self) -> int:
        """Row failures seen by the error policy."""
        return self._errors

    @property
    def batches(self) -> int:
        """Batches completed."""
        return self._batches

    def _pending(self) -> list[int]:
        pending = getattr(self._local, "pending", None)
        if pending is None:
            pending = self._local.pending = [0, 0]
        return pending

    def pending(self) -> tuple[int, int]:
        """Get the (inserts, changes) of the calling thread's uncommitted batch."""
        inserts, changes = self._pending()
        return inserts, changes

    def add_insert(self) -> None:
        self._pending()[0] += 1

    def add_change(self) -> None:
        self._pending()[1] += 1

    def discard_pending(self) -> None:
        """Drop the calling thread's inserts and changes (batch rolled back)."""
        self._local.pending = [0, 0]

    def add_error(self) -> int:
        """Count a row failure.

        Returns:
            The error count including this one.
        """
        with self._lock:
            self._errors += 1
            return self._errors

    def add_batch(self, count: int, fetch_ms: float, sync_ms: float) -> None:
        """Fold a committed batch, and the calling thread's pending rows, into the totals."""
        inserts, changes = self._pending()
        self._local.pending = [0, 0]
        with self._lock:
            self._inserts += inserts
            self._changes += changes
            self._batches += 1
            self._total += count
            self._fetch_ms += fetch_ms
            self._sync_ms += sync_ms

    def snapshot(self) -> StatsSnapshot:
        """Get a consistent copy of all counters."""
        with self._lock:
            return StatsSnapshot(
                total=self._total,
                inserts=self._inserts,
                changes=self._changes,
                errors=self._errors,
                batches=self._batches,
                fetch_ms=self._fetch_ms,
                sync_ms=self._sync_ms,
            )
