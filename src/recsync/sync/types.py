"""Shared types and dataclasses for sync operations.

This module provides:
- SyncError, ConfigurationError, BatchError, RowError: Exception classes
- ErrorDecision: What the error hook wants done with a failing row
- BatchResult: Outcome of one processed batch
- Type aliases for callbacks
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from recsync.core.types import ErrorAction

if TYPE_CHECKING:
    from recsync.store.base import Record
    from recsync.sync.extract import ExtractSetting


class SyncError(Exception):
    """Base exception for sync errors."""


class ConfigurationError(SyncError):
    """The engine is missing a required setting; the run never starts."""


class BatchError(SyncError):
    """A batch was aborted and rolled back."""


class RowError(BatchError):
    """A row failure escalated to a batch failure by the error hook.

    Attributes:
        record: The record that failed.
        settings: Extraction settings of the batch it belonged to.
    """

    def __init__(
        self,
        message: str,
        record: Record | None = None,
        settings: ExtractSetting | None = None,
    ) -> None:
        super().__init__(message)
        self.record = record
        self.settings = settings


@dataclass(frozen=True)
class ErrorDecision:
    """Result of the error hook for one failing row.

    Use ErrorDecision.skip() to drop the row and keep going, or
    ErrorDecision.abort(error) to raise error and roll back the batch.
    """

    action: ErrorAction
    error: BaseException | None = None

    @classmethod
    def skip(cls) -> ErrorDecision:
        """Suppress the failure; the row is not counted."""
        return cls(action=ErrorAction.SKIP)

    @classmethod
    def abort(cls, error: BaseException) -> ErrorDecision:
        """Escalate: raise error and roll back the batch."""
        return cls(action=ErrorAction.ABORT, error=error)

    @property
    def is_abort(self) -> bool:
        """Check whether the batch must be aborted."""
        return self.action == ErrorAction.ABORT


@dataclass
class BatchResult:
    """Completion event of one batch.

    Attributes:
        records: The source records of the batch.
        settings: Extraction settings of the batch.
        count: Rows synchronized successfully.
        fetch_ms: Time spent extracting the batch, in milliseconds.
        sync_ms: Time spent synchronizing the batch, in milliseconds.
    """

    records: Sequence[Record]
    settings: ExtractSetting | None
    count: int
    fetch_ms: float
    sync_ms: float

    @property
    def skipped(self) -> int:
        """Rows dropped by suppressed errors."""
        return len(self.records) - self.count


# Type aliases for callbacks
ErrorHook = Callable[["Record", "ExtractSetting | None", Exception], ErrorDecision]
FinishedCallback = Callable[[BatchResult], None]
RowTransform = Callable[["Record", "Record", bool], Any]
