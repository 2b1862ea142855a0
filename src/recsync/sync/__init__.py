"""Sync module - Reconciliation engine and batch processing.

This package contains:
- engine: SyncEngine, RecordSync, TableSync
- batch: BatchSynchronizer (one transaction per batch)
- reconciler: Reconciler (lookup-or-create, field copy, save)
- extract: Extractor and batch settings
- stats: SyncStats run counters
- types: Exceptions, ErrorDecision, BatchResult
"""

from recsync.sync.batch import BatchSynchronizer
from recsync.sync.engine import RecordSync, SyncEngine, TableSync
from recsync.sync.extract import ExtractedBatch, Extractor, ExtractSetting
from recsync.sync.reconciler import Reconciler
from recsync.sync.stats import StatsSnapshot, SyncStats
from recsync.sync.types import (
    BatchError,
    BatchResult,
    ConfigurationError,
    ErrorDecision,
    ErrorHook,
    FinishedCallback,
    RowError,
    RowTransform,
    SyncError,
)

__all__ = [
    # Engines
    "RecordSync",
    "SyncEngine",
    "TableSync",
    # Components
    "BatchSynchronizer",
    "Reconciler",
    # Extraction
    "ExtractSetting",
    "ExtractedBatch",
    "Extractor",
    # Stats
    "StatsSnapshot",
    "SyncStats",
    # Types
    "BatchError",
    "BatchResult",
    "ConfigurationError",
    "ErrorDecision",
    "ErrorHook",
    "FinishedCallback",
    "RowError",
    "RowTransform",
    "SyncError",
]
