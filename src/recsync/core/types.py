"""Shared types for recsync.

This module defines enums used by the engine, the CLI, and the stores.
"""

from __future__ import annotations

from enum import Enum, auto


class EngineState(str, Enum):
    """Lifecycle state of a sync engine run.

    A run only moves forward: CREATED -> STARTED -> FINISHED.
    """

    CREATED = "created"
    STARTED = "started"
    FINISHED = "finished"


class ErrorAction(Enum):
    """What the error hook wants done with a failing row."""

    SKIP = auto()  # Drop the row, keep the batch going
    ABORT = auto()  # Roll back the whole batch


class SyncMode(str, Enum):
    """Engine variant selected by a job file."""

    RECORDS = "records"  # Different source and target record types
    TABLE = "table"  # Same record type, explicit target connection/table
