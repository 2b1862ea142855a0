"""Core module - Shared configuration and types."""

from recsync.core.config import (
    DEFAULT_BATCH_SIZE,
    DEFAULT_CONNECTION,
    Endpoint,
    JobConfig,
    SyncConfig,
    load_job_config,
    save_job_config,
)
from recsync.core.types import EngineState, ErrorAction, SyncMode

__all__ = [
    # Config
    "DEFAULT_BATCH_SIZE",
    "DEFAULT_CONNECTION",
    "Endpoint",
    "JobConfig",
    "SyncConfig",
    "load_job_config",
    "save_job_config",
    # Types
    "EngineState",
    "ErrorAction",
    "SyncMode",
]
