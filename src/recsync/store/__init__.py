"""Store module - Record contract and the SQLAlchemy-backed store."""

from recsync.store.base import Record, RecordStore, StoreError
from recsync.store.sql import ConnectionRegistry, SqlRecordStore

__all__ = [
    "ConnectionRegistry",
    "Record",
    "RecordStore",
    "SqlRecordStore",
    "StoreError",
]
