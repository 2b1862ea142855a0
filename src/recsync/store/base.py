"""Record and record-store contracts.

This module provides:
- StoreError: Raised for any storage-layer failure
- Record: A dict-backed entity bound to the store that owns it
- RecordStore: Abstract handle on a collection of records

Records are generic key/value entities. A record reads and writes its fields
by name, persists itself through its store, and copies same-named fields from
another record.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Callable
from typing import Any, TypeVar

T = TypeVar("T")


class StoreError(Exception):
    """Raised when the underlying storage fails."""


class Record:
    """A generic entity with named fields.

    The set of valid field names is fixed when the record is built: it is
    the column set of the table the record was read from (or created for),
    even if the store is later routed elsewhere with run_under(). Writes
    are tracked so that update() only persists what changed.
    """

    def __init__(
        self,
        store: RecordStore,
        values: dict[str, Any] | None = None,
        fields: tuple[str, ...] | None = None,
    ) -> None:
        """Initialize the record.

        Args:
            store: Store that owns this record.
            values: Initial field values (not marked dirty).
            fields: Field names of the record (defaults to the store's
                field names at its current location).
        """
        self._store = store
        self._fields: tuple[str, ...] = tuple(fields) if fields is not None else store.field_names
        self._values: dict[str, Any] = dict(values or {})
        self._dirty: set[str] = set()

    @property
    def store(self) -> RecordStore:
        """Get the owning store."""
        return self._store

    @property
    def fields(self) -> tuple[str, ...]:
        """Get the field names of this record."""
        return self._fields

    @property
    def key(self) -> Any:
        """Get the unique-key value."""
        return self._values.get(self._store.unique_key)

    @property
    def dirty_fields(self) -> frozenset[str]:
        """Get the names of fields written since the last save."""
        return frozenset(self._dirty)

    def __getitem__(self, name: str) -> Any:
        if name not in self.fields:
            raise KeyError(name)
        return self._values.get(name)

    def __setitem__(self, name: str, value: Any) -> None:
        if name not in self.fields:
            raise KeyError(name)
        self._values[name] = value
        self._dirty.add(name)

    def __contains__(self, name: object) -> bool:
        return name in self.fields

    def __repr__(self) -> str:
        return f"Record({self._store.unique_key}={self.key!r})"

    def get(self, name: str, default: Any = None) -> Any:
        """Get a field value, or default if the field is unset or unknown."""
        return self._values.get(name, default) if name in self.fields else default

    def copy_from(self, other: Record, force: bool = True) -> int:
        """Copy every field of other whose name also exists on this record.

        Args:
            other: Record to copy from.
            force: Overwrite values already set here. When False, only
                fields that are unset (None) on this record are filled.

        Returns:
            Number of fields copied.
        """
        names = set(self.fields)
        copied = 0
        for name in other.fields:
            if name not in names:
                continue
            if not force and self._values.get(name) is not None:
                continue
            self[name] = other[name]
            copied += 1
        return copied

    def to_dict(self) -> dict[str, Any]:
        """Get the field values as a plain dict."""
        return {name: self._values[name] for name in self.fields if name in self._values}

    def mark_clean(self) -> None:
        """Forget pending writes (called by the store after persisting)."""
        self._dirty.clear()

    def insert(self) -> int:
        """Insert this record into its store."""
        return self._store.insert(self)

    def update(self) -> int:
        """Persist the changed fields of this record."""
        return self._store.update(self)


class RecordStore(ABC):
    """Handle on a target collection of records.

    Implementations must give each thread its own transaction context, and
    must honor run_under() for every operation executed inside it.
    """

    @property
    @abstractmethod
    def unique_key(self) -> str:
        """Name of the field that uniquely identifies a record."""
        ...

    @property
    @abstractmethod
    def field_names(self) -> tuple[str, ...]:
        """Names of all fields of this record type."""
        ...

    @abstractmethod
    def count(self) -> int:
        """Count the records in the collection."""
        ...

    @abstractmethod
    def find_by_key(self, key: Any) -> Record | None:
        """Find the record carrying the given unique-key value."""
        ...

    @abstractmethod
    def find_after(self, key: Any, limit: int) -> list[Record]:
        """Get up to limit records with a key greater than key, ordered by key.

        A key of None starts from the beginning.
        """
        ...

    def create(self, values: dict[str, Any] | None = None) -> Record:
        """Create a new, unsaved record bound to this store."""
        record = Record(self)
        for name, value in (values or {}).items():
            record[name] = value
        return record

    @abstractmethod
    def insert(self, record: Record) -> int:
        """Insert a record. Returns the number of rows written."""
        ...

    @abstractmethod
    def update(self, record: Record) -> int:
        """Update a record by its key. Returns the number of rows written."""
        ...

    @abstractmethod
    def begin_transaction(self) -> None:
        """Begin (or nest into) a transaction for the calling thread."""
        ...

    @abstractmethod
    def commit(self) -> None:
        """Commit the calling thread's transaction."""
        ...

    @abstractmethod
    def rollback(self) -> None:
        """Roll back the calling thread's transaction."""
        ...

    @abstractmethod
    def begin_savepoint(self) -> None:
        """Mark a savepoint inside the calling thread's transaction."""
        ...

    @abstractmethod
    def release_savepoint(self) -> None:
        """Keep the writes since the latest savepoint and forget it."""
        ...

    @abstractmethod
    def rollback_savepoint(self) -> None:
        """Undo the writes since the latest savepoint, keeping the transaction open."""
        ...

    @abstractmethod
    def run_under(self, connection: str, table: str, fn: Callable[[], T]) -> T:
        """Run fn with every store operation routed to connection/table."""
        ...
