"""SQL record store using SQLAlchemy Core.

This module provides:
- ConnectionRegistry: Named database URLs with lazily created engines
- SqlRecordStore: RecordStore over one reflected table

Tables are reflected on first use, so any existing table can be synced
without declaring a model. Transactions are kept per thread and per
connection name; run_under() reroutes a thread's operations to another
connection/table until the wrapped call returns. Savepoints nest inside the
thread's transaction so a single failed row can be undone on its own.
"""

from __future__ import annotations

import contextlib
import logging
import threading
from collections.abc import Callable, Iterator
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, TypeVar

from sqlalchemy import MetaData, Table, create_engine, event, func, insert, select, update
from sqlalchemy.exc import NoSuchTableError, SQLAlchemyError

from recsync.core.config import DEFAULT_CONNECTION
from recsync.store.base import Record, RecordStore, StoreError

if TYPE_CHECKING:
    from sqlalchemy import Connection, Engine, NestedTransaction, RootTransaction

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _enable_sqlite_savepoints(engine: Engine) -> None:
    """Let SQLAlchemy emit BEGIN itself so SAVEPOINT nests inside it.

    pysqlite defers BEGIN until the first write, so a leading SAVEPOINT would
    open (and its RELEASE would commit) the transaction on its own.
    """

    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection: Any, connection_record: Any) -> None:
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.close()

    @event.listens_for(engine, "begin")
    def _on_begin(conn: Connection) -> None:
        conn.exec_driver_sql("BEGIN")


class ConnectionRegistry:
    """Maps connection names to database URLs.

    Engines are created on first use and shared by every store that
    resolves the same name.
    """

    def __init__(self, urls: dict[str, str] | None = None) -> None:
        """Initialize the registry.

        Args:
            urls: Mapping of connection name to SQLAlchemy URL.
        """
        self._urls: dict[str, str] = dict(urls or {})
        self._engines: dict[str, Engine] = {}
        self._lock = threading.Lock()

    @property
    def names(self) -> list[str]:
        """Get the registered connection names."""
        return sorted(self._urls)

    def add(self, name: str, url: str) -> None:
        """Register (or replace) a connection URL."""
        with self._lock:
            engine = self._engines.pop(name, None)
            if engine is not None:
                engine.dispose()
            self._urls[name] = url

    def get_engine(self, name: str) -> Engine:
        """Get the engine for a connection name.

        Raises:
            StoreError: If the name is not registered.
        """
        with self._lock:
            engine = self._engines.get(name)
            if engine is not None:
                return engine
            url = self._urls.get(name)
            if url is None:
                raise StoreError(f"Unknown connection: {name}")

            if url.startswith("sqlite"):
                # Batches may run on worker threads
                engine = create_engine(url, connect_args={"check_same_thread": False})
                _enable_sqlite_savepoints(engine)
            else:
                engine = create_engine(url, pool_pre_ping=True)

            self._engines[name] = engine
            logger.debug(f"Created engine for connection '{name}'")
            return engine

    def dispose(self) -> None:
        """Dispose all engines."""
        with self._lock:
            for engine in self._engines.values():
                engine.dispose()
            self._engines.clear()


@dataclass
class _Schema:
    """A reflected table and its column names."""

    table: Table
    field_names: tuple[str, ...]


@dataclass
class _Transaction:
    """An open transaction of one thread on one connection."""

    connection: Connection
    transaction: RootTransaction
    depth: int = 1
    savepoints: list[NestedTransaction] = field(default_factory=list)


class SqlRecordStore(RecordStore):
    """Record store over a single SQL table.

    Uses one transaction per thread and connection name, so batches running
    on different threads never share or roll back each other's work.
    """

    def __init__(
        self,
        registry: ConnectionRegistry,
        table: str,
        unique_key: str = "id",
        connection: str = DEFAULT_CONNECTION,
    ) -> None:
        """Initialize the store.

        Args:
            registry: Connection registry used to resolve connection names.
            table: Default table name.
            unique_key: Column that uniquely identifies a record.
            connection: Default connection name.
        """
        self._registry = registry
        self._table_name = table
        self._key = unique_key
        self._connection = connection
        self._schemas: dict[tuple[str, str], _Schema] = {}
        self._schemas_lock = threading.Lock()
        self._local = threading.local()

    def __repr__(self) -> str:
        return f"SqlRecordStore({self.location_name})"

    # === Location and scoping ===

    def _scopes(self) -> list[tuple[str, str]]:
        scopes = getattr(self._local, "scopes", None)
        if scopes is None:
            scopes = self._local.scopes = []
        return scopes

    @property
    def location(self) -> tuple[str, str]:
        """Get the (connection, table) the calling thread currently targets."""
        scopes = self._scopes()
        return scopes[-1] if scopes else (self._connection, self._table_name)

    @property
    def location_name(self) -> str:
        """Get the current location as 'connection/table'."""
        connection, table = self.location
        return f"{connection}/{table}"

    def run_under(self, connection: str, table: str, fn: Callable[[], T]) -> T:
        """Run fn with every store operation routed to connection/table.

        Args:
            connection: Connection name to route to.
            table: Table name to route to.
            fn: Unit of work.

        Returns:
            Whatever fn returns.
        """
        scopes = self._scopes()
        scopes.append((connection, table))
        try:
            return fn()
        finally:
            scopes.pop()

    def _schema(self) -> _Schema:
        location = self.location
        schema = self._schemas.get(location)
        if schema is not None:
            return schema

        with self._schemas_lock:
            schema = self._schemas.get(location)
            if schema is not None:
                return schema

            connection, table_name = location
            engine = self._registry.get_engine(connection)
            try:
                table = Table(table_name, MetaData(), autoload_with=engine)
            except NoSuchTableError as e:
                raise StoreError(f"Table not found: {connection}/{table_name}") from e
            except SQLAlchemyError as e:
                raise StoreError(f"Cannot reflect {connection}/{table_name}: {e}") from e

            if self._key not in table.c:
                raise StoreError(
                    f"Table {connection}/{table_name} has no unique-key column '{self._key}'"
                )

            schema = _Schema(table=table, field_names=tuple(c.name for c in table.columns))
            self._schemas[location] = schema
            return schema

    # === Contract ===

    @property
    def unique_key(self) -> str:
        """Name of the unique-key column."""
        return self._key

    @property
    def field_names(self) -> tuple[str, ...]:
        """Column names of the current table."""
        return self._schema().field_names

    @contextlib.contextmanager
    def _connect(self, action: str) -> Iterator[Connection]:
        """Yield the thread's transaction connection, or a short autocommit one.

        SQLAlchemy errors raised inside are re-raised as StoreError.
        """
        connection_name, _ = self.location
        try:
            tx = self._transactions().get(connection_name)
            if tx is not None:
                yield tx.connection
            else:
                with self._registry.get_engine(connection_name).begin() as conn:
                    yield conn
        except SQLAlchemyError as e:
            raise StoreError(f"{action} failed on {self.location_name}: {e}") from e

    def count(self) -> int:
        """Count the rows of the current table."""
        table = self._schema().table
        with self._connect("count") as conn:
            return int(conn.execute(select(func.count()).select_from(table)).scalar_one())

    def find_by_key(self, key: Any) -> Record | None:
        """Find the row whose unique-key column equals key."""
        schema = self._schema()
        table = schema.table
        stmt = select(table).where(table.c[self._key] == key)
        with self._connect("find_by_key") as conn:
            row = conn.execute(stmt).mappings().first()
        return Record(self, dict(row), schema.field_names) if row is not None else None

    def find_after(self, key: Any, limit: int) -> list[Record]:
        """Get up to limit rows with a key greater than key, ordered by key."""
        schema = self._schema()
        table = schema.table
        column = table.c[self._key]
        stmt = select(table).order_by(column).limit(limit)
        if key is not None:
            stmt = stmt.where(column > key)
        with self._connect("find_after") as conn:
            rows = conn.execute(stmt).mappings().all()
        return [Record(self, dict(row), schema.field_names) for row in rows]

    def insert(self, record: Record) -> int:
        """Insert a record into the current table."""
        schema = self._schema()
        values = {k: v for k, v in record.to_dict().items() if k in schema.field_names}
        stmt = insert(schema.table)
        if values:
            stmt = stmt.values(values)
        with self._connect("insert") as conn:
            written = conn.execute(stmt).rowcount
        record.mark_clean()
        return written

    def update(self, record: Record) -> int:
        """Write the dirty fields of a record, matched by its unique key.

        Returns 0 without touching the database if nothing changed.
        """
        schema = self._schema()
        changed = {
            name: record[name]
            for name in record.dirty_fields
            if name != self._key and name in schema.field_names
        }
        if not changed:
            return 0

        stmt = (
            update(schema.table)
            .where(schema.table.c[self._key] == record.key)
            .values(changed)
        )
        with self._connect("update") as conn:
            written = conn.execute(stmt).rowcount
        record.mark_clean()
        return written

    # === Transactions ===

    def _transactions(self) -> dict[str, _Transaction]:
        transactions = getattr(self._local, "transactions", None)
        if transactions is None:
            transactions = self._local.transactions = {}
        return transactions

    def begin_transaction(self) -> None:
        """Begin a transaction on the current connection, or nest into it."""
        connection_name, _ = self.location
        transactions = self._transactions()
        tx = transactions.get(connection_name)
        if tx is not None:
            tx.depth += 1
            return

        try:
            conn = self._registry.get_engine(connection_name).connect()
            transactions[connection_name] = _Transaction(connection=conn, transaction=conn.begin())
        except SQLAlchemyError as e:
            raise StoreError(f"Cannot begin transaction on {connection_name}: {e}") from e

    def commit(self) -> None:
        """Commit the current connection's transaction.

        Only the outermost commit reaches the database.

        Raises:
            StoreError: If no transaction is active.
        """
        connection_name, _ = self.location
        transactions = self._transactions()
        tx = transactions.get(connection_name)
        if tx is None:
            raise StoreError(f"No active transaction on {connection_name}")

        tx.depth -= 1
        if tx.depth > 0:
            return

        del transactions[connection_name]
        try:
            tx.transaction.commit()
        except SQLAlchemyError as e:
            raise StoreError(f"Commit failed on {connection_name}: {e}") from e
        finally:
            tx.connection.close()

    def rollback(self) -> None:
        """Roll back the whole transaction of the current connection, at any depth."""
        connection_name, _ = self.location
        tx = self._transactions().pop(connection_name, None)
        if tx is None:
            return

        try:
            tx.transaction.rollback()
        except SQLAlchemyError as e:
            raise StoreError(f"Rollback failed on {connection_name}: {e}") from e
        finally:
            tx.connection.close()

    # === Savepoints ===

    def _current_transaction(self) -> _Transaction:
        connection_name, _ = self.location
        tx = self._transactions().get(connection_name)
        if tx is None:
            raise StoreError(f"No active transaction on {connection_name}")
        return tx

    def begin_savepoint(self) -> None:
        """Open a savepoint in the current connection's transaction.

        Raises:
            StoreError: If no transaction is active.
        """
        tx = self._current_transaction()
        try:
            tx.savepoints.append(tx.connection.begin_nested())
        except SQLAlchemyError as e:
            raise StoreError(f"Cannot create savepoint on {self.location_name}: {e}") from e

    def release_savepoint(self) -> None:
        """Release the latest savepoint; its writes stay in the transaction."""
        tx = self._current_transaction()
        if not tx.savepoints:
            raise StoreError(f"No active savepoint on {self.location_name}")
        try:
            tx.savepoints.pop().commit()
        except SQLAlchemyError as e:
            raise StoreError(f"Cannot release savepoint on {self.location_name}: {e}") from e

    def rollback_savepoint(self) -> None:
        """Undo the writes made since the latest savepoint."""
        tx = self._current_transaction()
        if not tx.savepoints:
            raise StoreError(f"No active savepoint on {self.location_name}")
        try:
            tx.savepoints.pop().rollback()
        except SQLAlchemyError as e:
            raise StoreError(f"Cannot roll back savepoint on {self.location_name}: {e}") from e
