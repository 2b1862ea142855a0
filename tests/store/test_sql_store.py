"""Tests for the SQLAlchemy record store."""

from __future__ import annotations

import threading

import pytest
from helpers import create_people_table, rows_by_key, seed

from recsync.store.base import StoreError
from recsync.store.sql import ConnectionRegistry, SqlRecordStore


class TestConnectionRegistry:
    """Tests for ConnectionRegistry."""

    def test_unknown_connection(self, registry: ConnectionRegistry) -> None:
        """Resolving an unregistered name should raise StoreError."""
        with pytest.raises(StoreError, match="Unknown connection"):
            registry.get_engine("nowhere")

    def test_engine_is_shared(self, registry: ConnectionRegistry) -> None:
        """The same name should resolve to the same engine."""
        assert registry.get_engine("default") is registry.get_engine("default")
        assert registry.names == ["archive", "default"]

    def test_sqlite_uses_wal(self, registry: ConnectionRegistry) -> None:
        """SQLite file databases should be switched to WAL mode."""
        with registry.get_engine("default").connect() as conn:
            mode = conn.exec_driver_sql("PRAGMA journal_mode").scalar()
        assert mode.lower() == "wal"


class TestQueries:
    """Tests for count and lookups."""

    def test_count(self, people: SqlRecordStore) -> None:
        """Count should reflect inserted rows."""
        assert people.count() == 0
        seed(people, [{"id": 1, "name": "A"}, {"id": 2, "name": "B"}])
        assert people.count() == 2

    def test_find_by_key(self, people: SqlRecordStore) -> None:
        """Should return the matching record bound to the store."""
        seed(people, [{"id": 1, "name": "A"}])
        record = people.find_by_key(1)
        assert record is not None
        assert record.store is people
        assert record["name"] == "A"
        assert record.dirty_fields == frozenset()

    def test_find_by_key_missing(self, people: SqlRecordStore) -> None:
        """Should return None when no row carries the key."""
        assert people.find_by_key(42) is None

    def test_find_after_pages_in_key_order(self, people: SqlRecordStore) -> None:
        """Should return keys greater than the cursor, ascending, limited."""
        seed(people, [{"id": i, "name": f"p{i}"} for i in (5, 1, 4, 2, 3)])

        first = people.find_after(None, 2)
        rest = people.find_after(first[-1].key, 10)

        assert [r.key for r in first] == [1, 2]
        assert [r.key for r in rest] == [3, 4, 5]

    def test_missing_table(self, registry: ConnectionRegistry) -> None:
        """Using a table that does not exist should raise StoreError."""
        store = SqlRecordStore(registry, "ghosts")
        with pytest.raises(StoreError, match="Table not found"):
            store.count()

    def test_missing_key_column(self, people: SqlRecordStore, registry: ConnectionRegistry) -> None:
        """A unique key that is not a column should raise StoreError."""
        store = SqlRecordStore(registry, "people", unique_key="uuid")
        with pytest.raises(StoreError, match="uuid"):
            store.count()


class TestWrites:
    """Tests for insert and update."""

    def test_update_writes_dirty_fields(self, people: SqlRecordStore) -> None:
        """Update should persist changed fields, matched by key."""
        seed(people, [{"id": 1, "name": "old", "email": "a@example.com"}])
        record = people.find_by_key(1)
        assert record is not None

        record["name"] = "new"
        assert record.update() == 1

        assert rows_by_key(people)[1] == {"id": 1, "name": "new", "email": "a@example.com"}

    def test_update_without_changes(self, people: SqlRecordStore) -> None:
        """Update with nothing dirty should write nothing."""
        seed(people, [{"id": 1, "name": "A"}])
        record = people.find_by_key(1)
        assert record is not None
        assert record.update() == 0

    def test_duplicate_key_raises_store_error(self, people: SqlRecordStore) -> None:
        """Constraint violations should surface as StoreError."""
        seed(people, [{"id": 1, "name": "A"}])
        with pytest.raises(StoreError, match="insert failed"):
            people.create({"id": 1, "name": "again"}).insert()


class TestTransactions:
    """Tests for per-thread transactions."""

    def test_commit_makes_writes_durable(self, people: SqlRecordStore) -> None:
        """Rows written in a transaction should persist after commit."""
        people.begin_transaction()
        seed(people, [{"id": 1, "name": "A"}])
        people.commit()
        assert people.count() == 1

    def test_rollback_discards_writes(self, people: SqlRecordStore) -> None:
        """Rows written in a transaction should vanish after rollback."""
        people.begin_transaction()
        seed(people, [{"id": 1, "name": "A"}, {"id": 2, "name": "B"}])
        assert people.count() == 2  # visible inside the transaction
        people.rollback()
        assert people.count() == 0

    def test_nested_commit_waits_for_outermost(self, people: SqlRecordStore) -> None:
        """Only the outermost commit should end the transaction."""
        people.begin_transaction()
        people.begin_transaction()
        seed(people, [{"id": 1, "name": "A"}])
        people.commit()
        people.rollback()
        assert people.count() == 0

    def test_commit_without_transaction(self, people: SqlRecordStore) -> None:
        """Commit with no active transaction should raise StoreError."""
        with pytest.raises(StoreError, match="No active transaction"):
            people.commit()

    def test_rollback_without_transaction_is_noop(self, people: SqlRecordStore) -> None:
        """Rollback with no active transaction should do nothing."""
        people.rollback()

    def test_transactions_are_per_thread(self, people: SqlRecordStore) -> None:
        """Another thread should not see or end this thread's transaction."""
        people.begin_transaction()
        errors: list[Exception] = []

        def other() -> None:
            try:
                people.commit()
            except StoreError as e:
                errors.append(e)

        thread = threading.Thread(target=other)
        thread.start()
        thread.join()
        people.rollback()

        assert len(errors) == 1


class TestSavepoints:
    """Tests for per-row savepoints inside a transaction."""

    def test_rollback_to_savepoint_keeps_earlier_writes(self, people: SqlRecordStore) -> None:
        """Rolling back a savepoint should undo only what followed it."""
        people.begin_transaction()
        seed(people, [{"id": 1, "name": "A"}])
        people.begin_savepoint()
        seed(people, [{"id": 2, "name": "B"}])
        people.rollback_savepoint()
        seed(people, [{"id": 3, "name": "C"}])
        people.commit()

        assert set(rows_by_key(people)) == {1, 3}

    def test_released_savepoint_stays_in_transaction(self, people: SqlRecordStore) -> None:
        """Releasing a savepoint must not commit; the outer rollback still undoes it."""
        people.begin_transaction()
        people.begin_savepoint()
        seed(people, [{"id": 1, "name": "A"}])
        people.release_savepoint()
        people.rollback()

        assert people.count() == 0

    def test_failed_statement_rolls_back_to_savepoint(self, people: SqlRecordStore) -> None:
        """After a constraint violation the transaction should remain usable."""
        people.begin_transaction()
        seed(people, [{"id": 1, "name": "A"}])
        people.begin_savepoint()
        with pytest.raises(StoreError):
            people.create({"id": 1, "name": "again"}).insert()
        people.rollback_savepoint()
        seed(people, [{"id": 2, "name": "B"}])
        people.commit()

        assert rows_by_key(people)[1]["name"] == "A"
        assert set(rows_by_key(people)) == {1, 2}

    def test_savepoint_requires_transaction(self, people: SqlRecordStore) -> None:
        """A savepoint outside a transaction should raise StoreError."""
        with pytest.raises(StoreError, match="No active transaction"):
            people.begin_savepoint()

    def test_release_without_savepoint(self, people: SqlRecordStore) -> None:
        """Releasing with no open savepoint should raise StoreError."""
        people.begin_transaction()
        with pytest.raises(StoreError, match="No active savepoint"):
            people.release_savepoint()
        people.rollback()


class TestRunUnder:
    """Tests for connection/table rerouting."""

    def test_routes_to_other_connection(
        self, people: SqlRecordStore, registry: ConnectionRegistry
    ) -> None:
        """Operations inside run_under should hit the given connection/table."""
        create_people_table(registry.get_engine("archive"), "people_old")

        def write() -> int:
            seed(people, [{"id": 9, "name": "archived"}])
            return people.count()

        assert people.run_under("archive", "people_old", write) == 1
        assert people.count() == 0
        assert people.location == ("default", "people")

    def test_scope_restored_after_error(
        self, people: SqlRecordStore, registry: ConnectionRegistry
    ) -> None:
        """The previous location should be restored when fn raises."""
        def fail() -> None:
            raise RuntimeError("boom")

        with pytest.raises(RuntimeError):
            people.run_under("archive", "people_old", fail)
        assert people.location_name == "default/people"

    def test_transaction_follows_scope(
        self, people: SqlRecordStore, registry: ConnectionRegistry
    ) -> None:
        """A transaction begun under a scope should roll back that location only."""
        create_people_table(registry.get_engine("archive"), "people_old")
        seed(people, [{"id": 1, "name": "kept"}])

        def write_and_rollback() -> int:
            people.begin_transaction()
            seed(people, [{"id": 2, "name": "dropped"}])
            people.rollback()
            return people.count()

        assert people.run_under("archive", "people_old", write_and_rollback) == 0
        assert people.count() == 1

    def test_records_keep_their_table_fields(
        self, people: SqlRecordStore, registry: ConnectionRegistry
    ) -> None:
        """A record read before run_under should keep its own columns inside it."""
        create_people_table(registry.get_engine("archive"), "people_slim", ("name",))
        seed(people, [{"id": 1, "name": "A", "email": "a@example.com"}])
        record = people.find_by_key(1)
        assert record is not None

        def read_email() -> tuple[tuple[str, ...], str]:
            return record.fields, record["email"]

        fields, email = people.run_under("archive", "people_slim", read_email)

        assert fields == ("id", "name", "email")
        assert email == "a@example.com"

    def test_create_uses_current_location(
        self, people: SqlRecordStore, registry: ConnectionRegistry
    ) -> None:
        """Records created under run_under should carry that table's columns."""
        create_people_table(registry.get_engine("archive"), "people_slim", ("name",))

        record = people.run_under("archive", "people_slim", people.create)

        assert record.fields == ("id", "name")
        with pytest.raises(KeyError):
            record["email"] = "x"
