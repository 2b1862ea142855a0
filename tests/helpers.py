"""Table builders and row helpers shared by the test suite."""

from __future__ import annotations

from typing import Any

from sqlalchemy import Column, Integer, MetaData, String, Table
from sqlalchemy.engine import Engine

from recsync.store.sql import SqlRecordStore


def create_people_table(
    engine: Engine,
    name: str = "people",
    columns: tuple[str, ...] = ("name", "email"),
) -> None:
    """Create a table keyed by 'id' with the given string columns."""
    metadata = MetaData()
    Table(
        name,
        metadata,
        Column("id", Integer, primary_key=True, autoincrement=False),
        *(Column(column, String(200)) for column in columns),
    )
    metadata.create_all(engine)


def create_contacts_table(engine: Engine, name: str = "contacts") -> None:
    """Create a table keyed by 'person_id' with its own surrogate primary key."""
    metadata = MetaData()
    Table(
        name,
        metadata,
        Column("row_id", Integer, primary_key=True, autoincrement=True),
        Column("person_id", Integer, unique=True, nullable=False),
        Column("name", String(100)),
        Column("phone", String(50)),
    )
    metadata.create_all(engine)


def seed(store: SqlRecordStore, rows: list[dict[str, Any]]) -> None:
    """Insert rows through the store."""
    for row in rows:
        store.create(row).insert()


def rows_by_key(store: SqlRecordStore) -> dict[Any, dict[str, Any]]:
    """Read every row of the store's current location, keyed by unique key."""
    return {r.key: r.to_dict() for r in store.find_after(None, 10_000)}
