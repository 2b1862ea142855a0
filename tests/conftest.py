"""Shared fixtures: SQLite databases with people/contacts tables."""

from __future__ import annotations

from collections.abc import Generator
from pathlib import Path

import pytest
from helpers import create_contacts_table, create_people_table

from recsync.store.sql import ConnectionRegistry, SqlRecordStore


@pytest.fixture
def registry(tmp_path: Path) -> Generator[ConnectionRegistry, None, None]:
    """Registry with a 'default' and an 'archive' SQLite database."""
    reg = ConnectionRegistry(
        {
            "default": f"sqlite:///{tmp_path / 'main.db'}",
            "archive": f"sqlite:///{tmp_path / 'archive.db'}",
        }
    )
    yield reg
    reg.dispose()


@pytest.fixture
def people(registry: ConnectionRegistry) -> SqlRecordStore:
    """Store over an empty 'people' table on the default connection."""
    create_people_table(registry.get_engine("default"))
    return SqlRecordStore(registry, "people", unique_key="id")


@pytest.fixture
def contacts(registry: ConnectionRegistry) -> SqlRecordStore:
    """Store over an empty 'contacts' table keyed by 'person_id'."""
    create_contacts_table(registry.get_engine("default"))
    return SqlRecordStore(registry, "contacts", unique_key="person_id")
