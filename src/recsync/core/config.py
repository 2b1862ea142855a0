"""Configuration classes for recsync.

This module defines the engine settings (SyncConfig) and the job description
used by the CLI (JobConfig), plus JSON load/save helpers for job files.
"""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any

from recsync.core.types import SyncMode

DEFAULT_CONNECTION = "default"
DEFAULT_BATCH_SIZE = 1000


@dataclass
class SyncConfig:
    """Settings for one engine run.

    Attributes:
        insert_only: Skip the lookup and treat every row as an insert.
        auto_insert_only: Switch to insert_only at start when the target is empty.
        target_connection: Connection name the table variant writes to.
        target_table: Table name the table variant writes to.
        batch_size: Rows per extracted batch.
        max_errors: Suppressed row errors tolerated before aborting (0 = no cap).
        max_workers: Batches processed concurrently.
    """

    insert_only: bool = False
    auto_insert_only: bool = True
    target_connection: str | None = None
    target_table: str | None = None
    batch_size: int = DEFAULT_BATCH_SIZE
    max_errors: int = 0
    max_workers: int = 1

    def __post_init__(self) -> None:
        """Validate numeric limits."""
        if self.batch_size < 1:
            raise ValueError(f"batch_size must be >= 1, got {self.batch_size}")
        if self.max_errors < 0:
            raise ValueError(f"max_errors must be >= 0, got {self.max_errors}")
        if self.max_workers < 1:
            raise ValueError(f"max_workers must be >= 1, got {self.max_workers}")

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SyncConfig:
        """Build a config from a dict, ignoring unknown keys."""
        known = {k: v for k, v in data.items() if k in cls.__dataclass_fields__}
        return cls(**known)


@dataclass
class Endpoint:
    """A table reachable through a named connection.

    Attributes:
        table: Table name.
        key: Name of the unique-key column.
        connection: Connection name (resolved through JobConfig.connections).
    """

    table: str
    key: str = "id"
    connection: str = DEFAULT_CONNECTION

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Endpoint:
        """Build an endpoint from a dict."""
        if not data.get("table"):
            raise ValueError("endpoint requires a 'table'")
        return cls(
            table=data["table"],
            key=data.get("key", "id"),
            connection=data.get("connection", DEFAULT_CONNECTION),
        )


@dataclass
class JobConfig:
    """Full description of a sync job as stored in a JSON job file.

    Example file::

        {
          "connections": {"default": "sqlite:///app.db", "archive": "sqlite:///old.db"},
          "mode": "table",
          "source": {"table": "users", "key": "id"},
          "sync": {"target_connection": "archive", "target_table": "users_2024"}
        }
    """

    connections: dict[str, str]
    source: Endpoint
    target: Endpoint | None = None
    mode: SyncMode = SyncMode.RECORDS
    sync: SyncConfig = field(default_factory=SyncConfig)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> JobConfig:
        """Build a job config from parsed JSON.

        Raises:
            ValueError: If required sections are missing or inconsistent.
        """
        connections = dict(data.get("connections") or {})
        if not connections:
            raise ValueError("job requires at least one connection")
        if "source" not in data:
            raise ValueError("job requires a 'source' endpoint")

        mode = SyncMode(data.get("mode", SyncMode.RECORDS.value))
        source = Endpoint.from_dict(data["source"])
        target = Endpoint.from_dict(data["target"]) if data.get("target") else None
        if mode == SyncMode.RECORDS and target is None:
            raise ValueError("'records' mode requires a 'target' endpoint")

        for endpoint in (source, target):
            if endpoint and endpoint.connection not in connections:
                raise ValueError(f"unknown connection: {endpoint.connection}")

        return cls(
            connections=connections,
            source=source,
            target=target,
            mode=mode,
            sync=SyncConfig.from_dict(data.get("sync") or {}),
        )

    def to_dict(self) -> dict[str, Any]:
        """Serialize to a JSON-compatible dict."""
        data: dict[str, Any] = {
            "connections": dict(self.connections),
            "mode": self.mode.value,
            "source": asdict(self.source),
            "sync": asdict(self.sync),
        }
        if self.target:
            data["target"] = asdict(self.target)
        return data


def load_job_config(path: Path) -> JobConfig:
    """Load a job description from a JSON file."""
    return JobConfig.from_dict(json.loads(Path(path).read_text()))


def save_job_config(config: JobConfig, path: Path) -> None:
    """Save a job description to a JSON file."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(config.to_dict(), indent=2))
