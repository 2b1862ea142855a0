"""Job commands for recsync CLI.

Commands:
- run: Run a sync job described by a JSON job file
- count: Count the rows of a job's source or target table
"""

from __future__ import annotations

import dataclasses
import sys
from pathlib import Path

import click

from recsync.core.config import JobConfig, load_job_config
from recsync.core.types import SyncMode
from recsync.store.base import StoreError
from recsync.store.sql import ConnectionRegistry, SqlRecordStore
from recsync.sync.engine import RecordSync, SyncEngine, TableSync
from recsync.sync.types import ConfigurationError, SyncError


def build_engine(job: JobConfig, registry: ConnectionRegistry) -> SyncEngine:
    """Build the engine variant selected by the job's mode.

    Args:
        job: Job description.
        registry: Registry holding the job's connections.

    Returns:
        A RecordSync or TableSync ready to run.

    Raises:
        ConfigurationError: If a records-mode job has no target endpoint.
    """
    source = SqlRecordStore(
        registry,
        job.source.table,
        unique_key=job.source.key,
        connection=job.source.connection,
    )
    if job.mode == SyncMode.TABLE:
        return TableSync(source, config=job.sync)

    if job.target is None:
        raise ConfigurationError(f"'{job.mode.value}' mode requires a target endpoint")
    target = SqlRecordStore(
        registry,
        job.target.table,
        unique_key=job.target.key,
        connection=job.target.connection,
    )
    return RecordSync(source, target, config=job.sync)


def _load_job(job_file: str) -> JobConfig:
    try:
        return load_job_config(Path(job_file))
    except (ValueError, KeyError) as e:
        click.echo(f"Error: invalid job file {job_file}: {e}", err=True)
        sys.exit(1)


@click.command()
@click.argument("job_file", type=click.Path(exists=True, dir_okay=False))
@click.option("--batch-size", "-b", type=click.IntRange(min=1), default=None, help="Rows per batch.")
@click.option("--insert-only", is_flag=True, help="Skip lookups and insert every row.")
@click.option("--workers", "-w", type=click.IntRange(min=1), default=None, help="Batches processed concurrently.")
@click.option("--max-errors", type=click.IntRange(min=0), default=None, help="Abort after N row errors (0 = never).")
def run(
    job_file: str,
    batch_size: int | None,
    insert_only: bool,
    workers: int | None,
    max_errors: int | None,
) -> None:
    """Run the sync job described by JOB_FILE.

    Options given here override the job file's "sync" section.

    Examples:

        # Sync with the job's own settings
        recsync run users.json

        # Larger batches on four threads
        recsync run users.json --batch-size 5000 --workers 4
    """
    job = _load_job(job_file)

    overrides: dict[str, object] = {}
    if batch_size is not None:
        overrides["batch_size"] = batch_size
    if insert_only:
        overrides["insert_only"] = True
    if workers is not None:
        overrides["max_workers"] = workers
    if max_errors is not None:
        overrides["max_errors"] = max_errors
    if overrides:
        job.sync = dataclasses.replace(job.sync, **overrides)

    registry = ConnectionRegistry(job.connections)
    try:
        engine = build_engine(job, registry)
        summary = engine.run()
    except (SyncError, StoreError) as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)
    finally:
        registry.dispose()

    click.echo(
        f"Synced {summary.total} rows in {summary.batches} batches: "
        f"{summary.inserts} inserted, {summary.changes} updated, {summary.errors} errors"
    )


@click.command()
@click.argument("job_file", type=click.Path(exists=True, dir_okay=False))
@click.option("--target", "use_target", is_flag=True, help="Count the target table instead of the source.")
def count(job_file: str, use_target: bool) -> None:
    """Count the rows of the source (or target) table of JOB_FILE."""
    job = _load_job(job_file)

    registry = ConnectionRegistry(job.connections)
    try:
        engine = build_engine(job, registry)
        if use_target:
            engine.check_config()
            rows = engine.count_target()
            label = engine.describe_target()
        else:
            rows = engine.source.count()
            label = repr(engine.source)
    except (SyncError, StoreError) as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)
    finally:
        registry.dispose()

    click.echo(f"{label}: {rows} rows")
