"""Command-line interface for recsync.

This module provides the main CLI entry point and assembles all commands.

Commands:
- run: Run a sync job from a JSON job file
- count: Count the rows of a job's source or target table
"""

from __future__ import annotations

import logging

import click

from recsync.cli.run import build_engine, count, run

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


@click.group()
@click.version_option(package_name="recsync")
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging.")
def cli(verbose: bool) -> None:
    """recsync - Batch record synchronization between SQL tables."""
    logging.basicConfig(level=logging.DEBUG if verbose else logging.INFO, format=LOG_FORMAT)


cli.add_command(run)
cli.add_command(count)


def main() -> None:
    """Entry point for the CLI."""
    cli()


__all__ = [
    "build_engine",
    "cli",
    "main",
]
