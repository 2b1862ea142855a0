"""recsync - Batch record synchronization between SQL tables."""

__version__ = "0.1.0"
