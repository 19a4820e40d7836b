"""A persistent SQLite job queue with Redis and in-memory queueing."""

__version__ = "0.1.0"