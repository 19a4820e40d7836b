"""Exceptions raised by stackduck."""

from __future__ import annotations


class StackDuckError(Exception):
    """Base of every stackduck error; without a detail it means an unknown failure."""

    label: str | None = None

    def __init__(self, detail: object = None) -> None:
        self.detail = detail
        super().__init__(self._render())

    def _render(self) -> str:
        if self.detail is None:
            return self.label or "Unknown error occurred"
        if self.label is None:
            return str(self.detail)
        return f"{self.label}: {self.detail}"


class DbConnectionError(StackDuckError):
    """The job database could not be reached."""

    label = "Database connection failed"


class MigrationError(StackDuckError):
    """The job schema could not be created or upgraded."""

    label = "Migration failed"


class JobError(StackDuckError):
    """A job operation failed."""

    label = "Job Error"


class RedisJobError(StackDuckError):
    """A Redis command failed."""

    label = "Redis error"


class RedisConnectionError(StackDuckError):
    """No Redis connection could be obtained."""

    label = "Redis connection error"


class SerdeJsonError(StackDuckError):
    """A job could not be encoded to or decoded from JSON."""

    label = "JSON error"