"""Job records and job states."""

from __future__ import annotations

import json
import uuid
from dataclasses import dataclass, fields
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Mapping

from stackduck.errors import JobError, SerdeJsonError

_REQUIRED = ("id", "job_type", "payload", "status")
_INT_FIELDS = ("priority", "retry_count", "max_retries")
_TIME_FIELDS = ("scheduled_at", "started_at", "completed_at", "created_at", "updated_at")


class JobStatus(str, Enum):
    """Lifecycle state of a job."""

    QUEUED = "queued"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    DEFERRED = "deferred"
    CANCELLED = "cancelled"

    def __str__(self) -> str:
        return self.value


def _format_timestamp(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def _parse_timestamp(value: Any) -> datetime | None:
    if value is None:
        return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str):
        text = value.strip()
        if text.endswith(("Z", "z")):
            text = text[:-1] + "+00:00"
        parsed = datetime.fromisoformat(text)
    else:
        raise TypeError(f"invalid timestamp: {value!r}")
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def _check_int(name: str, value: Any) -> int | None:
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int):
        raise TypeError(f"field `{name}` must be an integer, got {value!r}")
    return value


def _check_str(name: str, value: Any) -> str:
    if not isinstance(value, str):
        raise TypeError(f"field `{name}` must be a string, got {value!r}")
    return value


@dataclass
class Job:
    """A unit of work stored in the job table and carried through the queues."""

    id: uuid.UUID
    job_type: str
    payload: Any
    status: str = JobStatus.QUEUED.value
    priority: int | None = 0
    retry_count: int | None = 0
    max_retries: int | None = 3
    scheduled_at: datetime | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @classmethod
    def create(cls, job_type: str, payload: Any) -> Job:
        """Make a fresh queued job with a new id and default retry settings."""
        return cls(id=uuid.uuid4(), job_type=job_type, payload=payload)

    def _to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {}
        for field in fields(self):
            value = getattr(self, field.name)
            if field.name == "id":
                value = str(value)
            elif field.name in _TIME_FIELDS and value is not None:
                value = _format_timestamp(value)
            data[field.name] = value
        return data

    def to_json(self) -> str:
        """Encode the job as compact JSON."""
        try:
            return json.dumps(self._to_dict(), separators=(",", ":"))
        except (TypeError, ValueError) as exc:
            raise SerdeJsonError(exc) from exc

    @classmethod
    def _from_mapping(cls, data: Mapping[str, Any]) -> Job:
        for name in _REQUIRED:
            if name not in data:
                raise ValueError(f"missing field `{name}`")
        raw_id = data["id"]
        job_id = raw_id if isinstance(raw_id, uuid.UUID) else uuid.UUID(_check_str("id", raw_id))
        values: dict[str, Any] = {
            "id": job_id,
            "job_type": _check_str("job_type", data["job_type"]),
            "payload": data["payload"],
            "status": _check_str("status", str(data["status"]) if isinstance(data["status"], JobStatus) else data["status"]),
        }
        for name in _INT_FIELDS:
            values[name] = _check_int(name, data.get(name))
        for name in _TIME_FIELDS:
            values[name] = _parse_timestamp(data.get(name))
        return cls(**values)

    @classmethod
    def from_json(cls, data: str | bytes) -> Job:
        """Decode a job from the JSON produced by to_json."""
        try:
            obj = json.loads(data)
        except (ValueError, TypeError) as exc:
            raise SerdeJsonError(exc) from exc
        if not isinstance(obj, dict):
            raise SerdeJsonError(f"expected a JSON object, got {type(obj).__name__}")
        try:
            return cls._from_mapping(obj)
        except (ValueError, TypeError) as exc:
            raise SerdeJsonError(exc) from exc

    @classmethod
    def from_row(cls, row: Any) -> Job:
        """Build a job from a database row; columns not on Job are ignored."""
        try:
            data = {key: row[key] for key in row.keys()}
            payload = data.get("payload")
            if isinstance(payload, bytes):
                payload = payload.decode("utf-8")
            if isinstance(payload, str):
                data["payload"] = json.loads(payload)
            return cls._from_mapping(data)
        except (ValueError, TypeError, KeyError) as exc:
            raise JobError(f"Failed to decode job row: {exc}") from exc