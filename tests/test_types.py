import json
import uuid
from datetime import datetime, timezone

import pytest

from stackduck.errors import JobError, SerdeJsonError
from stackduck.types import Job, JobStatus


def test_create_defaults():
    job = Job.create("email", {"to": "someone@example.com"})
    assert job.job_type == "email"
    assert job.payload == {"to": "someone@example.com"}
    assert job.status == "queued"
    assert job.priority == 0
    assert job.retry_count == 0
    assert job.max_retries == 3
    assert job.scheduled_at is None
    assert job.created_at is None
    assert job.updated_at is None


def test_create_gives_unique_ids():
    ids = {Job.create("t", None).id for _ in range(20)}
    assert len(ids) == 20


def test_status_values_are_lowercase_names():
    for status in JobStatus:
        assert status.value == status.name.lower()
        assert str(status) == status.value
    assert JobStatus("running") is JobStatus.RUNNING


def test_json_round_trip_with_timestamps():
    stamp = datetime(2024, 5, 1, 12, 30, tzinfo=timezone.utc)
    job = Job.create("report", {"rows": [1, 2, 3], "name": "x"})
    job.created_at = stamp
    job.started_at = stamp
    job.priority = 7
    again = Job.from_json(job.to_json())
    assert again == job


def test_json_fields():
    job = Job.create("report", [1, 2])
    data = json.loads(job.to_json())
    assert data["id"] == str(job.id)
    assert data["payload"] == [1, 2]
    assert data["scheduled_at"] is None
    assert set(data) == {
        "id", "job_type", "payload", "status", "priority", "retry_count",
        "max_retries", "scheduled_at", "started_at", "completed_at",
        "created_at", "updated_at",
    }


def test_timestamps_serialise_as_utc():
    job = Job.create("t", {})
    job.updated_at = datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc)
    assert json.loads(job.to_json())["updated_at"].endswith("Z")


def test_from_json_optional_fields_default_to_none():
    job_id = uuid.uuid4()
    text = json.dumps({"id": str(job_id), "job_type": "t", "payload": 5, "status": "queued"})
    job = Job.from_json(text)
    assert job.id == job_id
    assert job.priority is None
    assert job.max_retries is None


@pytest.mark.parametrize(
    "text",
    [
        "not json",
        "[1, 2]",
        json.dumps({"id": str(uuid.uuid4()), "job_type": "t", "payload": 1}),
        json.dumps({"id": "nope", "job_type": "t", "payload": 1, "status": "queued"}),
        json.dumps({"id": str(uuid.uuid4()), "job_type": "t", "payload": 1, "status": "queued", "priority": "high"}),
    ],
)
def test_from_json_rejects_bad_input(text):
    with pytest.raises(SerdeJsonError):
        Job.from_json(text)


def test_from_row_decodes_text_columns():
    job_id = uuid.uuid4()
    row = {
        "id": str(job_id),
        "job_type": "email",
        "payload": '{"a": 1}',
        "status": "running",
        "priority": 2,
        "retry_count": 1,
        "max_retries": 3,
        "queue": None,
        "scheduled_at": None,
        "started_at": None,
        "completed_at": None,
        "created_at": "2024-05-01T12:00:00.000+00:00",
        "updated_at": None,
    }
    job = Job.from_row(row)
    assert job.id == job_id
    assert job.payload == {"a": 1}
    assert job.status == "running"
    assert job.created_at == datetime(2024, 5, 1, 12, tzinfo=timezone.utc)


def test_from_row_rejects_bad_id():
    row = {"id": "bad", "job_type": "t", "payload": "1", "status": "queued"}
    with pytest.raises(JobError):
        Job.from_row(row)