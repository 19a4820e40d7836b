"""Enqueueing, dequeueing and lifecycle changes of jobs."""

from __future__ import annotations

import contextlib
import json
import logging
import sqlite3
import threading
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any
from uuid import UUID

import aiosqlite
from redis.exceptions import RedisError

from stackduck.db import NOW_SQL, RedisClient
from stackduck.errors import (
    JobError,
    RedisConnectionError,
    RedisJobError,
    SerdeJsonError,
)
from stackduck.types import Job, JobStatus

logger = logging.getLogger(__name__)

QUEUE_PREFIX = "Stackduck:queue:"
JOB_PREFIX = "Stackduck:job:"

_SELECT_NEXT = f"""
SELECT id FROM jobs
WHERE (queue = ? OR (? = job_type AND queue IS NULL))
  AND status = 'queued'
  AND (scheduled_at IS NULL OR scheduled_at <= {NOW_SQL})
ORDER BY priority DESC, created_at ASC, rowid ASC
LIMIT 1
"""

_CLAIM = f"""
UPDATE jobs
SET status = 'running', started_at = {NOW_SQL}, updated_at = {NOW_SQL}
WHERE id = ? AND status = 'queued'
"""


def _queue_key(queue_name: str) -> str:
    return f"{QUEUE_PREFIX}{queue_name}"


def _cache_key(job_id: UUID | str) -> str:
    return f"{JOB_PREFIX}{job_id}"


async def update_redis_job_property(conn: Any, job_id: UUID | str, value: str) -> None:
    """Set the cached status of a job in Redis."""
    try:
        await conn.hset(_cache_key(job_id), "status", value)
    except RedisError as exc:
        raise RedisJobError(exc) from exc


async def cache_job_as_hash(conn: Any, job: Job) -> None:
    """Store every set field of a job as a Redis hash."""
    mapping: dict[str, str] = {
        "id": str(job.id),
        "job_type": job.job_type,
        "status": str(job.status),
        "payload": json.dumps(job.payload, separators=(",", ":")),
    }
    for name in ("priority", "retry_count", "max_retries"):
        value = getattr(job, name)
        if value is not None:
            mapping[name] = str(value)
    for name in ("scheduled_at", "started_at", "completed_at", "created_at", "updated_at"):
        value = getattr(job, name)
        if value is not None:
            mapping[name] = value.isoformat()
    try:
        await conn.hset(_cache_key(job.id), mapping=mapping)
    except RedisError as exc:
        raise RedisJobError(exc) from exc


@dataclass
class JobManager:
    """Moves jobs between the database, Redis and an in-process queue."""

    db: aiosqlite.Connection
    redis_pool: RedisClient | None = None
    in_memory_queue: dict[str, deque[Job]] = field(default_factory=dict)
    _lock: threading.Lock = field(
        default_factory=threading.Lock, init=False, repr=False, compare=False
    )

    async def enqueue(self, job: Job) -> Job:
        """Persist a job and place it on the fastest queue available."""
        try:
            payload = json.dumps(job.payload, separators=(",", ":"))
        except (TypeError, ValueError) as exc:
            raise SerdeJsonError(exc) from exc
        try:
            await self.db.execute(
                "INSERT INTO jobs (id, job_type, payload, status, priority, retry_count, max_retries)"
                " VALUES (?, ?, ?, ?, ?, ?, ?)",
                (
                    str(job.id),
                    job.job_type,
                    payload,
                    str(job.status),
                    job.priority,
                    job.retry_count,
                    job.max_retries,
                ),
            )
            await self.db.commit()
        except sqlite3.Error as exc:
            with contextlib.suppress(sqlite3.Error):
                await self.db.rollback()
            raise JobError(f"Failed to insert job into database: {exc}") from exc
        inserted = await self.get_job_by_id(job.id)
        if inserted is None:
            raise JobError(f"Failed to insert job into database: job {job.id} missing")
        await self._push(inserted)
        return inserted

    async def _push(self, job: Job) -> None:
        key = _queue_key(job.job_type)
        data = job.to_json()
        if self.redis_pool is not None:
            try:
                conn = await self.redis_pool.get_connection()
                await conn.lpush(key, data)
            except (RedisConnectionError, RedisError, OSError):
                pass
            else:
                with contextlib.suppress(RedisJobError):
                    await cache_job_as_hash(conn, job)
                return
        with self._lock:
            self.in_memory_queue.setdefault(key, deque()).append(job)
        logger.warning(
            "Job %s queued in memory only; the database remains its fallback", job.id
        )

    async def dequeue(self, queue_name: str) -> Job | None:
        """Take the next job of a queue and mark it running, or return None."""
        key = _queue_key(queue_name)

        if self.redis_pool is not None:
            job = await self._pop_redis(key)
            if job is not None:
                return job

        with self._lock:
            queue = self.in_memory_queue.get(key)
            job = queue.popleft() if queue else None
        if job is not None:
            await self.update_job_status(job.id, JobStatus.RUNNING)
            return job

        return await self._claim_from_db(queue_name)

    async def _pop_redis(self, key: str) -> Job | None:
        assert self.redis_pool is not None
        try:
            conn = await self.redis_pool.get_connection()
        except RedisConnectionError as exc:
            logger.warning("Redis unavailable: %s. Falling back to in-memory queue.", exc)
            return None
        try:
            data = await conn.rpop(key)
        except (RedisError, OSError) as exc:
            logger.warning("Redis dequeue failed, falling back to in-memory: %s", exc)
            return None
        if data is None:
            return None
        job = Job.from_json(data)
        await self.update_job_status(job.id, JobStatus.RUNNING)
        await update_redis_job_property(conn, job.id, JobStatus.RUNNING.value)
        return job

    async def _claim_from_db(self, queue_name: str) -> Job | None:
        try:
            while True:
                async with self.db.execute(_SELECT_NEXT, (queue_name, queue_name)) as cursor:
                    row = await cursor.fetchone()
                if row is None:
                    return None
                job_id = row[0]
                cursor = await self.db.execute(_CLAIM, (job_id,))
                await self.db.commit()
                if cursor.rowcount == 1:
                    return await self.get_job_by_id(job_id)
        except sqlite3.Error as exc:
            raise JobError(f"Database query failed: {exc}") from exc

    async def update_job_status(self, job_id: UUID | str, new_status: JobStatus | str) -> None:
        """Record a new status in the database and in the Redis cache."""
        status = JobStatus(new_status)
        try:
            await self.db.execute(
                f"UPDATE jobs SET status = ?, updated_at = {NOW_SQL} WHERE id = ?",
                (status.value, str(job_id)),
            )
            await self.db.commit()
        except sqlite3.Error as exc:
            raise JobError(f"Failed to update job status in database: {exc}") from exc

        if self.redis_pool is None:
            return
        try:
            conn = await self.redis_pool.get_connection()
        except RedisConnectionError:
            return
        updated_time = datetime.now(timezone.utc).isoformat()
        try:
            await conn.hset(
                _cache_key(job_id),
                mapping={"status": status.value, "updated_at": updated_time},
            )
        except RedisError as exc:
            raise RedisJobError(exc) from exc

    async def retry_job(self, job_id: UUID | str) -> None:
        """Requeue a job, or mark it failed once its retries are used up."""
        job = await self.get_job_by_id(job_id)
        if job is None:
            raise JobError("Job not found")

        current_retries = job.retry_count if job.retry_count is not None else 0
        max_retries = job.max_retries if job.max_retries is not None else 3

        if current_retries >= max_retries:
            try:
                await self.db.execute(
                    f"UPDATE jobs SET status = 'failed', updated_at = {NOW_SQL} WHERE id = ?",
                    (str(job_id),),
                )
                await self.db.commit()
            except sqlite3.Error as exc:
                raise JobError(f"Failed to mark job as failed: {exc}") from exc
            return

        try:
            await self.db.execute(
                "UPDATE jobs SET status = 'queued', retry_count = retry_count + 1,"
                f" updated_at = {NOW_SQL} WHERE id = ?",
                (str(job_id),),
            )
            await self.db.commit()
        except sqlite3.Error as exc:
            raise JobError(f"Failed to retry job: {exc}") from exc

        updated = await self.get_job_by_id(job_id)
        if updated is not None:
            await self._push(updated)

    async def get_job_by_id(self, job_id: UUID | str) -> Job | None:
        """Fetch a job from the database, or None if there is no such job."""
        try:
            async with self.db.execute("SELECT * FROM jobs WHERE id = ?", (str(job_id),)) as cursor:
                row = await cursor.fetchone()
        except sqlite3.Error as exc:
            raise JobError(f"Failed to fetch job: {exc}") from exc
        return None if row is None else Job.from_row(row)

    async def cancel_job(self, job_id: UUID | str) -> None:
        """Mark a job as cancelled."""
        try:
            await self.db.execute(
                f"UPDATE jobs SET status = 'cancelled', updated_at = {NOW_SQL} WHERE id = ?",
                (str(job_id),),
            )
            await self.db.commit()
        except sqlite3.Error as exc:
            raise JobError(f"Failed to cancel job: {exc}") from exc