"""Connections to the job database and to Redis."""

from __future__ import annotations

import sqlite3
from dataclasses import dataclass

import aiosqlite
from redis.asyncio import ConnectionPool, Redis
from redis.exceptions import RedisError

from stackduck.errors import DbConnectionError, MigrationError, RedisConnectionError

ACQUIRE_TIMEOUT = 5.0

NOW_SQL = "strftime('%Y-%m-%dT%H:%M:%f+00:00', 'now')"

SCHEMA = f"""
CREATE TABLE IF NOT EXISTS jobs (
    id TEXT PRIMARY KEY,
    job_type TEXT NOT NULL,
    payload TEXT NOT NULL,
    status TEXT NOT NULL DEFAULT 'queued',
    queue TEXT,
    priority INTEGER DEFAULT 0,
    retry_count INTEGER DEFAULT 0,
    max_retries INTEGER DEFAULT 3,
    scheduled_at TEXT,
    started_at TEXT,
    completed_at TEXT,
    created_at TEXT DEFAULT ({NOW_SQL}),
    updated_at TEXT DEFAULT ({NOW_SQL})
);
CREATE INDEX IF NOT EXISTS idx_jobs_dequeue ON jobs (status, priority, created_at);
"""


def _sqlite_path(database_url: str) -> str:
    url = database_url.strip()
    if url.startswith("sqlite:"):
        path = url[len("sqlite:"):]
        if path.startswith("//"):
            path = path[2:]
        path = path.split("?", 1)[0]
    elif "://" in url:
        scheme = url.split("://", 1)[0]
        raise DbConnectionError(f"unsupported database scheme: {scheme}")
    else:
        path = url
    if not path:
        raise DbConnectionError("database path is empty")
    return path


async def ensure_schema(conn: aiosqlite.Connection) -> None:
    """Create the jobs table and its index if they are missing."""
    try:
        await conn.executescript(SCHEMA)
        await conn.commit()
    except sqlite3.Error as exc:
        raise MigrationError(exc) from exc


async def connect_to_db(database_url: str) -> aiosqlite.Connection:
    """Open the job database named by a sqlite URL or path and prepare its schema."""
    path = _sqlite_path(database_url)
    try:
        conn = await aiosqlite.connect(path, timeout=ACQUIRE_TIMEOUT)
    except sqlite3.Error as exc:
        raise DbConnectionError(exc) from exc
    conn.row_factory = aiosqlite.Row
    try:
        await ensure_schema(conn)
    except MigrationError:
        await conn.close()
        raise
    return conn


@dataclass
class RedisClient:
    """A pool of Redis connections."""

    pool: ConnectionPool

    async def get_connection(self) -> Redis:
        """Return a live Redis client drawn from the pool."""
        client = Redis(connection_pool=self.pool)
        try:
            await client.ping()
        except (RedisError, OSError) as exc:
            raise RedisConnectionError(exc) from exc
        return client


async def connect_to_redis(redis_url: str) -> RedisClient:
    """Build a connection pool for the given Redis URL."""
    try:
        pool = ConnectionPool.from_url(
            redis_url,
            decode_responses=True,
            socket_connect_timeout=ACQUIRE_TIMEOUT,
        )
    except (ValueError, RedisError) as exc:
        raise RedisConnectionError(exc) from exc
    return RedisClient(pool=pool)