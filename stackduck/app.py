"""The StackDuck service object and its command-line entry point."""

from __future__ import annotations

import argparse
import asyncio
import os
import sys
from dataclasses import dataclass, field

import aiosqlite
from dotenv import find_dotenv, load_dotenv

from stackduck.db import RedisClient, connect_to_db, connect_to_redis, ensure_schema
from stackduck.errors import DbConnectionError, JobError, RedisConnectionError, StackDuckError
from stackduck.job import JobManager


@dataclass
class StackDuck:
    """Holds the database connection and the optional Redis pool."""

    db: aiosqlite.Connection
    redis_client: RedisClient | None = None
    _manager: JobManager | None = field(default=None, init=False, repr=False)
    _closed: bool = field(default=False, init=False, repr=False)

    @classmethod
    async def new(cls, database_url: str) -> StackDuck:
        """Connect to the database only."""
        return cls(db=await connect_to_db(database_url))

    @classmethod
    async def new_with_redis(cls, database_url: str, redis_url: str) -> StackDuck:
        """Connect to the database and set up a Redis pool."""
        db = await connect_to_db(database_url)
        try:
            redis_client = await connect_to_redis(redis_url)
        except StackDuckError as exc:
            await db.close()
            raise JobError(str(exc)) from exc
        return cls(db=db, redis_client=redis_client)

    def has_redis(self) -> bool:
        """Whether a Redis pool is configured."""
        return self.redis_client is not None

    async def get_db_conn(self) -> aiosqlite.Connection:
        """Return the database connection."""
        if self._closed:
            raise DbConnectionError("connection is closed")
        return self.db

    async def get_redis_conn(self):
        """Return a live Redis client, or raise if Redis is not configured."""
        if self.redis_client is None:
            raise RedisConnectionError("Redis not configured")
        return await self.redis_client.get_connection()

    def job_manager(self) -> JobManager:
        """Return the job manager bound to these connections."""
        if self._manager is None:
            self._manager = JobManager(db=self.db, redis_pool=self.redis_client)
        return self._manager

    async def close(self) -> None:
        """Close the database connection and the Redis pool."""
        if self._closed:
            return
        self._closed = True
        await self.db.close()
        if self.redis_client is not None:
            await self.redis_client.pool.disconnect()

    async def __aenter__(self) -> StackDuck:
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()


async def _run(database_url: str, redis_url: str | None) -> None:
    if redis_url is not None:
        print("Initializing with Redis support...")
        stackduck = await StackDuck.new_with_redis(database_url, redis_url)
    else:
        print("Redis URL not provided, using the database + in-memory fallback")
        stackduck = await StackDuck.new(database_url)
    async with stackduck:
        print("Running database migrations...")
        await ensure_schema(await stackduck.get_db_conn())


def main(argv: list[str] | None = None) -> int:
    """Start StackDuck from DATABASE_URL and the optional REDIS_URL."""
    parser = argparse.ArgumentParser(
        prog="stackduck",
        description="Start the StackDuck job queue using DATABASE_URL and REDIS_URL.",
    )
    parser.parse_args(argv)

    dotenv_path = find_dotenv(usecwd=True)
    if dotenv_path:
        load_dotenv(dotenv_path)

    print("Starting StackDuck Job Queue System...")
    database_url = os.environ.get("DATABASE_URL")
    if not database_url:
        print("DATABASE_URL environment variable is required", file=sys.stderr)
        return 1
    redis_url = os.environ.get("REDIS_URL")

    try:
        asyncio.run(_run(database_url, redis_url))
    except StackDuckError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    return 0