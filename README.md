# stackduck

An asyncio job queue that keeps every job in a SQLite database. Work moves
through Redis, or through an in-memory queue when Redis is not available. If
both of those are empty, jobs are taken straight from the database.

## Installing

```
pip install .
```

To run the tests, install the test extra and run pytest:

```
pip install ".[test]"
pytest
```

## Running

The `stackduck` command reads its settings from the environment. If a `.env`
file can be found from the current directory, it reads that too.

- `DATABASE_URL` (required): the SQLite database that holds the job table.
  This is either a plain file path or a `sqlite:` URL, such as
  `sqlite://jobs.db`. A URL with any other scheme is rejected with
  `DbConnectionError`.
- `REDIS_URL` (optional): the Redis server. Without it, jobs are queued in
  memory and in the database.

```
DATABASE_URL=jobs.db REDIS_URL=redis://localhost:6379/0 stackduck
```

The command connects and creates the `jobs` table and its index if they are
missing. Then it exits. It exits with status 1 if `DATABASE_URL` is not set or
if connecting fails.

## Using it from Python

```python
import asyncio

from stackduck.app import StackDuck
from stackduck.types import Job, JobStatus


async def run() -> None:
    async with await StackDuck.new("jobs.db") as duck:
        manager = duck.job_manager()

        await manager.enqueue(Job.create("email", {"to": "someone@example.com"}))

        taken = await manager.dequeue("email")
        if taken is not None:
            # ... do the work ...
            await manager.update_job_status(taken.id, JobStatus.COMPLETED)


asyncio.run(run())
```

To use Redis as well, call `StackDuck.new_with_redis(database_url, redis_url)`.
`StackDuck.has_redis()` reports whether a Redis pool is configured.
`StackDuck.get_redis_conn()` returns a live client from that pool, and
raises `RedisConnectionError` if there is no pool. `StackDuck.close()` closes
the database and the pool. Leaving an `async with` block calls it for you.

### Jobs

`stackduck.types.Job` is a dataclass with these fields: `id`, `job_type`,
`payload` (any JSON value), `status`, `priority`, `retry_count`,
`max_retries`, and the timestamps `scheduled_at`, `started_at`,
`completed_at`, `created_at` and `updated_at`. `Job.create(job_type,
payload)` makes a queued job with a new id, priority 0 and three retries.
`to_json` and `from_json` turn a job into JSON and back. `from_row` builds a
job from a database row. `JobStatus` lists the states: `queued`, `running`,
`completed`, `failed`, `deferred` and `cancelled`.

### Where a job goes

`JobManager.enqueue` first writes the job to the database. It then pushes the
job onto the Redis list `Stackduck:queue:<job_type>` and caches its fields in
the Redis hash `Stackduck:job:<id>`. If Redis is not configured or the push
fails, the job goes onto the manager's in-memory queue instead.

`JobManager.dequeue(queue_name)` looks in three places, in this order:

1. the Redis list for the queue;
2. the in-memory queue;
3. the database. Here it takes the queued job with the highest priority,
   oldest first, whose scheduled time has passed. It matches the job's
   `queue` column, or its `job_type` when `queue` is empty.

Whichever place the job comes from, it is marked `running`. If nothing is
waiting, `dequeue` returns `None`.

`JobManager.update_job_status` writes the new status to the database. If Redis
is available, it also writes the status and an update time to the job's Redis
hash. `JobManager.get_job_by_id` reads a job from the database.

### Retrying and cancelling

`JobManager.retry_job` marks a job `queued`, raises its retry count and pushes
it onto a queue again. If the retry count has already reached `max_retries`,
the job is marked `failed` instead. If there is no such job, `retry_job`
raises `JobError`. `JobManager.cancel_job` marks a job `cancelled`.

The helpers `stackduck.job.cache_job_as_hash(conn, job)` and
`stackduck.job.update_redis_job_property(conn, job_id, value)` write a job's
hash, or just its status, to a Redis client.

### Errors

Every failure raises a subclass of `stackduck.errors.StackDuckError`:

- `DbConnectionError`
- `MigrationError`
- `JobError`
- `RedisJobError`
- `RedisConnectionError`
- `SerdeJsonError`

## What it does not do

- There is no worker. Nothing runs jobs on its own: your code calls `dequeue`,
  does the work and records the outcome.
- Storage is SQLite only. Server databases are not supported.
- `completed_at` is never filled in automatically. `started_at` is set only
  when a job is claimed from the database.
- The in-memory queue belongs to a single `JobManager` in a single process.