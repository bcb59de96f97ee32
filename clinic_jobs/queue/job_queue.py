"""Durable job queue on Redis.

Keys (for queue name "jobs"):
    queue:jobs          list of ready jobs, LPUSH to enqueue, BRPOP to dequeue
    queue:jobs:delayed  sorted set of delayed jobs scored by due unix time
    queue:jobs:dead     capped list of abandoned jobs, newest first

Competing workers are safe without coordination: a list pop hands a job
to exactly one worker, and a delayed job is promoted only by the worker
whose ZREM removed it.
"""

import json
import logging
import time
from collections.abc import Callable
from datetime import datetime, timezone
from typing import Any
from uuid import uuid4

from pydantic import ValidationError

from clinic_jobs.config import Settings, get_settings
from clinic_jobs.core.backoff import decide_retry
from clinic_jobs.models import Job
from clinic_jobs.storage.redis import RedisStorage, redis_storage

logger = logging.getLogger(__name__)

PROMOTE_BATCH_SIZE = 100


class JobQueue:
    """Ready queue, delayed set and dead-letter list for one queue name."""

    def __init__(
        self,
        name: str | None = None,
        storage: RedisStorage | None = None,
        settings: Settings | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize queue.

        Args:
            name: Queue name, defaults to the configured queue_name
            storage: Redis storage, defaults to the global instance
            settings: Settings, defaults to get_settings()
            clock: Wall clock used for delayed job scores
        """
        self.settings = settings or get_settings()
        self.name = name or self.settings.queue_name
        self.storage = storage or redis_storage
        self._clock = clock

        self.ready_key = f"queue:{self.name}"
        self.delayed_key = f"queue:{self.name}:delayed"
        self.dead_key = f"queue:{self.name}:dead"

    def get_max_retries(self) -> int:
        return self.settings.job_max_retries

    def get_retry_delay(self) -> int:
        return self.settings.job_retry_delay

    def effective_max_retries(self, job: Job) -> int:
        """Per-job override, falling back to the global setting."""
        return job.max_retries if job.max_retries is not None else self.get_max_retries()

    async def is_available(self) -> bool:
        """Readiness probe used at worker startup."""
        if not self.settings.use_redis:
            return False
        return await self.storage.health_check()

    async def push(
        self,
        job_type: str,
        data: dict[str, Any] | None = None,
        max_retries: int | None = None,
        delay: float = 0,
    ) -> str:
        """Enqueue a new job.

        Args:
            job_type: Job type string
            data: Job payload
            max_retries: Optional per-job retry ceiling
            delay: Seconds before the job becomes ready (0 = immediately)

        Returns:
            The new job ID
        """
        job = Job(id=uuid4().hex, type=job_type, data=data or {}, max_retries=max_retries)
        if delay > 0:
            await self.storage.zadd(self.delayed_key, {job.model_dump_json(): self._clock() + delay})
        else:
            await self.storage.lpush(self.ready_key, job.model_dump_json())
        return job.id

    async def pop(self, timeout: int = 5) -> Job | None:
        """Dequeue the next ready job, blocking up to timeout seconds.

        An entry that fails validation but still carries an id and type is
        moved to the dead-letter list. Anything else is logged and dropped.

        Returns:
            Job or None on timeout
        """
        raw = await self.storage.rpop(self.ready_key, timeout=timeout)
        if raw is None:
            return None

        try:
            return Job.model_validate_json(raw)
        except ValidationError as e:
            entry = _decode_identity(raw)
            if entry is None:
                logger.error(f"Dropping malformed queue entry from {self.ready_key}: {e.error_count()} error(s): {raw[:200]!r}")
                return None

            logger.error(f"Job {entry['id']} ({entry['type']}) is malformed, moving to dead letters: {e.error_count()} error(s)")
            await self._archive(entry, "malformed job entry")
            return None

    async def retry(self, job: Job) -> bool:
        """Schedule a failed job for another attempt.

        Increments the retry count and, while still below max_retries,
        puts the job in the delayed set with the backoff delay. Otherwise
        the job is moved to the dead-letter list.

        Returns:
            True if rescheduled, False if retries are exhausted
        """
        max_retries = self.effective_max_retries(job)
        decision = decide_retry(job.retry_count, max_retries, self.get_retry_delay())

        if not decision.should_retry:
            await self.dead_letter(job, "max retries exceeded")
            return False

        retried = job.model_copy(update={"retry_count": decision.attempt, "max_retries": max_retries})
        await self.storage.zadd(self.delayed_key, {retried.model_dump_json(): self._clock() + decision.delay})
        return True

    async def dead_letter(self, job: Job, reason: str) -> None:
        """Archive an abandoned job in the capped dead-letter list."""
        await self._archive(job.model_dump(mode="json"), reason)

    async def _archive(self, job: dict[str, Any], reason: str) -> None:
        entry = {
            "job": job,
            "reason": reason,
            "failed_at": datetime.now(timezone.utc).isoformat(),
        }
        await self.storage.lpush(self.dead_key, json.dumps(entry))
        await self.storage.ltrim(self.dead_key, 0, self.settings.dead_letter_max_length - 1)

    async def process_delayed_jobs(self) -> int:
        """Move all due delayed jobs to the ready queue.

        Returns:
            Number of jobs moved by this worker
        """
        now = self._clock()
        moved = 0
        while True:
            due = await self.storage.zrangebyscore(self.delayed_key, "-inf", now, limit=PROMOTE_BATCH_SIZE)
            if not due:
                break

            for member in due:
                # Another worker may have promoted it already
                if await self.storage.zrem(self.delayed_key, member):
                    await self.storage.lpush(self.ready_key, member)
                    moved += 1

            if len(due) < PROMOTE_BATCH_SIZE:
                break
        return moved

    async def size(self) -> int:
        return await self.storage.llen(self.ready_key)

    async def delayed_size(self) -> int:
        return await self.storage.zcard(self.delayed_key)

    async def dead_letter_size(self) -> int:
        return await self.storage.llen(self.dead_key)


def _decode_identity(raw: str) -> dict[str, Any] | None:
    """Return the decoded entry if it names a job id and type, else None."""
    try:
        entry = json.loads(raw)
    except json.JSONDecodeError:
        return None
    if not isinstance(entry, dict):
        return None
    if not all(isinstance(entry.get(key), str) and entry[key] for key in ("id", "type")):
        return None
    return entry
