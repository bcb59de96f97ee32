"""Tests for the Redis-backed job queue."""

import json

import pytest

from clinic_jobs.models import Job
from clinic_jobs.queue.job_queue import JobQueue


class TestAvailability:
    @pytest.mark.asyncio
    async def test_available_when_redis_answers(self, queue):
        assert await queue.is_available() is True

    @pytest.mark.asyncio
    async def test_unavailable_when_ping_fails(self, queue, fake_redis):
        fake_redis.available = False

        assert await queue.is_available() is False

    @pytest.mark.asyncio
    async def test_unavailable_when_not_connected(self, settings):
        from clinic_jobs.storage.redis import RedisStorage

        queue = JobQueue("jobs", storage=RedisStorage(), settings=settings)

        assert await queue.is_available() is False

    @pytest.mark.asyncio
    async def test_unavailable_when_redis_disabled(self, storage, settings):
        settings.use_redis = False
        queue = JobQueue("jobs", storage=storage, settings=settings)

        assert await queue.is_available() is False


class TestPushPop:
    @pytest.mark.asyncio
    async def test_push_then_pop(self, queue):
        job_id = await queue.push("send_sms", {"message": "Hi"})

        job = await queue.pop(5)

        assert job.id == job_id
        assert job.type == "send_sms"
        assert job.data == {"message": "Hi"}
        assert job.retry_count == 0

    @pytest.mark.asyncio
    async def test_fifo_order(self, queue):
        first = await queue.push("send_sms", {})
        second = await queue.push("send_sms", {})

        assert (await queue.pop(5)).id == first
        assert (await queue.pop(5)).id == second

    @pytest.mark.asyncio
    async def test_pop_timeout_returns_none(self, queue):
        assert await queue.pop(5) is None

    @pytest.mark.asyncio
    async def test_push_with_max_retries_override(self, queue):
        await queue.push("send_sms", {}, max_retries=7)

        job = await queue.pop(5)

        assert job.max_retries == 7
        assert queue.effective_max_retries(job) == 7

    @pytest.mark.asyncio
    async def test_push_with_delay_goes_to_delayed_set(self, queue):
        await queue.push("send_sms", {}, delay=60)

        assert await queue.size() == 0
        assert await queue.delayed_size() == 1

    @pytest.mark.asyncio
    async def test_malformed_entry_is_dropped(self, queue, fake_redis):
        await fake_redis.lpush(queue.ready_key, "not json")

        assert await queue.pop(5) is None
        assert await queue.size() == 0

    @pytest.mark.asyncio
    async def test_entry_without_id_is_dropped(self, queue, fake_redis):
        await fake_redis.lpush(queue.ready_key, json.dumps({"type": "send_sms"}))

        assert await queue.pop(5) is None
        assert await queue.dead_letter_size() == 0

    @pytest.mark.asyncio
    async def test_identified_entry_with_bad_data_is_dead_lettered(self, queue, fake_redis):
        raw = {"id": "J1", "type": "send_sms", "data": ["Hi"], "retry_count": 0, "max_retries": 3}
        await fake_redis.lpush(queue.ready_key, json.dumps(raw))

        assert await queue.pop(5) is None

        assert await queue.size() == 0
        assert await queue.dead_letter_size() == 1
        entry = json.loads(fake_redis.lists[queue.dead_key][0])
        assert entry["job"] == raw
        assert entry["reason"] == "malformed job entry"

    @pytest.mark.asyncio
    async def test_identified_entry_with_negative_retry_count_is_dead_lettered(self, queue, fake_redis):
        await fake_redis.lpush(queue.ready_key, json.dumps({"id": "J2", "type": "send_sms", "retry_count": -1}))

        assert await queue.pop(5) is None

        entry = json.loads(fake_redis.lists[queue.dead_key][0])
        assert entry["job"]["id"] == "J2"

    @pytest.mark.asyncio
    async def test_producer_entry_without_retry_fields(self, queue, fake_redis):
        await fake_redis.lpush(queue.ready_key, json.dumps({"id": "J1", "type": "send_sms", "data": {"a": 1}}))

        job = await queue.pop(5)

        assert job.id == "J1"
        assert job.retry_count == 0
        assert queue.effective_max_retries(job) == 3


class TestRetry:
    @pytest.mark.asyncio
    async def test_retry_reschedules_with_backoff(self, queue, fake_redis, wall_clock):
        job = Job(id="J1", type="send_sms", retry_count=0)

        assert await queue.retry(job) is True

        assert await queue.size() == 0
        scheduled = fake_redis.zsets[queue.delayed_key]
        assert len(scheduled) == 1
        member, due = next(iter(scheduled.items()))
        retried = Job.model_validate_json(member)
        assert retried.id == "J1"
        assert retried.retry_count == 1
        assert retried.max_retries == 3
        assert due == wall_clock.now + 2

    @pytest.mark.asyncio
    async def test_second_retry_waits_three_base_delays(self, queue, fake_redis, wall_clock):
        await queue.retry(Job(id="J1", type="send_sms", retry_count=1))

        due = next(iter(fake_redis.zsets[queue.delayed_key].values()))
        assert due == wall_clock.now + 6

    @pytest.mark.asyncio
    async def test_retry_exhausted_is_dead_lettered(self, queue, fake_redis):
        job = Job(id="J1", type="send_sms", retry_count=3, max_retries=3)

        assert await queue.retry(job) is False

        assert await queue.delayed_size() == 0
        assert await queue.size() == 0
        assert await queue.dead_letter_size() == 1
        entry = json.loads(fake_redis.lists[queue.dead_key][0])
        assert entry["job"]["id"] == "J1"
        assert entry["reason"] == "max retries exceeded"
        assert "failed_at" in entry

    @pytest.mark.asyncio
    async def test_retry_uses_job_override(self, queue):
        job = Job(id="J1", type="send_sms", retry_count=3, max_retries=10)

        assert await queue.retry(job) is True

    @pytest.mark.asyncio
    async def test_retry_count_never_decreases(self, queue, wall_clock):
        await queue.push("send_sms", {})
        job = await queue.pop(5)
        counts = [job.retry_count]

        while await queue.retry(job):
            wall_clock.advance(3600)
            await queue.process_delayed_jobs()
            job = await queue.pop(5)
            counts.append(job.retry_count)

        assert counts == [0, 1, 2]

    @pytest.mark.asyncio
    async def test_dead_letter_list_is_capped(self, storage, settings):
        settings.dead_letter_max_length = 2
        queue = JobQueue("jobs", storage=storage, settings=settings)

        for i in range(5):
            await queue.dead_letter(Job(id=f"J{i}", type="send_sms"), "test")

        assert await queue.dead_letter_size() == 2


class TestProcessDelayedJobs:
    @pytest.mark.asyncio
    async def test_not_due_jobs_stay_delayed(self, queue, wall_clock):
        await queue.retry(Job(id="J1", type="send_sms"))
        wall_clock.advance(1)

        assert await queue.process_delayed_jobs() == 0
        assert await queue.delayed_size() == 1

    @pytest.mark.asyncio
    async def test_due_jobs_are_promoted(self, queue, wall_clock):
        await queue.retry(Job(id="J1", type="send_sms"))
        await queue.push("cancel_appointment", {}, delay=100)
        wall_clock.advance(2)

        assert await queue.process_delayed_jobs() == 1

        assert await queue.delayed_size() == 1
        job = await queue.pop(5)
        assert job.id == "J1"
        assert job.retry_count == 1

    @pytest.mark.asyncio
    async def test_promotes_more_than_one_batch(self, queue, wall_clock):
        for _ in range(250):
            await queue.push("send_sms", {}, delay=1)
        wall_clock.advance(1)

        assert await queue.process_delayed_jobs() == 250
        assert await queue.size() == 250

    @pytest.mark.asyncio
    async def test_member_removed_by_another_worker_is_not_promoted(self, queue, fake_redis, wall_clock):
        await queue.push("send_sms", {}, delay=1)
        wall_clock.advance(1)

        original_zrem = fake_redis.zrem

        async def lost_race(key, *members):
            await original_zrem(key, *members)
            return 0

        fake_redis.zrem = lost_race

        assert await queue.process_delayed_jobs() == 0
        assert await queue.size() == 0


class TestConfiguration:
    def test_exposes_retry_settings(self, queue):
        assert queue.get_max_retries() == 3
        assert queue.get_retry_delay() == 2

    def test_key_names(self, queue):
        assert queue.ready_key == "queue:jobs"
        assert queue.delayed_key == "queue:jobs:delayed"
        assert queue.dead_key == "queue:jobs:dead"
