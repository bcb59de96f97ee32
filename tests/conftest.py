"""Pytest configuration and shared fixtures.

Queue tests run against InMemoryRedis instead of a live Redis server.
"""

from collections.abc import Callable

import pytest

from clinic_jobs.config import Settings
from clinic_jobs.queue.job_queue import JobQueue
from clinic_jobs.storage.redis import RedisStorage
from tests.helpers import FakeClock, InMemoryRedis


@pytest.fixture
def settings() -> Settings:
    """Settings isolated from the environment and any .env file."""
    return Settings(
        _env_file=None,
        use_redis=True,
        job_max_retries=3,
        job_retry_delay=2,
        telegram_bot_token="",
        admin_telegram_chat_id="",
    )


@pytest.fixture
def fake_redis() -> InMemoryRedis:
    return InMemoryRedis()


@pytest.fixture
def storage(fake_redis: InMemoryRedis) -> RedisStorage:
    storage = RedisStorage()
    storage._client = fake_redis
    return storage


@pytest.fixture
def wall_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def queue(storage: RedisStorage, settings: Settings, wall_clock: Callable[[], float]) -> JobQueue:
    return JobQueue("jobs", storage=storage, settings=settings, clock=wall_clock)
