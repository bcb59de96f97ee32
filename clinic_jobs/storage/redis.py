"""Redis connection pool and the primitives the job queue is built on.

Ready jobs live in a list, delayed jobs in a sorted set scored by the
unix time they become due, abandoned jobs in a capped list.
"""

from redis.asyncio import ConnectionPool, Redis

from clinic_jobs.config import get_settings


class RedisStorage:
    """Redis storage with connection pool."""

    def __init__(self) -> None:
        """Initialize Redis connection pool."""
        self._pool: ConnectionPool | None = None
        self._client: Redis | None = None

    async def connect(self, url: str | None = None) -> None:
        """Create connection pool and connect to Redis.

        Args:
            url: Redis URL, defaults to the configured one
        """
        settings = get_settings()
        self._pool = ConnectionPool.from_url(
            url or settings.redis_url,
            encoding="utf-8",
            decode_responses=True,
            max_connections=10,
        )
        self._client = Redis(connection_pool=self._pool)

    async def disconnect(self) -> None:
        """Close connection pool."""
        if self._client:
            await self._client.aclose()
            self._client = None
        if self._pool:
            await self._pool.disconnect()
            self._pool = None

    @property
    def client(self) -> Redis:
        """Get Redis client. Raises if not connected."""
        if self._client is None:
            raise RuntimeError("Redis not connected. Call connect() first.")
        return self._client

    async def lpush(self, key: str, *values: str) -> int:
        """Push values to list (left)."""
        return await self.client.lpush(key, *values)

    async def rpop(self, key: str, timeout: int = 0) -> str | None:
        """Pop value from list (right), blocking up to timeout seconds."""
        if timeout > 0:
            result = await self.client.brpop(key, timeout=timeout)
            return result[1] if result else None
        return await self.client.rpop(key)

    async def llen(self, key: str) -> int:
        """Get list length."""
        return await self.client.llen(key)

    async def ltrim(self, key: str, start: int, end: int) -> bool:
        """Trim list to the given inclusive range."""
        return await self.client.ltrim(key, start, end)

    async def zadd(self, key: str, mapping: dict[str, float]) -> int:
        """Add members to sorted set."""
        return await self.client.zadd(key, mapping)

    async def zrangebyscore(self, key: str, min_score: float, max_score: float, limit: int | None = None) -> list[str]:
        """Get sorted set members with scores in [min_score, max_score]."""
        if limit is not None:
            return await self.client.zrangebyscore(key, min_score, max_score, start=0, num=limit)
        return await self.client.zrangebyscore(key, min_score, max_score)

    async def zrem(self, key: str, *members: str) -> int:
        """Remove members from sorted set. Returns number actually removed."""
        return await self.client.zrem(key, *members)

    async def zcard(self, key: str) -> int:
        """Get sorted set size."""
        return await self.client.zcard(key)

    async def health_check(self) -> bool:
        """Check Redis connection health."""
        try:
            await self.client.ping()
            return True
        except Exception:
            return False


# Global Redis storage instance
redis_storage = RedisStorage()
