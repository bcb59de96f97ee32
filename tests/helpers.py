"""Test doubles shared across the test suite.

InMemoryRedis is a small stand-in for the handful of redis.asyncio.Redis
commands RedisStorage issues. Blocking pops return immediately instead
of waiting.
"""


class InMemoryRedis:
    """Dict-backed async double for the Redis commands used by the worker."""

    def __init__(self) -> None:
        self.lists: dict[str, list[str]] = {}
        self.zsets: dict[str, dict[str, float]] = {}
        self.available = True

    async def ping(self) -> bool:
        if not self.available:
            raise ConnectionError("Connection refused")
        return True

    async def lpush(self, key: str, *values: str) -> int:
        items = self.lists.setdefault(key, [])
        for value in values:
            items.insert(0, value)
        return len(items)

    async def rpop(self, key: str) -> str | None:
        items = self.lists.get(key)
        if not items:
            return None
        return items.pop()

    async def brpop(self, key: str, timeout: int = 0) -> tuple[str, str] | None:
        value = await self.rpop(key)
        return (key, value) if value is not None else None

    async def llen(self, key: str) -> int:
        return len(self.lists.get(key, []))

    async def ltrim(self, key: str, start: int, end: int) -> bool:
        items = self.lists.get(key, [])
        self.lists[key] = items[start : end + 1]
        return True

    async def zadd(self, key: str, mapping: dict[str, float]) -> int:
        zset = self.zsets.setdefault(key, {})
        added = sum(1 for member in mapping if member not in zset)
        zset.update(mapping)
        return added

    async def zrangebyscore(self, key, min_score, max_score, start=None, num=None) -> list[str]:
        zset = self.zsets.get(key, {})
        low, high = float(min_score), float(max_score)
        members = [m for m, s in sorted(zset.items(), key=lambda item: item[1]) if low <= s <= high]
        if start is not None and num is not None:
            members = members[start : start + num]
        return members

    async def zrem(self, key: str, *members: str) -> int:
        zset = self.zsets.get(key, {})
        removed = 0
        for member in members:
            if zset.pop(member, None) is not None:
                removed += 1
        return removed

    async def zcard(self, key: str) -> int:
        return len(self.zsets.get(key, {}))

    async def aclose(self) -> None:
        pass


class FakeClock:
    """Manually advanced clock."""

    def __init__(self, start: float = 1_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds

