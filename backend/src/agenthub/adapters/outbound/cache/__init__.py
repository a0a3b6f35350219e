"""Redis cache adapter implementing CachePort.

Backs the per-IP HTTP rate limiter; counters are shared across workers when
Redis is reachable and kept in process memory otherwise.
"""

from __future__ import annotations

import time
from typing import Any

import redis.asyncio as redis
import structlog

from agenthub.ports.outbound import CachePort

logger = structlog.get_logger(__name__)


class MemoryCacheAdapter(CachePort):
    """In-memory cache used when Redis is local, missing or unreachable."""

    def __init__(self) -> None:
        self._data: dict[str, Any] = {}
        self._expiry: dict[str, float] = {}
        logger.info("cache_initialized_memory_fallback")

    def _expired(self, key: str) -> bool:
        if key in self._expiry and self._expiry[key] < time.time():
            self._data.pop(key, None)
            del self._expiry[key]
            return True
        return False

    async def get(self, key: str) -> str | None:
        if self._expired(key):
            return None
        value = self._data.get(key)
        return None if value is None else str(value)

    async def set(self, key: str, value: str, *, ttl_seconds: int | None = None) -> None:
        self._data[key] = value
        if ttl_seconds:
            self._expiry[key] = time.time() + ttl_seconds
        else:
            self._expiry.pop(key, None)

    async def delete(self, key: str) -> None:
        self._data.pop(key, None)
        self._expiry.pop(key, None)

    async def increment(self, key: str, *, ttl_seconds: int | None = None) -> int:
        """Fixed-window counter: the TTL is set by the first increment only."""
        self._expired(key)
        new_val = int(self._data.get(key, 0)) + 1
        self._data[key] = new_val
        if ttl_seconds and new_val == 1:
            self._expiry[key] = time.time() + ttl_seconds
        return new_val

    async def close(self) -> None:
        self._data.clear()
        self._expiry.clear()

    async def health_check(self) -> bool:
        return True


class RedisCacheAdapter(CachePort):
    """Async Redis adapter for shared fixed-window counters."""

    def __init__(self, url: str, max_connections: int = 50) -> None:
        is_local = "localhost" in url or "127.0.0.1" in url
        self._use_memory = not url or is_local

        if self._use_memory:
            logger.warning("redis_url_missing_or_local_falling_back_to_memory", url=url)
            self._memory = MemoryCacheAdapter()
            return

        try:
            self._pool = redis.ConnectionPool.from_url(
                url,
                max_connections=max_connections,
                decode_responses=True,
            )
            self._client = redis.Redis(connection_pool=self._pool)
        except (redis.RedisError, ValueError) as exc:
            logger.error("redis_init_failed", error=str(exc))
            self._use_memory = True
            self._memory = MemoryCacheAdapter()

    async def get(self, key: str) -> str | None:
        if self._use_memory:
            return await self._memory.get(key)
        try:
            return await self._client.get(key)
        except redis.RedisError as exc:
            logger.error("redis_get_error", key=key, error=str(exc))
            return None

    async def set(self, key: str, value: str, *, ttl_seconds: int | None = None) -> None:
        if self._use_memory:
            return await self._memory.set(key, value, ttl_seconds=ttl_seconds)
        try:
            if ttl_seconds:
                await self._client.setex(key, ttl_seconds, value)
            else:
                await self._client.set(key, value)
        except redis.RedisError as exc:
            logger.error("redis_set_error", key=key, error=str(exc))

    async def delete(self, key: str) -> None:
        if self._use_memory:
            return await self._memory.delete(key)
        try:
            await self._client.delete(key)
        except redis.RedisError as exc:
            logger.error("redis_delete_error", key=key, error=str(exc))

    async def increment(self, key: str, *, ttl_seconds: int | None = None) -> int:
        if self._use_memory:
            return await self._memory.increment(key, ttl_seconds=ttl_seconds)
        try:
            val = await self._client.incr(key)
            if ttl_seconds and val == 1:
                await self._client.expire(key, ttl_seconds)
            return val
        except redis.RedisError as exc:
            logger.error("redis_incr_error", key=key, error=str(exc))
            return 0

    async def close(self) -> None:
        if self._use_memory:
            await self._memory.close()
            return
        await self._client.aclose()
        await self._pool.aclose()

    async def health_check(self) -> bool:
        if self._use_memory:
            return True
        try:
            return await self._client.ping()
        except redis.RedisError:
            return False
