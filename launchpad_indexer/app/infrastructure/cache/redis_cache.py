from __future__ import annotations

import json
import logging
from typing import Any

from redis.asyncio import Redis
from redis.exceptions import RedisError

from launchpad_indexer.app.domain.ports.out import KeyValueCache

logger = logging.getLogger(__name__)


class RedisKeyValueCache(KeyValueCache):
    """
    JSON values in Redis.

    Redis is a performance layer only: connection or command errors are
    logged and reported as a miss / no-op, never raised.
    """

    def __init__(self, redis: Redis) -> None:
        self._redis = redis

    @classmethod
    def from_url(cls, url: str) -> "RedisKeyValueCache":
        return cls(Redis.from_url(url, decode_responses=True))

    async def get(self, key: str) -> Any | None:
        try:
            raw = await self._redis.get(key)
        except RedisError as exc:
            logger.warning("Redis GET %s failed: %s", key, exc)
            return None
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except ValueError:
            logger.warning("Dropping non-JSON cache value at %s", key)
            return None

    async def set(self, key: str, value: Any, ttl_seconds: int | None = None) -> bool:
        try:
            await self._redis.set(key, json.dumps(value, default=str), ex=ttl_seconds)
        except RedisError as exc:
            logger.warning("Redis SET %s failed: %s", key, exc)
            return False
        return True

    async def delete(self, key: str) -> bool:
        try:
            await self._redis.delete(key)
        except RedisError as exc:
            logger.warning("Redis DEL %s failed: %s", key, exc)
            return False
        return True

    async def delete_pattern(self, prefix: str) -> bool:
        try:
            keys = [k async for k in self._redis.scan_iter(match=prefix + "*", count=500)]
            if keys:
                await self._redis.delete(*keys)
        except RedisError as exc:
            logger.warning("Redis pattern delete %s* failed: %s", prefix, exc)
            return False
        return True

    async def close(self) -> None:
        await self._redis.aclose()


class NullCache(KeyValueCache):
    """Used when no REDIS_URL is configured."""

    async def get(self, key: str) -> Any | None:
        return None

    async def set(self, key: str, value: Any, ttl_seconds: int | None = None) -> bool:
        return False

    async def delete(self, key: str) -> bool:
        return False

    async def delete_pattern(self, prefix: str) -> bool:
        return False

    async def close(self) -> None:
        return None
