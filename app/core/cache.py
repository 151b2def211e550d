import json
import logging
from typing import Any, Awaitable, Callable, Optional, TypeVar

from redis.asyncio import Redis

logger = logging.getLogger(__name__)

T = TypeVar("T")


class CacheService:
    """Best-effort key/value access over an async Redis client.

    With no client (Redis down at request time) reads return ``None`` and
    writes return ``False``.  Redis errors are logged and treated the same
    way, so callers only ever see a value or a miss.
    """

    def __init__(self, redis_client: Optional[Redis] = None) -> None:
        self._redis: Optional[Redis] = redis_client

    async def _call(
        self,
        op: str,
        key: str,
        action: Callable[[Redis], Awaitable[T]],
        fallback: T,
    ) -> T:
        if self._redis is None:
            return fallback
        try:
            return await action(self._redis)
        except Exception:
            logger.warning("Redis %s failed for key %s", op, key)
            return fallback

    async def get(self, key: str) -> Optional[str]:
        return await self._call("GET", key, lambda r: r.get(key), None)

    async def set(self, key: str, value: str, ttl: Optional[int] = None) -> bool:
        """Write *value*; with *ttl* (seconds) the key expires on its own."""

        async def write(redis: Redis) -> bool:
            if ttl:
                await redis.setex(key, ttl, value)
            else:
                await redis.set(key, value)
            return True

        return await self._call("SET", key, write, False)

    async def delete(self, key: str) -> bool:
        async def remove(redis: Redis) -> bool:
            await redis.delete(key)
            return True

        return await self._call("DELETE", key, remove, False)

    async def get_json(self, key: str) -> Any:
        """Decoded JSON value, or ``None`` when absent or not valid JSON."""
        raw = await self.get(key)
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except (json.JSONDecodeError, TypeError):
            logger.warning("Ignoring undecodable JSON under cache key %s", key)
            return None

    async def set_json(self, key: str, data: Any, ttl: Optional[int] = None) -> bool:
        try:
            raw = json.dumps(data, default=str)
        except (TypeError, ValueError):
            logger.warning("Value for cache key %s is not JSON-serialisable", key)
            return False
        return await self.set(key, raw, ttl=ttl)
