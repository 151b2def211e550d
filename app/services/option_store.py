import logging
from typing import Any

from app.core.cache import CacheService

logger = logging.getLogger(__name__)

# Key prefix for per-user UI options (column layouts, saved filters, ...)
_KEY_PREFIX = "options"


class OptionStore:
    """Per-user key/value options kept in Redis.

    When Redis is unavailable reads fall back to the caller's default and
    writes report ``False``; nothing raises.
    """

    def __init__(self, cache: CacheService) -> None:
        self._cache = cache

    @staticmethod
    def _key(owner_id: str, key: str) -> str:
        return f"{_KEY_PREFIX}:{owner_id}:{key}"

    async def load(self, owner_id: str, key: str, default: Any = None) -> Any:
        value = await self._cache.get_json(self._key(owner_id, key))
        return default if value is None else value

    async def save(self, owner_id: str, key: str, value: Any) -> bool:
        stored = await self._cache.set_json(self._key(owner_id, key), value)
        if not stored:
            logger.warning("Option %s for %s was not persisted", key, owner_id)
        return stored

    async def delete(self, owner_id: str, key: str) -> bool:
        return await self._cache.delete(self._key(owner_id, key))
