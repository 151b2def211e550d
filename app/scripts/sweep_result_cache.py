"""Cron entry point: delete expired calculated-column results.

Usage:
    python -m app.scripts.sweep_result_cache
"""

import asyncio
import logging

from app.core.config import settings
from app.core.database import AsyncSessionLocal, engine, session_scope
from app.repositories.calculated_result_repository import CalculatedResultRepository
from app.services.result_cache import ResultCache

logger = logging.getLogger(__name__)


async def main() -> int:
    async with session_scope(AsyncSessionLocal) as session:
        cache = ResultCache(CalculatedResultRepository(session))
        deleted = await cache.sweep_expired()
        await session.commit()
    await engine.dispose()
    logger.info("Deleted %d expired calculated results", deleted)
    return deleted


if __name__ == "__main__":
    logging.basicConfig(level=settings.LOG_LEVEL)
    asyncio.run(main())
