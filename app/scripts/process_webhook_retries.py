"""Cron entry point: deliver every webhook retry whose time has come.

Usage:
    python -m app.scripts.process_webhook_retries

Claims due records, delivers them through a short-lived worker pool and
exits once the pool has drained.  Safe to run from several hosts at once:
claiming skips rows another poller has locked.
"""

import asyncio
import logging

import httpx

from app.core.config import settings
from app.core.database import AsyncSessionLocal, engine
from app.services.delivery_pool import DeliveryWorkerPool
from app.services.retry_poller import process_due_retries_once
from app.services.webhook_dispatcher import build_delivery_handler

logger = logging.getLogger(__name__)


async def main() -> int:
    async with httpx.AsyncClient(follow_redirects=False) as http_client:
        pool = DeliveryWorkerPool(
            build_delivery_handler(http_client, AsyncSessionLocal),
            workers=settings.WEBHOOK_MAX_CONCURRENT_DELIVERIES,
            queue_size=settings.WEBHOOK_DELIVERY_QUEUE_SIZE,
        )
        pool.start()
        try:
            queued = await process_due_retries_once(AsyncSessionLocal, pool, http_client)
            await pool.join()
        finally:
            await pool.stop(drain_timeout=None)
    await engine.dispose()
    logger.info("Processed %d due webhook retries", queued)
    return queued


if __name__ == "__main__":
    logging.basicConfig(level=settings.LOG_LEVEL)
    asyncio.run(main())
