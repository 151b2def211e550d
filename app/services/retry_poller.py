import asyncio
import logging
from typing import Optional

import httpx
from sqlalchemy.ext.asyncio import async_sessionmaker

from app.core.config import settings
from app.core.database import session_scope
from app.repositories.webhook_delivery_repository import WebhookDeliveryRepository
from app.repositories.webhook_repository import WebhookRepository
from app.services.delivery_pool import DeliveryWorkerPool
from app.services.webhook_delivery import WebhookDeliverer
from app.services.webhook_dispatcher import WebhookDispatcher

logger = logging.getLogger(__name__)


async def process_due_retries_once(
    session_factory: async_sessionmaker,
    pool: DeliveryWorkerPool,
    http_client: httpx.AsyncClient,
    limit: int = settings.WEBHOOK_RETRY_BATCH_SIZE,
) -> int:
    """One poll: claim due retries and hand them to *pool*.

    Returns the number of deliveries queued.
    """
    async with session_scope(session_factory) as session:
        webhook_repo = WebhookRepository(session)
        delivery_repo = WebhookDeliveryRepository(session)
        dispatcher = WebhookDispatcher(
            webhook_repo,
            delivery_repo,
            WebhookDeliverer(webhook_repo, delivery_repo, http_client),
            pool,
        )
        counts = await dispatcher.process_due_retries(limit=limit)
    return counts["queued"]


async def start_retry_poller_loop(
    session_factory: async_sessionmaker,
    pool: DeliveryWorkerPool,
    http_client: httpx.AsyncClient,
    interval_seconds: Optional[int] = None,
) -> None:
    """Infinite loop that re-queues due webhook retries on a fixed interval.

    Only started when ``WEBHOOK_RETRY_POLLER_ENABLED`` is set; otherwise
    run ``python -m app.scripts.process_webhook_retries`` from cron.
    """
    interval = interval_seconds or settings.WEBHOOK_RETRY_POLL_INTERVAL_SECONDS
    logger.info("Webhook retry poller started (interval=%ds)", interval)
    while True:
        try:
            queued = await process_due_retries_once(session_factory, pool, http_client)
            if queued:
                logger.info("Retry poller queued %d deliveries", queued)
        except Exception:
            logger.error("Webhook retry poll failed", exc_info=True)
        await asyncio.sleep(interval)
