"""Fan-out of CRM events to subscribed webhooks.

``trigger`` only persists delivery records and hands their ids to the
worker pool; HTTP outcomes never reach the caller.  ``send_test`` and
``redeliver`` run the delivery inline and report the outcome.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional
from uuid import UUID

import httpx
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.config import settings
from app.core.constants import TEST_EVENT_TYPE, TEST_HEADER
from app.core.database import AsyncSessionLocal, session_scope
from app.core.exceptions import DeliveryNotFoundError, WebhookNotFoundError
from app.formula.coercion import to_iso
from app.models.webhook import Webhook
from app.models.webhook_delivery import WebhookDelivery
from app.repositories.webhook_delivery_repository import WebhookDeliveryRepository
from app.repositories.webhook_repository import WebhookRepository
from app.schemas.common import DeliveryStatus
from app.services.delivery_pool import DeliveryHandler, DeliveryWorkerPool
from app.services.payload_transform import transform_or_original
from app.services.result_cache import Clock, utcnow
from app.services.webhook_delivery import WebhookDeliverer

logger = logging.getLogger(__name__)


@dataclass
class TriggerResult:
    triggered: int = 0
    delivery_ids: List[UUID] = field(default_factory=list)


class WebhookDispatcher:
    def __init__(
        self,
        webhook_repo: WebhookRepository,
        delivery_repo: WebhookDeliveryRepository,
        deliverer: WebhookDeliverer,
        pool: Optional[DeliveryWorkerPool],
        clock: Clock = utcnow,
    ) -> None:
        self._webhooks = webhook_repo
        self._deliveries = delivery_repo
        self._deliverer = deliverer
        self._pool = pool
        self._clock = clock

    def _prepare_payload(self, webhook: Webhook, payload: Dict[str, Any]) -> Any:
        """Transformed body, or ``None`` when no transform applies or it failed."""
        if not (webhook.transform_enabled and webhook.transform_script):
            return None
        body, transformed = transform_or_original(webhook.transform_script, payload)
        return body if transformed else None

    async def _enqueue(self, delivery_ids: List[UUID]) -> int:
        """Hand ids to the pool; rejected ids become due-now work for the poller."""
        rejected = []
        for delivery_id in delivery_ids:
            if self._pool is None or not self._pool.submit(delivery_id):
                rejected.append(delivery_id)
        if rejected:
            await self._deliveries.release(rejected, self._clock())
            await self._deliveries.commit()
        return len(delivery_ids) - len(rejected)

    async def trigger(
        self, event_type: str, payload: Dict[str, Any], owner_id: Optional[str] = None
    ) -> TriggerResult:
        webhooks = await self._webhooks.list_subscribed(event_type, created_by=owner_id)
        if not webhooks:
            return TriggerResult()

        result = TriggerResult()
        for webhook in webhooks:
            try:
                delivery = await self._deliveries.create_in_savepoint(
                    webhook_id=webhook.id,
                    event_type=event_type,
                    payload=payload,
                    transformed_payload=self._prepare_payload(webhook, payload),
                    status=DeliveryStatus.pending.value,
                    retry_count=0,
                )
            except SQLAlchemyError:
                logger.warning(
                    "Could not record %s delivery for webhook %s",
                    event_type,
                    webhook.id,
                    exc_info=True,
                )
                continue
            result.delivery_ids.append(delivery.id)

        result.triggered = len(result.delivery_ids)
        await self._deliveries.commit()
        await self._enqueue(result.delivery_ids)
        logger.info(
            "Event %s fanned out to %d of %d webhook(s)",
            event_type,
            result.triggered,
            len(webhooks),
        )
        return result

    async def send_test(self, owner_id: str, webhook_id: UUID) -> Dict[str, Any]:
        """Send a synthetic event through the normal delivery path, inline."""
        webhook = await self._webhooks.get_by_id(webhook_id, created_by=owner_id)
        if webhook is None:
            raise WebhookNotFoundError()
        payload = {
            "test": True,
            "message": "This is a test webhook",
            "timestamp": to_iso(self._clock()),
        }
        delivery = await self._deliveries.create(
            webhook_id=webhook.id,
            event_type=TEST_EVENT_TYPE,
            payload=payload,
            transformed_payload=self._prepare_payload(webhook, payload),
            status=DeliveryStatus.pending.value,
            retry_count=0,
        )
        await self._deliveries.commit()

        outcome = await self._deliverer.deliver(
            delivery, webhook, extra_headers={TEST_HEADER: "true"}, allow_retry=False
        )
        preview = outcome.response_body
        if preview is not None:
            preview = preview[: settings.WEBHOOK_TEST_RESPONSE_PREVIEW]
        return {
            "success": outcome.success,
            "message": "Webhook test successful" if outcome.success else "Webhook test failed",
            "status": outcome.response_status,
            "response": preview,
            "error": outcome.error,
            "delivery_id": outcome.delivery_id,
        }

    async def redeliver(self, owner_id: str, delivery_id: UUID) -> WebhookDelivery:
        """Manually re-attempt one delivery now, whatever its current state."""
        delivery = await self._deliveries.get_for_owner(delivery_id, owner_id)
        if delivery is None:
            raise DeliveryNotFoundError()
        webhook = await self._webhooks.get_by_id(delivery.webhook_id)
        if webhook is None:
            raise WebhookNotFoundError()
        await self._deliverer.deliver(delivery, webhook)
        return delivery

    async def process_due_retries(
        self,
        now: Optional[datetime] = None,
        limit: int = settings.WEBHOOK_RETRY_BATCH_SIZE,
    ) -> Dict[str, int]:
        """Claim records whose ``next_retry_at`` has passed and queue them."""
        claimed = await self._deliveries.claim_due_retries(now or self._clock(), limit)
        await self._deliveries.commit()
        queued = await self._enqueue(claimed) if claimed else 0
        if claimed:
            logger.info("Queued %d of %d due webhook retries", queued, len(claimed))
        return {"claimed": len(claimed), "queued": queued}


def build_delivery_handler(
    http_client: httpx.AsyncClient,
    session_factory: async_sessionmaker = AsyncSessionLocal,
) -> DeliveryHandler:
    """Pool handler: each delivery runs in its own session."""

    async def handle(delivery_id: UUID) -> None:
        async with session_scope(session_factory) as session:
            deliverer = _deliverer_for(session, http_client)
            await deliverer.deliver_by_id(delivery_id)

    return handle


def _deliverer_for(session: AsyncSession, http_client: httpx.AsyncClient) -> WebhookDeliverer:
    return WebhookDeliverer(
        WebhookRepository(session),
        WebhookDeliveryRepository(session),
        http_client,
    )
