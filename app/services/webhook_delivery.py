"""HTTP delivery of a single webhook delivery record.

One call makes exactly one POST and then records the outcome on the
delivery row: ``success``, a scheduled retry (``pending`` with
``next_retry_at``) or terminal ``failed``.  Transport problems never
escape; they become delivery state.
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Optional, Tuple
from uuid import UUID

import httpx

from app.core.config import settings
from app.core.constants import DELIVERY_ID_HEADER, EVENT_HEADER, SIGNATURE_HEADER
from app.models.webhook import Webhook
from app.models.webhook_delivery import WebhookDelivery
from app.repositories.webhook_delivery_repository import WebhookDeliveryRepository
from app.repositories.webhook_repository import WebhookRepository
from app.schemas.common import DeliveryStatus, WebhookStatus
from app.services.result_cache import Clock, utcnow
from app.services.retry_policy import schedule_retry
from app.services.webhook_signing import serialize_payload, sign_payload

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DeliveryOutcome:
    delivery_id: UUID
    success: bool
    status: str
    response_status: Optional[int] = None
    response_body: Optional[str] = None
    error: Optional[str] = None
    next_retry_at: Optional[datetime] = None


class WebhookDeliverer:
    def __init__(
        self,
        webhook_repo: WebhookRepository,
        delivery_repo: WebhookDeliveryRepository,
        http_client: httpx.AsyncClient,
        clock: Clock = utcnow,
        signature_scheme: str = settings.WEBHOOK_SIGNATURE_SCHEME,
        body_limit: int = settings.WEBHOOK_RESPONSE_BODY_LIMIT,
        mark_failed_on_exhaustion: bool = settings.WEBHOOK_MARK_FAILED_ON_EXHAUSTION,
    ) -> None:
        self._webhooks = webhook_repo
        self._deliveries = delivery_repo
        self._client = http_client
        self._clock = clock
        self._scheme = signature_scheme
        self._body_limit = body_limit
        self._mark_failed = mark_failed_on_exhaustion

    def build_headers(
        self,
        webhook: Webhook,
        delivery: WebhookDelivery,
        body: bytes,
        extra_headers: Optional[Dict[str, str]] = None,
    ) -> httpx.Headers:
        """Static webhook headers first; signature, event and id always win."""
        headers = httpx.Headers({"Content-Type": "application/json"})
        for name, value in (webhook.headers or {}).items():
            headers[name] = str(value)
        for name, value in (extra_headers or {}).items():
            headers[name] = value
        headers[SIGNATURE_HEADER] = sign_payload(body, webhook.secret_key, self._scheme)
        headers[EVENT_HEADER] = delivery.event_type
        headers[DELIVERY_ID_HEADER] = str(delivery.id)
        return headers

    async def _post(
        self, url: str, body: bytes, headers: httpx.Headers, timeout_ms: int
    ) -> Tuple[int, str]:
        """POST and read at most ``body_limit`` characters of the response."""
        seconds = timeout_ms / 1000
        async with self._client.stream(
            "POST", url, content=body, headers=headers, timeout=seconds
        ) as response:
            chunks = []
            size = 0
            async for chunk in response.aiter_text():
                chunks.append(chunk)
                size += len(chunk)
                if size >= self._body_limit:
                    break
            return response.status_code, "".join(chunks)[: self._body_limit]

    async def deliver(
        self,
        delivery: WebhookDelivery,
        webhook: Webhook,
        extra_headers: Optional[Dict[str, str]] = None,
        allow_retry: bool = True,
    ) -> DeliveryOutcome:
        attempts_before = delivery.retry_count or 0
        if attempts_before > 0 and delivery.status != DeliveryStatus.retrying.value:
            delivery.status = DeliveryStatus.retrying.value
            await self._deliveries.commit()

        payload = delivery.transformed_payload
        if payload is None:
            payload = delivery.payload
        body = serialize_payload(payload)
        headers = self.build_headers(webhook, delivery, body, extra_headers)

        status_code: Optional[int] = None
        response_body: Optional[str] = None
        error: Optional[str] = None
        try:
            status_code, response_body = await asyncio.wait_for(
                self._post(webhook.url, body, headers, webhook.timeout),
                timeout=webhook.timeout / 1000,
            )
        except (httpx.TimeoutException, asyncio.TimeoutError):
            error = f"Request timed out after {webhook.timeout} ms"
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            error = str(exc) or type(exc).__name__

        now = self._clock()
        delivery.retry_count = attempts_before + 1
        delivery.error_message = error
        if status_code is not None:
            delivery.response_status = status_code
            delivery.response_body = response_body
            delivery.delivered_at = now
            await self._webhooks.touch_last_triggered(webhook.id, now)

        success = status_code is not None and 200 <= status_code < 300
        next_retry_at = None
        if success:
            delivery.status = DeliveryStatus.success.value
        else:
            if allow_retry:
                next_retry_at = schedule_retry(
                    now,
                    webhook.retry_enabled,
                    attempts_before,
                    webhook.max_retries,
                    webhook.retry_delay,
                )
            if next_retry_at is not None:
                delivery.status = DeliveryStatus.pending.value
            else:
                delivery.status = DeliveryStatus.failed.value
                if allow_retry and webhook.retry_enabled and self._mark_failed:
                    await self._webhooks.set_status(webhook.id, WebhookStatus.failed.value)
                    logger.warning(
                        "Webhook %s marked failed after %d attempt(s)",
                        webhook.id,
                        delivery.retry_count,
                    )
        delivery.next_retry_at = next_retry_at
        await self._deliveries.commit()

        if not success:
            logger.warning(
                "Delivery %s to webhook %s failed (status=%s, error=%s)",
                delivery.id,
                webhook.id,
                status_code,
                error,
            )
        return DeliveryOutcome(
            delivery_id=delivery.id,
            success=success,
            status=delivery.status,
            response_status=status_code,
            response_body=response_body,
            error=error,
            next_retry_at=next_retry_at,
        )

    async def deliver_by_id(self, delivery_id: UUID) -> Optional[DeliveryOutcome]:
        """Worker entry point: load the record and its webhook, then deliver."""
        delivery = await self._deliveries.get_by_id(delivery_id)
        if delivery is None:
            logger.warning("Delivery %s vanished before it could be sent", delivery_id)
            return None
        if delivery.status in (DeliveryStatus.success.value, DeliveryStatus.failed.value):
            return None
        webhook = await self._webhooks.get_by_id(delivery.webhook_id)
        if webhook is None or webhook.status != WebhookStatus.active.value:
            delivery.status = DeliveryStatus.failed.value
            delivery.next_retry_at = None
            delivery.error_message = "Webhook is not active"
            await self._deliveries.commit()
            return None
        return await self.deliver(delivery, webhook)
