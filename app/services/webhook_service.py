import logging
from typing import Any, Dict, List
from uuid import UUID

from app.core.constants import MAX_DELIVERY_HISTORY_LIMIT
from app.core.exceptions import InvalidTransformError, WebhookNotFoundError
from app.models.webhook import Webhook
from app.models.webhook_delivery import WebhookDelivery
from app.repositories.webhook_delivery_repository import WebhookDeliveryRepository
from app.repositories.webhook_repository import WebhookRepository
from app.schemas.common import WebhookStatus
from app.schemas.webhook import WebhookCreate, WebhookUpdate
from app.services.payload_transform import validate_transform
from app.services.webhook_signing import generate_secret_key

logger = logging.getLogger(__name__)


class WebhookService:
    """Webhook registry: CRUD, status toggling, secret rotation and stats.

    ``secret_key`` is only ever written by :meth:`create_webhook` and
    :meth:`rotate_secret`.
    """

    def __init__(
        self,
        webhook_repo: WebhookRepository,
        delivery_repo: WebhookDeliveryRepository,
    ) -> None:
        self._webhooks = webhook_repo
        self._deliveries = delivery_repo

    async def list_webhooks(self, owner_id: str) -> List[Webhook]:
        return await self._webhooks.list_for_owner(owner_id)

    async def get_webhook(self, owner_id: str, webhook_id: UUID) -> Webhook:
        webhook = await self._webhooks.get_by_id(webhook_id, created_by=owner_id)
        if webhook is None:
            raise WebhookNotFoundError()
        return webhook

    async def create_webhook(self, owner_id: str, data: WebhookCreate) -> Webhook:
        if data.transform_script:
            validate_transform(data.transform_script)
        webhook = await self._webhooks.create(
            name=data.name,
            url=data.url,
            description=data.description,
            status=WebhookStatus.active.value,
            secret_key=generate_secret_key(),
            events=[event.value for event in data.events],
            headers=dict(data.headers),
            transform_enabled=data.transform_enabled,
            transform_script=data.transform_script,
            retry_enabled=data.retry_enabled,
            max_retries=data.max_retries,
            retry_delay=data.retry_delay,
            timeout=data.timeout,
            created_by=owner_id,
        )
        await self._webhooks.commit()
        logger.info("Created webhook %s for %s", webhook.id, owner_id)
        return webhook

    async def update_webhook(
        self, owner_id: str, webhook_id: UUID, data: WebhookUpdate
    ) -> Webhook:
        webhook = await self.get_webhook(owner_id, webhook_id)
        changes: Dict[str, Any] = data.model_dump(exclude_unset=True, mode="json")

        enabled = changes.get("transform_enabled", webhook.transform_enabled)
        script = changes.get("transform_script", webhook.transform_script)
        if "transform_script" in changes and script:
            validate_transform(script)
        if enabled and not (script or "").strip():
            raise InvalidTransformError(
                "transform_script is required when transform_enabled is true"
            )

        for field, value in changes.items():
            setattr(webhook, field, value)
        await self._webhooks.commit()
        return webhook

    async def delete_webhook(self, owner_id: str, webhook_id: UUID) -> None:
        webhook = await self.get_webhook(owner_id, webhook_id)
        await self._webhooks.delete(webhook)
        await self._webhooks.commit()

    async def set_status(
        self, owner_id: str, webhook_id: UUID, status: WebhookStatus
    ) -> Webhook:
        webhook = await self.get_webhook(owner_id, webhook_id)
        webhook.status = WebhookStatus(status).value
        await self._webhooks.commit()
        return webhook

    async def rotate_secret(self, owner_id: str, webhook_id: UUID) -> Webhook:
        webhook = await self.get_webhook(owner_id, webhook_id)
        webhook.secret_key = generate_secret_key()
        await self._webhooks.commit()
        logger.info("Rotated secret for webhook %s", webhook.id)
        return webhook

    async def get_deliveries(
        self, owner_id: str, webhook_id: UUID, limit: int
    ) -> List[WebhookDelivery]:
        webhook = await self.get_webhook(owner_id, webhook_id)
        limit = max(1, min(limit, MAX_DELIVERY_HISTORY_LIMIT))
        return await self._deliveries.list_for_webhook(webhook.id, limit)

    async def get_stats(self, owner_id: str, webhook_id: UUID) -> Dict[str, Any]:
        webhook = await self.get_webhook(owner_id, webhook_id)
        counts = await self._deliveries.stats_for_webhook(webhook.id)
        total = counts["total"]
        success_rate = round(counts["successful"] / total * 100, 2) if total else 0.0
        return {**counts, "success_rate": success_rate}
