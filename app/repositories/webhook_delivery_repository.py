from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence
from uuid import UUID

from sqlalchemy import func, select, update

from app.models.webhook import Webhook
from app.models.webhook_delivery import WebhookDelivery
from app.repositories.base import BaseRepository
from app.schemas.common import DeliveryStatus


class WebhookDeliveryRepository(BaseRepository):
    """Persistence for delivery records and the retry queue they form."""

    async def get_by_id(self, delivery_id: UUID) -> Optional[WebhookDelivery]:
        result = await self._db.execute(
            select(WebhookDelivery).where(WebhookDelivery.id == delivery_id)
        )
        return result.scalar_one_or_none()

    async def get_for_owner(
        self, delivery_id: UUID, created_by: str
    ) -> Optional[WebhookDelivery]:
        """Return a delivery only if its webhook belongs to *created_by*."""
        result = await self._db.execute(
            select(WebhookDelivery)
            .join(Webhook, Webhook.id == WebhookDelivery.webhook_id)
            .where(WebhookDelivery.id == delivery_id, Webhook.created_by == created_by)
        )
        return result.scalar_one_or_none()

    async def create(self, **kwargs: Any) -> WebhookDelivery:
        delivery = WebhookDelivery(**kwargs)
        self._db.add(delivery)
        return delivery

    async def create_in_savepoint(self, **kwargs: Any) -> WebhookDelivery:
        """Insert and flush inside a SAVEPOINT so one bad row cannot spoil the batch."""
        delivery = WebhookDelivery(**kwargs)
        async with self.savepoint() as session:
            session.add(delivery)
        return delivery

    async def list_for_webhook(
        self, webhook_id: UUID, limit: int
    ) -> List[WebhookDelivery]:
        """Most recent deliveries of a webhook, newest first."""
        result = await self._db.execute(
            select(WebhookDelivery)
            .where(WebhookDelivery.webhook_id == webhook_id)
            .order_by(WebhookDelivery.created_at.desc())
            .limit(limit)
        )
        return list(result.scalars().all())

    async def claim_due_retries(self, now: datetime, limit: int) -> List[UUID]:
        """Atomically move due ``pending`` records to ``retrying``.

        ``FOR UPDATE SKIP LOCKED`` lets several pollers run side by side
        without picking the same record twice.
        """
        due = (
            select(WebhookDelivery.id)
            .where(
                WebhookDelivery.status == DeliveryStatus.pending.value,
                WebhookDelivery.next_retry_at.is_not(None),
                WebhookDelivery.next_retry_at <= now,
            )
            .order_by(WebhookDelivery.next_retry_at)
            .limit(limit)
            .with_for_update(skip_locked=True)
            .scalar_subquery()
        )
        result = await self._db.execute(
            update(WebhookDelivery)
            .where(WebhookDelivery.id.in_(due))
            .values(status=DeliveryStatus.retrying.value)
            .returning(WebhookDelivery.id)
            .execution_options(synchronize_session=False)
        )
        return list(result.scalars().all())

    async def release(self, delivery_ids: Sequence[UUID], now: datetime) -> None:
        """Hand claimed records back to the poller as due-now ``pending``."""
        if not delivery_ids:
            return
        await self._db.execute(
            update(WebhookDelivery)
            .where(WebhookDelivery.id.in_(list(delivery_ids)))
            .values(status=DeliveryStatus.pending.value, next_retry_at=now)
            .execution_options(synchronize_session=False)
        )

    async def stats_for_webhook(self, webhook_id: UUID) -> Dict[str, int]:
        """Delivery counts per status bucket for one webhook."""
        status = WebhookDelivery.status
        result = await self._db.execute(
            select(
                func.count().label("total"),
                func.count().filter(status == DeliveryStatus.success.value).label("successful"),
                func.count().filter(status == DeliveryStatus.failed.value).label("failed"),
                func.count()
                .filter(
                    status.in_(
                        [DeliveryStatus.pending.value, DeliveryStatus.retrying.value]
                    )
                )
                .label("pending"),
            ).where(WebhookDelivery.webhook_id == webhook_id)
        )
        row = result.one()
        return {
            "total": row.total,
            "successful": row.successful,
            "failed": row.failed,
            "pending": row.pending,
        }
