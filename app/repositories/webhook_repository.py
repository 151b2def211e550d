from datetime import datetime
from typing import Any, List, Optional
from uuid import UUID

from sqlalchemy import select, update

from app.models.webhook import Webhook
from app.repositories.base import BaseRepository
from app.schemas.common import WebhookStatus


class WebhookRepository(BaseRepository):
    """Encapsulates every SQL query that touches the ``webhooks`` table."""

    async def get_by_id(
        self, webhook_id: UUID, created_by: Optional[str] = None
    ) -> Optional[Webhook]:
        stmt = select(Webhook).where(Webhook.id == webhook_id)
        if created_by is not None:
            stmt = stmt.where(Webhook.created_by == created_by)
        result = await self._db.execute(stmt)
        return result.scalar_one_or_none()

    async def list_for_owner(self, created_by: str) -> List[Webhook]:
        """Return the caller's webhooks, newest first."""
        result = await self._db.execute(
            select(Webhook)
            .where(Webhook.created_by == created_by)
            .order_by(Webhook.created_at.desc())
        )
        return list(result.scalars().all())

    async def list_subscribed(
        self, event_type: str, created_by: Optional[str] = None
    ) -> List[Webhook]:
        """Active webhooks whose ``events`` array contains *event_type*.

        Uses the ``@>`` operator so the GIN index on ``events`` applies.
        """
        stmt = select(Webhook).where(
            Webhook.status == WebhookStatus.active.value,
            Webhook.events.contains([event_type]),
        )
        if created_by is not None:
            stmt = stmt.where(Webhook.created_by == created_by)
        result = await self._db.execute(stmt.order_by(Webhook.created_at))
        return list(result.scalars().all())

    async def create(self, **kwargs: Any) -> Webhook:
        webhook = Webhook(**kwargs)
        self._db.add(webhook)
        return webhook

    async def delete(self, webhook: Webhook) -> None:
        await self._db.delete(webhook)

    async def touch_last_triggered(self, webhook_id: UUID, at: datetime) -> None:
        await self._db.execute(
            update(Webhook).where(Webhook.id == webhook_id).values(last_triggered_at=at)
        )

    async def set_status(self, webhook_id: UUID, status: str) -> None:
        await self._db.execute(
            update(Webhook).where(Webhook.id == webhook_id).values(status=status)
        )
