import uuid

from sqlalchemy import (
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    text,
)
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from app.core.constants import DELIVERY_STATUS_CHECK_CLAUSE
from app.models.base import Base


class WebhookDelivery(Base):
    """One attempt history for sending one event to one webhook.

    ``retry_count`` counts attempts made and only ever increases.
    ``next_retry_at`` is set while a retry is scheduled and cleared once
    the record reaches a terminal state.
    """

    __tablename__ = "webhook_deliveries"
    id = Column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
        server_default=func.gen_random_uuid(),
    )
    webhook_id = Column(
        UUID(as_uuid=True),
        ForeignKey("webhooks.id", ondelete="CASCADE"),
        nullable=False,
    )
    event_type = Column(String(50), nullable=False)
    payload = Column(JSONB, nullable=False)
    transformed_payload = Column(JSONB(none_as_null=True))
    status = Column(String(20), nullable=False, server_default="pending")
    response_status = Column(Integer)
    response_body = Column(Text)
    error_message = Column(Text)
    retry_count = Column(Integer, nullable=False, server_default=text("0"))
    next_retry_at = Column(DateTime(timezone=True))
    delivered_at = Column(DateTime(timezone=True))
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    webhook = relationship("Webhook", back_populates="deliveries")

    __mapper_args__ = {"eager_defaults": True}

    __table_args__ = (
        Index("idx_webhook_deliveries_status_next_retry", "status", "next_retry_at"),
        Index("idx_webhook_deliveries_webhook_created", "webhook_id", "created_at"),
        CheckConstraint(DELIVERY_STATUS_CHECK_CLAUSE, name="ck_delivery_status"),
        CheckConstraint("retry_count >= 0", name="ck_retry_count_non_negative"),
    )
