import uuid

from sqlalchemy import (
    ARRAY,
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    Index,
    Integer,
    String,
    Text,
    text,
)
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from app.core.constants import WEBHOOK_STATUS_CHECK_CLAUSE
from app.models.base import Base


class Webhook(Base):
    """Outbound HTTP subscription to CRM events.

    ``secret_key`` is generated server-side and signs every delivery.
    ``timeout`` is in milliseconds and ``retry_delay`` is the base backoff
    delay in seconds.
    """

    __tablename__ = "webhooks"
    id = Column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
        server_default=func.gen_random_uuid(),
    )
    name = Column(String(255), nullable=False)
    url = Column(Text, nullable=False)
    description = Column(Text)
    status = Column(String(20), nullable=False, server_default="active")
    secret_key = Column(String(128), nullable=False)
    events = Column(ARRAY(String), nullable=False, server_default=text("'{}'"))
    headers = Column(JSONB, nullable=False, server_default=text("'{}'::jsonb"))
    transform_enabled = Column(Boolean, nullable=False, server_default=text("false"))
    transform_script = Column(Text)
    retry_enabled = Column(Boolean, nullable=False, server_default=text("true"))
    max_retries = Column(Integer, nullable=False, server_default=text("3"))
    retry_delay = Column(Integer, nullable=False, server_default=text("60"))
    timeout = Column(Integer, nullable=False, server_default=text("30000"))
    created_by = Column(String(255), nullable=False)
    last_triggered_at = Column(DateTime(timezone=True))
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    deliveries = relationship(
        "WebhookDelivery",
        back_populates="webhook",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    __mapper_args__ = {"eager_defaults": True}

    __table_args__ = (
        Index("idx_webhooks_created_by_status", "created_by", "status"),
        Index("idx_webhooks_events", "events", postgresql_using="gin"),
        CheckConstraint(WEBHOOK_STATUS_CHECK_CLAUSE, name="ck_webhook_status"),
        CheckConstraint("max_retries BETWEEN 0 AND 10", name="ck_max_retries_range"),
        CheckConstraint("retry_delay > 0", name="ck_retry_delay_positive"),
        CheckConstraint("timeout BETWEEN 1000 AND 120000", name="ck_timeout_range"),
    )
