"""Webhook registry and delivery schemas."""

from datetime import datetime
from typing import Any, Dict, List, Optional
from uuid import UUID

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, model_validator
from typing_extensions import Self

from app.core.config import settings
from app.schemas.common import DeliveryStatus, WebhookEventType, WebhookStatus

_URL_PATTERN = r"^https?://\S+$"


# ---------------------------------------------------------------------------
# Request schemas
# ---------------------------------------------------------------------------


class WebhookCreate(BaseModel):
    """Body for POST /webhooks.

    There is no ``secret_key`` field: secrets are generated server-side and
    any such key in the body is ignored.
    """

    name: str = Field(..., min_length=1, max_length=255)
    url: str = Field(..., max_length=2048, pattern=_URL_PATTERN)
    description: Optional[str] = Field(default=None, max_length=2000)
    events: List[WebhookEventType] = Field(..., min_length=1)
    headers: Dict[str, str] = Field(default_factory=dict)
    transform_enabled: bool = False
    transform_script: Optional[str] = Field(default=None, max_length=10_000)
    retry_enabled: bool = True
    max_retries: int = Field(default=3, ge=0, le=10)
    retry_delay: int = Field(default=60, ge=1, le=86_400)
    timeout: int = Field(default=settings.WEBHOOK_DEFAULT_TIMEOUT_MS, ge=1000, le=120_000)

    @model_validator(mode="after")
    def transform_needs_script(self) -> Self:
        if self.transform_enabled and not (self.transform_script or "").strip():
            raise ValueError("transform_script is required when transform_enabled is true")
        return self


class WebhookUpdate(BaseModel):
    """Partial update.  ``status`` may only toggle between active and inactive."""

    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    url: Optional[str] = Field(default=None, max_length=2048, pattern=_URL_PATTERN)
    description: Optional[str] = Field(default=None, max_length=2000)
    status: Optional[WebhookStatus] = None
    events: Optional[List[WebhookEventType]] = Field(default=None, min_length=1)
    headers: Optional[Dict[str, str]] = None
    transform_enabled: Optional[bool] = None
    transform_script: Optional[str] = Field(default=None, max_length=10_000)
    retry_enabled: Optional[bool] = None
    max_retries: Optional[int] = Field(default=None, ge=0, le=10)
    retry_delay: Optional[int] = Field(default=None, ge=1, le=86_400)
    timeout: Optional[int] = Field(default=None, ge=1000, le=120_000)

    @model_validator(mode="after")
    def check_fields(self) -> Self:
        nullable = {"description", "transform_script"}
        for name in self.model_fields_set - nullable:
            if getattr(self, name) is None:
                raise ValueError(f"{name} cannot be null")
        if self.status is WebhookStatus.failed:
            raise ValueError("status can only be set to 'active' or 'inactive'")
        return self


class WebhookTriggerRequest(BaseModel):
    event_type: WebhookEventType = Field(
        ..., validation_alias=AliasChoices("event_type", "eventType")
    )
    payload: Dict[str, Any] = Field(default_factory=dict)


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------


class WebhookOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    name: str
    url: str
    description: Optional[str] = None
    status: WebhookStatus
    events: List[str]
    headers: Dict[str, str] = Field(default_factory=dict)
    transform_enabled: bool
    transform_script: Optional[str] = None
    retry_enabled: bool
    max_retries: int
    retry_delay: int
    timeout: int
    created_by: str
    last_triggered_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class WebhookWithSecretOut(WebhookOut):
    """Returned only by create and rotate-secret; the secret is shown once."""

    secret_key: str


class WebhookDeliveryOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    webhook_id: UUID
    event_type: str
    payload: Any
    transformed_payload: Any = None
    status: DeliveryStatus
    response_status: Optional[int] = None
    response_body: Optional[str] = None
    error_message: Optional[str] = None
    retry_count: int
    next_retry_at: Optional[datetime] = None
    delivered_at: Optional[datetime] = None
    created_at: Optional[datetime] = None


class WebhookStatsOut(BaseModel):
    total: int
    successful: int
    failed: int
    pending: int
    success_rate: float = Field(..., ge=0, le=100)


class WebhookTriggerResponse(BaseModel):
    message: str
    triggered: int
    delivery_ids: List[UUID]


class WebhookTestResponse(BaseModel):
    success: bool
    message: str
    status: Optional[int] = None
    response: Optional[str] = None
    error: Optional[str] = None
    delivery_id: Optional[UUID] = None


class ProcessRetriesResponse(BaseModel):
    claimed: int
    queued: int
