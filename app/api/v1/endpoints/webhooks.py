from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Request, Response

from app.api.deps import (
    get_current_user_id,
    get_webhook_dispatcher,
    get_webhook_service,
)
from app.core.config import settings
from app.core.constants import DEFAULT_DELIVERY_HISTORY_LIMIT, MAX_DELIVERY_HISTORY_LIMIT
from app.core.rate_limit import limiter
from app.schemas.webhook import (
    ProcessRetriesResponse,
    WebhookCreate,
    WebhookDeliveryOut,
    WebhookOut,
    WebhookStatsOut,
    WebhookTestResponse,
    WebhookTriggerRequest,
    WebhookTriggerResponse,
    WebhookUpdate,
    WebhookWithSecretOut,
)
from app.services.webhook_dispatcher import WebhookDispatcher
from app.services.webhook_service import WebhookService

router = APIRouter(prefix="/webhooks", tags=["Webhooks"])


@router.get("", response_model=List[WebhookOut])
async def list_webhooks(
    owner_id: str = Depends(get_current_user_id),
    service: WebhookService = Depends(get_webhook_service),
):
    return await service.list_webhooks(owner_id)


@router.post("", response_model=WebhookWithSecretOut, status_code=201)
async def create_webhook(
    body: WebhookCreate,
    owner_id: str = Depends(get_current_user_id),
    service: WebhookService = Depends(get_webhook_service),
):
    """Register a webhook; the generated secret is returned only here."""
    return await service.create_webhook(owner_id, body)


@router.post("/trigger", response_model=WebhookTriggerResponse, status_code=202)
@limiter.limit(settings.RATE_LIMIT_TRIGGER)
async def trigger_event(
    request: Request,
    body: WebhookTriggerRequest,
    owner_id: str = Depends(get_current_user_id),
    dispatcher: WebhookDispatcher = Depends(get_webhook_dispatcher),
) -> WebhookTriggerResponse:
    """Fan an event out to the caller's subscribed webhooks.

    Returns once delivery records exist; HTTP delivery happens in the
    background and its outcome is visible in the delivery history.
    """
    result = await dispatcher.trigger(body.event_type.value, body.payload, owner_id=owner_id)
    return WebhookTriggerResponse(
        message=f"Triggered {result.triggered} webhook(s)",
        triggered=result.triggered,
        delivery_ids=result.delivery_ids,
    )


@router.post("/deliveries/process-retries", response_model=ProcessRetriesResponse)
async def process_retries(
    owner_id: str = Depends(get_current_user_id),
    dispatcher: WebhookDispatcher = Depends(get_webhook_dispatcher),
) -> ProcessRetriesResponse:
    """Queue every delivery whose retry is due (all owners)."""
    counts = await dispatcher.process_due_retries()
    return ProcessRetriesResponse(**counts)


@router.post("/deliveries/{delivery_id}/retry", response_model=WebhookDeliveryOut)
async def retry_delivery(
    delivery_id: UUID,
    owner_id: str = Depends(get_current_user_id),
    dispatcher: WebhookDispatcher = Depends(get_webhook_dispatcher),
):
    return await dispatcher.redeliver(owner_id, delivery_id)


@router.get("/{webhook_id}", response_model=WebhookOut)
async def get_webhook(
    webhook_id: UUID,
    owner_id: str = Depends(get_current_user_id),
    service: WebhookService = Depends(get_webhook_service),
):
    return await service.get_webhook(owner_id, webhook_id)


@router.patch("/{webhook_id}", response_model=WebhookOut)
async def update_webhook(
    webhook_id: UUID,
    body: WebhookUpdate,
    owner_id: str = Depends(get_current_user_id),
    service: WebhookService = Depends(get_webhook_service),
):
    """Partial update.  ``secret_key`` cannot be changed here."""
    return await service.update_webhook(owner_id, webhook_id, body)


@router.delete("/{webhook_id}", status_code=204)
async def delete_webhook(
    webhook_id: UUID,
    owner_id: str = Depends(get_current_user_id),
    service: WebhookService = Depends(get_webhook_service),
) -> Response:
    await service.delete_webhook(owner_id, webhook_id)
    return Response(status_code=204)


@router.post("/{webhook_id}/rotate-secret", response_model=WebhookWithSecretOut)
async def rotate_secret(
    webhook_id: UUID,
    owner_id: str = Depends(get_current_user_id),
    service: WebhookService = Depends(get_webhook_service),
):
    return await service.rotate_secret(owner_id, webhook_id)


@router.post("/{webhook_id}/test", response_model=WebhookTestResponse)
async def test_webhook(
    webhook_id: UUID,
    owner_id: str = Depends(get_current_user_id),
    dispatcher: WebhookDispatcher = Depends(get_webhook_dispatcher),
) -> WebhookTestResponse:
    """Send a synthetic ``lead.created`` event and report the outcome."""
    return WebhookTestResponse(**await dispatcher.send_test(owner_id, webhook_id))


@router.get("/{webhook_id}/deliveries", response_model=List[WebhookDeliveryOut])
async def list_deliveries(
    webhook_id: UUID,
    limit: int = Query(
        DEFAULT_DELIVERY_HISTORY_LIMIT, ge=1, le=MAX_DELIVERY_HISTORY_LIMIT
    ),
    owner_id: str = Depends(get_current_user_id),
    service: WebhookService = Depends(get_webhook_service),
):
    """Delivery history, newest first."""
    return await service.get_deliveries(owner_id, webhook_id, limit)


@router.get("/{webhook_id}/stats", response_model=WebhookStatsOut)
async def webhook_stats(
    webhook_id: UUID,
    owner_id: str = Depends(get_current_user_id),
    service: WebhookService = Depends(get_webhook_service),
) -> WebhookStatsOut:
    return WebhookStatsOut(**await service.get_stats(owner_id, webhook_id))
