from typing import List, Union
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Request, Response

from app.api.deps import (
    get_calculated_column_service,
    get_column_evaluator,
    get_current_user_id,
)
from app.core.config import settings
from app.core.rate_limit import limiter
from app.schemas.calculated_column import (
    CacheClearResponse,
    CalculatedColumnCreate,
    CalculatedColumnOut,
    CalculatedColumnUpdate,
    ColumnBatchEvaluateResponse,
    ColumnEvaluateRequest,
    ColumnEvaluateResponse,
    LeadValuesResponse,
)
from app.services.calculated_column_service import CalculatedColumnService
from app.services.column_evaluation import ColumnEvaluator

router = APIRouter(prefix="/calculated-columns", tags=["Calculated Columns"])


@router.get("", response_model=List[CalculatedColumnOut])
async def list_columns(
    active_only: bool = Query(True),
    owner_id: str = Depends(get_current_user_id),
    service: CalculatedColumnService = Depends(get_calculated_column_service),
):
    """The caller's columns, newest first."""
    return await service.list_columns(owner_id, active_only=active_only)


@router.post("", response_model=CalculatedColumnOut, status_code=201)
async def create_column(
    body: CalculatedColumnCreate,
    owner_id: str = Depends(get_current_user_id),
    service: CalculatedColumnService = Depends(get_calculated_column_service),
):
    return await service.create_column(owner_id, body)


@router.delete("/cache/expired", response_model=CacheClearResponse)
async def clear_expired_cache(
    owner_id: str = Depends(get_current_user_id),
    service: CalculatedColumnService = Depends(get_calculated_column_service),
) -> CacheClearResponse:
    """Sweep every expired cached result (all owners)."""
    return CacheClearResponse(deleted=await service.clear_expired_cache())


@router.get("/leads/{lead_id}/values", response_model=LeadValuesResponse)
async def get_lead_values(
    lead_id: str,
    owner_id: str = Depends(get_current_user_id),
    service: CalculatedColumnService = Depends(get_calculated_column_service),
) -> LeadValuesResponse:
    values = await service.get_lead_values(owner_id, lead_id)
    return LeadValuesResponse(lead_id=lead_id, values=values)


@router.get("/{column_id}", response_model=CalculatedColumnOut)
async def get_column(
    column_id: UUID,
    owner_id: str = Depends(get_current_user_id),
    service: CalculatedColumnService = Depends(get_calculated_column_service),
):
    return await service.get_column(owner_id, column_id)


@router.patch("/{column_id}", response_model=CalculatedColumnOut)
async def update_column(
    column_id: UUID,
    body: CalculatedColumnUpdate,
    owner_id: str = Depends(get_current_user_id),
    service: CalculatedColumnService = Depends(get_calculated_column_service),
):
    """Partial update; cached results are dropped when the formula changes."""
    return await service.update_column(owner_id, column_id, body)


@router.delete("/{column_id}", status_code=204)
async def delete_column(
    column_id: UUID,
    owner_id: str = Depends(get_current_user_id),
    service: CalculatedColumnService = Depends(get_calculated_column_service),
) -> Response:
    await service.delete_column(owner_id, column_id)
    return Response(status_code=204)


@router.post(
    "/{column_id}/evaluate",
    response_model=Union[ColumnEvaluateResponse, ColumnBatchEvaluateResponse],
)
@limiter.limit(settings.RATE_LIMIT_EVALUATE)
async def evaluate_column(
    request: Request,
    column_id: UUID,
    body: ColumnEvaluateRequest,
    owner_id: str = Depends(get_current_user_id),
    service: CalculatedColumnService = Depends(get_calculated_column_service),
    evaluator: ColumnEvaluator = Depends(get_column_evaluator),
):
    """Evaluate for one lead (``leadId`` + ``leadData``) or a batch (``leads``).

    Batch evaluation omits leads whose formula evaluation failed.
    """
    await service.get_column(owner_id, column_id)
    if body.leads is not None:
        results = await evaluator.evaluate_for_leads(
            column_id,
            [(lead.lead_id, lead.lead_data) for lead in body.leads],
            force_refresh=body.force_refresh,
        )
        return ColumnBatchEvaluateResponse(results=results)

    outcome = await evaluator.evaluate_for_lead(
        column_id, body.lead_id, body.lead_data, force_refresh=body.force_refresh
    )
    return ColumnEvaluateResponse(
        result=outcome.value,
        from_cache=outcome.from_cache,
        computed_at=outcome.computed_at,
        expires_at=outcome.expires_at,
    )


@router.delete("/{column_id}/cache", response_model=CacheClearResponse)
async def clear_column_cache(
    column_id: UUID,
    owner_id: str = Depends(get_current_user_id),
    service: CalculatedColumnService = Depends(get_calculated_column_service),
) -> CacheClearResponse:
    return CacheClearResponse(deleted=await service.clear_column_cache(owner_id, column_id))
