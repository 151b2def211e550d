"""Calculated-column schemas (CRUD, evaluation, cached values)."""

import re
from datetime import datetime
from typing import Any, Dict, List, Optional
from uuid import UUID

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)
from typing_extensions import Self

from app.core.config import settings
from app.schemas.common import FormulaType, ResultType, SuccessResponse

_CAMEL_BOUNDARY = re.compile(r"(?<=[a-z0-9])(?=[A-Z])")
_NON_WORD = re.compile(r"[^a-z0-9]+")


def normalize_column_name(name: str) -> str:
    """``"Full Greeting"`` / ``"fullGreeting"`` -> ``"full_greeting"``."""
    snake = _CAMEL_BOUNDARY.sub("_", name.strip())
    snake = _NON_WORD.sub("_", snake.lower()).strip("_")
    if snake and snake[0].isdigit():
        snake = f"col_{snake}"
    return snake


def _normalized(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    normalized = normalize_column_name(value)
    if not normalized:
        raise ValueError("column_name must contain at least one letter or digit")
    return normalized


# ---------------------------------------------------------------------------
# Request schemas
# ---------------------------------------------------------------------------


class CalculatedColumnCreate(BaseModel):
    column_name: str = Field(..., min_length=1, max_length=100)
    formula: str = Field(..., min_length=1, max_length=10_000)
    formula_type: FormulaType = FormulaType.calculation
    result_type: ResultType = ResultType.text
    is_active: bool = True
    cache_duration: Optional[int] = Field(
        default=settings.CALCULATED_COLUMN_DEFAULT_CACHE_SECONDS, ge=0
    )

    @field_validator("column_name")
    @classmethod
    def normalize_name(cls, value: Optional[str]) -> Optional[str]:
        return _normalized(value)


class CalculatedColumnUpdate(BaseModel):
    """Partial update; only fields present in the body are applied.

    Sending ``"cache_duration": null`` makes results never expire.
    """

    column_name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    formula: Optional[str] = Field(default=None, min_length=1, max_length=10_000)
    formula_type: Optional[FormulaType] = None
    result_type: Optional[ResultType] = None
    is_active: Optional[bool] = None
    cache_duration: Optional[int] = Field(default=None, ge=0)

    @field_validator("column_name")
    @classmethod
    def normalize_name(cls, value: Optional[str]) -> Optional[str]:
        return _normalized(value)

    @model_validator(mode="after")
    def reject_null_required_fields(self) -> Self:
        for name in ("column_name", "formula", "formula_type", "result_type", "is_active"):
            if name in self.model_fields_set and getattr(self, name) is None:
                raise ValueError(f"{name} cannot be null")
        return self


class LeadInput(BaseModel):
    lead_id: str = Field(
        ..., min_length=1, max_length=64, validation_alias=AliasChoices("lead_id", "leadId", "id")
    )
    lead_data: Dict[str, Any] = Field(
        default_factory=dict, validation_alias=AliasChoices("lead_data", "leadData", "data")
    )


class ColumnEvaluateRequest(BaseModel):
    """Either a single lead (``leadId`` + ``leadData``) or a batch (``leads``)."""

    lead_id: Optional[str] = Field(
        default=None, min_length=1, max_length=64,
        validation_alias=AliasChoices("lead_id", "leadId"),
    )
    lead_data: Optional[Dict[str, Any]] = Field(
        default=None, validation_alias=AliasChoices("lead_data", "leadData")
    )
    leads: Optional[List[LeadInput]] = None
    force_refresh: bool = Field(
        default=False, validation_alias=AliasChoices("force_refresh", "forceRefresh")
    )

    @model_validator(mode="after")
    def single_or_batch(self) -> Self:
        if self.leads is not None:
            if len(self.leads) > settings.BATCH_EVALUATION_MAX_LEADS:
                raise ValueError(
                    f"At most {settings.BATCH_EVALUATION_MAX_LEADS} leads per request"
                )
            return self
        if self.lead_id is None or self.lead_data is None:
            raise ValueError("leadId and leadData are required")
        return self


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------


class CalculatedColumnOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    owner_id: str
    column_name: str
    formula: str
    formula_type: FormulaType
    result_type: ResultType
    is_active: bool
    cache_duration: Optional[int] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class ColumnEvaluateResponse(SuccessResponse):
    model_config = ConfigDict(populate_by_name=True)

    result: Any = None
    from_cache: bool = Field(..., alias="fromCache")
    computed_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None


class ColumnBatchEvaluateResponse(SuccessResponse):
    results: Dict[str, Any]


class CacheClearResponse(SuccessResponse):
    deleted: int


class LeadValuesResponse(BaseModel):
    lead_id: str
    values: Dict[str, Any]
