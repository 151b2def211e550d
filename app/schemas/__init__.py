"""Pydantic schemas: request validation and response serialisation."""

from app.schemas.calculated_column import (
    CacheClearResponse,
    CalculatedColumnCreate,
    CalculatedColumnOut,
    CalculatedColumnUpdate,
    ColumnBatchEvaluateResponse,
    ColumnEvaluateRequest,
    ColumnEvaluateResponse,
    LeadInput,
    LeadValuesResponse,
)
from app.schemas.common import (
    DeliveryStatus,
    FormulaType,
    ResultType,
    SuccessResponse,
    WebhookEventType,
    WebhookStatus,
)
from app.schemas.formula import (
    FormulaEvaluateRequest,
    FormulaEvaluateResponse,
    FormulaValidateRequest,
    FormulaValidateResponse,
    FunctionCatalogueResponse,
)
from app.schemas.options import OptionOut, OptionValue
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

__all__ = [
    "CacheClearResponse",
    "CalculatedColumnCreate",
    "CalculatedColumnOut",
    "CalculatedColumnUpdate",
    "ColumnBatchEvaluateResponse",
    "ColumnEvaluateRequest",
    "ColumnEvaluateResponse",
    "DeliveryStatus",
    "FormulaEvaluateRequest",
    "FormulaEvaluateResponse",
    "FormulaType",
    "FormulaValidateRequest",
    "FormulaValidateResponse",
    "FunctionCatalogueResponse",
    "LeadInput",
    "LeadValuesResponse",
    "OptionOut",
    "OptionValue",
    "ProcessRetriesResponse",
    "ResultType",
    "SuccessResponse",
    "WebhookCreate",
    "WebhookDeliveryOut",
    "WebhookEventType",
    "WebhookOut",
    "WebhookStatsOut",
    "WebhookStatus",
    "WebhookTestResponse",
    "WebhookTriggerRequest",
    "WebhookTriggerResponse",
    "WebhookUpdate",
    "WebhookWithSecretOut",
]
