from enum import Enum
from pydantic import BaseModel


class FormulaType(str, Enum):
    calculation = "calculation"
    ai_enrichment = "ai_enrichment"


class ResultType(str, Enum):
    text = "text"
    number = "number"
    boolean = "boolean"


class WebhookStatus(str, Enum):
    active = "active"
    inactive = "inactive"
    failed = "failed"


class DeliveryStatus(str, Enum):
    pending = "pending"
    success = "success"
    failed = "failed"
    retrying = "retrying"


class WebhookEventType(str, Enum):
    lead_created = "lead.created"
    lead_updated = "lead.updated"
    lead_deleted = "lead.deleted"
    lead_status_changed = "lead.status_changed"
    appointment_created = "appointment.created"
    appointment_updated = "appointment.updated"
    appointment_cancelled = "appointment.cancelled"
    file_uploaded = "file.uploaded"
    file_deleted = "file.deleted"


class SuccessResponse(BaseModel):
    """Generic success response base."""

    success: bool = True
