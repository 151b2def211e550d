from app.models.base import Base
from app.models.calculated_column import CalculatedColumn
from app.models.calculated_result import CalculatedResult
from app.models.webhook import Webhook
from app.models.webhook_delivery import WebhookDelivery

# Import event listeners to register them
from app.models import listeners  # noqa: F401

__all__ = [
    "Base",
    "CalculatedColumn",
    "CalculatedResult",
    "Webhook",
    "WebhookDelivery",
]
