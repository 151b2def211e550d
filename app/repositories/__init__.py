"""Repository layer: all database access goes through here.

Repositories encapsulate SQLAlchemy queries so that the service layer
only contains business logic.
"""

from app.repositories.calculated_column_repository import CalculatedColumnRepository
from app.repositories.calculated_result_repository import CalculatedResultRepository
from app.repositories.webhook_repository import WebhookRepository
from app.repositories.webhook_delivery_repository import WebhookDeliveryRepository

__all__ = [
    "CalculatedColumnRepository",
    "CalculatedResultRepository",
    "WebhookRepository",
    "WebhookDeliveryRepository",
]
