from datetime import datetime, timezone

from sqlalchemy import event

from app.models.calculated_column import CalculatedColumn
from app.models.webhook import Webhook


# Auto updated_at
@event.listens_for(CalculatedColumn, "before_update")
@event.listens_for(Webhook, "before_update")
def update_timestamp(mapper, connection, target):
    target.updated_at = datetime.now(timezone.utc)
