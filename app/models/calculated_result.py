from sqlalchemy import Column, DateTime, ForeignKey, Index, String
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from app.models.base import Base


class CalculatedResult(Base):
    """Cached value of one calculated column for one lead.

    A row is reusable while ``expires_at`` is ``NULL`` or in the future.
    Rows are overwritten on every fresh evaluation (last write wins).
    """

    __tablename__ = "calculated_results"
    column_id = Column(
        UUID(as_uuid=True),
        ForeignKey("calculated_columns.id", ondelete="CASCADE"),
        primary_key=True,
    )
    lead_id = Column(String(64), primary_key=True)
    result_value = Column(JSONB(none_as_null=True))
    computed_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    expires_at = Column(DateTime(timezone=True))

    column = relationship("CalculatedColumn", back_populates="results")

    __mapper_args__ = {"eager_defaults": True}

    __table_args__ = (
        Index("idx_calculated_results_lead", "lead_id"),
        Index("idx_calculated_results_expires_at", "expires_at"),
    )
