import uuid

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    text,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from app.core.constants import FORMULA_TYPE_CHECK_CLAUSE, RESULT_TYPE_CHECK_CLAUSE
from app.models.base import Base


class CalculatedColumn(Base):
    """User-defined derived column computed per lead from a formula.

    ``column_name`` is stored in snake_case and is unique per owner.
    ``cache_duration`` is the result TTL in seconds; ``NULL`` means cached
    results never expire on their own.
    """

    __tablename__ = "calculated_columns"
    id = Column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
        server_default=func.gen_random_uuid(),
    )
    owner_id = Column(String(255), nullable=False)
    column_name = Column(String(100), nullable=False)
    formula = Column(Text, nullable=False)
    formula_type = Column(String(20), nullable=False, server_default="calculation")
    result_type = Column(String(20), nullable=False, server_default="text")
    is_active = Column(Boolean, nullable=False, server_default=text("true"))
    cache_duration = Column(Integer)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    results = relationship(
        "CalculatedResult",
        back_populates="column",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    __mapper_args__ = {"eager_defaults": True}

    __table_args__ = (
        UniqueConstraint("owner_id", "column_name", name="uq_calculated_columns_owner_name"),
        Index("idx_calculated_columns_owner_active", "owner_id", "is_active"),
        CheckConstraint(FORMULA_TYPE_CHECK_CLAUSE, name="ck_formula_type"),
        CheckConstraint(RESULT_TYPE_CHECK_CLAUSE, name="ck_result_type"),
        CheckConstraint(
            "cache_duration IS NULL OR cache_duration >= 0",
            name="ck_cache_duration_non_negative",
        ),
    )
