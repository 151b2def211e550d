import logging
from typing import Any, Dict, List
from uuid import UUID

from sqlalchemy.exc import IntegrityError

from app.core.exceptions import (
    CalculatedColumnNotFoundError,
    DuplicateColumnNameError,
    InvalidFormulaError,
)
from app.formula import validate
from app.models.calculated_column import CalculatedColumn
from app.repositories.calculated_column_repository import CalculatedColumnRepository
from app.schemas.calculated_column import CalculatedColumnCreate, CalculatedColumnUpdate
from app.services.result_cache import ResultCache

logger = logging.getLogger(__name__)

# Changing any of these makes previously cached results stale
_RESULT_SHAPING_FIELDS = ("formula", "formula_type", "result_type", "cache_duration")


class CalculatedColumnService:
    """CRUD for calculated columns plus their cache maintenance.

    Every mutation that can change a column's results deletes its cached
    rows inside the same transaction as the mutation itself.
    """

    def __init__(
        self, column_repo: CalculatedColumnRepository, result_cache: ResultCache
    ) -> None:
        self._columns = column_repo
        self._cache = result_cache

    @staticmethod
    def _ensure_valid(formula: str) -> None:
        outcome = validate(formula)
        if not outcome.valid:
            raise InvalidFormulaError(outcome.error or "Invalid formula")

    async def list_columns(
        self, owner_id: str, active_only: bool = True
    ) -> List[CalculatedColumn]:
        return await self._columns.list_for_owner(owner_id, active_only=active_only)

    async def get_column(self, owner_id: str, column_id: UUID) -> CalculatedColumn:
        column = await self._columns.get_by_id(column_id, owner_id=owner_id)
        if column is None:
            raise CalculatedColumnNotFoundError()
        return column

    async def create_column(
        self, owner_id: str, data: CalculatedColumnCreate
    ) -> CalculatedColumn:
        self._ensure_valid(data.formula)
        if await self._columns.get_by_name(owner_id, data.column_name):
            raise DuplicateColumnNameError(
                f"A calculated column named '{data.column_name}' already exists"
            )
        column = await self._columns.create(
            owner_id=owner_id,
            column_name=data.column_name,
            formula=data.formula,
            formula_type=data.formula_type.value,
            result_type=data.result_type.value,
            is_active=data.is_active,
            cache_duration=data.cache_duration,
        )
        await self._commit_unique(data.column_name)
        logger.info("Created calculated column %s (%s)", column.id, column.column_name)
        return column

    async def update_column(
        self, owner_id: str, column_id: UUID, data: CalculatedColumnUpdate
    ) -> CalculatedColumn:
        column = await self.get_column(owner_id, column_id)
        changes: Dict[str, Any] = data.model_dump(exclude_unset=True, mode="json")

        if "formula" in changes:
            self._ensure_valid(changes["formula"])
        new_name = changes.get("column_name")
        if new_name and new_name != column.column_name:
            if await self._columns.get_by_name(owner_id, new_name):
                raise DuplicateColumnNameError(
                    f"A calculated column named '{new_name}' already exists"
                )

        stale = any(
            field in changes and changes[field] != getattr(column, field)
            for field in _RESULT_SHAPING_FIELDS
        )
        for field, value in changes.items():
            setattr(column, field, value)
        if stale:
            deleted = await self._cache.invalidate(column.id)
            logger.info(
                "Invalidated %d cached result(s) for column %s", deleted, column.id
            )
        await self._commit_unique(column.column_name)
        return column

    async def delete_column(self, owner_id: str, column_id: UUID) -> None:
        column = await self.get_column(owner_id, column_id)
        await self._cache.invalidate(column.id)
        await self._columns.delete(column)
        await self._columns.commit()

    async def clear_column_cache(self, owner_id: str, column_id: UUID) -> int:
        column = await self.get_column(owner_id, column_id)
        deleted = await self._cache.invalidate(column.id)
        await self._columns.commit()
        return deleted

    async def clear_expired_cache(self) -> int:
        deleted = await self._cache.sweep_expired()
        await self._columns.commit()
        if deleted:
            logger.info("Swept %d expired calculated result(s)", deleted)
        return deleted

    async def get_lead_values(self, owner_id: str, lead_id: str) -> Dict[str, Any]:
        """Cached values of the owner's active columns for one lead."""
        rows = await self._cache.values_for_lead(owner_id, lead_id)
        return dict(rows)

    async def _commit_unique(self, column_name: str) -> None:
        try:
            await self._columns.commit()
        except IntegrityError as exc:
            await self._columns.rollback()
            if "uq_calculated_columns_owner_name" not in str(exc.orig):
                raise
            raise DuplicateColumnNameError(
                f"A calculated column named '{column_name}' already exists"
            ) from exc
