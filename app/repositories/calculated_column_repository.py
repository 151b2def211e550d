from typing import Any, List, Optional
from uuid import UUID

from sqlalchemy import select

from app.models.calculated_column import CalculatedColumn
from app.repositories.base import BaseRepository


class CalculatedColumnRepository(BaseRepository):
    """Encapsulates every SQL query that touches ``calculated_columns``."""

    async def get_by_id(
        self, column_id: UUID, owner_id: Optional[str] = None
    ) -> Optional[CalculatedColumn]:
        """Return a column by primary key, optionally scoped to its owner."""
        stmt = select(CalculatedColumn).where(CalculatedColumn.id == column_id)
        if owner_id is not None:
            stmt = stmt.where(CalculatedColumn.owner_id == owner_id)
        result = await self._db.execute(stmt)
        return result.scalar_one_or_none()

    async def get_by_name(
        self, owner_id: str, column_name: str
    ) -> Optional[CalculatedColumn]:
        result = await self._db.execute(
            select(CalculatedColumn).where(
                CalculatedColumn.owner_id == owner_id,
                CalculatedColumn.column_name == column_name,
            )
        )
        return result.scalar_one_or_none()

    async def list_for_owner(
        self, owner_id: str, active_only: bool = True
    ) -> List[CalculatedColumn]:
        """Return the owner's columns, newest first."""
        stmt = select(CalculatedColumn).where(CalculatedColumn.owner_id == owner_id)
        if active_only:
            stmt = stmt.where(CalculatedColumn.is_active.is_(True))
        stmt = stmt.order_by(CalculatedColumn.created_at.desc())
        result = await self._db.execute(stmt)
        return list(result.scalars().all())

    async def create(self, **kwargs: Any) -> CalculatedColumn:
        column = CalculatedColumn(**kwargs)
        self._db.add(column)
        return column

    async def delete(self, column: CalculatedColumn) -> None:
        await self._db.delete(column)
