from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple
from uuid import UUID

from sqlalchemy import delete, or_, select
from sqlalchemy.dialects.postgresql import insert

from app.models.calculated_column import CalculatedColumn
from app.models.calculated_result import CalculatedResult
from app.repositories.base import BaseRepository


def _still_valid(now: datetime):
    return or_(CalculatedResult.expires_at.is_(None), CalculatedResult.expires_at > now)


class CalculatedResultRepository(BaseRepository):
    """Cached per-lead results of calculated columns.

    All reads take an explicit ``now`` so callers (and tests) control the
    clock that decides expiry.
    """

    async def get_valid(
        self, column_id: UUID, lead_id: str, now: datetime
    ) -> Optional[CalculatedResult]:
        """Return the cached row for the pair if it has not expired."""
        result = await self._db.execute(
            select(CalculatedResult).where(
                CalculatedResult.column_id == column_id,
                CalculatedResult.lead_id == lead_id,
                _still_valid(now),
            )
        )
        return result.scalar_one_or_none()

    async def get_valid_many(
        self, column_id: UUID, lead_ids: Sequence[str], now: datetime
    ) -> Dict[str, CalculatedResult]:
        """Return unexpired rows for many leads in one query, keyed by lead."""
        if not lead_ids:
            return {}
        result = await self._db.execute(
            select(CalculatedResult).where(
                CalculatedResult.column_id == column_id,
                CalculatedResult.lead_id.in_(list(lead_ids)),
                _still_valid(now),
            )
        )
        return {row.lead_id: row for row in result.scalars().all()}

    async def upsert_many(self, rows: Iterable[Dict[str, Any]]) -> int:
        """Insert or overwrite result rows keyed by ``(column_id, lead_id)``.

        Concurrent writers for the same pair simply overwrite each other;
        the value is a pure function of formula and lead data.
        """
        values = list(rows)
        if not values:
            return 0
        stmt = insert(CalculatedResult).values(values)
        stmt = stmt.on_conflict_do_update(
            index_elements=[CalculatedResult.column_id, CalculatedResult.lead_id],
            set_={
                "result_value": stmt.excluded.result_value,
                "computed_at": stmt.excluded.computed_at,
                "expires_at": stmt.excluded.expires_at,
            },
        )
        await self._db.execute(stmt)
        return len(values)

    async def delete_for_column(self, column_id: UUID) -> int:
        """Drop every cached result of a column; returns the row count."""
        result = await self._db.execute(
            delete(CalculatedResult).where(CalculatedResult.column_id == column_id)
        )
        return result.rowcount or 0

    async def delete_expired(self, now: datetime) -> int:
        result = await self._db.execute(
            delete(CalculatedResult).where(
                CalculatedResult.expires_at.is_not(None),
                CalculatedResult.expires_at <= now,
            )
        )
        return result.rowcount or 0

    async def values_for_lead(
        self, owner_id: str, lead_id: str, now: datetime
    ) -> List[Tuple[str, Any]]:
        """``(column_name, value)`` for the owner's active columns with a valid result."""
        result = await self._db.execute(
            select(CalculatedColumn.column_name, CalculatedResult.result_value)
            .join(CalculatedResult, CalculatedResult.column_id == CalculatedColumn.id)
            .where(
                CalculatedColumn.owner_id == owner_id,
                CalculatedColumn.is_active.is_(True),
                CalculatedResult.lead_id == lead_id,
                _still_valid(now),
            )
            .order_by(CalculatedColumn.column_name)
        )
        return [(row.column_name, row.result_value) for row in result.all()]
