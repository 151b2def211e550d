"""Time-bounded cache of calculated-column results, backed by ``calculated_results``."""

from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Mapping, Optional, Sequence
from uuid import UUID

from app.models.calculated_column import CalculatedColumn
from app.models.calculated_result import CalculatedResult
from app.repositories.calculated_result_repository import CalculatedResultRepository

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def expiry_for(cache_duration: Optional[int], now: datetime) -> Optional[datetime]:
    """``now + cache_duration`` seconds; ``None`` (never expires) when unset."""
    if cache_duration is None:
        return None
    return now + timedelta(seconds=cache_duration)


class ResultCache:
    """Read/write cached results; expiry is judged against the injected clock."""

    def __init__(
        self, result_repo: CalculatedResultRepository, clock: Clock = utcnow
    ) -> None:
        self._repo = result_repo
        self._clock = clock

    def now(self) -> datetime:
        return self._clock()

    async def lookup(self, column_id: UUID, lead_id: str) -> Optional[CalculatedResult]:
        return await self._repo.get_valid(column_id, lead_id, self._clock())

    async def lookup_many(
        self, column_id: UUID, lead_ids: Sequence[str]
    ) -> Dict[str, CalculatedResult]:
        return await self._repo.get_valid_many(column_id, lead_ids, self._clock())

    async def store(
        self, column: CalculatedColumn, lead_id: str, value: Any
    ) -> Dict[str, Any]:
        """Upsert one result and return the row values that were written."""
        rows = await self.store_many(column, {lead_id: value})
        return rows[0]

    async def store_many(
        self, column: CalculatedColumn, values: Mapping[str, Any]
    ) -> list:
        now = self._clock()
        expires_at = expiry_for(column.cache_duration, now)
        rows = [
            {
                "column_id": column.id,
                "lead_id": lead_id,
                "result_value": value,
                "computed_at": now,
                "expires_at": expires_at,
            }
            for lead_id, value in values.items()
        ]
        await self._repo.upsert_many(rows)
        return rows

    async def invalidate(self, column_id: UUID) -> int:
        return await self._repo.delete_for_column(column_id)

    async def sweep_expired(self) -> int:
        return await self._repo.delete_expired(self._clock())

    async def values_for_lead(self, owner_id: str, lead_id: str) -> list:
        return await self._repo.values_for_lead(owner_id, lead_id, self._clock())
