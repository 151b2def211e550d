import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Mapping, Optional, Sequence, Tuple
from uuid import UUID

from app.core.exceptions import CalculatedColumnNotFoundError, FormulaError
from app.formula import FormulaEvaluator, parse
from app.formula.coercion import coerce_result
from app.models.calculated_column import CalculatedColumn
from app.repositories.calculated_column_repository import CalculatedColumnRepository
from app.services.result_cache import ResultCache

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EvaluationResult:
    value: Any
    from_cache: bool
    computed_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None


class ColumnEvaluator:
    """Evaluates calculated columns for leads through the result cache.

    A failed evaluation is never cached, so a lead whose data is fixed
    later evaluates cleanly on the next call.
    """

    def __init__(
        self,
        column_repo: CalculatedColumnRepository,
        result_cache: ResultCache,
        evaluator: Optional[FormulaEvaluator] = None,
    ) -> None:
        self._columns = column_repo
        self._cache = result_cache
        self._evaluator = evaluator or FormulaEvaluator()

    async def _load_column(self, column_id: UUID) -> CalculatedColumn:
        column = await self._columns.get_by_id(column_id)
        if column is None:
            raise CalculatedColumnNotFoundError()
        return column

    def compute(self, column: CalculatedColumn, lead_data: Mapping[str, Any]) -> Any:
        """Evaluate *column* against one lead and coerce to its result type."""
        value = self._evaluator.evaluate(parse(column.formula), lead_data)
        return coerce_result(value, column.result_type)

    async def evaluate_for_lead(
        self,
        column_id: UUID,
        lead_id: str,
        lead_data: Mapping[str, Any],
        force_refresh: bool = False,
    ) -> EvaluationResult:
        """Return the column value for one lead, from cache when still valid.

        Raises :class:`CalculatedColumnNotFoundError` on a cache miss for an
        unknown column and any :class:`FormulaError` from evaluation.
        """
        if not force_refresh:
            cached = await self._cache.lookup(column_id, lead_id)
            if cached is not None:
                return EvaluationResult(
                    value=cached.result_value,
                    from_cache=True,
                    computed_at=cached.computed_at,
                    expires_at=cached.expires_at,
                )

        column = await self._load_column(column_id)
        value = self.compute(column, lead_data)

        row = await self._cache.store(column, lead_id, value)
        await self._columns.commit()
        return EvaluationResult(
            value=value,
            from_cache=False,
            computed_at=row["computed_at"],
            expires_at=row["expires_at"],
        )

    async def evaluate_for_leads(
        self,
        column_id: UUID,
        leads: Sequence[Tuple[str, Mapping[str, Any]]],
        force_refresh: bool = False,
    ) -> Dict[str, Any]:
        """Evaluate many ``(lead_id, lead_data)`` pairs independently.

        Leads whose evaluation fails are logged and left out of the map.
        Cache reads and writes are one query each for the whole batch.
        """
        lead_data = dict(leads)
        if not lead_data:
            return {}

        results: Dict[str, Any] = {}
        if not force_refresh:
            cached = await self._cache.lookup_many(column_id, list(lead_data))
            results.update({lead_id: row.result_value for lead_id, row in cached.items()})

        misses = [lead_id for lead_id in lead_data if lead_id not in results]
        if misses:
            column = await self._load_column(column_id)
            fresh: Dict[str, Any] = {}
            for lead_id in misses:
                try:
                    fresh[lead_id] = self.compute(column, lead_data[lead_id])
                except FormulaError as exc:
                    logger.warning(
                        "Calculated column %s failed for lead %s: %s",
                        column_id,
                        lead_id,
                        exc.detail,
                    )
            if fresh:
                await self._cache.store_many(column, fresh)
                await self._columns.commit()
            results.update(fresh)

        return {lead_id: results[lead_id] for lead_id in lead_data if lead_id in results}
