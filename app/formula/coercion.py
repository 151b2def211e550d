"""Value coercion rules shared by the evaluator and the function library.

Lead data arrives as loosely typed JSON (numbers stored as strings, dates
as ISO strings, missing fields as ``None``), so every operator and
function goes through these helpers instead of Python's own conversions.
"""

import json
import math
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any, Iterable, Iterator, List, Optional, Union

from app.core.exceptions import FormulaTypeError
from app.schemas.common import ResultType

Number = Union[int, float]


def to_number(value: Any) -> Optional[Number]:
    """Best-effort numeric conversion; ``None`` when *value* is not numeric."""
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return value if math.isfinite(value) else None
    if isinstance(value, Decimal):
        return normalize_number(float(value))
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        try:
            return int(text)
        except ValueError:
            pass
        try:
            number = float(text)
        except ValueError:
            return None
        return number if math.isfinite(number) else None
    return None


def normalize_number(value: Number) -> Number:
    """Collapse integral floats (``4.0``) to ``int`` so results stay tidy."""
    if isinstance(value, float) and math.isfinite(value) and value.is_integer():
        return int(value)
    return value


def is_number(value: Any) -> bool:
    return (
        isinstance(value, (int, float))
        and not isinstance(value, bool)
        and math.isfinite(value)
    )


def to_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float):
        return str(normalize_number(value))
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, (dict, list, tuple)):
        return json.dumps(value, default=str)
    return str(value)


def is_truthy(value: Any) -> bool:
    if value is None:
        return False
    if isinstance(value, str):
        return value != ""
    return bool(value)


def to_datetime(value: Any) -> Optional[datetime]:
    """Parse a date-ish value into an aware UTC datetime, or ``None``."""
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime(value.year, value.month, value.day)
    elif isinstance(value, str) and value.strip():
        text = value.strip()
        if text.endswith(("Z", "z")):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return None
    else:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def to_iso(value: datetime) -> str:
    return value.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace(
        "+00:00", "Z"
    )


def flatten(values: Iterable[Any]) -> Iterator[Any]:
    """Yield scalars, expanding list arguments one level at a time."""
    for value in values:
        if isinstance(value, (list, tuple)):
            yield from flatten(value)
        else:
            yield value


def numbers_in(values: Iterable[Any]) -> List[Number]:
    """Numeric values among *values*; booleans and blanks are skipped."""
    found: List[Number] = []
    for value in flatten(values):
        if isinstance(value, bool) or value is None:
            continue
        number = to_number(value)
        if number is not None:
            found.append(number)
    return found


def loose_equals(left: Any, right: Any) -> bool:
    """Equality used by ``==``/``!=``: numeric strings compare numerically."""
    if left is None or right is None:
        return left is None and right is None
    if isinstance(left, bool) or isinstance(right, bool):
        if isinstance(left, bool) and isinstance(right, bool):
            return left == right
        other = right if isinstance(left, bool) else left
        flag = left if isinstance(left, bool) else right
        number = to_number(other)
        return number is not None and number == int(flag)
    if isinstance(left, str) and isinstance(right, str):
        return left == right
    if is_number(left) or is_number(right):
        left_number, right_number = to_number(left), to_number(right)
        if left_number is None or right_number is None:
            return False
        return left_number == right_number
    return left == right


def describe(value: Any) -> str:
    """Short human description of a value for error messages."""
    if value is None:
        return "null"
    if isinstance(value, str):
        shown = value if len(value) <= 30 else value[:27] + "..."
        return f'text "{shown}"'
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, (int, float)):
        return f"number {value}"
    if isinstance(value, dict):
        return "object"
    if isinstance(value, (list, tuple)):
        return "list"
    return type(value).__name__


def coerce_result(value: Any, result_type: Union[ResultType, str]) -> Any:
    """Convert an evaluation result to the column's declared result type.

    ``None`` is kept as ``None`` for every type so the UI can render a
    blank cell.
    """
    kind = ResultType(result_type)
    if value is None:
        return None
    if kind is ResultType.text:
        return to_text(value)
    if kind is ResultType.boolean:
        return is_truthy(value)
    number = to_number(value)
    if number is None:
        raise FormulaTypeError(
            f"Result {describe(value)} cannot be stored in a number column"
        )
    return normalize_number(number)
