"""Closed catalogue of functions callable from formulas.

Every function is pure apart from ``now``/``today``.  Bad-but-harmless
input (an unparsable date, an out-of-range ``substring``) produces a
sentinel (``None`` or ``""``) instead of raising, so a single odd lead
never poisons a batch evaluation.  Only arity is enforced strictly.
"""

import calendar
import math
import re
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from decimal import ROUND_HALF_UP, Decimal, localcontext
from types import MappingProxyType
from typing import Any, Callable, Dict, Mapping, Optional

from app.core.exceptions import ArgumentError
from app.formula.coercion import (
    flatten,
    is_number,
    is_truthy,
    loose_equals,
    normalize_number,
    numbers_in,
    to_datetime,
    to_iso,
    to_number,
    to_text,
)


@dataclass(frozen=True)
class FormulaFunction:
    name: str
    impl: Callable[..., Any]
    min_args: int
    max_args: Optional[int]  # None means variadic
    category: str
    signature: str
    description: str

    def check_arity(self, count: int) -> None:
        if count < self.min_args or (self.max_args is not None and count > self.max_args):
            raise ArgumentError(
                f"{self.name}() expects {self.expected_arity()} argument(s), got {count}"
            )

    def expected_arity(self) -> str:
        if self.max_args is None:
            return f"at least {self.min_args}"
        if self.min_args == self.max_args:
            return str(self.min_args)
        return f"{self.min_args} to {self.max_args}"


# ---------------------------------------------------------------------------
# String
# ---------------------------------------------------------------------------


def _concat(*values: Any) -> str:
    return "".join(to_text(v) for v in flatten(values))


def _upper(value: Any) -> str:
    return to_text(value).upper()


def _lower(value: Any) -> str:
    return to_text(value).lower()


def _trim(value: Any) -> str:
    return to_text(value).strip()


def _substring(value: Any, start: Any, length: Any = None) -> str:
    text = to_text(value)
    offset = to_number(start)
    if offset is None:
        return ""
    offset = min(max(int(offset), 0), len(text))
    if length is None:
        return text[offset:]
    count = to_number(length)
    if count is None or count <= 0:
        return ""
    return text[offset : offset + int(count)]


def _length(value: Any) -> int:
    if isinstance(value, (list, tuple, dict)):
        return len(value)
    return len(to_text(value))


def _contains(haystack: Any, needle: Any) -> bool:
    if haystack is None:
        return False
    if isinstance(haystack, (list, tuple)):
        return any(loose_equals(item, needle) for item in haystack)
    return to_text(needle) in to_text(haystack)


def _left(value: Any, count: Any) -> str:
    n = to_number(count)
    if n is None or n <= 0:
        return ""
    return to_text(value)[: int(n)]


def _right(value: Any, count: Any) -> str:
    n = to_number(count)
    if n is None or n <= 0:
        return ""
    return to_text(value)[-int(n) :]


def _replace(value: Any, search: Any, replacement: Any) -> str:
    text, old = to_text(value), to_text(search)
    if not old:
        return text
    return text.replace(old, to_text(replacement))


# ---------------------------------------------------------------------------
# Numeric
# ---------------------------------------------------------------------------


def _round(value: Any, decimals: Any = 0) -> Any:
    number = to_number(value)
    if number is None:
        return None
    places = to_number(decimals)
    places = 0 if places is None else max(min(int(places), 10), -10)
    exact = Decimal(str(number))
    with localcontext() as ctx:
        # quantize needs every integer digit plus the requested places
        ctx.prec = max(ctx.prec, exact.adjusted() + places + 2)
        rounded = exact.quantize(Decimal(1).scaleb(-places), rounding=ROUND_HALF_UP)
    if isinstance(number, int):
        return int(rounded)
    return normalize_number(float(rounded))


def _abs(value: Any) -> Any:
    number = to_number(value)
    return None if number is None else abs(number)


def _min(*values: Any) -> Any:
    numbers = numbers_in(values)
    return min(numbers) if numbers else None


def _max(*values: Any) -> Any:
    numbers = numbers_in(values)
    return max(numbers) if numbers else None


def _sum(*values: Any) -> Any:
    return normalize_number(math.fsum(numbers_in(values)))


def _avg(*values: Any) -> Any:
    numbers = numbers_in(values)
    if not numbers:
        return 0
    return normalize_number(math.fsum(numbers) / len(numbers))


def _count(*values: Any) -> int:
    return sum(1 for v in flatten(values) if v is not None and v != "")


# ---------------------------------------------------------------------------
# Logical
# ---------------------------------------------------------------------------


def _and(*values: Any) -> bool:
    return all(is_truthy(v) for v in values)


def _or(*values: Any) -> bool:
    return any(is_truthy(v) for v in values)


def _not(value: Any) -> bool:
    return not is_truthy(value)


def _if(condition: Any, when_true: Any, when_false: Any = None) -> Any:
    return when_true if is_truthy(condition) else when_false


def _is_empty(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return value.strip() == ""
    if isinstance(value, (list, tuple, dict)):
        return len(value) == 0
    return False


def _coalesce(*values: Any) -> Any:
    for value in values:
        if value is not None and value != "":
            return value
    return None


# ---------------------------------------------------------------------------
# Date
# ---------------------------------------------------------------------------

_DATE_TOKEN_RE = re.compile(r"YYYY|YY|MM|DD|HH|mm|ss")
_UNIT_SECONDS = {
    "seconds": 1,
    "minutes": 60,
    "hours": 3600,
    "days": 86400,
    "weeks": 604800,
}


def _unit(value: Any) -> str:
    unit = to_text(value).strip().lower() or "days"
    return unit if unit.endswith("s") else unit + "s"


def _now() -> str:
    return to_iso(datetime.now(timezone.utc))


def _today() -> str:
    return datetime.now(timezone.utc).date().isoformat()


def _days_between(start: Any, end: Any) -> Optional[int]:
    first, second = to_datetime(start), to_datetime(end)
    if first is None or second is None:
        return None
    return math.floor((second - first).total_seconds() / 86400)


def _format_date(value: Any, pattern: Any = "YYYY-MM-DD") -> Optional[str]:
    moment = to_datetime(value)
    if moment is None:
        return None
    parts = {
        "YYYY": f"{moment.year:04d}",
        "YY": f"{moment.year % 100:02d}",
        "MM": f"{moment.month:02d}",
        "DD": f"{moment.day:02d}",
        "HH": f"{moment.hour:02d}",
        "mm": f"{moment.minute:02d}",
        "ss": f"{moment.second:02d}",
    }
    return _DATE_TOKEN_RE.sub(lambda m: parts[m.group(0)], to_text(pattern))


def _year(value: Any) -> Optional[int]:
    moment = to_datetime(value)
    return None if moment is None else moment.year


def _month(value: Any) -> Optional[int]:
    moment = to_datetime(value)
    return None if moment is None else moment.month


def _day(value: Any) -> Optional[int]:
    moment = to_datetime(value)
    return None if moment is None else moment.day


def _add_months(moment: datetime, months: int) -> datetime:
    index = moment.month - 1 + months
    year, month = moment.year + index // 12, index % 12 + 1
    if not 1 <= year <= 9999:
        raise OverflowError("date out of range")
    day = min(moment.day, calendar.monthrange(year, month)[1])
    return moment.replace(year=year, month=month, day=day)


def _date_add(value: Any, amount: Any, unit: Any = "days") -> Optional[str]:
    moment, count = to_datetime(value), to_number(amount)
    if moment is None or count is None:
        return None
    unit_name = _unit(unit)
    try:
        if unit_name == "months":
            shifted = _add_months(moment, int(count))
        elif unit_name == "years":
            shifted = _add_months(moment, int(count) * 12)
        elif unit_name in _UNIT_SECONDS:
            shifted = moment + timedelta(seconds=count * _UNIT_SECONDS[unit_name])
        else:
            return None
    except OverflowError:
        return None
    return to_iso(shifted)


def _date_diff(start: Any, end: Any, unit: Any = "days") -> Optional[int]:
    first, second = to_datetime(start), to_datetime(end)
    if first is None or second is None:
        return None
    unit_name = _unit(unit)
    if unit_name == "months":
        months = (second.year - first.year) * 12 + second.month - first.month
        if months > 0 and second.day < first.day:
            months -= 1
        elif months < 0 and second.day > first.day:
            months += 1
        return months
    if unit_name == "years":
        return int(_date_diff(start, end, "months") / 12)
    if unit_name not in _UNIT_SECONDS:
        return None
    return math.floor((second - first).total_seconds() / _UNIT_SECONDS[unit_name])


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------


def _fn(name, impl, min_args, max_args, category, signature, description):
    return FormulaFunction(name, impl, min_args, max_args, category, signature, description)


_CATALOGUE = (
    _fn("concat", _concat, 1, None, "string", "concat(value, ...)", "Join values as text"),
    _fn("upper", _upper, 1, 1, "string", "upper(text)", "Uppercase text"),
    _fn("lower", _lower, 1, 1, "string", "lower(text)", "Lowercase text"),
    _fn("trim", _trim, 1, 1, "string", "trim(text)", "Strip surrounding whitespace"),
    _fn("substring", _substring, 2, 3, "string", "substring(text, start, length?)",
        "Characters from a zero-based start offset"),
    _fn("length", _length, 1, 1, "string", "length(value)", "Length of text or list"),
    _fn("len", _length, 1, 1, "string", "len(value)", "Alias of length"),
    _fn("contains", _contains, 2, 2, "string", "contains(haystack, needle)",
        "Substring or list membership test"),
    _fn("left", _left, 2, 2, "string", "left(text, count)", "First characters of text"),
    _fn("right", _right, 2, 2, "string", "right(text, count)", "Last characters of text"),
    _fn("replace", _replace, 3, 3, "string", "replace(text, search, replacement)",
        "Replace every literal occurrence"),
    _fn("round", _round, 1, 2, "numeric", "round(number, decimals?)", "Round half up"),
    _fn("abs", _abs, 1, 1, "numeric", "abs(number)", "Absolute value"),
    _fn("min", _min, 1, None, "numeric", "min(number, ...)", "Smallest number"),
    _fn("max", _max, 1, None, "numeric", "max(number, ...)", "Largest number"),
    _fn("sum", _sum, 1, None, "numeric", "sum(number, ...)", "Total of numbers"),
    _fn("avg", _avg, 1, None, "numeric", "avg(number, ...)", "Arithmetic mean"),
    _fn("count", _count, 1, None, "numeric", "count(value, ...)", "Number of non-blank values"),
    _fn("and", _and, 1, None, "logical", "and(value, ...)", "True when every value is truthy"),
    _fn("or", _or, 1, None, "logical", "or(value, ...)", "True when any value is truthy"),
    _fn("not", _not, 1, 1, "logical", "not(value)", "Logical negation"),
    _fn("if", _if, 2, 3, "logical", "if(condition, then, else?)", "Pick a value by condition"),
    _fn("isEmpty", _is_empty, 1, 1, "logical", "isEmpty(value)", "True for null or blank"),
    _fn("isNumber", is_number, 1, 1, "logical", "isNumber(value)", "True for a finite number"),
    _fn("coalesce", _coalesce, 1, None, "logical", "coalesce(value, ...)",
        "First non-blank value"),
    _fn("now", _now, 0, 0, "date", "now()", "Current UTC timestamp"),
    _fn("today", _today, 0, 0, "date", "today()", "Current UTC date"),
    _fn("daysBetween", _days_between, 2, 2, "date", "daysBetween(start, end)",
        "Whole days from start to end"),
    _fn("formatDate", _format_date, 1, 2, "date", "formatDate(date, pattern?)",
        "Format with YYYY, YY, MM, DD, HH, mm, ss tokens"),
    _fn("year", _year, 1, 1, "date", "year(date)", "Calendar year"),
    _fn("month", _month, 1, 1, "date", "month(date)", "Month number 1-12"),
    _fn("day", _day, 1, 1, "date", "day(date)", "Day of month"),
    _fn("dateAdd", _date_add, 2, 3, "date", "dateAdd(date, amount, unit?)",
        "Shift a date by seconds, minutes, hours, days, weeks, months or years"),
    _fn("dateDiff", _date_diff, 2, 3, "date", "dateDiff(start, end, unit?)",
        "Whole units from start to end"),
)

FUNCTIONS: Mapping[str, FormulaFunction] = MappingProxyType(
    {fn.name.lower(): fn for fn in _CATALOGUE}
)


def get_function(name: str) -> Optional[FormulaFunction]:
    """Case-insensitive lookup into the catalogue."""
    return FUNCTIONS.get(name.lower())


def describe_functions() -> Dict[str, list]:
    """Catalogue grouped by category, for the functions listing endpoint."""
    grouped: Dict[str, list] = {}
    for fn in _CATALOGUE:
        grouped.setdefault(fn.category, []).append(
            {
                "name": fn.name,
                "signature": fn.signature,
                "description": fn.description,
                "min_args": fn.min_args,
                "max_args": fn.max_args,
            }
        )
    return grouped
