from datetime import datetime, timezone
from decimal import Decimal

import pytest

from app.core.exceptions import FormulaTypeError
from app.formula.coercion import (
    coerce_result,
    is_truthy,
    loose_equals,
    to_datetime,
    to_iso,
    to_number,
    to_text,
)


class TestToNumber:
    @pytest.mark.parametrize(
        "value,expected",
        [
            (5, 5),
            (True, 1),
            (" 42 ", 42),
            ("2.5", 2.5),
            (Decimal("3.0"), 3),
            ("", None),
            ("abc", None),
            ("inf", None),
            (None, None),
            ([1], None),
        ],
    )
    def test_conversions(self, value, expected):
        assert to_number(value) == expected


class TestToText:
    @pytest.mark.parametrize(
        "value,expected",
        [(None, ""), (True, "true"), (3.0, "3"), (2.5, "2.5"), ([1, "a"], '[1, "a"]')],
    )
    def test_conversions(self, value, expected):
        assert to_text(value) == expected


class TestTruthiness:
    @pytest.mark.parametrize("value", [None, "", 0, False, [], {}])
    def test_falsy(self, value):
        assert is_truthy(value) is False

    @pytest.mark.parametrize("value", ["0", "false", 1, -1, [0], {"a": 1}])
    def test_truthy(self, value):
        assert is_truthy(value) is True


class TestLooseEquals:
    def test_bool_against_number(self):
        assert loose_equals(True, 1) is True
        assert loose_equals(False, "0") is True
        assert loose_equals(True, "yes") is False

    def test_strings_compare_exactly(self):
        assert loose_equals("1.0", "1") is False


class TestDates:
    def test_naive_dates_are_utc(self):
        assert to_datetime("2026-01-01T10:00:00") == datetime(
            2026, 1, 1, 10, tzinfo=timezone.utc
        )

    def test_offsets_are_normalised(self):
        assert to_datetime("2026-01-01T12:00:00+02:00") == datetime(
            2026, 1, 1, 10, tzinfo=timezone.utc
        )

    def test_iso_output_uses_z_and_milliseconds(self):
        moment = datetime(2026, 1, 1, 10, 0, 0, 123456, tzinfo=timezone.utc)
        assert to_iso(moment) == "2026-01-01T10:00:00.123Z"


class TestCoerceResult:
    def test_null_is_kept_for_every_type(self):
        for kind in ("text", "number", "boolean"):
            assert coerce_result(None, kind) is None

    def test_text(self):
        assert coerce_result(12.0, "text") == "12"

    def test_boolean(self):
        assert coerce_result("x", "boolean") is True
        assert coerce_result(0, "boolean") is False

    def test_number(self):
        assert coerce_result("7.50", "number") == 7.5

    def test_non_numeric_number_result_raises(self):
        with pytest.raises(FormulaTypeError):
            coerce_result("Hello Ana", "number")

    def test_unknown_result_type_raises(self):
        with pytest.raises(ValueError):
            coerce_result(1, "currency")
