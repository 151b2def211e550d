from datetime import datetime, timezone

import pytest

from app.core.exceptions import ArgumentError
from app.formula import FUNCTIONS, describe_functions, evaluate_formula, get_function


class TestCatalogue:
    def test_required_functions_are_registered(self):
        for name in (
            "concat", "upper", "lower", "trim", "substring", "length", "contains",
            "round", "abs", "min", "max", "sum",
            "and", "or", "not", "if",
            "now", "daysBetween", "formatDate",
        ):
            assert get_function(name) is not None, name

    def test_catalogue_is_read_only(self):
        with pytest.raises(TypeError):
            FUNCTIONS["evil"] = None  # type: ignore[index]

    def test_describe_groups_by_category(self):
        catalogue = describe_functions()
        assert set(catalogue) == {"string", "numeric", "logical", "date"}
        names = [entry["name"] for entry in catalogue["date"]]
        assert "daysBetween" in names
        concat = next(e for e in catalogue["string"] if e["name"] == "concat")
        assert concat["max_args"] is None

    def test_arity_error_names_function_and_counts(self):
        with pytest.raises(ArgumentError) as exc_info:
            get_function("daysBetween").check_arity(1)
        assert exc_info.value.detail == "daysBetween() expects 2 argument(s), got 1"

    def test_variadic_arity_message(self):
        with pytest.raises(ArgumentError, match="at least 1"):
            get_function("concat").check_arity(0)


class TestStringFunctions:
    @pytest.mark.parametrize(
        "source,expected",
        [
            ('concat("a", 1, true, null)', "a1true"),
            ('upper("abc")', "ABC"),
            ('lower("ABC")', "abc"),
            ('trim("  x  ")', "x"),
            ('substring("hello", 1, 3)', "ell"),
            ('substring("hello", 2)', "llo"),
            ('substring("hello", 10, 2)', ""),
            ('substring("hello", -5, 2)', "he"),
            ('substring("hello", "x")', ""),
            ('length("hello")', 5),
            ("length(null)", 0),
            ('contains("hello", "ell")', True),
            ('contains(null, "a")', False),
            ('left("hello", 2)', "he"),
            ('right("hello", 2)', "lo"),
            ('right("hello", 0)', ""),
            ('replace("a-b-c", "-", "+")', "a+b+c"),
        ],
    )
    def test_string_functions(self, source, expected):
        assert evaluate_formula(source) == expected

    def test_contains_checks_list_membership(self):
        assert evaluate_formula('contains(tags, "vip")', {"tags": ["new", "vip"]}) is True

    def test_length_of_list(self):
        assert evaluate_formula("length(tags)", {"tags": [1, 2, 3]}) == 3


class TestNumericFunctions:
    @pytest.mark.parametrize(
        "source,expected",
        [
            ("round(2.5)", 3),
            ("round(-2.5)", -3),
            ("round(1.005, 2)", 1.01),
            ("round(1234, -2)", 1200),
            ('round("abc")', None),
            ("abs(-4)", 4),
            ('min(3, "1", 2)', 1),
            ("max(3, 7, 2)", 7),
            ('min("a", "b")', None),
            ("sum(1, 2, 3.5)", 6.5),
            ("avg(2, 4)", 3),
            ('count(1, "", null, "x")', 2),
        ],
    )
    def test_numeric_functions(self, source, expected):
        assert evaluate_formula(source) == expected

    @pytest.mark.parametrize("source", ["round(x)", "round(x, 2)", "round(x, -3)"])
    def test_round_large_float(self, source):
        assert evaluate_formula(source, {"x": 1e30}) == 1e30

    def test_round_large_integer_stays_exact(self):
        assert evaluate_formula("round(x, 2)", {"x": 10**40 + 1}) == 10**40 + 1
        assert evaluate_formula("round(x, -1)", {"x": 10**40 + 5}) == 10**40 + 10

    def test_sum_flattens_lists(self):
        assert evaluate_formula("sum(values)", {"values": [1, 2, "3"]}) == 6

    def test_avg_of_nothing_is_zero(self):
        assert evaluate_formula("avg(values)", {"values": []}) == 0


class TestLogicalFunctions:
    @pytest.mark.parametrize(
        "source,expected",
        [
            ("and(1, true, \"x\")", True),
            ("and(1, 0)", False),
            ("or(0, \"\", null)", False),
            ("or(0, 1)", True),
            ("not(0)", True),
            ('if(score > 50, "hot", "cold")', "cold"),
            ('if(false, "x")', None),
            ('isEmpty("  ")', True),
            ("isEmpty(0)", False),
            ('isNumber("5")', False),
            ("isNumber(5)", True),
            ('coalesce(null, "", "fallback")', "fallback"),
        ],
    )
    def test_logical_functions(self, source, expected):
        assert evaluate_formula(source, {"score": 10}) == expected


class TestDateFunctions:
    def test_now_is_iso_utc(self):
        value = evaluate_formula("now()")
        assert value.endswith("Z")
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        assert abs((datetime.now(timezone.utc) - parsed).total_seconds()) < 5

    def test_today(self):
        assert evaluate_formula("today()") == datetime.now(timezone.utc).date().isoformat()

    @pytest.mark.parametrize(
        "source,expected",
        [
            ('daysBetween("2026-01-01", "2026-01-31")', 30),
            ('daysBetween("2026-01-31", "2026-01-01")', -30),
            ('daysBetween("2026-01-01T00:00:00Z", "2026-01-01T23:59:59Z")', 0),
            ('daysBetween("not a date", "2026-01-01")', None),
            ('formatDate("2026-03-07T09:05:00Z", "DD/MM/YYYY HH:mm")', "07/03/2026 09:05"),
            ('formatDate("2026-03-07")', "2026-03-07"),
            ('formatDate("garbage")', None),
            ('year("2026-03-07")', 2026),
            ('month("2026-03-07")', 3),
            ('day("2026-03-07")', 7),
            ('dateAdd("2026-01-31", 1, "month")', "2026-02-28T00:00:00.000Z"),
            ('dateAdd("2026-01-01", 2, "days")', "2026-01-03T00:00:00.000Z"),
            ('dateAdd("2026-01-01", 1, "fortnight")', None),
            ('dateDiff("2026-01-15", "2026-03-14", "months")', 1),
            ('dateDiff("2026-01-01", "2026-01-01T06:00:00Z", "hours")', 6),
        ],
    )
    def test_date_functions(self, source, expected):
        assert evaluate_formula(source) == expected
