"""Tests for numeric coercion and column resolution."""

from __future__ import annotations

import math
from decimal import Decimal

import pytest

from dashformula.formulas import (
    find_matching_column,
    is_numeric,
    normalize_column_name,
    parse_numeric_value,
)


class TestParseNumericValue:
    @pytest.mark.parametrize(
        "raw, expected",
        [
            ("$1,234.56", 1234.56),
            ("€ 0", 0.0),
            ("12%", 12.0),
            ("1,000", 1000.0),
            ("£99", 99.0),
            ("¥1,000,000", 1_000_000.0),
            ("  7 ", 7.0),
            ("-3.5", -3.5),
            ("(500)", -500.0),
            ("($1,250.00)", -1250.0),
            ("1.5e3", 1500.0),
            ("42abc", 42.0),
        ],
    )
    def test_display_strings(self, raw: str, expected: float) -> None:
        assert parse_numeric_value(raw) == pytest.approx(expected)

    def test_numbers_pass_through(self) -> None:
        assert parse_numeric_value(42) == 42.0
        assert parse_numeric_value(0.25) == 0.25
        assert parse_numeric_value(2e16) == 2e16

    def test_decimals_pass_through(self) -> None:
        assert parse_numeric_value(Decimal("1234.50")) == 1234.5
        assert parse_numeric_value(Decimal("-0.25")) == -0.25
        assert parse_numeric_value(Decimal("NaN")) is None
        assert parse_numeric_value(Decimal("sNaN")) is None
        assert parse_numeric_value(Decimal("Infinity")) is None

    def test_int_beyond_float_range(self) -> None:
        assert parse_numeric_value(10**400) is None
        assert parse_numeric_value(-(10**400)) is None
        assert not is_numeric(10**400)

    @pytest.mark.parametrize("raw", [None, "", "abc", "n/a", "$", "%", True, False, [], {}])
    def test_not_numeric(self, raw) -> None:
        assert parse_numeric_value(raw) is None

    def test_non_finite_rejected(self) -> None:
        assert parse_numeric_value(math.nan) is None
        assert parse_numeric_value(math.inf) is None
        assert parse_numeric_value("inf") is None

    def test_oversized_strings_rejected(self) -> None:
        assert parse_numeric_value("1e20") is None
        assert parse_numeric_value("999,999,999,999,999") == pytest.approx(999_999_999_999_999)

    def test_is_numeric(self) -> None:
        assert is_numeric("$5")
        assert not is_numeric("five")


class TestNormalizeColumnName:
    def test_strips_brackets_and_whitespace(self) -> None:
        assert normalize_column_name("[ Total Sales ]") == "Total Sales"
        assert normalize_column_name("  Revenue ") == "Revenue"

    def test_keeps_inner_separators(self) -> None:
        assert normalize_column_name("[Cost-of_Goods Sold]") == "Cost-of_Goods Sold"


class TestFindMatchingColumn:
    def test_exact_beats_case_insensitive(self) -> None:
        assert find_matching_column("Revenue", ["revenue", "Revenue"]) == "Revenue"
        assert find_matching_column("revenue", ["Revenue", "revenue"]) == "revenue"

    def test_case_insensitive_takes_first(self) -> None:
        assert find_matching_column("REVENUE", ["revenue", "Revenue"]) == "revenue"

    def test_space_to_underscore(self) -> None:
        assert find_matching_column("Total Sales", ["Total_Sales"]) == "Total_Sales"

    def test_underscore_to_space(self) -> None:
        assert find_matching_column("Total_Sales", ["Total Sales"]) == "Total Sales"

    def test_separator_and_case(self) -> None:
        assert find_matching_column("total sales", ["Total_Sales"]) == "Total_Sales"

    def test_case_insensitive_beats_separator(self) -> None:
        cols = ["Total_Sales", "total sales"]
        assert find_matching_column("Total Sales", cols) == "total sales"

    def test_brackets_ignored(self) -> None:
        assert find_matching_column("[Revenue]", ["Revenue"]) == "Revenue"

    def test_no_match(self) -> None:
        assert find_matching_column("Profit", ["Revenue", "Cost"]) is None
        assert find_matching_column("", ["Revenue"]) is None
        assert find_matching_column("Revenue", []) is None

    def test_deterministic(self) -> None:
        cols = ["order count", "Order_Count", "ORDER COUNT"]
        results = {find_matching_column("Order Count", cols) for _ in range(5)}
        assert results == {"order count"}
