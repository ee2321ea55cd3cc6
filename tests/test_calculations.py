"""Tests for column aggregation and dataset-wide formula calculation."""

from __future__ import annotations

from typing import Any

import polars as pl
import pytest

from dashformula.formulas import (
    FormulaParseError,
    FormulaRefError,
    aggregate,
    calculate_formula,
    calculate_statistical_summary,
    compute_aggregates,
)
from dashformula.formulas.calculations import CALCULATION_MAX_PERCENTILE_ROWS
from dashformula.formulas.parser import AggregateCall
from dashformula.functions.registry import list_aggregates


def _col(values: list[Any], name: str = "x") -> list[dict[str, Any]]:
    return [{name: v} for v in values]


# ────────────────────────────────────────────────────────────────
# aggregate()
# ────────────────────────────────────────────────────────────────


class TestAggregate:
    def test_sum_coerces_display_strings(self) -> None:
        rows = _col(["$1,000", "2,000", None, "n/a", 500])
        assert aggregate(rows, "x", "sum") == pytest.approx(3500.0)

    def test_avg_ignores_nulls(self) -> None:
        assert aggregate(_col([1, None, 3]), "x", "avg") == pytest.approx(2.0)

    def test_min_max(self) -> None:
        rows = _col([5, "-2", 9, None])
        assert aggregate(rows, "x", "min") == -2
        assert aggregate(rows, "x", "max") == 9

    def test_count_counts_non_null_cells(self) -> None:
        assert aggregate(_col(["a", None, 3, "b"]), "x", "count") == 3

    def test_count_empty_column_is_zero(self) -> None:
        assert aggregate(_col([None, None]), "x", "count") == 0

    def test_numeric_on_empty_column_is_none(self) -> None:
        rows = _col([None, "abc"])
        for kind in ("sum", "avg", "min", "max", "median"):
            assert aggregate(rows, "x", kind) is None, kind

    def test_median(self) -> None:
        assert aggregate(_col([1, 2, 3, 10]), "x", "median") == pytest.approx(2.5)

    def test_mode_first_seen_wins_ties(self) -> None:
        assert aggregate(_col([3, 1, 2, 2, 1]), "x", "mode") == 1
        assert aggregate(_col([1, 2, 2, 3]), "x", "mode") == 2

    def test_std_and_variance_population(self) -> None:
        rows = _col([2, 4, 4, 4, 5, 5, 7, 9])
        assert aggregate(rows, "x", "std") == pytest.approx(2.0)
        assert aggregate(rows, "x", "variance") == pytest.approx(4.0)

    def test_percentile(self) -> None:
        rows = _col([1, 2, 3, 4])
        assert aggregate(rows, "x", "percentile", percentile=50) == pytest.approx(2.5)
        assert aggregate(rows, "x", "percentile", percentile=100) == pytest.approx(4.0)
        assert aggregate(rows, "x", "percentile", percentile=250) == pytest.approx(4.0)

    def test_distinct_first_last(self) -> None:
        rows = _col([3, None, 1, 3, 2])
        assert aggregate(rows, "x", "distinct") == 3
        assert aggregate(rows, "x", "first") == 3
        assert aggregate(rows, "x", "last") == 2

    def test_unknown_kind(self) -> None:
        with pytest.raises(KeyError):
            aggregate(_col([1]), "x", "geomean")

    def test_row_cap(self) -> None:
        rows = _col([1, 2, 3, 4, 5])
        assert aggregate(rows, "x", "sum", max_rows=2) == 3

    def test_sorting_kinds_use_lower_default_cap(self) -> None:
        rows = _col([1] * CALCULATION_MAX_PERCENTILE_ROWS + [1000] * 10)
        assert aggregate(rows, "x", "max") == 1000
        assert aggregate(rows, "x", "median") == 1

    def test_accepts_dataframe(self) -> None:
        df = pl.DataFrame({"x": [1.0, 2.0, None]})
        assert aggregate(df, "x", "sum") == 3.0

    def test_registry_lists_builtins(self) -> None:
        names = list_aggregates()
        for kind in ("sum", "avg", "count", "min", "max", "median", "mode", "percentile"):
            assert kind in names


class TestComputeAggregates:
    def test_keyed_by_alias(self, orders_data) -> None:
        calls = [
            AggregateCall(function="SUM", column="Revenue", alias="SUM_Revenue"),
            AggregateCall(function="COUNT", column="orders", alias="COUNT_orders"),
        ]
        result = compute_aggregates(orders_data, calls, ["Revenue", "Orders"])
        assert result == {"SUM_Revenue": 4500.0, "COUNT_orders": 3.0}

    def test_missing_column(self, orders_data) -> None:
        calls = [AggregateCall(function="SUM", column="Profit", alias="SUM_Profit")]
        with pytest.raises(FormulaRefError, match="Profit"):
            compute_aggregates(orders_data, calls, ["Revenue", "Orders"])


class TestStatisticalSummary:
    def test_summary(self) -> None:
        summary = calculate_statistical_summary(_col([1, 2, 3, 4]), "x")
        assert summary["count"] == 4
        assert summary["sum"] == 10
        assert summary["avg"] == pytest.approx(2.5)
        assert summary["median"] == pytest.approx(2.5)
        assert summary["min"] == 1 and summary["max"] == 4

    def test_empty_column_zeroes(self) -> None:
        summary = calculate_statistical_summary(_col([None]), "x")
        assert set(summary.values()) == {0.0}


# ────────────────────────────────────────────────────────────────
# calculate_formula()
# ────────────────────────────────────────────────────────────────


class TestCalculateFormula:
    def test_average_order_value(self, orders_data) -> None:
        result = calculate_formula(orders_data, "SUM(Revenue)/SUM(Orders)", "AOV", aggregate_first=True)
        assert [row["AOV"] for row in result.data] == [pytest.approx(100.0)] * 3
        assert result.metadata.calculation_type == "aggregate_formula"

    def test_aggregates_detected_without_flag(self, orders_data) -> None:
        result = calculate_formula(orders_data, "SUM(Revenue) / SUM(Orders)", "AOV")
        assert all(row["AOV"] == pytest.approx(100.0) for row in result.data)

    def test_aggregate_uses_entire_dataset(self) -> None:
        rows = _col(list(range(1, 12_001)), "n")
        result = calculate_formula(rows, "SUM(n)", "total")
        assert result.data[0]["total"] == sum(range(1, 12_001))

    def test_aggregate_first_bare_columns_read_first_row(self) -> None:
        rows = _col([10, 20], "Revenue")
        result = calculate_formula(rows, "Revenue * 2", "double", aggregate_first=True)
        assert [row["double"] for row in result.data] == [20, 20]

    def test_per_row(self, sales_data) -> None:
        result = calculate_formula(sales_data, "(Revenue - Cost) / Revenue * 100", "Margin")
        margins = [row["Margin"] for row in result.data]
        assert margins == [pytest.approx(40.0), pytest.approx(25.0), pytest.approx(80.0)]
        assert result.metadata.calculation_type == "formula"
        assert result.metadata.columns == ["Product", "Revenue", "Cost", "Margin"]

    def test_row_count_preserved(self) -> None:
        rows = [
            {"Revenue": 100, "Orders": 4},
            {"Revenue": 100, "Orders": 0},
            {"Revenue": 100, "Orders": None},
            {"Revenue": "abc", "Orders": 2},
        ]
        result = calculate_formula(rows, "Revenue / Orders", "AOV")
        assert len(result.data) == len(rows)
        assert [row["AOV"] for row in result.data] == [25.0, None, None, None]
        assert result.metadata.null_count == 3
        assert result.metadata.original_row_count == result.metadata.result_row_count == 4

    def test_missing_bare_column_gives_nulls(self, orders_data) -> None:
        result = calculate_formula(orders_data, "Profit * 2", "x")
        assert [row["x"] for row in result.data] == [None, None, None]

    def test_input_not_mutated(self, orders_data) -> None:
        calculate_formula(orders_data, "Revenue / Orders", "AOV")
        assert all("AOV" not in row for row in orders_data)

    def test_overwrites_existing_column(self, orders_data) -> None:
        result = calculate_formula(orders_data, "Orders * 2", "Orders")
        assert [row["Orders"] for row in result.data] == [20, 30, 40]
        assert result.metadata.columns == ["Revenue", "Orders"]

    def test_rounding(self) -> None:
        result = calculate_formula(_col([10], "Revenue"), "Revenue / 3", "third", round=2)
        assert result.data[0]["third"] == 3.33

    def test_count_of_text_column(self, sales_data) -> None:
        result = calculate_formula(sales_data, "COUNT(Product)", "n")
        assert result.data[0]["n"] == 3

    def test_empty_dataset(self) -> None:
        result = calculate_formula([], "Revenue * 2", "x")
        assert result.data == []
        assert result.metadata.result_row_count == 0

    def test_syntax_error_raises(self, orders_data) -> None:
        with pytest.raises(FormulaParseError):
            calculate_formula(orders_data, "Revenue +", "x")

    def test_missing_aggregate_column_raises(self, orders_data) -> None:
        with pytest.raises(FormulaRefError):
            calculate_formula(orders_data, "SUM(Profit)", "x")

    def test_dataframe_round_trip(self) -> None:
        df = pl.DataFrame({"Revenue": [100.0, 200.0], "Cost": [50.0, 50.0]})
        result = calculate_formula(df, "Revenue - Cost", "Profit")
        out = result.to_frame()
        assert out.columns == ["Revenue", "Cost", "Profit"]
        assert out["Profit"].to_list() == [50.0, 150.0]

    def test_formula_length_limit(self) -> None:
        formula = " + ".join(["Revenue"] * 60)
        assert len(formula) > 500
        with pytest.raises(FormulaParseError, match="too long"):
            calculate_formula(_col([1], "Revenue"), formula, "x")
        result = calculate_formula(_col([1], "Revenue"), formula, "x", max_formula_length=1000)
        assert result.data[0]["x"] == 60

    def test_decimal_dataframe(self) -> None:
        df = pl.DataFrame({"Revenue": [1000, 1500], "Orders": [10, 15]}).with_columns(
            pl.col("Revenue").cast(pl.Decimal(10, 2))
        )
        per_row = calculate_formula(df, "Revenue / Orders", "AOV")
        assert [row["AOV"] for row in per_row.data] == [pytest.approx(100.0)] * 2
        total = calculate_formula(df, "SUM(Revenue) / SUM(Orders)", "AOV")
        assert total.data[0]["AOV"] == pytest.approx(100.0)

    def test_int_beyond_float_range_does_not_abort(self) -> None:
        rows = [{"Revenue": 10**400, "Orders": 2}, {"Revenue": 100, "Orders": 4}]
        result = calculate_formula(rows, "Revenue / Orders", "AOV")
        assert [row["AOV"] for row in result.data] == [None, 25.0]
        assert calculate_formula(rows, "SUM(Revenue)", "total").data[0]["total"] == 100.0
