"""Tests for the common-formula catalog and column mapping."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from dashformula.formulas import (
    COMMON_FORMULAS,
    calculate_formula,
    find_applicable_formulas,
    generate_formula_with_columns,
    get_all_categories,
    get_formula_by_id,
    get_formulas_by_category,
    map_formula_columns,
    parse_formula,
    suggest_formulas_for_data,
)


class TestCatalog:
    def test_size_and_ids(self) -> None:
        assert len(COMMON_FORMULAS) == 26
        for key, definition in COMMON_FORMULAS.items():
            assert key == definition.id

    def test_every_template_parses(self) -> None:
        for definition in COMMON_FORMULAS.values():
            assert parse_formula(definition.formula).success, definition.id

    def test_required_columns_appear_in_template(self) -> None:
        for definition in COMMON_FORMULAS.values():
            for column in definition.required_columns:
                assert column in definition.formula, (definition.id, column)

    def test_read_only(self) -> None:
        with pytest.raises(TypeError):
            COMMON_FORMULAS["custom"] = COMMON_FORMULAS["roi"]  # type: ignore[index]
        with pytest.raises(ValidationError):
            COMMON_FORMULAS["roi"].formula = "Revenue"  # type: ignore[misc]

    def test_lookup(self) -> None:
        assert get_formula_by_id("aov").name == "Average Order Value"
        assert get_formula_by_id("nope") is None

    def test_by_category(self) -> None:
        financial = [d.id for d in get_formulas_by_category("financial")]
        assert financial == ["current_ratio", "debt_to_equity", "quick_ratio", "working_capital"]
        assert get_formulas_by_category("astrology") == []

    def test_categories(self) -> None:
        categories = get_all_categories()
        assert [c.id for c in categories] == [
            "profitability",
            "efficiency",
            "ecommerce",
            "marketing",
            "operational",
            "financial",
        ]
        assert categories[0].name == "Profitability"
        assert sum(c.count for c in categories) == len(COMMON_FORMULAS)


class TestMapFormulaColumns:
    def test_exact(self) -> None:
        mapping = map_formula_columns(COMMON_FORMULAS["profit_margin"], ["Revenue", "Cost"])
        assert mapping == {"Revenue": "Revenue", "Cost": "Cost"}

    def test_case_then_fuzzy(self) -> None:
        mapping = map_formula_columns(COMMON_FORMULAS["profit_margin"], ["revenue", "total_cost"])
        assert mapping == {"Revenue": "revenue", "Cost": "total_cost"}

    def test_case_insensitive_beats_fuzzy(self) -> None:
        mapping = map_formula_columns(COMMON_FORMULAS["roas"], ["Total Revenue", "REVENUE", "ad-spend"])
        assert mapping == {"Revenue": "REVENUE", "Ad_Spend": "ad-spend"}

    def test_unmapped_returns_none(self) -> None:
        assert map_formula_columns(COMMON_FORMULAS["profit_margin"], ["Sales"]) is None

    def test_separator_only_names_never_match(self) -> None:
        assert map_formula_columns(COMMON_FORMULAS["roi"], ["_", "-"]) is None
        assert find_applicable_formulas(["_", " "]) == []


class TestGenerateFormula:
    def test_brackets_names_with_spaces(self) -> None:
        generated = generate_formula_with_columns(
            COMMON_FORMULAS["profit_margin"], {"Revenue": "Total Sales", "Cost": "Cost"}
        )
        assert generated == "([Total Sales] - Cost) / [Total Sales] * 100"

    def test_brackets_hyphenated_names(self) -> None:
        generated = generate_formula_with_columns(
            COMMON_FORMULAS["roas"], {"Revenue": "Revenue", "Ad_Spend": "ad-spend"}
        )
        assert generated == "Revenue / [ad-spend]"

    def test_single_pass_substitution(self) -> None:
        generated = generate_formula_with_columns(
            COMMON_FORMULAS["profit_margin"], {"Revenue": "Cost", "Cost": "Revenue"}
        )
        assert generated == "(Cost - Revenue) / Cost * 100"

    def test_whole_words_only(self) -> None:
        generated = generate_formula_with_columns(
            COMMON_FORMULAS["net_profit_margin"], {"Revenue": "Rev", "Total_Expenses": "Expenses"}
        )
        assert generated == "(Rev - Expenses) / Rev * 100"

    def test_aggregate_template(self) -> None:
        generated = generate_formula_with_columns(
            COMMON_FORMULAS["aov"], {"Revenue": "Revenue", "Orders": "Total Orders"}
        )
        assert generated == "SUM(Revenue) / SUM([Total Orders])"


class TestSuggestions:
    def test_applicable(self) -> None:
        ids = {d.id for d in find_applicable_formulas(["Revenue", "Cost"])}
        assert ids == {"profit_margin", "roi"}

    def test_confidence_levels_sorted(self) -> None:
        suggestions = suggest_formulas_for_data(["Revenue", "Orders", "Visitors"])
        high = {s.formula.id for s in suggestions if s.confidence == "high"}
        assert high == {"aov", "conversion_rate", "revenue_per_visitor"}
        order = {"high": 0, "medium": 1, "low": 2}
        ranks = [order[s.confidence] for s in suggestions]
        assert ranks == sorted(ranks)
        # Orders_Fulfilled and Total_Orders both fuzzily contain "Orders".
        assert suggestions[-1].formula.id == "fulfillment_rate"
        assert suggestions[-1].confidence == "low"

    def test_medium_confidence(self) -> None:
        columns = ["Current_Assets", "current_liabilities", "Inventory_Value"]
        suggestions = suggest_formulas_for_data(columns)
        by_id = {s.formula.id: s for s in suggestions}
        assert by_id["current_ratio"].confidence == "high"
        assert by_id["quick_ratio"].confidence == "medium"
        assert by_id["quick_ratio"].generated_formula == (
            "(Current_Assets - Inventory_Value) / current_liabilities"
        )
        assert suggestions[-1].formula.id == "quick_ratio"

    def test_no_suggestions(self) -> None:
        assert suggest_formulas_for_data(["Foo", "Bar"]) == []

    def test_generated_formula_runs(self, orders_data) -> None:
        rows = [{"Revenue": r["Revenue"], "Total Orders": r["Orders"]} for r in orders_data]
        suggestion = next(
            s for s in suggest_formulas_for_data(list(rows[0])) if s.formula.id == "aov"
        )
        assert suggestion.column_mapping == {"Revenue": "Revenue", "Orders": "Total Orders"}
        result = calculate_formula(rows, suggestion.generated_formula, "AOV")
        assert result.data[0]["AOV"] == pytest.approx(100.0)
