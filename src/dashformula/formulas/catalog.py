"""Catalog of common business formulas and column-mapping helpers.

Each catalog formula is written against abstract column names
(``Revenue``, ``Cost``, ...).  ``suggest_formulas_for_data`` maps those
names onto a real dataset's columns and returns ready-to-run formulas.
"""

from __future__ import annotations

import re
from types import MappingProxyType
from typing import Literal, Mapping

from pydantic import BaseModel, ConfigDict

Category = Literal["profitability", "efficiency", "ecommerce", "marketing", "operational", "financial"]
OutputType = Literal["percentage", "ratio", "currency", "number"]
Confidence = Literal["high", "medium", "low"]

_SEPARATORS_RE = re.compile(r"[_\s-]")
_IDENTIFIER_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")

_CONFIDENCE_ORDER = {"high": 0, "medium": 1, "low": 2}


class FormulaDefinition(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    category: Category
    description: str
    formula: str
    required_columns: tuple[str, ...]
    example_columns: Mapping[str, str] | None = None
    output_type: OutputType
    interpretation: str


class FormulaSuggestion(BaseModel):
    formula: FormulaDefinition
    column_mapping: dict[str, str]
    generated_formula: str
    confidence: Confidence


class CategoryInfo(BaseModel):
    id: str
    name: str
    count: int


_DEFINITIONS: list[FormulaDefinition] = [
    # Profitability
    FormulaDefinition(
        id="profit_margin",
        name="Profit Margin %",
        category="profitability",
        description="Percentage of revenue that becomes profit",
        formula="(Revenue - Cost) / Revenue * 100",
        required_columns=("Revenue", "Cost"),
        example_columns={"Revenue": "Total_Sales", "Cost": "Total_Cost"},
        output_type="percentage",
        interpretation="Higher is better. Shows how much profit is made per dollar of revenue.",
    ),
    FormulaDefinition(
        id="gross_margin",
        name="Gross Margin %",
        category="profitability",
        description="Revenue minus cost of goods sold, as percentage of revenue",
        formula="(Revenue - COGS) / Revenue * 100",
        required_columns=("Revenue", "COGS"),
        example_columns={"Revenue": "Total_Revenue", "COGS": "Cost_of_Goods_Sold"},
        output_type="percentage",
        interpretation="Higher is better. Measures production efficiency.",
    ),
    FormulaDefinition(
        id="net_profit_margin",
        name="Net Profit Margin %",
        category="profitability",
        description="Net profit as percentage of revenue after all expenses",
        formula="(Revenue - Total_Expenses) / Revenue * 100",
        required_columns=("Revenue", "Total_Expenses"),
        output_type="percentage",
        interpretation="Higher is better. Shows overall profitability after all costs.",
    ),
    FormulaDefinition(
        id="markup",
        name="Markup %",
        category="profitability",
        description="Percentage added to cost to determine price",
        formula="(Price - Cost) / Cost * 100",
        required_columns=("Price", "Cost"),
        output_type="percentage",
        interpretation="How much you mark up products above cost.",
    ),
    # Efficiency & ROI
    FormulaDefinition(
        id="roas",
        name="Return on Ad Spend (ROAS)",
        category="efficiency",
        description="Revenue generated per dollar spent on advertising",
        formula="Revenue / Ad_Spend",
        required_columns=("Revenue", "Ad_Spend"),
        example_columns={"Revenue": "Total_Revenue", "Ad_Spend": "Marketing_Spend"},
        output_type="ratio",
        interpretation="Higher is better. A ROAS of 4 means $4 revenue per $1 ad spend.",
    ),
    FormulaDefinition(
        id="roi",
        name="Return on Investment %",
        category="efficiency",
        description="Return on investment as percentage",
        formula="(Revenue - Cost) / Cost * 100",
        required_columns=("Revenue", "Cost"),
        output_type="percentage",
        interpretation="Higher is better. Shows percentage return on investment.",
    ),
    FormulaDefinition(
        id="operating_ratio",
        name="Operating Ratio",
        category="efficiency",
        description="Operating expenses as percentage of revenue",
        formula="Operating_Expenses / Revenue * 100",
        required_columns=("Operating_Expenses", "Revenue"),
        output_type="percentage",
        interpretation="Lower is better. Shows efficiency of operations.",
    ),
    FormulaDefinition(
        id="efficiency_ratio",
        name="Efficiency Ratio",
        category="efficiency",
        description="Ratio of expenses to revenue",
        formula="Total_Expenses / Revenue",
        required_columns=("Total_Expenses", "Revenue"),
        output_type="ratio",
        interpretation="Lower is better. Values below 1 indicate profitability.",
    ),
    # E-commerce
    FormulaDefinition(
        id="aov",
        name="Average Order Value",
        category="ecommerce",
        description="Average value per order",
        formula="SUM(Revenue) / SUM(Orders)",
        required_columns=("Revenue", "Orders"),
        example_columns={"Revenue": "Total_Sales", "Orders": "Order_Count"},
        output_type="currency",
        interpretation="Higher is better. Average amount customers spend per order.",
    ),
    FormulaDefinition(
        id="conversion_rate",
        name="Conversion Rate %",
        category="ecommerce",
        description="Percentage of visitors who make a purchase",
        formula="Orders / Visitors * 100",
        required_columns=("Orders", "Visitors"),
        example_columns={"Orders": "Total_Orders", "Visitors": "Site_Visitors"},
        output_type="percentage",
        interpretation="Higher is better. Shows effectiveness at converting visitors to customers.",
    ),
    FormulaDefinition(
        id="cart_abandonment_rate",
        name="Cart Abandonment Rate %",
        category="ecommerce",
        description="Percentage of carts that are abandoned",
        formula="(Carts_Created - Orders) / Carts_Created * 100",
        required_columns=("Carts_Created", "Orders"),
        output_type="percentage",
        interpretation="Lower is better. Shows how many customers abandon their carts.",
    ),
    FormulaDefinition(
        id="revenue_per_visitor",
        name="Revenue per Visitor",
        category="ecommerce",
        description="Average revenue generated per site visitor",
        formula="SUM(Revenue) / SUM(Visitors)",
        required_columns=("Revenue", "Visitors"),
        output_type="currency",
        interpretation="Higher is better. Combines traffic and monetization effectiveness.",
    ),
    FormulaDefinition(
        id="items_per_order",
        name="Items per Order",
        category="ecommerce",
        description="Average number of items per order",
        formula="SUM(Items) / SUM(Orders)",
        required_columns=("Items", "Orders"),
        output_type="number",
        interpretation="Shows shopping basket size. Higher values may indicate cross-selling success.",
    ),
    # Marketing
    FormulaDefinition(
        id="cac",
        name="Customer Acquisition Cost",
        category="marketing",
        description="Cost to acquire one new customer",
        formula="Marketing_Spend / New_Customers",
        required_columns=("Marketing_Spend", "New_Customers"),
        example_columns={
            "Marketing_Spend": "Total_Marketing_Budget",
            "New_Customers": "Customers_Acquired",
        },
        output_type="currency",
        interpretation="Lower is better. Should be less than customer lifetime value.",
    ),
    FormulaDefinition(
        id="cac_aggregate",
        name="Customer Acquisition Cost (Aggregated)",
        category="marketing",
        description="Total cost to acquire customers across all data",
        formula="SUM(Marketing_Spend) / SUM(New_Customers)",
        required_columns=("Marketing_Spend", "New_Customers"),
        output_type="currency",
        interpretation="Lower is better. Average CAC across entire period.",
    ),
    FormulaDefinition(
        id="ctr",
        name="Click-Through Rate %",
        category="marketing",
        description="Percentage of impressions that result in clicks",
        formula="Clicks / Impressions * 100",
        required_columns=("Clicks", "Impressions"),
        output_type="percentage",
        interpretation="Higher is better. Shows ad relevance and appeal.",
    ),
    FormulaDefinition(
        id="cpc",
        name="Cost Per Click",
        category="marketing",
        description="Average cost for each click",
        formula="SUM(Ad_Spend) / SUM(Clicks)",
        required_columns=("Ad_Spend", "Clicks"),
        output_type="currency",
        interpretation="Lower is better (for same quality traffic). Indicates ad auction competitiveness.",
    ),
    FormulaDefinition(
        id="ltv_to_cac",
        name="LTV to CAC Ratio",
        category="marketing",
        description="Customer lifetime value divided by acquisition cost",
        formula="Customer_LTV / CAC",
        required_columns=("Customer_LTV", "CAC"),
        output_type="ratio",
        interpretation="Higher is better. Should be at least 3:1 for healthy business.",
    ),
    # Operational
    FormulaDefinition(
        id="inventory_turnover",
        name="Inventory Turnover",
        category="operational",
        description="How many times inventory is sold and replaced",
        formula="COGS / Average_Inventory",
        required_columns=("COGS", "Average_Inventory"),
        output_type="ratio",
        interpretation="Higher is better. Shows inventory management efficiency.",
    ),
    FormulaDefinition(
        id="days_inventory",
        name="Days Inventory Outstanding",
        category="operational",
        description="Average days to sell inventory",
        formula="365 / (COGS / Average_Inventory)",
        required_columns=("COGS", "Average_Inventory"),
        output_type="number",
        interpretation="Lower is better. Shows how quickly inventory moves.",
    ),
    FormulaDefinition(
        id="fulfillment_rate",
        name="Order Fulfillment Rate %",
        category="operational",
        description="Percentage of orders successfully fulfilled",
        formula="Orders_Fulfilled / Total_Orders * 100",
        required_columns=("Orders_Fulfilled", "Total_Orders"),
        output_type="percentage",
        interpretation="Higher is better. Should be as close to 100% as possible.",
    ),
    FormulaDefinition(
        id="return_rate",
        name="Return Rate %",
        category="operational",
        description="Percentage of orders that are returned",
        formula="Returns / Orders * 100",
        required_columns=("Returns", "Orders"),
        output_type="percentage",
        interpretation="Lower is better. High rates may indicate product or quality issues.",
    ),
    # Financial
    FormulaDefinition(
        id="current_ratio",
        name="Current Ratio",
        category="financial",
        description="Current assets divided by current liabilities",
        formula="Current_Assets / Current_Liabilities",
        required_columns=("Current_Assets", "Current_Liabilities"),
        output_type="ratio",
        interpretation="Higher is better. Above 1.0 indicates good short-term financial health.",
    ),
    FormulaDefinition(
        id="debt_to_equity",
        name="Debt to Equity Ratio",
        category="financial",
        description="Total debt divided by total equity",
        formula="Total_Debt / Total_Equity",
        required_columns=("Total_Debt", "Total_Equity"),
        output_type="ratio",
        interpretation="Lower is better. Shows financial leverage and risk.",
    ),
    FormulaDefinition(
        id="quick_ratio",
        name="Quick Ratio (Acid Test)",
        category="financial",
        description="Liquid assets divided by current liabilities",
        formula="(Current_Assets - Inventory) / Current_Liabilities",
        required_columns=("Current_Assets", "Inventory", "Current_Liabilities"),
        output_type="ratio",
        interpretation="Higher is better. Above 1.0 indicates ability to pay short-term obligations.",
    ),
    FormulaDefinition(
        id="working_capital",
        name="Working Capital",
        category="financial",
        description="Current assets minus current liabilities",
        formula="Current_Assets - Current_Liabilities",
        required_columns=("Current_Assets", "Current_Liabilities"),
        output_type="currency",
        interpretation="Positive is better. Shows available capital for operations.",
    ),
]

# Read-only for the life of the process.
COMMON_FORMULAS: Mapping[str, FormulaDefinition] = MappingProxyType(
    {definition.id: definition for definition in _DEFINITIONS}
)


# ---------------------------------------------------------------------------
# Column mapping
# ---------------------------------------------------------------------------


def _fuzzy_key(name: str) -> str:
    return _SEPARATORS_RE.sub("", name).lower()


def _fuzzy_match(required: str, candidate: str) -> bool:
    """Separator-insensitive containment in either direction."""
    req = _fuzzy_key(required)
    col = _fuzzy_key(candidate)
    if not req or not col:
        return False
    return req in col or col in req


def map_formula_columns(
    formula: FormulaDefinition,
    available_columns: list[str],
) -> dict[str, str] | None:
    """Map each required column of *formula* to a dataset column.

    Tries exact, then case-insensitive, then fuzzy matching (separators
    stripped, containment either way).  Returns ``None`` if any required
    column has no match.
    """
    mapping: dict[str, str] = {}
    for required in formula.required_columns:
        if required in available_columns:
            mapping[required] = required
            continue

        lowered = required.lower()
        match = next((col for col in available_columns if col.lower() == lowered), None)
        if match is None:
            match = next((col for col in available_columns if _fuzzy_match(required, col)), None)
        if match is None:
            return None
        mapping[required] = match
    return mapping


def find_applicable_formulas(available_columns: list[str]) -> list[FormulaDefinition]:
    """Catalog formulas whose required columns can all be mapped."""
    return [
        definition
        for definition in COMMON_FORMULAS.values()
        if map_formula_columns(definition, available_columns) is not None
    ]


def _quote_column(name: str) -> str:
    return name if _IDENTIFIER_RE.match(name) else f"[{name}]"


def generate_formula_with_columns(formula: FormulaDefinition, column_mapping: Mapping[str, str]) -> str:
    """Rewrite the formula template using actual column names.

    Substitution is a single pass over whole words, so a replacement is
    never rewritten again.  Names that are not plain identifiers are
    wrapped in brackets.
    """
    if not column_mapping:
        return formula.formula
    names = sorted(column_mapping, key=len, reverse=True)
    pattern = re.compile(r"\b(?:" + "|".join(re.escape(n) for n in names) + r")\b")
    return pattern.sub(lambda m: _quote_column(column_mapping[m.group(0)]), formula.formula)


def _confidence(mapping: Mapping[str, str], required_count: int) -> Confidence:
    exact = sum(1 for req, actual in mapping.items() if req.lower() == actual.lower())
    fuzzy = len(mapping) - exact
    if exact == required_count:
        return "high"
    if exact > fuzzy:
        return "medium"
    return "low"


def suggest_formulas_for_data(available_columns: list[str]) -> list[FormulaSuggestion]:
    """Applicable catalog formulas with concrete column names, best matches first."""
    suggestions: list[FormulaSuggestion] = []
    for definition in COMMON_FORMULAS.values():
        mapping = map_formula_columns(definition, available_columns)
        if mapping is None:
            continue
        suggestions.append(
            FormulaSuggestion(
                formula=definition,
                column_mapping=mapping,
                generated_formula=generate_formula_with_columns(definition, mapping),
                confidence=_confidence(mapping, len(definition.required_columns)),
            )
        )
    # Stable sort keeps catalog order within a confidence level.
    suggestions.sort(key=lambda s: _CONFIDENCE_ORDER[s.confidence])
    return suggestions


# ---------------------------------------------------------------------------
# Lookup
# ---------------------------------------------------------------------------


def get_formulas_by_category(category: str) -> list[FormulaDefinition]:
    return [d for d in COMMON_FORMULAS.values() if d.category == category]


def get_formula_by_id(formula_id: str) -> FormulaDefinition | None:
    return COMMON_FORMULAS.get(formula_id)


def get_all_categories() -> list[CategoryInfo]:
    """Categories in catalog order with their formula counts."""
    counts: dict[str, int] = {}
    for definition in COMMON_FORMULAS.values():
        counts[definition.category] = counts.get(definition.category, 0) + 1
    return [CategoryInfo(id=cat, name=cat.capitalize(), count=n) for cat, n in counts.items()]
