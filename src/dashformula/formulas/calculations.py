"""Column aggregation and formula calculation over whole datasets.

``calculate_formula`` adds a computed column to a dataset.  Formulas
without aggregate calls are evaluated row by row; formulas with them
(or with ``aggregate_first=True``) are reduced to a single dataset-wide
value that is written to every row.  The input rows are never mutated.
"""

from __future__ import annotations

import logging
import math
from typing import Any, Literal, Sequence, Union

import polars as pl
from pydantic import BaseModel

import dashformula.functions.aggregate  # noqa: F401
from dashformula.formulas.columns import find_matching_column
from dashformula.formulas.errors import FormulaParseError, FormulaRefError
from dashformula.formulas.evaluator import evaluate_tree
from dashformula.formulas.numeric import parse_numeric_value
from dashformula.formulas.parser import (
    MAX_FORMULA_LENGTH,
    AggregateCall,
    extract_aggregate_functions,
    parse_formula_tree,
)
from dashformula.functions.registry import get_aggregate_fn, takes_raw_values
from dashformula.logging.events import (
    FORMULA_COLUMN_MISSING,
    FORMULA_EVAL_ERROR,
    FORMULA_SYNTAX_ERROR,
    EventType,
    emit_error,
    emit_info,
    emit_warning,
)

logger = logging.getLogger(__name__)

# Maximum rows for general aggregations (performance limit)
CALCULATION_MAX_ROWS = 10_000

# Maximum rows for sorting-intensive aggregations
CALCULATION_MAX_PERCENTILE_ROWS = 5_000

_SORTING_KINDS = frozenset({"median", "percentile", "mode"})

AggregationType = Literal[
    "sum", "avg", "count", "min", "max", "median", "mode",
    "std", "variance", "percentile", "distinct", "first", "last",
]

# Formula function name -> aggregation kind
FUNCTION_KINDS: dict[str, str] = {
    "SUM": "sum",
    "AVG": "avg",
    "COUNT": "count",
    "MIN": "min",
    "MAX": "max",
}

DataInput = Union[Sequence[dict[str, Any]], pl.DataFrame]


class CalculationMetadata(BaseModel):
    calculation_type: str
    original_row_count: int
    result_row_count: int
    columns: list[str]
    null_count: int = 0


class CalculationResult(BaseModel):
    """Rows with the computed column added, plus bookkeeping."""

    data: list[dict[str, Any]]
    metadata: CalculationMetadata

    def to_frame(self) -> pl.DataFrame:
        """Return the result rows as a Polars DataFrame."""
        if not self.data:
            return pl.DataFrame()
        return pl.from_dicts(self.data, infer_schema_length=None, strict=False)


def as_rows(data: DataInput) -> list[dict[str, Any]]:
    if isinstance(data, pl.DataFrame):
        return data.to_dicts()
    return list(data)


# ---------------------------------------------------------------------------
# Aggregation
# ---------------------------------------------------------------------------


def aggregate(
    data: DataInput,
    column: str,
    kind: str = "sum",
    *,
    percentile: float | None = None,
    max_rows: int | None = None,
) -> float | None:
    """Aggregate one column of a dataset.

    Args:
        data: Rows (or a DataFrame).
        column: Exact column name.
        kind: Registered aggregation name (see ``AggregationType``).
        percentile: Percentile (0-100) for ``kind="percentile"``.
        max_rows: Row cap.  Defaults to 10 000, or 5 000 for sorting
            aggregations.

    Returns:
        The aggregate, or ``None`` when the column has no numeric values.
        ``count`` counts non-null cells and returns 0 for an empty column.

    Raises:
        KeyError: If *kind* is not a registered aggregation.
    """
    fn = get_aggregate_fn(kind)
    rows = as_rows(data)

    if max_rows is None:
        max_rows = CALCULATION_MAX_PERCENTILE_ROWS if kind in _SORTING_KINDS else CALCULATION_MAX_ROWS
    if len(rows) > max_rows:
        logger.debug("aggregation %s(%s) limited to %d of %d rows", kind, column, max_rows, len(rows))
        emit_warning(
            EventType.row_limit_applied,
            f"Aggregation limited to {max_rows} rows",
            {"column": column, "kind": kind, "row_count": len(rows), "max_rows": max_rows},
        )
        rows = rows[:max_rows]

    if takes_raw_values(kind):
        return fn([row[column] for row in rows if row.get(column) is not None])

    numeric = [v for v in (parse_numeric_value(row.get(column)) for row in rows) if v is not None]
    if not numeric:
        return None
    return fn(pl.Series(column, numeric, dtype=pl.Float64), percentile=percentile)


def compute_aggregates(
    data: DataInput,
    calls: list[AggregateCall],
    available_columns: list[str],
) -> dict[str, float | None]:
    """Compute every aggregate call once over the entire dataset.

    Returns:
        Values keyed by call alias, ready for ``substitute_aggregates``.

    Raises:
        FormulaRefError: If a call references a column that does not exist.
    """
    rows = as_rows(data)
    results: dict[str, float | None] = {}
    for call in calls:
        column = find_matching_column(call.column, available_columns)
        if column is None:
            raise FormulaRefError(call.column, available=list(available_columns))
        value = aggregate(rows, column, FUNCTION_KINDS[call.function], max_rows=len(rows))
        results[call.alias] = value
        emit_info(
            EventType.aggregate_computed,
            f"{call.function}({column}) computed",
            {"function": call.function, "column": column, "row_count": len(rows), "value": value},
        )
    return results


def calculate_statistical_summary(data: DataInput, column: str) -> dict[str, float]:
    """Descriptive statistics for one column; 0 where undefined."""
    rows = as_rows(data)
    summary: dict[str, float] = {}
    for kind in ("count", "sum", "avg", "min", "max", "median", "std", "variance"):
        value = aggregate(rows, column, kind)
        summary[kind] = value or 0.0
    return summary


# ---------------------------------------------------------------------------
# Formula calculation
# ---------------------------------------------------------------------------


def _finalize(value: float | None, decimals: int | None) -> float | None:
    if value is None or not math.isfinite(value):
        return None
    if decimals is not None:
        return round(value, decimals)
    return value


def calculate_formula(
    data: DataInput,
    formula: str,
    output_column: str,
    *,
    aggregate_first: bool = False,
    round: int | None = None,
    max_formula_length: int = MAX_FORMULA_LENGTH,
) -> CalculationResult:
    """Add *output_column* computed from *formula* to every row.

    Args:
        data: Rows (or a DataFrame).  Not mutated.
        formula: Formula text, e.g. ``"(Revenue - Cost) / Revenue * 100"``.
        output_column: Name of the computed column.
        aggregate_first: Evaluate once with aggregate calls computed over
            the whole dataset, even if the formula has none.
        round: Round results to this many decimal places.
        max_formula_length: Longest formula accepted, in characters.

    Returns:
        A ``CalculationResult`` with one output row per input row.  Rows
        whose evaluation fails or yields null carry ``None``.

    Raises:
        FormulaParseError: If the formula has invalid syntax.
        FormulaRefError: If an aggregate call references a missing column.
    """
    rows = as_rows(data)
    if not rows:
        return CalculationResult(
            data=[],
            metadata=CalculationMetadata(
                calculation_type="formula",
                original_row_count=0,
                result_row_count=0,
                columns=[],
            ),
        )

    available = list(rows[0].keys())
    context = {"formula": formula, "output_column": output_column, "row_count": len(rows)}

    try:
        tokens, tree = parse_formula_tree(formula, max_formula_length)
    except FormulaParseError as exc:
        emit_error(EventType.formula_parse_failed, str(exc), context, error_code=FORMULA_SYNTAX_ERROR)
        raise

    try:
        calls = extract_aggregate_functions(tokens)
        aggregates = compute_aggregates(rows, calls, available) if (calls or aggregate_first) else None
    except FormulaRefError as exc:
        emit_error(EventType.formula_calculation_failed, str(exc), context, error_code=FORMULA_COLUMN_MISSING)
        raise

    if aggregates is not None:
        # One dataset-wide value; bare columns (if any) read the first row.
        evaluation = evaluate_tree(tree, rows[0], available, aggregates)
        if not evaluation.success:
            emit_warning(
                EventType.formula_calculation_failed,
                evaluation.error or "",
                context,
                error_code=FORMULA_EVAL_ERROR,
            )
        value = _finalize(evaluation.value, round) if evaluation.success else None
        values = [value] * len(rows)
        calculation_type = "aggregate_formula"
    else:
        values = []
        for row in rows:
            evaluation = evaluate_tree(tree, row, available)
            values.append(_finalize(evaluation.value, round) if evaluation.success else None)
        calculation_type = "formula"

    result_rows = [{**row, output_column: value} for row, value in zip(rows, values)]
    null_count = sum(1 for v in values if v is None)
    columns = available if output_column in available else [*available, output_column]

    emit_info(
        EventType.formula_calculated,
        f"Calculated {output_column!r} for {len(result_rows)} rows",
        {**context, "calculation_type": calculation_type, "null_count": null_count},
    )

    return CalculationResult(
        data=result_rows,
        metadata=CalculationMetadata(
            calculation_type=calculation_type,
            original_row_count=len(rows),
            result_row_count=len(result_rows),
            columns=columns,
            null_count=null_count,
        ),
    )
