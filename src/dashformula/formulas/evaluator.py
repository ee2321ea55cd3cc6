"""Tree-walking evaluator for parsed formula expressions.

Evaluation is null-propagating: a missing or non-numeric operand, or a
division/remainder by zero, makes the enclosing expression ``None``
instead of raising.  Only structural problems (an unresolved column, an
aggregate call with no precomputed value) fail the evaluation.

Aggregate calls are never evaluated against a single row.  Callers first
compute them over the whole dataset (see ``calculations.compute_aggregates``)
and pass the results in; ``substitute_aggregates`` swaps each call for its
value before the row-wise walk.
"""

from __future__ import annotations

import math
from typing import Any

from lark import Tree
from pydantic import BaseModel

from dashformula.formulas.columns import find_matching_column, normalize_column_name
from dashformula.formulas.errors import FormulaError, FormulaFunctionError, FormulaRefError
from dashformula.formulas.numeric import parse_numeric_value
from dashformula.formulas.parser import aggregate_alias, parse_formula_tree


class RowEvaluation(BaseModel):
    """Outcome of evaluating a formula for one row."""

    success: bool
    value: float | None = None
    error: str | None = None
    used_columns: list[str] = []


# ---------------------------------------------------------------------------
# Aggregate substitution (pass 1)
# ---------------------------------------------------------------------------


def substitute_aggregates(tree: Tree, aggregates: dict[str, float | None]) -> Tree:
    """Return a copy of *tree* with every ``FUNC(column)`` replaced by its value.

    Args:
        tree: Parse tree from ``parse_formula_tree()``.
        aggregates: Precomputed values keyed by ``aggregate_alias()``.  A
            ``None`` value (no numeric data) propagates as null.

    Raises:
        FormulaFunctionError: If a call has no entry in *aggregates*.
    """
    if tree.data == "aggregate":
        func_name = str(tree.children[0])
        column = normalize_column_name(str(tree.children[1]))
        alias = aggregate_alias(func_name, column)
        if alias not in aggregates:
            raise FormulaFunctionError(
                func_name,
                f"Aggregate function {func_name}({column}) must be pre-calculated",
            )
        return Tree("value", [aggregates[alias]])

    children = [
        substitute_aggregates(child, aggregates) if isinstance(child, Tree) else child
        for child in tree.children
    ]
    return Tree(tree.data, children)


# ---------------------------------------------------------------------------
# Row-wise evaluation (pass 2)
# ---------------------------------------------------------------------------


def _eval(
    node: Tree,
    row: dict[str, Any],
    columns: list[str],
    used: list[str],
) -> float | None:
    """Recursively evaluate a tree node against one row."""
    rule = node.data

    # Literals
    if rule == "number":
        return float(str(node.children[0]))
    if rule == "value":
        return node.children[0]

    # Column reference
    if rule == "column":
        name = normalize_column_name(str(node.children[0]))
        resolved = find_matching_column(name, columns)
        if resolved is None:
            raise FormulaRefError(name, available=list(columns))
        if resolved not in used:
            used.append(resolved)
        return parse_numeric_value(row.get(resolved))

    if rule == "aggregate":
        func_name = str(node.children[0])
        column = normalize_column_name(str(node.children[1]))
        raise FormulaFunctionError(
            func_name,
            f"Aggregate function {func_name}({column}) must be pre-calculated",
        )

    # Unary
    if rule in ("neg", "pos"):
        operand = _eval(node.children[0], row, columns, used)
        if operand is None:
            return None
        return -operand if rule == "neg" else operand

    # Binary arithmetic: evaluate both sides so every column is resolved.
    left = _eval(node.children[0], row, columns, used)
    right = _eval(node.children[1], row, columns, used)
    if left is None or right is None:
        return None

    if rule == "add":
        return left + right
    if rule == "sub":
        return left - right
    if rule == "mul":
        return left * right
    if rule == "div":
        if right == 0:
            return None
        return left / right
    if rule == "mod":
        if right == 0:
            return None
        if not math.isfinite(left):
            return math.nan
        return math.fmod(left, right)

    raise FormulaError(f"Unknown node type: {rule}")


def evaluate_tree(
    tree: Tree,
    row: dict[str, Any],
    available_columns: list[str],
    aggregates: dict[str, float | None] | None = None,
) -> RowEvaluation:
    """Evaluate a parsed formula for a single row.

    Args:
        tree: Parse tree from ``parse_formula_tree()``.
        row: Mapping of column name to raw cell value.
        available_columns: Dataset columns references are resolved against.
        aggregates: Precomputed aggregate values, required if the formula
            contains aggregate calls.

    Returns:
        A ``RowEvaluation``.  Null operands and division by zero give
        ``success=True, value=None``.
    """
    used: list[str] = []
    try:
        if aggregates is not None:
            tree = substitute_aggregates(tree, aggregates)
        value = _eval(tree, row, available_columns, used)
    except FormulaError as exc:
        return RowEvaluation(success=False, error=str(exc), used_columns=used)
    return RowEvaluation(success=True, value=value, used_columns=used)


def calculate_formula_for_row(
    formula: str,
    row: dict[str, Any],
    available_columns: list[str],
    aggregates: dict[str, float | None] | None = None,
) -> RowEvaluation:
    """Parse *formula* and evaluate it for a single row.

    Never raises; syntax errors are returned as ``success=False``.
    """
    try:
        _, tree = parse_formula_tree(formula)
    except FormulaError as exc:
        return RowEvaluation(success=False, error=str(exc))
    return evaluate_tree(tree, row, available_columns, aggregates)
