"""Dataset-aware formula validation.

``validate_formula_comprehensive`` checks a formula against a sample of
the rows it will run on: referenced columns exist and hold numbers,
divisors are not (all) zero, the formula is not overly complex, and a
trial evaluation produces a sane value.  It never raises; problems are
collected as blocking ``errors`` or advisory ``warnings``.
"""

from __future__ import annotations

import math
from typing import Any, Literal, Mapping

from pydantic import BaseModel, Field

from dashformula.formulas.calculations import DataInput, as_rows, compute_aggregates
from dashformula.formulas.columns import find_matching_column
from dashformula.formulas.errors import FormulaError
from dashformula.formulas.evaluator import evaluate_tree
from dashformula.formulas.numeric import MAX_SAFE_VALUE, parse_numeric_value
from dashformula.formulas.parser import (
    AGGREGATE_FUNCTIONS,
    MAX_FORMULA_LENGTH,
    Token,
    extract_aggregate_functions,
    parse_formula,
    parse_formula_tree,
)
from dashformula.logging.events import (
    FORMULA_INVALID,
    FORMULA_SYNTAX_ERROR,
    EventType,
    emit_warning,
)

ChartType = Literal["scorecard", "bar", "line", "pie", "scatter"]
OutputType = Literal["number", "percentage", "ratio", "currency"]

# Complexity weights in tenths of a point, so the total stays integral.
_COMPLEXITY_WEIGHTS: dict[str, int] = {
    "number": 1,
    "column": 5,
    "operator": 10,
    "function": 20,
    "paren": 2,
}

_EXTRA_TEST_ROWS = 4
_OUTPUT_SAMPLE_ROWS = 100


class ValidationOptions(BaseModel):
    max_formula_length: int = MAX_FORMULA_LENGTH
    require_numeric_result: bool = True
    check_division_by_zero: bool = True
    max_complexity: int = 50
    type_sample_rows: int = 100
    zero_sample_rows: int = 1000
    test_sample_rows: int = 10
    large_value_threshold: float = MAX_SAFE_VALUE


class ValidationMetadata(BaseModel):
    used_columns: list[str] = []
    has_aggregations: bool = False
    aggregation_functions: list[str] = []
    complexity: int = 0


class ValidationResult(BaseModel):
    valid: bool
    errors: list[str] = []
    warnings: list[str] = []
    metadata: ValidationMetadata = Field(default_factory=ValidationMetadata)


class QuickValidation(BaseModel):
    valid: bool
    error: str | None = None


class SafetyCheck(BaseModel):
    """Issues found by a single safety check, split by severity."""

    errors: list[str] = []
    warnings: list[str] = []

    @property
    def safe(self) -> bool:
        return not self.errors and not self.warnings


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _coerce_options(options: ValidationOptions | Mapping[str, Any] | None) -> ValidationOptions:
    if options is None:
        return ValidationOptions()
    if isinstance(options, ValidationOptions):
        return options
    return ValidationOptions(**dict(options))


def calculate_complexity(tokens: list[Token]) -> int:
    """Weighted token score: number 0.1, column 0.5, operator 1, function 2, paren 0.2.

    The total is rounded half-up to an integer.
    """
    tenths = sum(_COMPLEXITY_WEIGHTS.get(token.type, 0) for token in tokens)
    return (tenths + 5) // 10


def _column_owners(tokens: list[Token]) -> dict[str, set[str | None]]:
    """Map each column reference to the functions it appears under.

    ``None`` marks a bare (row-wise) reference.
    """
    owners: dict[str, set[str | None]] = {}
    for i, token in enumerate(tokens):
        if token.type != "column":
            continue
        owner = tokens[i - 2].value if i >= 2 and tokens[i - 2].type == "function" else None
        owners.setdefault(token.value, set()).add(owner)
    return owners


def _max_paren_depth(tokens: list[Token]) -> int:
    depth = max_depth = 0
    for token in tokens:
        if token.type != "paren":
            continue
        if token.value == "(":
            depth += 1
            max_depth = max(max_depth, depth)
        else:
            depth -= 1
    return max_depth


def _has_division(tokens: list[Token]) -> bool:
    return any(t.type == "operator" and t.value in ("/", "%") for t in tokens)


def check_numeric_columns(
    rows: list[dict[str, Any]],
    columns: list[str],
    sample_rows: int = 100,
) -> SafetyCheck:
    """Require every column to hold mostly numeric values in the sample."""
    check = SafetyCheck()
    sample = rows[:sample_rows]
    for column in columns:
        values = [row.get(column) for row in sample]
        numeric = sum(1 for v in values if parse_numeric_value(v) is not None)
        if numeric == 0:
            check.errors.append(f'Column "{column}" does not contain numeric values')
        elif numeric < len(values) * 0.5:
            check.warnings.append(
                f'Column "{column}" has less than 50% numeric values ({numeric}/{len(values)})'
            )
    return check


def check_division_by_zero_risk(
    tokens: list[Token],
    rows: list[dict[str, Any]],
    columns: list[str],
    sample_rows: int = 1000,
) -> SafetyCheck:
    """Flag columns that are zero in some (warning) or all (error) sampled rows.

    Only runs when the formula divides or takes a remainder.  Columns with
    no numeric values at all are left to ``check_numeric_columns``.
    """
    check = SafetyCheck()
    if not _has_division(tokens):
        return check

    sample = rows[:sample_rows]
    for column in columns:
        values = [parse_numeric_value(row.get(column)) for row in sample]
        if not any(v == 0 for v in values):
            continue
        if all(v is None or v == 0 for v in values):
            check.errors.append(
                f'Column "{column}" contains only zeros - will cause division by zero'
            )
        else:
            check.warnings.append(
                f'Column "{column}" contains some zeros - may cause division by zero in some rows'
            )
    return check


def _test_evaluation(
    formula: str,
    rows: list[dict[str, Any]],
    available: list[str],
    opts: ValidationOptions,
) -> SafetyCheck:
    """Trial-evaluate the formula on the first sample rows."""
    check = SafetyCheck()
    sample = rows[: opts.test_sample_rows]
    if not sample:
        return check

    try:
        tokens, tree = parse_formula_tree(formula, opts.max_formula_length)
        calls = extract_aggregate_functions(tokens)
        aggregates = compute_aggregates(sample, calls, available) if calls else None

        first = evaluate_tree(tree, sample[0], available, aggregates)
        produced: list[float] = []
        if not first.success:
            check.errors.append(f"Formula evaluation failed: {first.error}")
        elif first.value is None:
            check.warnings.append("Formula evaluation resulted in null value")
        elif not math.isfinite(first.value):
            check.errors.append("Formula evaluation resulted in non-finite value (Infinity or NaN)")
        else:
            produced.append(first.value)
            if abs(first.value) > opts.large_value_threshold:
                check.warnings.append(
                    "Formula evaluation resulted in very large value - possible overflow risk"
                )

        if not calls and len(sample) > 1:
            extra = sample[1 : 1 + _EXTRA_TEST_ROWS]
            failed = 0
            for row in extra:
                result = evaluate_tree(tree, row, available)
                if result.success and result.value is not None and math.isfinite(result.value):
                    produced.append(result.value)
                else:
                    failed += 1
            if failed:
                check.warnings.append(f"Formula failed on {failed}/{len(extra)} sample rows")

        if opts.require_numeric_result and first.success and not produced:
            check.errors.append("Formula did not produce a numeric result on any sample row")
    except FormulaError as exc:
        check.errors.append(f"Formula evaluation failed: {exc}")
    except Exception as exc:
        check.errors.append(f"Unexpected error during evaluation: {exc}")

    return check


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def validate_formula_comprehensive(
    formula: str,
    data: DataInput,
    options: ValidationOptions | Mapping[str, Any] | None = None,
) -> ValidationResult:
    """Validate *formula* against *data*.

    Args:
        formula: Formula text.
        data: Rows (or a DataFrame) the formula will run on.  Only bounded
            prefixes are inspected.
        options: ``ValidationOptions`` or a dict of its fields.

    Returns:
        A ``ValidationResult``; ``valid`` is true iff ``errors`` is empty.
        Never raises.
    """
    opts = _coerce_options(options)
    rows = as_rows(data)

    parsed = parse_formula(formula, opts.max_formula_length)
    if not parsed.success:
        result = ValidationResult(valid=False, errors=[parsed.error or "Failed to parse formula"])
        emit_warning(
            EventType.formula_parse_failed,
            result.errors[0],
            {"formula": formula, "errors": result.errors},
            error_code=FORMULA_SYNTAX_ERROR,
        )
        return result

    tokens = parsed.tokens or []
    functions: list[str] = []
    for token in tokens:
        if token.type == "function" and token.value in AGGREGATE_FUNCTIONS and token.value not in functions:
            functions.append(token.value)
    complexity = calculate_complexity(tokens)
    metadata = ValidationMetadata(
        has_aggregations=bool(functions),
        aggregation_functions=functions,
        complexity=complexity,
    )

    errors: list[str] = []
    warnings: list[str] = []

    if not rows:
        errors.append("No data available for validation")
    else:
        available = list(rows[0].keys())

        # Column references
        owners = _column_owners(tokens)
        used: list[str] = []
        numeric_required: list[str] = []
        for ref, ref_owners in owners.items():
            column = find_matching_column(ref, available)
            if column is None:
                errors.append(
                    f'Column not found: "{ref}". Available columns: {", ".join(available)}'
                )
                continue
            if column not in used:
                used.append(column)
            # COUNT() accepts any column type.
            if ref_owners - {"COUNT"} and column not in numeric_required:
                numeric_required.append(column)
        metadata.used_columns = used

        numeric_check = check_numeric_columns(rows, numeric_required, opts.type_sample_rows)
        errors.extend(numeric_check.errors)
        warnings.extend(numeric_check.warnings)

        if opts.check_division_by_zero:
            zero_check = check_division_by_zero_risk(tokens, rows, used, opts.zero_sample_rows)
            errors.extend(zero_check.errors)
            warnings.extend(zero_check.warnings)

        if complexity > opts.max_complexity:
            errors.append(f"Formula too complex (complexity: {complexity}, max: {opts.max_complexity})")
        elif complexity > opts.max_complexity * 0.7:
            warnings.append(f"Formula complexity is high ({complexity}/{opts.max_complexity})")

        if not errors:
            trial = _test_evaluation(formula, rows, available, opts)
            errors.extend(trial.errors)
            warnings.extend(trial.warnings)

    result = ValidationResult(valid=not errors, errors=errors, warnings=warnings, metadata=metadata)
    if not result.valid:
        emit_warning(
            EventType.formula_validation_failed,
            errors[0],
            {"formula": formula, "errors": errors, "row_count": len(rows)},
            error_code=FORMULA_INVALID,
        )
    return result


def quick_validate_formula(formula: str, max_length: int = MAX_FORMULA_LENGTH) -> QuickValidation:
    """Syntax-only check for as-you-type feedback."""
    parsed = parse_formula(formula, max_length)
    return QuickValidation(valid=parsed.success, error=parsed.error)


def validate_formula_for_chart_type(
    formula: str,
    data: DataInput,
    chart_type: ChartType,
    options: ValidationOptions | Mapping[str, Any] | None = None,
) -> ValidationResult:
    """Comprehensive validation plus chart-specific advisories."""
    validation = validate_formula_comprehensive(formula, data, options)
    if not validation.valid:
        return validation

    warnings = list(validation.warnings)
    has_aggregations = validation.metadata.has_aggregations
    if chart_type == "scorecard" and not has_aggregations:
        warnings.append(
            "Scorecard typically shows aggregated metrics. Consider using SUM(), AVG(), or COUNT()"
        )
    if chart_type in ("bar", "line") and has_aggregations:
        warnings.append(
            "Bar/line charts with formulas may need group-by. Ensure aggregation is intentional."
        )
    return validation.model_copy(update={"warnings": warnings})


def validate_formula_output_type(
    formula: str,
    data: DataInput,
    expected_type: OutputType,
) -> ValidationResult:
    """Check that results fall in a plausible range for *expected_type*."""
    rows = as_rows(data)
    validation = validate_formula_comprehensive(formula, rows)
    if not validation.valid:
        return validation

    available = list(rows[0].keys())
    sample = rows[:_OUTPUT_SAMPLE_ROWS]
    values: list[float] = []
    try:
        tokens, tree = parse_formula_tree(formula)
        calls = extract_aggregate_functions(tokens)
        aggregates = compute_aggregates(rows, calls, available) if calls else None
    except FormulaError as exc:
        return validation.model_copy(update={"valid": False, "errors": [str(exc)]})

    for row in sample:
        result = evaluate_tree(tree, row, available, aggregates)
        if result.success and result.value is not None and math.isfinite(result.value):
            values.append(result.value)

    if not values:
        return validation.model_copy(
            update={"valid": False, "errors": ["Formula produced no valid numeric results"]}
        )

    warnings = list(validation.warnings)
    low, high = min(values), max(values)
    if expected_type == "percentage":
        if high > 1000:
            warnings.append(
                f"Percentage values seem too large (max: {high:g}). Did you mean to multiply by 100?"
            )
        if low < 0:
            warnings.append("Percentage values include negative numbers")
    elif expected_type == "ratio":
        if abs(low) > 1000 or abs(high) > 1000:
            warnings.append(f"Ratio values seem very large (range: {low:g} to {high:g})")
    elif expected_type == "currency":
        if low < 0 < high:
            warnings.append("Currency values include both positive and negative amounts")

    return validation.model_copy(update={"warnings": warnings})


def suggest_formula_improvements(formula: str, data: DataInput) -> list[str]:
    """Advisory hints about a syntactically valid formula.  Empty if it does not parse."""
    parsed = parse_formula(formula)
    if not parsed.success:
        return []

    tokens = parsed.tokens or []
    rows = as_rows(data)
    suggestions: list[str] = []

    for token, nxt in zip(tokens, tokens[1:]):
        if token.type == "operator" and token.value == "*" and nxt.type == "number" and float(nxt.value) == 100:
            suggestions.append("Formula multiplies by 100 for percentage - ensure this is intentional")
            break

    has_aggregation = any(t.type == "function" for t in tokens)
    if _has_division(tokens) and not has_aggregation and len(rows) > 1:
        suggestions.append(
            "Formula calculates per-row ratio. Consider using SUM() or AVG() for aggregate "
            'metrics like "SUM(Revenue) / SUM(Cost)"'
        )

    if _max_paren_depth(tokens) > 3:
        suggestions.append(
            "Formula has deep nesting - consider breaking into multiple calculated columns for clarity"
        )

    return suggestions
