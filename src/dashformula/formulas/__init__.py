"""Dataset formula parsing, validation and evaluation.

Public API::

    from dashformula.formulas import (
        parse_formula, validate_formula_comprehensive, calculate_formula,
    )
"""

from dashformula.formulas.calculations import (
    CalculationResult,
    aggregate,
    calculate_formula,
    calculate_statistical_summary,
    compute_aggregates,
)
from dashformula.formulas.catalog import (
    COMMON_FORMULAS,
    FormulaDefinition,
    FormulaSuggestion,
    find_applicable_formulas,
    generate_formula_with_columns,
    get_all_categories,
    get_formula_by_id,
    get_formulas_by_category,
    map_formula_columns,
    suggest_formulas_for_data,
)
from dashformula.formulas.columns import find_matching_column, normalize_column_name
from dashformula.formulas.errors import (
    FormulaError,
    FormulaFunctionError,
    FormulaParseError,
    FormulaRefError,
)
from dashformula.formulas.evaluator import RowEvaluation, calculate_formula_for_row
from dashformula.formulas.numeric import is_numeric, parse_numeric_value
from dashformula.formulas.parser import (
    AggregateCall,
    ParseResult,
    Token,
    extract_aggregate_functions,
    parse_formula,
    tokenize_formula,
    validate_formula,
)
from dashformula.formulas.validator import (
    ValidationOptions,
    ValidationResult,
    quick_validate_formula,
    suggest_formula_improvements,
    validate_formula_comprehensive,
    validate_formula_for_chart_type,
    validate_formula_output_type,
)

__all__ = [
    "AggregateCall",
    "COMMON_FORMULAS",
    "CalculationResult",
    "FormulaDefinition",
    "FormulaError",
    "FormulaFunctionError",
    "FormulaParseError",
    "FormulaRefError",
    "FormulaSuggestion",
    "ParseResult",
    "RowEvaluation",
    "Token",
    "ValidationOptions",
    "ValidationResult",
    "aggregate",
    "calculate_formula",
    "calculate_formula_for_row",
    "calculate_statistical_summary",
    "compute_aggregates",
    "extract_aggregate_functions",
    "find_applicable_formulas",
    "find_matching_column",
    "generate_formula_with_columns",
    "get_all_categories",
    "get_formula_by_id",
    "get_formulas_by_category",
    "is_numeric",
    "map_formula_columns",
    "normalize_column_name",
    "parse_formula",
    "parse_numeric_value",
    "quick_validate_formula",
    "suggest_formula_improvements",
    "suggest_formulas_for_data",
    "tokenize_formula",
    "validate_formula",
    "validate_formula_comprehensive",
    "validate_formula_for_chart_type",
    "validate_formula_output_type",
]
