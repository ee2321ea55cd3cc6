"""Lark-based tokenizer and parser for dataset formulas.

Supports:
- Column references: bare identifiers (``Revenue``) or bracketed names
  with spaces (``[Total Sales]``)
- Numeric literals (``100``, ``0.5``)
- Binary ``+ - * / %`` with the usual precedence, unary ``+``/``-``
- Aggregate calls over a single column: ``SUM(col)``, ``AVG(col)``,
  ``COUNT(col)``, ``MIN(col)``, ``MAX(col)``

Parsing never raises: ``parse_formula`` returns a ``ParseResult``.  The
flat token list is what validation inspects; the lark tree is what the
evaluator walks.
"""

from __future__ import annotations

import re
from typing import Literal

from lark import Lark, Tree
from lark import Token as LarkToken
from lark.exceptions import UnexpectedCharacters, UnexpectedEOF, UnexpectedInput, UnexpectedToken
from pydantic import BaseModel, ConfigDict

from dashformula.formulas.columns import find_matching_column, normalize_column_name
from dashformula.formulas.errors import FormulaParseError

MAX_FORMULA_LENGTH = 500

AGGREGATE_FUNCTIONS = ("SUM", "AVG", "COUNT", "MIN", "MAX")

# Operator precedence (lowest to highest):
#   1. Addition/subtraction: + -
#   2. Multiplication/division/remainder: * / %
#   3. Unary plus/minus
#   4. Atoms: number, column, aggregate call, parenthesized expr
GRAMMAR = r"""
?start: sum

?sum: product
    | sum _PLUS product    -> add
    | sum _MINUS product   -> sub

?product: unary
    | product _STAR unary     -> mul
    | product _SLASH unary    -> div
    | product _PERCENT unary  -> mod

?unary: atom
    | _MINUS unary  -> neg
    | _PLUS unary   -> pos

?atom: NUMBER                              -> number
    | COLUMN                               -> column
    | BRACKETED_COLUMN                     -> column
    | FUNCTION _LPAR column_ref _RPAR      -> aggregate
    | _LPAR sum _RPAR

?column_ref: COLUMN | BRACKETED_COLUMN

// An identifier directly followed by "(" is a function name.
FUNCTION.2: /[A-Za-z_][A-Za-z0-9_]*(?=\()/

BRACKETED_COLUMN: /\[[^\[\]]*\]/
COLUMN: /[A-Za-z_][A-Za-z0-9_]*/
NUMBER: /(?:\d+(?:\.\d*)?|\.\d+)/

_PLUS: "+"
_MINUS: "-"
_STAR: "*"
_SLASH: "/"
_PERCENT: "%"
_LPAR: "("
_RPAR: ")"

%import common.WS
%ignore WS
"""

_parser = Lark(GRAMMAR, parser="lalr", lexer="basic")

_ALLOWED_CHARS_RE = re.compile(r"[A-Za-z0-9_\s\[\]().,+\-*/%]")

_TOKEN_TYPES: dict[str, str] = {
    "NUMBER": "number",
    "COLUMN": "column",
    "BRACKETED_COLUMN": "column",
    "FUNCTION": "function",
    "_PLUS": "operator",
    "_MINUS": "operator",
    "_STAR": "operator",
    "_SLASH": "operator",
    "_PERCENT": "operator",
    "_LPAR": "paren",
    "_RPAR": "paren",
}


# ────────────────────────────────────────────────────────────────
# Models
# ────────────────────────────────────────────────────────────────


TokenType = Literal["number", "column", "operator", "function", "paren"]


class Token(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: TokenType
    value: str
    position: int = 0


class ParseResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    success: bool
    tokens: list[Token] | None = None
    error: str | None = None
    error_position: int | None = None


class AggregateCall(BaseModel):
    model_config = ConfigDict(frozen=True)

    function: str
    column: str
    alias: str


class ColumnCheck(BaseModel):
    valid: bool
    errors: list[str] = []


def aggregate_alias(function: str, column: str) -> str:
    """Key under which a precomputed aggregate is looked up."""
    return f"{function}_{column}"


# ────────────────────────────────────────────────────────────────
# Tokenizer
# ────────────────────────────────────────────────────────────────


def _failure(message: str, position: int | None = None) -> ParseResult:
    return ParseResult(success=False, error=message, error_position=position)


def tokenize_formula(formula: str, max_length: int = MAX_FORMULA_LENGTH) -> ParseResult:
    """Split *formula* into typed tokens.

    Bracketed column names are returned without their brackets.  A leading
    minus is emitted as an operator token; the parser decides whether it
    is unary.

    Returns:
        A ``ParseResult`` with ``tokens`` on success.
    """
    if len(formula) > max_length:
        return _failure(f"Formula too long (max {max_length} characters)")

    bad = sorted({ch for ch in formula if not _ALLOWED_CHARS_RE.match(ch)})
    if bad:
        shown = ", ".join(repr(ch) for ch in bad)
        return _failure(
            f"Formula contains invalid characters: {shown}",
            formula.index(bad[0]),
        )

    tokens: list[Token] = []
    try:
        for tok in _parser.lex(formula):
            token_type = _TOKEN_TYPES[tok.type]
            value = str(tok)
            if tok.type == "BRACKETED_COLUMN":
                value = normalize_column_name(value)
                if not value:
                    return _failure("Empty column reference '[]'", tok.start_pos)
            tokens.append(Token(type=token_type, value=value, position=tok.start_pos or 0))
    except UnexpectedCharacters as exc:
        pos = exc.pos_in_stream
        if exc.char == "[":
            return _failure("Unclosed bracket in column reference", pos)
        return _failure(f"Unexpected character {exc.char!r} at position {pos}", pos)

    return ParseResult(success=True, tokens=tokens)


# ────────────────────────────────────────────────────────────────
# Parser
# ────────────────────────────────────────────────────────────────


def _check_parentheses(tokens: list[Token]) -> ParseResult | None:
    depth = 0
    for token in tokens:
        if token.type != "paren":
            continue
        depth += 1 if token.value == "(" else -1
        if depth < 0:
            return _failure(
                f"Mismatched parentheses (extra closing ')' at position {token.position})",
                token.position,
            )
    if depth != 0:
        return _failure("Mismatched parentheses (unclosed '(')")
    return None


def _check_functions(tokens: list[Token]) -> ParseResult | None:
    for token in tokens:
        if token.type == "function" and token.value not in AGGREGATE_FUNCTIONS:
            return _failure(
                f"Unknown function: {token.value}. Allowed: {', '.join(AGGREGATE_FUNCTIONS)}",
                token.position,
            )
    return None


def _describe(token: LarkToken) -> str:
    if token.type == "$END":
        return "end of formula"
    return f"{str(token)!r} at position {token.start_pos}"


def _analyze(formula: str, max_length: int) -> tuple[ParseResult, Tree | None]:
    if not formula or not formula.strip():
        return _failure("Formula is empty"), None

    result = tokenize_formula(formula, max_length=max_length)
    if not result.success:
        return result, None

    tokens = result.tokens or []
    failure = _check_parentheses(tokens) or _check_functions(tokens)
    if failure is not None:
        return failure, None

    try:
        tree = _parser.parse(formula)
    except UnexpectedToken as exc:
        return _failure(f"Invalid expression: unexpected {_describe(exc.token)}", exc.token.start_pos), None
    except UnexpectedEOF:
        return _failure("Invalid expression: unexpected end of formula"), None
    except UnexpectedInput as exc:
        pos = getattr(exc, "pos_in_stream", None)
        return _failure(f"Invalid expression: {exc}", pos), None

    return result, tree


def parse_formula(formula: str, max_length: int = MAX_FORMULA_LENGTH) -> ParseResult:
    """Parse and validate the syntax of *formula*.

    Checks, in order: non-empty input, tokenization (length and allowed
    characters), parenthesis balance, function names, then the expression
    structure.

    Never raises.
    """
    return _analyze(formula, max_length)[0]


def parse_formula_tree(formula: str, max_length: int = MAX_FORMULA_LENGTH) -> tuple[list[Token], Tree]:
    """Parse *formula* into its token list and lark tree.

    Raises:
        FormulaParseError: If the formula has invalid syntax.
    """
    result, tree = _analyze(formula, max_length)
    if not result.success or tree is None:
        raise FormulaParseError(result.error or "Failed to parse formula", result.error_position)
    return result.tokens or [], tree


# ────────────────────────────────────────────────────────────────
# Token inspection
# ────────────────────────────────────────────────────────────────


def extract_aggregate_functions(tokens: list[Token]) -> list[AggregateCall]:
    """List the aggregate calls in a token stream, in order of appearance.

    Each call is reported once even if it appears several times.
    """
    calls: list[AggregateCall] = []
    seen: set[str] = set()

    for i, token in enumerate(tokens):
        if token.type != "function" or token.value not in AGGREGATE_FUNCTIONS:
            continue
        column: str | None = None
        for nxt in tokens[i + 1:]:
            if nxt.type == "column":
                column = nxt.value
                break
            if nxt.type == "paren" and nxt.value == ")":
                break
        if column is None:
            continue
        alias = aggregate_alias(token.value, column)
        if alias not in seen:
            seen.add(alias)
            calls.append(AggregateCall(function=token.value, column=column, alias=alias))

    return calls


def validate_formula(formula: str, available_columns: list[str]) -> ColumnCheck:
    """Check syntax and that every referenced column exists."""
    result = parse_formula(formula)
    if not result.success:
        return ColumnCheck(valid=False, errors=[result.error or "Failed to parse formula"])

    errors: list[str] = []
    for token in result.tokens or []:
        if token.type == "column" and find_matching_column(token.value, available_columns) is None:
            errors.append(
                f'Column not found: "{token.value}". '
                f"Available columns: {', '.join(available_columns)}"
            )
    return ColumnCheck(valid=not errors, errors=errors)
