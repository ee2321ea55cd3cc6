"""Resolution of formula column references onto dataset columns."""

from __future__ import annotations

import re

_WS_RE = re.compile(r"\s+")


def normalize_column_name(name: str) -> str:
    """Strip surrounding brackets and whitespace from a column reference.

    Spaces, underscores and hyphens inside the name are preserved.
    """
    normalized = name.strip()
    if normalized.startswith("["):
        normalized = normalized[1:]
    if normalized.endswith("]"):
        normalized = normalized[:-1]
    return normalized.strip()


def _separator_key(name: str) -> str:
    return _WS_RE.sub("_", name).casefold()


def find_matching_column(column_ref: str, available_columns: list[str]) -> str | None:
    """Find the dataset column a formula reference points at.

    Match priority (first hit wins):

    1. Exact match.
    2. Case-insensitive match.
    3. Spaces converted to underscores, then underscores converted to
       spaces (``"Total Sales"`` <-> ``"Total_Sales"``), exact.
    4. The same separator normalization, case-insensitive.

    Ties within a step resolve to the first column in *available_columns*
    order, so the result is deterministic.

    Returns:
        The matching column name, or ``None``.
    """
    requested = normalize_column_name(column_ref)
    if not requested:
        return None

    if requested in available_columns:
        return requested

    lowered = requested.casefold()
    for col in available_columns:
        if col.casefold() == lowered:
            return col

    underscored = _WS_RE.sub("_", requested)
    if underscored in available_columns:
        return underscored

    spaced = requested.replace("_", " ")
    if spaced in available_columns:
        return spaced

    key = _separator_key(requested)
    for col in available_columns:
        if _separator_key(col) == key:
            return col

    return None
