"""Coercion of raw cell values to numbers.

Uploaded datasets carry numbers as display strings (``"$1,234.56"``,
``"12%"``, ``"(500)"``).  ``parse_numeric_value`` is the single place where
those are turned into floats; everything downstream sees ``float | None``.
"""

from __future__ import annotations

import math
import re
from decimal import Decimal
from numbers import Real
from typing import Any

# Values beyond this are treated as data errors, not business metrics.
MAX_SAFE_VALUE = 1e15

_STRIP_RE = re.compile(r"[€$£¥,\s%]")
_FLOAT_PREFIX_RE = re.compile(r"^[+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?")


def parse_numeric_value(value: Any) -> float | None:
    """Return *value* as a float, or ``None`` if it is not numeric.

    Rules:
    - ``None`` and booleans are not numeric.
    - Real numbers and ``Decimal``s pass through when finite and
      representable as a float.
    - Strings are trimmed; an accounting negative ``(1,234)`` becomes
      ``-1234``; currency symbols, thousands separators, whitespace and
      percent signs are stripped; the leading float prefix is parsed.
    - Parsed strings above ``MAX_SAFE_VALUE`` in magnitude are rejected.

    Examples:
        ``"$1,234.56"`` -> ``1234.56``; ``"12%"`` -> ``12.0``;
        ``"€ 0"`` -> ``0.0``; ``"n/a"`` -> ``None``.
    """
    if value is None or isinstance(value, bool):
        return None

    if isinstance(value, (Real, Decimal)):
        try:
            num = float(value)
        except (OverflowError, ValueError):
            return None
        if not math.isfinite(num):
            return None
        return num

    if not isinstance(value, str):
        return None

    cleaned = value.strip()
    negative = cleaned.startswith("(") and cleaned.endswith(")")
    if negative:
        cleaned = cleaned[1:-1].strip()

    cleaned = _STRIP_RE.sub("", cleaned)
    match = _FLOAT_PREFIX_RE.match(cleaned)
    if match is None:
        return None

    try:
        num = float(match.group(0))
    except ValueError:
        return None

    if not math.isfinite(num) or abs(num) > MAX_SAFE_VALUE:
        return None
    return -num if negative else num


def is_numeric(value: Any) -> bool:
    """True if *value* coerces to a number."""
    return parse_numeric_value(value) is not None
