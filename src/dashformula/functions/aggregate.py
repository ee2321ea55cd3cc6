"""Built-in column aggregations.

Numeric aggregations receive a non-empty ``Float64`` Series with nulls
already removed and return a float.
"""

from __future__ import annotations

from collections import Counter
from typing import Any

import polars as pl

from dashformula.functions.registry import register_aggregate


@register_aggregate("sum")
def agg_sum(values: pl.Series, **_: Any) -> float:
    return float(values.sum())


@register_aggregate("avg")
def agg_avg(values: pl.Series, **_: Any) -> float:
    return float(values.mean())


@register_aggregate("count", raw=True)
def agg_count(values: list[Any], **_: Any) -> float:
    """Count of non-null cells, numeric or not."""
    return float(len(values))


@register_aggregate("min")
def agg_min(values: pl.Series, **_: Any) -> float:
    return float(values.min())


@register_aggregate("max")
def agg_max(values: pl.Series, **_: Any) -> float:
    return float(values.max())


@register_aggregate("median")
def agg_median(values: pl.Series, **_: Any) -> float:
    return float(values.median())


@register_aggregate("mode")
def agg_mode(values: pl.Series, **_: Any) -> float:
    """Most frequent value; ties go to the value seen first."""
    return float(Counter(values.to_list()).most_common(1)[0][0])


@register_aggregate("std")
def agg_std(values: pl.Series, **_: Any) -> float:
    """Population standard deviation."""
    return float(values.std(ddof=0))


@register_aggregate("variance")
def agg_variance(values: pl.Series, **_: Any) -> float:
    """Population variance."""
    return float(values.var(ddof=0))


@register_aggregate("percentile")
def agg_percentile(values: pl.Series, percentile: float | None = None, **_: Any) -> float:
    """Linear-interpolated percentile; *percentile* is clamped to 0-100."""
    p = 50.0 if percentile is None else min(max(float(percentile), 0.0), 100.0)
    return float(values.quantile(p / 100.0, interpolation="linear"))


@register_aggregate("distinct")
def agg_distinct(values: pl.Series, **_: Any) -> float:
    return float(values.n_unique())


@register_aggregate("first")
def agg_first(values: pl.Series, **_: Any) -> float:
    return float(values[0])


@register_aggregate("last")
def agg_last(values: pl.Series, **_: Any) -> float:
    return float(values[-1])
