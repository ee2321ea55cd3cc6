"""Central registry for column aggregation functions."""

from __future__ import annotations

from typing import Any, Callable


_AGGREGATES: dict[str, Callable[..., Any]] = {}
_RAW_INPUT: set[str] = set()


def register_aggregate(name: str, *, raw: bool = False) -> Callable:
    """Decorator that registers an aggregation by name.

    Args:
        name: The lookup name for this aggregation (lowercase).
        raw: If True the function receives the non-null raw cell values as a
            list; otherwise it receives a ``Float64`` Series of the values
            that coerce to numbers.

    Returns:
        The original function, unmodified.
    """

    def decorator(fn: Callable) -> Callable:
        _AGGREGATES[name] = fn
        if raw:
            _RAW_INPUT.add(name)
        else:
            _RAW_INPUT.discard(name)
        return fn

    return decorator


def get_aggregate_fn(name: str) -> Callable:
    """Look up a registered aggregation.

    Raises:
        KeyError: If no aggregation is registered under *name*.
    """
    if name not in _AGGREGATES:
        raise KeyError(f"Unknown aggregation: {name!r}")
    return _AGGREGATES[name]


def takes_raw_values(name: str) -> bool:
    """True if the aggregation counts raw cells rather than numbers."""
    return name in _RAW_INPUT


def list_aggregates() -> list[str]:
    """Names of all registered aggregations, sorted."""
    return sorted(_AGGREGATES)
