"""dashformula -- formula engine for dashboard computed columns."""

__version__ = "0.3.0"
