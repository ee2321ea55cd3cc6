"""Column aggregation functions."""
