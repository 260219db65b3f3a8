"""Adapters for normalizing restaurant backend data.

This package provides helpers for money, date and time-of-day parsing and
for collecting article IDs from the several shapes the backend uses.
"""

from bistro_client.adapters.normalization import format_time, int_set, parse_date, parse_time, to_decimal

__all__ = [
    "format_time",
    "int_set",
    "parse_date",
    "parse_time",
    "to_decimal",
]
