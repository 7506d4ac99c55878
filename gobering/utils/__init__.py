"""Utility functions."""

from gobering.utils.time import (
    ensure_utc,
    format_hhmm,
    local_datetime,
    local_today,
    parse_hhmm,
    utc_now,
)

__all__ = [
    "utc_now",
    "ensure_utc",
    "local_today",
    "local_datetime",
    "parse_hhmm",
    "format_hhmm",
]
