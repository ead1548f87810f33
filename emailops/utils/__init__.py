"""Emailops utility functions."""

from emailops.utils.date_utils import (
    utcnow,
    days_ago,
    parse_datetime,
    convert_unix_to_datetime,
    to_iso,
    format_sql_datetime,
)
from emailops.utils.parsing import to_int, safe_ratio, first_present

__all__ = [
    "utcnow",
    "days_ago",
    "parse_datetime",
    "convert_unix_to_datetime",
    "to_iso",
    "format_sql_datetime",
    "to_int",
    "safe_ratio",
    "first_present",
]
