"""Utility functions for time handling and concurrent fan-out."""

from .concurrency import Outcome, fan_out
from .timestamps import (
    day_and_hour,
    ensure_utc,
    format_timestamp,
    parse_iso_datetime,
    utc_now,
)

__all__ = [
    # Timestamps
    "utc_now",
    "ensure_utc",
    "parse_iso_datetime",
    "format_timestamp",
    "day_and_hour",
    # Concurrency
    "Outcome",
    "fan_out",
]
