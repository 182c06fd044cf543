"""UTC timestamp helpers.

Every timestamp the pipeline persists or returns to a caller is written by
format_timestamp(): UTC, millisecond precision, 'Z' suffix. The fixed width
keeps string order equal to time order, which the store relies on for its
``created_at`` range key and for newest-first history queries.
"""

from datetime import datetime, timezone
from typing import Optional, Tuple

_MILLIS_FORMAT = "%Y-%m-%dT%H:%M:%S.%f"
_DATE_ONLY_FORMAT = "%Y-%m-%d"


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def ensure_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """Normalize to aware UTC; naive values are taken to be UTC already."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def parse_iso_datetime(iso_string: Optional[str]) -> Optional[datetime]:
    """Parse the ISO 8601 forms clients send, returning aware UTC or None.

    Accepted:
    - 2025-11-04T12:00:00.000Z
    - 2025-11-04T12:00:00+02:00
    - 2025-11-04T12:00:00 (taken as UTC)
    - 2025-11-04

    Example:
        >>> parse_iso_datetime("2025-11-04T14:00:00+02:00").hour
        12
        >>> parse_iso_datetime("yesterday") is None
        True
    """
    if not iso_string or not iso_string.strip():
        return None

    cleaned = iso_string.strip()
    # fromisoformat() only learned the 'Z' suffix in 3.11
    if cleaned.endswith("Z"):
        cleaned = cleaned[:-1] + "+00:00"

    try:
        return ensure_utc(datetime.fromisoformat(cleaned))
    except ValueError:
        pass

    try:
        return ensure_utc(datetime.strptime(iso_string.strip(), _DATE_ONLY_FORMAT))
    except ValueError:
        return None


def format_timestamp(dt: datetime) -> str:
    """Render as fixed-width UTC ISO 8601, e.g. '2025-11-04T12:00:00.000Z'."""
    return ensure_utc(dt).strftime(_MILLIS_FORMAT)[:-3] + "Z"


def day_and_hour(dt: datetime) -> Tuple[str, int]:
    """Split a timestamp into its UTC day (YYYY-MM-DD) and hour (0-23).

    These are the buckets error statistics are aggregated under.
    """
    dt_utc = ensure_utc(dt)
    return dt_utc.strftime(_DATE_ONLY_FORMAT), dt_utc.hour
