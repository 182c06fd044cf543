"""Durations in config.yaml: compact ("5m", "1h30m", "500ms") or ISO 8601 ("PT5M")."""

import re
from datetime import timedelta

_ISO_PATTERN = re.compile(
    r"P(?:(?P<d>\d+)D)?(?:T(?=\d)(?:(?P<h>\d+)H)?(?:(?P<m>\d+)M)?(?:(?P<s>\d+(?:\.\d+)?)S)?)?",
    re.IGNORECASE,
)
_COMPACT_TOKEN = re.compile(r"(\d+(?:\.\d+)?)(ms|s|m|h|d)")
_COMPACT_PATTERN = re.compile(r"(?:\d+(?:\.\d+)?(?:ms|s|m|h|d))+")

_UNIT_SECONDS = {"ms": 0.001, "s": 1, "m": 60, "h": 3600, "d": 86400}

_DISPLAY_UNITS = (("day", 86400), ("hour", 3600), ("minute", 60))


class DurationParseError(ValueError):
    pass


def parse_duration(duration_str: str, allow_zero: bool = False) -> float:
    """Convert a duration string to seconds.

    Examples:
        >>> parse_duration("1h30m")
        5400.0
        >>> parse_duration("PT1.5S")
        1.5

    Raises:
        DurationParseError: On unparseable input, or zero unless ``allow_zero``
    """
    text = duration_str.strip() if isinstance(duration_str, str) else ""
    if not text:
        raise DurationParseError("Duration string cannot be empty")

    if text[0] in "pP":
        seconds = _iso_seconds(text)
    else:
        seconds = _compact_seconds(text)

    if seconds == 0 and not allow_zero:
        raise DurationParseError(f"Duration cannot be zero: '{duration_str}'")
    return seconds


def parse_timedelta(duration_str: str, allow_zero: bool = False) -> timedelta:
    return timedelta(seconds=parse_duration(duration_str, allow_zero=allow_zero))


def _iso_seconds(text: str) -> float:
    match = _ISO_PATTERN.fullmatch(text)
    if not match or not any(match.groupdict().values()):
        raise DurationParseError(f"'{text}' is not an ISO 8601 duration such as PT5M or P1D")

    parts = {key: float(value) for key, value in match.groupdict().items() if value}
    return (
        parts.get("d", 0) * _UNIT_SECONDS["d"]
        + parts.get("h", 0) * _UNIT_SECONDS["h"]
        + parts.get("m", 0) * _UNIT_SECONDS["m"]
        + parts.get("s", 0)
    )


def _compact_seconds(text: str) -> float:
    lowered = text.lower()
    if not _COMPACT_PATTERN.fullmatch(lowered):
        raise DurationParseError(
            f"'{text}' is not a duration; use number+unit pairs (ms, s, m, h, d) such as 5m or 1m30s"
        )
    return float(sum(float(amount) * _UNIT_SECONDS[unit] for amount, unit in _COMPACT_TOKEN.findall(lowered)))


def validate_duration_range(
    duration_seconds: float,
    min_seconds: float,
    max_seconds: float,
    label: str = "Duration",
) -> None:
    """Raise DurationParseError unless min_seconds <= duration_seconds <= max_seconds."""
    if duration_seconds < min_seconds:
        problem, limit = "too short", f"Minimum is {describe_seconds(min_seconds)}"
    elif duration_seconds > max_seconds:
        problem, limit = "too long", f"Maximum is {describe_seconds(max_seconds)}"
    else:
        return
    raise DurationParseError(f"{label} {problem}: {describe_seconds(duration_seconds)}. {limit}.")


def describe_seconds(seconds: float) -> str:
    """Largest whole unit that fits, e.g. 7200 -> '2 hours', 30 -> '30 seconds'."""
    value, unit = seconds, "second"
    for name, size in _DISPLAY_UNITS:
        if seconds >= size:
            value, unit = seconds // size, name
            break
    if float(value).is_integer():
        value = int(value)
    return f"{value} {unit}{'' if value == 1 else 's'}"
