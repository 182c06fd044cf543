"""Root logger setup and the two output formats.

``json`` emits one object per line for log shippers; ``key-value`` is the
human-readable form for terminals. Both carry every ``extra`` field plus the
fields of the active log_context().
"""

import json
import logging
import sys
from datetime import datetime, timezone
from typing import IO, Any, Dict, Iterator, Literal, Optional, Tuple

from .context import get_log_context

LogFormat = Literal["json", "key-value"]

SERVICE_NAME = "notification-pipeline"

# Extra fields holding recipient addresses; masked before formatting
MASKED_FIELDS = ("recipient", "user_email")

# Attributes every LogRecord carries; anything else came from extra or context
_RECORD_ATTRS = frozenset(logging.LogRecord("", 0, "", 0, "", (), None).__dict__) | {
    "message",
    "asctime",
    "taskName",
}


def mask_email(address: Optional[str]) -> str:
    """Mask the local part of an email address for log output.

    Masking an already masked address returns it unchanged.

    Example:
        >>> mask_email("ana@example.com")
        'a**@example.com'
    """
    if not address or "@" not in address:
        return address or ""
    local, _, domain = address.partition("@")
    return f"{local[:1]}{'*' * max(len(local) - 1, 1)}@{domain}"


def _extra_fields(record: logging.LogRecord, skip=frozenset()) -> Iterator[Tuple[str, Any]]:
    for key, value in record.__dict__.items():
        if key not in _RECORD_ATTRS and key not in skip and not key.startswith("_"):
            yield key, value


def _utc_iso(created: float) -> str:
    return datetime.fromtimestamp(created, tz=timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%f")[:-3] + "Z"


class ContextualFilter(logging.Filter):
    """Stamps service/environment and the active log_context() on each record.

    Fields passed explicitly through ``extra`` win over context fields.
    Recipient addresses in MASKED_FIELDS are masked.
    """

    def __init__(self, service: str = SERVICE_NAME, environment: str = "local"):
        super().__init__()
        self.service = service
        self.environment = environment

    def filter(self, record: logging.LogRecord) -> bool:
        record.service = self.service
        record.environment = self.environment

        for key, value in get_log_context().items():
            if not hasattr(record, key):
                setattr(record, key, value)

        for key in MASKED_FIELDS:
            value = getattr(record, key, None)
            if isinstance(value, str):
                setattr(record, key, mask_email(value))

        return True


class JSONFormatter(logging.Formatter):
    """One JSON object per line: timestamp, level, logger, message, then extras."""

    def format(self, record: logging.LogRecord) -> str:
        log_obj: Dict[str, Any] = {
            "timestamp": _utc_iso(record.created),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        log_obj.update((key, self._jsonable(value)) for key, value in _extra_fields(record))

        if record.exc_info:
            log_obj["exc_info"] = self.formatException(record.exc_info)

        return json.dumps(log_obj, ensure_ascii=False, default=str)

    @staticmethod
    def _jsonable(value: Any) -> Any:
        if isinstance(value, datetime):
            return value.isoformat()
        if isinstance(value, (str, int, float, bool, type(None), list, dict)):
            return value
        return str(value)


class KeyValueFormatter(logging.Formatter):
    """``<base format> key=value ...`` with extras sorted by key."""

    def format(self, record: logging.LogRecord) -> str:
        base = super().format(record)
        pairs = [
            f"{key}={self._format_value(value)}"
            for key, value in sorted(_extra_fields(record, skip={"service", "environment"}))
        ]
        return " ".join([base, *pairs]) if pairs else base

    @staticmethod
    def _format_value(value: Any) -> str:
        if value is None:
            return "null"
        if isinstance(value, bool):
            return "true" if value else "false"
        if isinstance(value, datetime):
            return value.isoformat()
        text = str(value)
        if isinstance(value, str) and any(ch in text for ch in " =,"):
            return f'"{text}"'
        return text


def _build_formatter(format_type: str) -> logging.Formatter:
    if format_type == "json":
        return JSONFormatter()
    if format_type == "key-value":
        return KeyValueFormatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s", datefmt="%Y-%m-%d %H:%M:%S")
    raise ValueError(f"Invalid log format: {format_type}. Must be 'json' or 'key-value'")


def configure_logging(
    level: str = "INFO",
    format_type: LogFormat = "key-value",
    environment: str = "local",
    stream: Optional[IO[str]] = None,
) -> None:
    """Replace the root logger's handlers with one formatted stream handler.

    Args:
        level: DEBUG, INFO, WARNING, ERROR or CRITICAL
        format_type: 'json' or 'key-value'
        environment: Label stamped on every record (production, staging, local)
        stream: Output stream (stdout if None)

    Raises:
        ValueError: If level or format_type is invalid
    """
    numeric_level = logging.getLevelName(level.upper())
    if not isinstance(numeric_level, int):
        raise ValueError(f"Invalid log level: {level}")

    handler = logging.StreamHandler(stream or sys.stdout)
    handler.setFormatter(_build_formatter(format_type))
    handler.addFilter(ContextualFilter(environment=environment))

    root_logger = logging.getLogger()
    root_logger.setLevel(numeric_level)
    root_logger.handlers.clear()
    root_logger.addHandler(handler)

    # AWS SDK debug output drowns delivery logs
    for noisy in ("botocore", "boto3", "urllib3"):
        logging.getLogger(noisy).setLevel(max(numeric_level, logging.INFO))

    logging.getLogger(__name__).info(
        "Logging configured",
        extra={
            "event": "logging.configured",
            "component": "logging",
            "log_level": level.upper(),
            "log_format": format_type,
        },
    )
