"""Structured logging for the notification pipeline.

Log calls carry a stable ``event`` name in ``extra`` and inherit scoped
fields (notification_id, notification_type, message_id) from log_context().
"""

import logging
from typing import Optional

from .config import configure_logging, mask_email
from .context import clear_log_context, get_log_context, log_context


class ComponentLoggerAdapter(logging.LoggerAdapter):
    """LoggerAdapter that merges its component field with per-call extra."""

    def process(self, msg, kwargs):
        # Call's extra takes precedence over the adapter's
        kwargs["extra"] = {**self.extra, **kwargs.get("extra", {})}
        return msg, kwargs


def get_logger(name: str, component: Optional[str] = None):
    """Module logger, wrapped so every record carries ``component`` when one is given.

    Example:
        >>> logger = get_logger(__name__, component="orchestrator")
        >>> logger.info("Notification sent", extra={"event": "notification.sent"})
    """
    base = logging.getLogger(name)
    return ComponentLoggerAdapter(base, {"component": component}) if component else base


__all__ = [
    "ComponentLoggerAdapter",
    "get_logger",
    "configure_logging",
    "log_context",
    "get_log_context",
    "clear_log_context",
    "mask_email",
]
