"""Domain models for the notification pipeline."""

from .errors import DeliveryError
from .models import (
    SYSTEM,
    UNKNOWN,
    ErrorRecord,
    ErrorSource,
    ErrorStatistic,
    ErrorType,
    NotificationEnvelope,
    NotificationRecord,
    NotificationStatus,
    NotificationType,
    TemplateBundle,
    require_all_types,
)

__all__ = [
    "DeliveryError",
    "NotificationType",
    "NotificationStatus",
    "ErrorType",
    "ErrorSource",
    "NotificationEnvelope",
    "NotificationRecord",
    "TemplateBundle",
    "ErrorRecord",
    "ErrorStatistic",
    "UNKNOWN",
    "SYSTEM",
    "require_all_types",
]
