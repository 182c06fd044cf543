"""Result types and exceptions for notification delivery.

Every failure the orchestrator surfaces is a DeliveryError carrying the
ErrorType it is recorded under and whether queue redelivery may succeed.
Template failures are defined with the template resolver and re-exported
here so callers can import the whole family from one place.
"""

from dataclasses import dataclass
from typing import List, Optional

from notifier.domain.errors import DeliveryError
from notifier.domain.models import ErrorType
from notifier.templates.models import (
    TemplateError,
    TemplateFetchError,
    TemplateNotFoundError,
    TemplateRenderError,
)


class ValidationFailedError(DeliveryError):
    """Raised when an inbound payload does not match its schema.

    Attributes:
        errors: Every violation, each quoting the offending field path
    """

    error_type = ErrorType.VALIDATION_ERROR
    retryable = False

    def __init__(self, message: str, errors: Optional[List[str]] = None):
        super().__init__(message)
        self.errors = list(errors or [])


class TransportError(DeliveryError):
    """Raised when the mail transport rejects or fails to send a message."""

    error_type = ErrorType.TRANSPORT_ERROR


class StoreError(DeliveryError):
    """Raised when the delivery state store cannot be written."""

    error_type = ErrorType.STORE_ERROR


@dataclass
class BulkSendResult:
    """Outcome of one envelope in a bulk send.

    Attributes:
        envelope_id: Id of the submitted envelope
        notification_id: Id of the created record when delivery succeeded
        error: Error message when delivery failed
    """

    envelope_id: str
    notification_id: Optional[str] = None
    error: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.error is None

    def to_dict(self) -> dict:
        return {
            "envelopeId": self.envelope_id,
            "success": self.success,
            "notificationId": self.notification_id,
            "error": self.error,
        }


__all__ = [
    "DeliveryError",
    "ValidationFailedError",
    "TransportError",
    "StoreError",
    "TemplateError",
    "TemplateNotFoundError",
    "TemplateFetchError",
    "TemplateRenderError",
    "BulkSendResult",
]
