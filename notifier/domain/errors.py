"""Base exception for failures while delivering a notification.

Every failure the orchestrator can surface derives from DeliveryError and
carries the ErrorType it maps to, plus whether an outer redelivery could
plausibly succeed.
"""

from typing import Optional

from .models import ErrorType


class DeliveryError(Exception):
    """Base exception for notification delivery failures.

    Attributes:
        error_type: Taxonomy entry recorded for this failure
        retryable: Whether queue redelivery may succeed
    """

    error_type: ErrorType = ErrorType.PROCESSING_FAILED
    retryable: bool = True

    def __init__(self, message: str, error_type: Optional[ErrorType] = None):
        super().__init__(message)
        self.message = message
        if error_type is not None:
            self.error_type = error_type
