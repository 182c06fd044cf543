"""Notification delivery: orchestration, template context and mail transport.

- NotificationOrchestrator: PENDING -> SENT/FAILED state machine per envelope
- SMTPClient: smtplib mail transport with TLS/SSL support
- build_template_context: render variables for an envelope
- DeliveryError family: failures carrying their ErrorType and retryability
"""

from .models import (
    BulkSendResult,
    DeliveryError,
    StoreError,
    TemplateError,
    TemplateFetchError,
    TemplateNotFoundError,
    TemplateRenderError,
    TransportError,
    ValidationFailedError,
)
from .payloads import build_template_context
from .service import NotificationOrchestrator
from .smtp_client import SMTPClient, build_sender_address

__all__ = [
    # Main service
    "NotificationOrchestrator",
    "BulkSendResult",
    # Exceptions
    "DeliveryError",
    "ValidationFailedError",
    "TransportError",
    "StoreError",
    "TemplateError",
    "TemplateNotFoundError",
    "TemplateFetchError",
    "TemplateRenderError",
    # Components
    "SMTPClient",
    # Utilities
    "build_template_context",
    "build_sender_address",
]
