"""Data models and exceptions for template resolution and rendering."""

from dataclasses import dataclass

from notifier.domain.errors import DeliveryError
from notifier.domain.models import ErrorType


class TemplateError(DeliveryError):
    """Base exception for template-related failures."""

    error_type = ErrorType.TEMPLATE_FETCH_ERROR


class TemplateNotFoundError(TemplateError):
    """Raised when the blob store lacks an artifact of a template bundle."""

    error_type = ErrorType.TEMPLATE_NOT_FOUND
    retryable = False


class TemplateFetchError(TemplateError):
    """Raised when the blob store could not be read."""

    error_type = ErrorType.TEMPLATE_FETCH_ERROR


class TemplateRenderError(TemplateError):
    """Raised when a template has malformed placeholder syntax."""

    error_type = ErrorType.RENDER_ERROR
    retryable = False


@dataclass(frozen=True)
class RenderedContent:
    """Rendered email content ready for the mail transport.

    Attributes:
        subject: Single-line subject
        html: HTML body
        text: Plain text body
    """

    subject: str
    html: str
    text: str
