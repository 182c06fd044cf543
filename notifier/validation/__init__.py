"""Per-type schema validation for inbound notifications."""

from .schemas import NOTIFICATION_SCHEMAS, EnvelopeSchema
from .validator import (
    TYPE_REQUIRED_MESSAGE,
    SchemaValidator,
    ValidationResult,
    format_validation_errors,
)

__all__ = [
    "SchemaValidator",
    "ValidationResult",
    "NOTIFICATION_SCHEMAS",
    "EnvelopeSchema",
    "TYPE_REQUIRED_MESSAGE",
    "format_validation_errors",
]
