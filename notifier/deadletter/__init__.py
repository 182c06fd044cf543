"""Dead-letter diagnosis and error statistics."""

from .classifier import (
    HANDLER_ERROR_TYPE,
    DeadLetterClassifier,
    compose_error_message,
    extract_field_names,
)

__all__ = [
    "DeadLetterClassifier",
    "HANDLER_ERROR_TYPE",
    "compose_error_message",
    "extract_field_names",
]
