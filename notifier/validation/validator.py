"""Schema validation routing for inbound notifications.

The validator looks up the schema registered for a notification type,
validates a raw payload against it and returns either a sanitized
NotificationEnvelope or the complete list of violations. It performs no I/O,
which lets the dead-letter classifier reuse it purely for diagnosis.
"""

import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Type, Union

from pydantic import ValidationError

from notifier.domain.models import NotificationEnvelope, NotificationType

from .schemas import NOTIFICATION_SCHEMAS, EnvelopeSchema

TYPE_REQUIRED_MESSAGE = "Notification type is required"

# Pydantic phrases its messages as "Input should be ...", "String should have ...".
_SHOULD_PATTERN = re.compile(r"^\w+ should (.*)$", re.DOTALL)


@dataclass
class ValidationResult:
    """Outcome of validating one raw payload.

    Attributes:
        errors: Every violation found, each quoting the offending field path
        envelope: Sanitized envelope when validation succeeded
        unknown_type: True when the type tag is not a known NotificationType
        notification_type: The type the payload was validated against, if known
    """

    errors: List[str] = field(default_factory=list)
    envelope: Optional[NotificationEnvelope] = None
    unknown_type: bool = False
    notification_type: Optional[NotificationType] = None

    @property
    def is_valid(self) -> bool:
        return self.envelope is not None and not self.errors


class SchemaValidator:
    """Validates and sanitizes raw notification payloads by type."""

    def __init__(self, schemas: Optional[Dict[NotificationType, Type[EnvelopeSchema]]] = None):
        self.schemas = schemas if schemas is not None else NOTIFICATION_SCHEMAS

    def validate_envelope(self, raw: Any) -> ValidationResult:
        """Validate a raw envelope, reading the type tag from the payload itself."""
        if not isinstance(raw, Mapping):
            return ValidationResult(errors=['"value" must be an object'])
        return self.validate(raw.get("type"), raw)

    def validate(
        self, notification_type: Union[NotificationType, str, None], raw: Any
    ) -> ValidationResult:
        """Validate ``raw`` against the schema registered for ``notification_type``.

        Collects every violation instead of stopping at the first, and strips
        fields the schema does not declare.

        Args:
            notification_type: Type tag selecting the schema
            raw: Raw envelope mapping (id, userEmail, userId, createdAt, data)

        Returns:
            ValidationResult with either a sanitized envelope or the errors
        """
        if notification_type is None or notification_type == "":
            return ValidationResult(errors=[TYPE_REQUIRED_MESSAGE])

        try:
            resolved_type = NotificationType(notification_type)
        except ValueError:
            return ValidationResult(
                errors=[f"Unknown notification type: '{notification_type}'"],
                unknown_type=True,
            )

        if not isinstance(raw, Mapping):
            return ValidationResult(
                errors=['"value" must be an object'], notification_type=resolved_type
            )

        schema = self.schemas[resolved_type]
        candidate = {**raw, "type": resolved_type.value}

        try:
            validated = schema.model_validate(candidate)
        except ValidationError as e:
            return ValidationResult(
                errors=format_validation_errors(e), notification_type=resolved_type
            )

        sanitized = validated.model_dump(mode="json", by_alias=True, exclude_none=True)
        return ValidationResult(
            envelope=NotificationEnvelope.model_validate(sanitized),
            notification_type=resolved_type,
        )


def format_validation_errors(exc: ValidationError) -> List[str]:
    """Convert pydantic errors into messages that quote the dotted field path.

    Examples:
        '"data.fullname" is required'
        '"data.amount" must be greater than 0'
        '"userEmail" must be a valid email address'
    """
    messages = []
    for error in exc.errors():
        field_path = ".".join(str(part) for part in error["loc"]) or "value"
        messages.append(_describe_error(field_path, error))
    return messages


def _describe_error(field_path: str, error: Dict[str, Any]) -> str:
    if error["type"] == "missing":
        return f'"{field_path}" is required'

    if error["type"] == "value_error":
        ctx_error = error.get("ctx", {}).get("error")
        text = str(ctx_error) if ctx_error is not None else error["msg"]
        if text.startswith("must"):
            return f'"{field_path}" {text}'
        return f'"{field_path}" is invalid: {text}'

    match = _SHOULD_PATTERN.match(error["msg"])
    if match:
        return f'"{field_path}" must {match.group(1)}'
    return f'"{field_path}" is invalid: {error["msg"]}'
