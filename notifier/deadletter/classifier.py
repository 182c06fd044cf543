"""Dead-letter classification.

Messages land here after the delivery queue exhausted its retries. The
classifier reconstructs the original payload, reruns schema validation to
diagnose why delivery failed, and records one ErrorRecord plus one
ErrorStatistic per message. It is the terminal sink of the pipeline and
never raises: if classification itself fails, a minimal critical record
is written instead.
"""

import json
import re
import traceback
from datetime import datetime
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple

from notifier.domain.models import (
    SYSTEM,
    UNKNOWN,
    ErrorRecord,
    ErrorSource,
    ErrorStatistic,
    ErrorType,
)
from notifier.ingress.models import QueueMessage
from notifier.logging import get_logger, log_context
from notifier.persistence import DeliveryStateStore
from notifier.utils.timestamps import format_timestamp, utc_now
from notifier.validation import TYPE_REQUIRED_MESSAGE, SchemaValidator, ValidationResult

logger = get_logger(__name__, component="deadletter")

HANDLER_ERROR_TYPE = "HANDLER_ERROR"

_MISSING_PATTERN = re.compile(r'"([^"]+)" is required')
_INVALID_PATTERNS = (
    re.compile(r'"([^"]+)" must\b'),
    re.compile(r'"([^"]+)" is not allowed'),
    re.compile(r'"([^"]+)" is invalid'),
    re.compile(r'"([^"]+)" fails'),
)


def extract_field_names(errors: List[str]) -> Tuple[List[str], List[str]]:
    """Split validation messages into missing and invalid field names.

    Field names are the quoted paths at the start of each message, e.g.
    '"data.fullname" is required' yields the missing field "data.fullname".

    Returns:
        Tuple of (missing_fields, invalid_fields) without duplicates
    """
    missing: List[str] = []
    invalid: List[str] = []

    for error in errors:
        if error == TYPE_REQUIRED_MESSAGE:
            _append_unique(missing, "type")
            continue
        if error.startswith("Unknown notification type"):
            _append_unique(invalid, "type")
            continue

        match = _MISSING_PATTERN.search(error)
        if match:
            _append_unique(missing, match.group(1))
            continue

        for pattern in _INVALID_PATTERNS:
            match = pattern.search(error)
            if match:
                _append_unique(invalid, match.group(1))
                break

    return missing, invalid


def _append_unique(items: List[str], value: str) -> None:
    if value not in items:
        items.append(value)


def compose_error_message(
    error_type: ErrorType,
    notification_type: str = UNKNOWN,
    missing_fields: Optional[List[str]] = None,
    invalid_fields: Optional[List[str]] = None,
) -> str:
    """Build the human-readable summary stored on a dead-letter ErrorRecord."""
    if error_type is ErrorType.SCHEMA_VALIDATION_ERROR:
        message = f"Schema validation failed for notification type '{notification_type}'."
        if missing_fields:
            message += f" Missing required fields: {', '.join(missing_fields)}."
        if invalid_fields:
            message += f" Invalid fields: {', '.join(invalid_fields)}."
        return message

    if error_type is ErrorType.PARSE_ERROR:
        return "Failed to parse JSON message from the queue."

    if error_type is ErrorType.PROCESSING_FAILED:
        return "General processing failure during notification handling."

    return f"Unknown error type: {error_type.value}"


class DeadLetterClassifier:
    """Diagnoses dead-lettered messages and records why they failed."""

    def __init__(
        self,
        validator: SchemaValidator,
        store: DeliveryStateStore,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.validator = validator
        self.store = store
        self.clock = clock

    def handle_batch(self, event: Any) -> Dict[str, Any]:
        """Classify every message of a dead-letter event.

        Always answers status 200 so the dead-letter queue never redelivers.
        """
        records = event.get("Records") if isinstance(event, Mapping) else None
        if not isinstance(records, list):
            logger.error(
                "Dead-letter event has no 'Records' list",
                extra={"event": "deadletter.batch.malformed"},
            )
            records = []

        logger.info(
            f"Processing {len(records)} error messages from the dead-letter queue",
            extra={"event": "deadletter.batch.started", "batch_size": len(records)},
        )

        classified: Dict[str, int] = {}
        for index, record in enumerate(records):
            error_record = self.classify(QueueMessage.from_record(record, index))
            key = error_record.error_type.value if error_record else "UNRECORDED"
            classified[key] = classified.get(key, 0) + 1

        return {
            "statusCode": 200,
            "body": json.dumps(
                {
                    "message": "Error records processed",
                    "processed": len(records),
                    "classified": classified,
                    "timestamp": format_timestamp(self.clock()),
                }
            ),
        }

    def classify(self, message: QueueMessage) -> Optional[ErrorRecord]:
        """Write one ErrorRecord (and one statistic) for a dead-lettered message.

        Returns:
            The stored record, the critical record if classification failed,
            or None if not even the critical record could be written
        """
        with log_context(message_id=message.message_id):
            try:
                error_record = self._diagnose(message)
                self.store.append_error(error_record)
            except Exception as e:
                return self._record_critical(e, message)

            logger.info(
                f"{error_record.error_type.value} record saved: {error_record.id}",
                extra={
                    "event": "deadletter.classified",
                    "error_type": error_record.error_type.value,
                    "notification_type": error_record.notification_type,
                    "retry_count": error_record.retry_count,
                },
            )
            self._record_statistic(error_record)
            return error_record

    def is_recoverable(self, raw: Any) -> bool:
        """Check whether a dead-lettered payload would now pass validation.

        A recoverable message is a candidate for manual requeue.

        Args:
            raw: Message body string or already decoded mapping
        """
        if isinstance(raw, (str, bytes)):
            try:
                raw = json.loads(raw)
            except (ValueError, RecursionError):
                logger.info("Message not recoverable: body is not valid JSON")
                return False

        result = self.validator.validate_envelope(raw)
        if not result.is_valid:
            logger.info(
                f"Message not recoverable: {', '.join(result.errors)}",
                extra={"event": "deadletter.recoverable.checked", "recoverable": False},
            )
            return False

        logger.info(
            "Message appears recoverable, could be requeued",
            extra={"event": "deadletter.recoverable.checked", "recoverable": True},
        )
        return True

    def _diagnose(self, message: QueueMessage) -> ErrorRecord:
        try:
            parsed = json.loads(message.body)
        except (ValueError, RecursionError) as e:
            logger.warning(f"Failed to parse message: {e}", extra={"event": "deadletter.parse_failed"})
            return self._new_record(message, ErrorType.PARSE_ERROR, {})

        fields = parsed if isinstance(parsed, Mapping) else {}
        result = self.validator.validate_envelope(parsed)
        if result.is_valid:
            return self._new_record(message, ErrorType.PROCESSING_FAILED, fields)

        return self._new_record(message, ErrorType.SCHEMA_VALIDATION_ERROR, fields, result)

    def _new_record(
        self,
        message: QueueMessage,
        error_type: ErrorType,
        fields: Mapping[str, Any],
        result: Optional[ValidationResult] = None,
    ) -> ErrorRecord:
        notification_type = _text(fields.get("type"))
        missing_fields: List[str] = []
        invalid_fields: List[str] = []
        validation_errors: List[str] = []
        schema_used = None

        if result is not None:
            validation_errors = list(result.errors)
            missing_fields, invalid_fields = extract_field_names(validation_errors)
            schema_used = notification_type

        return ErrorRecord(
            created_at=self.clock(),
            error_type=error_type,
            source=ErrorSource.DEAD_LETTER_QUEUE,
            error_message=compose_error_message(error_type, notification_type, missing_fields, invalid_fields),
            original_message=message.body,
            source_message_id=message.message_id,
            original_notification_id=_text(fields.get("id"), default=None),
            notification_type=notification_type,
            user_email=_text(fields.get("userEmail")),
            user_id=_text(fields.get("userId")),
            missing_fields=missing_fields,
            invalid_fields=invalid_fields,
            validation_errors=validation_errors,
            schema_used=schema_used,
            retry_count=max(message.receive_count, 0),
        )

    def _record_statistic(self, error_record: ErrorRecord) -> None:
        try:
            self.store.append_statistic(
                ErrorStatistic.for_failure(error_record.error_type, error_record.notification_type, at=self.clock())
            )
        except Exception as e:
            # Best effort: the error record is already stored
            logger.error(
                f"Failed to log error statistics: {e}",
                exc_info=True,
                extra={"event": "deadletter.statistic.failed", "error_type": error_record.error_type.value},
            )

    def _record_critical(self, error: Exception, message: QueueMessage) -> Optional[ErrorRecord]:
        logger.error(
            f"Failed to process error record: {error}",
            exc_info=True,
            extra={"event": "deadletter.handler.failed"},
        )
        critical = ErrorRecord(
            error_type=ErrorType.CRITICAL_HANDLER_ERROR,
            source=ErrorSource.ERROR_HANDLER,
            error_message=f"Error handler failed: {error}",
            original_message=message.body,
            source_message_id=message.message_id,
            notification_type=HANDLER_ERROR_TYPE,
            user_email=SYSTEM,
            user_id=SYSTEM,
            retry_count=max(message.receive_count, 0),
            stack_trace="".join(traceback.format_exception(type(error), error, error.__traceback__)),
        )
        try:
            self.store.append_error(critical)
        except Exception as save_error:
            logger.critical(
                f"Failed to log critical error: {save_error}",
                extra={"event": "deadletter.critical.unrecorded"},
            )
            return None
        return critical


def _text(value: Any, default: Optional[str] = UNKNOWN) -> Optional[str]:
    if isinstance(value, str) and value.strip():
        return value
    return default
