"""Ingress adapter for the synchronous and queue-batch entry surfaces.

Both surfaces reduce to the same per-item pipeline: decode the JSON body,
validate it against its type schema, and hand the sanitized envelope to the
orchestrator. The synchronous surface answers with an HTTP-style response;
the batch surface fans every record out concurrently, waits for all of them
and reports an aggregate summary.
"""

import json
from typing import Any, Optional

from notifier.domain.errors import DeliveryError
from notifier.domain.models import NotificationEnvelope
from notifier.logging import get_logger, log_context
from notifier.notifications.models import ValidationFailedError
from notifier.notifications.service import NotificationOrchestrator
from notifier.utils.concurrency import fan_out
from notifier.validation import SchemaValidator

from .models import (
    BatchSummary,
    HttpRequest,
    HttpResponse,
    QueueMessage,
    now_timestamp,
    parse_batch,
)
from .queue import QueuePublishError, SqsQueuePublisher

logger = get_logger(__name__, component="ingress")

SENT_MESSAGE = "Notification sent successfully"
QUEUED_MESSAGE = "Notification queued successfully"


class _BadRequest(Exception):
    """Request rejected before reaching the orchestrator."""

    def __init__(self, status_code: int, payload: dict):
        super().__init__(payload.get("error", ""))
        self.status_code = status_code
        self.payload = payload


class IngressAdapter:
    """Entry point for HTTP requests and queue batches."""

    def __init__(
        self,
        validator: SchemaValidator,
        orchestrator: Optional[NotificationOrchestrator],
        publisher: Optional[SqsQueuePublisher] = None,
        max_workers: int = 10,
    ):
        """Initialize the adapter.

        Args:
            validator: Schema validator for inbound payloads
            orchestrator: Delivers validated envelopes (None for enqueue-only use)
            publisher: Queue publisher for enqueue_http_request (optional)
            max_workers: Upper bound on concurrently processed batch records
        """
        self.validator = validator
        self.orchestrator = orchestrator
        self.publisher = publisher
        self.max_workers = max_workers

    # Synchronous surface

    def handle_http_request(self, request: HttpRequest) -> HttpResponse:
        """Validate and deliver one notification, answering with its outcome.

        Status codes: 200 delivered, 400 bad body or validation failure,
        405 method not allowed, 500 delivery failure. OPTIONS answers the
        CORS preflight with an empty 200.
        """
        try:
            envelope = self._accept(request)
        except _BadRequest as e:
            return HttpResponse.from_payload(e.status_code, e.payload)
        if envelope is None:
            return HttpResponse(status_code=200, body="")

        try:
            notification_id = self.orchestrator.process(envelope)
        except DeliveryError as e:
            logger.error(
                f"Error processing notification: {e}",
                extra={"event": "ingress.http.failed", "error_type": e.error_type.value},
            )
            return _error_response(500, e.message)
        except Exception as e:
            logger.error(
                f"Unexpected error processing notification: {e}",
                exc_info=True,
                extra={"event": "ingress.http.failed"},
            )
            return _error_response(500, "Internal server error")

        return HttpResponse.from_payload(
            200,
            {
                "success": True,
                "notificationId": notification_id,
                "message": SENT_MESSAGE,
                "timestamp": now_timestamp(),
            },
        )

    def enqueue_http_request(self, request: HttpRequest) -> HttpResponse:
        """Validate one notification and publish it to the queue for later delivery.

        ``createdAt`` defaults to the time of the request. Answers 200 with
        the envelope id once the queue accepted the message.
        """
        try:
            envelope = self._accept(request)
        except _BadRequest as e:
            return HttpResponse.from_payload(e.status_code, e.payload)
        if envelope is None:
            return HttpResponse(status_code=200, body="")

        if self.publisher is None:
            logger.error("No queue publisher configured", extra={"event": "ingress.enqueue.failed"})
            return _error_response(500, "Failed to queue notification: queue is not configured")

        try:
            self.publisher.publish(envelope)
        except QueuePublishError as e:
            return _error_response(500, str(e))

        return HttpResponse.from_payload(
            200,
            {
                "message": QUEUED_MESSAGE,
                "notificationId": envelope.id,
                "timestamp": envelope.model_dump(mode="json", by_alias=True)["createdAt"],
            },
        )

    def _accept(self, request: HttpRequest) -> Optional[NotificationEnvelope]:
        """Run the request checks shared by both synchronous paths.

        Returns None for a CORS preflight.

        Raises:
            _BadRequest: With the status code and payload to answer
        """
        method = (request.method or "").upper()
        if method == "OPTIONS":
            return None
        if method != "POST":
            raise _BadRequest(405, {"error": "Method not allowed. Use POST."})
        if request.body is None or not request.body.strip():
            raise _BadRequest(400, {"error": "Request body is required"})

        try:
            raw = json.loads(request.body)
        except (ValueError, RecursionError):
            raise _BadRequest(400, _error_payload("Request body must be valid JSON")) from None

        if not isinstance(raw, dict):
            raise _BadRequest(400, _error_payload("Request body must be a JSON object"))

        result = self.validator.validate_envelope(raw)
        if not result.is_valid:
            logger.warning(
                f"Rejected notification: {'; '.join(result.errors)}",
                extra={"event": "ingress.http.invalid", "validation_errors": result.errors},
            )
            payload = _error_payload("Validation failed")
            payload["details"] = result.errors
            raise _BadRequest(400, payload)

        return result.envelope

    # Queue surface

    def handle_queue_batch(self, event: Any) -> BatchSummary:
        """Deliver every record of a queue batch.

        Records are processed concurrently; one record's failure never stops
        the others. Retryable failures are listed in ``batch_item_failures``
        so the queue redelivers them; invalid records are terminal.

        Raises:
            MalformedBatchError: If the event has no record list or every
                record body is empty
        """
        messages = parse_batch(event)
        if not messages:
            logger.info("Received empty batch", extra={"event": "ingress.batch.empty"})
            return BatchSummary()

        logger.info(
            f"Processing {len(messages)} queue messages",
            extra={"event": "ingress.batch.started", "batch_size": len(messages)},
        )

        outcomes = fan_out(self._process_message, messages, max_workers=self.max_workers)

        summary = BatchSummary(processed=len(outcomes))
        for outcome in outcomes:
            if outcome.ok:
                summary.successful += 1
                continue
            summary.failed += 1
            if getattr(outcome.error, "retryable", True):
                summary.batch_item_failures.append(outcome.item.message_id)
            logger.error(
                f"Failed to process queue message {outcome.item.message_id}: {outcome.error}",
                extra={
                    "event": "ingress.batch.item_failed",
                    "message_id": outcome.item.message_id,
                    "error_type": type(outcome.error).__name__,
                },
            )

        logger.info(
            f"Results: {summary.successful} successful, {summary.failed} failed",
            extra={
                "event": "ingress.batch.completed",
                "processed": summary.processed,
                "successful": summary.successful,
                "failed": summary.failed,
            },
        )
        return summary

    def _process_message(self, message: QueueMessage) -> str:
        with log_context(message_id=message.message_id):
            try:
                raw = json.loads(message.body)
            except (ValueError, RecursionError) as e:
                raise ValidationFailedError(f"Message body is not valid JSON: {e}") from e

            result = self.validator.validate_envelope(raw)
            if not result.is_valid:
                raise ValidationFailedError(
                    f"Validation failed: {'; '.join(result.errors)}", errors=result.errors
                )

            return self.orchestrator.process(result.envelope)


def _error_payload(message: str) -> dict:
    return {"success": False, "error": message, "timestamp": now_timestamp()}


def _error_response(status_code: int, message: str) -> HttpResponse:
    return HttpResponse.from_payload(status_code, _error_payload(message))
