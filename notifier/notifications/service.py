"""Notification orchestrator.

Drives one validated envelope through the delivery state machine:

1. Persist a PENDING record under a fresh id
2. Resolve the template bundle for the notification type
3. Render it with the payload and identity/timestamp context
4. Send through the mail transport
5. Persist SENT with the transport message id

Any failure after step 1 moves the record to FAILED, writes an ErrorRecord
and re-raises, so every call that created a record leaves it in exactly one
terminal status.
"""

import logging
import time
import traceback
from datetime import datetime
from typing import Callable, List, Optional, Sequence
from uuid import uuid4

from notifier.domain.models import (
    ErrorRecord,
    ErrorSource,
    NotificationEnvelope,
    NotificationRecord,
    NotificationStatus,
    NotificationType,
)
from notifier.logging import get_logger, log_context, mask_email
from notifier.persistence import DEFAULT_HISTORY_LIMIT, DeliveryStateStore, PersistenceError
from notifier.templates import TemplateResolver
from notifier.utils.concurrency import fan_out
from notifier.utils.timestamps import utc_now

from .models import BulkSendResult, DeliveryError, StoreError
from .payloads import build_template_context

logger = get_logger(__name__, component="orchestrator")

TEST_USER_ID = "test-user"
TEST_USER_NAME = "Test User"


class NotificationOrchestrator:
    """Delivers notifications and records their lifecycle.

    Holds no per-notification state, so one instance is shared by every
    worker thread of a batch.
    """

    def __init__(
        self,
        template_resolver: TemplateResolver,
        store: DeliveryStateStore,
        transport,
        bulk_wave_size: int = 10,
        bulk_wave_pause: float = 1.0,
        clock: Callable[[], datetime] = utc_now,
        sleep: Callable[[float], None] = time.sleep,
        logger_instance: Optional[logging.Logger] = None,
    ):
        """Initialize the orchestrator.

        Args:
            template_resolver: Resolves and renders template bundles
            store: Delivery state store
            transport: Mail transport with ``send(recipient, content) -> message_id``
            bulk_wave_size: Envelopes sent concurrently per bulk wave
            bulk_wave_pause: Seconds to pause between bulk waves
            clock: Returns the current UTC time
            sleep: Sleep function used between bulk waves (for tests)
            logger_instance: Logger instance (uses module logger if None)
        """
        self.template_resolver = template_resolver
        self.store = store
        self.transport = transport
        self.bulk_wave_size = bulk_wave_size
        self.bulk_wave_pause = bulk_wave_pause
        self.clock = clock
        self.sleep = sleep
        self.logger = logger_instance or logger

    def process(self, envelope: NotificationEnvelope) -> str:
        """Deliver one validated notification.

        Args:
            envelope: Envelope that passed schema validation

        Returns:
            Id of the notification record (not the envelope id)

        Raises:
            StoreError: If the PENDING record could not be written, or the
                SENT transition failed after the message went out
            TemplateNotFoundError, TemplateFetchError, TemplateRenderError:
                If the template could not be resolved or rendered
            TransportError: If the mail transport failed
        """
        record = NotificationRecord.pending_for(envelope, str(uuid4()), self.clock())

        with log_context(notification_id=record.id, notification_type=envelope.type.value):
            try:
                self.store.create_pending(record)
            except PersistenceError as e:
                self.logger.error(
                    f"Failed to persist pending notification: {e}",
                    extra={"event": "notification.store.failed"},
                )
                raise StoreError(f"Failed to persist notification record: {e}") from e

            self.logger.info(
                f"Processing notification {record.id} of type {envelope.type.value}",
                extra={
                    "event": "notification.pending",
                    "original_notification_id": envelope.id,
                    "recipient": mask_email(envelope.user_email),
                },
            )

            try:
                bundle = self.template_resolver.get_template(envelope.type)
                context = build_template_context(envelope, record.id, record.created_at)
                content = self.template_resolver.render(bundle, context)
                message_id = self.transport.send(envelope.user_email, content)
            except DeliveryError as e:
                self._record_failure(record, envelope, e)
                raise
            except Exception as e:
                error = DeliveryError(f"Unexpected error delivering notification: {e}")
                self._record_failure(record, envelope, error)
                raise error from e

            try:
                self.store.transition(
                    record.id,
                    record.created_at,
                    NotificationStatus.SENT,
                    sent_at=self.clock(),
                    transport_message_id=message_id,
                )
            except PersistenceError as e:
                self.logger.error(
                    f"Notification sent but SENT status could not be stored: {e}",
                    extra={"event": "notification.store.failed", "transport_message_id": message_id},
                )
                error = StoreError(
                    f"Notification {record.id} was sent as {message_id} but could not be marked as sent: {e}"
                )
                # Record stays PENDING; a redelivery will send again
                self._append_error_record(record, envelope, error)
                raise error from e

            self.logger.info(
                f"Notification sent successfully: {record.id}",
                extra={"event": "notification.sent", "transport_message_id": message_id},
            )
            return record.id

    def get_history(self, user_id: str, limit: int = DEFAULT_HISTORY_LIMIT) -> List[NotificationRecord]:
        """Return a user's notification records, newest first.

        Raises:
            StoreError: If the store could not be queried
        """
        try:
            return self.store.query_history(user_id, limit=limit)
        except PersistenceError as e:
            self.logger.error(
                f"Failed to get notification history: {e}",
                extra={"event": "notification.history.failed", "user_id": user_id},
            )
            raise StoreError(f"Failed to retrieve notification history: {e}") from e

    def send_test_notification(self, user_email: str) -> str:
        """Send a WELCOME notification to ``user_email`` for a test user.

        Returns:
            Id of the notification record
        """
        envelope = NotificationEnvelope(
            type=NotificationType.WELCOME,
            user_email=user_email,
            user_id=TEST_USER_ID,
            data={"fullname": TEST_USER_NAME},
        )
        return self.process(envelope)

    def send_bulk(self, envelopes: Sequence[NotificationEnvelope]) -> List[BulkSendResult]:
        """Deliver envelopes in waves, pausing between waves.

        Each wave of at most ``bulk_wave_size`` envelopes runs concurrently.
        Individual failures are reported in the results and never raised.

        Returns:
            One BulkSendResult per envelope, in input order
        """
        results: List[BulkSendResult] = []
        wave_size = max(1, self.bulk_wave_size)

        for start in range(0, len(envelopes), wave_size):
            wave = list(envelopes[start:start + wave_size])
            for outcome in fan_out(self.process, wave, max_workers=wave_size):
                if outcome.ok:
                    results.append(BulkSendResult(envelope_id=outcome.item.id, notification_id=outcome.value))
                else:
                    self.logger.warning(
                        f"Bulk notification to {mask_email(outcome.item.user_email)} failed: {outcome.error}",
                        extra={"event": "notification.bulk.item_failed", "error_type": type(outcome.error).__name__},
                    )
                    results.append(BulkSendResult(envelope_id=outcome.item.id, error=str(outcome.error)))

            if start + wave_size < len(envelopes) and self.bulk_wave_pause > 0:
                self.sleep(self.bulk_wave_pause)

        sent = sum(1 for result in results if result.success)
        self.logger.info(
            f"Bulk send complete: {sent} sent, {len(results) - sent} failed (total: {len(results)})",
            extra={"event": "notification.bulk.completed", "sent": sent, "failed": len(results) - sent},
        )
        return results

    def _record_failure(
        self, record: NotificationRecord, envelope: NotificationEnvelope, error: DeliveryError
    ) -> None:
        """Move the record to FAILED and append an ErrorRecord.

        Store failures here are logged; the original delivery error is what
        the caller sees.
        """
        self.logger.error(
            f"Failed to send notification {record.id}: {error}",
            extra={
                "event": "notification.failed",
                "error_type": error.error_type.value,
                "retryable": error.retryable,
            },
        )

        try:
            self.store.transition(
                record.id,
                record.created_at,
                NotificationStatus.FAILED,
                error_message=str(error),
            )
        except PersistenceError as e:
            self.logger.error(
                f"Failed to mark notification {record.id} as failed: {e}",
                extra={"event": "notification.store.failed"},
            )

        self._append_error_record(record, envelope, error)

    def _append_error_record(
        self, record: NotificationRecord, envelope: NotificationEnvelope, error: DeliveryError
    ) -> None:
        error_record = ErrorRecord(
            error_type=error.error_type,
            source=ErrorSource.ORCHESTRATOR,
            error_message=str(error),
            original_message=envelope.to_message_body(),
            notification_id=record.id,
            original_notification_id=envelope.id,
            notification_type=envelope.type.value,
            user_email=envelope.user_email,
            user_id=envelope.user_id,
            stack_trace="".join(traceback.format_exception(type(error), error, error.__traceback__)),
        )
        try:
            self.store.append_error(error_record)
        except PersistenceError as e:
            self.logger.error(
                f"Failed to store error record for notification {record.id}: {e}",
                extra={"event": "notification.error_record.failed"},
            )
