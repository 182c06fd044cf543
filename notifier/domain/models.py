"""Core domain models for notifications, delivery records, and diagnostics.

This module defines the data structures used throughout the pipeline:
- NotificationType / NotificationStatus / ErrorType: closed enumerations
- NotificationEnvelope: a validated, sanitized inbound notification
- NotificationRecord: persisted lifecycle projection of one delivery attempt
- TemplateBundle: cached subject/html/text template sources for one type
- ErrorRecord: diagnostic record written on orchestration or dead-letter failure
- ErrorStatistic: per-failure aggregate-intent record for downstream rollups

Models use snake_case attributes and serialize to the camelCase wire shape
via aliases (``model_dump(by_alias=True)``).
"""

import json
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Dict, List, Optional
from uuid import uuid4

from pydantic import BaseModel, Field

from notifier.utils.timestamps import day_and_hour, ensure_utc, utc_now


class NotificationType(str, Enum):
    """Supported notification types (closed set)."""

    WELCOME = "WELCOME"
    USER_LOGIN = "USER.LOGIN"
    USER_UPDATE = "USER.UPDATE"
    CARD_CREATE = "CARD.CREATE"
    CARD_ACTIVATE = "CARD.ACTIVATE"
    TRANSACTION_PURCHASE = "TRANSACTION.PURCHASE"
    TRANSACTION_SAVE = "TRANSACTION.SAVE"
    TRANSACTION_PAID = "TRANSACTION.PAID"
    REPORT_ACTIVITY = "REPORT.ACTIVITY"


class NotificationStatus(str, Enum):
    """Lifecycle status of a notification record."""

    PENDING = "PENDING"
    SENT = "SENT"
    FAILED = "FAILED"

    @property
    def is_terminal(self) -> bool:
        return self is not NotificationStatus.PENDING


class ErrorType(str, Enum):
    """Error taxonomy shared by the orchestrator and the dead-letter path."""

    VALIDATION_ERROR = "VALIDATION_ERROR"
    TEMPLATE_NOT_FOUND = "TEMPLATE_NOT_FOUND"
    TEMPLATE_FETCH_ERROR = "TEMPLATE_FETCH_ERROR"
    RENDER_ERROR = "RENDER_ERROR"
    TRANSPORT_ERROR = "TRANSPORT_ERROR"
    STORE_ERROR = "STORE_ERROR"
    PARSE_ERROR = "PARSE_ERROR"
    SCHEMA_VALIDATION_ERROR = "SCHEMA_VALIDATION_ERROR"
    PROCESSING_FAILED = "PROCESSING_FAILED"
    CRITICAL_HANDLER_ERROR = "CRITICAL_HANDLER_ERROR"


class ErrorSource(str, Enum):
    """Component that produced an error record."""

    ORCHESTRATOR = "ORCHESTRATOR"
    DEAD_LETTER_QUEUE = "DEAD_LETTER_QUEUE"
    ERROR_HANDLER = "ERROR_HANDLER"


UNKNOWN = "unknown"
SYSTEM = "system"


def _new_id() -> str:
    return str(uuid4())


class NotificationEnvelope(BaseModel):
    """Validated inbound notification.

    Instances are produced by the schema validator; ``data`` has already been
    checked against the schema registered for ``type`` and stripped of
    undeclared fields.
    """

    id: str = Field(default_factory=_new_id, description="Client or system generated identifier")
    type: NotificationType = Field(..., description="Notification type tag")
    user_email: str = Field(..., alias="userEmail", description="Recipient email address")
    user_id: str = Field(..., alias="userId", description="Recipient user identifier")
    created_at: datetime = Field(default_factory=utc_now, alias="createdAt")
    data: Dict[str, Any] = Field(default_factory=dict, description="Type-specific payload")

    model_config = {"populate_by_name": True}

    def to_message_body(self) -> str:
        """Serialize to the JSON wire shape used on the queue."""
        return json.dumps(self.model_dump(mode="json", by_alias=True))


class NotificationRecord(BaseModel):
    """Persisted lifecycle row for one notification attempt.

    Created in PENDING at the start of orchestration; exactly one terminal
    transition to SENT or FAILED follows.
    """

    id: str
    created_at: datetime = Field(..., alias="createdAt")
    type: NotificationType
    user_email: str = Field(..., alias="userEmail")
    user_id: str = Field(..., alias="userId")
    status: NotificationStatus = NotificationStatus.PENDING
    payload: Dict[str, Any] = Field(default_factory=dict)
    original_notification_id: Optional[str] = Field(None, alias="originalNotificationId")
    sent_at: Optional[datetime] = Field(None, alias="sentAt")
    transport_message_id: Optional[str] = Field(None, alias="transportMessageId")
    error_message: Optional[str] = Field(None, alias="errorMessage")
    updated_at: Optional[datetime] = Field(None, alias="updatedAt")

    model_config = {"populate_by_name": True}

    @classmethod
    def pending_for(
        cls, envelope: NotificationEnvelope, record_id: str, created_at: datetime
    ) -> "NotificationRecord":
        """Build the initial PENDING record for an envelope."""
        return cls(
            id=record_id,
            created_at=created_at,
            type=envelope.type,
            user_email=envelope.user_email,
            user_id=envelope.user_id,
            status=NotificationStatus.PENDING,
            payload=dict(envelope.data),
            original_notification_id=envelope.id,
        )


class TemplateBundle(BaseModel):
    """Subject/html/text template sources for one notification type."""

    notification_type: NotificationType
    subject: str
    html: str
    text: str
    fetched_at: datetime = Field(default_factory=utc_now)

    def is_fresh(self, now: datetime, freshness_window: timedelta) -> bool:
        """Check whether the bundle is younger than the freshness window."""
        return ensure_utc(now) - ensure_utc(self.fetched_at) < freshness_window


class ErrorRecord(BaseModel):
    """Diagnostic record for a notification that could not be delivered.

    Optional diagnostics are explicit fields that default to empty values,
    so every record has the same shape regardless of which path wrote it.
    """

    id: str = Field(default_factory=_new_id)
    created_at: datetime = Field(default_factory=utc_now, alias="createdAt")
    error_type: ErrorType = Field(..., alias="errorType")
    source: ErrorSource = ErrorSource.ORCHESTRATOR
    error_message: str = Field("", alias="errorMessage")
    original_message: Optional[str] = Field(None, alias="originalMessage")
    source_message_id: Optional[str] = Field(None, alias="sourceMessageId")
    notification_id: Optional[str] = Field(None, alias="notificationId")
    original_notification_id: Optional[str] = Field(None, alias="originalNotificationId")
    notification_type: str = Field(UNKNOWN, alias="notificationType")
    user_email: str = Field(UNKNOWN, alias="userEmail")
    user_id: str = Field(UNKNOWN, alias="userId")
    missing_fields: List[str] = Field(default_factory=list, alias="missingFields")
    invalid_fields: List[str] = Field(default_factory=list, alias="invalidFields")
    validation_errors: List[str] = Field(default_factory=list, alias="validationErrors")
    schema_used: Optional[str] = Field(None, alias="schemaUsed")
    retry_count: int = Field(0, ge=0, alias="retryCount")
    stack_trace: Optional[str] = Field(None, alias="stackTrace")

    model_config = {"populate_by_name": True}


class ErrorStatistic(BaseModel):
    """Single-failure statistic row; the store aggregates these downstream."""

    id: str = Field(default_factory=_new_id)
    created_at: datetime = Field(default_factory=utc_now, alias="createdAt")
    error_type: ErrorType = Field(..., alias="errorType")
    notification_type: str = Field(UNKNOWN, alias="notificationType")
    date: str
    hour: int = Field(..., ge=0, le=23)
    count: int = 1

    model_config = {"populate_by_name": True}

    @classmethod
    def for_failure(
        cls,
        error_type: ErrorType,
        notification_type: Optional[str],
        at: Optional[datetime] = None,
    ) -> "ErrorStatistic":
        """Build a statistic for one failure observed at ``at`` (default now)."""
        created_at = at or utc_now()
        day, hour = day_and_hour(created_at)
        return cls(
            created_at=created_at,
            error_type=error_type,
            notification_type=notification_type or UNKNOWN,
            date=day,
            hour=hour,
        )


def require_all_types(table: Dict[NotificationType, Any], table_name: str) -> None:
    """Fail fast when a per-type lookup table misses a notification type.

    Called at import time by modules that dispatch on NotificationType so a
    new type cannot be added without updating every table.

    Raises:
        RuntimeError: If any NotificationType has no entry in ``table``
    """
    missing = [t.value for t in NotificationType if t not in table]
    if missing:
        raise RuntimeError(f"{table_name} has no entry for: {', '.join(missing)}")
