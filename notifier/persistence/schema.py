"""Database schema definition and row conversion.

Two tables back the delivery state store:
- notifications: one row per delivery attempt, keyed by (id, created_at)
- notification errors: ErrorRecord and ErrorStatistic rows, told apart by
  ``record_type`` (ERROR | ERROR_STATISTICS), keyed by (id, created_at)

Table names are configurable, so tables are built by define_tables() on a
fresh MetaData rather than declared at import time. Timestamps are stored as
fixed-width ISO 8601 strings so that ordering by ``created_at`` is
lexicographic.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Mapping, Optional

from sqlalchemy import JSON, Column, Index, Integer, MetaData, String, Table, Text
from sqlalchemy.engine import Engine

from notifier.domain.models import ErrorRecord, ErrorStatistic, NotificationRecord
from notifier.utils.timestamps import format_timestamp, parse_iso_datetime

logger = logging.getLogger(__name__)

DEFAULT_NOTIFICATION_TABLE = "notifications"
DEFAULT_ERROR_TABLE = "notification_errors"

RECORD_TYPE_ERROR = "ERROR"
RECORD_TYPE_STATISTIC = "ERROR_STATISTICS"


@dataclass(frozen=True)
class StoreTables:
    """Table objects bound to one MetaData."""

    metadata: MetaData
    notifications: Table
    errors: Table


def define_tables(
    notification_table: str = DEFAULT_NOTIFICATION_TABLE,
    error_table: str = DEFAULT_ERROR_TABLE,
) -> StoreTables:
    """Build the store tables under the given names.

    Args:
        notification_table: Name of the notification records table
        error_table: Name of the error records/statistics table

    Returns:
        StoreTables holding both tables and their MetaData
    """
    metadata = MetaData()

    notifications = Table(
        notification_table,
        metadata,
        Column("id", String(64), primary_key=True, nullable=False),
        Column("created_at", String(32), primary_key=True, nullable=False),
        Column("type", String(50), nullable=False),
        Column("user_email", String(320), nullable=False),
        Column("user_id", String(255), nullable=False),
        Column("status", String(16), nullable=False),
        Column("payload", JSON, nullable=False),
        Column("original_notification_id", String(255), nullable=True),
        Column("sent_at", String(32), nullable=True),
        Column("transport_message_id", String(255), nullable=True),
        Column("error_message", Text, nullable=True),
        Column("updated_at", String(32), nullable=True),
        Index(f"idx_{notification_table}_user_created", "user_id", "created_at"),
    )

    errors = Table(
        error_table,
        metadata,
        Column("id", String(64), primary_key=True, nullable=False),
        Column("created_at", String(32), primary_key=True, nullable=False),
        Column("record_type", String(32), nullable=False),
        Column("error_type", String(50), nullable=False),
        Column("notification_type", String(50), nullable=False),
        # ERROR rows
        Column("source", String(32), nullable=True),
        Column("error_message", Text, nullable=True),
        Column("original_message", Text, nullable=True),
        Column("source_message_id", String(255), nullable=True),
        Column("notification_id", String(64), nullable=True),
        Column("original_notification_id", String(255), nullable=True),
        Column("user_email", String(320), nullable=True),
        Column("user_id", String(255), nullable=True),
        Column("missing_fields", JSON, nullable=True),
        Column("invalid_fields", JSON, nullable=True),
        Column("validation_errors", JSON, nullable=True),
        Column("schema_used", String(50), nullable=True),
        Column("retry_count", Integer, nullable=True),
        Column("stack_trace", Text, nullable=True),
        # ERROR_STATISTICS rows
        Column("date", String(10), nullable=True),
        Column("hour", Integer, nullable=True),
        Column("count", Integer, nullable=True),
        Index(f"idx_{error_table}_type_date", "record_type", "date", "hour"),
    )

    return StoreTables(metadata=metadata, notifications=notifications, errors=errors)


def create_schema(engine: Engine, tables: StoreTables) -> None:
    """Create the store tables if they don't exist."""
    logger.info("Creating database schema")
    tables.metadata.create_all(engine, checkfirst=True)
    logger.info("Database schema created successfully")


def format_datetime(dt: Optional[datetime]) -> Optional[str]:
    """Convert a datetime to its stored string form (None passes through)."""
    return format_timestamp(dt) if dt is not None else None


def parse_datetime(value: Optional[str]) -> Optional[datetime]:
    """Convert a stored timestamp string back to a UTC datetime."""
    return parse_iso_datetime(value) if value else None


# Row conversion


def notification_to_row(record: NotificationRecord) -> Dict[str, Any]:
    return {
        "id": record.id,
        "created_at": format_datetime(record.created_at),
        "type": record.type.value,
        "user_email": record.user_email,
        "user_id": record.user_id,
        "status": record.status.value,
        "payload": record.payload,
        "original_notification_id": record.original_notification_id,
        "sent_at": format_datetime(record.sent_at),
        "transport_message_id": record.transport_message_id,
        "error_message": record.error_message,
        "updated_at": format_datetime(record.updated_at),
    }


def row_to_notification(row: Mapping[str, Any]) -> NotificationRecord:
    return NotificationRecord(
        id=row["id"],
        created_at=parse_datetime(row["created_at"]),
        type=row["type"],
        user_email=row["user_email"],
        user_id=row["user_id"],
        status=row["status"],
        payload=row["payload"] or {},
        original_notification_id=row["original_notification_id"],
        sent_at=parse_datetime(row["sent_at"]),
        transport_message_id=row["transport_message_id"],
        error_message=row["error_message"],
        updated_at=parse_datetime(row["updated_at"]),
    )


def error_to_row(record: ErrorRecord) -> Dict[str, Any]:
    return {
        "id": record.id,
        "created_at": format_datetime(record.created_at),
        "record_type": RECORD_TYPE_ERROR,
        "error_type": record.error_type.value,
        "notification_type": record.notification_type,
        "source": record.source.value,
        "error_message": record.error_message,
        "original_message": record.original_message,
        "source_message_id": record.source_message_id,
        "notification_id": record.notification_id,
        "original_notification_id": record.original_notification_id,
        "user_email": record.user_email,
        "user_id": record.user_id,
        "missing_fields": list(record.missing_fields),
        "invalid_fields": list(record.invalid_fields),
        "validation_errors": list(record.validation_errors),
        "schema_used": record.schema_used,
        "retry_count": record.retry_count,
        "stack_trace": record.stack_trace,
    }


def row_to_error(row: Mapping[str, Any]) -> ErrorRecord:
    return ErrorRecord(
        id=row["id"],
        created_at=parse_datetime(row["created_at"]),
        error_type=row["error_type"],
        source=row["source"],
        error_message=row["error_message"] or "",
        original_message=row["original_message"],
        source_message_id=row["source_message_id"],
        notification_id=row["notification_id"],
        original_notification_id=row["original_notification_id"],
        notification_type=row["notification_type"],
        user_email=row["user_email"],
        user_id=row["user_id"],
        missing_fields=row["missing_fields"] or [],
        invalid_fields=row["invalid_fields"] or [],
        validation_errors=row["validation_errors"] or [],
        schema_used=row["schema_used"],
        retry_count=row["retry_count"] or 0,
        stack_trace=row["stack_trace"],
    )


def statistic_to_row(statistic: ErrorStatistic) -> Dict[str, Any]:
    return {
        "id": statistic.id,
        "created_at": format_datetime(statistic.created_at),
        "record_type": RECORD_TYPE_STATISTIC,
        "error_type": statistic.error_type.value,
        "notification_type": statistic.notification_type,
        "date": statistic.date,
        "hour": statistic.hour,
        "count": statistic.count,
    }


def row_to_statistic(row: Mapping[str, Any]) -> ErrorStatistic:
    return ErrorStatistic(
        id=row["id"],
        created_at=parse_datetime(row["created_at"]),
        error_type=row["error_type"],
        notification_type=row["notification_type"],
        date=row["date"],
        hour=row["hour"],
        count=row["count"],
    )
