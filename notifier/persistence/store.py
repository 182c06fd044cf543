"""Delivery state store.

Persists notification records and their lifecycle transitions, plus the
error records and error statistics written by the orchestrator and the
dead-letter classifier. Every write is idempotent by its (id, created_at)
key, so a redelivered message can replay a write without duplicating it.
"""

from datetime import datetime
from typing import List, Optional

from sqlalchemy import insert, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from notifier.domain.models import (
    ErrorRecord,
    ErrorStatistic,
    NotificationRecord,
    NotificationStatus,
)
from notifier.logging import get_logger
from notifier.utils.timestamps import utc_now

from .database import get_session, get_tables
from .exceptions import (
    DataIntegrityError,
    InvalidTransitionError,
    PersistenceError,
    RecordNotFoundError,
)
from .schema import (
    RECORD_TYPE_ERROR,
    RECORD_TYPE_STATISTIC,
    error_to_row,
    format_datetime,
    notification_to_row,
    row_to_error,
    row_to_notification,
    row_to_statistic,
    statistic_to_row,
)

logger = get_logger(__name__, component="store")

DEFAULT_HISTORY_LIMIT = 50


class DeliveryStateStore:
    """Durable keyed storage for notification records and diagnostics.

    Requires init_database() to have been called; each operation runs in its
    own session so the store is safe to share between worker threads.
    """

    def create_pending(self, record: NotificationRecord) -> NotificationRecord:
        """Persist a new record.

        Re-creating an existing (id, created_at) key is a no-op that returns
        the stored record unchanged.

        Raises:
            PersistenceError: If database error occurs
        """
        table = get_tables().notifications
        try:
            with get_session() as session:
                existing = self._fetch_notification(session, record.id, record.created_at)
                if existing is not None:
                    logger.debug(
                        f"Notification {record.id} already exists, skipping create",
                        extra={"event": "store.create.duplicate", "notification_id": record.id},
                    )
                    return existing
                session.execute(insert(table).values(**notification_to_row(record)))
        except IntegrityError:
            # Concurrent create of the same key
            return self._require_notification(record.id, record.created_at)
        except SQLAlchemyError as e:
            logger.error(f"Error creating notification {record.id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to create notification record: {e}") from e

        return record

    def transition(
        self,
        notification_id: str,
        created_at: datetime,
        status: NotificationStatus,
        sent_at: Optional[datetime] = None,
        transport_message_id: Optional[str] = None,
        error_message: Optional[str] = None,
    ) -> NotificationRecord:
        """Move a record to a terminal status.

        Only status, updated_at and the attributes provided are written;
        previously stored values are never cleared. Applying the status the
        record already has is allowed.

        Args:
            notification_id: Record id
            created_at: Record creation time (second half of the key)
            status: Target status, SENT or FAILED
            sent_at: Delivery time (SENT)
            transport_message_id: Mail transport message id (SENT)
            error_message: Failure description (FAILED)

        Returns:
            The updated record

        Raises:
            InvalidTransitionError: If status is not terminal, or the record is
                already terminal with a different status
            RecordNotFoundError: If no record has this key
            PersistenceError: If database error occurs
        """
        status = NotificationStatus(status)
        if not status.is_terminal:
            raise InvalidTransitionError(notification_id, status.value)

        values = {"status": status.value, "updated_at": format_datetime(utc_now())}
        if sent_at is not None:
            values["sent_at"] = format_datetime(sent_at)
        if transport_message_id is not None:
            values["transport_message_id"] = transport_message_id
        if error_message is not None:
            values["error_message"] = error_message

        table = get_tables().notifications
        created_key = format_datetime(created_at)
        try:
            with get_session() as session:
                result = session.execute(
                    update(table)
                    .where(
                        table.c.id == notification_id,
                        table.c.created_at == created_key,
                        table.c.status.in_([NotificationStatus.PENDING.value, status.value]),
                    )
                    .values(**values)
                )
                if result.rowcount == 0:
                    current = self._fetch_notification(session, notification_id, created_at)
                    if current is None:
                        raise RecordNotFoundError(notification_id, created_key)
                    raise InvalidTransitionError(notification_id, status.value, current=current.status.value)
                updated = self._fetch_notification(session, notification_id, created_at)
        except PersistenceError:
            raise
        except SQLAlchemyError as e:
            logger.error(f"Error updating notification {notification_id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to update notification record: {e}") from e

        logger.debug(
            f"Notification {notification_id} -> {status.value}",
            extra={"event": "store.transition", "notification_id": notification_id, "status": status.value},
        )
        return updated

    def get(
        self, notification_id: str, created_at: Optional[datetime] = None
    ) -> Optional[NotificationRecord]:
        """Fetch a record by key, or the newest record with this id if created_at is None."""
        table = get_tables().notifications
        try:
            with get_session() as session:
                if created_at is not None:
                    return self._fetch_notification(session, notification_id, created_at)
                row = session.execute(
                    select(table)
                    .where(table.c.id == notification_id)
                    .order_by(table.c.created_at.desc())
                    .limit(1)
                ).mappings().first()
                return row_to_notification(row) if row is not None else None
        except SQLAlchemyError as e:
            logger.error(f"Error retrieving notification {notification_id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to retrieve notification record: {e}") from e

    def query_history(self, user_id: str, limit: int = DEFAULT_HISTORY_LIMIT) -> List[NotificationRecord]:
        """Return a user's records, newest first.

        Raises:
            PersistenceError: If database error occurs
        """
        table = get_tables().notifications
        try:
            with get_session() as session:
                rows = session.execute(
                    select(table)
                    .where(table.c.user_id == user_id)
                    .order_by(table.c.created_at.desc())
                    .limit(limit)
                ).mappings().all()
        except SQLAlchemyError as e:
            logger.error(f"Error querying history for user {user_id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to query notification history: {e}") from e

        return [row_to_notification(row) for row in rows]

    def append_error(self, record: ErrorRecord) -> None:
        """Append an error record; re-appending an existing key is a no-op.

        Raises:
            PersistenceError: If database error occurs
        """
        self._append(error_to_row(record), record.id)
        logger.debug(
            f"Error record {record.id} stored ({record.error_type.value})",
            extra={"event": "store.error.appended", "error_type": record.error_type.value},
        )

    def append_statistic(self, statistic: ErrorStatistic) -> None:
        """Append an error statistic; re-appending an existing key is a no-op.

        Raises:
            PersistenceError: If database error occurs
        """
        self._append(statistic_to_row(statistic), statistic.id)

    def list_errors(self, limit: int = DEFAULT_HISTORY_LIMIT) -> List[ErrorRecord]:
        """Return the most recent error records, newest first."""
        rows = self._list_error_rows(RECORD_TYPE_ERROR, limit)
        return [row_to_error(row) for row in rows]

    def list_statistics(self, limit: int = DEFAULT_HISTORY_LIMIT) -> List[ErrorStatistic]:
        """Return the most recent error statistics, newest first."""
        rows = self._list_error_rows(RECORD_TYPE_STATISTIC, limit)
        return [row_to_statistic(row) for row in rows]

    # Internal helpers

    def _append(self, row: dict, record_id: str) -> None:
        table = get_tables().errors
        try:
            with get_session() as session:
                exists = session.execute(
                    select(table.c.id).where(
                        table.c.id == row["id"], table.c.created_at == row["created_at"]
                    )
                ).first()
                if exists is None:
                    session.execute(insert(table).values(**row))
        except IntegrityError as e:
            if self._error_row_exists(row):
                return
            raise DataIntegrityError(f"Failed to append {row['record_type']} {record_id}: {e}") from e
        except SQLAlchemyError as e:
            logger.error(f"Error appending {row['record_type']} {record_id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to append {row['record_type']} record: {e}") from e

    def _error_row_exists(self, row: dict) -> bool:
        table = get_tables().errors
        try:
            with get_session() as session:
                found = session.execute(
                    select(table.c.id).where(
                        table.c.id == row["id"], table.c.created_at == row["created_at"]
                    )
                ).first()
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to look up {row['record_type']} {row['id']}: {e}") from e
        return found is not None

    def _list_error_rows(self, record_type: str, limit: int):
        table = get_tables().errors
        try:
            with get_session() as session:
                return session.execute(
                    select(table)
                    .where(table.c.record_type == record_type)
                    .order_by(table.c.created_at.desc())
                    .limit(limit)
                ).mappings().all()
        except SQLAlchemyError as e:
            logger.error(f"Error listing {record_type} records: {e}", exc_info=True)
            raise PersistenceError(f"Failed to list {record_type} records: {e}") from e

    def _fetch_notification(
        self, session: Session, notification_id: str, created_at: datetime
    ) -> Optional[NotificationRecord]:
        table = get_tables().notifications
        row = session.execute(
            select(table).where(
                table.c.id == notification_id,
                table.c.created_at == format_datetime(created_at),
            )
        ).mappings().first()
        return row_to_notification(row) if row is not None else None

    def _require_notification(self, notification_id: str, created_at: datetime) -> NotificationRecord:
        try:
            with get_session() as session:
                record = self._fetch_notification(session, notification_id, created_at)
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to read notification {notification_id}: {e}") from e
        if record is None:
            raise DataIntegrityError(f"Failed to create notification record {notification_id}")
        return record
