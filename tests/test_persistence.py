"""Unit tests for the persistence layer and the delivery state store."""

from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timedelta, timezone
from unittest.mock import patch

import pytest
from sqlalchemy import inspect, text
from sqlalchemy.exc import OperationalError

from notifier.domain.models import (
    ErrorRecord,
    ErrorSource,
    ErrorStatistic,
    ErrorType,
    NotificationRecord,
    NotificationStatus,
    NotificationType,
)
from notifier.persistence import (
    DatabaseConnectionError,
    DeliveryStateStore,
    InvalidTransitionError,
    PersistenceError,
    RecordNotFoundError,
    close_database,
    get_engine,
    get_session,
    init_database,
)
from notifier.persistence.schema import format_datetime, parse_datetime

T0 = datetime(2025, 11, 4, 12, 0, 0, tzinfo=timezone.utc)


def create_test_record(record_id="rec-1", user_id="user-1", created_at=T0, **overrides):
    """Helper to build a PENDING notification record."""
    fields = dict(
        id=record_id,
        created_at=created_at,
        type=NotificationType.WELCOME,
        user_email="ana@example.com",
        user_id=user_id,
        payload={"fullname": "Ana"},
        original_notification_id="client-1",
    )
    fields.update(overrides)
    return NotificationRecord(**fields)


class TestDatabaseInitialization:
    """Tests for database initialization."""

    def test_init_database_creates_file_and_tables(self, tmp_path):
        """Test initialization creates the database file and both tables."""
        db_file = tmp_path / "nested" / "dir" / "test.db"

        init_database(f"sqlite:///{db_file}")
        try:
            assert db_file.exists()
            tables = inspect(get_engine()).get_table_names()
            assert "notifications" in tables
            assert "notification_errors" in tables
        finally:
            close_database()

    def test_init_database_custom_table_names(self, tmp_path):
        """Test table names come from configuration."""
        init_database(
            f"sqlite:///{tmp_path / 'test.db'}",
            notification_table="prod_notifications",
            error_table="prod_errors",
        )
        try:
            tables = inspect(get_engine()).get_table_names()
            assert {"prod_notifications", "prod_errors"} <= set(tables)
        finally:
            close_database()

    def test_init_database_in_memory(self):
        """Test initialization with an in-memory database."""
        init_database("sqlite:///:memory:")
        try:
            with get_session() as session:
                assert session.execute(text("SELECT 1")).scalar() == 1
        finally:
            close_database()

    def test_init_database_is_idempotent(self, tmp_path):
        """Test schema creation can run repeatedly on the same file."""
        db_url = f"sqlite:///{tmp_path / 'test.db'}"
        init_database(db_url)
        init_database(db_url)
        close_database()

    def test_init_database_invalid_url_raises_error(self):
        """Test an empty URL raises DatabaseConnectionError."""
        with pytest.raises(DatabaseConnectionError):
            init_database("")

        with pytest.raises(DatabaseConnectionError):
            init_database(None)

        with pytest.raises(DatabaseConnectionError, match="Invalid database URL"):
            init_database("not a database url")

    def test_session_before_init_raises(self):
        """Test get_session() requires init_database()."""
        close_database()
        with pytest.raises(DatabaseConnectionError):
            with get_session():
                pass


class TestTimestampColumns:
    """Tests for the ISO string timestamp encoding."""

    def test_round_trip(self):
        """Test a timestamp survives formatting and parsing."""
        assert parse_datetime(format_datetime(T0)) == T0

    def test_string_order_matches_time_order(self):
        """Test formatted timestamps sort chronologically."""
        earlier = format_datetime(T0)
        later = format_datetime(T0 + timedelta(milliseconds=1))
        assert earlier < later


class TestNotificationRecords:
    """Tests for create, transition and read operations."""

    def test_create_and_get(self, store):
        """Test a created record can be read back by key."""
        store.create_pending(create_test_record())

        record = store.get("rec-1", T0)

        assert record.status == NotificationStatus.PENDING
        assert record.payload == {"fullname": "Ana"}
        assert record.original_notification_id == "client-1"
        assert record.created_at == T0

    def test_get_without_created_at_returns_newest(self, store):
        """Test get() by id alone returns the newest record with that id."""
        store.create_pending(create_test_record(created_at=T0))
        store.create_pending(create_test_record(created_at=T0 + timedelta(seconds=5), user_id="user-2"))

        assert store.get("rec-1").user_id == "user-2"

    def test_get_missing_returns_none(self, store):
        """Test reading an unknown key returns None."""
        assert store.get("nope", T0) is None

    def test_create_is_idempotent(self, store):
        """Test re-creating the same key keeps the stored record."""
        store.create_pending(create_test_record())
        store.transition("rec-1", T0, NotificationStatus.SENT, transport_message_id="<m1>")

        returned = store.create_pending(create_test_record())

        assert returned.status == NotificationStatus.SENT
        assert len(store.query_history("user-1")) == 1

    def test_transition_to_sent(self, store):
        """Test PENDING -> SENT writes sent_at and the transport message id."""
        store.create_pending(create_test_record())
        sent_at = T0 + timedelta(seconds=2)

        updated = store.transition(
            "rec-1", T0, NotificationStatus.SENT, sent_at=sent_at, transport_message_id="<m1@example.com>"
        )

        assert updated.status == NotificationStatus.SENT
        assert updated.sent_at == sent_at
        assert updated.transport_message_id == "<m1@example.com>"
        assert updated.updated_at is not None
        assert updated.error_message is None

    def test_transition_to_failed(self, store):
        """Test PENDING -> FAILED writes the error message."""
        store.create_pending(create_test_record())

        updated = store.transition("rec-1", T0, NotificationStatus.FAILED, error_message="SMTP down")

        assert updated.status == NotificationStatus.FAILED
        assert updated.error_message == "SMTP down"
        assert updated.sent_at is None

    def test_transition_preserves_unmentioned_attributes(self, store):
        """Test a transition never clears previously stored attributes."""
        store.create_pending(create_test_record())
        store.transition("rec-1", T0, NotificationStatus.SENT, transport_message_id="<m1>")

        updated = store.transition("rec-1", T0, NotificationStatus.SENT)

        assert updated.transport_message_id == "<m1>"
        assert updated.payload == {"fullname": "Ana"}

    def test_terminal_status_cannot_change(self, store):
        """Test SENT -> FAILED is rejected."""
        store.create_pending(create_test_record())
        store.transition("rec-1", T0, NotificationStatus.SENT)

        with pytest.raises(InvalidTransitionError) as exc_info:
            store.transition("rec-1", T0, NotificationStatus.FAILED, error_message="late failure")

        assert (exc_info.value.current, exc_info.value.target) == ("SENT", "FAILED")

        assert store.get("rec-1", T0).status == NotificationStatus.SENT

    def test_cannot_transition_to_pending(self, store):
        """Test PENDING is not a valid transition target."""
        store.create_pending(create_test_record())

        with pytest.raises(InvalidTransitionError):
            store.transition("rec-1", T0, NotificationStatus.PENDING)

    def test_transition_missing_record(self, store):
        """Test transitioning an unknown key raises RecordNotFoundError."""
        with pytest.raises(RecordNotFoundError) as exc_info:
            store.transition("nope", T0, NotificationStatus.SENT)

        assert exc_info.value.notification_id == "nope"

    def test_query_history_newest_first(self, store):
        """Test history is ordered newest first and filtered by user."""
        for i in range(3):
            store.create_pending(create_test_record(record_id=f"rec-{i}", created_at=T0 + timedelta(minutes=i)))
        store.create_pending(create_test_record(record_id="other", user_id="user-2"))

        history = store.query_history("user-1")

        assert [record.id for record in history] == ["rec-2", "rec-1", "rec-0"]

    def test_query_history_limit(self, store):
        """Test history honours the limit."""
        for i in range(5):
            store.create_pending(create_test_record(record_id=f"rec-{i}", created_at=T0 + timedelta(minutes=i)))

        assert len(store.query_history("user-1", limit=2)) == 2

    def test_concurrent_writes(self, store):
        """Test records written from worker threads are all persisted."""

        def write(index):
            record = create_test_record(record_id=f"rec-{index}", created_at=T0 + timedelta(seconds=index))
            store.create_pending(record)
            store.transition(record.id, record.created_at, NotificationStatus.SENT)

        with ThreadPoolExecutor(max_workers=5) as executor:
            list(executor.map(write, range(10)))

        history = store.query_history("user-1", limit=50)
        assert len(history) == 10
        assert all(record.status == NotificationStatus.SENT for record in history)

    def test_concurrent_writes_in_memory(self):
        """Test worker threads sharing the single in-memory connection do not interleave."""
        init_database("sqlite:///:memory:")
        try:
            store = DeliveryStateStore()

            def write(index):
                record = create_test_record(record_id=f"rec-{index}", created_at=T0 + timedelta(seconds=index))
                store.create_pending(record)
                store.transition(record.id, record.created_at, NotificationStatus.SENT)

            with ThreadPoolExecutor(max_workers=10) as executor:
                list(executor.map(write, range(50)))

            history = store.query_history("user-1", limit=50)
            assert len(history) == 50
            assert all(record.status == NotificationStatus.SENT for record in history)
        finally:
            close_database()


class TestErrorRecords:
    """Tests for error records and statistics."""

    def test_append_and_list_error(self, store):
        """Test an error record is stored with its diagnostics."""
        record = ErrorRecord(
            created_at=T0,
            error_type=ErrorType.SCHEMA_VALIDATION_ERROR,
            source=ErrorSource.DEAD_LETTER_QUEUE,
            error_message="Schema validation failed",
            original_message='{"type": "WELCOME"}',
            source_message_id="m-1",
            notification_type="WELCOME",
            missing_fields=["data.fullname"],
            validation_errors=['"data.fullname" is required'],
            schema_used="WELCOME",
            retry_count=3,
        )

        store.append_error(record)
        stored = store.list_errors()

        assert len(stored) == 1
        assert stored[0].id == record.id
        assert stored[0].missing_fields == ["data.fullname"]
        assert stored[0].invalid_fields == []
        assert stored[0].retry_count == 3
        assert stored[0].source == ErrorSource.DEAD_LETTER_QUEUE

    def test_append_error_is_idempotent(self, store):
        """Test re-appending the same key does not duplicate it."""
        record = ErrorRecord(created_at=T0, error_type=ErrorType.PARSE_ERROR)

        store.append_error(record)
        store.append_error(record)

        assert len(store.list_errors()) == 1

    def test_statistics_are_kept_apart_from_errors(self, store):
        """Test statistics and errors share a table but list separately."""
        store.append_error(ErrorRecord(created_at=T0, error_type=ErrorType.PARSE_ERROR))
        store.append_statistic(ErrorStatistic.for_failure(ErrorType.PARSE_ERROR, None, at=T0))

        statistics = store.list_statistics()

        assert len(store.list_errors()) == 1
        assert len(statistics) == 1
        assert statistics[0].date == "2025-11-04"
        assert statistics[0].hour == 12
        assert statistics[0].count == 1
        assert statistics[0].notification_type == "unknown"

    def test_duplicate_lookup_failure_raises_persistence_error(self, store):
        """Test a database error while checking for an existing row is wrapped."""
        row = {"id": "err-1", "created_at": "2025-11-04T12:00:00.000Z", "record_type": "ERROR"}

        failure = OperationalError("SELECT", {}, Exception("locked"))

        with patch("notifier.persistence.store.get_session", side_effect=failure):
            with pytest.raises(PersistenceError, match="Failed to look up ERROR err-1"):
                store._error_row_exists(row)

    def test_store_is_shareable(self, database):
        """Test two store instances see the same data."""
        DeliveryStateStore().create_pending(create_test_record())

        assert DeliveryStateStore().get("rec-1", T0) is not None
