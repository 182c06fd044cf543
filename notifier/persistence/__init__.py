"""Persistence layer for the delivery state store.

Public API:
    # Database initialization and session management
    - init_database(database_url, notification_table, error_table) -> None
    - get_session() -> ContextManager[Session]
    - close_database() -> None

    # Store
    - DeliveryStateStore: notification records, error records, statistics

    # Exceptions
    - PersistenceError and its subclasses

Example usage:
    >>> from notifier.persistence import init_database, DeliveryStateStore
    >>> init_database("sqlite:///./data/notifications.db")
    >>> store = DeliveryStateStore()
    >>> store.query_history("user-1")
"""

from .database import close_database, get_engine, get_session, get_tables, init_database
from .exceptions import (
    DatabaseConnectionError,
    DataIntegrityError,
    InvalidTransitionError,
    PersistenceError,
    RecordNotFoundError,
)
from .schema import DEFAULT_ERROR_TABLE, DEFAULT_NOTIFICATION_TABLE
from .store import DEFAULT_HISTORY_LIMIT, DeliveryStateStore

__all__ = [
    "init_database",
    "get_session",
    "get_engine",
    "get_tables",
    "close_database",
    "DeliveryStateStore",
    "DEFAULT_HISTORY_LIMIT",
    "DEFAULT_NOTIFICATION_TABLE",
    "DEFAULT_ERROR_TABLE",
    "PersistenceError",
    "DatabaseConnectionError",
    "RecordNotFoundError",
    "DataIntegrityError",
    "InvalidTransitionError",
]
