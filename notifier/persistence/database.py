"""Engine and session lifecycle for the delivery state store.

One engine per process, created by init_database() at startup and disposed
by close_database(). Table names are chosen at init time, so the store
module asks get_tables() for them instead of importing Table objects.
"""

import threading
from contextlib import contextmanager, nullcontext
from pathlib import Path
from typing import ContextManager, Generator, Optional

from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import URL, Engine, make_url
from sqlalchemy.exc import ArgumentError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from notifier.logging import get_logger

from .exceptions import DatabaseConnectionError
from .schema import DEFAULT_ERROR_TABLE, DEFAULT_NOTIFICATION_TABLE, StoreTables, create_schema, define_tables

_engine: Optional[Engine] = None
_session_factory: Optional[sessionmaker] = None
_tables: Optional[StoreTables] = None
# Set for in-memory SQLite, where every session shares one connection
_session_lock: Optional[ContextManager] = None

# Seconds a SQLite writer waits on a locked database
SQLITE_BUSY_TIMEOUT = 30

logger = get_logger(__name__, component="database")


def init_database(
    database_url: str,
    notification_table: str = DEFAULT_NOTIFICATION_TABLE,
    error_table: str = DEFAULT_ERROR_TABLE,
) -> None:
    """Create the engine, verify it connects, and create missing tables.

    Calling it again replaces the previous engine (tests rely on this).

    Args:
        database_url: SQLAlchemy URL, e.g. "sqlite:///./data/notifications.db"
        notification_table: Table holding notification records
        error_table: Table holding error records and statistics

    Raises:
        DatabaseConnectionError: If the URL is invalid or the database is unreachable
    """
    global _engine, _session_factory, _tables, _session_lock

    if not database_url or not isinstance(database_url, str):
        raise DatabaseConnectionError("Database URL must be a non-empty string")

    try:
        url = make_url(database_url)
    except ArgumentError as e:
        raise DatabaseConnectionError(f"Invalid database URL: {e}") from e

    if _engine is not None:
        close_database()

    safe_url = url.render_as_string(hide_password=True)
    logger.info(
        "Initializing database",
        extra={
            "event": "database.initializing",
            "database_url": safe_url,
            "notification_table": notification_table,
            "error_table": error_table,
        },
    )

    try:
        engine = _create_engine(url)
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        tables = define_tables(notification_table, error_table)
        create_schema(engine, tables)
    except (SQLAlchemyError, OSError) as e:
        logger.error(f"Failed to initialize database {safe_url}: {e}", exc_info=True)
        raise DatabaseConnectionError(f"Failed to initialize database: {e}") from e

    _engine = engine
    _session_factory = sessionmaker(bind=engine, expire_on_commit=False)
    _tables = tables
    _session_lock = threading.RLock() if _is_in_memory(url) else None

    logger.info("Database ready", extra={"event": "database.initialised", "database_url": safe_url})


def _create_engine(url: URL) -> Engine:
    if url.get_backend_name() != "sqlite":
        return create_engine(url, pool_pre_ping=True)

    # Batch fan-out writes from worker threads
    connect_args = {"check_same_thread": False, "timeout": SQLITE_BUSY_TIMEOUT}

    if _is_in_memory(url):
        # One shared connection, or every checkout sees a fresh empty database.
        # get_session() serializes sessions on it.
        return create_engine(url, connect_args=connect_args, poolclass=StaticPool)

    Path(url.database).parent.mkdir(parents=True, exist_ok=True)
    engine = create_engine(url, connect_args=connect_args)

    @event.listens_for(engine, "connect")
    def _enable_wal(dbapi_conn, connection_record):
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.close()

    return engine


def _is_in_memory(url: URL) -> bool:
    return url.get_backend_name() == "sqlite" and url.database in (None, "", ":memory:")


def _require(value, accessor: str):
    if value is None:
        raise DatabaseConnectionError(
            f"Database not initialized. Call init_database() before using {accessor}()"
        )
    return value


@contextmanager
def get_session() -> Generator[Session, None, None]:
    """Session that commits when the block succeeds and rolls back when it raises.

    Example:
        >>> with get_session() as session:
        ...     session.execute(select(get_tables().notifications))
    """
    factory = _require(_session_factory, "get_session")
    with _session_lock or nullcontext():
        session = factory()
        try:
            yield session
            session.commit()
        except Exception as e:
            session.rollback()
            logger.warning(
                f"Database session rolled back: {e}",
                extra={"event": "database.session.rolled_back", "error_type": type(e).__name__},
            )
            raise
        finally:
            session.close()


def get_engine() -> Engine:
    return _require(_engine, "get_engine")


def get_tables() -> StoreTables:
    """Table definitions chosen by init_database()."""
    return _require(_tables, "get_tables")


def close_database() -> None:
    """Dispose of the engine; a later init_database() starts fresh."""
    global _engine, _session_factory, _tables, _session_lock

    if _engine is None:
        return
    logger.info("Closing database connections", extra={"event": "database.closing"})
    _engine.dispose()
    _engine = None
    _session_factory = None
    _tables = None
    _session_lock = None
