"""Shared fixtures for notification pipeline tests."""

import pytest

from notifier.logging.context import clear_log_context
from notifier.persistence import DeliveryStateStore, close_database, init_database


@pytest.fixture
def database(tmp_path):
    """Initialize a file-backed SQLite store for one test."""
    db_file = tmp_path / "notifications.db"
    init_database(f"sqlite:///{db_file}")
    yield db_file
    close_database()


@pytest.fixture
def store(database):
    """Delivery state store over the test database."""
    return DeliveryStateStore()


@pytest.fixture(autouse=True)
def clean_log_context():
    """Clear logging context before and after each test."""
    clear_log_context()
    yield
    clear_log_context()
