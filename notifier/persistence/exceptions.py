"""Store errors.

Everything the store raises derives from PersistenceError; the orchestrator
turns it into a retryable StoreError.
"""

from typing import Optional


class PersistenceError(Exception):
    """A store read or write failed."""


class DatabaseConnectionError(PersistenceError):
    """The engine could not be created, reached, or was never initialized."""


class DataIntegrityError(PersistenceError):
    """A write violated a table constraint in a way that is not an idempotent repeat."""


class RecordNotFoundError(PersistenceError):
    """A notification key passed to transition() has no row.

    Attributes:
        notification_id: Id half of the missing key
        created_at: Timestamp half of the missing key, as stored
    """

    def __init__(self, notification_id: str, created_at: str):
        self.notification_id = notification_id
        self.created_at = created_at
        super().__init__(f"Notification {notification_id} at {created_at} not found")


class InvalidTransitionError(PersistenceError):
    """A notification cannot move to the requested status.

    Raised when the target is PENDING, or when the record already ended in
    the other terminal status (SENT -> FAILED or FAILED -> SENT).

    Attributes:
        notification_id: Record id
        target: Requested status value
        current: Status the record already has, when known
    """

    def __init__(self, notification_id: str, target: str, current: Optional[str] = None):
        self.notification_id = notification_id
        self.target = target
        self.current = current
        if current is None:
            message = f"Cannot transition notification {notification_id} to {target}"
        else:
            message = f"Notification {notification_id} is already {current}, cannot transition to {target}"
        super().__init__(message)
