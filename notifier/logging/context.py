"""Scoped logging fields.

log_context() pushes fields that ContextualFilter merges into every record
emitted inside the scope. Fields live in a ContextVar; work submitted through
notifier.utils.concurrency.fan_out runs in a copy of the submitting context,
so a worker handling one queue message logs that message's fields and
nothing else.
"""

from contextlib import contextmanager
from contextvars import ContextVar, Token
from types import MappingProxyType
from typing import Any, Dict, Iterator, Mapping

_EMPTY: Mapping[str, Any] = MappingProxyType({})

_fields: ContextVar[Mapping[str, Any]] = ContextVar("notifier_log_fields", default=_EMPTY)


def get_log_context() -> Dict[str, Any]:
    """Return a copy of the fields active in the current scope."""
    return dict(_fields.get())


def push_log_context(**fields: Any) -> Token:
    """Merge fields into the current scope; pass the token to pop_log_context()."""
    return _fields.set(MappingProxyType({**_fields.get(), **fields}))


def pop_log_context(token: Token) -> None:
    _fields.reset(token)


def clear_log_context() -> None:
    _fields.set(_EMPTY)


@contextmanager
def log_context(**fields: Any) -> Iterator[Dict[str, Any]]:
    """Add fields to every log record emitted inside the block.

    Fields whose value is None are skipped. The previous scope is restored
    on exit, also when the block raises.

    Example:
        >>> with log_context(message_id="m-1", notification_type="WELCOME"):
        ...     logger.info("Processing message")  # carries both fields
    """
    token = push_log_context(**{key: value for key, value in fields.items() if value is not None})
    try:
        yield get_log_context()
    finally:
        pop_log_context(token)
