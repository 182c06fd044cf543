"""Notification payload fixtures and fake collaborators for tests.

Payloads are loaded from tests/fixtures/notifications.yaml so every test
starts from the same minimal valid payload per notification type.
"""

import copy
import smtplib
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from notifier.templates.models import RenderedContent

FIXTURE_PATH = Path(__file__).resolve().parent.parent / "fixtures" / "notifications.yaml"


@lru_cache(maxsize=1)
def _load_fixture_file() -> Dict[str, Any]:
    if not FIXTURE_PATH.exists():
        raise FileNotFoundError(f"Fixture file not found: {FIXTURE_PATH}")

    with open(FIXTURE_PATH, "r", encoding="utf-8") as f:
        return yaml.safe_load(f)


def valid_payload(notification_type: str, **overrides) -> Dict[str, Any]:
    """Return a fresh copy of the minimal valid payload for a type.

    Keyword overrides replace top-level envelope fields.
    """
    payload = copy.deepcopy(_load_fixture_file()["notifications"][notification_type])
    payload.update(overrides)
    return payload


def required_data_fields(notification_type: str) -> List[str]:
    return list(_load_fixture_file()["required_data_fields"][notification_type])


class RecordingTransport:
    """Mail transport that records sends and returns sequential message ids.

    Set ``fail_for`` to a set of recipients whose sends raise ``error``.
    """

    def __init__(self, error: Optional[Exception] = None, fail_for=None):
        self.sent: List[tuple] = []
        self.error = error
        self.fail_for = set(fail_for or [])

    def send(self, recipient: str, content: RenderedContent) -> str:
        if self.error is not None and (not self.fail_for or recipient in self.fail_for):
            raise self.error
        self.sent.append((recipient, content))
        return f"<msg-{len(self.sent)}@example.com>"


class FakeSMTP:
    """Stand-in for smtplib.SMTP / SMTP_SSL that keeps every message in memory."""

    instances: List["FakeSMTP"] = []

    def __init__(self, host: str, port: int, context=None, fail_send: bool = False):
        self.host = host
        self.port = port
        self.context = context
        self.fail_send = fail_send
        self.messages = []
        self.logged_in = None
        self.started_tls = False
        self.closed = False
        FakeSMTP.instances.append(self)

    def starttls(self, context=None):
        self.started_tls = True

    def login(self, user, password):
        self.logged_in = (user, password)

    def send_message(self, message):
        if self.fail_send:
            raise smtplib.SMTPRecipientsRefused({message["To"]: (550, b"mailbox unavailable")})
        self.messages.append(message)

    def quit(self):
        self.closed = True

    @classmethod
    def reset(cls):
        cls.instances = []

    @classmethod
    def all_messages(cls):
        return [message for instance in cls.instances for message in instance.messages]
