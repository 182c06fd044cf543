"""Test helper utilities for notification pipeline tests."""

from .fixtures import FakeSMTP, RecordingTransport, required_data_fields, valid_payload

__all__ = ["FakeSMTP", "RecordingTransport", "required_data_fields", "valid_payload"]
