"""Unit tests for per-type schema validation."""

import json

import pytest

from notifier.domain.models import NotificationEnvelope, NotificationType
from notifier.validation import (
    NOTIFICATION_SCHEMAS,
    TYPE_REQUIRED_MESSAGE,
    SchemaValidator,
)
from tests.helpers import required_data_fields, valid_payload

ALL_TYPES = [t.value for t in NotificationType]


@pytest.fixture
def validator():
    return SchemaValidator()


class TestSchemaRegistry:
    """Tests for the type -> schema table."""

    def test_every_type_has_a_schema(self):
        """Test the registry covers the closed set of notification types."""
        assert set(NOTIFICATION_SCHEMAS) == set(NotificationType)


class TestValidPayloads:
    """Tests for payloads that should pass."""

    @pytest.mark.parametrize("notification_type", ALL_TYPES)
    def test_minimal_valid_payload_passes(self, validator, notification_type):
        """Test the minimal payload for every type validates."""
        result = validator.validate_envelope(valid_payload(notification_type))

        assert result.is_valid, result.errors
        assert isinstance(result.envelope, NotificationEnvelope)
        assert result.envelope.type.value == notification_type
        assert result.notification_type == NotificationType(notification_type)

    def test_generates_id_when_absent(self, validator):
        """Test a missing id is filled with a fresh identifier."""
        result = validator.validate_envelope(valid_payload("WELCOME"))

        assert result.envelope.id

    def test_keeps_client_id_and_created_at(self, validator):
        """Test client-supplied id and createdAt survive validation."""
        payload = valid_payload("WELCOME", id="client-42", createdAt="2025-11-04T12:00:00.000Z")

        envelope = validator.validate_envelope(payload).envelope

        assert envelope.id == "client-42"
        assert (envelope.created_at.year, envelope.created_at.month, envelope.created_at.day) == (2025, 11, 4)

    def test_strips_undeclared_fields(self, validator):
        """Test unknown top-level and data fields are removed."""
        payload = valid_payload("WELCOME", extra="drop me")
        payload["data"]["isAdmin"] = True

        envelope = validator.validate_envelope(payload).envelope

        assert envelope.data == {"fullname": "Ana"}
        assert "extra" not in envelope.model_dump(by_alias=True)

    def test_trims_whitespace(self, validator):
        """Test string fields are trimmed."""
        payload = valid_payload("WELCOME")
        payload["data"]["fullname"] = "  Ana  "

        envelope = validator.validate_envelope(payload).envelope

        assert envelope.data["fullname"] == "Ana"

    def test_card_amount_is_optional(self, validator):
        """Test CARD.CREATE accepts an optional positive amount."""
        payload = valid_payload("CARD.CREATE")
        payload["data"]["amount"] = 500

        result = validator.validate_envelope(payload)

        assert result.is_valid
        assert result.envelope.data["amount"] == 500

    def test_validate_with_explicit_type(self, validator):
        """Test validate() selects the schema from the given type."""
        result = validator.validate(NotificationType.WELCOME, valid_payload("WELCOME"))

        assert result.is_valid


class TestRejectedPayloads:
    """Tests for payloads that should be rejected."""

    @pytest.mark.parametrize("notification_type", ALL_TYPES)
    def test_omitted_required_field_is_reported(self, validator, notification_type):
        """Test omitting each required data field yields a field-specific message."""
        for field_name in required_data_fields(notification_type):
            payload = valid_payload(notification_type)
            del payload["data"][field_name]

            result = validator.validate_envelope(payload)

            assert not result.is_valid
            assert f'"data.{field_name}" is required' in result.errors

    @pytest.mark.parametrize("notification_type", ALL_TYPES)
    def test_empty_required_field_is_reported(self, validator, notification_type):
        """Test an empty value for each required data field names that field."""
        for field_name in required_data_fields(notification_type):
            payload = valid_payload(notification_type)
            payload["data"][field_name] = ""

            result = validator.validate_envelope(payload)

            assert not result.is_valid
            assert any(f'"data.{field_name}"' in error for error in result.errors)

    def test_collects_every_violation(self, validator):
        """Test all violations are reported, not just the first."""
        payload = valid_payload("TRANSACTION.PURCHASE", userEmail="not-an-email")
        payload["data"] = {}

        result = validator.validate_envelope(payload)

        assert '"userEmail" must be a valid email address' in result.errors
        assert '"data.amount" is required' in result.errors
        assert '"data.merchant" is required' in result.errors
        assert len(result.errors) >= 5

    def test_missing_type(self, validator):
        """Test a payload without a type tag is rejected."""
        payload = valid_payload("WELCOME")
        del payload["type"]

        result = validator.validate_envelope(payload)

        assert result.errors == [TYPE_REQUIRED_MESSAGE]
        assert result.envelope is None

    def test_unknown_type(self, validator):
        """Test an unknown type tag is rejected before any schema runs."""
        result = validator.validate_envelope(valid_payload("WELCOME", type="SMS.PROMO"))

        assert result.unknown_type
        assert result.errors == ["Unknown notification type: 'SMS.PROMO'"]

    def test_non_object_payload(self, validator):
        """Test a non-mapping payload is rejected."""
        result = validator.validate_envelope(["not", "an", "object"])

        assert result.errors == ['"value" must be an object']

    def test_non_positive_amount(self, validator):
        """Test amounts must be greater than zero."""
        payload = valid_payload("TRANSACTION.PAID")
        payload["data"]["amount"] = 0

        result = validator.validate_envelope(payload)

        assert any(error.startswith('"data.amount" must be greater than 0') for error in result.errors)

    @pytest.mark.parametrize(
        "notification_type,amount",
        [
            ("TRANSACTION.SAVE", True),
            ("TRANSACTION.PAID", False),
            ("TRANSACTION.SAVE", float("inf")),
            ("TRANSACTION.PURCHASE", float("nan")),
            ("CARD.CREATE", True),
            ("TRANSACTION.SAVE", "Infinity"),
        ],
    )
    def test_amount_must_be_a_finite_number(self, validator, notification_type, amount):
        """Test booleans and non-finite values are not accepted as amounts."""
        payload = valid_payload(notification_type)
        payload["data"]["amount"] = amount

        result = validator.validate_envelope(payload)

        assert not result.is_valid
        assert any(error.startswith('"data.amount" must') for error in result.errors)

    def test_amount_from_json_infinity(self, validator):
        """Test an Infinity literal decoded from a JSON body is rejected."""
        payload = valid_payload("TRANSACTION.SAVE")
        payload["data"]["amount"] = json.loads("Infinity")

        assert not validator.validate_envelope(payload).is_valid

    def test_invalid_card_type(self, validator):
        """Test card type is restricted to CREDIT or DEBIT."""
        payload = valid_payload("CARD.ACTIVATE")
        payload["data"]["type"] = "PREPAID"

        result = validator.validate_envelope(payload)

        assert not result.is_valid
        assert any(error.startswith('"data.type" must') for error in result.errors)

    def test_rejects_epoch_dates(self, validator):
        """Test dates must be ISO 8601 strings."""
        payload = valid_payload("USER.LOGIN")
        payload["data"]["date"] = 1730721600

        result = validator.validate_envelope(payload)

        assert '"data.date" must be a valid ISO 8601 date' in result.errors

    def test_rejects_blank_user_id(self, validator):
        """Test userId must be non-empty after trimming."""
        result = validator.validate_envelope(valid_payload("WELCOME", userId="   "))

        assert any(error.startswith('"userId"') for error in result.errors)
