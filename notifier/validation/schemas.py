"""Per-type structural schemas for inbound notifications.

Each notification type maps to a pydantic model describing the common
envelope fields plus a type-specific ``data`` shape. Models ignore
undeclared fields, so validating through them also sanitizes the payload.
"""

import math
from datetime import datetime
from typing import Annotated, Any, Dict, Literal, Optional, Type
from uuid import uuid4

from email_validator import EmailNotValidError, validate_email
from pydantic import AnyUrl, BaseModel, BeforeValidator, Field, field_validator

from notifier.domain.models import NotificationType, require_all_types
from notifier.utils.timestamps import parse_iso_datetime


def _require_iso_date(value: Any) -> Any:
    """Accept datetimes and ISO 8601 strings only (no epoch numbers)."""
    if isinstance(value, datetime):
        return value
    if isinstance(value, str):
        parsed = parse_iso_datetime(value)
        if parsed is not None:
            return parsed
    raise ValueError("must be a valid ISO 8601 date")


IsoDate = Annotated[datetime, BeforeValidator(_require_iso_date)]


def _require_number(value: Any) -> Any:
    """Reject booleans and non-finite floats, which the float type would coerce."""
    if isinstance(value, bool):
        raise ValueError("must be a number")
    if isinstance(value, float) and not math.isfinite(value):
        raise ValueError("must be a finite number")
    return value


Amount = Annotated[float, BeforeValidator(_require_number), Field(gt=0, allow_inf_nan=False)]


class _Schema(BaseModel):
    """Base for all schemas: strip unknown fields and surrounding whitespace."""

    model_config = {
        "extra": "ignore",
        "str_strip_whitespace": True,
        "populate_by_name": True,
    }


# Payload shapes


class WelcomeData(_Schema):
    fullname: str = Field(..., min_length=2, max_length=100)


class UserActivityData(_Schema):
    date: IsoDate


class CardData(_Schema):
    date: IsoDate
    type: Literal["CREDIT", "DEBIT"]
    amount: Optional[Amount] = None


class TransactionPurchaseData(_Schema):
    date: IsoDate
    amount: Amount
    card_id: str = Field(..., alias="cardId", min_length=1)
    merchant: str = Field(..., min_length=2, max_length=100)


class TransactionData(_Schema):
    date: IsoDate
    amount: Amount
    merchant: str = Field(..., min_length=2, max_length=100)


class ReportActivityData(_Schema):
    date: IsoDate
    url: AnyUrl


# Envelopes


class EnvelopeSchema(_Schema):
    """Fields shared by every notification type."""

    id: str = Field(default_factory=lambda: str(uuid4()), min_length=1)
    type: NotificationType
    user_email: str = Field(..., alias="userEmail")
    user_id: str = Field(..., alias="userId", min_length=1)
    created_at: Optional[IsoDate] = Field(None, alias="createdAt")

    @field_validator("user_email")
    @classmethod
    def check_email(cls, v: str) -> str:
        """Validate recipient address format (no deliverability lookup)."""
        try:
            return validate_email(v, check_deliverability=False).normalized
        except EmailNotValidError as e:
            raise ValueError("must be a valid email address") from e


class WelcomeSchema(EnvelopeSchema):
    data: WelcomeData


class UserActivitySchema(EnvelopeSchema):
    data: UserActivityData


class CardSchema(EnvelopeSchema):
    data: CardData


class TransactionPurchaseSchema(EnvelopeSchema):
    data: TransactionPurchaseData


class TransactionSchema(EnvelopeSchema):
    data: TransactionData


class ReportActivitySchema(EnvelopeSchema):
    data: ReportActivityData


NOTIFICATION_SCHEMAS: Dict[NotificationType, Type[EnvelopeSchema]] = {
    NotificationType.WELCOME: WelcomeSchema,
    NotificationType.USER_LOGIN: UserActivitySchema,
    NotificationType.USER_UPDATE: UserActivitySchema,
    NotificationType.CARD_CREATE: CardSchema,
    NotificationType.CARD_ACTIVATE: CardSchema,
    NotificationType.TRANSACTION_PURCHASE: TransactionPurchaseSchema,
    NotificationType.TRANSACTION_SAVE: TransactionSchema,
    NotificationType.TRANSACTION_PAID: TransactionSchema,
    NotificationType.REPORT_ACTIVITY: ReportActivitySchema,
}

require_all_types(NOTIFICATION_SCHEMAS, "NOTIFICATION_SCHEMAS")
