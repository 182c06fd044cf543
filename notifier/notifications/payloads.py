"""Template context for notification emails.

Builds the variables a template bundle is rendered with: the validated
payload merged with identity and timestamp fields, plus display helpers
derived from common payload fields.
"""

from datetime import datetime
from typing import Any, Dict, Optional

from notifier.domain.models import NotificationEnvelope
from notifier.utils.timestamps import format_timestamp, parse_iso_datetime


def build_template_context(
    envelope: NotificationEnvelope,
    record_id: str,
    created_at: datetime,
) -> Dict[str, Any]:
    """Build the render variables for one notification.

    Args:
        envelope: Validated notification
        record_id: Id of the notification record being delivered
        created_at: Creation time of that record

    Returns:
        Dictionary with:
        - every field of envelope.data
        - userEmail, userId: recipient identity
        - timestamp: record creation time (ISO 8601)
        - notificationId: envelope id as submitted by the client
        - recordId: id of the notification record
        - currentYear: year of the record creation time
        - amountFormatted: "1,234.50" when data.amount is present
        - cardLast4: "****1234" when data.cardId is present
        - dateFormatted: "November 4, 2025" when data.date is present
    """
    data = envelope.data

    context: Dict[str, Any] = {
        **data,
        "userEmail": envelope.user_email,
        "userId": envelope.user_id,
        "timestamp": format_timestamp(created_at),
        "notificationId": envelope.id,
        "recordId": record_id,
        "currentYear": created_at.year,
    }

    amount = format_amount(data.get("amount"))
    if amount is not None:
        context["amountFormatted"] = amount

    card_id = data.get("cardId")
    if card_id:
        context["cardLast4"] = mask_card(str(card_id))

    date_formatted = format_date(data.get("date"))
    if date_formatted is not None:
        context["dateFormatted"] = date_formatted

    return context


def format_amount(amount: Any) -> Optional[str]:
    """Format a positive amount with thousands separators and two decimals."""
    if amount is None or isinstance(amount, bool):
        return None
    try:
        return f"{float(amount):,.2f}"
    except (TypeError, ValueError):
        return None


def mask_card(card_id: str) -> str:
    """Hide all but the last four characters of a card id."""
    return f"****{card_id[-4:]}"


def format_date(value: Any) -> Optional[str]:
    """Format an ISO 8601 date as "November 4, 2025"."""
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str):
        parsed = parse_iso_datetime(value)
    else:
        return None
    if parsed is None:
        return None
    return f"{parsed.strftime('%B')} {parsed.day}, {parsed.year}"
