"""Request, response and batch shapes for the ingress surfaces.

The shapes follow the API-gateway and queue event formats: HTTP requests
carry ``httpMethod`` and a string ``body``; queue events carry a
``Records`` list whose items have ``messageId``, ``body`` and
``attributes.ApproximateReceiveCount``.
"""

import json
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional

from notifier.utils.timestamps import format_timestamp, utc_now

CORS_HEADERS = {
    "Content-Type": "application/json",
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Headers": "Content-Type",
    "Access-Control-Allow-Methods": "POST, OPTIONS",
}


class IngressError(Exception):
    """Base exception for ingress failures."""

    pass


class MalformedBatchError(IngressError):
    """Raised when a queue event has no record list or only empty bodies."""

    pass


def now_timestamp() -> str:
    return format_timestamp(utc_now())


@dataclass
class HttpRequest:
    """Synchronous request as received from the HTTP front door."""

    method: str
    body: Optional[str] = None
    headers: Dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_event(cls, event: Mapping[str, Any]) -> "HttpRequest":
        """Build a request from an API-gateway style event mapping."""
        body = event.get("body")
        if body is not None and not isinstance(body, str):
            body = json.dumps(body)
        return cls(
            method=str(event.get("httpMethod") or "").upper(),
            body=body,
            headers=dict(event.get("headers") or {}),
        )


@dataclass
class HttpResponse:
    """Synchronous response; always carries the CORS headers."""

    status_code: int
    body: str = ""
    headers: Dict[str, str] = field(default_factory=lambda: dict(CORS_HEADERS))

    @classmethod
    def from_payload(cls, status_code: int, payload: Mapping[str, Any]) -> "HttpResponse":
        return cls(status_code=status_code, body=json.dumps(payload))

    def payload(self) -> Any:
        """Decode the JSON body (None for an empty body)."""
        return json.loads(self.body) if self.body else None

    def to_dict(self) -> Dict[str, Any]:
        return {"statusCode": self.status_code, "headers": dict(self.headers), "body": self.body}


@dataclass
class QueueMessage:
    """One record of a queue batch."""

    message_id: str
    body: str
    receive_count: int = 1

    @classmethod
    def from_record(cls, record: Any, index: int = 0) -> "QueueMessage":
        """Build a message from a queue record mapping.

        Records that are not mappings become empty-bodied messages, so
        they are reported as failures instead of aborting the batch.
        """
        if not isinstance(record, Mapping):
            return cls(message_id=f"record-{index}", body="")

        attributes = record.get("attributes") or {}
        try:
            receive_count = int(attributes.get("ApproximateReceiveCount", 1))
        except (TypeError, ValueError):
            receive_count = 1

        body = record.get("body")
        if body is None:
            body = ""
        elif not isinstance(body, str):
            body = json.dumps(body)

        return cls(
            message_id=str(record.get("messageId") or f"record-{index}"),
            body=body,
            receive_count=receive_count,
        )


def parse_batch(event: Any) -> List[QueueMessage]:
    """Extract the messages of a queue event.

    Raises:
        MalformedBatchError: If the event has no ``Records`` list, or every
            record body is empty
    """
    if not isinstance(event, Mapping) or not isinstance(event.get("Records"), list):
        raise MalformedBatchError("Queue event must contain a 'Records' list")

    messages = [QueueMessage.from_record(record, index) for index, record in enumerate(event["Records"])]
    if messages and all(not message.body.strip() for message in messages):
        raise MalformedBatchError(f"All {len(messages)} queue records have empty bodies")
    return messages


@dataclass
class BatchSummary:
    """Aggregate outcome of one queue batch.

    Attributes:
        processed: Number of records in the batch
        successful: Records delivered
        failed: Records that failed for any reason
        timestamp: When the batch finished
        batch_item_failures: Message ids the queue should redeliver
    """

    processed: int = 0
    successful: int = 0
    failed: int = 0
    timestamp: str = field(default_factory=now_timestamp)
    batch_item_failures: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "processed": self.processed,
            "successful": self.successful,
            "failed": self.failed,
            "timestamp": self.timestamp,
            "batchItemFailures": [{"itemIdentifier": message_id} for message_id in self.batch_item_failures],
        }
