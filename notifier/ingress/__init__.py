"""Entry surfaces: synchronous requests, queue batches and the enqueue path."""

from .adapter import QUEUED_MESSAGE, SENT_MESSAGE, IngressAdapter
from .models import (
    CORS_HEADERS,
    BatchSummary,
    HttpRequest,
    HttpResponse,
    IngressError,
    MalformedBatchError,
    QueueMessage,
    parse_batch,
)
from .queue import QueuePublishError, SqsQueuePublisher

__all__ = [
    "IngressAdapter",
    "HttpRequest",
    "HttpResponse",
    "QueueMessage",
    "BatchSummary",
    "parse_batch",
    "CORS_HEADERS",
    "SENT_MESSAGE",
    "QUEUED_MESSAGE",
    "IngressError",
    "MalformedBatchError",
    "QueuePublishError",
    "SqsQueuePublisher",
]
