"""Queue publisher for deferred delivery."""

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from notifier.domain.models import NotificationEnvelope
from notifier.logging import get_logger

from .models import IngressError

logger = get_logger(__name__, component="queue")


class QueuePublishError(IngressError):
    """Raised when an envelope could not be sent to the queue."""

    pass


class SqsQueuePublisher:
    """Publishes envelopes to an SQS queue."""

    def __init__(self, queue_url: str, region_name: str = "us-east-2", client=None):
        """Initialize the publisher.

        Args:
            queue_url: URL of the delivery queue
            region_name: AWS region of the queue
            client: Pre-built boto3 SQS client (created lazily if None)
        """
        self.queue_url = queue_url
        self.region_name = region_name
        self._client = client

    @property
    def client(self):
        if self._client is None:
            self._client = boto3.client("sqs", region_name=self.region_name)
        return self._client

    def publish(self, envelope: NotificationEnvelope) -> str:
        """Send one envelope as a message body.

        Returns:
            Queue message id

        Raises:
            QueuePublishError: If SQS rejected the message
        """
        try:
            response = self.client.send_message(
                QueueUrl=self.queue_url,
                MessageBody=envelope.to_message_body(),
            )
        except (ClientError, BotoCoreError) as e:
            logger.error(
                f"Failed to publish notification {envelope.id}: {e}",
                extra={"event": "queue.publish.failed", "queue_url": self.queue_url},
            )
            raise QueuePublishError(f"Failed to queue notification: {e}") from e

        message_id = response.get("MessageId", "")
        logger.info(
            f"Notification {envelope.id} queued",
            extra={"event": "queue.publish.completed", "message_id": message_id},
        )
        return message_id
