"""Template storage backends.

A template bundle for a notification type lives under a deterministic path
derived from the type tag, with three artifacts per bundle::

    card/create/subject.txt
    card/create/body.html
    card/create/body.txt

Sources only know how to read one artifact by key; the resolver decides
which keys make up a bundle.
"""

import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from notifier.domain.models import NotificationType, require_all_types

from .models import TemplateFetchError, TemplateNotFoundError

logger = logging.getLogger(__name__)

TEMPLATE_PATHS: Dict[NotificationType, str] = {
    NotificationType.WELCOME: "welcome",
    NotificationType.USER_LOGIN: "user/login",
    NotificationType.USER_UPDATE: "user/update",
    NotificationType.CARD_CREATE: "card/create",
    NotificationType.CARD_ACTIVATE: "card/activate",
    NotificationType.TRANSACTION_PURCHASE: "transaction/purchase",
    NotificationType.TRANSACTION_SAVE: "transaction/save",
    NotificationType.TRANSACTION_PAID: "transaction/paid",
    NotificationType.REPORT_ACTIVITY: "report/activity",
}

require_all_types(TEMPLATE_PATHS, "TEMPLATE_PATHS")

ARTIFACT_FILENAMES: Dict[str, str] = {
    "subject": "subject.txt",
    "html": "body.html",
    "text": "body.txt",
}

DEFAULT_TEMPLATE_DIR = Path(__file__).resolve().parent.parent / "email_templates"

_MISSING_OBJECT_CODES = {"NoSuchKey", "NoSuchBucket", "404", "NotFound"}


def artifact_keys(notification_type: NotificationType) -> Dict[str, str]:
    """Build the storage keys of the three artifacts for a notification type.

    Returns:
        Mapping of artifact name (subject, html, text) to storage key
    """
    base = TEMPLATE_PATHS[notification_type]
    return {name: f"{base}/{filename}" for name, filename in ARTIFACT_FILENAMES.items()}


class TemplateSource(ABC):
    """Read-only access to template artifacts in a blob store."""

    @abstractmethod
    def fetch(self, key: str) -> str:
        """Fetch one artifact.

        Raises:
            TemplateNotFoundError: If the artifact does not exist or is empty
            TemplateFetchError: If the store could not be read
        """

    @abstractmethod
    def describe(self) -> str:
        """Human-readable location, used in logs."""


class FileSystemTemplateSource(TemplateSource):
    """Reads artifacts from a directory tree (defaults to packaged templates)."""

    def __init__(self, root: Optional[Path] = None):
        self.root = Path(root) if root is not None else DEFAULT_TEMPLATE_DIR

    def fetch(self, key: str) -> str:
        path = self.root / key
        try:
            content = path.read_text(encoding="utf-8")
        except FileNotFoundError as e:
            raise TemplateNotFoundError(f"Template artifact not found: {key}") from e
        except (OSError, UnicodeDecodeError) as e:
            raise TemplateFetchError(f"Failed to read template artifact {key}: {e}") from e

        if not content:
            raise TemplateNotFoundError(f"Empty content for template artifact: {key}")

        logger.debug(f"Loaded template artifact {path}")
        return content

    def describe(self) -> str:
        return str(self.root)


class S3TemplateSource(TemplateSource):
    """Reads artifacts from an S3 bucket."""

    def __init__(
        self,
        bucket: str,
        region_name: str = "us-east-2",
        prefix: str = "",
        client=None,
    ):
        """Initialize the S3 source.

        Args:
            bucket: Bucket holding the template bundles
            region_name: AWS region of the bucket
            prefix: Optional key prefix prepended to every artifact key
            client: Pre-built boto3 S3 client (created lazily if None)
        """
        self.bucket = bucket
        self.region_name = region_name
        self.prefix = prefix.strip("/")
        self._client = client

    @property
    def client(self):
        if self._client is None:
            self._client = boto3.client("s3", region_name=self.region_name)
        return self._client

    def fetch(self, key: str) -> str:
        object_key = f"{self.prefix}/{key}" if self.prefix else key
        try:
            response = self.client.get_object(Bucket=self.bucket, Key=object_key)
            content = response["Body"].read().decode("utf-8")
        except ClientError as e:
            code = e.response.get("Error", {}).get("Code", "")
            if code in _MISSING_OBJECT_CODES:
                raise TemplateNotFoundError(
                    f"Template artifact not found: s3://{self.bucket}/{object_key}"
                ) from e
            raise TemplateFetchError(
                f"Failed to get S3 object {object_key}: {e}"
            ) from e
        except (BotoCoreError, UnicodeDecodeError) as e:
            raise TemplateFetchError(f"Failed to get S3 object {object_key}: {e}") from e

        if not content:
            raise TemplateNotFoundError(f"Empty content for key: {object_key}")

        return content

    def describe(self) -> str:
        return f"s3://{self.bucket}/{self.prefix}" if self.prefix else f"s3://{self.bucket}"
