"""Secrets and deployment settings read from environment variables.

Everything here is optional when loaded. Mail credentials are only demanded
by the SMTP transport (require_mail_credentials), so ``history`` and
``check-config`` work on a machine without them.

Variables:
    SMTP_HOST, SMTP_PORT        mail server (smtp.gmail.com:465)
    SMTP_USER, SMTP_PASS        mail account; set both or neither
    SMTP_SENDER_NAME            display name on the From header
    LOG_LEVEL                   overrides logging.level from config.yaml
    DATABASE_URL                state store (sqlite:///./data/notifications.db)
    NOTIFICATION_TABLE_NAME     notification records table
    ERROR_TABLE_NAME            error records and statistics table
    TEMPLATE_BUCKET             S3 bucket holding templates
    TEMPLATE_DIR                template directory (packaged templates if unset)
    AWS_REGION                  region for S3 and SQS (us-east-2)
    SQS_QUEUE_URL               queue the enqueue command publishes to
"""

import os
from dataclasses import dataclass
from typing import List, Optional

from email_validator import EmailNotValidError, validate_email

from .exceptions import ConfigurationError

DEFAULT_SMTP_HOST = "smtp.gmail.com"
DEFAULT_SMTP_PORT = 465
DEFAULT_DATABASE_URL = "sqlite:///./data/notifications.db"
DEFAULT_AWS_REGION = "us-east-2"

VALID_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")

_SETUP_HINTS = [
    "Copy .env.example to .env and fill in the values you need",
    "For Gmail, create an app password and use it as SMTP_PASS",
]


@dataclass
class EnvironmentConfig:
    smtp_host: str = DEFAULT_SMTP_HOST
    smtp_port: int = DEFAULT_SMTP_PORT
    smtp_user: Optional[str] = None
    smtp_pass: Optional[str] = None
    smtp_sender_name: str = "Notifications"
    log_level: Optional[str] = None
    database_url: str = DEFAULT_DATABASE_URL
    notification_table_name: str = "notifications"
    error_table_name: str = "notification_errors"
    template_bucket: Optional[str] = None
    template_dir: Optional[str] = None
    aws_region: str = DEFAULT_AWS_REGION
    sqs_queue_url: Optional[str] = None

    @property
    def has_mail_credentials(self) -> bool:
        return bool(self.smtp_user and self.smtp_pass)

    def require_mail_credentials(self) -> None:
        """Raise ConfigurationError naming whichever of SMTP_USER/SMTP_PASS is unset."""
        missing = [name for name, value in (("SMTP_USER", self.smtp_user), ("SMTP_PASS", self.smtp_pass)) if not value]
        if missing:
            raise ConfigurationError(
                "Mail transport credentials are not configured",
                errors=[f"Missing required environment variable: {name}" for name in missing],
                suggestions=_SETUP_HINTS,
            )


def _parse_port(raw: Optional[str], errors: List[str]) -> int:
    if not raw:
        return DEFAULT_SMTP_PORT
    try:
        port = int(raw)
    except ValueError:
        errors.append(f"SMTP_PORT must be an integer, got '{raw}'")
        return DEFAULT_SMTP_PORT
    if not 1 <= port <= 65535:
        errors.append(f"SMTP_PORT {port} is outside 1-65535")
    return port


def load_environment_config() -> EnvironmentConfig:
    """Read and validate the environment.

    Raises:
        ConfigurationError: Listing every invalid variable at once
    """
    env = os.environ
    errors: List[str] = []

    smtp_port = _parse_port(env.get("SMTP_PORT"), errors)
    smtp_user = env.get("SMTP_USER") or None
    smtp_pass = env.get("SMTP_PASS") or None
    log_level = env.get("LOG_LEVEL") or None
    template_bucket = env.get("TEMPLATE_BUCKET") or None
    template_dir = env.get("TEMPLATE_DIR") or None

    if smtp_user:
        try:
            validate_email(smtp_user, check_deliverability=False)
        except EmailNotValidError as e:
            errors.append(f"SMTP_USER '{smtp_user}' is not an email address: {e}")

    if bool(smtp_user) != bool(smtp_pass):
        present, absent = ("SMTP_USER", "SMTP_PASS") if smtp_user else ("SMTP_PASS", "SMTP_USER")
        errors.append(f"{present} is set but {absent} is not; set both to authenticate")

    if log_level and log_level.upper() not in VALID_LOG_LEVELS:
        errors.append(f"LOG_LEVEL '{log_level}' is not one of {', '.join(VALID_LOG_LEVELS)}")

    if template_bucket and template_dir:
        errors.append("TEMPLATE_BUCKET and TEMPLATE_DIR are both set. Choose one template source.")

    if errors:
        raise ConfigurationError("Environment variable validation failed", errors=errors, suggestions=_SETUP_HINTS)

    return EnvironmentConfig(
        smtp_host=env.get("SMTP_HOST") or DEFAULT_SMTP_HOST,
        smtp_port=smtp_port,
        smtp_user=smtp_user,
        smtp_pass=smtp_pass,
        smtp_sender_name=env.get("SMTP_SENDER_NAME") or "Notifications",
        log_level=log_level,
        database_url=env.get("DATABASE_URL") or DEFAULT_DATABASE_URL,
        notification_table_name=env.get("NOTIFICATION_TABLE_NAME") or "notifications",
        error_table_name=env.get("ERROR_TABLE_NAME") or "notification_errors",
        template_bucket=template_bucket,
        template_dir=template_dir,
        aws_region=env.get("AWS_REGION") or DEFAULT_AWS_REGION,
        sqs_queue_url=env.get("SQS_QUEUE_URL") or None,
    )
