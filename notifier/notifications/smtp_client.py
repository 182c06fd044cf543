"""SMTP mail transport.

Thin wrapper around smtplib with implicit TLS on port 465, optional
STARTTLS otherwise, and authentication with the configured mail account.
Connection lifecycle is per message; the transport holds no open sockets
between sends.
"""

import smtplib
import ssl
from email.message import EmailMessage
from email.utils import formataddr, make_msgid
from typing import Callable, Optional

from email_validator import EmailNotValidError, validate_email

from notifier.config.environment import EnvironmentConfig
from notifier.logging import get_logger
from notifier.templates.models import RenderedContent

from .models import TransportError

logger = get_logger(__name__, component="smtp")

IMPLICIT_TLS_PORT = 465


class SMTPClient:
    """Sends rendered notifications through an SMTP server.

    Factories for the SMTP connection classes can be injected so tests never
    open a socket.
    """

    def __init__(
        self,
        env_config: EnvironmentConfig,
        use_tls: bool = True,
        smtp_factory: Optional[Callable] = None,
        smtp_ssl_factory: Optional[Callable] = None,
    ):
        """Initialize the transport.

        Args:
            env_config: Environment configuration with SMTP settings
            use_tls: Upgrade with STARTTLS when not on the implicit TLS port
            smtp_factory: Factory for SMTP instances (for mocking)
            smtp_ssl_factory: Factory for SMTP_SSL instances (for mocking)

        Raises:
            ConfigurationError: If mail credentials are not configured
        """
        env_config.require_mail_credentials()
        self.env_config = env_config
        self.use_tls = use_tls
        self.smtp_factory = smtp_factory or smtplib.SMTP
        self.smtp_ssl_factory = smtp_ssl_factory or smtplib.SMTP_SSL
        self.sender = build_sender_address(env_config)

    def send(self, recipient: str, content: RenderedContent) -> str:
        """Send one message and return its Message-ID.

        Args:
            recipient: Recipient email address
            content: Rendered subject, HTML and text bodies

        Returns:
            Message-ID header of the sent message

        Raises:
            TransportError: If the message could not be built or delivered
        """
        message = self.build_message(recipient, content)
        message_id = message["Message-ID"]

        smtp = None
        try:
            smtp = self._connect()
            smtp.login(self.env_config.smtp_user, self.env_config.smtp_pass)
            smtp.send_message(message)
        except smtplib.SMTPException as e:
            raise self._failure("SMTP error", "server rejected the message", e) from e
        except OSError as e:
            raise self._failure("Network error", "could not reach the server", e) from e
        finally:
            if smtp is not None:
                self._close(smtp)

        logger.debug(
            f"Message {message_id} accepted by {self.env_config.smtp_host}",
            extra={"event": "smtp.accepted", "smtp_host": self.env_config.smtp_host},
        )
        return message_id

    def build_message(self, recipient: str, content: RenderedContent) -> EmailMessage:
        """Build a multipart (text + HTML) message with a fresh Message-ID.

        Raises:
            TransportError: If the recipient address is invalid
        """
        try:
            to_address = validate_email(recipient, check_deliverability=False).normalized
        except EmailNotValidError as e:
            raise TransportError(f"Invalid recipient address '{recipient}': {e}") from e

        message = EmailMessage()
        message["Subject"] = content.subject
        message["From"] = self.sender
        message["To"] = to_address
        message["Message-ID"] = make_msgid(domain=_sender_domain(self.env_config))
        message.set_content(content.text)
        message.add_alternative(content.html, subtype="html")
        return message

    def _connect(self):
        host, port = self.env_config.smtp_host, self.env_config.smtp_port
        if port == IMPLICIT_TLS_PORT:
            logger.debug(f"Connecting to {host}:{port} with implicit TLS")
            return self.smtp_ssl_factory(host, port, context=ssl.create_default_context())

        logger.debug(f"Connecting to {host}:{port}")
        smtp = self.smtp_factory(host, port)
        if self.use_tls:
            smtp.starttls(context=ssl.create_default_context())
        return smtp

    def _failure(self, kind: str, detail: str, error: Exception) -> TransportError:
        logger.error(
            f"{kind}: {detail} ({error})",
            extra={"event": "smtp.failed", "smtp_host": self.env_config.smtp_host, "error_type": type(error).__name__},
        )
        return TransportError(f"{kind}: {detail}: {error}")

    @staticmethod
    def _close(smtp) -> None:
        try:
            smtp.quit()
        except (smtplib.SMTPException, OSError) as e:
            logger.warning(f"Ignoring error while closing SMTP connection: {e}")


def build_sender_address(env_config: EnvironmentConfig) -> str:
    """Build the 'From' address, e.g. "Notifications <user@example.com>"."""
    sender_email = env_config.smtp_user or f"noreply@{env_config.smtp_host}"
    return formataddr((env_config.smtp_sender_name, sender_email))


def _sender_domain(env_config: EnvironmentConfig) -> str:
    if env_config.smtp_user and "@" in env_config.smtp_user:
        return env_config.smtp_user.rsplit("@", 1)[1]
    return env_config.smtp_host
