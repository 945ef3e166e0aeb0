"""Outbound transactional email.

``SmtpEmailSender`` talks to an SMTP relay through the standard library
``smtplib`` in a worker thread. ``LoggingEmailSender`` is used when no SMTP
host is configured and only writes the message to the log.
"""

import asyncio
import smtplib
import ssl
from email.message import EmailMessage
from html import escape
from typing import Protocol

from loguru import logger

from blog_api.core.config import Settings


class EmailDeliveryError(Exception):
    """Raised when the SMTP relay refuses or cannot accept a message."""


class EmailSender(Protocol):
    """Anything that can deliver an HTML email."""

    async def send_email(self, to: str, subject: str, html_body: str) -> None: ...


def redact_email(address: str) -> str:
    """Mask an address for logging: ``alice@example.com`` -> ``al***@example.com``."""
    if "@" not in address:
        return "redacted"
    local, domain = address.split("@", 1)
    return f"{local[:2]}***@{domain}"


class SmtpEmailSender:
    """Deliver mail through an SMTP relay."""

    def __init__(
        self,
        *,
        host: str,
        port: int = 587,
        username: str | None = None,
        password: str | None = None,
        use_tls: bool = True,
        from_address: str,
        timeout: float = 30.0,
    ) -> None:
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.use_tls = use_tls
        self.from_address = from_address
        self.timeout = timeout

    def _build_message(self, to: str, subject: str, html_body: str) -> EmailMessage:
        message = EmailMessage()
        message["Subject"] = subject
        message["From"] = self.from_address
        message["To"] = to
        message.set_content("This message requires an HTML capable mail client.")
        message.add_alternative(html_body, subtype="html")
        return message

    def _send_sync(self, message: EmailMessage) -> None:
        context = ssl.create_default_context()
        with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as server:
            if self.use_tls:
                server.starttls(context=context)
            if self.username and self.password:
                server.login(self.username, self.password)
            server.send_message(message)

    async def send_email(self, to: str, subject: str, html_body: str) -> None:
        """Send one message without blocking the event loop.

        Raises:
            EmailDeliveryError: If the connection or the relay fails.
        """
        message = self._build_message(to, subject, html_body)
        try:
            await asyncio.to_thread(self._send_sync, message)
        except (smtplib.SMTPException, OSError) as e:
            logger.error(f"Email to {redact_email(to)} failed via {self.host}:{self.port}: {type(e).__name__}")
            msg = f"Could not deliver email to {redact_email(to)}"
            raise EmailDeliveryError(msg) from e
        logger.info(f"Email '{subject}' sent to {redact_email(to)}")


class LoggingEmailSender:
    """Development sender that logs instead of delivering. Message bodies are not kept."""

    async def send_email(self, to: str, subject: str, html_body: str) -> None:
        logger.info(f"SMTP not configured; email '{subject}' to {redact_email(to)} was not delivered")


def build_email_sender(settings: Settings) -> EmailSender:
    """Pick the sender implied by the configuration."""
    if not settings.smtp_host:
        logger.warning("SMTP_HOST is not set; outgoing email will only be logged")
        return LoggingEmailSender()
    return SmtpEmailSender(
        host=settings.smtp_host,
        port=settings.smtp_port,
        username=settings.smtp_username,
        password=settings.smtp_password,
        use_tls=settings.smtp_use_tls,
        from_address=settings.email_from_address,
        timeout=settings.smtp_timeout_seconds,
    )


def verification_email(username: str, link: str, ttl_hours: int) -> tuple[str, str]:
    """Return the subject and HTML body of the email verification message."""
    subject = "Verify your email address"
    body = (
        f"<p>Hello {escape(username)},</p>"
        "<p>Please confirm your email address by following the link below. "
        f"The link expires in {ttl_hours} hours.</p>"
        f'<p><a href="{escape(link, quote=True)}">Verify email</a></p>'
        "<p>If you did not create an account, you can ignore this message.</p>"
    )
    return subject, body


def password_reset_email(username: str, link: str, ttl_minutes: int) -> tuple[str, str]:
    """Return the subject and HTML body of the password reset message."""
    subject = "Reset your password"
    body = (
        f"<p>Hello {escape(username)},</p>"
        f"<p>Someone asked to reset your password. The link below is valid for {ttl_minutes} minutes "
        "and can be used once.</p>"
        f'<p><a href="{escape(link, quote=True)}">Reset password</a></p>'
        "<p>If this was not you, no action is needed.</p>"
    )
    return subject, body
