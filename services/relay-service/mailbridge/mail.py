"""Outbound SMTP transport and account notification emails."""

from __future__ import annotations

import asyncio
import logging
from email.message import EmailMessage

import aiosmtplib

from .config import Settings
from .domain.errors import UpstreamMailError

logger = logging.getLogger(__name__)

_BUTTON_STYLE = (
    "display: inline-block; padding: 12px 24px; background-color: #1c1917; "
    "color: #ffffff; text-decoration: none; border-radius: 6px; font-weight: bold;"
)


class SMTPTransport:
    """Send fully built messages through the configured SMTP relay.

    There is no retry: a connection, authentication, protocol or timeout
    failure is raised as ``UpstreamMailError`` to the caller.
    """

    def __init__(
        self,
        *,
        host: str,
        port: int,
        username: str | None,
        password: str | None,
        use_tls: bool = False,
        timeout: float = 10.0,
    ) -> None:
        self._host = host
        self._port = port
        self._username = username or None
        self._password = password or None
        self._use_tls = use_tls
        self._timeout = timeout

    @classmethod
    def from_settings(cls, settings: Settings) -> "SMTPTransport":
        return cls(
            host=settings.smtp_host,
            port=settings.smtp_port,
            username=settings.email_user,
            password=settings.email_password,
            use_tls=settings.smtp_use_tls,
            timeout=settings.smtp_timeout_seconds,
        )

    async def send(self, message: EmailMessage) -> None:
        try:
            await aiosmtplib.send(
                message,
                hostname=self._host,
                port=self._port,
                username=self._username,
                password=self._password,
                use_tls=self._use_tls,
                start_tls=False if self._use_tls else None,
                timeout=self._timeout,
            )
        except (aiosmtplib.SMTPException, OSError, asyncio.TimeoutError) as exc:
            logger.error("smtp delivery to %s failed: %s", message.get("To"), exc)
            raise UpstreamMailError() from exc

    async def verify(self) -> bool:
        """Open and close a session to check that the relay accepts our credentials."""
        smtp = aiosmtplib.SMTP(
            hostname=self._host,
            port=self._port,
            use_tls=self._use_tls,
            start_tls=False if self._use_tls else None,
            timeout=self._timeout,
        )
        try:
            await smtp.connect()
            if self._username and self._password:
                await smtp.login(self._username, self._password)
            await smtp.quit()
        except (aiosmtplib.SMTPException, OSError, asyncio.TimeoutError) as exc:
            logger.error("smtp connection check failed: %s", exc)
            return False
        logger.info("smtp connection established with %s:%s", self._host, self._port)
        return True


class AccountMailer:
    """Compose and send the verification and password reset notifications."""

    def __init__(self, transport: SMTPTransport, *, sender: str, frontend_url: str) -> None:
        self._transport = transport
        self._sender = sender
        self._frontend_url = frontend_url.rstrip("/")

    def _message(self, to: str, subject: str, text: str, html: str) -> EmailMessage:
        message = EmailMessage()
        message["From"] = self._sender
        message["To"] = to
        message["Subject"] = subject
        message.set_content(text)
        message.add_alternative(html, subtype="html")
        return message

    async def send_verification(self, to: str, token: str, *, welcome: bool = False) -> None:
        url = f"{self._frontend_url}/verify-email/{token}"
        if welcome:
            subject = "Welcome to Email Service - Verify Your Email"
            heading = "Welcome to Email Service!"
        else:
            subject = "Verify Your Email"
            heading = "Verify Your Email"
        text = f"{heading}\n\nPlease open the link below to verify your email address:\n{url}\n"
        html = (
            f"<h1>{heading}</h1>"
            "<p>Please click the link below to verify your email address:</p>"
            f'<a href="{url}" style="{_BUTTON_STYLE}">Verify Email Address</a>'
        )
        await self._transport.send(self._message(to, subject, text, html))

    async def send_password_reset(self, to: str, token: str) -> None:
        url = f"{self._frontend_url}/reset-password/{token}"
        text = (
            "You requested a password reset. Open the link below to reset your password:\n"
            f"{url}\n\nThis link will expire in 10 minutes.\n"
        )
        html = (
            "<h1>Password Reset Request</h1>"
            "<p>You requested a password reset. Please click the link below to reset your password:</p>"
            f'<a href="{url}" style="{_BUTTON_STYLE}">Reset Password</a>'
            "<p>This link will expire in 10 minutes.</p>"
        )
        await self._transport.send(self._message(to, "Password Reset Request", text, html))
