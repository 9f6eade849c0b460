"""SMTP delivery of password reset links."""

from __future__ import annotations

import asyncio
import logging
import smtplib
from email.message import EmailMessage
from urllib.parse import urlencode

from ..config import Settings

logger = logging.getLogger(__name__)


class MailNotConfiguredError(RuntimeError):
    """Raised when no SMTP host is configured."""


class ResetMailer:
    """Sends the reset link; SMTP calls run in a worker thread."""

    def __init__(self, settings: Settings):
        self._settings = settings

    def reset_url(self, token: str) -> str:
        base = self._settings.frontend_url.rstrip("/")
        return f"{base}/reset-password?{urlencode({'token': token})}"

    def build_message(self, recipient: str, token: str) -> EmailMessage:
        settings = self._settings
        message = EmailMessage()
        message["Subject"] = f"Reset your password - {settings.app_name}"
        message["From"] = f"{settings.app_name} <{settings.smtp_user or 'no-reply@localhost'}>"
        message["To"] = recipient
        minutes = settings.reset_token_ttl_seconds // 60
        message.set_content(
            "We received a request to reset your password.\n\n"
            f"Open this link to choose a new one: {self.reset_url(token)}\n\n"
            f"The link expires in {minutes} minutes. "
            "If you did not ask for this, ignore this email.\n"
        )
        return message

    async def send_reset(self, recipient: str, token: str) -> None:
        if not self._settings.mail_configured:
            logger.warning("Cannot send password reset to %s: EMAIL_HOST is not set", recipient)
            raise MailNotConfiguredError("SMTP is not configured")
        message = self.build_message(recipient, token)
        await asyncio.to_thread(self._deliver, message)
        logger.info("Password reset email sent to %s", recipient)

    def _deliver(self, message: EmailMessage) -> None:
        settings = self._settings
        smtp_class = smtplib.SMTP_SSL if settings.smtp_use_tls else smtplib.SMTP
        with smtp_class(settings.smtp_host, settings.smtp_port, timeout=20) as smtp:
            smtp.ehlo()
            if not settings.smtp_use_tls and smtp.has_extn("starttls"):
                smtp.starttls()
                smtp.ehlo()
            if settings.smtp_user and settings.smtp_password:
                smtp.login(settings.smtp_user, settings.smtp_password)
            smtp.send_message(message)
