"""
Mail transports.

``SmtpMailGateway`` delivers through an SMTP relay.  ``smtplib`` is
blocking, so every send is offloaded to a thread via ``asyncio.to_thread()``
and never blocks the event loop.

``LoggingMailGateway`` is the development fallback used when ``MAIL_HOST`` /
``MAIL_USERNAME`` are not configured: the message is logged, not sent.
"""

from __future__ import annotations

import asyncio
import logging
import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText

from config.settings import Settings, config
from mail.base import MailGateway, MailMessage

logger = logging.getLogger(__name__)


class SmtpMailGateway(MailGateway):
    def __init__(self, settings: Settings = config) -> None:
        self._settings = settings

    @property
    def name(self) -> str:
        return "smtp"

    def _build(self, message: MailMessage) -> MIMEMultipart:
        msg = MIMEMultipart("alternative")
        msg["From"] = self._settings.mail_sender
        msg["To"] = ", ".join(message.to)
        msg["Subject"] = message.subject
        msg.attach(MIMEText(message.html, "html", "utf-8"))
        return msg

    def _send_sync(self, msg: MIMEMultipart) -> None:
        s = self._settings
        with smtplib.SMTP(s.mail_host, s.mail_port, timeout=s.mail_timeout_seconds) as server:
            if s.mail_use_tls:
                server.starttls()
            if s.mail_username and s.mail_password:
                server.login(s.mail_username, s.mail_password)
            server.send_message(msg)

    async def send(self, message: MailMessage) -> None:
        await asyncio.to_thread(self._send_sync, self._build(message))
        logger.info("Mail sent to %s: %s", ", ".join(message.to), message.subject)


class LoggingMailGateway(MailGateway):
    def __init__(self, settings: Settings = config) -> None:
        self._settings = settings

    @property
    def name(self) -> str:
        return "log"

    async def send(self, message: MailMessage) -> None:
        logger.warning("MAIL_* env not fully configured. Logging email instead of sending.")
        logger.info(
            "Mail from %s to %s: %s\n%s",
            self._settings.mail_sender,
            ", ".join(message.to),
            message.subject,
            message.html,
        )


def build_mail_gateway(settings: Settings = config) -> MailGateway:
    """Pick the SMTP transport when configured, else the log-only fallback."""
    if settings.mail_configured:
        return SmtpMailGateway(settings)
    return LoggingMailGateway(settings)
