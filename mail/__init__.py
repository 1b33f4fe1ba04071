"""
Best-effort transactional email.

Provides:
  • ``MailGateway`` interface with SMTP and log-only implementations
  • ``Notifier``, fire-and-forget dispatch that never fails the caller
  • HTML templates for the account lifecycle mails
"""

from mail.base import MailGateway, MailMessage
from mail.gateways import LoggingMailGateway, SmtpMailGateway, build_mail_gateway
from mail.notifier import Notifier

__all__ = [
    "MailGateway",
    "MailMessage",
    "LoggingMailGateway",
    "SmtpMailGateway",
    "build_mail_gateway",
    "Notifier",
]
