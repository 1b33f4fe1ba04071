"""
HTML bodies for the account lifecycle mails.

Every interpolated value is HTML-escaped; names and device strings are
user-controlled.
"""

from __future__ import annotations

from datetime import datetime
from html import escape

from config.settings import config

_LAYOUT = """\
<!DOCTYPE html>
<html>
  <body style="font-family: Arial, Helvetica, sans-serif; color: #1f2937; background: #f9fafb; padding: 24px;">
    <div style="max-width: 560px; margin: 0 auto; background: #ffffff; border-radius: 8px; padding: 32px;">
      <h2 style="margin-top: 0;">{title}</h2>
      {body}
      <p style="color: #6b7280; font-size: 12px; margin-top: 32px;">{app_name}</p>
    </div>
  </body>
</html>
"""

_CODE_BLOCK = (
    '<p style="font-size: 28px; font-weight: bold; letter-spacing: 6px; '
    'background: #f3f4f6; padding: 12px 16px; text-align: center;">{code}</p>'
)


def _render(title: str, body: str) -> str:
    return _LAYOUT.format(title=escape(title), body=body, app_name=escape(config.app_name))


def register_success_mail(name: str, otp: str) -> str:
    return _render(
        "Confirm your email",
        f"<p>Hi {escape(name)},</p>"
        "<p>Thanks for signing up. Use the code below to confirm your email address.</p>"
        + _CODE_BLOCK.format(code=escape(otp))
        + "<p>The code expires in 24 hours.</p>",
    )


def sign_in_success_mail(
    username: str,
    login_time: datetime | None,
    ip_address: str,
    location: str,
    device: str,
) -> str:
    when = login_time.strftime("%Y-%m-%d %H:%M:%S %Z").strip() if login_time else "unknown"
    return _render(
        "New sign-in to your account",
        f"<p>Hi {escape(username)},</p>"
        "<p>Your account was just signed in to.</p>"
        "<ul>"
        f"<li>Time: {escape(when)}</li>"
        f"<li>IP address: {escape(ip_address)}</li>"
        f"<li>Location: {escape(location)}</li>"
        f"<li>Device: {escape(device)}</li>"
        "</ul>"
        "<p>If this wasn't you, change your password and sign out of all devices.</p>",
    )


def confirm_email_success_mail(name: str) -> str:
    return _render(
        "Email confirmed",
        f"<p>Hi {escape(name)},</p><p>Your email address has been confirmed.</p>",
    )


def reset_password_mail(name: str, code: str) -> str:
    return _render(
        "Reset your password",
        f"<p>Hi {escape(name)},</p>"
        "<p>We received a request to reset your password. Use this code:</p>"
        + _CODE_BLOCK.format(code=escape(code))
        + "<p>If you didn't ask for this, you can ignore this email.</p>",
    )


def change_password_success_mail(name: str) -> str:
    return _render(
        "Password changed",
        f"<p>Hi {escape(name)},</p>"
        "<p>Your password was changed. If this wasn't you, reset it immediately.</p>",
    )
