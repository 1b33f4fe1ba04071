"""
One-time codes for email confirmation and password reset.
"""

from __future__ import annotations

import secrets
from datetime import datetime, timedelta, timezone

from config.settings import config

MIN_OTP_LENGTH = 6


def generate_otp(length: int | None = None) -> str:
    """Return ``length`` cryptographically random digits (never fewer than 6)."""
    length = max(length or config.otp_length, MIN_OTP_LENGTH)
    return "".join(secrets.choice("0123456789") for _ in range(length))


def otp_expiry(now: datetime | None = None) -> datetime:
    """Absolute expiry instant for a code issued at ``now``."""
    now = now or datetime.now(timezone.utc)
    return now + timedelta(seconds=config.otp_expiry_seconds)


def otp_matches(expected: str, presented: str) -> bool:
    return secrets.compare_digest(expected.encode(), presented.encode())


def is_expired(expires: datetime, now: datetime | None = None) -> bool:
    now = now or datetime.now(timezone.utc)
    # SQLite hands back naive datetimes; those are stored as UTC
    if expires.tzinfo is None:
        expires = expires.replace(tzinfo=timezone.utc)
    return expires < now
