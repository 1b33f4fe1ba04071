"""
JWT access / refresh token issuance and verification.

Access and refresh tokens are signed with different secrets and carry the
same identity claims (``id``, ``email``, ``username``).  Every token also
gets a random ``jti`` so two pairs issued in the same second still differ.
Secrets and lifetimes come from ``config`` (``ACCESS_TOKEN_*`` /
``REFRESH_TOKEN_*`` env vars).
"""

from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Dict

import jwt

from auth.errors import UnauthorizedError
from auth.schemas import AuthTokens
from config.settings import Settings, config


class TokenIssuer:
    def __init__(self, settings: Settings = config) -> None:
        self._settings = settings
        self._algorithm = settings.jwt_algorithm

    # ── Issuance ────────────────────────────────────────────────────────

    def _sign(self, user: Any, secret: str, ttl_seconds: int) -> str:
        now = datetime.now(timezone.utc)
        payload = {
            "id": str(user.id),
            "email": user.email,
            "username": user.username,
            "iat": now,
            "exp": now + timedelta(seconds=ttl_seconds),
            "jti": uuid.uuid4().hex,
        }
        return jwt.encode(payload, secret, algorithm=self._algorithm)

    def issue_access_token(self, user: Any) -> str:
        return self._sign(
            user, self._settings.access_token_secret, self._settings.access_token_expiry_seconds
        )

    def issue_refresh_token(self, user: Any) -> str:
        return self._sign(
            user, self._settings.refresh_token_secret, self._settings.refresh_token_expiry_seconds
        )

    def issue_pair(self, user: Any) -> AuthTokens:
        return AuthTokens(
            access_token=self.issue_access_token(user),
            refresh_token=self.issue_refresh_token(user),
        )

    def refresh_time_hint(self) -> str:
        """ISO-8601 UTC instant at which a client should refresh its access token."""
        lead = max(
            self._settings.access_token_expiry_seconds - self._settings.refresh_leeway_seconds, 0
        )
        return (datetime.now(timezone.utc) + timedelta(seconds=lead)).isoformat()

    # ── Verification (used by the HTTP guards) ──────────────────────────

    def _verify(self, token: str, secret: str) -> Dict[str, Any]:
        try:
            return jwt.decode(
                token,
                secret,
                algorithms=[self._algorithm],
                options={"require": ["exp", "id"]},
            )
        except jwt.ExpiredSignatureError:
            raise UnauthorizedError("Token expired")
        except jwt.InvalidTokenError as exc:
            raise UnauthorizedError(f"Invalid token: {exc}")

    def verify_access_token(self, token: str) -> Dict[str, Any]:
        """Return the claims of a valid access token, else raise ``UnauthorizedError``."""
        return self._verify(token, self._settings.access_token_secret)

    def verify_refresh_token(self, token: str) -> Dict[str, Any]:
        """Return the claims of a valid refresh token, else raise ``UnauthorizedError``."""
        return self._verify(token, self._settings.refresh_token_secret)
