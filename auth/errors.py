"""
Typed failures raised by the auth service.

Each carries the HTTP status it maps to; ``api.errors`` renders them.
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class AuthError(Exception):
    status_code: int = 400
    code: str = "AUTH_ERROR"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}


class NotFoundError(AuthError):
    """Referenced user, session or code does not exist."""

    status_code = 404
    code = "NOT_FOUND"


class UnauthorizedError(AuthError):
    """Credentials or token did not check out."""

    status_code = 401
    code = "UNAUTHORIZED"


class BadRequestError(AuthError):
    """Malformed, mismatched or expired input."""

    status_code = 400
    code = "BAD_REQUEST"


class ConflictError(AuthError):
    """A unique field (email / username) is already taken."""

    status_code = 409
    code = "CONFLICT"

    def __init__(self, message: str, field: Optional[str] = None) -> None:
        super().__init__(message, {"field": field} if field else None)
        self.field = field
