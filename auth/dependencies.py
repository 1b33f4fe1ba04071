"""
FastAPI dependencies for authentication.

Provides the wired ``AuthService`` plus the bearer-token guards:
``get_current_user`` (access token) and ``get_refresh_credentials``
(refresh token).  Tests override ``get_auth_service`` /
``get_token_issuer`` through ``app.dependency_overrides``.
"""

from __future__ import annotations

import uuid
from functools import lru_cache
from typing import Optional

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import BaseModel

from auth.errors import UnauthorizedError
from auth.jwt import TokenIssuer
from auth.service import AuthService
from database.store import SqlAlchemyStore, Store
from mail.gateways import build_mail_gateway
from mail.notifier import Notifier

_bearer_scheme = HTTPBearer(auto_error=False)


class CurrentUser(BaseModel):
    id: uuid.UUID
    email: str
    username: str


class RefreshCredentials(CurrentUser):
    refresh_token: str


@lru_cache
def get_token_issuer() -> TokenIssuer:
    return TokenIssuer()


@lru_cache
def get_notifier() -> Notifier:
    return Notifier(build_mail_gateway())


@lru_cache
def get_store() -> Store:
    from database.session import async_session_factory

    return SqlAlchemyStore(async_session_factory)


def get_auth_service() -> AuthService:
    return AuthService(store=get_store(), tokens=get_token_issuer(), notifier=get_notifier())


def _bearer_token(credentials: Optional[HTTPAuthorizationCredentials]) -> str:
    if credentials is None or credentials.scheme.lower() != "bearer":
        raise UnauthorizedError("Missing Bearer token")
    return credentials.credentials


def _identity(claims: dict) -> dict:
    try:
        return {
            "id": uuid.UUID(str(claims["id"])),
            "email": claims.get("email", ""),
            "username": claims.get("username", ""),
        }
    except (KeyError, ValueError):
        raise UnauthorizedError("Invalid token: malformed subject")


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(_bearer_scheme),
    tokens: TokenIssuer = Depends(get_token_issuer),
) -> CurrentUser:
    """
    Verify the Bearer access token and return the caller's identity.
    """
    claims = tokens.verify_access_token(_bearer_token(credentials))
    return CurrentUser(**_identity(claims))


async def get_refresh_credentials(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(_bearer_scheme),
    tokens: TokenIssuer = Depends(get_token_issuer),
) -> RefreshCredentials:
    """
    Verify the Bearer refresh token; the raw token is kept so the service
    can compare it with the one stored on the session.
    """
    token = _bearer_token(credentials)
    claims = tokens.verify_refresh_token(token)
    return RefreshCredentials(**_identity(claims), refresh_token=token)
