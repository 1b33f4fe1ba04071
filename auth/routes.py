"""
Auth API routes: registration, sign-in/out, email confirmation,
password reset/change, token refresh, sessions and account deletion.

Route prefix: /api/v1/auth
"""

from __future__ import annotations

import logging
import uuid

from fastapi import APIRouter, Depends, Request, status

from auth.dependencies import (
    CurrentUser,
    RefreshCredentials,
    get_auth_service,
    get_current_user,
    get_refresh_credentials,
)
from auth.schemas import (
    ChangePasswordBody,
    ChangePasswordRequest,
    ConfirmEmailRequest,
    CreateUserRequest,
    DeleteAccountBody,
    DeleteUserRequest,
    ForgotPasswordRequest,
    MessageResponse,
    RefreshTokenBody,
    RefreshTokenRequest,
    RefreshTokenResponse,
    RegisterResponse,
    ResetPasswordRequest,
    SessionResponse,
    SessionsResponse,
    SignInRequest,
    SignInResponse,
    SignOutAllRequest,
    SignOutRequest,
)
from auth.service import AuthService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["auth"])


# ── Registration & confirmation ────────────────────────────────────────


@router.post("/register", response_model=RegisterResponse, status_code=status.HTTP_201_CREATED)
async def register(
    req: CreateUserRequest,
    service: AuthService = Depends(get_auth_service),
) -> RegisterResponse:
    """Register a new account and email a confirmation code."""
    result = await service.register(req)
    return RegisterResponse(
        message="Registration successful. Check your email for the confirmation code.",
        data=result.data,
    )


@router.post("/confirm-email", response_model=MessageResponse)
async def confirm_email(
    req: ConfirmEmailRequest,
    service: AuthService = Depends(get_auth_service),
) -> MessageResponse:
    await service.confirm_email(req)
    return MessageResponse(message="Email confirmed successfully.")


# ── Sign-in / sessions ─────────────────────────────────────────────────


@router.post("/signin", response_model=SignInResponse)
async def sign_in(
    req: SignInRequest,
    request: Request,
    service: AuthService = Depends(get_auth_service),
) -> SignInResponse:
    """Sign in with email-or-username + password; opens a new session."""
    updates = {}
    if not req.ip and request.client is not None:
        updates["ip"] = request.client.host
    if not req.user_agent and request.headers.get("user-agent"):
        updates["user_agent"] = request.headers["user-agent"]
    if updates:
        req = req.model_copy(update=updates)

    result = await service.sign_in(req)
    return SignInResponse(message="Signed in successfully.", data=result.data, tokens=result.tokens)


@router.post("/refresh", response_model=RefreshTokenResponse)
async def refresh_token(
    body: RefreshTokenBody,
    caller: RefreshCredentials = Depends(get_refresh_credentials),
    service: AuthService = Depends(get_auth_service),
) -> RefreshTokenResponse:
    """Rotate the session's refresh token. Authenticate with the *refresh* token."""
    result = await service.refresh_token(
        RefreshTokenRequest(
            user_id=caller.id,
            session_token=body.session_token,
            refresh_token=caller.refresh_token,
        )
    )
    return RefreshTokenResponse(message="Token refreshed successfully.", **result.model_dump())


@router.post("/signout", response_model=MessageResponse)
async def sign_out(
    req: SignOutRequest,
    caller: CurrentUser = Depends(get_current_user),
    service: AuthService = Depends(get_auth_service),
) -> MessageResponse:
    await service.sign_out(req, user_id=caller.id)
    return MessageResponse(message="Signed out successfully.")


@router.post("/signout-all", response_model=MessageResponse)
async def sign_out_all_devices(
    caller: CurrentUser = Depends(get_current_user),
    service: AuthService = Depends(get_auth_service),
) -> MessageResponse:
    await service.sign_out_all_devices(SignOutAllRequest(user_id=caller.id))
    return MessageResponse(message="Signed out from all devices.")


@router.get("/sessions", response_model=SessionsResponse)
async def list_sessions(
    caller: CurrentUser = Depends(get_current_user),
    service: AuthService = Depends(get_auth_service),
) -> SessionsResponse:
    return SessionsResponse(data=await service.get_sessions(caller.id))


@router.get("/sessions/{session_id}", response_model=SessionResponse)
async def get_session(
    session_id: uuid.UUID,
    caller: CurrentUser = Depends(get_current_user),
    service: AuthService = Depends(get_auth_service),
) -> SessionResponse:
    return SessionResponse(data=await service.get_session(session_id, user_id=caller.id))


# ── Passwords ──────────────────────────────────────────────────────────


@router.post("/forgot-password", response_model=MessageResponse)
async def forgot_password(
    req: ForgotPasswordRequest,
    service: AuthService = Depends(get_auth_service),
) -> MessageResponse:
    await service.forgot_password(req)
    return MessageResponse(message="Password reset code sent to your email.")


@router.post("/reset-password", response_model=MessageResponse)
async def reset_password(
    req: ResetPasswordRequest,
    service: AuthService = Depends(get_auth_service),
) -> MessageResponse:
    await service.reset_password(req)
    return MessageResponse(message="Password reset successfully.")


@router.post("/change-password", response_model=MessageResponse)
async def change_password(
    body: ChangePasswordBody,
    caller: CurrentUser = Depends(get_current_user),
    service: AuthService = Depends(get_auth_service),
) -> MessageResponse:
    await service.change_password(
        ChangePasswordRequest(
            identifier=caller.email,
            password=body.password,
            new_password=body.new_password,
        )
    )
    return MessageResponse(message="Password changed successfully.")


# ── Account ────────────────────────────────────────────────────────────


@router.delete("/account", response_model=MessageResponse)
async def delete_account(
    body: DeleteAccountBody,
    caller: CurrentUser = Depends(get_current_user),
    service: AuthService = Depends(get_auth_service),
) -> MessageResponse:
    await service.delete_account(DeleteUserRequest(user_id=caller.id, password=body.password))
    logger.info("Account deleted: %s", caller.id)
    return MessageResponse(message="Account deleted successfully.")
