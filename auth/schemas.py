"""
Pydantic schemas for the auth flows: validated inputs, service results
and HTTP response bodies.
"""

from __future__ import annotations

import uuid
from datetime import date, datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field


# ═══════════════════════════════════════════════════════════════════════════════
# Inputs
# ═══════════════════════════════════════════════════════════════════════════════


class CreateUserRequest(BaseModel):
    email: EmailStr
    # Omitted for accounts that authenticate elsewhere (social sign-in)
    password: Optional[str] = Field(default=None, min_length=4, max_length=128)


class ValidateUserRequest(BaseModel):
    identifier: str = Field(..., min_length=1, max_length=255, description="Email or username")
    password: str = Field(..., min_length=1, max_length=128)


class SignInRequest(ValidateUserRequest):
    ip: Optional[str] = None
    location: Optional[str] = None
    device_os: Optional[str] = None
    device_name: Optional[str] = None
    device_type: Optional[str] = None
    browser: Optional[str] = None
    user_agent: Optional[str] = None


class ConfirmEmailRequest(BaseModel):
    email: EmailStr
    token: str = Field(..., min_length=1, max_length=64)


class ForgotPasswordRequest(BaseModel):
    identifier: str = Field(..., min_length=1, max_length=255)


class ResetPasswordRequest(BaseModel):
    identifier: str = Field(..., min_length=1, max_length=255)
    reset_token: str = Field(..., min_length=1, max_length=64)
    new_password: str = Field(..., min_length=4, max_length=128)


class ChangePasswordRequest(ValidateUserRequest):
    new_password: str = Field(..., min_length=4, max_length=128)


class SignOutRequest(BaseModel):
    session_token: uuid.UUID


class SignOutAllRequest(BaseModel):
    user_id: uuid.UUID


class RefreshTokenRequest(BaseModel):
    user_id: uuid.UUID
    session_token: uuid.UUID
    refresh_token: str


class DeleteUserRequest(BaseModel):
    user_id: uuid.UUID
    password: str = Field(..., min_length=1, max_length=128)


# ── HTTP bodies whose identity part comes from the bearer token ────────


class ChangePasswordBody(BaseModel):
    password: str = Field(..., min_length=1, max_length=128)
    new_password: str = Field(..., min_length=4, max_length=128)


class RefreshTokenBody(BaseModel):
    session_token: uuid.UUID


class DeleteAccountBody(BaseModel):
    password: str = Field(..., min_length=1, max_length=128)


# ═══════════════════════════════════════════════════════════════════════════════
# Results
# ═══════════════════════════════════════════════════════════════════════════════


class ProfileData(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    user_id: uuid.UUID
    name: str
    gender: Optional[str] = None
    phone_number: Optional[str] = None
    profile_picture: Optional[str] = None
    date_of_birth: Optional[date] = None
    address: Optional[str] = None


class UserData(BaseModel):
    """Public view of a user; never includes the password hash."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    email: str
    username: str
    is_email_verified: bool = False
    email_verified_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    profile: Optional[ProfileData] = None


class SessionData(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    user_id: uuid.UUID
    ip: Optional[str] = None
    location: Optional[str] = None
    device_os: Optional[str] = None
    device_name: Optional[str] = None
    device_type: Optional[str] = None
    browser: Optional[str] = None
    user_agent: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class AuthTokens(BaseModel):
    access_token: str
    refresh_token: str


class SignInTokens(AuthTokens):
    session_token: uuid.UUID
    session_refresh_time: str


class SignInResult(BaseModel):
    data: UserData
    tokens: SignInTokens


class RegisterResult(BaseModel):
    data: UserData


class RefreshTokenResult(AuthTokens):
    session_token: uuid.UUID
    access_token_refresh_time: str


# ═══════════════════════════════════════════════════════════════════════════════
# HTTP responses
# ═══════════════════════════════════════════════════════════════════════════════


class MessageResponse(BaseModel):
    message: str


class RegisterResponse(RegisterResult):
    message: str


class SignInResponse(SignInResult):
    message: str


class RefreshTokenResponse(RefreshTokenResult):
    message: str


class SessionsResponse(BaseModel):
    data: List[SessionData]


class SessionResponse(BaseModel):
    data: SessionData
