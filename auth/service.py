"""
AuthService: registration, sign-in, email confirmation, password
reset/change, refresh-token rotation and session invalidation.

The service is built explicitly from its collaborators::

    AuthService(store=SqlAlchemyStore(async_session_factory),
                tokens=TokenIssuer(),
                notifier=Notifier(build_mail_gateway()))

Every flow either returns its result or raises one ``AuthError``.
Multi-row writes run inside a single ``store.transaction()``.  Mails are
dispatched after the outcome is decided and never affect it.
"""

from __future__ import annotations

import asyncio
import logging
import re
import secrets
import uuid
from datetime import datetime, timezone
from typing import List, Optional, Sequence

from auth.errors import BadRequestError, ConflictError, NotFoundError, UnauthorizedError
from auth.jwt import TokenIssuer
from auth.otp import generate_otp, is_expired, otp_expiry, otp_matches
from auth.password import hash_password, verify_password
from auth.schemas import (
    ChangePasswordRequest,
    ConfirmEmailRequest,
    CreateUserRequest,
    DeleteUserRequest,
    ForgotPasswordRequest,
    RefreshTokenRequest,
    RefreshTokenResult,
    RegisterResult,
    ResetPasswordRequest,
    SessionData,
    SignInRequest,
    SignInResult,
    SignInTokens,
    SignOutAllRequest,
    SignOutRequest,
    UserData,
    ValidateUserRequest,
)
from database.errors import PersistenceError, UniqueViolationError
from database.models import OtpType, User
from database.store import Store
from mail import templates
from mail.base import MailMessage
from mail.notifier import Notifier

logger = logging.getLogger(__name__)

UNKNOWN = "unknown"

_CLIENT_FIELDS = (
    "ip",
    "location",
    "device_os",
    "device_name",
    "device_type",
    "browser",
    "user_agent",
)


def username_from_email(email: str) -> str:
    return email.split("@", 1)[0]


def extract_name(email: str) -> str:
    """'john.doe42@x.com' -> 'John Doe'; falls back to the raw local part."""
    local = username_from_email(email)
    words = [w for w in re.split(r"[^A-Za-z]+", local) if w]
    return " ".join(w.capitalize() for w in words) or local


def _collided(fields: Sequence[str], column: str) -> bool:
    return any(f == column or f.endswith(f"_{column}") for f in fields)


def _display_name(user: User) -> str:
    return user.profile.name if user.profile is not None else user.username


class AuthService:
    def __init__(self, store: Store, tokens: TokenIssuer, notifier: Notifier) -> None:
        self._store = store
        self._tokens = tokens
        self._notifier = notifier

    # ── Helpers ─────────────────────────────────────────────────────────

    def _notify(self, to: str, subject: str, html: str) -> None:
        self._notifier.dispatch(MailMessage(to=[to], subject=subject, html=html))

    async def find_user_by_email(self, email: str) -> Optional[UserData]:
        async with self._store.transaction() as tx:
            user = await tx.users.get_by_email(email)
        return UserData.model_validate(user) if user else None

    async def validate_user(self, dto: ValidateUserRequest) -> User:
        """
        Look up by email-or-username and check the password.

        Raises ``NotFoundError`` for an unknown identifier and
        ``UnauthorizedError`` for a wrong password or a password-less account.
        """
        async with self._store.transaction() as tx:
            user = await tx.users.get_by_identifier(dto.identifier)
        if user is None:
            raise NotFoundError("User not found")
        if not await asyncio.to_thread(verify_password, dto.password, user.password):
            raise UnauthorizedError("Invalid credentials")
        return user

    # ── Registration & confirmation ─────────────────────────────────────

    async def register(self, dto: CreateUserRequest) -> RegisterResult:
        logger.info("Starting registration for email: %s", dto.email)
        code = generate_otp()
        password = await asyncio.to_thread(hash_password, dto.password) if dto.password else None

        try:
            async with self._store.transaction() as tx:
                user = await tx.users.create(
                    email=dto.email,
                    username=username_from_email(dto.email),
                    password=password,
                )
                profile = await tx.profiles.create(user, name=extract_name(dto.email))
                await tx.otps.create(
                    user.id,
                    otp_type=OtpType.EMAIL_CONFIRMATION,
                    code=code,
                    expires=otp_expiry(),
                )
        except UniqueViolationError as exc:
            logger.warning("Registration conflict for %s on %s", dto.email, exc.fields)
            if _collided(exc.fields, "email"):
                raise ConflictError(
                    "Email is already registered. Please use a different email or sign in.",
                    field="email",
                ) from exc
            if _collided(exc.fields, "username"):
                raise ConflictError(
                    "Username is already taken. Please choose a different username.",
                    field="username",
                ) from exc
            raise ConflictError("User already exists. Please sign in instead.") from exc
        except PersistenceError as exc:
            logger.error("Registration failed for %s: %s", dto.email, exc)
            raise BadRequestError("Registration failed. Please try again.") from exc

        self._notify(
            user.email,
            "Confirm your email",
            templates.register_success_mail(name=profile.name, otp=code),
        )
        logger.info("User registered successfully: %s (%s)", user.email, user.id)
        return RegisterResult(data=UserData.model_validate(user))

    async def confirm_email(self, dto: ConfirmEmailRequest) -> None:
        async with self._store.transaction() as tx:
            user = await tx.users.get_by_email(dto.email)
            if user is None:
                raise NotFoundError("User not found")
            otp = await tx.otps.latest_for_user(user.id, OtpType.EMAIL_CONFIRMATION)
            if otp is None:
                raise NotFoundError("Invalid confirmation code")
            if not otp_matches(otp.otp, dto.token):
                raise BadRequestError("Invalid confirmation code")
            if is_expired(otp.expires):
                raise BadRequestError("Email confirm token expired")
            # Consumed first: a concurrent use of the same code finds nothing and rolls back
            if not await tx.otps.consume(otp):
                raise NotFoundError("Invalid confirmation code")
            await tx.users.mark_email_verified(user, datetime.now(timezone.utc))

        logger.info("Email confirmed: %s", user.email)
        self._notify(
            user.email,
            "Confirmation Successful",
            templates.confirm_email_success_mail(name=_display_name(user)),
        )

    # ── Sessions ────────────────────────────────────────────────────────

    async def sign_in(self, dto: SignInRequest) -> SignInResult:
        user = await self.validate_user(dto)
        tokens = self._tokens.issue_pair(user)
        client = {field: getattr(dto, field) or UNKNOWN for field in _CLIENT_FIELDS}

        async with self._store.transaction() as tx:
            session = await tx.sessions.create(
                user.id, refresh_token=tokens.refresh_token, **client
            )

        logger.info("Sign-in: %s (session %s)", user.username, session.id)
        self._notify(
            user.email,
            "SignIn with your email",
            templates.sign_in_success_mail(
                username=_display_name(user),
                login_time=session.created_at,
                ip_address=session.ip or UNKNOWN,
                location=session.location or UNKNOWN,
                device=session.device_name or UNKNOWN,
            ),
        )
        return SignInResult(
            data=UserData.model_validate(user),
            tokens=SignInTokens(
                access_token=tokens.access_token,
                refresh_token=tokens.refresh_token,
                session_token=session.id,
                session_refresh_time=self._tokens.refresh_time_hint(),
            ),
        )

    async def refresh_token(self, dto: RefreshTokenRequest) -> RefreshTokenResult:
        """
        Rotate the session's refresh token.

        The presented refresh token must be the one currently stored on the
        session; an already-rotated token is rejected.
        """
        async with self._store.transaction() as tx:
            user = await tx.users.get_by_id(dto.user_id)
            if user is None:
                raise NotFoundError("User not found")
            session = await tx.sessions.get_for_user(dto.session_token, dto.user_id)
            if session is None:
                raise NotFoundError("Session not found")
            if not secrets.compare_digest(session.refresh_token, dto.refresh_token):
                logger.warning("Stale refresh token presented for session %s", session.id)
                raise UnauthorizedError("Refresh token is no longer valid")
            tokens = self._tokens.issue_pair(user)
            rotated = await tx.sessions.rotate_refresh_token(
                session, dto.refresh_token, tokens.refresh_token
            )
            if not rotated:
                logger.warning("Concurrent refresh lost the race for session %s", session.id)
                raise UnauthorizedError("Refresh token is no longer valid")

        return RefreshTokenResult(
            access_token=tokens.access_token,
            refresh_token=tokens.refresh_token,
            session_token=dto.session_token,
            access_token_refresh_time=self._tokens.refresh_time_hint(),
        )

    async def sign_out(self, dto: SignOutRequest, user_id: Optional[uuid.UUID] = None) -> None:
        """Delete one session; when ``user_id`` is given it must own the session."""
        async with self._store.transaction() as tx:
            if user_id is None:
                session = await tx.sessions.get(dto.session_token)
            else:
                session = await tx.sessions.get_for_user(dto.session_token, user_id)
            if session is None:
                raise NotFoundError("Session not found")
            await tx.sessions.delete(session)
        logger.info("Signed out session %s", dto.session_token)

    async def sign_out_all_devices(self, dto: SignOutAllRequest) -> int:
        async with self._store.transaction() as tx:
            removed = await tx.sessions.delete_for_user(dto.user_id)
        logger.info("Signed out %d session(s) for user %s", removed, dto.user_id)
        return removed

    async def get_sessions(self, user_id: uuid.UUID) -> List[SessionData]:
        async with self._store.transaction() as tx:
            sessions = await tx.sessions.list_for_user(user_id)
        return [SessionData.model_validate(s) for s in sessions]

    async def get_session(
        self, session_id: uuid.UUID, user_id: Optional[uuid.UUID] = None
    ) -> SessionData:
        async with self._store.transaction() as tx:
            if user_id is None:
                session = await tx.sessions.get(session_id)
            else:
                session = await tx.sessions.get_for_user(session_id, user_id)
        if session is None:
            raise NotFoundError("Session not found!")
        return SessionData.model_validate(session)

    # ── Passwords ───────────────────────────────────────────────────────

    async def forgot_password(self, dto: ForgotPasswordRequest) -> None:
        code = generate_otp()
        async with self._store.transaction() as tx:
            user = await tx.users.get_by_identifier(dto.identifier)
            if user is None:
                raise NotFoundError("User not found")
            # A new code replaces any outstanding one
            await tx.otps.delete_for_user(user.id, OtpType.PASSWORD_RESET)
            await tx.otps.create(
                user.id,
                otp_type=OtpType.PASSWORD_RESET,
                code=code,
                expires=otp_expiry(),
            )

        logger.info("Password reset code issued for %s", user.email)
        self._notify(
            user.email,
            "Reset your password",
            templates.reset_password_mail(name=_display_name(user), code=code),
        )

    async def reset_password(self, dto: ResetPasswordRequest) -> None:
        new_hash = await asyncio.to_thread(hash_password, dto.new_password)
        async with self._store.transaction() as tx:
            user = await tx.users.get_by_identifier(dto.identifier)
            if user is None:
                raise NotFoundError("User not found")
            otp = await tx.otps.latest_for_user(user.id, OtpType.PASSWORD_RESET)
            if otp is None:
                raise NotFoundError("Invalid password reset token")
            if not otp_matches(otp.otp, dto.reset_token):
                raise BadRequestError("Invalid password reset token")
            if is_expired(otp.expires):
                raise BadRequestError("Password reset token expired")
            if not await tx.otps.consume(otp):
                raise NotFoundError("Invalid password reset token")
            await tx.users.set_password(user, new_hash)

        logger.info("Password reset for %s", user.email)
        self._notify(
            user.email,
            "Password Reset Successful",
            templates.change_password_success_mail(name=_display_name(user)),
        )

    async def change_password(self, dto: ChangePasswordRequest) -> None:
        user = await self.validate_user(dto)
        new_hash = await asyncio.to_thread(hash_password, dto.new_password)
        async with self._store.transaction() as tx:
            await tx.users.set_password(user, new_hash)

        logger.info("Password changed for %s", user.email)
        self._notify(
            user.email,
            "Password Change Successful",
            templates.change_password_success_mail(name=_display_name(user)),
        )

    # ── Account ─────────────────────────────────────────────────────────

    async def delete_account(self, dto: DeleteUserRequest) -> None:
        async with self._store.transaction() as tx:
            user = await tx.users.get_by_id(dto.user_id)
        if user is None:
            raise NotFoundError("User not found")
        if not await asyncio.to_thread(verify_password, dto.password, user.password):
            raise BadRequestError("Invalid credentials")

        try:
            async with self._store.transaction() as tx:
                await tx.users.delete(user)
        except PersistenceError as exc:
            logger.error("Account deletion failed for %s: %s", user.id, exc)
            raise BadRequestError("Account could not be deleted. Please try again.") from exc
        logger.info("Deleted account %s (%s)", user.username, user.id)

