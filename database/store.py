"""
Persistence gateway: narrow repositories per entity and a transactional
unit of work.

The auth service only talks to the abstract ``Store`` / repository
interfaces below.  ``SqlAlchemyStore`` is the production implementation;
tests swap in an in-memory one.

Every ``Store.transaction()`` block commits all contained writes or none
of them.  Integrity failures surface as ``UniqueViolationError`` (naming
the offending columns) or ``PersistenceError``; raw driver errors never
escape this module.
"""

from __future__ import annotations

import logging
import re
import uuid
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, AsyncIterator, List, Optional

from sqlalchemy import delete, or_, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from database.errors import PersistenceError, UniqueViolationError
from database.models import Otp, OtpType, Profile, Session, User

logger = logging.getLogger(__name__)


# ── Repository interfaces ───────────────────────────────────────────────


class UserRepository(ABC):
    @abstractmethod
    async def get_by_id(self, user_id: uuid.UUID) -> Optional[User]:
        ...

    @abstractmethod
    async def get_by_email(self, email: str) -> Optional[User]:
        ...

    @abstractmethod
    async def get_by_username(self, username: str) -> Optional[User]:
        ...

    @abstractmethod
    async def get_by_identifier(self, identifier: str) -> Optional[User]:
        """Return the user whose email *or* username equals ``identifier``."""
        ...

    @abstractmethod
    async def list_all(self) -> List[User]:
        ...

    @abstractmethod
    async def create(self, *, email: str, username: str, password: Optional[str]) -> User:
        ...

    @abstractmethod
    async def set_password(self, user: User, password_hash: str) -> None:
        ...

    @abstractmethod
    async def mark_email_verified(self, user: User, verified_at: datetime) -> None:
        ...

    @abstractmethod
    async def delete(self, user: User) -> None:
        """Delete the user; profile, sessions and codes go with it."""
        ...


class ProfileRepository(ABC):
    @abstractmethod
    async def create(self, user: User, *, name: str) -> Profile:
        ...


class SessionRepository(ABC):
    @abstractmethod
    async def create(self, user_id: uuid.UUID, *, refresh_token: str, **client: Any) -> Session:
        ...

    @abstractmethod
    async def get(self, session_id: uuid.UUID) -> Optional[Session]:
        ...

    @abstractmethod
    async def get_for_user(self, session_id: uuid.UUID, user_id: uuid.UUID) -> Optional[Session]:
        ...

    @abstractmethod
    async def list_for_user(self, user_id: uuid.UUID) -> List[Session]:
        ...

    @abstractmethod
    async def rotate_refresh_token(self, session: Session, presented: str, refresh_token: str) -> bool:
        """
        Replace the stored refresh token only if it still equals ``presented``.

        Returns False when another refresh got there first; nothing is
        written in that case.
        """
        ...

    @abstractmethod
    async def delete(self, session: Session) -> None:
        ...

    @abstractmethod
    async def delete_for_user(self, user_id: uuid.UUID) -> int:
        """Delete every session of ``user_id`` and return how many went."""
        ...


class OtpRepository(ABC):
    @abstractmethod
    async def create(
        self, user_id: uuid.UUID, *, otp_type: OtpType, code: str, expires: datetime
    ) -> Otp:
        ...

    @abstractmethod
    async def latest_for_user(self, user_id: uuid.UUID, otp_type: OtpType) -> Optional[Otp]:
        ...

    @abstractmethod
    async def consume(self, otp: Otp) -> bool:
        """Delete ``otp``; False if it was already gone (used concurrently)."""
        ...

    @abstractmethod
    async def delete_for_user(self, user_id: uuid.UUID, otp_type: OtpType) -> int:
        ...


class UnitOfWork:
    """The repositories bound to one open transaction."""

    users: UserRepository
    profiles: ProfileRepository
    sessions: SessionRepository
    otps: OtpRepository


class Store(ABC):
    @abstractmethod
    def transaction(self) -> Any:
        """
        Async context manager yielding a ``UnitOfWork``.

        Usage::

            async with store.transaction() as tx:
                user = await tx.users.create(...)
                await tx.profiles.create(user, name=...)
        """
        ...


# ── SQLAlchemy implementation ───────────────────────────────────────────


class _SqlUserRepository(UserRepository):
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def _first(self, stmt) -> Optional[User]:
        result = await self._session.execute(stmt.limit(1))
        return result.scalars().first()

    async def get_by_id(self, user_id: uuid.UUID) -> Optional[User]:
        return await self._first(select(User).where(User.id == user_id))

    async def get_by_email(self, email: str) -> Optional[User]:
        return await self._first(select(User).where(User.email == email))

    async def get_by_username(self, username: str) -> Optional[User]:
        return await self._first(select(User).where(User.username == username))

    async def get_by_identifier(self, identifier: str) -> Optional[User]:
        return await self._first(
            select(User).where(or_(User.email == identifier, User.username == identifier))
        )

    async def list_all(self) -> List[User]:
        result = await self._session.execute(select(User).order_by(User.created_at))
        return list(result.scalars().all())

    async def create(self, *, email: str, username: str, password: Optional[str]) -> User:
        # profile=None marks the relationship as loaded so it is never lazy-loaded
        user = User(id=uuid.uuid4(), email=email, username=username, password=password, profile=None)
        self._session.add(user)
        await self._session.flush()
        return user

    async def set_password(self, user: User, password_hash: str) -> None:
        await self._session.execute(
            update(User).where(User.id == user.id).values(password=password_hash)
        )
        user.password = password_hash

    async def mark_email_verified(self, user: User, verified_at: datetime) -> None:
        await self._session.execute(
            update(User)
            .where(User.id == user.id)
            .values(is_email_verified=True, email_verified_at=verified_at)
        )
        user.is_email_verified = True
        user.email_verified_at = verified_at

    async def delete(self, user: User) -> None:
        await self._session.execute(delete(User).where(User.id == user.id))


class _SqlProfileRepository(ProfileRepository):
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def create(self, user: User, *, name: str) -> Profile:
        profile = Profile(id=uuid.uuid4(), user_id=user.id, name=name)
        self._session.add(profile)
        await self._session.flush()
        user.profile = profile
        return profile


class _SqlSessionRepository(SessionRepository):
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def create(self, user_id: uuid.UUID, *, refresh_token: str, **client: Any) -> Session:
        row = Session(id=uuid.uuid4(), user_id=user_id, refresh_token=refresh_token, **client)
        self._session.add(row)
        await self._session.flush()
        return row

    async def get(self, session_id: uuid.UUID) -> Optional[Session]:
        return await self._session.get(Session, session_id)

    async def get_for_user(self, session_id: uuid.UUID, user_id: uuid.UUID) -> Optional[Session]:
        result = await self._session.execute(
            select(Session).where(Session.id == session_id, Session.user_id == user_id)
        )
        return result.scalar_one_or_none()

    async def list_for_user(self, user_id: uuid.UUID) -> List[Session]:
        result = await self._session.execute(
            select(Session).where(Session.user_id == user_id).order_by(Session.created_at.desc())
        )
        return list(result.scalars().all())

    async def rotate_refresh_token(self, session: Session, presented: str, refresh_token: str) -> bool:
        result = await self._session.execute(
            update(Session)
            .where(Session.id == session.id, Session.refresh_token == presented)
            .values(refresh_token=refresh_token)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            return False
        session.refresh_token = refresh_token
        return True

    async def delete(self, session: Session) -> None:
        await self._session.execute(delete(Session).where(Session.id == session.id))

    async def delete_for_user(self, user_id: uuid.UUID) -> int:
        result = await self._session.execute(delete(Session).where(Session.user_id == user_id))
        return result.rowcount or 0


class _SqlOtpRepository(OtpRepository):
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def create(
        self, user_id: uuid.UUID, *, otp_type: OtpType, code: str, expires: datetime
    ) -> Otp:
        row = Otp(id=uuid.uuid4(), user_id=user_id, type=otp_type, otp=code, expires=expires)
        self._session.add(row)
        await self._session.flush()
        return row

    async def latest_for_user(self, user_id: uuid.UUID, otp_type: OtpType) -> Optional[Otp]:
        result = await self._session.execute(
            select(Otp)
            .where(Otp.user_id == user_id, Otp.type == otp_type)
            .order_by(Otp.created_at.desc())
            .limit(1)
        )
        return result.scalars().first()

    async def consume(self, otp: Otp) -> bool:
        result = await self._session.execute(
            delete(Otp).where(Otp.id == otp.id).execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def delete_for_user(self, user_id: uuid.UUID, otp_type: OtpType) -> int:
        result = await self._session.execute(
            delete(Otp).where(Otp.user_id == user_id, Otp.type == otp_type)
        )
        return result.rowcount or 0


class SqlAlchemyUnitOfWork(UnitOfWork):
    def __init__(self, session: AsyncSession) -> None:
        self.users = _SqlUserRepository(session)
        self.profiles = _SqlProfileRepository(session)
        self.sessions = _SqlSessionRepository(session)
        self.otps = _SqlOtpRepository(session)


class SqlAlchemyStore(Store):
    """``Store`` backed by an ``async_sessionmaker``; one DB session per transaction."""

    def __init__(self, session_factory: async_sessionmaker) -> None:
        self._session_factory = session_factory

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[SqlAlchemyUnitOfWork]:
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    yield SqlAlchemyUnitOfWork(session)
        except IntegrityError as exc:
            fields = unique_violation_fields(exc)
            if fields is None:
                logger.warning("Integrity error: %s", exc.orig)
                raise PersistenceError(str(exc.orig)) from exc
            raise UniqueViolationError(fields) from exc
        except SQLAlchemyError as exc:
            logger.error("Database error: %s", exc)
            raise PersistenceError(str(exc)) from exc


# ── Integrity error parsing ─────────────────────────────────────────────

# PostgreSQL: 'DETAIL:  Key (email)=(a@x.com) already exists.'
_PG_DETAIL_RE = re.compile(r"Key \(([^)]+)\)=")
# PostgreSQL, no detail: 'violates unique constraint "users_email_key"'
_PG_CONSTRAINT_RE = re.compile(r'unique constraint "([^"]+)"')
# SQLite: 'UNIQUE constraint failed: users.email, users.username'
_SQLITE_RE = re.compile(r"UNIQUE constraint failed: ([\w., ]+)")

_UNIQUE_VIOLATION_SQLSTATE = "23505"


def unique_violation_fields(exc: IntegrityError) -> Optional[List[str]]:
    """
    Return the column names named by a unique-constraint failure.

    Returns ``None`` when ``exc`` is some other integrity failure (FK,
    NOT NULL, …), and an empty list when it is a unique violation whose
    columns cannot be determined.
    """
    orig = exc.orig
    message = str(orig)
    sqlstate = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
    if sqlstate != _UNIQUE_VIOLATION_SQLSTATE and "unique" not in message.lower():
        return None

    match = _PG_DETAIL_RE.search(message)
    if match:
        return [col.strip() for col in match.group(1).split(",")]

    match = _SQLITE_RE.search(message)
    if match:
        return [col.strip().split(".")[-1] for col in match.group(1).split(",")]

    match = _PG_CONSTRAINT_RE.search(message)
    if match:
        name = match.group(1)
        return [name[:-4] if name.endswith("_key") else name]

    return []
