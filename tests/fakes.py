"""
In-memory stand-ins for the persistence gateway and the mail transport.

``InMemoryStore`` keeps rows as plain dicts and hands out fresh ORM
instances on every read, the way a database would.  Each transaction works
on a deep copy of the tables that only replaces the committed state when
the block exits cleanly, so a failed flow leaves nothing behind.
"""

from __future__ import annotations

import asyncio
import copy
import uuid
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from database.errors import PersistenceError, UniqueViolationError
from database.models import Otp, OtpType, Profile, Session, User
from database.store import (
    OtpRepository,
    ProfileRepository,
    SessionRepository,
    Store,
    UnitOfWork,
    UserRepository,
)
from mail.base import MailGateway, MailMessage


def _now() -> datetime:
    return datetime.now(timezone.utc)


class _Tables:
    def __init__(self) -> None:
        self.users: Dict[uuid.UUID, Dict[str, Any]] = {}
        self.profiles: Dict[uuid.UUID, Dict[str, Any]] = {}
        self.sessions: Dict[uuid.UUID, Dict[str, Any]] = {}
        self.otps: Dict[uuid.UUID, Dict[str, Any]] = {}


def _user(tables: _Tables, row: Dict[str, Any]) -> User:
    prow = next((p for p in tables.profiles.values() if p["user_id"] == row["id"]), None)
    return User(**row, profile=Profile(**prow) if prow else None)


class _Users(UserRepository):
    def __init__(self, tables: _Tables) -> None:
        self._t = tables

    def _find(self, **match: Any) -> Optional[User]:
        for row in self._t.users.values():
            if all(row[k] == v for k, v in match.items()):
                return _user(self._t, row)
        return None

    async def get_by_id(self, user_id):
        return self._find(id=user_id)

    async def get_by_email(self, email):
        return self._find(email=email)

    async def get_by_username(self, username):
        return self._find(username=username)

    async def get_by_identifier(self, identifier):
        return self._find(email=identifier) or self._find(username=identifier)

    async def list_all(self):
        return [_user(self._t, row) for row in self._t.users.values()]

    async def create(self, *, email, username, password):
        for row in self._t.users.values():
            if row["email"] == email:
                raise UniqueViolationError(["email"])
            if row["username"] == username:
                raise UniqueViolationError(["username"])
        now = _now()
        row = {
            "id": uuid.uuid4(),
            "email": email,
            "username": username,
            "password": password,
            "is_email_verified": False,
            "email_verified_at": None,
            "created_at": now,
            "updated_at": now,
        }
        self._t.users[row["id"]] = row
        return _user(self._t, row)

    async def set_password(self, user, password_hash):
        self._t.users[user.id].update(password=password_hash, updated_at=_now())
        user.password = password_hash

    async def mark_email_verified(self, user, verified_at):
        self._t.users[user.id].update(is_email_verified=True, email_verified_at=verified_at)
        user.is_email_verified = True
        user.email_verified_at = verified_at

    async def delete(self, user):
        self._t.users.pop(user.id, None)
        for table in (self._t.profiles, self._t.sessions, self._t.otps):
            for key in [k for k, r in table.items() if r["user_id"] == user.id]:
                del table[key]


class _Profiles(ProfileRepository):
    def __init__(self, tables: _Tables) -> None:
        self._t = tables

    async def create(self, user, *, name):
        if any(p["user_id"] == user.id for p in self._t.profiles.values()):
            raise UniqueViolationError(["user_id"])
        row = {"id": uuid.uuid4(), "user_id": user.id, "name": name}
        self._t.profiles[row["id"]] = row
        profile = Profile(**row)
        user.profile = profile
        return profile


class _Sessions(SessionRepository):
    def __init__(self, tables: _Tables) -> None:
        self._t = tables

    async def create(self, user_id, *, refresh_token, **client):
        if user_id not in self._t.users:
            raise PersistenceError("sessions.user_id violates foreign key")
        now = _now()
        row = {
            "id": uuid.uuid4(),
            "user_id": user_id,
            "refresh_token": refresh_token,
            "created_at": now,
            "updated_at": now,
            **client,
        }
        self._t.sessions[row["id"]] = row
        return Session(**row)

    async def get(self, session_id):
        row = self._t.sessions.get(session_id)
        return Session(**row) if row else None

    async def get_for_user(self, session_id, user_id):
        row = self._t.sessions.get(session_id)
        return Session(**row) if row and row["user_id"] == user_id else None

    async def list_for_user(self, user_id):
        return [Session(**r) for r in self._t.sessions.values() if r["user_id"] == user_id]

    async def rotate_refresh_token(self, session, presented, refresh_token):
        row = self._t.sessions.get(session.id)
        if row is None or row["refresh_token"] != presented:
            return False
        row.update(refresh_token=refresh_token, updated_at=_now())
        session.refresh_token = refresh_token
        return True

    async def delete(self, session):
        self._t.sessions.pop(session.id, None)

    async def delete_for_user(self, user_id):
        doomed = [k for k, r in self._t.sessions.items() if r["user_id"] == user_id]
        for key in doomed:
            del self._t.sessions[key]
        return len(doomed)


class _Otps(OtpRepository):
    def __init__(self, tables: _Tables) -> None:
        self._t = tables

    async def create(self, user_id, *, otp_type, code, expires):
        row = {
            "id": uuid.uuid4(),
            "user_id": user_id,
            "type": otp_type,
            "otp": code,
            "expires": expires,
            "created_at": _now(),
        }
        self._t.otps[row["id"]] = row
        return Otp(**row)

    async def latest_for_user(self, user_id, otp_type):
        rows = [r for r in self._t.otps.values() if r["user_id"] == user_id and r["type"] == otp_type]
        return Otp(**rows[-1]) if rows else None

    async def consume(self, otp):
        return self._t.otps.pop(otp.id, None) is not None

    async def delete_for_user(self, user_id, otp_type):
        doomed = [k for k, r in self._t.otps.items() if r["user_id"] == user_id and r["type"] == otp_type]
        for key in doomed:
            del self._t.otps[key]
        return len(doomed)


class _InMemoryUnitOfWork(UnitOfWork):
    def __init__(self, tables: _Tables) -> None:
        self.users = _Users(tables)
        self.profiles = _Profiles(tables)
        self.sessions = _Sessions(tables)
        self.otps = _Otps(tables)


class InMemoryStore(Store):
    def __init__(self) -> None:
        self.tables = _Tables()
        self.commits = 0
        # Raised by the next transaction() instead of opening it
        self.fail_next: Optional[Exception] = None
        # Transactions run one at a time (serializable isolation)
        self._lock = asyncio.Lock()

    @asynccontextmanager
    async def transaction(self):
        if self.fail_next is not None:
            exc, self.fail_next = self.fail_next, None
            raise exc
        async with self._lock:
            work = copy.deepcopy(self.tables)
            yield _InMemoryUnitOfWork(work)
            self.tables = work
            self.commits += 1

    # ── Inspection helpers for assertions ───────────────────────────────

    def user_row(self, email: str) -> Optional[Dict[str, Any]]:
        return next((r for r in self.tables.users.values() if r["email"] == email), None)

    def sessions_of(self, user_id: uuid.UUID) -> List[Dict[str, Any]]:
        return [r for r in self.tables.sessions.values() if r["user_id"] == user_id]

    def otps_of(self, user_id: uuid.UUID, otp_type: OtpType) -> List[Dict[str, Any]]:
        return [
            r for r in self.tables.otps.values() if r["user_id"] == user_id and r["type"] == otp_type
        ]


class RecordingMailGateway(MailGateway):
    def __init__(self) -> None:
        self.sent: List[MailMessage] = []

    @property
    def name(self) -> str:
        return "recording"

    async def send(self, message: MailMessage) -> None:
        self.sent.append(message)

    def subjects(self) -> List[str]:
        return [m.subject for m in self.sent]


class FailingMailGateway(MailGateway):
    def __init__(self) -> None:
        self.attempts = 0

    @property
    def name(self) -> str:
        return "failing"

    async def send(self, message: MailMessage) -> None:
        self.attempts += 1
        raise ConnectionRefusedError("SMTP relay unreachable")
