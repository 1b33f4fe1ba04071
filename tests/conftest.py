"""
Shared fixtures: an AuthService wired to the in-memory store, a recording
mail gateway and a token issuer with test secrets.
"""

import pytest

from auth.jwt import TokenIssuer
from auth.service import AuthService
from config.settings import Settings, config
from mail.notifier import Notifier
from tests.fakes import InMemoryStore, RecordingMailGateway


@pytest.fixture(autouse=True)
def fast_bcrypt(monkeypatch):
    """bcrypt's minimum work factor keeps the suite fast."""
    monkeypatch.setattr(config, "bcrypt_rounds", 4)


@pytest.fixture
def settings():
    return Settings(
        _env_file=None,
        access_token_secret="test-access-secret-0123456789abcdef",
        refresh_token_secret="test-refresh-secret-0123456789abcdef",
        access_token_expiry_seconds=900,
        refresh_token_expiry_seconds=3600,
    )


@pytest.fixture
def tokens(settings):
    return TokenIssuer(settings)


@pytest.fixture
def store():
    return InMemoryStore()


@pytest.fixture
def mailer():
    return RecordingMailGateway()


@pytest.fixture
def notifier(mailer):
    return Notifier(mailer)


@pytest.fixture
def service(store, tokens, notifier):
    return AuthService(store=store, tokens=tokens, notifier=notifier)
