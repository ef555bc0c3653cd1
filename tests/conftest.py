"""
Shared fixtures: temporary SQLite database, low-cost Argon2 hasher,
controllable clock and a Flask test client.
"""

from datetime import datetime, timedelta, timezone

import pytest

from sessionguard.core.auth.argon2_auth import Argon2Hasher
from sessionguard.core.auth.attempt_ledger import LoginAttemptLedger
from sessionguard.core.auth.credential_store import CredentialStore
from sessionguard.core.auth.flow import AuthFlowController
from sessionguard.core.auth.remember_tokens import RememberTokenStore
from sessionguard.core.auth.session_control import SessionManager
from sessionguard.core.config import (
    LoggingConfig,
    PathConfig,
    SecurityConfig,
    SessionGuardConfig,
)
from sessionguard.db import SQLiteDatabase
from sessionguard.web import create_app


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start=None):
        self.now = start or datetime(2024, 1, 15, 12, 0, tzinfo=timezone.utc)

    def __call__(self):
        return self.now

    def advance(self, seconds=0, **kwargs):
        self.now += timedelta(seconds=seconds, **kwargs)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def database(tmp_path):
    db = SQLiteDatabase(tmp_path / "sessionguard-test.db")
    db.initialize()
    return db


@pytest.fixture(scope="session")
def hasher():
    # Minimal cost keeps the suite fast; production parameters are tested separately
    return Argon2Hasher(memory_cost=1024, time_cost=1, parallelism=1)


@pytest.fixture
def security():
    return SecurityConfig()


@pytest.fixture
def store(database, clock):
    return CredentialStore(database, clock=clock)


@pytest.fixture
def ledger(database, clock):
    return LoginAttemptLedger(database, clock=clock)


@pytest.fixture
def sessions(database, clock, security):
    return SessionManager(
        database,
        timeout_seconds=security.session_timeout_seconds,
        rotation_seconds=security.session_rotation_seconds,
        clock=clock,
    )


@pytest.fixture
def remember_tokens(database, clock, security):
    return RememberTokenStore(database, lifetime_days=security.remember_days, clock=clock)


@pytest.fixture
def controller(store, ledger, hasher, sessions, remember_tokens, security, clock):
    return AuthFlowController(
        store=store,
        ledger=ledger,
        hasher=hasher,
        sessions=sessions,
        remember_tokens=remember_tokens,
        security=security,
        clock=clock,
    )


@pytest.fixture
def registered_user(controller, store):
    result = controller.register("Ana Silva", "ana@x.com", "secret1", "secret1")
    assert result.ok, result.messages
    return store.get_user(result.user_id)


@pytest.fixture
def config(tmp_path):
    return SessionGuardConfig(
        paths=PathConfig(data_dir=tmp_path / "data", log_dir=tmp_path / "logs"),
        logging=LoggingConfig(level="WARNING"),
    )


@pytest.fixture
def app(config, database, hasher, clock):
    app = create_app(config, database=database, hasher=hasher, clock=clock)
    app.config["TESTING"] = True
    return app


@pytest.fixture
def client(app):
    return app.test_client()
