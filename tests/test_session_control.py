"""
Tests for session lifecycle, rotation and idle expiry
"""

from unittest.mock import patch

import pytest

from sessionguard.core.auth.session_control import SessionManager, SessionState
from sessionguard.core.errors import PersistenceError


@pytest.fixture
def user(store):
    return store.get_user(store.insert("Ana Silva", "ana@x.com", "digest"))


class TestSessionLoading:
    """Test resolving sessions from client identifiers"""

    def test_missing_identifier_is_anonymous(self, sessions):
        session = sessions.load(None)

        assert session.is_authenticated is False
        assert session.persisted is False
        assert sessions.state(session) is SessionState.ANONYMOUS

    def test_unknown_identifier_is_anonymous(self, sessions):
        session = sessions.load("f" * 64)

        assert session.is_authenticated is False
        assert session.token is None

    def test_authenticated_session_roundtrip(self, sessions, user, clock):
        session = sessions.new_session()
        sessions.authenticate(session, user)

        loaded = sessions.load(session.token)

        assert loaded.id == session.id
        assert loaded.user_id == user.id
        assert loaded.name == "Ana Silva"
        assert loaded.login_time == clock()
        assert loaded.token_changed is False

    def test_identifier_not_stored_in_clear(self, sessions, user, database):
        session = sessions.new_session()
        sessions.authenticate(session, user)

        stored = database.fetch_value("SELECT token_hash FROM sessions WHERE id = ?", (session.id,))
        assert stored != session.token
        assert len(stored) == 64


class TestAntiFixation:
    """Test identifier regeneration on login"""

    def test_login_replaces_identifier(self, sessions, user):
        session = sessions.new_session()
        sessions.require_authenticated(session, "/profile")
        planted = session.token

        sessions.authenticate(session, user)

        assert session.token != planted
        assert sessions.load(planted).is_authenticated is False
        assert sessions.load(session.token).user_id == user.id

    def test_login_keeps_redirect_target(self, sessions, user):
        session = sessions.new_session()
        sessions.require_authenticated(session, "/profile")
        sessions.authenticate(session, user)

        assert sessions.pop_redirect_target(session) == "/profile"
        assert sessions.pop_redirect_target(session) is None


class TestRotation:
    """Test periodic identifier rotation"""

    def test_identifier_kept_within_interval(self, sessions, user, clock):
        session = sessions.new_session()
        sessions.authenticate(session, user)

        clock.advance(299)
        loaded = sessions.load(session.token)

        assert loaded.token == session.token
        assert loaded.token_changed is False

    def test_identifier_rotated_after_interval(self, sessions, user, clock):
        session = sessions.new_session()
        sessions.authenticate(session, user)
        original = session.token

        clock.advance(301)
        loaded = sessions.load(original)

        assert loaded.token != original
        assert loaded.token_changed is True
        assert loaded.user_id == user.id
        assert sessions.load(original).is_authenticated is False
        assert sessions.load(loaded.token).user_id == user.id


class TestAccessControl:
    """Test require_authenticated and idle expiry"""

    def test_anonymous_redirects_and_remembers_target(self, sessions):
        session = sessions.new_session()
        decision = sessions.require_authenticated(session, "/profile")

        assert decision.allowed is False
        assert decision.redirect_to == "/login"
        assert decision.timed_out is False
        assert session.redirect_after_login == "/profile"
        assert session.persisted is True

    def test_anonymous_without_target_stores_nothing(self, sessions):
        session = sessions.new_session()
        sessions.require_authenticated(session)

        assert session.persisted is False

    def test_active_session_refreshes_activity(self, sessions, user, clock):
        session = sessions.new_session()
        sessions.authenticate(session, user)

        clock.advance(1000)
        decision = sessions.require_authenticated(session)

        assert decision.allowed is True
        assert sessions.load(session.token).last_activity == clock()

    def test_idle_session_expires(self, sessions, user, clock):
        session = sessions.new_session()
        sessions.authenticate(session, user)

        clock.advance(1801)
        loaded = sessions.load(session.token)
        assert sessions.state(loaded) is SessionState.EXPIRED

        decision = sessions.require_authenticated(loaded, "/dashboard")

        assert decision.allowed is False
        assert decision.timed_out is True
        assert decision.redirect_to == "/login?timeout=1"
        assert loaded.is_authenticated is False
        assert loaded.destroyed is True
        assert loaded.redirect_after_login is None

    def test_exactly_at_timeout_is_still_active(self, sessions, user, clock):
        session = sessions.new_session()
        sessions.authenticate(session, user)

        clock.advance(1800)
        assert sessions.state(session) is SessionState.AUTHENTICATED


class TestKeepAlive:
    """Test touch()"""

    def test_touch_refreshes_activity(self, sessions, user, clock):
        session = sessions.new_session()
        sessions.authenticate(session, user)

        clock.advance(1500)
        assert sessions.touch(session) is True

        clock.advance(1500)
        assert sessions.state(session) is SessionState.AUTHENTICATED

    def test_touch_anonymous_fails(self, sessions):
        assert sessions.touch(sessions.new_session()) is False

    def test_touch_idle_session_destroys_it(self, sessions, user, clock):
        session = sessions.new_session()
        sessions.authenticate(session, user)

        clock.advance(1801)

        assert sessions.touch(session) is False
        assert session.destroyed is True


class TestDestroy:
    """Test logout-side destruction and cleanup"""

    def test_destroy_clears_everything(self, sessions, user):
        session = sessions.new_session()
        sessions.authenticate(session, user)
        token = session.token

        sessions.destroy(session)

        assert session.user_id is None
        assert session.name is None
        assert session.token is None
        assert session.persisted is False
        assert sessions.load(token).is_authenticated is False

    def test_destroy_is_idempotent(self, sessions):
        session = sessions.new_session()
        sessions.destroy(session)
        sessions.destroy(session)

        assert session.destroyed is True

    def test_refresh_identity(self, sessions, user):
        session = sessions.new_session()
        sessions.authenticate(session, user)

        sessions.refresh_identity(session, "Ana S.", "ana.s@x.com")

        loaded = sessions.load(session.token)
        assert loaded.name == "Ana S."
        assert loaded.email == "ana.s@x.com"

    def test_cleanup_expired(self, database, sessions, user, clock):
        stale = sessions.new_session()
        sessions.authenticate(stale, user)

        clock.advance(1700)
        fresh = sessions.new_session()
        sessions.authenticate(fresh, user)

        clock.advance(200)

        assert sessions.cleanup_expired() == 1
        assert sessions.load(fresh.token).user_id == user.id

    def test_cleanup_drops_abandoned_anonymous_session(self, database, sessions, clock):
        session = sessions.new_session()
        sessions.require_authenticated(session, "/profile")

        clock.advance(1801)

        assert sessions.cleanup_expired() == 1
        assert database.fetch_value("SELECT COUNT(*) FROM sessions") == 0

    def test_cleanup_if_due_is_throttled(self, database, user, clock):
        manager = SessionManager(database, timeout_seconds=60, clock=clock, cleanup_interval_seconds=600)
        manager.authenticate(manager.new_session(), user)
        clock.advance(61)

        assert manager.cleanup_if_due() == 1

        manager.authenticate(manager.new_session(), user)
        clock.advance(61)
        assert manager.cleanup_if_due() == 0

        clock.advance(600)
        assert manager.cleanup_if_due() == 1

    def test_cleanup_if_due_logs_failure(self, sessions, caplog):
        with patch.object(SessionManager, "cleanup_expired", side_effect=PersistenceError("db down")):
            assert sessions.cleanup_if_due() == 0

        assert "Idle session purge failed" in caplog.text

    def test_custom_timeout(self, database, user, clock):
        manager = SessionManager(database, timeout_seconds=60, clock=clock)
        session = manager.new_session()
        manager.authenticate(session, user)

        clock.advance(61)
        assert manager.state(session) is SessionState.EXPIRED

    def test_repr_hides_token(self, sessions, user):
        session = sessions.new_session()
        sessions.authenticate(session, user)

        assert session.token not in repr(session)
