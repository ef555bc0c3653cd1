"""
Session Control
================

Server-side session management with idle expiry and identifier rotation.

Security Features:
- Cryptographically random session identifiers (256 bits)
- Only identifier hashes are stored
- Identifier regenerated on login (anti-fixation)
- Identifier rotated periodically while in use
- Idle timeout checked on every protected access

State machine per session:

    Anonymous --login--> Authenticated --idle > timeout--> Expired --> Anonymous
        ^                      |
        +------logout----------+
"""

from __future__ import annotations

import hashlib
import logging
import secrets
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum, auto
from typing import Final, Optional

from sessionguard.core.auth.credential_store import User
from sessionguard.core.errors import PersistenceError
from sessionguard.db import Clock, Database, format_timestamp, parse_timestamp, utc_now


# Session configuration
SESSION_TOKEN_BYTES: Final[int] = 32  # 256 bits
DEFAULT_SESSION_TIMEOUT: Final[int] = 1800  # 30 minutes
DEFAULT_ROTATION_INTERVAL: Final[int] = 300  # 5 minutes


class SessionState(Enum):
    """Lifecycle states of a session."""
    ANONYMOUS = auto()
    AUTHENTICATED = auto()
    EXPIRED = auto()


@dataclass
class Session:
    """
    Per-visitor session state.

    ``token`` is the opaque identifier delivered to the client; only its
    hash is persisted. ``token_changed`` and ``destroyed`` tell the
    transport layer whether the cookie must be reissued or expired.
    """
    id: str
    token: Optional[str] = None
    user_id: Optional[int] = None
    name: Optional[str] = None
    email: Optional[str] = None
    avatar_path: Optional[str] = None
    login_time: Optional[datetime] = None
    last_activity: Optional[datetime] = None
    rotated_at: Optional[datetime] = None
    redirect_after_login: Optional[str] = None
    created_at: Optional[datetime] = None
    persisted: bool = False
    token_changed: bool = False
    destroyed: bool = False

    def __repr__(self) -> str:
        """Safe representation without token."""
        return f"Session(id={self.id!r}, user_id={self.user_id!r})"

    @property
    def is_authenticated(self) -> bool:
        return self.user_id is not None


@dataclass(frozen=True)
class AccessDecision:
    """Result of guarding a protected resource."""
    allowed: bool
    redirect_to: Optional[str] = None
    timed_out: bool = False


class SessionManager:
    """
    Session lifecycle over the shared Database service.

    Usage:
        manager = SessionManager(database)

        session = manager.load(cookie_value)
        decision = manager.require_authenticated(session, "/profile")
        if not decision.allowed:
            redirect(decision.redirect_to)

        manager.authenticate(session, user)   # after credentials verify
        manager.destroy(session)              # logout

    Sessions are passed explicitly; the manager holds no per-visitor state.
    """

    __slots__ = (
        "_db", "_timeout", "_rotation", "_clock", "_login_path", "_log",
        "_cleanup_interval", "_last_cleanup",
    )

    _COLUMNS = (
        "id, user_id, name, email, avatar_path, login_time, last_activity, "
        "rotated_at, redirect_after_login, created_at"
    )

    def __init__(
        self,
        database: Database,
        timeout_seconds: int = DEFAULT_SESSION_TIMEOUT,
        rotation_seconds: int = DEFAULT_ROTATION_INTERVAL,
        clock: Optional[Clock] = None,
        login_path: str = "/login",
        cleanup_interval_seconds: Optional[int] = None,
    ) -> None:
        """
        Initialize the session manager.

        Args:
            database: Persistence service
            timeout_seconds: Idle time after which a session expires
            rotation_seconds: Age after which the identifier is replaced
            clock: Source of the current time
            login_path: Where denied requests are sent
            cleanup_interval_seconds: Minimum gap between idle-session
                purges, defaults to the idle timeout
        """
        self._db = database
        self._timeout = timedelta(seconds=timeout_seconds)
        self._rotation = timedelta(seconds=rotation_seconds)
        self._clock = clock or utc_now
        self._login_path = login_path
        self._log = logging.getLogger("sessionguard.session")
        self._cleanup_interval = timedelta(
            seconds=cleanup_interval_seconds if cleanup_interval_seconds is not None else timeout_seconds
        )
        self._last_cleanup: Optional[datetime] = None

    @staticmethod
    def _generate_token() -> str:
        return secrets.token_hex(SESSION_TOKEN_BYTES)

    @staticmethod
    def _hash_token(token: str) -> str:
        return hashlib.sha256(token.encode()).hexdigest()

    def new_session(self) -> Session:
        """A fresh anonymous session. Nothing is stored until it is saved."""
        return Session(id=str(uuid.uuid4()))

    def load(self, token: Optional[str]) -> Session:
        """
        Resolve the session for a client identifier.

        Unknown identifiers yield a fresh anonymous session. A stored
        session whose identifier is older than the rotation interval gets
        a new identifier.
        """
        if not token:
            return self.new_session()

        row = self._db.fetch_one(
            f"SELECT {self._COLUMNS} FROM sessions WHERE token_hash = ?",
            (self._hash_token(token),),
        )
        if row is None:
            return self.new_session()

        session = self._row_to_session(row, token)

        if session.rotated_at is None or self._clock() - session.rotated_at > self._rotation:
            self.regenerate(session)

        return session

    def state(self, session: Session) -> SessionState:
        """Classify a session without changing it."""
        if not session.is_authenticated:
            return SessionState.ANONYMOUS
        if session.last_activity is not None and self._clock() - session.last_activity > self._timeout:
            return SessionState.EXPIRED
        return SessionState.AUTHENTICATED

    def regenerate(self, session: Session) -> None:
        """Replace the session identifier, keeping its data."""
        token = self._generate_token()
        now = self._clock()

        if session.persisted:
            self._db.execute(
                "UPDATE sessions SET token_hash = ?, rotated_at = ? WHERE id = ?",
                (self._hash_token(token), format_timestamp(now), session.id),
            )

        session.token = token
        session.rotated_at = now
        session.token_changed = True

    def save(self, session: Session) -> None:
        """Persist the session, creating its row on first save."""
        if not session.persisted:
            now = self._clock()
            if session.token is None:
                session.token = self._generate_token()
                session.token_changed = True
            session.rotated_at = session.rotated_at or now
            session.created_at = session.created_at or now
            self._db.execute(
                "INSERT INTO sessions (id, token_hash, user_id, name, email, avatar_path, "
                "login_time, last_activity, rotated_at, redirect_after_login, created_at) "
                "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                (
                    session.id,
                    self._hash_token(session.token),
                    session.user_id,
                    session.name,
                    session.email,
                    session.avatar_path,
                    self._fmt(session.login_time),
                    self._fmt(session.last_activity),
                    format_timestamp(session.rotated_at),
                    session.redirect_after_login,
                    format_timestamp(session.created_at),
                ),
            )
            session.persisted = True
            session.destroyed = False
            return

        self._db.execute(
            "UPDATE sessions SET user_id = ?, name = ?, email = ?, avatar_path = ?, "
            "login_time = ?, last_activity = ?, redirect_after_login = ? WHERE id = ?",
            (
                session.user_id,
                session.name,
                session.email,
                session.avatar_path,
                self._fmt(session.login_time),
                self._fmt(session.last_activity),
                session.redirect_after_login,
                session.id,
            ),
        )

    def authenticate(self, session: Session, user: User) -> None:
        """
        Bind a verified user to the session.

        The identifier is regenerated before identity is written so an
        identifier planted before login is worthless afterwards.
        """
        self.regenerate(session)

        now = self._clock()
        session.user_id = user.id
        session.name = user.name
        session.email = user.email
        session.avatar_path = user.avatar_path
        session.login_time = now
        session.last_activity = now
        self.save(session)

        self._log.info("Session authenticated for user %s", user.id)

    def require_authenticated(
        self,
        session: Session,
        requested_target: Optional[str] = None,
    ) -> AccessDecision:
        """
        Guard a protected resource.

        Anonymous sessions remember ``requested_target`` and are sent to
        login; idle sessions are destroyed and sent to login with the
        timeout signal; active sessions have their activity refreshed.
        """
        state = self.state(session)

        if state is SessionState.ANONYMOUS:
            if requested_target:
                session.redirect_after_login = requested_target
                self.save(session)
            return AccessDecision(allowed=False, redirect_to=self._login_path)

        if state is SessionState.EXPIRED:
            self._log.info("Session for user %s expired after inactivity", session.user_id)
            self.destroy(session)
            return AccessDecision(
                allowed=False,
                redirect_to=f"{self._login_path}?timeout=1",
                timed_out=True,
            )

        session.last_activity = self._clock()
        self.save(session)
        return AccessDecision(allowed=True)

    def touch(self, session: Session) -> bool:
        """
        Keep-alive refresh of ``last_activity``.

        Returns:
            False for anonymous sessions and for sessions that had
            already gone idle (those are destroyed)
        """
        state = self.state(session)
        if state is SessionState.EXPIRED:
            self.destroy(session)
            return False
        if state is SessionState.ANONYMOUS:
            return False

        session.last_activity = self._clock()
        self.save(session)
        return True

    def refresh_identity(self, session: Session, name: str, email: str) -> None:
        """Keep the displayed identity in line with storage after an edit."""
        session.name = name
        session.email = email
        if session.persisted:
            self.save(session)

    def pop_redirect_target(self, session: Session) -> Optional[str]:
        """Take and clear the remembered post-login target."""
        target = session.redirect_after_login
        if target is not None:
            session.redirect_after_login = None
            if session.persisted:
                self.save(session)
        return target

    def destroy(self, session: Session) -> None:
        """
        Delete the session and clear every field. Idempotent.

        Fields are cleared even when the delete fails; the error still
        propagates.
        """
        try:
            if session.persisted:
                self._db.execute("DELETE FROM sessions WHERE id = ?", (session.id,))
        finally:
            session.id = str(uuid.uuid4())
            session.token = None
            session.user_id = None
            session.name = None
            session.email = None
            session.avatar_path = None
            session.login_time = None
            session.last_activity = None
            session.rotated_at = None
            session.redirect_after_login = None
            session.persisted = False
            session.token_changed = False
            session.destroyed = True

    def cleanup_expired(self) -> int:
        """
        Remove idle sessions from the database.

        Anonymous sessions age from their last identifier rotation, which
        happens on use at least every rotation interval.

        Returns:
            Number of sessions removed
        """
        cutoff = format_timestamp(self._clock() - self._timeout)
        return self._db.execute(
            "DELETE FROM sessions WHERE COALESCE(last_activity, rotated_at, created_at) < ?",
            (cutoff,),
        )

    def cleanup_if_due(self) -> int:
        """
        Run ``cleanup_expired`` at most once per cleanup interval.

        A failed purge is logged and retried on the next call.

        Returns:
            Number of sessions removed, 0 when no purge was due
        """
        now = self._clock()
        if self._last_cleanup is not None and now - self._last_cleanup < self._cleanup_interval:
            return 0

        try:
            removed = self.cleanup_expired()
        except PersistenceError as e:
            self._log.error("Idle session purge failed: %s", e)
            return 0

        self._last_cleanup = now
        if removed:
            self._log.info("Purged %d idle sessions", removed)
        return removed

    @staticmethod
    def _fmt(moment: Optional[datetime]) -> Optional[str]:
        return format_timestamp(moment) if moment is not None else None

    @staticmethod
    def _row_to_session(row: dict, token: str) -> Session:
        """Convert a database row to a Session object."""
        return Session(
            id=row["id"],
            token=token,
            user_id=int(row["user_id"]) if row["user_id"] is not None else None,
            name=row["name"],
            email=row["email"],
            avatar_path=row["avatar_path"],
            login_time=parse_timestamp(row["login_time"]),
            last_activity=parse_timestamp(row["last_activity"]),
            rotated_at=parse_timestamp(row["rotated_at"]),
            redirect_after_login=row["redirect_after_login"],
            created_at=parse_timestamp(row["created_at"]),
            persisted=True,
        )
