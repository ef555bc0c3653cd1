"""
Auth Flow Controller
====================

Orchestrates registration, login, logout and profile updates over the
credential store, the attempt ledger, the password hasher, the session
manager and the remember-token store.

Every operation returns an ``AuthResult``. Store exceptions are caught
here and converted to result kinds; nothing below the presentation layer
has to parse message text.

Security Properties:
- Unknown email and wrong password produce the same message
- A missing user still costs one full Argon2 verification
- Lockout per (email, source address) over a rolling window
- Ledger failures never block a login (fail-open on throttling)
- Credential lookup failures always abort (fail-closed on auth)
"""

from __future__ import annotations

import logging
import math
from typing import Any, Dict, List, Optional

from sessionguard.core.auth.argon2_auth import Argon2Hasher
from sessionguard.core.auth.attempt_ledger import LoginAttemptLedger
from sessionguard.core.auth.credential_store import CredentialStore, User
from sessionguard.core.auth.remember_tokens import RememberTokenStore
from sessionguard.core.auth.session_control import Session, SessionManager
from sessionguard.core.config import AppConfig, SecurityConfig
from sessionguard.core.errors import (
    AuthResult,
    DuplicateEmail,
    ErrorKind,
    PersistenceError,
    UserNotFoundError,
)
from sessionguard.db import Clock, format_timestamp, utc_now
from sessionguard.utils.durations import membership_duration
from sessionguard.utils.validators import (
    ValidationError,
    is_safe_redirect,
    validate_email,
    validate_name,
    validate_password,
)


MSG_INVALID_CREDENTIALS = "Invalid email or password."
MSG_INACTIVE_ACCOUNT = "This account is inactive. Contact the administrator."
MSG_LOCKED_OUT = "Too many failed login attempts. Try again in {minutes} minute(s)."
MSG_DUPLICATE_EMAIL = "This email is already registered."
MSG_REGISTRATION_FAILED = "Registration failed. Please try again later."
MSG_RETRY_LATER = "A temporary error occurred. Please try again later."
MSG_CURRENT_PASSWORD = "Current password is incorrect."
MSG_PASSWORD_MISMATCH = "Passwords do not match."
MSG_NOT_AUTHENTICATED = "Not authenticated."


def _user_view(user: User) -> Dict[str, Any]:
    """Fields safe to hand to the presentation layer."""
    return {
        "id": user.id,
        "name": user.name,
        "email": user.email,
        "avatar_path": user.avatar_path,
        "active": user.active,
        "created_at": format_timestamp(user.created_at),
        "last_login_at": format_timestamp(user.last_login_at) if user.last_login_at else None,
    }


class AuthFlowController:
    """
    Entry point for every account operation.

    Usage:
        controller = AuthFlowController(store, ledger, hasher, sessions, tokens, security)

        result = controller.register("Ana Silva", "ana@x.com", "secret1", "secret1")
        result = controller.login(session, "ana@x.com", "secret1", source_address="10.0.0.1")
        if not result.ok:
            show(result.messages)
    """

    def __init__(
        self,
        store: CredentialStore,
        ledger: LoginAttemptLedger,
        hasher: Argon2Hasher,
        sessions: SessionManager,
        remember_tokens: RememberTokenStore,
        security: SecurityConfig,
        app: Optional[AppConfig] = None,
        clock: Optional[Clock] = None,
        login_path: str = "/login",
    ) -> None:
        self._store = store
        self._ledger = ledger
        self._hasher = hasher
        self._sessions = sessions
        self._remember_tokens = remember_tokens
        self._security = security
        self._app = app or AppConfig()
        self._clock = clock or utc_now
        self._login_path = login_path
        self._log = logging.getLogger("sessionguard.auth")

    @property
    def sessions(self) -> SessionManager:
        return self._sessions

    def _retry_message(self, error: Exception, base: str = MSG_RETRY_LATER) -> str:
        if self._app.debug_mode:
            return f"{base} ({error})"
        return base

    def _persistence_failure(self, error: Exception, base: str = MSG_RETRY_LATER) -> AuthResult:
        return AuthResult.failure(ErrorKind.PERSISTENCE, self._retry_message(error, base))

    def _not_authenticated(self) -> AuthResult:
        return AuthResult.failure(
            ErrorKind.AUTHENTICATION_FAILURE,
            MSG_NOT_AUTHENTICATED,
            redirect_to=self._login_path,
        )

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    def register(
        self,
        name: Optional[str],
        email: Optional[str],
        password: Optional[str],
        confirm_password: Optional[str],
    ) -> AuthResult:
        """
        Create an account.

        All violations are collected before returning. The duplicate
        check runs only once the email is syntactically valid.
        """
        errors: List[str] = []
        kind = ErrorKind.VALIDATION
        lookup_error: Optional[Exception] = None

        try:
            name = validate_name(
                name,
                self._security.min_name_length,
                self._security.max_name_length,
            )
        except ValidationError as e:
            errors.append(str(e))

        email_valid = False
        try:
            email = validate_email(email)
            email_valid = True
        except ValidationError as e:
            errors.append(str(e))

        if email_valid:
            try:
                if self._store.exists_by_email(email):
                    errors.append(MSG_DUPLICATE_EMAIL)
                    kind = ErrorKind.DUPLICATE_EMAIL
            except PersistenceError as e:
                self._log.error("Email lookup failed during registration: %s", e)
                lookup_error = e

        try:
            validate_password(
                password,
                self._security.min_password_length,
                self._security.max_password_length,
            )
        except ValidationError as e:
            errors.append(str(e))

        if not confirm_password:
            errors.append("Please confirm your password.")
        elif password != confirm_password:
            errors.append(MSG_PASSWORD_MISMATCH)

        if lookup_error is not None:
            errors.append(self._retry_message(lookup_error, MSG_REGISTRATION_FAILED))
            kind = ErrorKind.PERSISTENCE

        if errors:
            return AuthResult.failure(kind, errors)

        try:
            user_id = self._store.insert(name, email, self._hasher.hash(password))
        except DuplicateEmail:
            return AuthResult.failure(ErrorKind.DUPLICATE_EMAIL, MSG_DUPLICATE_EMAIL)
        except PersistenceError as e:
            self._log.error("Registration insert failed: %s", e)
            return self._persistence_failure(e, MSG_REGISTRATION_FAILED)

        self._log.info("Registered user %s", user_id)
        return AuthResult.success(
            "Registration successful! You can now log in.",
            user_id=user_id,
            redirect_to=self._login_path,
        )

    # ------------------------------------------------------------------
    # Login / logout
    # ------------------------------------------------------------------

    def login(
        self,
        session: Session,
        email: Optional[str],
        password: Optional[str],
        remember: bool = False,
        source_address: str = "unknown",
    ) -> AuthResult:
        """
        Verify credentials and authenticate the session.

        Args:
            session: The visitor's current session
            email: Submitted email
            password: Submitted password
            remember: Issue a remember-me token on success
            source_address: Client address for throttling
        """
        errors: List[str] = []
        try:
            email = validate_email(email)
        except ValidationError as e:
            errors.append(str(e))
        if not password:
            errors.append("Password is required.")
        elif not isinstance(password, str):
            errors.append("Password must be text.")
        if errors:
            return AuthResult.failure(ErrorKind.VALIDATION, errors)

        locked = self._check_lockout(email, source_address)
        if locked is not None:
            return locked

        try:
            user = self._store.find_by_email(email)
        except PersistenceError as e:
            self._log.error("User lookup failed during login: %s", e)
            return self._persistence_failure(e)

        if user is None:
            self._hasher.verify_dummy(password)
            succeeded, message = False, MSG_INVALID_CREDENTIALS
        else:
            password_ok = self._hasher.verify(password, user.password_hash)
            if not user.active:
                succeeded, message = False, MSG_INACTIVE_ACCOUNT
            elif not password_ok:
                succeeded, message = False, MSG_INVALID_CREDENTIALS
            else:
                succeeded, message = True, None

        try:
            self._ledger.record(email, source_address, succeeded)
        except PersistenceError as e:
            self._log.error("Could not record login attempt: %s", e)

        if not succeeded:
            self._log.warning("Failed login for %s from %s", email, source_address)
            return AuthResult.failure(ErrorKind.AUTHENTICATION_FAILURE, message)

        return self._complete_login(session, user, password, remember, source_address)

    def _check_lockout(self, email: str, source_address: str) -> Optional[AuthResult]:
        window = self._security.lockout_seconds
        threshold = self._security.max_login_attempts
        try:
            failures = self._ledger.count_failures(email, source_address, window)
            if failures < threshold:
                return None
            seconds = self._ledger.seconds_until_release(email, source_address, window, threshold)
        except PersistenceError as e:
            self._log.error("Attempt ledger unavailable, skipping lockout check: %s", e)
            return None

        minutes = max(1, math.ceil(seconds / 60))
        self._log.warning(
            "Login locked for %s from %s (%d failures)", email, source_address, failures
        )
        return AuthResult.failure(
            ErrorKind.LOCKED_OUT,
            MSG_LOCKED_OUT.format(minutes=minutes),
            retry_after_minutes=minutes,
        )

    def _complete_login(
        self,
        session: Session,
        user: User,
        password: str,
        remember: bool,
        source_address: str,
    ) -> AuthResult:
        token: Optional[str] = None
        try:
            self._sessions.authenticate(session, user)
            self._store.touch_last_login(user.id)
            if self._hasher.needs_rehash(user.password_hash):
                self._store.update_password_hash(user.id, self._hasher.hash(password))
                self._log.info("Upgraded password digest for user %s", user.id)
            if remember:
                token = self._remember_tokens.issue(user.id)
            target = self._sessions.pop_redirect_target(session)
        except PersistenceError as e:
            self._log.error("Could not establish session for user %s: %s", user.id, e)
            return self._persistence_failure(e)

        if not is_safe_redirect(target):
            target = self._app.landing_page

        self._log.info("User %s logged in from %s", user.id, source_address)
        return AuthResult.success(
            f"Welcome, {user.name}!",
            user_id=user.id,
            redirect_to=target,
            remember_token=token,
        )

    def logout(self, session: Session, remember_token: Optional[str] = None) -> AuthResult:
        """
        End the session. Calling it on an anonymous session is a no-op
        that still signals cookie expiry and the redirect.
        """
        user_id = session.user_id

        try:
            self._remember_tokens.revoke(remember_token)
        except PersistenceError as e:
            self._log.error("Could not revoke remember token: %s", e)

        try:
            self._sessions.destroy(session)
        except PersistenceError as e:
            self._log.error("Could not delete session row: %s", e)

        if user_id is not None:
            self._log.info("User %s logged out", user_id)

        return AuthResult.success(
            "You have been logged out.",
            user_id=user_id,
            redirect_to=f"{self._login_path}?logout=1",
            clear_cookies=True,
        )

    def resume(self, session: Session, remember_token: Optional[str]) -> AuthResult:
        """
        Restore an authenticated session from a remember-me token.

        The presented token is consumed and a fresh one is returned in
        ``remember_token`` on success.
        """
        if session.is_authenticated:
            return AuthResult.success(user_id=session.user_id)
        if not remember_token:
            return self._not_authenticated()

        try:
            user_id = self._remember_tokens.consume(remember_token)
            user = self._store.get_user(user_id) if user_id is not None else None
            if user is None or not user.active:
                return self._not_authenticated()

            self._sessions.authenticate(session, user)
            token = self._remember_tokens.issue(user.id)
        except PersistenceError as e:
            self._log.error("Could not resume remembered login: %s", e)
            return self._persistence_failure(e)

        self._log.info("Resumed remembered login for user %s", user.id)
        return AuthResult.success(user_id=user.id, remember_token=token)

    # ------------------------------------------------------------------
    # Authenticated views
    # ------------------------------------------------------------------

    def current_user(self, session: Session) -> Optional[User]:
        """
        Reload the session's user from storage.

        A session whose user no longer exists is destroyed.

        Raises:
            PersistenceError: If the lookup fails
        """
        if not session.is_authenticated:
            return None

        user = self._store.get_user(session.user_id)
        if user is None:
            self._log.warning("Session references missing user %s; destroying", session.user_id)
            self._sessions.destroy(session)
        return user

    def keep_alive(self, session: Session) -> AuthResult:
        """Refresh activity for a quiet but open page."""
        try:
            alive = self._sessions.touch(session)
        except PersistenceError as e:
            self._log.error("Keep-alive failed: %s", e)
            return self._persistence_failure(e)

        if not alive:
            return AuthResult.failure(ErrorKind.AUTHENTICATION_FAILURE, MSG_NOT_AUTHENTICATED)

        return AuthResult.success(
            "Session renewed",
            user_id=session.user_id,
            data={"timestamp": int(self._clock().timestamp())},
        )

    def dashboard(self, session: Session) -> AuthResult:
        """Account summary for the signed-in user."""
        try:
            user = self.current_user(session)
        except PersistenceError as e:
            self._log.error("Dashboard lookup failed: %s", e)
            return self._persistence_failure(e)

        if user is None:
            result = self._not_authenticated()
            result.clear_cookies = True
            return result

        return AuthResult.success(
            user_id=user.id,
            data={
                "user": _user_view(user),
                "member_for": membership_duration(user.created_at, self._clock()),
                "login_time": format_timestamp(session.login_time) if session.login_time else None,
            },
        )

    def list_users(self) -> AuthResult:
        """All registered users, newest first."""
        try:
            users = self._store.list_users()
        except PersistenceError as e:
            self._log.error("User listing failed: %s", e)
            return self._persistence_failure(e)

        return AuthResult.success(data={"users": [_user_view(user) for user in users]})

    # ------------------------------------------------------------------
    # Profile
    # ------------------------------------------------------------------

    def update_profile(
        self,
        session: Session,
        name: Optional[str],
        email: Optional[str],
        current_password: Optional[str] = None,
        new_password: Optional[str] = None,
        confirm_new_password: Optional[str] = None,
    ) -> AuthResult:
        """
        Edit name and email, and optionally change the password.

        A new password requires the current one. The stored digest is
        only replaced when a new password is supplied.
        """
        if not session.is_authenticated:
            return self._not_authenticated()
        user_id = session.user_id

        errors: List[str] = []
        kind = ErrorKind.VALIDATION

        try:
            name = validate_name(
                name,
                self._security.min_name_length,
                self._security.max_name_length,
            )
        except ValidationError as e:
            errors.append(str(e))

        email_valid = False
        try:
            email = validate_email(email)
            email_valid = True
        except ValidationError as e:
            errors.append(str(e))

        try:
            if email_valid and self._store.exists_by_email(email, excluding_id=user_id):
                errors.append(MSG_DUPLICATE_EMAIL)
                kind = ErrorKind.DUPLICATE_EMAIL

            user = self._store.get_user(user_id) if new_password else None
        except PersistenceError as e:
            self._log.error("Profile lookup failed for user %s: %s", user_id, e)
            return self._persistence_failure(e)

        if new_password:
            if user is None:
                return self._missing_user(session)
            current_ok = isinstance(current_password, str) and bool(current_password)
            if not current_ok or not self._hasher.verify(current_password, user.password_hash):
                errors.append(MSG_CURRENT_PASSWORD)
            try:
                validate_password(
                    new_password,
                    self._security.min_password_length,
                    self._security.max_password_length,
                    field_name="New password",
                )
            except ValidationError as e:
                errors.append(str(e))
            if new_password != confirm_new_password:
                errors.append(MSG_PASSWORD_MISMATCH)

        if errors:
            return AuthResult.failure(kind, errors)

        new_hash = self._hasher.hash(new_password) if new_password else None
        try:
            self._store.update_profile(user_id, name, email, new_hash)
            if new_hash:
                self._remember_tokens.revoke_all(user_id)
        except DuplicateEmail:
            return AuthResult.failure(ErrorKind.DUPLICATE_EMAIL, MSG_DUPLICATE_EMAIL)
        except UserNotFoundError:
            return self._missing_user(session)
        except PersistenceError as e:
            self._log.error("Profile update failed for user %s: %s", user_id, e)
            return self._persistence_failure(e)

        try:
            self._sessions.refresh_identity(session, name, email)
        except PersistenceError as e:
            self._log.error("Could not refresh session identity: %s", e)

        self._log.info("Profile updated for user %s%s", user_id, " (password changed)" if new_hash else "")
        return AuthResult.success("Profile updated successfully!", user_id=user_id)

    def _missing_user(self, session: Session) -> AuthResult:
        try:
            self._sessions.destroy(session)
        except PersistenceError as e:
            self._log.error("Could not delete session row: %s", e)
        result = self._not_authenticated()
        result.clear_cookies = True
        return result
