"""
SessionGuard Authentication Module
==================================

Provides credential authentication with:
- Argon2id password hashing
- Login throttling per (email, source address)
- Server-side sessions with idle expiry and identifier rotation
- Remember-me tokens

Security Properties:
- Memory-hard password hashing
- Constant-time verification, also for unknown users
- Session identifier regenerated on login
- Automatic lockout on repeated failures
"""

from sessionguard.core.auth.argon2_auth import Argon2Hasher
from sessionguard.core.auth.attempt_ledger import LoginAttemptLedger
from sessionguard.core.auth.credential_store import CredentialStore, User
from sessionguard.core.auth.flow import AuthFlowController
from sessionguard.core.auth.remember_tokens import RememberTokenStore
from sessionguard.core.auth.session_control import (
    AccessDecision,
    Session,
    SessionManager,
    SessionState,
)

__all__ = [
    "Argon2Hasher",
    "LoginAttemptLedger",
    "CredentialStore",
    "User",
    "AuthFlowController",
    "RememberTokenStore",
    "AccessDecision",
    "Session",
    "SessionManager",
    "SessionState",
]
