"""
SessionGuard - Credential Authentication and Session Control
============================================================

Registration, login with brute-force throttling, server-side sessions
with idle expiry, profile editing and a user listing, exposed through a
small Flask API.

Security Notice:
- No secrets are logged
- Passwords hashed with Argon2id
- Only hashes of session and remember-me tokens are stored
"""

from sessionguard.core.config import SessionGuardConfig
from sessionguard.core.logging import get_secure_logger

__version__ = "0.1.0"
__author__ = "SessionGuard Team"

__all__ = ["SessionGuardConfig", "get_secure_logger", "__version__"]
