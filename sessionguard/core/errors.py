"""
Error Taxonomy
==============

Exceptions raised by the storage layers and the result values the
auth flow controller returns instead of raising.

Store code raises; the controller catches and converts to an
``AuthResult`` carrying an ``ErrorKind`` so callers never have to tell
a persistence failure from a validation failure by message text.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


class ErrorKind(Enum):
    """Categories of user-visible failure."""
    VALIDATION = "validation"
    DUPLICATE_EMAIL = "duplicate_email"
    AUTHENTICATION_FAILURE = "authentication_failure"
    LOCKED_OUT = "locked_out"
    PERSISTENCE = "persistence"


class PersistenceError(Exception):
    """Raised when the storage layer is unavailable or a query fails."""
    pass


class UniqueViolation(PersistenceError):
    """Raised when a statement violates a uniqueness constraint."""
    pass


class DuplicateEmail(Exception):
    """Raised when an email address is already registered to another user."""

    def __init__(self, email: str) -> None:
        self.email = email
        super().__init__(f"Email already registered: {email}")


class UserNotFoundError(Exception):
    """Raised when a user is not found."""
    pass


@dataclass
class AuthResult:
    """
    Outcome of an auth flow operation.

    Attributes:
        ok: Whether the operation succeeded
        kind: Failure category, None on success
        messages: User-facing messages, shown verbatim
        redirect_to: Where the presentation layer should send the user
        user_id: Affected user, when known
        remember_token: Freshly issued remember-me token to set as a cookie
        clear_cookies: Whether session and remember cookies must be expired
        retry_after_minutes: Remaining lockout, for LOCKED_OUT results
        data: View state for the presentation layer
    """
    ok: bool
    kind: Optional[ErrorKind] = None
    messages: List[str] = field(default_factory=list)
    redirect_to: Optional[str] = None
    user_id: Optional[int] = None
    remember_token: Optional[str] = None
    clear_cookies: bool = False
    retry_after_minutes: Optional[int] = None
    data: Dict[str, Any] = field(default_factory=dict)

    def __repr__(self) -> str:
        """Safe representation without the remember token."""
        return (
            f"AuthResult(ok={self.ok}, kind={self.kind.name if self.kind else None}, "
            f"messages={self.messages!r}, redirect_to={self.redirect_to!r})"
        )

    @classmethod
    def success(cls, message: Optional[str] = None, **kwargs) -> AuthResult:
        return cls(ok=True, messages=[message] if message else [], **kwargs)

    @classmethod
    def failure(cls, kind: ErrorKind, messages: List[str] | str, **kwargs) -> AuthResult:
        if isinstance(messages, str):
            messages = [messages]
        return cls(ok=False, kind=kind, messages=list(messages), **kwargs)
