"""
Remember-Me Tokens
==================

Long-lived login tokens issued when a user asks to be remembered.

Security Features:
- 256-bit random tokens (secrets.token_hex(32))
- Only SHA-256 hashes are stored, tokens never hit disk
- Tokens are single-use: consuming one deletes it
- Expired tokens are rejected and purged
"""

from __future__ import annotations

import hashlib
import secrets
from datetime import timedelta
from typing import Final, Optional

from sessionguard.db import Clock, Database, format_timestamp, parse_timestamp, utc_now


REMEMBER_TOKEN_BYTES: Final[int] = 32  # 256 bits


class RememberTokenStore:
    """
    Issues and validates remember-me tokens.

    Usage:
        tokens = RememberTokenStore(database, lifetime_days=30)

        token = tokens.issue(user.id)       # set as cookie
        user_id = tokens.consume(token)     # on a later visit
        tokens.revoke(token)                # on logout
    """

    __slots__ = ("_db", "_lifetime", "_clock")

    def __init__(
        self,
        database: Database,
        lifetime_days: int = 30,
        clock: Optional[Clock] = None,
    ) -> None:
        self._db = database
        self._lifetime = timedelta(days=lifetime_days)
        self._clock = clock or utc_now

    @property
    def lifetime(self) -> timedelta:
        return self._lifetime

    @staticmethod
    def _hash_token(token: str) -> str:
        return hashlib.sha256(token.encode()).hexdigest()

    def issue(self, user_id: int) -> str:
        """
        Create a token for a user.

        Returns:
            The token (caller must deliver it; only its hash is kept)
        """
        token = secrets.token_hex(REMEMBER_TOKEN_BYTES)
        now = self._clock()
        self._db.execute(
            "INSERT INTO remember_tokens (token_hash, user_id, created_at, expires_at) "
            "VALUES (?, ?, ?, ?)",
            (
                self._hash_token(token),
                user_id,
                format_timestamp(now),
                format_timestamp(now + self._lifetime),
            ),
        )
        return token

    def consume(self, token: Optional[str]) -> Optional[int]:
        """
        Validate and delete a token.

        Returns:
            The owning user id, or None if the token is unknown or expired
        """
        if not token:
            return None

        token_hash = self._hash_token(token)
        row = self._db.fetch_one(
            "SELECT user_id, expires_at FROM remember_tokens WHERE token_hash = ?",
            (token_hash,),
        )
        if row is None:
            return None

        self._db.execute("DELETE FROM remember_tokens WHERE token_hash = ?", (token_hash,))

        if parse_timestamp(row["expires_at"]) <= self._clock():
            return None

        return int(row["user_id"])

    def revoke(self, token: Optional[str]) -> None:
        """Delete a token if it exists."""
        if token:
            self._db.execute(
                "DELETE FROM remember_tokens WHERE token_hash = ?",
                (self._hash_token(token),),
            )

    def revoke_all(self, user_id: int) -> int:
        """Delete every token of a user (password change)."""
        return self._db.execute("DELETE FROM remember_tokens WHERE user_id = ?", (user_id,))
