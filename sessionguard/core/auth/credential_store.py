"""
Credential Store
================

Persistence of user records: name, email, password digest, active flag
and timestamps.

Security Features:
- Parameterized queries only (SQL injection safe)
- Case-insensitive email uniqueness enforced by the storage layer
- Password digests never exposed in repr
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional

from sessionguard.core.errors import DuplicateEmail, UniqueViolation, UserNotFoundError
from sessionguard.db import Clock, Database, format_timestamp, parse_timestamp, utc_now


@dataclass
class User:
    """
    User account representation.

    Note: password_hash is never exposed in repr or str.
    """
    id: int
    name: str
    email: str
    password_hash: str
    created_at: datetime
    active: bool = True
    last_login_at: Optional[datetime] = None
    avatar_path: Optional[str] = None

    def __repr__(self) -> str:
        """Safe representation without password hash."""
        return (
            f"User(id={self.id!r}, email={self.email!r}, "
            f"active={self.active})"
        )


class CredentialStore:
    """
    User record persistence over the shared Database service.

    Usage:
        store = CredentialStore(database)

        user_id = store.insert("Ana Silva", "ana@x.com", digest)
        user = store.find_by_email("ana@x.com")
        store.touch_last_login(user.id)

    Raises ``DuplicateEmail`` when the unique email constraint rejects an
    insert or update, and lets ``PersistenceError`` from the database
    propagate for every other storage failure.
    """

    __slots__ = ("_db", "_clock", "_log")

    _COLUMNS = "id, name, email, password_hash, avatar_path, active, created_at, last_login_at"

    def __init__(self, database: Database, clock: Optional[Clock] = None) -> None:
        self._db = database
        self._clock = clock or utc_now
        self._log = logging.getLogger("sessionguard.auth.store")

    def find_by_email(self, email: str) -> Optional[User]:
        """Get a user by email address (case-insensitive)."""
        row = self._db.fetch_one(
            f"SELECT {self._COLUMNS} FROM users WHERE LOWER(email) = LOWER(?)",
            (email,),
        )
        return self._row_to_user(row) if row else None

    def get_user(self, user_id: int) -> Optional[User]:
        """Get a user by ID."""
        row = self._db.fetch_one(
            f"SELECT {self._COLUMNS} FROM users WHERE id = ?",
            (user_id,),
        )
        return self._row_to_user(row) if row else None

    def exists_by_email(self, email: str, excluding_id: Optional[int] = None) -> bool:
        """
        Check whether an email is registered.

        Args:
            email: Address to look up
            excluding_id: Ignore this user's own record (profile edits)
        """
        if excluding_id is None:
            count = self._db.fetch_value(
                "SELECT COUNT(*) AS n FROM users WHERE LOWER(email) = LOWER(?)",
                (email,),
            )
        else:
            count = self._db.fetch_value(
                "SELECT COUNT(*) AS n FROM users WHERE LOWER(email) = LOWER(?) AND id <> ?",
                (email, excluding_id),
            )
        return bool(count)

    def insert(self, name: str, email: str, password_hash: str) -> int:
        """
        Create an active user record.

        Returns:
            The new user's id

        Raises:
            DuplicateEmail: If the email is already registered
        """
        now = format_timestamp(self._clock())
        try:
            user_id = self._db.insert(
                "INSERT INTO users (name, email, password_hash, active, created_at) "
                "VALUES (?, ?, ?, 1, ?)",
                (name, email, password_hash, now),
            )
        except UniqueViolation:
            self._log.warning("Rejected duplicate registration for %s", email)
            raise DuplicateEmail(email)

        self._log.info("User created: id=%s", user_id)
        return user_id

    def update_profile(
        self,
        user_id: int,
        name: str,
        email: str,
        password_hash: Optional[str] = None,
    ) -> None:
        """
        Update display name and email, and the digest only when given.

        Raises:
            DuplicateEmail: If the email belongs to another user
            UserNotFoundError: If no user has this id
        """
        try:
            if password_hash:
                updated = self._db.execute(
                    "UPDATE users SET name = ?, email = ?, password_hash = ? WHERE id = ?",
                    (name, email, password_hash, user_id),
                )
            else:
                updated = self._db.execute(
                    "UPDATE users SET name = ?, email = ? WHERE id = ?",
                    (name, email, user_id),
                )
        except UniqueViolation:
            raise DuplicateEmail(email)

        if updated == 0:
            raise UserNotFoundError(f"User with ID '{user_id}' not found")

    def update_password_hash(self, user_id: int, password_hash: str) -> None:
        """Replace a stored digest, e.g. after a parameter upgrade."""
        self._db.execute(
            "UPDATE users SET password_hash = ? WHERE id = ?",
            (password_hash, user_id),
        )

    def touch_last_login(self, user_id: int) -> None:
        """Record a successful login."""
        self._db.execute(
            "UPDATE users SET last_login_at = ? WHERE id = ?",
            (format_timestamp(self._clock()), user_id),
        )

    def set_active(self, user_id: int, active: bool) -> None:
        """Activate or deactivate an account."""
        updated = self._db.execute(
            "UPDATE users SET active = ? WHERE id = ?",
            (1 if active else 0, user_id),
        )
        if updated == 0:
            raise UserNotFoundError(f"User with ID '{user_id}' not found")
        self._log.info("User %s %s", user_id, "activated" if active else "deactivated")

    def list_users(self) -> List[User]:
        """List all users, most recently registered first."""
        rows = self._db.fetch_all(
            f"SELECT {self._COLUMNS} FROM users ORDER BY created_at DESC, id DESC"
        )
        return [self._row_to_user(row) for row in rows]

    @staticmethod
    def _row_to_user(row: dict) -> User:
        """Convert a database row to a User object."""
        return User(
            id=int(row["id"]),
            name=row["name"],
            email=row["email"],
            password_hash=row["password_hash"],
            avatar_path=row["avatar_path"],
            active=bool(row["active"]),
            created_at=parse_timestamp(row["created_at"]),
            last_login_at=parse_timestamp(row["last_login_at"]),
        )
