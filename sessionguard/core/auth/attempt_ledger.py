"""
Login Attempt Ledger
====================

Append-only log of credential checks used for brute-force throttling.

Every check is recorded as (email, source address, succeeded, time).
Rows are never updated or deleted by the application; lockout decisions
are rolling-window counts over the failures.
"""

from __future__ import annotations

from datetime import timedelta
from typing import Optional

from sessionguard.db import Clock, Database, format_timestamp, parse_timestamp, utc_now


class LoginAttemptLedger:
    """
    Rolling-window failure counter keyed by (email, source address).

    Emails are stored lower-cased so "Ana@X.com" and "ana@x.com" share one
    counter.
    """

    __slots__ = ("_db", "_clock")

    def __init__(self, database: Database, clock: Optional[Clock] = None) -> None:
        self._db = database
        self._clock = clock or utc_now

    @staticmethod
    def _key(email: str) -> str:
        return email.strip().lower()

    def record(self, email: str, source_address: str, succeeded: bool) -> None:
        """Append one credential-check outcome."""
        self._db.execute(
            "INSERT INTO login_attempts (email, source_address, succeeded, attempted_at) "
            "VALUES (?, ?, ?, ?)",
            (self._key(email), source_address, 1 if succeeded else 0, format_timestamp(self._clock())),
        )

    def count_failures(self, email: str, source_address: str, window_seconds: int) -> int:
        """Count failed attempts for the pair within the trailing window ending now."""
        since = self._clock() - timedelta(seconds=window_seconds)
        count = self._db.fetch_value(
            "SELECT COUNT(*) AS n FROM login_attempts "
            "WHERE email = ? AND source_address = ? AND succeeded = 0 AND attempted_at > ?",
            (self._key(email), source_address, format_timestamp(since)),
        )
        return int(count or 0)

    def seconds_until_release(
        self,
        email: str,
        source_address: str,
        window_seconds: int,
        max_attempts: int,
    ) -> int:
        """
        Seconds until the failure count for the pair drops below
        ``max_attempts`` again.

        The count falls once enough of the oldest in-window failures age
        out, so the answer is driven by the failure at position
        ``count - max_attempts`` in chronological order.
        """
        now = self._clock()
        since = now - timedelta(seconds=window_seconds)
        rows = self._db.fetch_all(
            "SELECT attempted_at FROM login_attempts "
            "WHERE email = ? AND source_address = ? AND succeeded = 0 AND attempted_at > ? "
            "ORDER BY attempted_at ASC",
            (self._key(email), source_address, format_timestamp(since)),
        )
        if len(rows) < max_attempts:
            return 0

        pivot = parse_timestamp(rows[len(rows) - max_attempts]["attempted_at"])
        release_at = pivot + timedelta(seconds=window_seconds)
        return max(0, int((release_at - now).total_seconds()))
