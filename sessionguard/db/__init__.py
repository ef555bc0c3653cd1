"""
Persistence Service
===================

Thin parameterized-statement layer shared by the credential store, the
login attempt ledger, the session store and the remember-token store.

Backends:
- SQLite (default, standard library ``sqlite3``)
- PostgreSQL (``psycopg2``, selected when a database URL is configured)

All statements are written with ``?`` placeholders and translated to the
driver's paramstyle. User input never reaches query text.
"""

from __future__ import annotations

import logging
import sqlite3
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Final, Iterator, List, Optional, Sequence

import psycopg2
import psycopg2.extras

from sessionguard.core.config import SessionGuardConfig
from sessionguard.core.errors import PersistenceError, UniqueViolation


_SQLITE_SCHEMA: Final[str] = """
CREATE TABLE IF NOT EXISTS users (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT NOT NULL,
    email TEXT NOT NULL UNIQUE COLLATE NOCASE,
    password_hash TEXT NOT NULL,
    avatar_path TEXT,
    active INTEGER NOT NULL DEFAULT 1,
    created_at TEXT NOT NULL,
    last_login_at TEXT
);

CREATE TABLE IF NOT EXISTS login_attempts (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    email TEXT NOT NULL,
    source_address TEXT NOT NULL,
    succeeded INTEGER NOT NULL,
    attempted_at TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_login_attempts_lookup
    ON login_attempts(email, source_address, attempted_at);

CREATE TABLE IF NOT EXISTS sessions (
    id TEXT PRIMARY KEY,
    token_hash TEXT UNIQUE NOT NULL,
    user_id INTEGER,
    name TEXT,
    email TEXT,
    avatar_path TEXT,
    login_time TEXT,
    last_activity TEXT,
    rotated_at TEXT NOT NULL,
    redirect_after_login TEXT,
    created_at TEXT NOT NULL,
    FOREIGN KEY (user_id) REFERENCES users(id) ON DELETE CASCADE
);

CREATE INDEX IF NOT EXISTS idx_sessions_user ON sessions(user_id);

CREATE TABLE IF NOT EXISTS remember_tokens (
    token_hash TEXT PRIMARY KEY,
    user_id INTEGER NOT NULL,
    created_at TEXT NOT NULL,
    expires_at TEXT NOT NULL,
    FOREIGN KEY (user_id) REFERENCES users(id) ON DELETE CASCADE
);
"""

_POSTGRES_SCHEMA: Final[str] = """
CREATE TABLE IF NOT EXISTS users (
    id SERIAL PRIMARY KEY,
    name TEXT NOT NULL,
    email TEXT NOT NULL,
    password_hash TEXT NOT NULL,
    avatar_path TEXT,
    active INTEGER NOT NULL DEFAULT 1,
    created_at TEXT NOT NULL,
    last_login_at TEXT
);

CREATE UNIQUE INDEX IF NOT EXISTS idx_users_email ON users (LOWER(email));

CREATE TABLE IF NOT EXISTS login_attempts (
    id SERIAL PRIMARY KEY,
    email TEXT NOT NULL,
    source_address TEXT NOT NULL,
    succeeded INTEGER NOT NULL,
    attempted_at TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_login_attempts_lookup
    ON login_attempts(email, source_address, attempted_at);

CREATE TABLE IF NOT EXISTS sessions (
    id TEXT PRIMARY KEY,
    token_hash TEXT UNIQUE NOT NULL,
    user_id INTEGER REFERENCES users(id) ON DELETE CASCADE,
    name TEXT,
    email TEXT,
    avatar_path TEXT,
    login_time TEXT,
    last_activity TEXT,
    rotated_at TEXT NOT NULL,
    redirect_after_login TEXT,
    created_at TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_sessions_user ON sessions(user_id);

CREATE TABLE IF NOT EXISTS remember_tokens (
    token_hash TEXT PRIMARY KEY,
    user_id INTEGER NOT NULL REFERENCES users(id) ON DELETE CASCADE,
    created_at TEXT NOT NULL,
    expires_at TEXT NOT NULL
);
"""


Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def format_timestamp(moment: datetime) -> str:
    """
    Serialize a timestamp for storage.

    Always UTC with microseconds so stored values compare correctly as text.
    """
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc).isoformat(timespec="microseconds")


def parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    """Parse a stored timestamp, passing through NULL."""
    if not value:
        return None
    return datetime.fromisoformat(value)


class Database:
    """
    Base persistence service.

    Subclasses supply a connection and the error translation for their
    driver. Each call opens a connection, runs one statement inside a
    transaction and closes the connection again.
    """

    dialect: str = "base"
    schema: str = ""

    def __init__(self) -> None:
        self._log = logging.getLogger("sessionguard.db")

    @contextmanager
    def _connection(self) -> Iterator[Any]:
        raise NotImplementedError

    def _translate(self, sql: str) -> str:
        return sql

    def initialize(self) -> None:
        """Create tables and indexes if they do not exist."""
        with self._connection() as conn:
            self._run_script(conn, self.schema)
        self._log.info("Database schema initialized (%s)", self.dialect)

    def _run_script(self, conn: Any, script: str) -> None:
        raise NotImplementedError

    def execute(self, sql: str, params: Sequence[Any] = ()) -> int:
        """Run a statement and return the affected row count."""
        with self._connection() as conn:
            cursor = conn.cursor()
            cursor.execute(self._translate(sql), tuple(params))
            return cursor.rowcount

    def insert(self, sql: str, params: Sequence[Any] = ()) -> int:
        """Run an INSERT into a table with an integer ``id`` and return the new id."""
        raise NotImplementedError

    def fetch_one(self, sql: str, params: Sequence[Any] = ()) -> Optional[dict[str, Any]]:
        with self._connection() as conn:
            cursor = conn.cursor()
            cursor.execute(self._translate(sql), tuple(params))
            row = cursor.fetchone()
            return dict(row) if row is not None else None

    def fetch_all(self, sql: str, params: Sequence[Any] = ()) -> List[dict[str, Any]]:
        with self._connection() as conn:
            cursor = conn.cursor()
            cursor.execute(self._translate(sql), tuple(params))
            return [dict(row) for row in cursor.fetchall()]

    def fetch_value(self, sql: str, params: Sequence[Any] = ()) -> Any:
        """Return the first column of the first row, or None."""
        row = self.fetch_one(sql, params)
        if row is None:
            return None
        return next(iter(row.values()))


class SQLiteDatabase(Database):
    """SQLite backend used for local deployments and tests."""

    dialect = "sqlite"
    schema = _SQLITE_SCHEMA

    def __init__(self, path: Path | str, timeout_seconds: int = 10) -> None:
        super().__init__()
        self._path = Path(path)
        self._timeout = timeout_seconds

    @property
    def path(self) -> Path:
        return self._path

    def _open(self) -> sqlite3.Connection:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(self._path, timeout=self._timeout)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        return conn

    @contextmanager
    def _connection(self) -> Iterator[sqlite3.Connection]:
        try:
            conn = self._open()
        except sqlite3.Error as e:
            self._log.error("Could not open SQLite database: %s", e)
            raise PersistenceError("Database unavailable") from e

        try:
            yield conn
            conn.commit()
        except sqlite3.IntegrityError as e:
            conn.rollback()
            if "UNIQUE" in str(e).upper():
                raise UniqueViolation(str(e)) from e
            raise PersistenceError(str(e)) from e
        except sqlite3.Error as e:
            conn.rollback()
            self._log.error("SQLite statement failed: %s", e)
            raise PersistenceError(str(e)) from e
        finally:
            conn.close()

    def _run_script(self, conn: sqlite3.Connection, script: str) -> None:
        conn.executescript(script)

    def insert(self, sql: str, params: Sequence[Any] = ()) -> int:
        with self._connection() as conn:
            cursor = conn.execute(sql, tuple(params))
            return int(cursor.lastrowid)


class PostgresDatabase(Database):
    """PostgreSQL backend for hosted deployments."""

    dialect = "postgresql"
    schema = _POSTGRES_SCHEMA

    def __init__(self, url: str, connect_timeout: int = 10) -> None:
        super().__init__()
        self._url = url
        self._connect_timeout = connect_timeout

    def __repr__(self) -> str:
        """Safe representation without the DSN."""
        return "PostgresDatabase()"

    def _translate(self, sql: str) -> str:
        return sql.replace("?", "%s")

    @contextmanager
    def _connection(self) -> Iterator[Any]:
        try:
            conn = psycopg2.connect(
                self._url,
                connect_timeout=self._connect_timeout,
                cursor_factory=psycopg2.extras.RealDictCursor,
            )
        except psycopg2.Error as e:
            self._log.error("Could not connect to PostgreSQL: %s", e)
            raise PersistenceError("Database unavailable") from e

        try:
            yield conn
            conn.commit()
        except psycopg2.IntegrityError as e:
            conn.rollback()
            if getattr(e, "pgcode", None) == "23505":  # unique_violation
                raise UniqueViolation(str(e)) from e
            raise PersistenceError(str(e)) from e
        except psycopg2.Error as e:
            conn.rollback()
            self._log.error("PostgreSQL statement failed: %s", e)
            raise PersistenceError(str(e)) from e
        finally:
            conn.close()

    def _run_script(self, conn: Any, script: str) -> None:
        cursor = conn.cursor()
        cursor.execute(script)
        cursor.close()

    def insert(self, sql: str, params: Sequence[Any] = ()) -> int:
        with self._connection() as conn:
            cursor = conn.cursor()
            cursor.execute(self._translate(sql) + " RETURNING id", tuple(params))
            return int(cursor.fetchone()["id"])


def open_database(config: SessionGuardConfig, initialize: bool = True) -> Database:
    """
    Build the persistence service described by the configuration.

    Args:
        config: Loaded configuration
        initialize: Whether to create the schema immediately

    Returns:
        A ready-to-use Database
    """
    if config.database.url:
        database: Database = PostgresDatabase(
            config.database.url,
            connect_timeout=config.database.connect_timeout_seconds,
        )
    else:
        database = SQLiteDatabase(
            config.sqlite_path,
            timeout_seconds=config.database.connect_timeout_seconds,
        )

    if initialize:
        database.initialize()

    return database


__all__ = [
    "Database",
    "SQLiteDatabase",
    "PostgresDatabase",
    "open_database",
    "Clock",
    "utc_now",
    "format_timestamp",
    "parse_timestamp",
]
