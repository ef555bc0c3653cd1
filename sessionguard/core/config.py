"""
Configuration Module
====================

Provides immutable, environment-aware configuration for SessionGuard.

Features:
- Immutable configuration after initialization
- Environment variable override support (SESSIONGUARD_ prefix)
- No secrets in default values
- OS-aware path defaults
"""

from __future__ import annotations

import hashlib
import os
import platform
from dataclasses import dataclass, field
from pathlib import Path
from typing import Final, Any, Optional


# Keys that must never be read from the environment
_SENSITIVE_KEYS: Final[frozenset[str]] = frozenset({
    "password", "secret", "key", "token", "api_key",
    "private", "credential", "auth", "salt"
})


def _is_sensitive_key(key: str) -> bool:
    """Check if a configuration key might contain sensitive data."""
    key_lower = key.lower()
    return any(sensitive in key_lower for sensitive in _SENSITIVE_KEYS)


def _get_default_data_dir() -> Path:
    """Get OS-appropriate default data directory."""
    system = platform.system().lower()

    if system == "windows":
        base = Path(os.environ.get("LOCALAPPDATA", Path.home() / "AppData" / "Local"))
    elif system == "darwin":
        base = Path.home() / "Library" / "Application Support"
    else:  # Linux and others
        base = Path(os.environ.get("XDG_DATA_HOME", Path.home() / ".local" / "share"))

    return base / "SessionGuard"


def _get_default_log_dir() -> Path:
    """Get OS-appropriate default log directory."""
    system = platform.system().lower()

    if system == "windows":
        base = Path(os.environ.get("LOCALAPPDATA", Path.home() / "AppData" / "Local"))
        return base / "SessionGuard" / "Logs"
    elif system == "darwin":
        return Path.home() / "Library" / "Logs" / "SessionGuard"
    else:
        return Path(os.environ.get("XDG_STATE_HOME", Path.home() / ".local" / "state")) / "SessionGuard" / "logs"


def _parse_bool(value: str) -> bool:
    return value.strip().lower() in {"1", "true", "yes", "on"}


@dataclass(frozen=True, slots=True)
class PathConfig:
    """Immutable path configuration with OS-aware defaults."""

    data_dir: Path = field(default_factory=_get_default_data_dir)
    log_dir: Path = field(default_factory=_get_default_log_dir)

    def __post_init__(self) -> None:
        for field_name in ["data_dir", "log_dir"]:
            path = getattr(self, field_name)
            if not path.is_absolute():
                raise ValueError(f"{field_name} must be an absolute path: {path}")


@dataclass(frozen=True, slots=True)
class DatabaseConfig:
    """
    Persistence settings.

    When ``url`` is set (a PostgreSQL DSN) it wins over ``sqlite_path``.
    A missing ``sqlite_path`` means ``<data_dir>/sessionguard.db``.
    """

    sqlite_path: Optional[Path] = None
    url: Optional[str] = None
    connect_timeout_seconds: int = 10

    def __post_init__(self) -> None:
        if self.connect_timeout_seconds < 1:
            raise ValueError("connect_timeout_seconds must be at least 1")


@dataclass(frozen=True, slots=True)
class SecurityConfig:
    """Immutable security configuration."""

    # Session settings
    session_timeout_seconds: int = 1800  # 30 minutes idle
    session_rotation_seconds: int = 300  # rotate identifier every 5 minutes
    session_cookie_name: str = "sessionguard_session"
    remember_cookie_name: str = "remember_token"
    remember_days: int = 30
    cookie_secure: bool = False

    # Login throttling
    max_login_attempts: int = 5
    lockout_seconds: int = 900  # 15 minutes

    # Input rules
    min_name_length: int = 3
    max_name_length: int = 100
    min_password_length: int = 6
    max_password_length: int = 255

    # Argon2id parameters (OWASP 2023 recommended minimums)
    argon2_memory_cost: int = 102400
    argon2_time_cost: int = 2
    argon2_parallelism: int = 4

    def __post_init__(self) -> None:
        if self.session_timeout_seconds < 60:
            raise ValueError("Session timeout must be at least 60 seconds")
        if self.session_rotation_seconds < 1:
            raise ValueError("Session rotation interval must be positive")
        if self.max_login_attempts < 1:
            raise ValueError("max_login_attempts must be at least 1")
        if self.lockout_seconds < 1:
            raise ValueError("lockout_seconds must be positive")
        if self.min_password_length > self.max_password_length:
            raise ValueError("min_password_length exceeds max_password_length")
        if self.min_name_length > self.max_name_length:
            raise ValueError("min_name_length exceeds max_name_length")


@dataclass(frozen=True, slots=True)
class LoggingConfig:
    """Immutable logging configuration."""

    level: str = "INFO"
    max_file_size_bytes: int = 10 * 1024 * 1024  # 10 MB
    backup_count: int = 5
    enable_console: bool = True
    enable_file: bool = False
    enable_json: bool = False

    def __post_init__(self) -> None:
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if self.level.upper() not in valid_levels:
            raise ValueError(f"Invalid log level: {self.level}")


@dataclass(frozen=True, slots=True)
class AppConfig:
    """Immutable application configuration."""

    app_name: str = "SessionGuard"
    version: str = "0.1.0"
    debug_mode: bool = False  # exposes persistence error detail to end users
    landing_page: str = "/dashboard"

    def __post_init__(self) -> None:
        if self.debug_mode:
            import warnings
            warnings.warn(
                "Debug mode is enabled. This should NEVER be used in production.",
                SecurityWarning,
                stacklevel=2
            )


class SessionGuardConfig:
    """
    Centralized, immutable configuration loader with environment overrides.

    Usage:
        config = SessionGuardConfig.load()
        timeout = config.security.session_timeout_seconds
        db_url = config.database.url
    """

    __slots__ = ("_paths", "_database", "_security", "_logging", "_app", "_frozen", "_config_hash")

    _instance: Optional[SessionGuardConfig] = None

    def __init__(
        self,
        paths: Optional[PathConfig] = None,
        database: Optional[DatabaseConfig] = None,
        security: Optional[SecurityConfig] = None,
        logging: Optional[LoggingConfig] = None,
        app: Optional[AppConfig] = None,
    ) -> None:
        """Initialize configuration. Use SessionGuardConfig.load() for standard initialization."""
        object.__setattr__(self, "_frozen", False)
        object.__setattr__(self, "_paths", paths or PathConfig())
        object.__setattr__(self, "_database", database or DatabaseConfig())
        object.__setattr__(self, "_security", security or SecurityConfig())
        object.__setattr__(self, "_logging", logging or LoggingConfig())
        object.__setattr__(self, "_app", app or AppConfig())
        object.__setattr__(self, "_config_hash", self._compute_hash())
        object.__setattr__(self, "_frozen", True)

    def _compute_hash(self) -> str:
        """Compute a hash of the configuration for integrity checking."""
        config_str = f"{self._paths}|{self._database}|{self._security}|{self._logging}|{self._app}"
        return hashlib.sha256(config_str.encode()).hexdigest()[:16]

    @property
    def paths(self) -> PathConfig:
        return self._paths

    @property
    def database(self) -> DatabaseConfig:
        return self._database

    @property
    def security(self) -> SecurityConfig:
        return self._security

    @property
    def logging(self) -> LoggingConfig:
        return self._logging

    @property
    def app(self) -> AppConfig:
        return self._app

    @property
    def config_hash(self) -> str:
        return self._config_hash

    @property
    def sqlite_path(self) -> Path:
        """Resolved SQLite database file."""
        return self._database.sqlite_path or self._paths.data_dir / "sessionguard.db"

    @classmethod
    def load(cls, env_prefix: str = "SESSIONGUARD") -> SessionGuardConfig:
        """
        Load configuration with environment variable overrides.

        Environment variables are prefixed with SESSIONGUARD_ and use
        double underscores for nested values.

        Examples:
            SESSIONGUARD_LOGGING__LEVEL=DEBUG
            SESSIONGUARD_SECURITY__SESSION_TIMEOUT_SECONDS=600
            SESSIONGUARD_DATABASE__URL=postgresql://app@db/sessionguard
        """
        env_overrides = cls._parse_env_overrides(env_prefix)

        paths_kwargs: dict[str, Any] = {}
        for name in ("data_dir", "log_dir"):
            if f"paths.{name}" in env_overrides:
                paths_kwargs[name] = Path(env_overrides[f"paths.{name}"])

        database_kwargs: dict[str, Any] = {}
        if "database.sqlite_path" in env_overrides:
            database_kwargs["sqlite_path"] = Path(env_overrides["database.sqlite_path"])
        if "database.url" in env_overrides:
            database_kwargs["url"] = env_overrides["database.url"]
        if "database.connect_timeout_seconds" in env_overrides:
            database_kwargs["connect_timeout_seconds"] = int(
                env_overrides["database.connect_timeout_seconds"]
            )

        security_kwargs: dict[str, Any] = {}
        for name in (
            "session_timeout_seconds",
            "session_rotation_seconds",
            "remember_days",
            "max_login_attempts",
            "lockout_seconds",
            "argon2_memory_cost",
            "argon2_time_cost",
            "argon2_parallelism",
        ):
            if f"security.{name}" in env_overrides:
                security_kwargs[name] = int(env_overrides[f"security.{name}"])
        if "security.cookie_secure" in env_overrides:
            security_kwargs["cookie_secure"] = _parse_bool(env_overrides["security.cookie_secure"])

        logging_kwargs: dict[str, Any] = {}
        if "logging.level" in env_overrides:
            logging_kwargs["level"] = env_overrides["logging.level"]
        for name in ("enable_console", "enable_file", "enable_json"):
            if f"logging.{name}" in env_overrides:
                logging_kwargs[name] = _parse_bool(env_overrides[f"logging.{name}"])

        # debug_mode cannot be overridden via env
        app_kwargs: dict[str, Any] = {}
        if "app.landing_page" in env_overrides:
            app_kwargs["landing_page"] = env_overrides["app.landing_page"]

        return cls(
            paths=PathConfig(**paths_kwargs) if paths_kwargs else None,
            database=DatabaseConfig(**database_kwargs) if database_kwargs else None,
            security=SecurityConfig(**security_kwargs) if security_kwargs else None,
            logging=LoggingConfig(**logging_kwargs) if logging_kwargs else None,
            app=AppConfig(**app_kwargs) if app_kwargs else None,
        )

    @staticmethod
    def _parse_env_overrides(prefix: str) -> dict[str, str]:
        """Parse environment variables with the given prefix."""
        overrides: dict[str, str] = {}
        prefix_upper = f"{prefix.upper()}_"

        for key, value in os.environ.items():
            if key.startswith(prefix_upper):
                # SESSIONGUARD_SECTION__KEY -> section.key
                config_key = key[len(prefix_upper):].lower().replace("__", ".")

                if _is_sensitive_key(config_key):
                    continue

                overrides[config_key] = value

        return overrides

    @classmethod
    def get_instance(cls) -> SessionGuardConfig:
        """Get or create the singleton configuration instance."""
        if cls._instance is None:
            cls._instance = cls.load()
        return cls._instance

    @classmethod
    def reset_instance(cls) -> None:
        """Reset the singleton instance. Use only for testing."""
        cls._instance = None

    def ensure_directories(self) -> None:
        """Create data and log directories with owner-only permissions."""
        import stat

        for directory in (self._paths.data_dir, self._paths.log_dir):
            directory.mkdir(parents=True, exist_ok=True)

            if platform.system().lower() != "windows":
                directory.chmod(stat.S_IRWXU)  # 700

    def __repr__(self) -> str:
        """Safe string representation without sensitive data."""
        return f"SessionGuardConfig(hash={self._config_hash}, app={self._app.app_name})"

    def __setattr__(self, name: str, value: Any) -> None:
        """Prevent modification after initialization."""
        if hasattr(self, "_frozen") and self._frozen:
            raise AttributeError("SessionGuardConfig is immutable after initialization")
        super().__setattr__(name, value)


class SecurityWarning(UserWarning):
    """Warning for security-related configuration issues."""
    pass
