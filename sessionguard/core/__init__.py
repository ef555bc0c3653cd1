"""
Core module - Contains configuration, logging, errors and the auth components.
"""

from sessionguard.core.config import SessionGuardConfig
from sessionguard.core.errors import AuthResult, ErrorKind
from sessionguard.core.logging import get_secure_logger, SecureLogFilter

__all__ = ["SessionGuardConfig", "AuthResult", "ErrorKind", "get_secure_logger", "SecureLogFilter"]
