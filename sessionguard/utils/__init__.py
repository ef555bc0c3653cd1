"""
Utils module - Utility functions and helpers.

This module contains utility functions used throughout SessionGuard.
"""

from sessionguard.utils.durations import membership_duration
from sessionguard.utils.validators import (
    ValidationError,
    is_safe_redirect,
    validate_email,
    validate_name,
    validate_password,
)

__all__ = [
    "membership_duration",
    "ValidationError",
    "is_safe_redirect",
    "validate_email",
    "validate_name",
    "validate_password",
]
