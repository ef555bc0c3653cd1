"""
Validation Utilities
====================

Input validation functions for account forms.

Each validator returns the cleaned value or raises ``ValidationError``
with a message that can be shown to the user verbatim.
"""

from __future__ import annotations

from typing import Optional

from email_validator import EmailNotValidError, validate_email as _validate_email_syntax


class ValidationError(ValueError):
    """Raised when validation fails."""
    pass


def validate_string_safe(
    value: Optional[str],
    min_length: int = 0,
    max_length: int = 1000,
    allow_empty: bool = False,
    field_name: str = "Value",
) -> str:
    """
    Validate a string value for safety.

    Args:
        value: The string to validate
        min_length: Minimum allowed length
        max_length: Maximum allowed length
        allow_empty: If False, empty strings are rejected
        field_name: Name of the field for error messages

    Returns:
        Validated string

    Raises:
        ValidationError: If validation fails
    """
    if value is None:
        value = ""

    if not isinstance(value, str):
        raise ValidationError(f"{field_name} must be text.")

    if not allow_empty and not value:
        raise ValidationError(f"{field_name} is required.")

    if not min_length <= len(value) <= max_length:
        raise ValidationError(
            f"{field_name} must be between {min_length} and {max_length} characters."
        )

    # Null bytes never belong in form input
    if "\x00" in value:
        raise ValidationError(f"{field_name} contains invalid characters.")

    return value


def _require_text(value: object, field_name: str) -> str:
    if value is None:
        return ""
    if not isinstance(value, str):
        raise ValidationError(f"{field_name} must be text.")
    return value


def validate_name(value: Optional[str], min_length: int = 3, max_length: int = 100) -> str:
    """Validate a display name. Surrounding whitespace is dropped."""
    return validate_string_safe(
        _require_text(value, "Name").strip(),
        min_length=min_length,
        max_length=max_length,
        field_name="Name",
    )


def validate_email(value: Optional[str]) -> str:
    """
    Validate email syntax.

    Deliverability (DNS) is not checked.

    Returns:
        The normalized address
    """
    value = _require_text(value, "Email").strip()
    if not value:
        raise ValidationError("Email is required.")

    try:
        result = _validate_email_syntax(value, check_deliverability=False)
    except EmailNotValidError as e:
        raise ValidationError("Invalid email address.") from e

    return result.normalized


def validate_password(
    value: Optional[str],
    min_length: int = 6,
    max_length: int = 255,
    field_name: str = "Password",
) -> str:
    """Validate password presence and length. The value is never stripped."""
    return validate_string_safe(
        value,
        min_length=min_length,
        max_length=max_length,
        field_name=field_name,
    )


def is_safe_redirect(target: Optional[str]) -> bool:
    """Only same-site absolute paths may be used as post-login targets."""
    if not target or not target.startswith("/"):
        return False
    return not target.startswith("//") and "\\" not in target
