"""Input validation shared by the domain services. Runs before any store access."""

from dataclasses import replace

from .exceptions import ValidationError
from .ports import AccessLevel, ProfileFields


def normalize_email(email: str) -> str:
    """
    Normalize email address for consistent storage and lookup.

    Applies: strip whitespace + lowercase

    Raises:
        ValidationError: If the result is not shaped like local@domain
    """
    normalized = email.strip().lower()
    local, sep, domain = normalized.partition("@")
    if not sep or not local or "." not in domain or " " in normalized:
        raise ValidationError("invalid email address")
    return normalized


def normalize_code(code: str) -> str:
    """Codes are case-insensitive on input and stored uppercase."""
    normalized = code.strip().upper()
    if not normalized:
        raise ValidationError("code is required")
    return normalized


def require_text(value: str, field: str) -> str:
    stripped = value.strip()
    if not stripped:
        raise ValidationError(f"{field} is required")
    return stripped


def clean_profile(fields: ProfileFields) -> ProfileFields:
    """Strip the required name fields, rejecting blanks."""
    return replace(
        fields,
        first_name=require_text(fields.first_name, "first_name"),
        last_name=require_text(fields.last_name, "last_name"),
    )


def access_level(value: int) -> AccessLevel:
    try:
        return AccessLevel(value)
    except ValueError:
        raise ValidationError(f"unknown access level {value!r}") from None
