"""
Domain exceptions - Semantic error types for the account lifecycle.

This module defines domain-specific exceptions that communicate
business rule violations without leaking infrastructure details.
The API layer maps each family onto a generic, non-enumerating response.
"""


class AccountError(Exception):
    """Base class for account domain errors."""

    pass


class ValidationError(AccountError):
    """Malformed or missing input, rejected before any store access."""

    pass


class NotFoundError(AccountError):
    """No matching account, company or code."""

    pass


class NoSuchUser(NotFoundError):
    """No non-deleted account matches the given email or id."""

    pass


class InvalidOrExpiredCode(NotFoundError):
    """One-time code does not exist or was already consumed."""

    pass


class CompanyNotFound(NotFoundError):
    """Company id does not exist."""

    pass


class ConflictError(AccountError):
    """Operation conflicts with the current stored state."""

    pass


class DuplicateEmail(ConflictError):
    """Email already belongs to an active account."""

    pass


class DuplicateAssignment(ConflictError):
    """User already holds an assignment in the company."""

    pass


class AccountAlreadyActive(ConflictError):
    """Registration code requested for an account that already has a password."""

    pass


class AccountNotVerified(ConflictError):
    """Password set attempted before the email was verified."""

    pass


class CodeCollision(ConflictError):
    """Generated code hit the unique index on persist."""

    pass


class AuthError(AccountError):
    """Authentication failed."""

    pass


class WrongPassword(AuthError):
    """Password does not match the stored hash."""

    pass


class TransientStoreError(AccountError):
    """Credential store unavailable. No partial writes occurred; safe to retry."""

    pass


class NotificationError(AccountError):
    """Notifier failed to deliver a message."""

    pass


class CodeGenerationExhausted(AccountError):
    """No unique code could be produced within the retry bound."""

    pass
