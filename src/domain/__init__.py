"""
Domain layer - Pure business logic with zero framework imports.

This package contains the account lifecycle (registration, verification,
login, recovery, profile completion) and tenant/role provisioning. It
defines its own port interfaces for infrastructure abstraction, ensuring
true hexagonal architecture decoupling.
"""

from .accounts import STANDARD_ROLES, AccountService
from .codes import CodeGenerator
from .exceptions import (
    AccountError,
    AuthError,
    CodeGenerationExhausted,
    ConflictError,
    DuplicateAssignment,
    DuplicateEmail,
    InvalidOrExpiredCode,
    NoSuchUser,
    NotFoundError,
    NotificationError,
    TransientStoreError,
    ValidationError,
    WrongPassword,
)
from .passwords import PasswordHasher
from .ports import (
    AccessLevel,
    AccountRepository,
    AccountState,
    CodeScope,
    Notifier,
    RecoveryMode,
)
from .tenancy import TenantRegistry

__all__ = [
    "STANDARD_ROLES",
    "AccessLevel",
    "AccountError",
    "AccountRepository",
    "AccountService",
    "AccountState",
    "AuthError",
    "CodeGenerationExhausted",
    "CodeGenerator",
    "CodeScope",
    "ConflictError",
    "DuplicateAssignment",
    "DuplicateEmail",
    "InvalidOrExpiredCode",
    "NoSuchUser",
    "NotFoundError",
    "NotificationError",
    "Notifier",
    "PasswordHasher",
    "RecoveryMode",
    "TenantRegistry",
    "TransientStoreError",
    "ValidationError",
    "WrongPassword",
]
