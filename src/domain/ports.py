"""
Port interfaces - Protocol definitions for infrastructure abstraction.

This module defines the interfaces (ports) that the domain requires
from infrastructure, plus the value types that cross them. Adapters
implement these protocols; nothing here touches a database driver.
"""

from dataclasses import dataclass
from datetime import date
from enum import Enum, IntEnum
from typing import Protocol


class AccountState(str, Enum):
    """
    Account lifecycle states.

    State Transitions:
    - PENDING_VERIFICATION -> ACTIVE (password set after email verified)

    RecoveryPending is an orthogonal sub-state tracked by the presence of
    a recovery code; it does not change the account state.
    """

    PENDING_VERIFICATION = "PENDING_VERIFICATION"
    ACTIVE = "ACTIVE"


class CodeScope(str, Enum):
    """Table a one-time code belongs to. Uniqueness is per scope."""

    REGISTRATION = "registration"
    RECOVERY = "recovery"
    SETUP = "setup"


class RecoveryMode(IntEnum):
    """Recovery request modes, numbered as clients send them."""

    FORGOTTEN = 0
    RESEND = 1
    PASSWORD_CHANGED = 2


class AccessLevel(IntEnum):
    """Ordered permission tier within a company."""

    NO_ACCESS = 0
    READER = 1
    EDITOR = 2
    CREATOR = 3
    ADMIN = 4

    @property
    def role_name(self) -> str:
        return _ROLE_NAMES[self]


_ROLE_NAMES = {
    AccessLevel.NO_ACCESS: "No Access",
    AccessLevel.READER: "Reader",
    AccessLevel.EDITOR: "Editor",
    AccessLevel.CREATOR: "Creator",
    AccessLevel.ADMIN: "Admin",
}


class AssignmentResult(Enum):
    """
    Result of a company assignment attempt.

    Used by assign_user() so the domain can raise the right error
    without the adapter knowing about domain exceptions.
    """

    ASSIGNED = "assigned"
    DUPLICATE = "duplicate"
    COMPANY_NOT_FOUND = "company_not_found"
    USER_NOT_FOUND = "user_not_found"


@dataclass(frozen=True)
class PasswordHash:
    """bcrypt hash and the salt it was computed with."""

    hash: str
    salt: str


@dataclass(frozen=True)
class Account:
    """Identity record joined with its profile email."""

    user_id: int
    email: str
    password_hash: str | None
    password_salt: str | None
    verified: bool

    @property
    def state(self) -> AccountState:
        if self.password_hash is None:
            return AccountState.PENDING_VERIFICATION
        return AccountState.ACTIVE


@dataclass(frozen=True)
class ProfileFields:
    """Profile attributes collected at profile completion."""

    first_name: str
    last_name: str
    phone: str | None = None
    birth_date: date | None = None
    national_id: str | None = None
    country: str | None = None
    description: str | None = None


@dataclass(frozen=True)
class Profile:
    """Stored profile summary."""

    user_id: int
    email: str
    first_name: str | None
    last_name: str | None

    @property
    def completed(self) -> bool:
        return bool(self.first_name and self.first_name.strip())


@dataclass(frozen=True)
class ProfileCompletion:
    """
    Outcome of persisting a profile: the account email and roles created.

    notified is set by the domain once the welcome email went out.
    """

    email: str
    roles_seeded: int
    notified: bool = False


@dataclass(frozen=True)
class MasterContext:
    """Company a user resolves to, and the master user owning it."""

    company_id: int
    master_id: int


@dataclass(frozen=True)
class Confirmation:
    """
    A consumed registration code.

    setup_code is the one-time proof the owner presents when setting the
    first password.
    """

    user_id: int
    setup_code: str


@dataclass(frozen=True)
class LoginResult:
    """Successful login: the user and, for company users, their tenant context."""

    user_id: int
    context: MasterContext | None = None


@dataclass(frozen=True)
class Receipt:
    """
    Outcome of an operation that ends in a notification.

    The mutation is committed whether or not notified is True.
    """

    email: str
    notified: bool
    user_id: int | None = None


@dataclass(frozen=True)
class Member:
    """A non-deleted member of a company."""

    user_id: int
    company_id: int
    email: str
    first_name: str | None
    last_name: str | None
    access_level: AccessLevel


class AccountRepository(Protocol):
    """Port interface for credential and tenant persistence."""

    def code_exists(self, scope: CodeScope, code: str) -> bool:
        """Return True if the code is currently outstanding in the scope."""
        ...

    def find_account_by_email(self, email: str) -> Account | None:
        """Look up a non-deleted account by normalized email."""
        ...

    def get_account(self, user_id: int) -> Account | None:
        """Look up a non-deleted account by id."""
        ...

    def create_pending_account(self, email: str, code: str) -> int | None:
        """
        Atomically create user, profile and registration code.

        Returns:
            New user id, or None if a non-deleted profile already holds the email

        Raises:
            CodeCollision: If the code is already in use
        """
        ...

    def replace_registration_code(self, user_id: int, code: str) -> None:
        """Overwrite the user's registration code (insert if absent)."""
        ...

    def consume_registration_code(self, code: str, setup_code: str) -> int | None:
        """
        Delete the code, mark the owner verified and store its setup code.

        Returns:
            Owning user id, or None if no such code exists

        Raises:
            CodeCollision: If the setup code is already in use
        """
        ...

    def activate_account(self, user_id: int, setup_code: str, password: PasswordHash) -> bool:
        """
        Consume the user's setup code and store the first password atomically.

        Returns:
            False if the user holds no such setup code
        """
        ...

    def set_password(self, user_id: int, password: PasswordHash) -> None:
        """Store hash and salt and clear outstanding registration and setup codes."""
        ...

    def replace_recovery_code(self, user_id: int, code: str) -> None:
        """Overwrite the user's recovery code (insert if absent)."""
        ...

    def reset_password_with_code(self, code: str, password: PasswordHash) -> int | None:
        """
        Consume a recovery code and store the new password atomically.

        Returns:
            Owning user id, or None if no such code exists
        """
        ...

    def complete_profile(
        self, user_id: int, fields: ProfileFields, roles: list[AccessLevel]
    ) -> ProfileCompletion | None:
        """
        Persist profile attributes and seed roles idempotently.

        Returns:
            ProfileCompletion, or None if the user does not exist
        """
        ...

    def get_profile(self, user_id: int) -> Profile | None:
        """Look up a non-deleted profile by user id."""
        ...

    def find_master_company(self, user_id: int) -> MasterContext | None:
        """Resolve the company context for a user (deterministic order)."""
        ...

    def create_company(self, master_id: int, name: str) -> int | None:
        """Create a company. Returns None if the master does not exist."""
        ...

    def assign_user(
        self, company_id: int, user_id: int, access_level: AccessLevel
    ) -> AssignmentResult:
        """Insert a company assignment unless one exists."""
        ...

    def create_member(
        self,
        company_id: int,
        email: str,
        fields: ProfileFields,
        access_level: AccessLevel,
        password: PasswordHash | None,
        code: str | None,
    ) -> int | None:
        """
        Atomically create an account with profile and company assignment.

        Exactly one of password and code is given: a password creates an
        active account, a code creates a pending one.

        Returns:
            New user id, or None if the email is already taken

        Raises:
            CompanyNotFound: If the company does not exist
            CodeCollision: If the code is already in use
        """
        ...

    def list_members(self, master_id: int, company_id: int | None = None) -> list[Member]:
        """List non-deleted members of companies owned by master_id."""
        ...

    def update_member(
        self, master_id: int, user_id: int, email: str, fields: ProfileFields
    ) -> bool:
        """
        Overwrite a member's email and profile attributes.

        Returns:
            False if the user is not a live member of master's companies

        Raises:
            DuplicateEmail: If another live profile holds the email
        """
        ...

    def soft_delete_member(self, master_id: int, user_id: int) -> bool:
        """Mark a member's profile deleted. False if not a member of master's companies."""
        ...


class Notifier(Protocol):
    """Port interface for email delivery."""

    def send(self, to: str, subject: str, body_html: str) -> None:
        """
        Deliver one HTML message.

        Raises:
            NotificationError: If the message could not be delivered
        """
        ...
