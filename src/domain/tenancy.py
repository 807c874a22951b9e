"""
Tenant/Role registry - company membership and access levels.

A company is owned by a master user. Other users belong to it through
assignments carrying an AccessLevel. This module resolves which company
a user acts for and manages the master's team.
"""

import logging
from dataclasses import dataclass, field

from . import messages
from .codes import CodeGenerator
from .exceptions import (
    CompanyNotFound,
    DuplicateAssignment,
    DuplicateEmail,
    NoSuchUser,
)
from .passwords import PasswordHasher
from .ports import (
    AccountRepository,
    AssignmentResult,
    CodeScope,
    MasterContext,
    Member,
    Notifier,
    ProfileFields,
    Receipt,
)
from .validation import access_level as parse_access_level
from .validation import clean_profile, normalize_email, require_text

logger = logging.getLogger(__name__)


@dataclass
class TenantRegistry:
    """
    Domain service for tenants and assignments.

    Master company resolution is deterministic: companies the user owns
    come first, then memberships by earliest assignment, ties broken by
    lowest company id. The ordering itself lives in the repository.
    """

    repository: AccountRepository
    notifier: Notifier
    codes: CodeGenerator
    hasher: PasswordHasher = field(default_factory=PasswordHasher)

    def resolve_master_company(self, user_id: int) -> MasterContext | None:
        return self.repository.find_master_company(user_id)

    def create_company(self, master_id: int, name: str) -> int:
        """
        Create a company owned by master_id.

        Raises:
            ValidationError: If the name is blank
            NoSuchUser: If the master does not exist
        """
        name = require_text(name, "name")
        company_id = self.repository.create_company(master_id, name)
        if company_id is None:
            raise NoSuchUser(master_id)
        logger.info("Company %s created for master %s", company_id, master_id)
        return company_id

    def assign_user_to_company(self, company_id: int, user_id: int, access_level: int) -> None:
        """
        Grant user_id an access level in company_id.

        Raises:
            ValidationError: If access_level is not a known tier
            DuplicateAssignment: If the user is already assigned to the company
            CompanyNotFound: If the company does not exist
            NoSuchUser: If the user does not exist
        """
        level = parse_access_level(access_level)
        result = self.repository.assign_user(company_id, user_id, level)

        if result is AssignmentResult.DUPLICATE:
            raise DuplicateAssignment(company_id, user_id)
        if result is AssignmentResult.COMPANY_NOT_FOUND:
            raise CompanyNotFound(company_id)
        if result is AssignmentResult.USER_NOT_FOUND:
            raise NoSuchUser(user_id)

        logger.info(
            "User %s assigned to company %s as %s", user_id, company_id, level.role_name
        )

    def list_members(self, master_id: int, company_id: int | None = None) -> list[Member]:
        return self.repository.list_members(master_id, company_id)

    def add_member(
        self,
        company_id: int,
        email: str,
        fields: ProfileFields,
        access_level: int,
        password: str | None = None,
    ) -> Receipt:
        """
        Create an account directly inside a company.

        With a password the account is active immediately. Without one it
        is pending and the member is emailed an invitation code to confirm
        through the normal registration flow.

        Raises:
            ValidationError: On malformed email, names, level or password
            DuplicateEmail: If the email already belongs to an account
            CompanyNotFound: If the company does not exist
        """
        normalized_email = normalize_email(email)
        fields = clean_profile(fields)
        level = parse_access_level(access_level)

        if password is not None:
            password_hash = self.hasher.hash_password(password)
            user_id = self.repository.create_member(
                company_id, normalized_email, fields, level, password_hash, None
            )
            if user_id is None:
                raise DuplicateEmail(normalized_email)
            logger.info("Active member %s added to company %s", user_id, company_id)
            return Receipt(email=normalized_email, notified=False, user_id=user_id)

        created: list[int] = []

        def persist(code: str) -> None:
            user_id = self.repository.create_member(
                company_id, normalized_email, fields, level, None, code
            )
            if user_id is None:
                raise DuplicateEmail(normalized_email)
            created.append(user_id)

        code = self.codes.issue(CodeScope.REGISTRATION, persist)
        logger.info("Pending member %s invited to company %s", created[0], company_id)

        notified = messages.deliver(self.notifier, normalized_email, messages.invitation(code))
        return Receipt(email=normalized_email, notified=notified, user_id=created[0])

    def remove_member(self, master_id: int, user_id: int) -> None:
        """
        Soft-delete a member of one of master_id's companies.

        Raises:
            NoSuchUser: If user_id is not a member of any company master_id owns
        """
        if not self.repository.soft_delete_member(master_id, user_id):
            raise NoSuchUser(user_id)
        logger.info("Member %s removed by master %s", user_id, master_id)

    def update_member(
        self, master_id: int, user_id: int, email: str, fields: ProfileFields
    ) -> None:
        """
        Edit the email and profile of a member of one of master_id's companies.

        Raises:
            ValidationError: On malformed email or names
            NoSuchUser: If user_id is not a member of any company master_id owns
            DuplicateEmail: If another account holds the new email
        """
        normalized_email = normalize_email(email)
        fields = clean_profile(fields)
        if not self.repository.update_member(master_id, user_id, normalized_email, fields):
            raise NoSuchUser(user_id)
        logger.info("Member %s updated by master %s", user_id, master_id)
