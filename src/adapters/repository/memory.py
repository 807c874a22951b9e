"""
In-memory repository adapter - Implements AccountRepository protocol.

Keeps every table in dictionaries guarded by one lock, so each method
is atomic just like a single Postgres transaction. Used by the unit
test suite and for running the API without a database.
"""

import itertools
import threading
from dataclasses import dataclass, field

from src.domain.exceptions import CodeCollision, CompanyNotFound, DuplicateEmail
from src.domain.ports import (
    Account,
    AccessLevel,
    AssignmentResult,
    CodeScope,
    MasterContext,
    Member,
    PasswordHash,
    Profile,
    ProfileCompletion,
    ProfileFields,
)


@dataclass
class _UserRow:
    password: PasswordHash | None = None
    verified: bool = False


@dataclass
class _ProfileRow:
    email: str
    fields: ProfileFields | None = None
    deleted: bool = False


@dataclass
class _CompanyRow:
    name: str
    master_id: int
    created: int


@dataclass
class _AssignmentRow:
    access_level: AccessLevel
    assigned: int


@dataclass
class _Tables:
    users: dict[int, _UserRow] = field(default_factory=dict)
    profiles: dict[int, _ProfileRow] = field(default_factory=dict)
    codes: dict[CodeScope, dict[int, str]] = field(
        default_factory=lambda: {scope: {} for scope in CodeScope}
    )
    companies: dict[int, _CompanyRow] = field(default_factory=dict)
    assignments: dict[tuple[int, int], _AssignmentRow] = field(default_factory=dict)
    roles: dict[tuple[int, AccessLevel], str] = field(default_factory=dict)


class InMemoryAccountRepository:
    """
    Implements AccountRepository protocol with process-local state.

    Uses structural subtyping - no explicit inheritance from Protocol.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._tables = _Tables()
        self._user_ids = itertools.count(1)
        self._company_ids = itertools.count(1)
        self._clock = itertools.count()

    def code_exists(self, scope: CodeScope, code: str) -> bool:
        with self._lock:
            return code in self._tables.codes[scope].values()

    def find_account_by_email(self, email: str) -> Account | None:
        with self._lock:
            user_id = self._live_user_by_email(email)
            return self._account(user_id) if user_id is not None else None

    def get_account(self, user_id: int) -> Account | None:
        with self._lock:
            if not self._is_live(user_id):
                return None
            return self._account(user_id)

    def create_pending_account(self, email: str, code: str) -> int | None:
        with self._lock:
            if self._live_user_by_email(email) is not None:
                return None
            self._check_code_free(CodeScope.REGISTRATION, code)
            user_id = self._insert_user(email, None)
            self._tables.codes[CodeScope.REGISTRATION][user_id] = code
            return user_id

    def replace_registration_code(self, user_id: int, code: str) -> None:
        self._replace_code(CodeScope.REGISTRATION, user_id, code)

    def replace_recovery_code(self, user_id: int, code: str) -> None:
        self._replace_code(CodeScope.RECOVERY, user_id, code)

    def _replace_code(self, scope: CodeScope, user_id: int, code: str) -> None:
        with self._lock:
            codes = self._tables.codes[scope]
            if codes.get(user_id) != code:
                self._check_code_free(scope, code)
            codes[user_id] = code

    def consume_registration_code(self, code: str, setup_code: str) -> int | None:
        with self._lock:
            setup_codes = self._tables.codes[CodeScope.SETUP]
            if setup_code in setup_codes.values():
                raise CodeCollision(CodeScope.SETUP.value)
            user_id = self._pop_code(CodeScope.REGISTRATION, code)
            if user_id is None:
                return None
            self._tables.users[user_id].verified = True
            setup_codes[user_id] = setup_code
            return user_id

    def activate_account(self, user_id: int, setup_code: str, password: PasswordHash) -> bool:
        with self._lock:
            setup_codes = self._tables.codes[CodeScope.SETUP]
            if setup_codes.get(user_id) != setup_code:
                return False
            del setup_codes[user_id]
            self._tables.users[user_id].password = password
            self._tables.codes[CodeScope.REGISTRATION].pop(user_id, None)
            return True

    def set_password(self, user_id: int, password: PasswordHash) -> None:
        with self._lock:
            user = self._tables.users.get(user_id)
            if user is None:
                return
            user.password = password
            self._tables.codes[CodeScope.REGISTRATION].pop(user_id, None)
            self._tables.codes[CodeScope.SETUP].pop(user_id, None)

    def reset_password_with_code(self, code: str, password: PasswordHash) -> int | None:
        with self._lock:
            user_id = self._pop_code(CodeScope.RECOVERY, code)
            if user_id is None:
                return None
            user = self._tables.users[user_id]
            user.password = password
            user.verified = True
            self._tables.codes[CodeScope.REGISTRATION].pop(user_id, None)
            self._tables.codes[CodeScope.SETUP].pop(user_id, None)
            return user_id

    def complete_profile(
        self, user_id: int, fields: ProfileFields, roles: list[AccessLevel]
    ) -> ProfileCompletion | None:
        with self._lock:
            if not self._is_live(user_id):
                return None
            profile = self._tables.profiles[user_id]
            profile.fields = fields

            seeded = 0
            for role in roles:
                if (user_id, role) not in self._tables.roles:
                    self._tables.roles[(user_id, role)] = role.role_name
                    seeded += 1
            return ProfileCompletion(email=profile.email, roles_seeded=seeded)

    def get_profile(self, user_id: int) -> Profile | None:
        with self._lock:
            if not self._is_live(user_id):
                return None
            profile = self._tables.profiles[user_id]
            fields = profile.fields
            return Profile(
                user_id=user_id,
                email=profile.email,
                first_name=fields.first_name if fields else None,
                last_name=fields.last_name if fields else None,
            )

    def find_master_company(self, user_id: int) -> MasterContext | None:
        with self._lock:
            candidates = [
                (0, company.created, company_id, company.master_id)
                for company_id, company in self._tables.companies.items()
                if company.master_id == user_id
            ]
            candidates += [
                (1, row.assigned, company_id, self._tables.companies[company_id].master_id)
                for (company_id, member_id), row in self._tables.assignments.items()
                if member_id == user_id
            ]
            if not candidates:
                return None
            _, _, company_id, master_id = min(candidates)
            return MasterContext(company_id=company_id, master_id=master_id)

    def create_company(self, master_id: int, name: str) -> int | None:
        with self._lock:
            if master_id not in self._tables.users:
                return None
            company_id = next(self._company_ids)
            self._tables.companies[company_id] = _CompanyRow(
                name=name, master_id=master_id, created=next(self._clock)
            )
            return company_id

    def assign_user(
        self, company_id: int, user_id: int, access_level: AccessLevel
    ) -> AssignmentResult:
        with self._lock:
            if company_id not in self._tables.companies:
                return AssignmentResult.COMPANY_NOT_FOUND
            if user_id not in self._tables.users:
                return AssignmentResult.USER_NOT_FOUND
            if (company_id, user_id) in self._tables.assignments:
                return AssignmentResult.DUPLICATE
            self._tables.assignments[(company_id, user_id)] = _AssignmentRow(
                access_level=access_level, assigned=next(self._clock)
            )
            return AssignmentResult.ASSIGNED

    def create_member(
        self,
        company_id: int,
        email: str,
        fields: ProfileFields,
        access_level: AccessLevel,
        password: PasswordHash | None,
        code: str | None,
    ) -> int | None:
        with self._lock:
            if company_id not in self._tables.companies:
                raise CompanyNotFound(company_id)
            if self._live_user_by_email(email) is not None:
                return None
            if code is not None:
                self._check_code_free(CodeScope.REGISTRATION, code)

            user_id = self._insert_user(email, fields)
            user = self._tables.users[user_id]
            if password is not None:
                user.password = password
                user.verified = True
            if code is not None:
                self._tables.codes[CodeScope.REGISTRATION][user_id] = code
            self._tables.assignments[(company_id, user_id)] = _AssignmentRow(
                access_level=access_level, assigned=next(self._clock)
            )
            return user_id

    def list_members(self, master_id: int, company_id: int | None = None) -> list[Member]:
        with self._lock:
            members = []
            for (member_company, user_id), row in sorted(self._tables.assignments.items()):
                company = self._tables.companies[member_company]
                if company.master_id != master_id:
                    continue
                if company_id is not None and member_company != company_id:
                    continue
                if not self._is_live(user_id):
                    continue
                profile = self._tables.profiles[user_id]
                members.append(
                    Member(
                        user_id=user_id,
                        company_id=member_company,
                        email=profile.email,
                        first_name=profile.fields.first_name if profile.fields else None,
                        last_name=profile.fields.last_name if profile.fields else None,
                        access_level=row.access_level,
                    )
                )
            return members

    def update_member(
        self, master_id: int, user_id: int, email: str, fields: ProfileFields
    ) -> bool:
        with self._lock:
            if not self._is_member_of(master_id, user_id):
                return False
            holder = self._live_user_by_email(email)
            if holder is not None and holder != user_id:
                raise DuplicateEmail(email)
            profile = self._tables.profiles[user_id]
            profile.email = email
            profile.fields = fields
            return True

    def soft_delete_member(self, master_id: int, user_id: int) -> bool:
        with self._lock:
            if not self._is_member_of(master_id, user_id):
                return False
            self._tables.profiles[user_id].deleted = True
            for codes in self._tables.codes.values():
                codes.pop(user_id, None)
            return True

    # Helpers below assume the lock is held

    def _insert_user(self, email: str, fields: ProfileFields | None) -> int:
        user_id = next(self._user_ids)
        self._tables.users[user_id] = _UserRow()
        self._tables.profiles[user_id] = _ProfileRow(email=email, fields=fields)
        return user_id

    def _is_member_of(self, master_id: int, user_id: int) -> bool:
        if not self._is_live(user_id):
            return False
        return any(
            member_id == user_id and self._tables.companies[company_id].master_id == master_id
            for company_id, member_id in self._tables.assignments
        )

    def _is_live(self, user_id: int) -> bool:
        profile = self._tables.profiles.get(user_id)
        return profile is not None and not profile.deleted

    def _live_user_by_email(self, email: str) -> int | None:
        for user_id, profile in self._tables.profiles.items():
            if profile.email == email and not profile.deleted:
                return user_id
        return None

    def _account(self, user_id: int) -> Account:
        user = self._tables.users[user_id]
        return Account(
            user_id=user_id,
            email=self._tables.profiles[user_id].email,
            password_hash=user.password.hash if user.password else None,
            password_salt=user.password.salt if user.password else None,
            verified=user.verified,
        )

    def _check_code_free(self, scope: CodeScope, code: str) -> None:
        if code in self._tables.codes[scope].values():
            raise CodeCollision(scope.value)

    def _pop_code(self, scope: CodeScope, code: str) -> int | None:
        codes = self._tables.codes[scope]
        for user_id, outstanding in codes.items():
            if outstanding == code:
                del codes[user_id]
                return user_id
        return None
