"""
Account lifecycle domain service - registration, login and recovery.

Account State Machine
=====================

States:
- Unregistered: no profile holds the email
- PENDING_VERIFICATION: user exists without a password hash
- ACTIVE: password hash and salt are stored; login is possible

Transitions:
    Unregistered         -> PENDING_VERIFICATION  (start_registration)
    PENDING_VERIFICATION -> PENDING_VERIFICATION  (resend / confirm_registration)
    PENDING_VERIFICATION -> ACTIVE                (set_password with the setup code)
    ACTIVE               -> ACTIVE                (change_password with current credentials)
    any                  -> ACTIVE                (complete_recovery)

RecoveryPending is orthogonal: an outstanding recovery code, entered by
start_recovery and left by complete_recovery.

One-time codes are consumed by a single delete-returning statement, so a
code can succeed at most once even under concurrent submission. Emails go
out only after the mutation they announce has committed.
"""

import logging
from dataclasses import dataclass, field, replace

from . import messages
from .codes import CodeGenerator
from .exceptions import (
    AccountAlreadyActive,
    AccountNotVerified,
    DuplicateEmail,
    InvalidOrExpiredCode,
    NoSuchUser,
    ValidationError,
    WrongPassword,
)
from .passwords import PasswordHasher
from .ports import (
    Account,
    AccountRepository,
    AccessLevel,
    AccountState,
    CodeScope,
    Confirmation,
    LoginResult,
    Notifier,
    ProfileCompletion,
    ProfileFields,
    Receipt,
    RecoveryMode,
)
from .tenancy import TenantRegistry
from .validation import clean_profile, normalize_code, normalize_email

logger = logging.getLogger(__name__)

# Seeded once per master user at profile completion
STANDARD_ROLES = [
    AccessLevel.ADMIN,
    AccessLevel.CREATOR,
    AccessLevel.EDITOR,
    AccessLevel.READER,
    AccessLevel.NO_ACCESS,
]


@dataclass
class AccountService:
    """
    Domain service for the user-identity lifecycle.

    Orchestrates validation, code issuing, password hashing, persistence
    and notification. Failures surface as domain exceptions; the API layer
    turns them into generic responses.
    """

    repository: AccountRepository
    notifier: Notifier
    codes: CodeGenerator
    tenants: TenantRegistry
    hasher: PasswordHasher = field(default_factory=PasswordHasher)

    def start_registration(self, email: str) -> Receipt:
        """
        Begin registration for an email address.

        A pending account with the same email is not duplicated: the call
        re-issues its registration code instead.

        Raises:
            ValidationError: If the email is malformed
            DuplicateEmail: If an active account holds the email
            CodeGenerationExhausted: If no unique code could be issued
        """
        normalized_email = normalize_email(email)

        account = self.repository.find_account_by_email(normalized_email)
        if account is not None:
            if account.state is AccountState.ACTIVE:
                raise DuplicateEmail(normalized_email)
            logger.info("Registration repeated for pending user %s, resending", account.user_id)
            return self._resend_registration_code(account)

        created: list[int] = []

        def persist(code: str) -> None:
            user_id = self.repository.create_pending_account(normalized_email, code)
            if user_id is None:
                raise DuplicateEmail(normalized_email)
            created.append(user_id)

        try:
            code = self.codes.issue(CodeScope.REGISTRATION, persist)
        except DuplicateEmail:
            # A concurrent registration claimed the email first
            account = self.repository.find_account_by_email(normalized_email)
            if account is None or account.state is AccountState.ACTIVE:
                raise
            return self._resend_registration_code(account)

        logger.info("Registration started for user %s", created[0])
        notified = messages.deliver(
            self.notifier, normalized_email, messages.registration_code(code)
        )
        return Receipt(email=normalized_email, notified=notified)

    def resend_registration_code(self, email: str) -> Receipt:
        """
        Overwrite and resend the registration code of a pending account.

        Raises:
            NoSuchUser: If no account holds the email
            AccountAlreadyActive: If the account already has a password
        """
        normalized_email = normalize_email(email)
        account = self.repository.find_account_by_email(normalized_email)
        if account is None:
            raise NoSuchUser(normalized_email)
        if account.state is AccountState.ACTIVE:
            raise AccountAlreadyActive(normalized_email)
        return self._resend_registration_code(account)

    def confirm_registration(self, code: str) -> Confirmation:
        """
        Consume a registration code, proving control of the email.

        The account stays pending until set_password is called with the
        setup code handed out here.

        Returns:
            Confirmation with the owning user id and a fresh setup code

        Raises:
            InvalidOrExpiredCode: If the code does not exist or was already used
            CodeGenerationExhausted: If no unique setup code could be issued
        """
        normalized_code = normalize_code(code)
        confirmed: list[int] = []

        def persist(setup_code: str) -> None:
            user_id = self.repository.consume_registration_code(normalized_code, setup_code)
            if user_id is None:
                raise InvalidOrExpiredCode()
            confirmed.append(user_id)

        setup_code = self.codes.issue(CodeScope.SETUP, persist)
        logger.info("Registration confirmed for user %s", confirmed[0])
        return Confirmation(user_id=confirmed[0], setup_code=setup_code)

    def set_password(self, user_id: int, password: str, setup_code: str) -> None:
        """
        Set the first password of a confirmed account, making it active.

        The setup code from confirm_registration is consumed together with
        the write; later changes go through change_password.

        Raises:
            ValidationError: If the password or setup code is malformed
            NoSuchUser: If the user does not exist
            AccountAlreadyActive: If the account already has a password
            AccountNotVerified: If the email was never confirmed
            InvalidOrExpiredCode: If the setup code does not belong to the user
        """
        self.hasher.validate(password)
        normalized_code = normalize_code(setup_code)

        account = self.repository.get_account(user_id)
        if account is None:
            raise NoSuchUser(user_id)
        if account.state is AccountState.ACTIVE:
            raise AccountAlreadyActive(user_id)
        if not account.verified:
            raise AccountNotVerified(user_id)

        password_hash = self.hasher.hash_password(password)
        if not self.repository.activate_account(user_id, normalized_code, password_hash):
            raise InvalidOrExpiredCode()
        logger.info("Password set for user %s", user_id)

    def change_password(
        self, user_id: int, email: str, current_password: str, new_password: str
    ) -> Receipt:
        """
        Replace the password of an active account, given its current credentials.

        Sends the password-changed notice once the new hash is stored.

        Raises:
            ValidationError: If the new password is empty or too long
            NoSuchUser: If no account holds the email
            WrongPassword: If the credentials do not match user_id
        """
        self.hasher.validate(new_password)
        account = self.authenticate(email, current_password)
        if account.user_id != user_id:
            logger.info(
                "Password change refused: credentials of user %s used for %s",
                account.user_id,
                user_id,
            )
            raise WrongPassword(user_id)

        self.repository.set_password(user_id, self.hasher.hash_password(new_password))
        logger.info("Password changed for user %s", user_id)
        notified = messages.deliver(
            self.notifier, account.email, messages.recovery(RecoveryMode.PASSWORD_CHANGED)
        )
        return Receipt(email=account.email, notified=notified, user_id=user_id)

    def authenticate(self, email: str, password: str) -> Account:
        """
        Check an email and password pair.

        Unknown emails and passwordless accounts still pay for one bcrypt
        computation, so timing does not reveal which case occurred.

        Raises:
            NoSuchUser: If no account holds the email
            WrongPassword: If the password does not match
        """
        normalized_email = normalize_email(email)
        account = self.repository.find_account_by_email(normalized_email)

        if account is None:
            self.hasher.burn(password)
            logger.info("Authentication failed: NoSuchUser")
            raise NoSuchUser(normalized_email)

        if not self._password_matches(account, password):
            logger.info("Authentication failed: WrongPassword for user %s", account.user_id)
            raise WrongPassword(account.user_id)
        return account

    def login(self, email: str, password: str) -> LoginResult:
        """
        Authenticate by email and password.

        Returns:
            LoginResult with the user id and resolved company context

        Raises:
            NoSuchUser: If no account holds the email
            WrongPassword: If the password does not match
        """
        account = self.authenticate(email, password)
        context = self.tenants.resolve_master_company(account.user_id)
        logger.info("User %s logged in", account.user_id)
        return LoginResult(user_id=account.user_id, context=context)

    def complete_profile(self, user_id: int, fields: ProfileFields) -> ProfileCompletion:
        """
        Store profile attributes and seed the standard roles.

        Role seeding is an idempotent upsert: a retried call creates no
        extra rows and sends no second welcome email.

        Raises:
            ValidationError: If first or last name is blank
            NoSuchUser: If the user does not exist
        """
        fields = clean_profile(fields)
        completion = self.repository.complete_profile(user_id, fields, STANDARD_ROLES)
        if completion is None:
            raise NoSuchUser(user_id)

        if not completion.roles_seeded:
            logger.info("Profile updated for user %s", user_id)
            return completion

        logger.info("Profile completed for user %s, %d roles seeded", user_id, completion.roles_seeded)
        notified = messages.deliver(
            self.notifier, completion.email, messages.welcome(fields.first_name)
        )
        return replace(completion, notified=notified)

    def check_profile_completed(self, user_id: int) -> bool:
        """
        Raises:
            NoSuchUser: If the user does not exist
        """
        profile = self.repository.get_profile(user_id)
        if profile is None:
            raise NoSuchUser(user_id)
        return profile.completed

    def start_recovery(self, email: str, mode: int) -> Receipt:
        """
        Issue or resend a recovery code, or send a password-changed notice.

        Raises:
            ValidationError: If the email or mode is malformed
            NoSuchUser: If no account holds the email
        """
        normalized_email = normalize_email(email)
        try:
            recovery_mode = RecoveryMode(mode)
        except ValueError:
            raise ValidationError(f"unknown recovery mode {mode!r}") from None

        account = self.repository.find_account_by_email(normalized_email)
        if account is None:
            raise NoSuchUser(normalized_email)

        if recovery_mode is RecoveryMode.PASSWORD_CHANGED:
            message = messages.recovery(recovery_mode)
        else:
            code = self.codes.issue(
                CodeScope.RECOVERY,
                lambda c: self.repository.replace_recovery_code(account.user_id, c),
            )
            logger.info("Recovery code issued for user %s (%s)", account.user_id, recovery_mode.name)
            message = messages.recovery(recovery_mode, code)

        notified = messages.deliver(self.notifier, normalized_email, message)
        return Receipt(email=normalized_email, notified=notified)

    def complete_recovery(self, code: str, new_password: str) -> Receipt:
        """
        Consume a recovery code and replace the password in one write.

        Returns:
            Receipt for the password-changed notice, carrying the user id

        Raises:
            ValidationError: If the code or password is malformed
            InvalidOrExpiredCode: If the code does not exist or was already used
        """
        normalized_code = normalize_code(code)
        password_hash = self.hasher.hash_password(new_password)

        user_id = self.repository.reset_password_with_code(normalized_code, password_hash)
        if user_id is None:
            raise InvalidOrExpiredCode()
        logger.info("Password recovered for user %s", user_id)

        account = self.repository.get_account(user_id)
        if account is None:
            # Deleted between the reset and the lookup
            return Receipt(email="", notified=False, user_id=user_id)
        notified = messages.deliver(
            self.notifier, account.email, messages.recovery(RecoveryMode.PASSWORD_CHANGED)
        )
        return Receipt(email=account.email, notified=notified, user_id=user_id)

    def _resend_registration_code(self, account: Account) -> Receipt:
        code = self.codes.issue(
            CodeScope.REGISTRATION,
            lambda c: self.repository.replace_registration_code(account.user_id, c),
        )
        logger.info("Registration code re-issued for user %s", account.user_id)
        notified = messages.deliver(
            self.notifier, account.email, messages.registration_code(code, resend=True)
        )
        return Receipt(email=account.email, notified=notified)

    def _password_matches(self, account: Account, password: str) -> bool:
        if account.password_hash is None or account.password_salt is None:
            self.hasher.burn(password)
            return False
        return self.hasher.verify_password(password, account.password_hash, account.password_salt)
