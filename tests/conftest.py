"""
Shared test fixtures and configuration.

This module provides pytest fixtures for:
- An in-memory repository (no database needed)
- A recording notifier that captures sent emails and their codes
- Wired AccountService / TenantRegistry instances
- A PostgreSQL pool and repository (skipped when no database is reachable)
"""

import re
from collections.abc import Generator
from dataclasses import dataclass

import pytest
from psycopg_pool import ConnectionPool, PoolTimeout

from src.adapters.repository.memory import InMemoryAccountRepository
from src.adapters.repository.postgres import PostgresAccountRepository, run_migrations
from src.config.settings import get_settings
from src.domain.accounts import AccountService
from src.domain.codes import CodeGenerator
from src.domain.exceptions import NotificationError
from src.domain.ports import AccountRepository
from src.domain.tenancy import TenantRegistry

_CODE_PATTERN = re.compile(r"<b>([A-Z0-9]+)</b>")


@dataclass
class SentEmail:
    to: str
    subject: str
    body: str

    @property
    def code(self) -> str | None:
        match = _CODE_PATTERN.search(self.body)
        return match.group(1) if match else None


class RecordingNotifier:
    """Notifier double that keeps every message; set fail=True to simulate an outage."""

    def __init__(self) -> None:
        self.sent: list[SentEmail] = []
        self.fail = False

    def send(self, to: str, subject: str, body_html: str) -> None:
        if self.fail:
            raise NotificationError("relay unavailable")
        self.sent.append(SentEmail(to, subject, body_html))

    def last_code(self, to: str) -> str:
        for email in reversed(self.sent):
            if email.to == to and email.code is not None:
                return email.code
        raise AssertionError(f"no code was sent to {to}")

    def subjects(self, to: str) -> list[str]:
        return [email.subject for email in self.sent if email.to == to]


def build_services(
    repository: AccountRepository, notifier: RecordingNotifier
) -> tuple[AccountService, TenantRegistry]:
    codes = CodeGenerator(repository)
    tenants = TenantRegistry(repository=repository, notifier=notifier, codes=codes)
    service = AccountService(
        repository=repository, notifier=notifier, codes=codes, tenants=tenants
    )
    return service, tenants


@pytest.fixture
def repository() -> InMemoryAccountRepository:
    return InMemoryAccountRepository()


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def service(repository: InMemoryAccountRepository, notifier: RecordingNotifier) -> AccountService:
    return build_services(repository, notifier)[0]


@pytest.fixture
def tenants(service: AccountService) -> TenantRegistry:
    return service.tenants


@pytest.fixture
def active_user(service: AccountService, notifier: RecordingNotifier):
    """Factory: register, confirm and set a password. Returns the user id."""

    def create(email: str = "a@x.com", password: str = "secret-pass") -> int:
        service.start_registration(email)
        confirmation = service.confirm_registration(notifier.last_code(email))
        service.set_password(confirmation.user_id, password, confirmation.setup_code)
        return confirmation.user_id

    return create


@pytest.fixture
def make_services():
    """Factory wiring services around any repository (e.g. Postgres in integration tests)."""
    return build_services


_TABLES = (
    "roles, company_users, companies, setup_codes, recovery_codes, registration_codes, "
    "user_profiles, users"
)


@pytest.fixture(scope="session")
def pg_pool() -> Generator[ConnectionPool, None, None]:
    """
    Session-wide PostgreSQL pool with migrations applied.

    Tests using it are skipped when the database is unreachable.
    """
    settings = get_settings()
    pool = ConnectionPool(conninfo=settings.database_url, min_size=1, max_size=10, open=False)
    try:
        pool.open(wait=True, timeout=3)
    except PoolTimeout:
        pool.close()
        pytest.skip(f"PostgreSQL not reachable at {settings.database_url}")
    run_migrations(pool)
    yield pool
    pool.close()


@pytest.fixture
def pg_repository(pg_pool: ConnectionPool) -> PostgresAccountRepository:
    """Postgres repository over freshly truncated tables."""
    with pg_pool.connection() as conn:
        conn.execute(f"TRUNCATE {_TABLES} RESTART IDENTITY CASCADE")
    return PostgresAccountRepository(pg_pool)
