"""
FastAPI dependencies - Dependency injection factories.

This module provides Depends() factories for injecting
domain services and infrastructure adapters into routes.
"""

import logging
from functools import lru_cache

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPBasic, HTTPBasicCredentials
from psycopg_pool import ConnectionPool

from src.adapters.repository.postgres import PostgresAccountRepository
from src.adapters.mail.console import ConsoleEmailSender
from src.adapters.mail.resend_sender import ResendEmailSender
from src.config.settings import get_settings
from src.domain.accounts import AccountService
from src.domain.codes import CodeGenerator
from src.domain.exceptions import AuthError, NoSuchUser
from src.domain.ports import AccountRepository, Notifier
from src.domain.tenancy import TenantRegistry

logger = logging.getLogger(__name__)


def get_pool(request: Request) -> ConnectionPool:
    """
    Get connection pool from app state.

    The pool is created during app lifespan startup and stored in app.state.
    """
    return request.app.state.pool


def get_repository(request: Request) -> AccountRepository:
    """
    Create repository for this request.

    An in-memory repository placed on app.state (memory backend, tests)
    takes precedence over the Postgres pool.
    """
    repository = getattr(request.app.state, "repository", None)
    if repository is not None:
        return repository
    return PostgresAccountRepository(get_pool(request))


@lru_cache
def get_notifier() -> Notifier:
    """Build the configured email sender (singleton - senders are stateless)."""
    settings = get_settings()
    if settings.email_backend != "resend":
        return ConsoleEmailSender()
    if settings.resend_api_key is None:
        logger.warning("RESEND_API_KEY not set - emails are logged, not sent")
        return ConsoleEmailSender()
    return ResendEmailSender(
        api_key=settings.resend_api_key,
        sender=settings.mail_from,
        sender_name=settings.mail_from_name,
        timeout=settings.email_send_timeout_seconds,
    )


def get_tenant_registry(
    repository: AccountRepository = Depends(get_repository),
    notifier: Notifier = Depends(get_notifier),
) -> TenantRegistry:
    """Create tenant registry with injected dependencies."""
    settings = get_settings()
    return TenantRegistry(
        repository=repository,
        notifier=notifier,
        codes=CodeGenerator(
            repository, length=settings.code_length, max_attempts=settings.code_max_attempts
        ),
    )


def get_account_service(tenants: TenantRegistry = Depends(get_tenant_registry)) -> AccountService:
    """
    Create account service with injected dependencies.

    Wires together the repository, code generator, email sender and
    tenant registry for the domain service.
    """
    return AccountService(
        repository=tenants.repository,
        notifier=tenants.notifier,
        codes=tenants.codes,
        tenants=tenants,
    )


# HTTP BASIC AUTH security schemes for OpenAPI documentation
http_basic = HTTPBasic()
optional_http_basic = HTTPBasic(auto_error=False)


def _normalize(credentials: HTTPBasicCredentials) -> tuple[str, str]:
    return credentials.username.strip().lower(), credentials.password


def get_basic_auth_credentials(
    credentials: HTTPBasicCredentials = Depends(http_basic),
) -> tuple[str, str]:
    """
    Extract and normalize credentials from HTTP BASIC AUTH header.

    FastAPI's HTTPBasic automatically:
    - Returns 401 for missing Authorization header
    - Returns 401 for malformed base64 encoding
    - Parses base64(email:password) format

    Returns:
        Tuple of (normalized_email, password)
    """
    return _normalize(credentials)


def get_optional_basic_auth_credentials(
    credentials: HTTPBasicCredentials | None = Depends(optional_http_basic),
) -> tuple[str, str] | None:
    """Same as get_basic_auth_credentials, but None when no header is sent."""
    if credentials is None:
        return None
    return _normalize(credentials)


def get_authenticated_user_id(
    credentials: tuple[str, str] = Depends(get_basic_auth_credentials),
    service: AccountService = Depends(get_account_service),
) -> int:
    """
    Authenticate the caller from HTTP BASIC AUTH credentials.

    Unknown email and wrong password both produce the same 401.
    """
    email, password = credentials
    try:
        account = service.authenticate(email, password)
    except (NoSuchUser, AuthError):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid credentials",
            headers={"WWW-Authenticate": "Basic"},
        ) from None
    return account.user_id
