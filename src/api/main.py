"""
Application entry point for the account provisioning service.

Builds the FastAPI app, wires the store backend selected in settings
into ``app.state`` and registers the domain exception handlers.
"""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from psycopg_pool import ConnectionPool

from src.adapters.repository.memory import InMemoryAccountRepository
from src.adapters.repository.postgres import run_migrations
from src.api.errors import setup_exception_handlers
from src.api.v1 import router as v1_router
from src.config.settings import Settings, get_settings

logger = logging.getLogger(__name__)

tags_metadata = [
    {
        "name": "v1",
        "description": "Accounts, recovery and tenancy - register, verify, log in, "
        "recover passwords, manage companies and their members",
    },
]


def configure_logging(settings: Settings) -> None:
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def open_pool(settings: Settings) -> ConnectionPool:
    """Open the PostgreSQL pool and bring the schema up to date."""
    pool = ConnectionPool(
        conninfo=settings.database_url,
        min_size=settings.pool_min_size,
        max_size=settings.pool_max_size,
        timeout=settings.pool_timeout,
    )
    run_migrations(pool)
    logger.info(
        "PostgreSQL pool ready (min=%d, max=%d)", settings.pool_min_size, settings.pool_max_size
    )
    return pool


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    settings = get_settings()
    configure_logging(settings)
    logger.info("Starting with %s store", settings.store_backend)

    if settings.store_backend == "memory":
        logger.warning("In-memory store: accounts do not survive a restart")
        app.state.repository = InMemoryAccountRepository()
        yield
        return

    pool = open_pool(settings)
    app.state.pool = pool
    try:
        yield
    finally:
        pool.close()
        logger.info("PostgreSQL pool closed")


app = FastAPI(
    title="sado-accounts",
    description="Account and access provisioning API - registration, verification, "
    "login, password recovery and per-company role assignment",
    version="0.1.0",
    openapi_tags=tags_metadata,
    lifespan=lifespan,
)

setup_exception_handlers(app)
app.include_router(v1_router, prefix="/v1")


@app.get("/health")
def health_check(request: Request) -> dict[str, str]:
    """
    Liveness check.

    With the PostgreSQL backend the pool is pinged; a failure surfaces
    as an error response.
    """
    pool = getattr(request.app.state, "pool", None)
    if pool is not None:
        with pool.connection() as conn:
            conn.execute("SELECT 1")
    return {"status": "healthy"}
