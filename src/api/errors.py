"""
Application-level exception handlers.

Routes translate the expected domain failures themselves. These handlers
cover errors any route can hit, so store and generator details never
reach a response body.
"""

import logging

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from src.domain.exceptions import (
    CodeGenerationExhausted,
    TransientStoreError,
    ValidationError,
)

logger = logging.getLogger(__name__)


def setup_exception_handlers(app: FastAPI) -> None:
    """Register domain exception handlers on the application."""

    @app.exception_handler(TransientStoreError)
    async def store_unavailable_handler(request: Request, exc: TransientStoreError) -> JSONResponse:
        logger.error("TransientStoreError on %s %s", request.method, request.url.path)
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"detail": "Service temporarily unavailable"},
        )

    @app.exception_handler(CodeGenerationExhausted)
    async def code_exhausted_handler(
        request: Request, exc: CodeGenerationExhausted
    ) -> JSONResponse:
        logger.error("CodeGenerationExhausted for scope %s", exc)
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"detail": "Service temporarily unavailable"},
        )

    @app.exception_handler(ValidationError)
    async def domain_validation_handler(request: Request, exc: ValidationError) -> JSONResponse:
        return JSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content={"detail": str(exc)},
        )
