"""
FastAPI application factory for PM Server.

This module creates the FastAPI app with:
- Store and service lifecycle management
- CORS configuration for the web client
- Error mapping from PmError to HTTP responses
- The /api routes and a root /health endpoint
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .._version import __version__
from ..config import Settings
from ..errors import (
    AuthenticationError,
    ConstraintError,
    NotFoundError,
    PartialCreationError,
    PartialUpdateError,
    PmError,
    StoreError,
    ValidationError,
)
from ..model.payloads import to_validation_error
from ..service import ProjectService
from ..store import ProjectStore
from .routes import router

logger = logging.getLogger(__name__)

_STATUS_BY_CODE = {
    "VALIDATION_ERROR": 400,
    "AUTHENTICATION_FAILED": 401,
    "NOT_FOUND": 404,
    "CONSTRAINT_VIOLATION": 409,
    "STORE_UNAVAILABLE": 503,
}


def status_for(error: PmError) -> int:
    """HTTP status for a service error.

    Step errors take the status of their cause; partial outcomes are 207.
    An unavailable store is 503.
    """
    if isinstance(error, (PartialCreationError, PartialUpdateError)):
        return 207
    if isinstance(error, ValidationError):
        return 400
    if isinstance(error, AuthenticationError):
        return 401
    if isinstance(error, NotFoundError):
        return 404
    if isinstance(error, ConstraintError):
        return 409
    if isinstance(error, StoreError):
        return 503
    return _STATUS_BY_CODE.get(error.details.get("cause_code"), 500)


async def pm_error_handler(request: Request, exc: PmError) -> JSONResponse:
    status_code = status_for(exc)
    if status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    return JSONResponse(status_code=status_code, content=exc.to_dict())


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    error = to_validation_error(exc.errors())
    logger.info(
        f"Rejected {request.method} {request.url.path}",
        extra={"errors": error.errors},
    )
    return JSONResponse(status_code=400, content=error.to_dict())


async def generic_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(f"Unhandled error on {request.method} {request.url.path}: {exc}")
    return JSONResponse(
        status_code=500,
        content={"error": "An unexpected error occurred", "error_code": "INTERNAL"},
    )


def create_app(
    settings: Settings | None = None,
    service: ProjectService | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        settings: Configuration (loaded from env if not provided)
        service: Prebuilt service; when given, the lifespan does not open a store
    """
    settings = settings or Settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        if service is None:
            store = ProjectStore(
                settings.database_path,
                wal_mode=settings.wal_mode,
                busy_timeout_ms=settings.busy_timeout_ms,
            )
            await store.initialize()
            app.state.service = ProjectService(store)
        else:
            app.state.service = service
        app.state.settings = settings
        logger.info("PM Server ready")

        yield

        logger.info("PM Server shutting down")

    app = FastAPI(
        title="PM Server",
        description="Projects, backlogs, work items and their user memberships.",
        version=__version__,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["Origin", "Content-Type", "Authorization"],
    )

    app.add_exception_handler(PmError, pm_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(Exception, generic_error_handler)

    app.include_router(router, prefix="/api")

    @app.get("/health")
    async def health(request: Request):
        status = await request.app.state.service.health()
        return JSONResponse(status_code=200 if status["healthy"] else 503, content=status)

    return app
