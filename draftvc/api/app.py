"""
FastAPI application factory for the draft versioning service.

This module creates the FastAPI app with:
- CORS configuration for the frontend
- Versioning service lifecycle management
- Draft version API routes
- JSON error responses for domain errors
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from ..config import ServiceConfig
from ..errors import (
    ComparisonInputError,
    DraftVcError,
    ForbiddenError,
    InvariantViolation,
    NotFoundError,
    StorageFailure,
    ValidationError,
    VersionConflictError,
)
from ..service import DraftVersioningService
from .config import Settings
from .routes import router

logger = logging.getLogger(__name__)

# Most specific first; VersionConflictError is a StorageFailure
ERROR_STATUS: list[tuple[type[DraftVcError], int]] = [
    (NotFoundError, 404),
    (ForbiddenError, 403),
    (ValidationError, 422),
    (ComparisonInputError, 400),
    (InvariantViolation, 409),
    (VersionConflictError, 409),
    (StorageFailure, 503),
]


def status_for(error: DraftVcError) -> int:
    """HTTP status code for a domain error."""
    for error_type, status in ERROR_STATUS:
        if isinstance(error, error_type):
            return status
    return 500


async def draftvc_error_handler(request: Request, exc: DraftVcError) -> JSONResponse:
    status = status_for(exc)
    if status >= 500:
        logger.error(
            f"Request failed: {exc.message}",
            extra={"path": request.url.path, "error_code": exc.code},
        )
    else:
        logger.info(
            "Request rejected",
            extra={"path": request.url.path, "error_code": exc.code, "status": status},
        )
    return JSONResponse(
        status_code=status,
        content={"error": exc.message, "error_code": exc.code, "details": exc.details},
    )


def create_app(service: DraftVersioningService | None = None) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        service: Service to serve; built from environment configuration
            when omitted
    """
    settings = Settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """Manage the versioning service lifecycle."""
        active = service
        if active is None:
            config = ServiceConfig.from_env()
            config.log_config()
            active = DraftVersioningService.from_config(config)

        await active.start()
        app.state.service = active
        app.state.settings = settings

        yield

        await active.stop()

    app = FastAPI(
        title="Draft Versioning",
        description=(
            "Content-addressed version history for structured drafts. "
            "Saves only create versions when content changes."
        ),
        version="1.0.0",
        lifespan=lifespan,
    )

    # CORS for frontend
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PATCH", "DELETE", "OPTIONS"],
        allow_headers=["*"],
    )

    app.add_exception_handler(DraftVcError, draftvc_error_handler)

    # API routes
    app.include_router(router, prefix="/api/v1")

    # Health endpoint at root
    @app.get("/health")
    async def health():
        return {"status": "healthy", "service": "draftvc"}

    return app
