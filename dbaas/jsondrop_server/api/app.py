"""
FastAPI application factory for JSONDrop.

This module creates the FastAPI app with:
- CORS configuration from settings
- JsonDropService lifecycle (catalog init, sweeper tasks) in the lifespan
- JsonDropError to HTTP status mapping
- The /api routes and a /health endpoint
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
    AlreadyExistsError,
    AuthenticationError,
    GenerationFailureError,
    JsonDropError,
    NotFoundError,
    PermissionDeniedError,
    QuotaExceededError,
    StorageFailureError,
    ValidationFailedError,
)
from ..service import JsonDropService
from .routes import router

logger = logging.getLogger(__name__)

# Checked in order; subclasses before their bases
_STATUS_CODES: list[tuple[type[JsonDropError], int]] = [
    (ValidationFailedError, 400),
    (AuthenticationError, 401),
    (QuotaExceededError, 402),
    (PermissionDeniedError, 403),
    (NotFoundError, 404),
    (AlreadyExistsError, 409),
    (GenerationFailureError, 503),
    (StorageFailureError, 500),
]


def status_for(error: JsonDropError) -> int:
    """HTTP status code for a JsonDropError."""
    for error_type, status in _STATUS_CODES:
        if isinstance(error, error_type):
            return status
    return 500


async def jsondrop_error_handler(request: Request, exc: JsonDropError) -> JSONResponse:
    status = status_for(exc)
    if status >= 500:
        logger.error(
            f"Request failed: {exc.message}",
            extra={"path": request.url.path, "code": exc.code},
        )
    return JSONResponse(status_code=status, content=exc.to_dict())


async def request_validation_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    errors = exc.errors()
    detail = "Invalid request"
    if errors:
        location = ".".join(str(part) for part in errors[0].get("loc", ()))
        detail = f"{location}: {errors[0].get('msg', 'invalid value')}"
    return JSONResponse(
        status_code=400,
        content={"error": ValidationFailedError.code, "message": detail},
    )


def create_app(settings: Settings | None = None) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        settings: Configuration (loaded from environment if not provided)
    """
    settings = settings or Settings()
    service = JsonDropService(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """Manage service lifecycle."""
        await service.start()
        try:
            yield
        finally:
            await service.stop()

    app = FastAPI(
        title="JSONDrop",
        description="Multi-tenant JSON document store with live change streams.",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.service = service
    app.state.settings = settings

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization"],
        max_age=3600,
    )

    app.add_exception_handler(JsonDropError, jsondrop_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)

    app.include_router(router, prefix="/api")

    @app.get("/health")
    async def health():
        return service.health()

    return app
