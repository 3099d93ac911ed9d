"""
REST API Layer for the Confidential Investment Club.

Provides:
- FastAPI application with CORS middleware
- REST API endpoints for records, verification, statistics and status
- Health check at the root and under the /api/v1 prefix
- Club exceptions mapped to HTTP statuses and the response envelope
"""

from __future__ import annotations

import structlog
from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from src.api.dependencies import WALLET_HEADER
from src.api.routes import router
from src.api.schemas import error_response, status_code_for
from src.config.settings import ClubSettings, get_settings
from src.lib import errors
from src.lib.exceptions import ClubException
from src.services.session_registry import SessionRegistry, build_local_registry

logger = structlog.get_logger(__name__)

_ALLOWED_HEADERS: list[str] = [
    "Content-Type",
    "Accept",
    "Accept-Language",
    "X-Request-ID",
    WALLET_HEADER,
]


def create_app(
    settings: ClubSettings | None = None,
    registry: SessionRegistry | None = None,
) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        settings: Runtime settings (read from the environment when omitted)
        registry: Session registry (a local simulation registry when omitted)

    Returns:
        Configured FastAPI application instance.
    """
    if settings is None:
        settings = get_settings()
    if registry is None:
        registry = build_local_registry(settings)

    app = FastAPI(
        title="Confidential Investment Club",
        description="Investment proposals with encrypted amounts and proof-checked reveal",
        version="0.1.0",
        docs_url=None if settings.is_production else "/docs",
        redoc_url=None if settings.is_production else "/redoc",
    )
    app.state.settings = settings
    app.state.registry = registry

    # -------------------------------------------------------------------------
    # Exception handlers
    # -------------------------------------------------------------------------
    @app.exception_handler(ClubException)
    async def club_exception_handler(request: Request, exc: ClubException) -> JSONResponse:
        status_code = status_code_for(exc.code)
        log = logger.error if status_code >= 500 else logger.info
        log(
            "request_failed",
            method=request.method,
            path=request.url.path,
            error_code=exc.code,
            error=str(exc),
        )
        return JSONResponse(
            status_code=status_code,
            content=error_response(exc.code, details={"reason": str(exc), "retryable": exc.retryable}),
        )

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        return JSONResponse(
            status_code=422,
            content=error_response(errors.VALIDATION_ERROR, details={"errors": jsonable_encoder(exc.errors())}),
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("unhandled_exception", method=request.method, path=request.url.path)
        return JSONResponse(
            status_code=500,
            content=error_response(errors.INTERNAL_ERROR, "An unexpected error occurred."),
        )

    # -------------------------------------------------------------------------
    # CORS Middleware
    # -------------------------------------------------------------------------
    cors_origins = list(settings.cors_origins)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=_ALLOWED_HEADERS,
    )
    if cors_origins:
        logger.info("cors_enabled", origins=cors_origins)
    else:
        logger.info("cors_disabled")

    app.include_router(router)

    # Root-level health check for container and load balancer probes
    @app.get("/health")
    async def root_health_check() -> dict[str, str]:
        """Root health check for infrastructure probes."""
        return {"status": "ok"}

    return app


__all__ = ["create_app", "router"]
