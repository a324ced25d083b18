"""Application factory for the FastAPI backend."""

from __future__ import annotations

import os
import re
import uuid
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .. import config_manager as cfg
from .. import load_environment
from .. import logging_manager as log_mgr
from ..errors import DiscoveryError, RateLimitDenied, ValidationError
from .dependencies import ServiceContainer, get_services
from .metrics import setup_metrics
from .routes import book_router, daily_pick_router, recommendation_router, search_router
from .routes.common import rate_limit_headers
from .schemas.common import ErrorResponse

load_environment()

logger = log_mgr.get_logger().getChild("webapi.application")

CORS_ORIGINS_ENV = "DISCOVERY_API_CORS_ORIGINS"
REQUEST_ID_HEADER = "X-Request-Id"
RATE_LIMIT_HEADERS = (
    "X-RateLimit-Limit",
    "X-RateLimit-Remaining",
    "X-RateLimit-Reset",
    "Retry-After",
    REQUEST_ID_HEADER,
)

_ERROR_LABELS = {
    400: "Validation failed",
    401: "Unauthorized",
    404: "Not found",
    429: "Rate limit exceeded",
    503: "Service unavailable",
}


def _parse_cors_origins(raw_value: str | None) -> tuple[list[str], bool]:
    """Return the allowed origins and whether credentials are supported."""

    if raw_value is None:
        return [], False
    tokens = [token.strip() for token in re.split(r"[\s,]+", raw_value) if token.strip()]
    if not tokens:
        return [], False
    if "*" in tokens:
        return ["*"], False
    return tokens, True


def _configure_cors(app: FastAPI) -> None:
    allowed_origins, allow_credentials = _parse_cors_origins(os.environ.get(CORS_ORIGINS_ENV))
    if not allowed_origins:
        logger.info("CORS middleware disabled; no allowed origins configured.")
        return

    app.add_middleware(
        CORSMiddleware,
        allow_origins=allowed_origins,
        allow_credentials=allow_credentials,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=list(RATE_LIMIT_HEADERS),
    )


def _error_response(
    request: Request,
    status_code: int,
    message: str,
    *,
    details: Optional[list[str]] = None,
    headers: Optional[dict[str, str]] = None,
) -> JSONResponse:
    body = ErrorResponse(
        error=_ERROR_LABELS.get(status_code, "Internal server error"),
        message=message,
        details=details,
    )
    merged = rate_limit_headers(request)
    merged.update(headers or {})
    return JSONResponse(
        status_code=status_code,
        content=body.model_dump(exclude_none=True),
        headers=merged,
    )


def register_exception_handlers(app: FastAPI) -> None:
    """Translate the error taxonomy into ``{success, error, message}`` bodies."""

    @app.exception_handler(RateLimitDenied)
    async def _rate_limited(request: Request, exc: RateLimitDenied) -> JSONResponse:
        return _error_response(request, exc.status_code, exc.message, headers=exc.decision.headers())

    @app.exception_handler(ValidationError)
    async def _invalid(request: Request, exc: ValidationError) -> JSONResponse:
        return _error_response(request, exc.status_code, exc.message, details=exc.errors)

    @app.exception_handler(DiscoveryError)
    async def _discovery_error(request: Request, exc: DiscoveryError) -> JSONResponse:
        if exc.status_code >= 500 and exc.status_code != 503:
            logger.error(
                "Request failed: %s",
                exc.message,
                extra={"event": "http.error", "status": exc.status_code},
            )
            return _error_response(request, 500, "An unexpected error occurred")
        return _error_response(request, exc.status_code, exc.message)

    @app.exception_handler(RequestValidationError)
    async def _request_validation(request: Request, exc: RequestValidationError) -> JSONResponse:
        details = []
        for error in exc.errors():
            location = ".".join(str(part) for part in error.get("loc", ()) if part != "body")
            details.append(f"{location}: {error.get('msg', 'invalid value')}" if location else str(error.get("msg")))
        return _error_response(request, 400, "Invalid request", details=details)

    @app.exception_handler(Exception)
    async def _unexpected(request: Request, exc: Exception) -> JSONResponse:
        logger.exception(
            "Unhandled error on %s %s",
            request.method,
            request.url.path,
            extra={"event": "http.unhandled"},
        )
        return _error_response(request, 500, "An unexpected error occurred")


def create_app(services: Optional[ServiceContainer] = None) -> FastAPI:
    """Instantiate and configure the FastAPI application.

    Args:
        services: Prebuilt services; when omitted they are built lazily from
            the active configuration on first use.
    """

    settings = services.settings if services is not None else cfg.get_settings()
    log_mgr.configure_logging_level(log_level=log_mgr.parse_log_level(settings.log_level))

    app = FastAPI(title="Book discovery API", version="0.1.0")
    if services is not None:
        app.dependency_overrides[get_services] = lambda: services

    register_exception_handlers(app)
    _configure_cors(app)

    @app.middleware("http")
    async def _correlation_id(request: Request, call_next):
        correlation_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex
        with log_mgr.log_context(correlation_id=correlation_id):
            response = await call_next(request)
        response.headers[REQUEST_ID_HEADER] = correlation_id
        return response

    @app.on_event("shutdown")
    async def _close_services() -> None:
        container = services
        if container is None and get_services.cache_info().currsize:
            container = get_services()
        if container is not None:
            await container.aclose()

    setup_metrics(app)

    @app.get("/_health", tags=["health"])
    def healthcheck() -> dict[str, str]:
        """Simple healthcheck endpoint for smoke-testing the server."""

        return {"status": "ok"}

    app.include_router(search_router)
    app.include_router(recommendation_router)
    app.include_router(book_router)
    app.include_router(daily_pick_router)
    return app


__all__ = ["create_app", "register_exception_handlers"]
