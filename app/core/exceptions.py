"""
Application error types and their HTTP mapping.

Services raise AppError subclasses for expected failures (validation,
ownership, missing rows). Anything else reaching the handlers is treated as an
unexpected server error.
"""

from typing import Any, Optional

import structlog
from fastapi import FastAPI, Request, status
from fastapi.responses import ORJSONResponse
from sqlalchemy.exc import IntegrityError, OperationalError

from app.adapters.base import (
    AdapterError,
    AuthenticationError,
    NotConfiguredError,
    RateLimitError,
)
from app.services.ai_service import AIRateLimitError, AIServiceError

logger = structlog.get_logger()


class AppError(Exception):
    """Base exception for expected, user-facing errors."""

    status_code: int = status.HTTP_400_BAD_REQUEST
    error: str = "bad_request"

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        error: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ):
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        if error is not None:
            self.error = error
        self.details = details or {}
        super().__init__(message)


class NotFoundError(AppError):
    status_code = status.HTTP_404_NOT_FOUND
    error = "not_found"


class PermissionDeniedError(AppError):
    status_code = status.HTTP_403_FORBIDDEN
    error = "forbidden"


class AuthenticationFailedError(AppError):
    status_code = status.HTTP_401_UNAUTHORIZED
    error = "unauthorized"


class ConflictError(AppError):
    status_code = status.HTTP_409_CONFLICT
    error = "conflict"


class ServiceUnavailableError(AppError):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    error = "service_unavailable"


def error_response(
    status_code: int,
    error: str,
    message: str,
    details: Optional[dict[str, Any]] = None,
    headers: Optional[dict[str, str]] = None,
) -> ORJSONResponse:
    content: dict[str, Any] = {"error": error, "message": message}
    if details:
        content["details"] = details
    return ORJSONResponse(status_code=status_code, content=content, headers=headers)


async def app_error_handler(request: Request, exc: AppError) -> ORJSONResponse:
    headers = None
    if exc.status_code == status.HTTP_401_UNAUTHORIZED:
        headers = {"WWW-Authenticate": "Bearer"}
    return error_response(exc.status_code, exc.error, exc.message, exc.details, headers)


async def integrity_error_handler(request: Request, exc: IntegrityError) -> ORJSONResponse:
    detail = str(exc.orig).lower()
    logger.warning("integrity_error", path=request.url.path, error=str(exc.orig))
    if "unique" in detail or "duplicate" in detail:
        return error_response(
            status.HTTP_409_CONFLICT, "conflict", "Resource already exists"
        )
    return error_response(
        status.HTTP_400_BAD_REQUEST, "bad_request", "Referenced resource does not exist"
    )


async def operational_error_handler(
    request: Request, exc: OperationalError
) -> ORJSONResponse:
    logger.error("database_unavailable", path=request.url.path, error=str(exc))
    return error_response(
        status.HTTP_503_SERVICE_UNAVAILABLE,
        "service_unavailable",
        "Database unavailable",
    )


async def ai_error_handler(request: Request, exc: AIServiceError) -> ORJSONResponse:
    logger.error(
        "ai_request_failed",
        path=request.url.path,
        provider=exc.provider,
        error=exc.message,
    )
    if isinstance(exc, AIRateLimitError):
        return error_response(
            status.HTTP_429_TOO_MANY_REQUESTS,
            "ai_rate_limited",
            exc.message,
            headers={"Retry-After": str(exc.retry_after or 60)},
        )
    return error_response(status.HTTP_502_BAD_GATEWAY, "ai_error", exc.message)


async def adapter_error_handler(request: Request, exc: AdapterError) -> ORJSONResponse:
    logger.error(
        "google_ads_request_failed",
        path=request.url.path,
        error=exc.message,
        details=exc.details,
    )
    if isinstance(exc, NotConfiguredError):
        return error_response(
            status.HTTP_503_SERVICE_UNAVAILABLE, "google_ads_not_configured", exc.message
        )
    if isinstance(exc, AuthenticationError):
        return error_response(
            status.HTTP_401_UNAUTHORIZED, "google_ads_unauthorized", exc.message
        )
    if isinstance(exc, RateLimitError):
        return error_response(
            status.HTTP_429_TOO_MANY_REQUESTS,
            "google_ads_rate_limited",
            exc.message,
            headers={"Retry-After": str(exc.retry_after)},
        )
    return error_response(status.HTTP_502_BAD_GATEWAY, "google_ads_error", exc.message)


async def unhandled_exception_handler(request: Request, exc: Exception) -> ORJSONResponse:
    logger.error(
        "unhandled_exception",
        path=request.url.path,
        method=request.method,
        error=str(exc),
        exc_info=True,
    )
    return error_response(
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        "internal_server_error",
        "An unexpected error occurred",
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(AppError, app_error_handler)
    app.add_exception_handler(IntegrityError, integrity_error_handler)
    app.add_exception_handler(OperationalError, operational_error_handler)
    app.add_exception_handler(AIServiceError, ai_error_handler)
    app.add_exception_handler(AdapterError, adapter_error_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)
