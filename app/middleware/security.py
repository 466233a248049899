"""
Security middleware for AdsOptimizer.

Implements:
- Secure HTTP headers
- Rate limiting
- Request logging
- CORS configuration
- Trusted hosts in production
"""

import time
from typing import Callable

import secure
import structlog
from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address
from starlette.middleware.base import BaseHTTPMiddleware

from app.config import settings

logger = structlog.get_logger()

# Paths not worth a log line per request
QUIET_PATHS = ("/health", "/api/health", "/metrics")


# =============================================================================
# Rate Limiting Setup
# =============================================================================

def get_client_ip(request: Request) -> str:
    """
    Get the real client IP, considering reverse proxy headers.

    Args:
        request: FastAPI request

    Returns:
        Client IP address
    """
    forwarded_for = request.headers.get("X-Forwarded-For")
    if forwarded_for:
        # Take the first IP (original client)
        return forwarded_for.split(",")[0].strip()

    real_ip = request.headers.get("X-Real-IP")
    if real_ip:
        return real_ip

    return get_remote_address(request)


# In-memory by default; point RATE_LIMIT_STORAGE_URI at Redis when running
# more than one API process.
limiter = Limiter(
    key_func=get_client_ip,
    default_limits=[settings.rate_limit_api],
    storage_uri=settings.rate_limit_storage_uri,
    strategy="fixed-window",
    enabled=settings.rate_limit_enabled,
)


# =============================================================================
# Secure Headers Setup
# =============================================================================

secure_headers = secure.Secure(
    hsts=secure.StrictTransportSecurity()
    .max_age(31536000)  # 1 year
    .include_subdomains(),

    xfo=secure.XFrameOptions().deny(),

    xxp=secure.XXSSProtection().set("1; mode=block"),

    # JSON API plus the Socket.IO channel
    csp=secure.ContentSecurityPolicy()
    .default_src("'none'")
    .connect_src("'self'", "wss:")
    .img_src("'self'", "data:", "https:")
    .frame_ancestors("'none'")
    .base_uri("'self'")
    .form_action("'self'"),

    referrer=secure.ReferrerPolicy().strict_origin_when_cross_origin(),

    permissions=secure.PermissionsPolicy()
    .geolocation("'none'")
    .camera("'none'")
    .microphone("'none'"),

    cache=secure.CacheControl().no_store(),
)


# =============================================================================
# Request Logging Middleware
# =============================================================================

class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """
    Logs method, path, status, duration, client IP and user agent of every
    request except health checks and metrics scrapes.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        start_time = time.time()

        client_ip = get_client_ip(request)
        method = request.method
        path = request.url.path
        user_agent = request.headers.get("User-Agent", "")

        response = await call_next(request)

        duration_ms = round((time.time() - start_time) * 1000, 2)

        if path not in QUIET_PATHS:
            logger.info(
                "request",
                method=method,
                path=path,
                status=response.status_code,
                duration_ms=duration_ms,
                client_ip=client_ip,
                user_agent=user_agent[:100],
            )

        return response


# =============================================================================
# Security Headers Middleware
# =============================================================================

class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Adds security headers to all responses."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        response = await call_next(request)

        secure_headers.framework.fastapi(response)

        # Not covered by the secure library
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Permitted-Cross-Domain-Policies"] = "none"

        return response


# =============================================================================
# Setup Function
# =============================================================================

def setup_security_middleware(app: FastAPI) -> None:
    """
    Configure all security middleware for the FastAPI application.

    Args:
        app: FastAPI application instance
    """
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "PATCH", "OPTIONS"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID"],
    )

    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(RequestLoggingMiddleware)

    if settings.is_production:
        app.add_middleware(TrustedHostMiddleware, allowed_hosts=settings.allowed_hosts)

    logger.info(
        "security_middleware_configured",
        cors_origins=settings.cors_origins,
        rate_limit_enabled=settings.rate_limit_enabled,
        rate_limit_api=settings.rate_limit_api,
        rate_limit_auth=settings.rate_limit_auth,
    )
