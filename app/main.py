"""
AdsOptimizer - FastAPI Application Entry Point

Configures the REST API, the Socket.IO chat server and the health endpoints.
Run with `uvicorn app.main:asgi_app`.
"""

import structlog
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncGenerator

import redis.asyncio as redis
import sentry_sdk
import socketio
from fastapi import FastAPI
from fastapi.responses import ORJSONResponse
from fastapi.staticfiles import StaticFiles
from prometheus_client import make_asgi_app
from sqlalchemy.exc import SQLAlchemyError

from app import realtime
from app.api.v1 import router as api_v1_router
from app.config import settings
from app.core.database import check_db_connection, close_db, init_db
from app.core.exceptions import register_exception_handlers
from app.middleware.security import setup_security_middleware

# Configure structured logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer(),
    ],
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    wrapper_class=structlog.stdlib.BoundLogger,
    cache_logger_on_first_use=True,
)

logger = structlog.get_logger()


# =============================================================================
# Sentry Error Tracking
# =============================================================================

if settings.sentry_dsn:
    sentry_sdk.init(
        dsn=settings.sentry_dsn,
        environment=settings.environment,
        traces_sample_rate=0.1 if settings.is_production else 1.0,
        profiles_sample_rate=0.1 if settings.is_production else 1.0,
    )
    logger.info("sentry_initialized", environment=settings.environment)


# =============================================================================
# Application Lifespan
# =============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator:
    logger.info(
        "application_starting",
        app_name=settings.app_name,
        version=settings.app_version,
        environment=settings.environment,
    )

    # Migrations own the schema outside development
    if settings.environment == "development":
        await init_db()
        logger.info("database_tables_created")

    yield

    logger.info("application_shutting_down")
    await close_db()
    logger.info("database_disconnected")


# =============================================================================
# FastAPI Application
# =============================================================================

app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="Google Ads Performance Max optimization platform for agencies and their clients",
    docs_url="/api/docs" if settings.debug else None,
    redoc_url="/api/redoc" if settings.debug else None,
    openapi_url="/api/openapi.json" if settings.debug else None,
    default_response_class=ORJSONResponse,
    lifespan=lifespan,
)

setup_security_middleware(app)
register_exception_handlers(app)


# =============================================================================
# Prometheus Metrics
# =============================================================================

metrics_app = make_asgi_app()
app.mount("/metrics", metrics_app)


# =============================================================================
# Chat Attachments
# =============================================================================

upload_dir = Path(settings.upload_dir)
upload_dir.mkdir(parents=True, exist_ok=True)
app.mount("/uploads", StaticFiles(directory=upload_dir), name="uploads")


# =============================================================================
# Health Check Endpoints
# =============================================================================

async def _database_ok() -> bool:
    try:
        return await check_db_connection()
    except (SQLAlchemyError, OSError) as e:
        logger.error("database_health_check_failed", error=str(e))
        return False


@app.get("/health", tags=["Health"])
async def health_check():
    """Liveness for load balancers; does not touch the database."""
    return {
        "status": "healthy",
        "version": settings.app_version,
        "environment": settings.environment,
    }


@app.get("/api/health", tags=["Health"])
async def api_health_check():
    """Health including database connectivity."""
    if not await _database_ok():
        return ORJSONResponse(
            status_code=503,
            content={"status": "unhealthy", "database": "disconnected"},
        )
    return {"status": "healthy", "database": "connected", "version": settings.app_version}


@app.get("/health/ready", tags=["Health"])
async def readiness_check():
    """
    Readiness check.

    Checks:
    - Database connectivity
    - Redis connectivity
    """
    checks = {
        "database": await _database_ok(),
        "redis": False,
    }

    try:
        redis_client = redis.from_url(settings.redis_url)
        await redis_client.ping()
        await redis_client.aclose()
        checks["redis"] = True
    except (redis.RedisError, OSError) as e:
        logger.error("redis_health_check_failed", error=str(e))

    return {
        "status": "ready" if all(checks.values()) else "degraded",
        "checks": checks,
    }


@app.get("/health/live", tags=["Health"])
async def liveness_check():
    return {"status": "alive"}


# =============================================================================
# API Routers
# =============================================================================

app.include_router(api_v1_router, prefix="/api/v1")


# =============================================================================
# Socket.IO
# =============================================================================

asgi_app = socketio.ASGIApp(realtime.sio, other_asgi_app=app)


# =============================================================================
# Development Server
# =============================================================================

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "app.main:asgi_app",
        host="0.0.0.0",
        port=8000,
        reload=settings.debug,
        log_level="debug" if settings.debug else "info",
    )
