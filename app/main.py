# app/main.py - Application assembly: tracing, middleware, handlers and routes
from fastapi import FastAPI, Depends, HTTPException, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession
from contextlib import asynccontextmanager
from prometheus_fastapi_instrumentator import Instrumentator
from slowapi.errors import RateLimitExceeded
import time

from app.core.config import settings
from app.db.database import get_db, init_db, engine
from app.core import tracing
from app.core.rate_limit import rate_limiter
from app.api.v1 import api_router
from app.exceptions.handlers import (
    http_exception_handler,
    validation_exception_handler,
    rate_limit_exceeded_handler,
    global_exception_handler,
    starlette_http_exception_handler
)
from app.services.registry import build_services

API_VERSION = "1.0.0"
tracing_enabled = False


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Create tables, build the service registry and run the job workers for
    the lifetime of the process.
    """
    tracing.info(f"{settings.SERVICE_NAME} startup initiated")

    try:
        await init_db()
        tracing.info("Database initialized successfully")
    except Exception as e:
        tracing.error(f"Database initialization failed: {e}")
        raise

    # Tests install their own registry before startup
    if getattr(app.state, "services", None) is None:
        app.state.services = build_services()
    services = app.state.services
    await services.job_queue.start(num_workers=settings.JOB_WORKERS)

    tracing.info(f"Environment: {settings.ENVIRONMENT}")
    tracing.info(f"Log Level: {settings.LOG_LEVEL}")
    tracing.info(f"Tracing: {'Enabled' if tracing_enabled else 'Disabled'}")
    tracing.info(f"Rate Limiting: {'Enabled' if settings.RATE_LIMIT_ENABLED else 'Disabled'}")
    tracing.info(f"Notifications: {type(services.notifier).__name__}")
    tracing.info(f"{settings.SERVICE_NAME} v{API_VERSION} startup complete")

    yield

    tracing.info(f"{settings.SERVICE_NAME} shutdown initiated")
    await services.job_queue.stop()
    await engine.dispose()
    tracing.info(f"{settings.SERVICE_NAME} shutdown complete")


app = FastAPI(
    title="TenantDesk API",
    description="Multi-tenant organizations, invitations and support tickets",
    version=API_VERSION,
    lifespan=lifespan,
    docs_url="/docs" if settings.ENVIRONMENT == "development" else None,
    redoc_url="/redoc" if settings.ENVIRONMENT == "development" else None,
    openapi_url="/openapi.json" if settings.ENVIRONMENT == "development" else None
)

# =============================================================================
# TRACING, MIDDLEWARE AND RATE LIMITING
# =============================================================================

try:
    tracing_enabled = tracing.setup_tracing(app, engine)
except Exception as e:
    tracing.error(f"Failed to initialize tracing: {e}")
    tracing_enabled = False

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["Authorization", "Content-Type", "X-Organization-Id", "X-Workflow-Secret"],
    expose_headers=["X-Trace-ID", "Retry-After"]
)

# Limits are applied per route by the rate_limit decorator
app.state.limiter = rate_limiter

# =============================================================================
# EXCEPTION HANDLERS
# =============================================================================

app.add_exception_handler(RequestValidationError, validation_exception_handler)
app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)
app.add_exception_handler(HTTPException, http_exception_handler)
app.add_exception_handler(StarletteHTTPException, starlette_http_exception_handler)
app.add_exception_handler(Exception, global_exception_handler)

# =============================================================================
# PROMETHEUS METRICS
# =============================================================================

instrumentator = Instrumentator(
    should_group_status_codes=True,
    should_ignore_untemplated=True,
    should_group_untemplated=False,
    should_instrument_requests_inprogress=True,
    inprogress_labels=True
)
instrumentator.instrument(app).expose(app, endpoint="/metrics", include_in_schema=False)

# =============================================================================
# API ROUTES
# =============================================================================

app.include_router(api_router, prefix="/api/v1")

tracing.info("API routes configured")


# =============================================================================
# SYSTEM ENDPOINTS
# =============================================================================

@app.get("/health", tags=["System"])
async def health_check(db: AsyncSession = Depends(get_db)):
    """
    Health check with database connectivity test
    """
    try:
        await db.execute(text("SELECT 1"))
    except Exception as e:
        tracing.error(f"Health check failed: {e}",
                      endpoint="/health",
                      error_type=type(e).__name__)
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Service unhealthy - database connection failed"
        )

    return {
        "status": "healthy",
        "service": settings.SERVICE_NAME,
        "version": API_VERSION,
        "environment": settings.ENVIRONMENT,
        "timestamp": time.time(),
        "trace_id": tracing.get_current_trace_id(),
        "checks": {
            "database": "connected",
            "tracing": "enabled" if tracing_enabled else "disabled",
            "rate_limiting": "enabled" if settings.RATE_LIMIT_ENABLED else "disabled"
        }
    }


@app.get("/", tags=["System"])
async def api_information():
    """API information endpoint"""
    return {
        "message": "TenantDesk API",
        "version": API_VERSION,
        "environment": settings.ENVIRONMENT,
        "status": "operational",
        "trace_id": tracing.get_current_trace_id(),
        "endpoints": {
            "health": "/health",
            "metrics": "/metrics",
            "organizations": "/api/v1/organizations",
            "invitations": "/api/v1/invitations",
            "tickets": "/api/v1/tickets",
            "users": "/api/v1/users",
            "admin": "/api/v1/admin",
            "documentation": "/docs" if settings.ENVIRONMENT == "development" else "Contact administrator"
        },
        "timestamp": time.time()
    }
