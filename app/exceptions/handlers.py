# app/exceptions/handlers.py
from fastapi import Request, HTTPException
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException
from slowapi.errors import RateLimitExceeded
from app.core import tracing
from app.core.rate_limit import client_ip
from app.exceptions.domain import kind_for, RateLimitedError, BadRequestError, InternalError
import time


def get_safe_headers(request: Request) -> dict:
    """Extract and mask sensitive headers for logging"""
    headers = request.headers
    return {
        "user_agent": headers.get("user-agent", "unknown"),
        "authorization": (headers.get("authorization", "")[:10] + "...") if headers.get("authorization") else "none",
        "organization_header": headers.get("x-organization-id", "none")
    }


def _error_body(request: Request, status_code: int, detail, kind: str, **extra) -> dict:
    return {
        "detail": detail,
        "kind": kind,
        "status_code": status_code,
        "trace_id": tracing.get_current_trace_id(),
        "timestamp": time.time(),
        "path": request.url.path,
        **extra
    }


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    kind = kind_for(exc)
    log = tracing.error if exc.status_code >= 500 else tracing.warning
    log(
        f"HTTP {exc.status_code} {kind}: {exc.detail}",
        url=str(request.url),
        ip=client_ip(request),
        **get_safe_headers(request)
    )

    return JSONResponse(
        status_code=exc.status_code,
        content=_error_body(request, exc.status_code, exc.detail, kind),
        headers=getattr(exc, 'headers', None)
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = [
        {
            "field": ".".join(str(x) for x in error["loc"] if x != "body"),
            "message": error["msg"],
            "type": error["type"]
        }
        for error in exc.errors()
    ]

    tracing.warning(
        f"Validation error: {len(errors)} errors",
        url=str(request.url),
        ip=client_ip(request),
        fields=[e["field"] for e in errors],
        **get_safe_headers(request)
    )

    return JSONResponse(
        status_code=BadRequestError.http_status,
        content=_error_body(
            request, BadRequestError.http_status, "Validation error", BadRequestError.kind, errors=errors
        )
    )


async def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    retry_after = None
    limit = getattr(exc, "limit", None)
    if limit is not None:
        retry_after = limit.limit.get_expiry()

    tracing.warning(
        f"Rate limit exceeded: {exc.detail}",
        url=str(request.url),
        ip=client_ip(request),
    )

    headers = {"Retry-After": str(retry_after)} if retry_after else None
    return JSONResponse(
        status_code=RateLimitedError.http_status,
        content=_error_body(
            request, RateLimitedError.http_status, f"Too many requests: {exc.detail}", RateLimitedError.kind
        ),
        headers=headers
    )


async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    tracing.log_error_with_context(
        f"Unhandled exception: {exc}",
        exception=exc,
        url=str(request.url),
        ip=client_ip(request),
    )

    return JSONResponse(
        status_code=500,
        content=_error_body(
            request, 500, "Internal server error", InternalError.kind, error_type=type(exc).__name__
        )
    )


async def starlette_http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    kind = kind_for(exc)
    tracing.warning(
        f"HTTP {exc.status_code}: {exc.detail}",
        url=str(request.url),
        ip=client_ip(request)
    )

    return JSONResponse(
        status_code=exc.status_code,
        content=_error_body(request, exc.status_code, exc.detail, kind),
        headers=getattr(exc, 'headers', None)
    )
