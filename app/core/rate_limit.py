# app/core/rate_limit.py
"""
Request admission control.

A slowapi moving-window limiter keyed by client IP, falling back to the
authenticated user id. Endpoints opt in per operation type:

    @router.get("/tickets")
    @rate_limit(operation_type="read")
    async def list_tickets(request: Request, ...):
        ...
"""
from functools import wraps
from typing import Optional

from fastapi import Request
from slowapi import Limiter

from app.core import tracing
from app.core.config import settings
from app.exceptions.domain import BadRequestError


def client_ip(request: Request) -> Optional[str]:
    """First X-Forwarded-For hop, then X-Real-IP, then the socket peer"""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip.strip()
    if request.client and request.client.host:
        return request.client.host
    return None


def rate_limit_key(request: Request) -> str:
    ip = client_ip(request)
    if ip:
        return f"ip:{ip}"
    principal_id = getattr(request.state, "principal_id", None)
    if principal_id:
        return f"user:{principal_id}"
    raise BadRequestError("Unable to identify the client for rate limiting")


rate_limiter = Limiter(
    key_func=rate_limit_key,
    strategy="moving-window",
    storage_uri=settings.RATE_LIMIT_STORAGE_URI,
    enabled=settings.RATE_LIMIT_ENABLED,
    headers_enabled=False
)


_LIMIT_SETTINGS = {
    "read": "READ_RATE_LIMIT",
    "write": "WRITE_RATE_LIMIT",
    "delete": "DELETE_RATE_LIMIT",
    "admin": "ADMIN_RATE_LIMIT",
    "public": "PUBLIC_RATE_LIMIT",
}


def limit_for(operation_type: str):
    """Callable limit so the value is read from settings on every request"""
    setting_name = _LIMIT_SETTINGS.get(operation_type, "READ_RATE_LIMIT")

    def current_limit() -> str:
        return getattr(settings, setting_name)

    return current_limit


def rate_limit(operation_type: str = "read"):
    """Decorator applying the limit configured for ``operation_type``"""

    def decorator(func):
        @rate_limiter.limit(limit_for(operation_type))
        @wraps(func)
        async def wrapper(*args, **kwargs):
            request = kwargs.get('request')
            if request:
                tracing.debug(
                    "Rate limit applied",
                    endpoint=request.url.path,
                    operation_type=operation_type
                )
            return await func(*args, **kwargs)

        return wrapper

    return decorator
