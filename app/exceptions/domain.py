# app/exceptions/domain.py
"""
Typed domain errors.

Every error is an HTTPException so FastAPI renders it through the shared
handlers, and carries a ``kind`` naming its place in the error taxonomy.
"""
from functools import wraps
from typing import Optional, Dict

from fastapi import HTTPException, status

from app.core import tracing


class DomainError(HTTPException):
    """Base class for all domain errors"""
    kind: str = "Internal"
    http_status: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_detail: str = "Internal server error"

    def __init__(self, detail: Optional[str] = None, headers: Optional[Dict[str, str]] = None):
        super().__init__(
            status_code=self.http_status,
            detail=detail or self.default_detail,
            headers=headers
        )


class UnauthenticatedError(DomainError):
    """No verified principal"""
    kind = "Unauthenticated"
    http_status = status.HTTP_401_UNAUTHORIZED
    default_detail = "Authentication required"

    def __init__(self, detail: Optional[str] = None):
        super().__init__(detail=detail, headers={"WWW-Authenticate": "Bearer"})


class ForbiddenError(DomainError):
    kind = "Forbidden"
    http_status = status.HTTP_403_FORBIDDEN
    default_detail = "You do not have permission to perform this action"


class NotFoundError(DomainError):
    kind = "NotFound"
    http_status = status.HTTP_404_NOT_FOUND
    default_detail = "Resource not found"


class ConflictError(DomainError):
    """Uniqueness or state machine violation"""
    kind = "Conflict"
    http_status = status.HTTP_409_CONFLICT
    default_detail = "Conflict"


class BadRequestError(DomainError):
    kind = "BadRequest"
    http_status = status.HTTP_400_BAD_REQUEST
    default_detail = "Bad request"


class RateLimitedError(DomainError):
    kind = "RateLimited"
    http_status = status.HTTP_429_TOO_MANY_REQUESTS
    default_detail = "Too many requests"

    def __init__(self, detail: Optional[str] = None, retry_after: Optional[int] = None):
        headers = {"Retry-After": str(retry_after)} if retry_after else None
        super().__init__(detail=detail, headers=headers)


class InternalError(DomainError):
    """Unexpected failure; the original exception is kept as ``cause``"""
    kind = "Internal"

    def __init__(self, detail: Optional[str] = None, cause: Optional[BaseException] = None):
        super().__init__(detail=detail)
        self.cause = cause


KIND_BY_STATUS = {
    400: BadRequestError.kind,
    401: UnauthenticatedError.kind,
    403: ForbiddenError.kind,
    404: NotFoundError.kind,
    409: ConflictError.kind,
    429: RateLimitedError.kind,
}


def kind_for(exc: HTTPException) -> str:
    return getattr(exc, "kind", None) or KIND_BY_STATUS.get(exc.status_code, InternalError.kind)


def service_operation(name: str):
    """
    Decorator for service-layer coroutines.

    HTTP and domain errors propagate unchanged; anything else is logged and
    re-raised as InternalError with the original exception chained.
    """

    def decorator(func):
        @wraps(func)
        async def wrapper(*args, **kwargs):
            try:
                return await func(*args, **kwargs)
            except HTTPException:
                raise
            except Exception as e:
                tracing.log_error_with_context(
                    f"{name} failed unexpectedly",
                    exception=e,
                    operation=name,
                    error_type=type(e).__name__,
                )
                raise InternalError(f"{name} failed", cause=e) from e

        return wrapper

    return decorator
