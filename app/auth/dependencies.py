# app/auth/dependencies.py - Principal resolution and request context
from typing import Optional

from fastapi import Depends, Header, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from jose import JWTError
from loguru import logger

from app.auth.security import decode_token
from app.core.context import RequestContext
from app.core.rate_limit import client_ip
from app.db.crud import user as user_crud
from app.db.database import get_db
from app.db.models import User
from app.db.models.enums import SystemRole
from app.exceptions.domain import UnauthenticatedError
from app.services.bootstrap import on_user_created
from app.services.registry import ServiceRegistry, get_services
from app.utils.helpers import sanitize_email

bearer_scheme = HTTPBearer(auto_error=False)


async def _provision_user(db: AsyncSession, services: ServiceRegistry, payload: dict) -> User:
    """Create the local user row on first sign-in and queue signup jobs"""
    email = payload.get("email")
    user = await user_crud.create_user(db, {
        "id": payload["sub"],
        "email": sanitize_email(email) if email else None,
        "name": payload.get("name"),
        "image": payload.get("picture"),
        "system_role": SystemRole.USER,
    })
    try:
        await db.commit()
    except IntegrityError:
        # Concurrent first request for the same user, or email already taken
        await db.rollback()
        existing = await user_crud.get_user_by_id(db, payload["sub"])
        if existing is None:
            raise UnauthenticatedError("Could not provision user account")
        return existing

    logger.info(f"User provisioned on first sign-in | user_id={user.id}")
    await on_user_created(services.job_queue, user)
    return user


async def get_current_user(
        request: Request,
        credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
        db: AsyncSession = Depends(get_db),
        services: ServiceRegistry = Depends(get_services)
) -> User:
    """
    Resolve the bearer token into a User, provisioning it on first sign-in
    """
    if credentials is None or not credentials.credentials:
        raise UnauthenticatedError()

    try:
        payload = decode_token(credentials.credentials)
    except JWTError:
        raise UnauthenticatedError("Could not validate credentials")

    user_id = payload.get("sub")
    if not user_id:
        logger.warning("Invalid token payload - missing subject")
        raise UnauthenticatedError("Could not validate credentials")

    user = await user_crud.get_user_by_id(db, user_id)
    if user is None:
        user = await _provision_user(db, services, payload)

    request.state.principal_id = user.id
    logger.debug(f"User authenticated | user_id={user.id}")
    return user


async def get_request_context(
        request: Request,
        user: User = Depends(get_current_user),
        x_organization_id: Optional[str] = Header(None, alias="X-Organization-Id")
) -> RequestContext:
    return RequestContext(
        principal=user,
        active_organization_id=x_organization_id or None,
        client_ip=client_ip(request)
    )
