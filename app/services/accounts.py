# app/services/accounts.py
"""Profile management and the platform admin console"""
from typing import Dict, Any, Optional

from fastapi import Request
from sqlalchemy.ext.asyncio import AsyncSession

from app.core import tracing
from app.core.context import RequestContext
from app.core.pagination import AutoPaginator, PaginationParams, PaginatedResponse
from app.core.permissions import is_system_admin
from app.db.crud import user as user_crud
from app.db.models import User
from app.db.models.enums import SystemRole
from app.exceptions.domain import BadRequestError, ForbiddenError, NotFoundError, service_operation

PROFILE_FIELDS = ("name", "image")


@service_operation("update_profile")
async def update_profile(db: AsyncSession, ctx: RequestContext, patch: Dict[str, Any]) -> User:
    actor = ctx.require_principal()
    await user_crud.update_user(db, actor, {k: v for k, v in patch.items() if k in PROFILE_FIELDS})
    await db.commit()
    return actor


def _require_system_admin(ctx: RequestContext) -> User:
    actor = ctx.require_principal()
    if not is_system_admin(actor):
        raise ForbiddenError("Administrator access required")
    return actor


@service_operation("list_users")
async def list_users(
        db: AsyncSession,
        ctx: RequestContext,
        pagination: PaginationParams,
        request: Optional[Request] = None
) -> PaginatedResponse:
    _require_system_admin(ctx)
    return await AutoPaginator.paginate(
        db,
        User,
        pagination,
        search_fields=["email", "name"],
        sortable_fields=("created_at", "email", "name", "system_role"),
        request=request,
    )


@service_operation("update_system_role")
async def update_system_role(
        db: AsyncSession,
        ctx: RequestContext,
        user_id: str,
        role: SystemRole
) -> User:
    actor = _require_system_admin(ctx)
    if user_id == actor.id:
        raise BadRequestError("You cannot change your own system role")

    user = await user_crud.get_user_by_id(db, user_id)
    if not user:
        raise NotFoundError("User not found")

    previous = user.system_role
    user.system_role = role
    await db.commit()
    tracing.info(
        "System role changed",
        user_id=user.id,
        old_role=previous.value,
        new_role=role.value,
        actor_id=actor.id
    )
    return user


@service_operation("grant_system_role")
async def grant_system_role(db: AsyncSession, email: str, role: SystemRole = SystemRole.ADMIN) -> User:
    """
    Operator path for promoting a user outside of any request, used to
    create the first platform admin.
    """
    user = await user_crud.get_user_by_email(db, email)
    if not user:
        raise NotFoundError(f"No user with email {email}")

    previous = user.system_role
    user.system_role = role
    await db.commit()
    tracing.info("System role granted", user_id=user.id, old_role=previous.value, new_role=role.value)
    return user
