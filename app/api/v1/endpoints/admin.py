# app/api/v1/endpoints/admin.py
"""
Platform administration. Every route here requires the ADMIN system role;
the check lives in the service layer so it also holds for non-HTTP callers.
"""
from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.database import get_db
from app.api.v1.schemas.users import UserResponse, SystemRoleUpdate
from app.auth.dependencies import get_request_context
from app.core.context import RequestContext
from app.core.pagination import PaginationParams, PaginatedResponse, get_pagination
from app.core.rate_limit import rate_limit
from app.services import accounts as account_service

router = APIRouter()


@router.get("/users", response_model=PaginatedResponse[UserResponse])
@rate_limit(operation_type="admin")
async def list_users(
        request: Request,
        pagination: PaginationParams = Depends(get_pagination),
        db: AsyncSession = Depends(get_db),
        ctx: RequestContext = Depends(get_request_context)
):
    """
    List all users with pagination and search across email and name.
    """
    page = await account_service.list_users(db, ctx, pagination, request=request)
    return PaginatedResponse[UserResponse](
        items=[UserResponse.model_validate(u) for u in page.items],
        total=page.total,
        page=page.page,
        size=page.size,
        pages=page.pages,
        has_next=page.has_next,
        has_prev=page.has_prev,
        links=page.links
    )


@router.patch("/users/{user_id}/system-role", response_model=UserResponse)
@rate_limit(operation_type="admin")
async def update_system_role(
        request: Request,
        user_id: str,
        role_update: SystemRoleUpdate,
        db: AsyncSession = Depends(get_db),
        ctx: RequestContext = Depends(get_request_context)
):
    return await account_service.update_system_role(db, ctx, user_id, role_update.system_role)
