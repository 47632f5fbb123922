# app/api/v1/endpoints/users.py
from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List

from app.db.database import get_db
from app.api.v1.schemas.users import UserResponse, ProfileUpdate, DefaultOrganizationUpdate
from app.api.v1.schemas.organizations import OrganizationWithRole
from app.auth.dependencies import get_request_context
from app.core import tracing
from app.core.context import RequestContext
from app.core.rate_limit import rate_limit
from app.services import accounts as account_service
from app.services import organizations as org_service

router = APIRouter()


@router.get("/me", response_model=UserResponse)
@rate_limit(operation_type="read")
async def read_current_user(request: Request, ctx: RequestContext = Depends(get_request_context)):
    user = ctx.require_principal()
    tracing.info("User profile requested", user_id=user.id, ip=ctx.client_ip)
    return user


@router.patch("/me", response_model=UserResponse)
@rate_limit(operation_type="write")
async def update_current_user(
        request: Request,
        profile: ProfileUpdate,
        db: AsyncSession = Depends(get_db),
        ctx: RequestContext = Depends(get_request_context)
):
    return await account_service.update_profile(db, ctx, profile.model_dump(exclude_unset=True))


@router.get("/me/organizations", response_model=List[OrganizationWithRole])
@rate_limit(operation_type="read")
async def list_my_organizations(
        request: Request,
        db: AsyncSession = Depends(get_db),
        ctx: RequestContext = Depends(get_request_context)
):
    memberships = await org_service.list_user_organizations(db, ctx)
    return [OrganizationWithRole.from_membership(m) for m in memberships]


@router.put("/me/default-organization", response_model=UserResponse)
@rate_limit(operation_type="write")
async def set_default_organization(
        request: Request,
        update: DefaultOrganizationUpdate,
        db: AsyncSession = Depends(get_db),
        ctx: RequestContext = Depends(get_request_context)
):
    """Choose which organization the client opens by default. Must be a membership."""
    return await org_service.set_default_organization(db, ctx, update.organization_id)
