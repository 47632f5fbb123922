# app/api/v1/endpoints/organizations.py
"""
Organization management endpoints with multi-tenant security
"""
from fastapi import APIRouter, Depends, status, Request, Response
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List

from app.db.database import get_db
from app.api.v1.schemas.organizations import (
    OrganizationCreate,
    OrganizationUpdate,
    OrganizationResponse,
    OrganizationWithRole,
    MemberResponse,
    MemberRoleUpdate,
    MembershipResponse,
)
from app.api.v1.schemas.invitations import InvitationCreate, InvitationCreated, InvitationResponse
from app.auth.dependencies import get_request_context
from app.core.context import RequestContext
from app.core.rate_limit import rate_limit
from app.services import organizations as org_service
from app.services import invitations as invitation_service
from app.services.registry import ServiceRegistry, get_services

router = APIRouter()


@router.get("/", response_model=List[OrganizationWithRole])
@rate_limit(operation_type="read")
async def list_user_organizations(
        request: Request,
        db: AsyncSession = Depends(get_db),
        ctx: RequestContext = Depends(get_request_context)
):
    """
    List the organizations the current user belongs to, with their role in each.
    """
    memberships = await org_service.list_user_organizations(db, ctx)
    return [OrganizationWithRole.from_membership(m) for m in memberships]


@router.post("/", response_model=OrganizationResponse, status_code=status.HTTP_201_CREATED)
@rate_limit(operation_type="write")
async def create_organization(
        request: Request,
        org_data: OrganizationCreate,
        db: AsyncSession = Depends(get_db),
        ctx: RequestContext = Depends(get_request_context)
):
    """
    Create a new organization. The creator becomes its owner and, if they
    have no default organization yet, it becomes their default.
    """
    org = await org_service.create_organization(db, ctx, org_data.model_dump())
    return OrganizationResponse.from_model(org)


@router.get("/by-slug/{slug}", response_model=OrganizationResponse)
@rate_limit(operation_type="read")
async def get_organization_by_slug(
        request: Request,
        slug: str,
        db: AsyncSession = Depends(get_db),
        ctx: RequestContext = Depends(get_request_context)
):
    org = await org_service.get_organization_by_slug(db, ctx, slug)
    return OrganizationResponse.from_model(org)


@router.get("/{org_id}", response_model=OrganizationResponse)
@rate_limit(operation_type="read")
async def get_organization(
        request: Request,
        org_id: str,
        db: AsyncSession = Depends(get_db),
        ctx: RequestContext = Depends(get_request_context)
):
    """
    Get organization details. Requires membership in the organization.
    """
    org = await org_service.get_organization(db, ctx, org_id)
    return OrganizationResponse.from_model(org)


@router.patch("/{org_id}", response_model=OrganizationResponse)
@rate_limit(operation_type="write")
async def update_organization(
        request: Request,
        org_id: str,
        org_update: OrganizationUpdate,
        db: AsyncSession = Depends(get_db),
        ctx: RequestContext = Depends(get_request_context)
):
    """
    Update name, logo, website or billing details. Requires ADMIN or OWNER.
    """
    org = await org_service.update_organization(db, ctx, org_id, org_update.model_dump(exclude_unset=True))
    return OrganizationResponse.from_model(org)


@router.delete("/{org_id}", status_code=status.HTTP_204_NO_CONTENT)
@rate_limit(operation_type="delete")
async def delete_organization(
        request: Request,
        org_id: str,
        db: AsyncSession = Depends(get_db),
        ctx: RequestContext = Depends(get_request_context)
):
    """
    Delete the organization. Owner only; memberships and invitations go with it.
    """
    await org_service.delete_organization(db, ctx, org_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/{org_id}/members", response_model=List[MemberResponse])
@rate_limit(operation_type="read")
async def list_members(
        request: Request,
        org_id: str,
        db: AsyncSession = Depends(get_db),
        ctx: RequestContext = Depends(get_request_context)
):
    members = await org_service.get_members(db, ctx, org_id)
    return [MemberResponse.from_model(m) for m in members]


@router.patch("/{org_id}/members/{user_id}", response_model=MembershipResponse)
@rate_limit(operation_type="write")
async def update_member_role(
        request: Request,
        org_id: str,
        user_id: str,
        role_update: MemberRoleUpdate,
        db: AsyncSession = Depends(get_db),
        ctx: RequestContext = Depends(get_request_context)
):
    """
    Change a member's role. Only the owner may do this, and never on their own row.
    """
    membership = await org_service.update_user_role(db, ctx, org_id, user_id, role_update.role)
    return MembershipResponse.from_model(membership)


@router.delete("/{org_id}/members/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
@rate_limit(operation_type="delete")
async def remove_member(
        request: Request,
        org_id: str,
        user_id: str,
        db: AsyncSession = Depends(get_db),
        ctx: RequestContext = Depends(get_request_context)
):
    """
    Remove a member, or leave when user_id is your own id.
    """
    await org_service.remove_user(db, ctx, org_id, user_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/{org_id}/invitations", response_model=InvitationCreated, status_code=status.HTTP_201_CREATED)
@rate_limit(operation_type="write")
async def invite_member(
        request: Request,
        org_id: str,
        invitation: InvitationCreate,
        db: AsyncSession = Depends(get_db),
        ctx: RequestContext = Depends(get_request_context),
        services: ServiceRegistry = Depends(get_services)
):
    """
    Invite someone by email. The response carries a warning when the email
    could not be delivered; the invitation link still works.
    """
    outcome = await invitation_service.invite_member(
        db, ctx, services.notifier, org_id, invitation.email, invitation.role
    )
    return InvitationCreated.from_outcome(outcome)


@router.get("/{org_id}/invitations", response_model=List[InvitationResponse])
@rate_limit(operation_type="read")
async def list_pending_invitations(
        request: Request,
        org_id: str,
        db: AsyncSession = Depends(get_db),
        ctx: RequestContext = Depends(get_request_context)
):
    invitations = await invitation_service.get_pending_invitations(db, ctx, org_id)
    return [InvitationResponse.model_validate(inv) for inv in invitations]
