# app/api/v1/endpoints/invitations.py
"""
Invitation endpoints. Looking up an invitation by token is public since it
is reached from an emailed link before sign-in.
"""
from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.database import get_db
from app.api.v1.schemas.invitations import (
    InvitationSummary,
    InvitationAcceptResponse,
    InvitationResponse,
)
from app.auth.dependencies import get_request_context
from app.core.context import RequestContext
from app.core.rate_limit import rate_limit
from app.services import invitations as invitation_service

router = APIRouter()


@router.get("/{token}", response_model=InvitationSummary)
@rate_limit(operation_type="public")
async def get_invitation_by_token(
        request: Request,
        token: str,
        db: AsyncSession = Depends(get_db)
):
    invitation = await invitation_service.get_invitation_by_token(db, token)
    return InvitationSummary.from_model(invitation)


@router.post("/{token}/accept", response_model=InvitationAcceptResponse)
@rate_limit(operation_type="write")
async def accept_invitation(
        request: Request,
        token: str,
        db: AsyncSession = Depends(get_db),
        ctx: RequestContext = Depends(get_request_context)
):
    """
    Join the organization. The signed-in email must match the invited one.
    """
    result = await invitation_service.accept_invitation(db, ctx, token)
    return InvitationAcceptResponse.from_result(result)


@router.post("/{invitation_id}/revoke", response_model=InvitationResponse)
@rate_limit(operation_type="write")
async def revoke_invitation(
        request: Request,
        invitation_id: str,
        db: AsyncSession = Depends(get_db),
        ctx: RequestContext = Depends(get_request_context)
):
    invitation = await invitation_service.revoke_invitation(db, ctx, invitation_id)
    return InvitationResponse.model_validate(invitation)
