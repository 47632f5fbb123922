# app/db/crud/invitation.py
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select
from sqlalchemy.orm import joinedload
from typing import Optional, List, Dict, Any

from app.db.models import Invitation
from app.db.models.enums import InvitationStatus


async def get_invitation_by_id(db: AsyncSession, invitation_id: str) -> Optional[Invitation]:
    result = await db.execute(select(Invitation).filter(Invitation.id == invitation_id))
    return result.scalars().first()


async def get_invitation_by_token(db: AsyncSession, token: str) -> Optional[Invitation]:
    """Lookup by token with organization and inviter loaded"""
    result = await db.execute(
        select(Invitation)
        .options(joinedload(Invitation.organization), joinedload(Invitation.inviter))
        .filter(Invitation.token == token)
    )
    return result.scalars().first()


async def get_pending_invitation(db: AsyncSession, org_id: str, email: str) -> Optional[Invitation]:
    result = await db.execute(
        select(Invitation).filter(
            Invitation.organization_id == org_id,
            Invitation.email == email,
            Invitation.status == InvitationStatus.PENDING
        )
    )
    return result.scalars().first()


async def get_pending_invitations(db: AsyncSession, org_id: str) -> List[Invitation]:
    result = await db.execute(
        select(Invitation)
        .options(joinedload(Invitation.inviter))
        .filter(
            Invitation.organization_id == org_id,
            Invitation.status == InvitationStatus.PENDING
        )
        .order_by(Invitation.created_at.desc())
    )
    return list(result.scalars().unique().all())


async def create_invitation(db: AsyncSession, invitation_data: Dict[str, Any]) -> Invitation:
    invitation = Invitation(status=InvitationStatus.PENDING, **invitation_data)
    db.add(invitation)
    await db.flush()
    return invitation
