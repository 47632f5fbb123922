# app/services/invitations.py
"""
Invitation lifecycle: issue, resolve, accept, revoke and expire.

Status only moves forward: PENDING -> ACCEPTED | EXPIRED | REVOKED.
Expiry is detected when an invitation is read and persisted before the
caller sees it.
"""
import secrets
from dataclasses import dataclass
from datetime import timedelta
from typing import Optional, List

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core import tracing
from app.core.config import settings
from app.core.context import RequestContext
from app.db.crud import invitation as invitation_crud
from app.db.crud import organization as org_crud
from app.db.models import Invitation, Organization, UserOrganization
from app.db.models.enums import InvitationStatus, OrganizationRole
from app.exceptions.domain import (
    BadRequestError, ConflictError, ForbiddenError, NotFoundError, service_operation
)
from app.integrations.notifications import NotificationSender, InvitationNotice, DeliveryResult
from app.services.organizations import load_organization, require_admin_or_owner
from app.utils.helpers import utc_now, ensure_aware, sanitize_email, emails_match, mask_sensitive_data

INVITABLE_ROLES = (OrganizationRole.MEMBER, OrganizationRole.ADMIN)
DELIVERY_WARNING = "The invitation was created but the email could not be delivered"


@dataclass
class InvitationOutcome:
    invitation: Invitation
    warning: Optional[str] = None


@dataclass
class AcceptedInvitation:
    invitation: Invitation
    membership: UserOrganization
    organization: Organization


def generate_invitation_token() -> str:
    return secrets.token_urlsafe(32)


def is_past_deadline(invitation: Invitation) -> bool:
    return ensure_aware(invitation.expires_at) < utc_now()


def expire_if_due(invitation: Invitation) -> bool:
    """Flip a PENDING invitation past its deadline to EXPIRED; True if it changed"""
    if invitation.status == InvitationStatus.PENDING and is_past_deadline(invitation):
        invitation.status = InvitationStatus.EXPIRED
        return True
    return False


@service_operation("invite_member")
async def invite_member(
        db: AsyncSession,
        ctx: RequestContext,
        notifier: NotificationSender,
        org_id: str,
        email: str,
        role: OrganizationRole
) -> InvitationOutcome:
    actor = ctx.require_principal()
    org_id = ctx.scope_organization(org_id)
    org = await load_organization(db, org_id)
    await require_admin_or_owner(db, actor, org.id)

    email = sanitize_email(email)
    if role not in INVITABLE_ROLES:
        raise BadRequestError("Invitations can only grant MEMBER or ADMIN")

    if await org_crud.is_member_by_email(db, org.id, email):
        raise ConflictError("User is already a member of this organization")

    existing = await invitation_crud.get_pending_invitation(db, org.id, email)
    if existing is not None:
        if not expire_if_due(existing):
            raise ConflictError("A pending invitation already exists for this email")
        await db.flush()

    invitation = await invitation_crud.create_invitation(db, {
        "email": email,
        "token": generate_invitation_token(),
        "role": role,
        "expires_at": utc_now() + timedelta(days=settings.INVITATION_EXPIRE_DAYS),
        "organization_id": org.id,
        "inviter_id": actor.id,
    })
    try:
        await db.commit()
    except IntegrityError as e:
        await db.rollback()
        raise ConflictError("A pending invitation already exists for this email") from e

    tracing.info(
        "Invitation created",
        invitation_id=invitation.id,
        org_id=org.id,
        email=mask_sensitive_data(email),
        role=role.value
    )

    # Delivery happens after commit and never undoes the invitation
    notice = InvitationNotice(
        recipient_email=email,
        inviter_name=actor.name,
        inviter_email=actor.email,
        organization_name=org.name,
        organization_logo=org.logo,
        invitation_token=invitation.token,
        role=role.value,
        expires_at=ensure_aware(invitation.expires_at),
    )
    try:
        result = await notifier.send_invitation(notice)
    except Exception as e:
        result = DeliveryResult(success=False, error=str(e) or type(e).__name__)

    if not result.success:
        tracing.warning(
            "Invitation email delivery failed",
            invitation_id=invitation.id,
            error=result.error
        )
        return InvitationOutcome(invitation=invitation, warning=DELIVERY_WARNING)
    return InvitationOutcome(invitation=invitation)


@service_operation("accept_invitation")
async def accept_invitation(db: AsyncSession, ctx: RequestContext, token: str) -> AcceptedInvitation:
    actor = ctx.require_principal()
    invitation = await invitation_crud.get_invitation_by_token(db, token)
    if not invitation:
        raise NotFoundError("Invitation not found")

    if invitation.status != InvitationStatus.PENDING:
        raise BadRequestError(f"Invitation is {invitation.status.value.lower()}")

    if expire_if_due(invitation):
        await db.commit()
        tracing.info("Invitation expired on accept", invitation_id=invitation.id)
        raise BadRequestError("Invitation has expired")

    if not emails_match(actor.email, invitation.email):
        raise ForbiddenError("This invitation was sent to a different email address")

    existing = await org_crud.get_membership(db, actor.id, invitation.organization_id)
    if existing:
        invitation.status = InvitationStatus.ACCEPTED
        await db.commit()
        raise ConflictError("You are already a member of this organization")

    membership = UserOrganization(
        user_id=actor.id,
        organization_id=invitation.organization_id,
        role=invitation.role
    )
    db.add(membership)
    invitation.status = InvitationStatus.ACCEPTED
    if not actor.default_organization_id:
        actor.default_organization_id = invitation.organization_id

    try:
        await db.commit()
    except IntegrityError as e:
        # A concurrent accept inserted the membership first
        await db.rollback()
        raise ConflictError("You are already a member of this organization") from e

    tracing.info(
        "Invitation accepted",
        invitation_id=invitation.id,
        org_id=invitation.organization_id,
        user_id=actor.id,
        role=invitation.role.value
    )
    return AcceptedInvitation(
        invitation=invitation,
        membership=membership,
        organization=invitation.organization
    )


@service_operation("revoke_invitation")
async def revoke_invitation(db: AsyncSession, ctx: RequestContext, invitation_id: str) -> Invitation:
    actor = ctx.require_principal()
    invitation = await invitation_crud.get_invitation_by_id(db, invitation_id)
    if not invitation:
        raise NotFoundError("Invitation not found")
    ctx.scope_organization(invitation.organization_id)
    await require_admin_or_owner(db, actor, invitation.organization_id)

    # Terminal invitations stay as they are
    if invitation.status == InvitationStatus.PENDING:
        invitation.status = InvitationStatus.REVOKED
        await db.commit()
        tracing.info("Invitation revoked", invitation_id=invitation.id, org_id=invitation.organization_id)
    return invitation


@service_operation("get_pending_invitations")
async def get_pending_invitations(db: AsyncSession, ctx: RequestContext, org_id: str) -> List[Invitation]:
    actor = ctx.require_principal()
    org_id = ctx.scope_organization(org_id)
    await load_organization(db, org_id)
    await require_admin_or_owner(db, actor, org_id)

    invitations = await invitation_crud.get_pending_invitations(db, org_id)
    expired = [inv for inv in invitations if expire_if_due(inv)]
    if expired:
        await db.commit()
        tracing.info("Expired invitations on read", org_id=org_id, count=len(expired))
    return [inv for inv in invitations if inv.status == InvitationStatus.PENDING]


@service_operation("get_invitation_by_token")
async def get_invitation_by_token(db: AsyncSession, token: str) -> Invitation:
    """Public lookup reached from the emailed link; no principal required"""
    invitation = await invitation_crud.get_invitation_by_token(db, token)
    if not invitation:
        raise NotFoundError("Invitation not found")

    if expire_if_due(invitation):
        await db.commit()
        tracing.info("Invitation expired on read", invitation_id=invitation.id)
    return invitation
