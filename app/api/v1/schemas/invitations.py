# app/api/v1/schemas/invitations.py
from pydantic import BaseModel, ConfigDict, Field, EmailStr
from typing import Optional
from datetime import datetime

from app.db.models.enums import OrganizationRole, InvitationStatus
from app.api.v1.schemas.organizations import MembershipResponse, OrganizationResponse


class InvitationCreate(BaseModel):
    email: EmailStr
    role: OrganizationRole = Field(OrganizationRole.MEMBER, description="MEMBER or ADMIN")


class InvitationResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    email: str
    role: OrganizationRole
    status: InvitationStatus
    organization_id: str
    inviter_id: str
    expires_at: datetime
    created_at: datetime


class InvitationCreated(InvitationResponse):
    token: str
    warning: Optional[str] = Field(None, description="Set when the email could not be delivered")

    @classmethod
    def from_outcome(cls, outcome):
        data = InvitationResponse.model_validate(outcome.invitation).model_dump()
        return cls(**data, token=outcome.invitation.token, warning=outcome.warning)


class PublicOrganization(BaseModel):
    id: str
    name: str
    logo: Optional[str] = None


class PublicInviter(BaseModel):
    id: str
    name: Optional[str] = None
    image: Optional[str] = None


class InvitationSummary(BaseModel):
    """What an unauthenticated visitor may learn from an invitation link"""
    id: str
    email: str
    role: OrganizationRole
    status: InvitationStatus
    created_at: datetime
    expires_at: datetime
    organization: PublicOrganization
    inviter: PublicInviter

    @classmethod
    def from_model(cls, invitation):
        return cls(
            id=invitation.id,
            email=invitation.email,
            role=invitation.role,
            status=invitation.status,
            created_at=invitation.created_at,
            expires_at=invitation.expires_at,
            organization=PublicOrganization(
                id=invitation.organization.id,
                name=invitation.organization.name,
                logo=invitation.organization.logo
            ),
            inviter=PublicInviter(
                id=invitation.inviter.id,
                name=invitation.inviter.name,
                image=invitation.inviter.image
            )
        )


class InvitationAcceptResponse(BaseModel):
    invitation: InvitationResponse
    membership: MembershipResponse
    organization: OrganizationResponse

    @classmethod
    def from_result(cls, result):
        return cls(
            invitation=InvitationResponse.model_validate(result.invitation),
            membership=MembershipResponse.from_model(result.membership),
            organization=OrganizationResponse.from_model(result.organization)
        )
