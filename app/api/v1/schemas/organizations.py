# app/api/v1/schemas/organizations.py
from pydantic import BaseModel, ConfigDict, Field, EmailStr
from typing import Optional
from datetime import datetime

from app.db.models.enums import OrganizationRole

SLUG_PATTERN = r"^[a-z0-9-]+$"


class OrganizationCreate(BaseModel):
    """Schema for creating an organization; slug is generated when omitted"""
    name: str = Field(..., min_length=2, max_length=255, description="Organization name")
    slug: Optional[str] = Field(None, min_length=3, max_length=64, pattern=SLUG_PATTERN)
    logo: Optional[str] = Field(None, max_length=1024)
    website: Optional[str] = Field(None, max_length=1024)


class OrganizationUpdate(BaseModel):
    """Only these fields can be patched"""
    name: Optional[str] = Field(None, min_length=2, max_length=255)
    logo: Optional[str] = Field(None, max_length=1024)
    website: Optional[str] = Field(None, max_length=1024)
    billing_email: Optional[EmailStr] = None
    billing_name: Optional[str] = Field(None, max_length=255)


class OrganizationResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    slug: str
    logo: Optional[str] = None
    website: Optional[str] = None
    billing_email: Optional[str] = None
    billing_name: Optional[str] = None
    owner_id: str
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_model(cls, org):
        return cls.model_validate(org)


class OrganizationWithRole(OrganizationResponse):
    """Organization as seen by one of its members"""
    role: OrganizationRole
    joined_at: datetime

    @classmethod
    def from_membership(cls, membership):
        org_data = OrganizationResponse.from_model(membership.organization)
        return cls(**org_data.model_dump(), role=membership.role, joined_at=membership.created_at)


class MemberResponse(BaseModel):
    user_id: str
    email: Optional[str] = None
    name: Optional[str] = None
    image: Optional[str] = None
    role: OrganizationRole
    joined_at: datetime

    @classmethod
    def from_model(cls, membership):
        return cls(
            user_id=membership.user_id,
            email=membership.user.email,
            name=membership.user.name,
            image=membership.user.image,
            role=membership.role,
            joined_at=membership.created_at
        )


class MemberRoleUpdate(BaseModel):
    role: OrganizationRole = Field(..., description="MEMBER or ADMIN")


class MembershipResponse(BaseModel):
    user_id: str
    organization_id: str
    role: OrganizationRole
    joined_at: datetime

    @classmethod
    def from_model(cls, membership):
        return cls(
            user_id=membership.user_id,
            organization_id=membership.organization_id,
            role=membership.role,
            joined_at=membership.created_at
        )
