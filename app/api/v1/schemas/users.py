# app/api/v1/schemas/users.py
from pydantic import BaseModel, ConfigDict, Field
from typing import Optional
from datetime import datetime

from app.db.models.enums import SystemRole


class UserResponse(BaseModel):
    """
    A platform user as returned by the API.
    """
    model_config = ConfigDict(from_attributes=True)

    id: str
    email: Optional[str] = None
    name: Optional[str] = None
    image: Optional[str] = None
    system_role: SystemRole
    default_organization_id: Optional[str] = None
    created_at: datetime
    updated_at: datetime


class ProfileUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=2, max_length=255)
    image: Optional[str] = Field(None, max_length=1024, pattern=r"^https?://")


class DefaultOrganizationUpdate(BaseModel):
    organization_id: str


class SystemRoleUpdate(BaseModel):
    system_role: SystemRole
