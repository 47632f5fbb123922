# app/api/v1/schemas/workflows.py
from pydantic import BaseModel, Field
from typing import Optional


class CreateDefaultOrganizationPayload(BaseModel):
    user_id: str = Field(..., description="The id of the newly created user")
    name: Optional[str] = Field(None, description="The user's display name, if known")
