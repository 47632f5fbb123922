# app/api/v1/endpoints/workflows.py
"""
Callbacks for an external workflow runner. Authenticated with the shared
X-Workflow-Secret header rather than a user token.
"""
import secrets
from typing import Optional

from fastapi import APIRouter, Depends, Header, Request
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.database import get_db
from app.api.v1.schemas.organizations import OrganizationResponse
from app.api.v1.schemas.workflows import CreateDefaultOrganizationPayload
from app.core import tracing
from app.core.config import settings
from app.core.rate_limit import rate_limit
from app.exceptions.domain import UnauthenticatedError
from app.services.bootstrap import create_default_for_user

router = APIRouter()


def verify_workflow_secret(x_workflow_secret: Optional[str] = Header(None, alias="X-Workflow-Secret")) -> None:
    if settings.WORKFLOW_SECRET is None:
        tracing.warning("Rejected workflow callback, WORKFLOW_SECRET is not configured")
        raise UnauthenticatedError("Invalid workflow secret")

    expected = settings.WORKFLOW_SECRET.get_secret_value()
    if not x_workflow_secret or not secrets.compare_digest(x_workflow_secret, expected):
        tracing.warning("Rejected workflow callback with invalid secret")
        raise UnauthenticatedError("Invalid workflow secret")


@router.post(
    "/create-default-organization",
    response_model=OrganizationResponse,
    dependencies=[Depends(verify_workflow_secret)]
)
@rate_limit(operation_type="write")
async def create_default_organization(
        request: Request,
        payload: CreateDefaultOrganizationPayload,
        db: AsyncSession = Depends(get_db)
):
    """Idempotent: returns the existing organization if the user already owns one"""
    org = await create_default_for_user(db, payload.user_id, payload.name)
    return OrganizationResponse.from_model(org)
