# app/services/bootstrap.py
"""
Work that follows a new user's first sign-in: a default organization and
a welcome email, both run through the job queue.
"""
from typing import Any, Callable, Dict, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core import tracing
from app.core.config import settings
from app.db.crud import organization as org_crud
from app.db.crud import user as user_crud
from app.db.models import Organization, User
from app.exceptions.domain import ConflictError, NotFoundError, service_operation
from app.integrations.job_queue import Job, JobQueue
from app.integrations.notifications import NotificationSender, WelcomeNotice
from app.services.organizations import stage_organization

CREATE_DEFAULT_ORGANIZATION = "create-default-organization"
SEND_WELCOME_EMAIL = "send-welcome-email"


def default_organization_name(name: Optional[str]) -> str:
    name = (name or "").strip()
    return f"{name}'s Team" if name else "My Team"


@service_operation("create_default_for_user")
async def create_default_for_user(db: AsyncSession, user_id: str, name: Optional[str] = None) -> Organization:
    """
    Create the user's first organization; it becomes the default when
    the user has none.

    Replays are harmless: if the user already owns an organization it is
    returned (and made the default when none is set) instead of creating
    another one.
    """
    user = await user_crud.get_user_by_id(db, user_id)
    if not user:
        raise NotFoundError("User not found")

    existing = await org_crud.find_owned_organization(db, user)
    if existing:
        if not user.default_organization_id:
            user.default_organization_id = existing.id
            await db.commit()
        tracing.info("Default organization already exists", user_id=user.id, org_id=existing.id)
        return existing

    try:
        org = await stage_organization(db, user, {"name": default_organization_name(name or user.name)})
        await db.commit()
    except IntegrityError as e:
        # Slug taken concurrently; job retries pick a fresh suffix
        await db.rollback()
        raise ConflictError("An organization with this slug already exists") from e

    tracing.info("Default organization created", user_id=user.id, org_id=org.id, slug=org.slug)
    return org


async def on_user_created(queue: JobQueue, user: User) -> None:
    """Queue signup follow-ups; failures here never block the sign-in"""
    try:
        await queue.enqueue(
            CREATE_DEFAULT_ORGANIZATION,
            {"user_id": user.id, "name": user.name},
            retries=settings.DEFAULT_ORG_RETRIES,
            idempotency_key=f"{CREATE_DEFAULT_ORGANIZATION}:{user.id}"
        )
        if user.email:
            await queue.enqueue(
                SEND_WELCOME_EMAIL,
                {"user_id": user.id, "email": user.email, "name": user.name},
                retries=settings.DEFAULT_ORG_RETRIES,
                idempotency_key=f"{SEND_WELCOME_EMAIL}:{user.id}"
            )
    except Exception as e:
        tracing.error("Failed to queue signup jobs", user_id=user.id, error=str(e))


def register_bootstrap_jobs(
        queue: JobQueue,
        session_factory: Callable[[], AsyncSession],
        notifier: NotificationSender
) -> None:
    """Wire the signup job handlers into ``queue``"""

    async def run_create_default(payload: Dict[str, Any]) -> None:
        async with session_factory() as db:
            await create_default_for_user(db, payload["user_id"], payload.get("name"))

    async def run_send_welcome(payload: Dict[str, Any]) -> None:
        result = await notifier.send_welcome(WelcomeNotice(
            user_id=payload["user_id"],
            email=payload["email"],
            name=payload.get("name")
        ))
        if not result.success:
            raise RuntimeError(result.error or "welcome email delivery failed")

    async def on_create_default_failed(job: Job, exc: BaseException) -> None:
        # The account stays usable without an organization
        tracing.error(
            "Default organization could not be created",
            user_id=job.payload.get("user_id"),
            attempts=job.attempts,
            error=str(exc)
        )

    async def on_welcome_failed(job: Job, exc: BaseException) -> None:
        tracing.warning(
            "Welcome email abandoned",
            user_id=job.payload.get("user_id"),
            attempts=job.attempts,
            error=str(exc)
        )

    queue.register(CREATE_DEFAULT_ORGANIZATION, run_create_default, on_failure=on_create_default_failed)
    queue.register(SEND_WELCOME_EMAIL, run_send_welcome, on_failure=on_welcome_failed)
