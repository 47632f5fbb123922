# app/db/crud/organization.py
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select
from sqlalchemy import func, delete, update
from sqlalchemy.orm import joinedload
from typing import Optional, List, Dict, Any
from loguru import logger

from app.db.models import Organization, UserOrganization, Invitation, SupportTicket, User
from app.db.models.enums import OrganizationRole


async def get_organization_by_id(db: AsyncSession, org_id: str) -> Optional[Organization]:
    result = await db.execute(select(Organization).filter(Organization.id == org_id))
    return result.scalars().first()


async def get_organization_by_slug(db: AsyncSession, slug: str) -> Optional[Organization]:
    result = await db.execute(select(Organization).filter(Organization.slug == slug))
    return result.scalars().first()


async def slug_exists(db: AsyncSession, slug: str) -> bool:
    result = await db.execute(select(func.count()).select_from(Organization).filter(Organization.slug == slug))
    return (result.scalar() or 0) > 0


async def create_organization(db: AsyncSession, org_data: Dict[str, Any], owner_id: str) -> Organization:
    """
    Stage an organization together with its OWNER membership. The caller commits.
    """
    org = Organization(owner_id=owner_id, **org_data)
    db.add(org)
    await db.flush()

    db.add(UserOrganization(
        user_id=owner_id,
        organization_id=org.id,
        role=OrganizationRole.OWNER
    ))
    await db.flush()
    logger.debug(f"Organization staged: {org.slug}")
    return org


async def get_membership(db: AsyncSession, user_id: str, org_id: str) -> Optional[UserOrganization]:
    result = await db.execute(
        select(UserOrganization).filter(
            UserOrganization.user_id == user_id,
            UserOrganization.organization_id == org_id
        )
    )
    return result.scalars().first()


async def get_member_role(db: AsyncSession, user_id: str, org_id: Optional[str]) -> Optional[OrganizationRole]:
    if not org_id:
        return None
    result = await db.execute(
        select(UserOrganization.role).filter(
            UserOrganization.user_id == user_id,
            UserOrganization.organization_id == org_id
        )
    )
    return result.scalars().first()


async def add_member(db: AsyncSession, user_id: str, org_id: str, role: OrganizationRole) -> UserOrganization:
    membership = UserOrganization(user_id=user_id, organization_id=org_id, role=role)
    db.add(membership)
    await db.flush()
    return membership


async def get_members(db: AsyncSession, org_id: str) -> List[UserOrganization]:
    """Members with their user rows, owner first then by join date"""
    result = await db.execute(
        select(UserOrganization)
        .options(joinedload(UserOrganization.user))
        .filter(UserOrganization.organization_id == org_id)
        .order_by(UserOrganization.created_at.asc())
    )
    members = list(result.scalars().unique().all())
    members.sort(key=lambda m: m.role != OrganizationRole.OWNER)
    return members


async def get_member_user_ids(db: AsyncSession, org_id: str) -> List[str]:
    result = await db.execute(
        select(UserOrganization.user_id).filter(UserOrganization.organization_id == org_id)
    )
    return list(result.scalars().all())


async def get_user_memberships(db: AsyncSession, user_id: str) -> List[UserOrganization]:
    """A user's memberships with organizations loaded, most recent first"""
    result = await db.execute(
        select(UserOrganization)
        .options(joinedload(UserOrganization.organization))
        .filter(UserOrganization.user_id == user_id)
        .order_by(UserOrganization.created_at.desc())
    )
    return list(result.scalars().unique().all())


async def is_member_by_email(db: AsyncSession, org_id: str, email: str) -> bool:
    result = await db.execute(
        select(func.count())
        .select_from(UserOrganization)
        .join(User, User.id == UserOrganization.user_id)
        .filter(
            UserOrganization.organization_id == org_id,
            func.lower(User.email) == email.lower()
        )
    )
    return (result.scalar() or 0) > 0


async def remove_member(db: AsyncSession, user_id: str, org_id: str) -> None:
    await db.execute(
        delete(UserOrganization).where(
            UserOrganization.user_id == user_id,
            UserOrganization.organization_id == org_id
        )
    )


async def purge_organization(db: AsyncSession, org: Organization) -> None:
    """
    Delete an organization with its memberships and invitations; tickets are
    kept and detached from the organization.
    """
    await db.execute(delete(Invitation).where(Invitation.organization_id == org.id))
    await db.execute(delete(UserOrganization).where(UserOrganization.organization_id == org.id))
    await db.execute(
        update(SupportTicket)
        .where(SupportTicket.organization_id == org.id)
        .values(organization_id=None)
        .execution_options(synchronize_session=False)
    )
    await db.delete(org)
    await db.flush()
    logger.debug(f"Organization purged: {org.slug}")


async def find_owned_organization(db: AsyncSession, user: User) -> Optional[Organization]:
    """An organization the user owns, preferring their default"""
    result = await db.execute(
        select(Organization)
        .filter(Organization.owner_id == user.id)
        .order_by(Organization.created_at.asc())
    )
    owned = list(result.scalars().all())
    for org in owned:
        if org.id == user.default_organization_id:
            return org
    return owned[0] if owned else None
