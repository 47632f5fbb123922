from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select
from sqlalchemy import func
from typing import Optional, Dict, Any, List
from loguru import logger

from app.db.models import User, UserOrganization
from app.db.models.enums import SystemRole


async def get_user_by_id(db: AsyncSession, user_id: str) -> Optional[User]:
    result = await db.execute(select(User).filter(User.id == user_id))
    return result.scalars().first()


async def get_user_by_email(db: AsyncSession, email: str) -> Optional[User]:
    """Case-insensitive lookup"""
    result = await db.execute(select(User).filter(func.lower(User.email) == email.lower()))
    return result.scalars().first()


async def create_user(db: AsyncSession, user_data: Dict[str, Any]) -> User:
    """
    Adds a new user to the session and flushes it. The caller commits.
    """
    user = User(**user_data)
    if user.system_role is None:
        user.system_role = SystemRole.USER
    db.add(user)
    await db.flush()
    logger.debug(f"User staged: {user.id}")
    return user


async def update_user(db: AsyncSession, user: User, update_data: Dict[str, Any]) -> User:
    for field, value in update_data.items():
        setattr(user, field, value)
    await db.flush()
    return user


async def get_users_with_default_organization(db: AsyncSession, organization_id: str) -> List[User]:
    result = await db.execute(select(User).filter(User.default_organization_id == organization_id))
    return list(result.scalars().all())


async def get_fallback_organization_id(
        db: AsyncSession,
        user_id: str,
        exclude_organization_id: Optional[str] = None
) -> Optional[str]:
    """Most recently joined organization of the user, other than the excluded one"""
    query = (
        select(UserOrganization.organization_id)
        .filter(UserOrganization.user_id == user_id)
        .order_by(UserOrganization.created_at.desc())
    )
    if exclude_organization_id:
        query = query.filter(UserOrganization.organization_id != exclude_organization_id)
    result = await db.execute(query.limit(1))
    return result.scalars().first()
