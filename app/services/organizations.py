# app/services/organizations.py
"""
Tenant directory: organizations, memberships and default-organization
bookkeeping.
"""
from typing import Optional, List, Dict, Any

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core import tracing
from app.core.config import settings
from app.core.context import RequestContext
from app.core.permissions import is_admin_or_owner, is_owner
from app.db.crud import organization as org_crud
from app.db.crud import user as user_crud
from app.db.models import Organization, User, UserOrganization
from app.db.models.enums import OrganizationRole
from app.exceptions.domain import (
    ConflictError, ForbiddenError, NotFoundError, BadRequestError, service_operation
)
from app.utils.helpers import slugify, random_suffix

UPDATABLE_FIELDS = ("name", "logo", "website", "billing_email", "billing_name")
ASSIGNABLE_ROLES = (OrganizationRole.MEMBER, OrganizationRole.ADMIN)

# Matches Organization.slug
SLUG_MAX_LENGTH = 64
SLUG_SUFFIX_LENGTH = 5


async def load_organization(db: AsyncSession, org_id: str) -> Organization:
    org = await org_crud.get_organization_by_id(db, org_id)
    if not org:
        raise NotFoundError("Organization not found")
    return org


async def require_member(db: AsyncSession, user: User, org_id: str) -> UserOrganization:
    membership = await org_crud.get_membership(db, user.id, org_id)
    if not membership:
        raise ForbiddenError("You are not a member of this organization")
    return membership


async def require_admin_or_owner(db: AsyncSession, user: User, org_id: str) -> UserOrganization:
    membership = await require_member(db, user, org_id)
    if not is_admin_or_owner(membership.role):
        raise ForbiddenError("Only organization admins and owners can perform this action")
    return membership


async def reassign_default_organization(db: AsyncSession, user: User, removed_org_id: str) -> None:
    """Point the user's default at another membership, or clear it"""
    if user.default_organization_id != removed_org_id:
        return
    user.default_organization_id = await user_crud.get_fallback_organization_id(
        db, user.id, exclude_organization_id=removed_org_id
    )


async def _pick_slug(db: AsyncSession, name: str, explicit_slug: Optional[str]) -> str:
    if explicit_slug:
        if await org_crud.slug_exists(db, explicit_slug):
            raise ConflictError(f"Slug '{explicit_slug}' is already taken")
        return explicit_slug

    base = slugify(name, max_length=SLUG_MAX_LENGTH - SLUG_SUFFIX_LENGTH - 1)
    for attempt in range(settings.SLUG_MAX_ATTEMPTS):
        candidate = f"{base}-{random_suffix(SLUG_SUFFIX_LENGTH)}"
        if not await org_crud.slug_exists(db, candidate):
            return candidate
        tracing.debug("Generated slug collided, retrying", slug=candidate, attempt=attempt + 1)
    raise ConflictError("Could not generate a unique slug for this organization")


async def stage_organization(db: AsyncSession, owner: User, data: Dict[str, Any]) -> Organization:
    """
    Add organization, OWNER membership and (if unset) the owner's default
    pointer to the session without committing.
    """
    slug = await _pick_slug(db, data["name"], data.get("slug"))
    org_data = {k: data.get(k) for k in ("name", "logo", "website")}
    org = await org_crud.create_organization(db, {**org_data, "slug": slug}, owner.id)
    if not owner.default_organization_id:
        owner.default_organization_id = org.id
    return org


@service_operation("create_organization")
async def create_organization(db: AsyncSession, ctx: RequestContext, data: Dict[str, Any]) -> Organization:
    actor = ctx.require_principal()
    try:
        org = await stage_organization(db, actor, data)
        await db.commit()
    except IntegrityError as e:
        await db.rollback()
        raise ConflictError("An organization with this slug already exists") from e

    tracing.info("Organization created", org_id=org.id, slug=org.slug, owner_id=actor.id)
    return org


@service_operation("get_organization")
async def get_organization(db: AsyncSession, ctx: RequestContext, org_id: str) -> Organization:
    actor = ctx.require_principal()
    org_id = ctx.scope_organization(org_id)
    org = await load_organization(db, org_id)
    await require_member(db, actor, org.id)
    return org


@service_operation("get_organization_by_slug")
async def get_organization_by_slug(db: AsyncSession, ctx: RequestContext, slug: str) -> Organization:
    actor = ctx.require_principal()
    org = await org_crud.get_organization_by_slug(db, slug)
    if not org:
        raise NotFoundError("Organization not found")
    ctx.scope_organization(org.id)
    await require_member(db, actor, org.id)
    return org


@service_operation("list_user_organizations")
async def list_user_organizations(db: AsyncSession, ctx: RequestContext) -> List[UserOrganization]:
    actor = ctx.require_principal()
    return await org_crud.get_user_memberships(db, actor.id)


@service_operation("update_organization")
async def update_organization(
        db: AsyncSession,
        ctx: RequestContext,
        org_id: str,
        patch: Dict[str, Any]
) -> Organization:
    actor = ctx.require_principal()
    org_id = ctx.scope_organization(org_id)
    org = await load_organization(db, org_id)
    await require_admin_or_owner(db, actor, org.id)

    for field, value in patch.items():
        if field in UPDATABLE_FIELDS:
            setattr(org, field, value)

    await db.commit()
    tracing.info("Organization updated", org_id=org.id, fields=sorted(k for k in patch if k in UPDATABLE_FIELDS))
    return org


@service_operation("delete_organization")
async def delete_organization(db: AsyncSession, ctx: RequestContext, org_id: str) -> None:
    actor = ctx.require_principal()
    org_id = ctx.scope_organization(org_id)
    org = await load_organization(db, org_id)
    if not is_owner(actor, org):
        raise ForbiddenError("Only the organization owner can delete the organization")

    member_ids = await org_crud.get_member_user_ids(db, org.id)
    await org_crud.purge_organization(db, org)

    affected = await user_crud.get_users_with_default_organization(db, org.id)
    for user in affected:
        await reassign_default_organization(db, user, org.id)

    await db.commit()
    tracing.info(
        "Organization deleted",
        org_id=org_id,
        members_removed=len(member_ids),
        defaults_reassigned=len(affected)
    )


@service_operation("get_members")
async def get_members(db: AsyncSession, ctx: RequestContext, org_id: str) -> List[UserOrganization]:
    actor = ctx.require_principal()
    org_id = ctx.scope_organization(org_id)
    await load_organization(db, org_id)
    await require_member(db, actor, org_id)
    return await org_crud.get_members(db, org_id)


@service_operation("remove_user")
async def remove_user(db: AsyncSession, ctx: RequestContext, org_id: str, user_id: str) -> None:
    actor = ctx.require_principal()
    org_id = ctx.scope_organization(org_id)
    org = await load_organization(db, org_id)

    if actor.id != user_id:
        await require_admin_or_owner(db, actor, org.id)
    if user_id == org.owner_id:
        raise ForbiddenError("The organization owner cannot be removed")

    membership = await org_crud.get_membership(db, user_id, org.id)
    if not membership:
        raise NotFoundError("User is not a member of this organization")

    await org_crud.remove_member(db, user_id, org.id)
    removed_user = await user_crud.get_user_by_id(db, user_id)
    if removed_user:
        await reassign_default_organization(db, removed_user, org.id)

    await db.commit()
    tracing.info("Member removed", org_id=org.id, user_id=user_id, self_leave=actor.id == user_id)


@service_operation("update_user_role")
async def update_user_role(
        db: AsyncSession,
        ctx: RequestContext,
        org_id: str,
        user_id: str,
        role: OrganizationRole
) -> UserOrganization:
    actor = ctx.require_principal()
    org_id = ctx.scope_organization(org_id)
    org = await load_organization(db, org_id)

    actor_membership = await require_member(db, actor, org.id)
    if actor_membership.role != OrganizationRole.OWNER:
        raise ForbiddenError("Only the organization owner can change user roles")
    if user_id == org.owner_id:
        raise ForbiddenError("The owner's role cannot be changed")
    if role not in ASSIGNABLE_ROLES:
        raise BadRequestError("Role must be MEMBER or ADMIN")

    membership = await org_crud.get_membership(db, user_id, org.id)
    if not membership:
        raise NotFoundError("User is not a member of this organization")

    previous = membership.role
    membership.role = role
    await db.commit()
    tracing.info("Member role changed", org_id=org.id, user_id=user_id, old_role=previous.value, new_role=role.value)
    return membership


@service_operation("set_default_organization")
async def set_default_organization(db: AsyncSession, ctx: RequestContext, org_id: str) -> User:
    actor = ctx.require_principal()
    org_id = ctx.scope_organization(org_id)
    await load_organization(db, org_id)
    await require_member(db, actor, org_id)

    actor.default_organization_id = org_id
    await db.commit()
    return actor
