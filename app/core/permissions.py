# app/core/permissions.py
"""
Authorization predicates.

Pure functions over already-loaded rows; callers load the membership role
and pass it in so every check reads the same way.
"""
from typing import Optional

from app.db.models import User, SupportTicket, TicketComment, Organization
from app.db.models.enums import SystemRole, OrganizationRole


def is_system_admin(user: Optional[User]) -> bool:
    return user is not None and user.system_role == SystemRole.ADMIN


def is_system_support(user: Optional[User]) -> bool:
    return user is not None and user.system_role in (SystemRole.SUPPORT, SystemRole.ADMIN)


def is_system_staff(user: Optional[User]) -> bool:
    """Platform staff: SUPPORT or ADMIN"""
    return is_system_support(user)


def is_owner(user: User, organization: Organization) -> bool:
    return user.id == organization.owner_id


def is_member(role: Optional[OrganizationRole]) -> bool:
    return role is not None


def is_admin_or_owner(role: Optional[OrganizationRole]) -> bool:
    return role in (OrganizationRole.ADMIN, OrganizationRole.OWNER)


def can_view_ticket(user: User, ticket: SupportTicket, org_role: Optional[OrganizationRole]) -> bool:
    """``org_role`` is the user's role in ticket.organization_id, if any"""
    return (
        is_system_staff(user)
        or user.id == ticket.user_id
        or (ticket.assignee_id is not None and user.id == ticket.assignee_id)
        or is_admin_or_owner(org_role)
    )


def can_view_internal_comments(user: User, ticket: SupportTicket) -> bool:
    # Tenant admins are deliberately excluded
    return is_system_staff(user) or (ticket.assignee_id is not None and user.id == ticket.assignee_id)


def can_write_internal_comments(user: User, ticket: SupportTicket) -> bool:
    return can_view_internal_comments(user, ticket)


def can_view_comment(user: User, ticket: SupportTicket, comment: TicketComment) -> bool:
    return not comment.is_internal or can_view_internal_comments(user, ticket)


def can_modify_comment(user: User, comment: TicketComment) -> bool:
    return is_system_staff(user) or user.id == comment.user_id


def can_delete_ticket(user: User, org_role: Optional[OrganizationRole]) -> bool:
    return is_system_admin(user) or is_admin_or_owner(org_role)
