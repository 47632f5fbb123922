# app/services/tickets.py
"""
Support tickets: access control, the internal/customer comment split and
the status state machine.
"""
import uuid
from dataclasses import dataclass, field
from typing import Optional, List, Dict, Any, Tuple

from fastapi import Request
from sqlalchemy.ext.asyncio import AsyncSession

from app.core import tracing
from app.core.context import RequestContext
from app.core.pagination import AutoPaginator, PaginationParams, PaginatedResponse
from app.core.permissions import (
    can_view_ticket, can_view_internal_comments, can_write_internal_comments,
    can_modify_comment, can_delete_ticket, is_system_staff, is_admin_or_owner
)
from app.db.crud import organization as org_crud
from app.db.crud import ticket as ticket_crud
from app.db.crud import user as user_crud
from app.db.models import SupportTicket, TicketComment, TicketAttachment, User
from app.db.models.enums import TicketStatus, OrganizationRole
from app.exceptions.domain import (
    BadRequestError, ConflictError, ForbiddenError, NotFoundError, service_operation
)
from app.utils.helpers import utc_now

# Moves staff may make through update_status; only a customer reply reopens
# a RESOLVED or CLOSED ticket
ALLOWED_TRANSITIONS: Dict[TicketStatus, Tuple[TicketStatus, ...]] = {
    TicketStatus.OPEN: (TicketStatus.IN_PROGRESS, TicketStatus.DUPLICATE, TicketStatus.CLOSED),
    TicketStatus.IN_PROGRESS: (
        TicketStatus.NEEDS_INFO, TicketStatus.RESOLVED, TicketStatus.DUPLICATE, TicketStatus.CLOSED
    ),
    TicketStatus.NEEDS_INFO: (TicketStatus.IN_PROGRESS,),
    TicketStatus.RESOLVED: (TicketStatus.CLOSED, TicketStatus.IN_PROGRESS, TicketStatus.NEEDS_INFO),
    TicketStatus.CLOSED: (),
    TicketStatus.DUPLICATE: (),
}

# Status changes caused by a customer reply
CUSTOMER_REPLY_TRANSITIONS: Dict[TicketStatus, TicketStatus] = {
    TicketStatus.RESOLVED: TicketStatus.OPEN,
    TicketStatus.CLOSED: TicketStatus.OPEN,
    TicketStatus.NEEDS_INFO: TicketStatus.IN_PROGRESS,
}

EDITABLE_FIELDS = ("subject", "message", "category", "priority")
SORTABLE_FIELDS = ("created_at", "updated_at", "priority", "status", "subject", "reference")
SEARCH_FIELDS = ["subject", "reference"]


@dataclass
class TicketFilters:
    organization_id: Optional[str] = None
    status: Optional[TicketStatus] = None
    priority: Optional[Any] = None
    category: Optional[Any] = None
    assignee_id: Optional[str] = None


@dataclass
class TicketDetail:
    ticket: SupportTicket
    comments: List[TicketComment]
    attachments: List[TicketAttachment]
    comment_attachments: Dict[str, List[TicketAttachment]] = field(default_factory=dict)


@dataclass
class TicketListing:
    page: PaginatedResponse
    comment_counts: Dict[str, int]


@dataclass
class TicketFeed:
    items: List[SupportTicket]
    comment_counts: Dict[str, int]
    next_cursor: Optional[str] = None


def generate_reference() -> str:
    return f"TICK-{uuid.uuid4().hex[:8].upper()}"


def set_status(ticket: SupportTicket, new_status: TicketStatus) -> None:
    """Change status keeping resolved_at in step with RESOLVED"""
    if new_status == TicketStatus.RESOLVED:
        ticket.resolved_at = utc_now()
    elif ticket.status == TicketStatus.RESOLVED:
        ticket.resolved_at = None
    ticket.status = new_status


async def _load_accessible_ticket(
        db: AsyncSession,
        actor: User,
        ticket_id: str
) -> Tuple[SupportTicket, Optional[OrganizationRole]]:
    ticket = await ticket_crud.get_ticket_by_id(db, ticket_id)
    if not ticket:
        raise NotFoundError("Ticket not found")
    role = await org_crud.get_member_role(db, actor.id, ticket.organization_id)
    if not can_view_ticket(actor, ticket, role):
        raise ForbiddenError("You do not have access to this ticket")
    return ticket, role


async def _unique_reference(db: AsyncSession) -> str:
    for _ in range(5):
        reference = generate_reference()
        if not await ticket_crud.reference_exists(db, reference):
            return reference
    raise ConflictError("Could not allocate a ticket reference")


def _attachment_rows(attachments: Optional[List[Dict[str, Any]]]) -> List[Dict[str, Any]]:
    rows = []
    for attachment in attachments or []:
        if attachment.get("file_size", 0) <= 0:
            raise BadRequestError("Attachment file_size must be positive")
        rows.append({
            "file_name": attachment["file_name"],
            "file_size": attachment["file_size"],
            "file_type": attachment["file_type"],
            "file_url": attachment["file_url"],
        })
    return rows


@service_operation("create_ticket")
async def create_ticket(db: AsyncSession, ctx: RequestContext, data: Dict[str, Any]) -> SupportTicket:
    actor = ctx.require_principal()
    org_id = ctx.scope_organization(data.get("organization_id"))
    if not org_id:
        raise BadRequestError("organization_id is required")

    org = await org_crud.get_organization_by_id(db, org_id)
    if not org:
        raise NotFoundError("Organization not found")
    role = await org_crud.get_member_role(db, actor.id, org_id)
    if role is None and not is_system_staff(actor):
        raise ForbiddenError("You are not a member of this organization")

    ticket_data = {
        "reference": await _unique_reference(db),
        "subject": data["subject"],
        "message": data["message"],
        "organization_id": org_id,
        "user_id": actor.id,
        "status": TicketStatus.OPEN,
    }
    for optional in ("category", "priority"):
        if data.get(optional) is not None:
            ticket_data[optional] = data[optional]

    ticket = await ticket_crud.create_ticket(db, ticket_data)
    rows = _attachment_rows(data.get("attachments"))
    if rows:
        await ticket_crud.add_attachments(db, rows, ticket_id=ticket.id)

    await db.commit()
    tracing.info("Ticket created", ticket_id=ticket.id, reference=ticket.reference, org_id=org_id)
    return ticket


@service_operation("get_ticket")
async def get_ticket(db: AsyncSession, ctx: RequestContext, ticket_id: str) -> TicketDetail:
    actor = ctx.require_principal()
    ticket, _ = await _load_accessible_ticket(db, actor, ticket_id)

    comments = await ticket_crud.get_comments(
        db, ticket.id, include_internal=can_view_internal_comments(actor, ticket)
    )
    return TicketDetail(
        ticket=ticket,
        comments=comments,
        attachments=await ticket_crud.get_ticket_attachments(db, ticket.id),
        comment_attachments=await ticket_crud.get_comment_attachments(db, [c.id for c in comments]),
    )


@service_operation("get_comments")
async def get_comments(db: AsyncSession, ctx: RequestContext, ticket_id: str) -> List[TicketComment]:
    actor = ctx.require_principal()
    ticket, _ = await _load_accessible_ticket(db, actor, ticket_id)
    return await ticket_crud.get_comments(
        db, ticket.id, include_internal=can_view_internal_comments(actor, ticket)
    )


@service_operation("update_ticket")
async def update_ticket(
        db: AsyncSession,
        ctx: RequestContext,
        ticket_id: str,
        patch: Dict[str, Any]
) -> SupportTicket:
    actor = ctx.require_principal()
    ticket, _ = await _load_accessible_ticket(db, actor, ticket_id)

    changed = [name for name in EDITABLE_FIELDS if name in patch and patch[name] is not None]
    for name in changed:
        setattr(ticket, name, patch[name])

    await db.commit()
    tracing.info("Ticket updated", ticket_id=ticket.id, fields=changed)
    return ticket


@service_operation("assign_ticket")
async def assign_ticket(
        db: AsyncSession,
        ctx: RequestContext,
        ticket_id: str,
        assignee_id: Optional[str]
) -> SupportTicket:
    actor = ctx.require_principal()
    if not is_system_staff(actor):
        raise ForbiddenError("Only support staff can assign tickets")

    ticket = await ticket_crud.get_ticket_by_id(db, ticket_id)
    if not ticket:
        raise NotFoundError("Ticket not found")

    if assignee_id is not None:
        assignee = await user_crud.get_user_by_id(db, assignee_id)
        if not assignee:
            raise NotFoundError("Assignee not found")
        if not is_system_staff(assignee):
            raise BadRequestError("Tickets can only be assigned to support staff")

    ticket.assignee_id = assignee_id
    await db.commit()
    tracing.info("Ticket assigned", ticket_id=ticket.id, assignee_id=assignee_id)
    return ticket


@service_operation("update_status")
async def update_status(
        db: AsyncSession,
        ctx: RequestContext,
        ticket_id: str,
        new_status: TicketStatus
) -> SupportTicket:
    actor = ctx.require_principal()
    if not is_system_staff(actor):
        raise ForbiddenError("Only support staff can change ticket status")

    ticket = await ticket_crud.get_ticket_by_id(db, ticket_id)
    if not ticket:
        raise NotFoundError("Ticket not found")

    previous = ticket.status
    if new_status == previous:
        raise ConflictError(f"Ticket is already {previous.value}")
    if new_status not in ALLOWED_TRANSITIONS[previous]:
        raise ConflictError(f"Cannot change ticket status from {previous.value} to {new_status.value}")

    set_status(ticket, new_status)
    await ticket_crud.create_comment(db, {
        "ticket_id": ticket.id,
        "user_id": actor.id,
        "message": f"Status changed from {previous.value} to {new_status.value}",
        "is_internal": True,
    })

    await db.commit()
    tracing.info(
        "Ticket status changed",
        ticket_id=ticket.id,
        old_status=previous.value,
        new_status=new_status.value,
        actor_id=actor.id
    )
    return ticket


@service_operation("add_comment")
async def add_comment(
        db: AsyncSession,
        ctx: RequestContext,
        ticket_id: str,
        message: str,
        is_internal: bool = False,
        attachments: Optional[List[Dict[str, Any]]] = None
) -> TicketComment:
    actor = ctx.require_principal()
    ticket, _ = await _load_accessible_ticket(db, actor, ticket_id)

    if is_internal and not can_write_internal_comments(actor, ticket):
        raise ForbiddenError("Only support staff or the assignee can add internal comments")

    comment = await ticket_crud.create_comment(db, {
        "ticket_id": ticket.id,
        "user_id": actor.id,
        "message": message,
        "is_internal": is_internal,
    })
    rows = _attachment_rows(attachments)
    if rows:
        await ticket_crud.add_attachments(db, rows, comment_id=comment.id)

    previous = ticket.status
    if not is_internal and not is_system_staff(actor) and previous in CUSTOMER_REPLY_TRANSITIONS:
        set_status(ticket, CUSTOMER_REPLY_TRANSITIONS[previous])
        tracing.info(
            "Ticket reopened by customer reply",
            ticket_id=ticket.id,
            old_status=previous.value,
            new_status=ticket.status.value
        )
    ticket.updated_at = utc_now()

    await db.commit()
    tracing.info("Comment added", ticket_id=ticket.id, comment_id=comment.id, internal=is_internal)
    return comment


@service_operation("edit_comment")
async def edit_comment(
        db: AsyncSession,
        ctx: RequestContext,
        comment_id: str,
        message: Optional[str] = None,
        is_internal: Optional[bool] = None
) -> TicketComment:
    actor = ctx.require_principal()
    comment = await ticket_crud.get_comment_by_id(db, comment_id)
    if not comment:
        raise NotFoundError("Comment not found")
    if not can_modify_comment(actor, comment):
        raise ForbiddenError("Only the author or support staff can edit this comment")

    ticket = await ticket_crud.get_ticket_by_id(db, comment.ticket_id)
    if is_internal is not None and is_internal != comment.is_internal:
        if not can_write_internal_comments(actor, ticket):
            raise ForbiddenError("Only support staff or the assignee can change comment visibility")
        comment.is_internal = is_internal
    if message is not None:
        comment.message = message

    await db.commit()
    return comment


@service_operation("delete_comment")
async def delete_comment(db: AsyncSession, ctx: RequestContext, comment_id: str) -> None:
    actor = ctx.require_principal()
    comment = await ticket_crud.get_comment_by_id(db, comment_id)
    if not comment:
        raise NotFoundError("Comment not found")
    if not can_modify_comment(actor, comment):
        raise ForbiddenError("Only the author or support staff can delete this comment")

    await ticket_crud.delete_comment(db, comment)
    await db.commit()
    tracing.info("Comment deleted", comment_id=comment_id, ticket_id=comment.ticket_id)


@service_operation("add_attachment")
async def add_attachment(
        db: AsyncSession,
        ctx: RequestContext,
        ticket_id: str,
        attachment: Dict[str, Any]
) -> TicketAttachment:
    actor = ctx.require_principal()
    ticket, _ = await _load_accessible_ticket(db, actor, ticket_id)

    rows = await ticket_crud.add_attachments(db, _attachment_rows([attachment]), ticket_id=ticket.id)
    await db.commit()
    return rows[0]


@service_operation("delete_ticket")
async def delete_ticket(db: AsyncSession, ctx: RequestContext, ticket_id: str) -> None:
    actor = ctx.require_principal()
    ticket = await ticket_crud.get_ticket_by_id(db, ticket_id)
    if not ticket:
        raise NotFoundError("Ticket not found")

    role = await org_crud.get_member_role(db, actor.id, ticket.organization_id)
    if not can_delete_ticket(actor, role):
        raise ForbiddenError("Only administrators can delete tickets")

    await ticket_crud.delete_ticket(db, ticket)
    await db.commit()
    tracing.info("Ticket deleted", ticket_id=ticket_id, reference=ticket.reference, actor_id=actor.id)


async def _listing_scope(
        db: AsyncSession,
        ctx: RequestContext,
        organization_id: Optional[str]
) -> Tuple[Optional[str], Optional[str]]:
    """Returns (organization filter, reporter/assignee restriction)"""
    actor = ctx.require_principal()
    org_id = ctx.scope_organization(organization_id)

    if is_system_staff(actor):
        if not org_id:
            tracing.info("Cross-tenant ticket listing", actor_id=actor.id, system_role=actor.system_role.value)
        return org_id, None

    if not org_id:
        raise BadRequestError("organization_id is required")
    role = await org_crud.get_member_role(db, actor.id, org_id)
    if role is None:
        raise ForbiddenError("You are not a member of this organization")
    if is_admin_or_owner(role):
        return org_id, None
    return org_id, actor.id


def _filter_values(filters: TicketFilters) -> Dict[str, Any]:
    return {
        "status": filters.status,
        "priority": filters.priority,
        "category": filters.category,
        "assignee_id": filters.assignee_id,
    }


@service_operation("list_tickets")
async def list_tickets(
        db: AsyncSession,
        ctx: RequestContext,
        filters: TicketFilters,
        pagination: PaginationParams,
        request: Optional[Request] = None
) -> TicketListing:
    actor = ctx.require_principal()
    org_id, restrict_to = await _listing_scope(db, ctx, filters.organization_id)

    page = await AutoPaginator.paginate(
        db,
        SupportTicket,
        pagination,
        filters=_filter_values(filters),
        search_fields=SEARCH_FIELDS,
        sortable_fields=SORTABLE_FIELDS,
        base_query=ticket_crud.visible_tickets_query(org_id, restrict_to),
        request=request,
    )
    counts = await ticket_crud.count_comments(
        db, [t.id for t in page.items], include_internal=is_system_staff(actor)
    )
    return TicketListing(page=page, comment_counts=counts)


@service_operation("list_tickets_by_cursor")
async def list_tickets_by_cursor(
        db: AsyncSession,
        ctx: RequestContext,
        filters: TicketFilters,
        limit: int = 10,
        cursor: Optional[str] = None,
        search: Optional[str] = None
) -> TicketFeed:
    """Newest-first keyset pagination; ``cursor`` is the last ticket id of the previous page"""
    actor = ctx.require_principal()
    org_id, restrict_to = await _listing_scope(db, ctx, filters.organization_id)

    query = AutoPaginator.apply_filters(
        ticket_crud.visible_tickets_query(org_id, restrict_to),
        SupportTicket,
        _filter_values(filters),
        search,
        SEARCH_FIELDS,
    )
    if cursor:
        cursor_ticket = await ticket_crud.get_visible_ticket(db, cursor, org_id, restrict_to)
        if not cursor_ticket:
            raise BadRequestError("Invalid cursor")
        query = ticket_crud.after_cursor(query, cursor_ticket)

    query = query.order_by(SupportTicket.created_at.desc(), SupportTicket.id.desc()).limit(limit + 1)
    result = await db.execute(query)
    items = list(result.scalars().all())

    next_cursor = None
    if len(items) > limit:
        items = items[:limit]
        next_cursor = items[-1].id

    counts = await ticket_crud.count_comments(db, [t.id for t in items], include_internal=is_system_staff(actor))
    return TicketFeed(items=items, comment_counts=counts, next_cursor=next_cursor)
