# app/api/v1/endpoints/tickets.py
"""
Support ticket endpoints: tenant-scoped listing, comments with an
internal/customer split, attachments and staff-only status changes.
"""
from fastapi import APIRouter, Depends, Query, Request, Response, status
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List, Optional

from app.db.database import get_db
from app.db.models.enums import TicketStatus, TicketPriority, TicketCategory
from app.api.v1.schemas.tickets import (
    AttachmentIn,
    AttachmentResponse,
    CommentCreate,
    CommentResponse,
    CommentUpdate,
    TicketAssign,
    TicketCreate,
    TicketDetailResponse,
    TicketListItem,
    TicketResponse,
    TicketStatusUpdate,
    TicketUpdate,
)
from app.auth.dependencies import get_request_context
from app.core.context import RequestContext
from app.core.pagination import PaginationParams, PaginatedResponse, CursorPage, get_pagination, MAX_PAGE_SIZE
from app.core.rate_limit import rate_limit
from app.services import tickets as ticket_service
from app.services.tickets import TicketFilters

router = APIRouter()


def get_ticket_filters(
        organization_id: Optional[str] = Query(None, description="Defaults to the X-Organization-Id header"),
        status_filter: Optional[TicketStatus] = Query(None, alias="status"),
        priority: Optional[TicketPriority] = Query(None),
        category: Optional[TicketCategory] = Query(None),
        assignee_id: Optional[str] = Query(None)
) -> TicketFilters:
    return TicketFilters(
        organization_id=organization_id,
        status=status_filter,
        priority=priority,
        category=category,
        assignee_id=assignee_id
    )


@router.get("/", response_model=PaginatedResponse[TicketListItem])
@rate_limit(operation_type="read")
async def list_tickets(
        request: Request,
        pagination: PaginationParams = Depends(get_pagination),
        filters: TicketFilters = Depends(get_ticket_filters),
        db: AsyncSession = Depends(get_db),
        ctx: RequestContext = Depends(get_request_context)
):
    """
    List tickets in an organization.

    Organization admins and owners see every ticket, members only the ones
    they reported or are assigned to. Support staff may omit the
    organization to list across tenants.
    """
    listing = await ticket_service.list_tickets(db, ctx, filters, pagination, request=request)
    page = listing.page
    return PaginatedResponse[TicketListItem](
        items=[TicketListItem.from_model(t, listing.comment_counts) for t in page.items],
        total=page.total,
        page=page.page,
        size=page.size,
        pages=page.pages,
        has_next=page.has_next,
        has_prev=page.has_prev,
        links=page.links
    )


@router.get("/feed", response_model=CursorPage[TicketListItem])
@rate_limit(operation_type="read")
async def ticket_feed(
        request: Request,
        limit: int = Query(10, ge=1, le=MAX_PAGE_SIZE),
        cursor: Optional[str] = Query(None, description="next_cursor from the previous page"),
        search: Optional[str] = Query(None),
        filters: TicketFilters = Depends(get_ticket_filters),
        db: AsyncSession = Depends(get_db),
        ctx: RequestContext = Depends(get_request_context)
):
    feed = await ticket_service.list_tickets_by_cursor(db, ctx, filters, limit=limit, cursor=cursor, search=search)
    return CursorPage[TicketListItem](
        items=[TicketListItem.from_model(t, feed.comment_counts) for t in feed.items],
        next_cursor=feed.next_cursor
    )


@router.post("/", response_model=TicketResponse, status_code=status.HTTP_201_CREATED)
@rate_limit(operation_type="write")
async def create_ticket(
        request: Request,
        ticket_data: TicketCreate,
        db: AsyncSession = Depends(get_db),
        ctx: RequestContext = Depends(get_request_context)
):
    ticket = await ticket_service.create_ticket(db, ctx, ticket_data.model_dump())
    return TicketResponse.model_validate(ticket)


@router.get("/{ticket_id}", response_model=TicketDetailResponse)
@rate_limit(operation_type="read")
async def get_ticket(
        request: Request,
        ticket_id: str,
        db: AsyncSession = Depends(get_db),
        ctx: RequestContext = Depends(get_request_context)
):
    """
    Ticket with its comments and attachments. Internal comments are only
    included for support staff and the assignee.
    """
    detail = await ticket_service.get_ticket(db, ctx, ticket_id)
    return TicketDetailResponse.from_detail(detail)


@router.patch("/{ticket_id}", response_model=TicketResponse)
@rate_limit(operation_type="write")
async def update_ticket(
        request: Request,
        ticket_id: str,
        ticket_update: TicketUpdate,
        db: AsyncSession = Depends(get_db),
        ctx: RequestContext = Depends(get_request_context)
):
    ticket = await ticket_service.update_ticket(db, ctx, ticket_id, ticket_update.model_dump(exclude_unset=True))
    return TicketResponse.model_validate(ticket)


@router.put("/{ticket_id}/assignee", response_model=TicketResponse)
@rate_limit(operation_type="write")
async def assign_ticket(
        request: Request,
        ticket_id: str,
        assignment: TicketAssign,
        db: AsyncSession = Depends(get_db),
        ctx: RequestContext = Depends(get_request_context)
):
    ticket = await ticket_service.assign_ticket(db, ctx, ticket_id, assignment.assignee_id)
    return TicketResponse.model_validate(ticket)


@router.patch("/{ticket_id}/status", response_model=TicketResponse)
@rate_limit(operation_type="write")
async def update_ticket_status(
        request: Request,
        ticket_id: str,
        status_update: TicketStatusUpdate,
        db: AsyncSession = Depends(get_db),
        ctx: RequestContext = Depends(get_request_context)
):
    """
    Move a ticket through its lifecycle. Support staff only; each change is
    recorded as an internal comment.
    """
    ticket = await ticket_service.update_status(db, ctx, ticket_id, status_update.status)
    return TicketResponse.model_validate(ticket)


@router.get("/{ticket_id}/comments", response_model=List[CommentResponse])
@rate_limit(operation_type="read")
async def list_comments(
        request: Request,
        ticket_id: str,
        db: AsyncSession = Depends(get_db),
        ctx: RequestContext = Depends(get_request_context)
):
    comments = await ticket_service.get_comments(db, ctx, ticket_id)
    return [CommentResponse.from_model(c) for c in comments]


@router.post("/{ticket_id}/comments", response_model=CommentResponse, status_code=status.HTTP_201_CREATED)
@rate_limit(operation_type="write")
async def add_comment(
        request: Request,
        ticket_id: str,
        comment_data: CommentCreate,
        db: AsyncSession = Depends(get_db),
        ctx: RequestContext = Depends(get_request_context)
):
    """
    Reply on a ticket. A customer reply reopens a resolved or closed ticket
    and moves one waiting on NEEDS_INFO back to IN_PROGRESS.
    """
    comment = await ticket_service.add_comment(
        db,
        ctx,
        ticket_id,
        comment_data.message,
        is_internal=comment_data.is_internal,
        attachments=[a.model_dump() for a in comment_data.attachments]
    )
    return CommentResponse.from_model(comment, include_author=False)


@router.patch("/comments/{comment_id}", response_model=CommentResponse)
@rate_limit(operation_type="write")
async def edit_comment(
        request: Request,
        comment_id: str,
        comment_update: CommentUpdate,
        db: AsyncSession = Depends(get_db),
        ctx: RequestContext = Depends(get_request_context)
):
    comment = await ticket_service.edit_comment(
        db, ctx, comment_id, message=comment_update.message, is_internal=comment_update.is_internal
    )
    return CommentResponse.from_model(comment, include_author=False)


@router.delete("/comments/{comment_id}", status_code=status.HTTP_204_NO_CONTENT)
@rate_limit(operation_type="delete")
async def delete_comment(
        request: Request,
        comment_id: str,
        db: AsyncSession = Depends(get_db),
        ctx: RequestContext = Depends(get_request_context)
):
    await ticket_service.delete_comment(db, ctx, comment_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/{ticket_id}/attachments", response_model=AttachmentResponse, status_code=status.HTTP_201_CREATED)
@rate_limit(operation_type="write")
async def add_attachment(
        request: Request,
        ticket_id: str,
        attachment: AttachmentIn,
        db: AsyncSession = Depends(get_db),
        ctx: RequestContext = Depends(get_request_context)
):
    """Attach an already uploaded file (see POST /uploads) to the ticket"""
    row = await ticket_service.add_attachment(db, ctx, ticket_id, attachment.model_dump())
    return AttachmentResponse.model_validate(row)


@router.delete("/{ticket_id}", status_code=status.HTTP_204_NO_CONTENT)
@rate_limit(operation_type="delete")
async def delete_ticket(
        request: Request,
        ticket_id: str,
        db: AsyncSession = Depends(get_db),
        ctx: RequestContext = Depends(get_request_context)
):
    await ticket_service.delete_ticket(db, ctx, ticket_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
