# app/db/crud/ticket.py
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select
from sqlalchemy import func, delete, or_, and_, Select
from sqlalchemy.orm import joinedload
from typing import Optional, List, Dict, Any

from app.db.models import SupportTicket, TicketComment, TicketAttachment


async def get_ticket_by_id(db: AsyncSession, ticket_id: str) -> Optional[SupportTicket]:
    result = await db.execute(select(SupportTicket).filter(SupportTicket.id == ticket_id))
    return result.scalars().first()


async def reference_exists(db: AsyncSession, reference: str) -> bool:
    result = await db.execute(
        select(func.count()).select_from(SupportTicket).filter(SupportTicket.reference == reference)
    )
    return (result.scalar() or 0) > 0


async def create_ticket(db: AsyncSession, ticket_data: Dict[str, Any]) -> SupportTicket:
    ticket = SupportTicket(**ticket_data)
    db.add(ticket)
    await db.flush()
    return ticket


async def get_comment_by_id(db: AsyncSession, comment_id: str) -> Optional[TicketComment]:
    result = await db.execute(select(TicketComment).filter(TicketComment.id == comment_id))
    return result.scalars().first()


async def get_comments(
        db: AsyncSession,
        ticket_id: str,
        include_internal: bool
) -> List[TicketComment]:
    query = (
        select(TicketComment)
        .options(joinedload(TicketComment.author))
        .filter(TicketComment.ticket_id == ticket_id)
        .order_by(TicketComment.created_at.asc())
    )
    if not include_internal:
        query = query.filter(TicketComment.is_internal.is_(False))
    result = await db.execute(query)
    return list(result.scalars().unique().all())


async def create_comment(db: AsyncSession, comment_data: Dict[str, Any]) -> TicketComment:
    comment = TicketComment(**comment_data)
    db.add(comment)
    await db.flush()
    return comment


async def add_attachments(
        db: AsyncSession,
        attachments: List[Dict[str, Any]],
        ticket_id: Optional[str] = None,
        comment_id: Optional[str] = None
) -> List[TicketAttachment]:
    rows = [
        TicketAttachment(ticket_id=ticket_id, comment_id=comment_id, **attachment)
        for attachment in attachments
    ]
    db.add_all(rows)
    await db.flush()
    return rows


async def get_ticket_attachments(db: AsyncSession, ticket_id: str) -> List[TicketAttachment]:
    result = await db.execute(
        select(TicketAttachment)
        .filter(TicketAttachment.ticket_id == ticket_id)
        .order_by(TicketAttachment.created_at.asc())
    )
    return list(result.scalars().all())


async def get_comment_attachments(db: AsyncSession, comment_ids: List[str]) -> Dict[str, List[TicketAttachment]]:
    if not comment_ids:
        return {}
    result = await db.execute(
        select(TicketAttachment)
        .filter(TicketAttachment.comment_id.in_(comment_ids))
        .order_by(TicketAttachment.created_at.asc())
    )
    grouped: Dict[str, List[TicketAttachment]] = {}
    for attachment in result.scalars().all():
        grouped.setdefault(attachment.comment_id, []).append(attachment)
    return grouped


async def delete_comment(db: AsyncSession, comment: TicketComment) -> None:
    await db.execute(delete(TicketAttachment).where(TicketAttachment.comment_id == comment.id))
    await db.delete(comment)
    await db.flush()


async def delete_ticket(db: AsyncSession, ticket: SupportTicket) -> None:
    comment_ids = select(TicketComment.id).where(TicketComment.ticket_id == ticket.id)
    await db.execute(
        delete(TicketAttachment).where(
            or_(
                TicketAttachment.ticket_id == ticket.id,
                TicketAttachment.comment_id.in_(comment_ids)
            )
        ).execution_options(synchronize_session=False)
    )
    await db.execute(delete(TicketComment).where(TicketComment.ticket_id == ticket.id))
    await db.delete(ticket)
    await db.flush()


async def count_comments(
        db: AsyncSession,
        ticket_ids: List[str],
        include_internal: bool
) -> Dict[str, int]:
    if not ticket_ids:
        return {}
    query = (
        select(TicketComment.ticket_id, func.count(TicketComment.id))
        .filter(TicketComment.ticket_id.in_(ticket_ids))
        .group_by(TicketComment.ticket_id)
    )
    if not include_internal:
        query = query.filter(TicketComment.is_internal.is_(False))
    result = await db.execute(query)
    return {ticket_id: count for ticket_id, count in result.all()}


def visible_tickets_query(
        organization_id: Optional[str] = None,
        restrict_to_user_id: Optional[str] = None
) -> Select:
    """
    Base listing query. ``restrict_to_user_id`` limits rows to tickets the
    user reported or is assigned to.
    """
    query = select(SupportTicket)
    if organization_id:
        query = query.filter(SupportTicket.organization_id == organization_id)
    if restrict_to_user_id:
        query = query.filter(or_(
            SupportTicket.user_id == restrict_to_user_id,
            SupportTicket.assignee_id == restrict_to_user_id
        ))
    return query


async def get_visible_ticket(
        db: AsyncSession,
        ticket_id: str,
        organization_id: Optional[str] = None,
        restrict_to_user_id: Optional[str] = None
) -> Optional[SupportTicket]:
    query = visible_tickets_query(organization_id, restrict_to_user_id).filter(SupportTicket.id == ticket_id)
    result = await db.execute(query)
    return result.scalars().first()


def after_cursor(query: Select, cursor_ticket: SupportTicket) -> Select:
    """Keyset condition for created_at DESC, id DESC ordering"""
    return query.filter(or_(
        SupportTicket.created_at < cursor_ticket.created_at,
        and_(
            SupportTicket.created_at == cursor_ticket.created_at,
            SupportTicket.id < cursor_ticket.id
        )
    ))
