# app/db/models/ticket.py
"""Support ticket models"""
from sqlalchemy import (
    Column, String, Text, Integer, Boolean, ForeignKey, Index, Enum, DateTime, CheckConstraint
)
from sqlalchemy.orm import relationship

from app.db.models.base import Base, TimestampMixin, UUIDMixin
from app.db.models.enums import TicketStatus, TicketPriority, TicketCategory
from app.utils.helpers import utc_now


class SupportTicket(Base, UUIDMixin, TimestampMixin):
    __tablename__ = "support_tickets"

    reference = Column(String(32), unique=True, nullable=False, index=True)
    subject = Column(String(100), nullable=False)
    message = Column(Text, nullable=False)
    status = Column(Enum(TicketStatus), nullable=False, default=TicketStatus.OPEN)
    priority = Column(Enum(TicketPriority), nullable=False, default=TicketPriority.MEDIUM)
    category = Column(Enum(TicketCategory), nullable=False, default=TicketCategory.GENERAL)
    organization_id = Column(String(36), ForeignKey("organizations.id", ondelete="SET NULL"), nullable=True)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False)
    assignee_id = Column(String(36), ForeignKey("users.id"), nullable=True)
    resolved_at = Column(DateTime(timezone=True), nullable=True)

    reporter = relationship("User", foreign_keys=[user_id])
    assignee = relationship("User", foreign_keys=[assignee_id])

    __table_args__ = (
        Index('idx_ticket_org_status', 'organization_id', 'status'),
        Index('idx_ticket_user', 'user_id'),
        Index('idx_ticket_assignee', 'assignee_id'),
        Index('idx_ticket_created_at', 'created_at'),
    )

    def __repr__(self):
        return f"<SupportTicket reference={self.reference} status={self.status}>"


class TicketComment(Base, UUIDMixin, TimestampMixin):
    __tablename__ = "ticket_comments"

    ticket_id = Column(String(36), ForeignKey("support_tickets.id", ondelete="CASCADE"), nullable=False)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False)
    message = Column(Text, nullable=False)
    is_internal = Column(Boolean, nullable=False, default=False)

    author = relationship("User")

    __table_args__ = (
        Index('idx_comment_ticket_created', 'ticket_id', 'created_at'),
    )


class TicketAttachment(Base, UUIDMixin):
    """File attached to either a ticket or a comment, never both"""
    __tablename__ = "ticket_attachments"

    ticket_id = Column(String(36), ForeignKey("support_tickets.id", ondelete="CASCADE"), nullable=True)
    comment_id = Column(String(36), ForeignKey("ticket_comments.id", ondelete="CASCADE"), nullable=True)
    file_name = Column(String(255), nullable=False)
    file_size = Column(Integer, nullable=False)
    file_type = Column(String(255), nullable=False)
    file_url = Column(String(2048), nullable=False)
    created_at = Column(DateTime(timezone=True), default=utc_now, nullable=False)

    __table_args__ = (
        CheckConstraint(
            "(ticket_id IS NULL) <> (comment_id IS NULL)",
            name="ck_attachment_single_owner",
        ),
        CheckConstraint("file_size > 0", name="ck_attachment_size_positive"),
        Index('idx_attachment_ticket', 'ticket_id'),
        Index('idx_attachment_comment', 'comment_id'),
    )
