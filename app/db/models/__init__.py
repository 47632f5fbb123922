# app/db/models/__init__.py
"""
Database models package
Imports all models for easy access
"""

from app.db.models.base import Base, TimestampMixin, UUIDMixin

from app.db.models.enums import (
    SystemRole, OrganizationRole, InvitationStatus,
    TicketStatus, TicketPriority, TicketCategory
)

from app.db.models.user import User
from app.db.models.organization import Organization, UserOrganization
from app.db.models.invitation import Invitation
from app.db.models.ticket import SupportTicket, TicketComment, TicketAttachment

__all__ = [
    # Base classes
    'Base', 'TimestampMixin', 'UUIDMixin',

    # Enums
    'SystemRole', 'OrganizationRole', 'InvitationStatus',
    'TicketStatus', 'TicketPriority', 'TicketCategory',

    # Models
    'User', 'Organization', 'UserOrganization', 'Invitation',
    'SupportTicket', 'TicketComment', 'TicketAttachment',
]
