# app/db/models/invitation.py
"""Organization invitations"""
from sqlalchemy import Column, String, ForeignKey, Index, Enum, DateTime, text
from sqlalchemy.orm import relationship

from app.db.models.base import Base, TimestampMixin, UUIDMixin
from app.db.models.enums import OrganizationRole, InvitationStatus


class Invitation(Base, UUIDMixin, TimestampMixin):
    __tablename__ = "invitations"

    email = Column(String(255), nullable=False, index=True)
    token = Column(String(128), unique=True, nullable=False, index=True)
    role = Column(Enum(OrganizationRole), nullable=False, default=OrganizationRole.MEMBER)
    status = Column(Enum(InvitationStatus), nullable=False, default=InvitationStatus.PENDING)
    expires_at = Column(DateTime(timezone=True), nullable=False)
    organization_id = Column(String(36), ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False)
    inviter_id = Column(String(36), ForeignKey("users.id"), nullable=False)

    organization = relationship("Organization")
    inviter = relationship("User")

    __table_args__ = (
        # At most one PENDING invitation per (email, organization)
        Index(
            'uq_invitation_pending_email_org', 'email', 'organization_id',
            unique=True,
            postgresql_where=text("status = 'PENDING'"),
            sqlite_where=text("status = 'PENDING'"),
        ),
        Index('idx_invitation_org_status', 'organization_id', 'status'),
    )

    def __repr__(self):
        return f"<Invitation email={self.email} org_id={self.organization_id} status={self.status}>"
