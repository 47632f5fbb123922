# app/db/models/organization.py
"""Organization and multi-tenancy models"""
from sqlalchemy import Column, String, ForeignKey, Index, Enum, DateTime
from sqlalchemy.orm import relationship

from app.db.models.base import Base, TimestampMixin, UUIDMixin
from app.db.models.enums import OrganizationRole
from app.utils.helpers import utc_now


class Organization(Base, UUIDMixin, TimestampMixin):
    """Tenant; always owned by exactly one user"""
    __tablename__ = "organizations"

    name = Column(String(255), nullable=False)
    slug = Column(String(64), unique=True, nullable=False, index=True)
    logo = Column(String(1024), nullable=True)
    website = Column(String(1024), nullable=True)
    billing_email = Column(String(255), nullable=True)
    billing_name = Column(String(255), nullable=True)
    owner_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)

    owner = relationship("User", foreign_keys=[owner_id])
    members = relationship("UserOrganization", back_populates="organization", passive_deletes=True)

    def __repr__(self):
        return f"<Organization slug={self.slug}>"


class UserOrganization(Base):
    """Membership of a user in an organization"""
    __tablename__ = "user_organizations"

    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), primary_key=True)
    organization_id = Column(String(36), ForeignKey("organizations.id", ondelete="CASCADE"), primary_key=True)
    role = Column(Enum(OrganizationRole), nullable=False, default=OrganizationRole.MEMBER)
    # Joined-at
    created_at = Column(DateTime(timezone=True), default=utc_now, nullable=False)

    user = relationship("User", back_populates="memberships")
    organization = relationship("Organization", back_populates="members")

    __table_args__ = (
        Index('idx_user_org_role', 'organization_id', 'role'),
    )

    def __repr__(self):
        return f"<UserOrganization user_id={self.user_id} org_id={self.organization_id} role={self.role}>"
