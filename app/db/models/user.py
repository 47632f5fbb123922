# app/db/models/user.py
"""Platform user accounts"""
from sqlalchemy import Column, String, Enum, Index
from sqlalchemy.orm import relationship

from app.db.models.base import Base, TimestampMixin, UUIDMixin
from app.db.models.enums import SystemRole


class User(Base, UUIDMixin, TimestampMixin):
    """User provisioned from the identity provider on first sign-in"""
    __tablename__ = "users"

    email = Column(String(255), unique=True, index=True, nullable=True)
    name = Column(String(255), nullable=True)
    image = Column(String(1024), nullable=True)
    system_role = Column(Enum(SystemRole), nullable=False, default=SystemRole.USER)

    # Weak reference: no foreign key so organization deletion never blocks on it
    default_organization_id = Column(String(36), nullable=True)

    memberships = relationship("UserOrganization", back_populates="user", passive_deletes=True)

    __table_args__ = (
        Index('idx_user_system_role', 'system_role'),
    )

    def __repr__(self):
        return f"<User email={self.email} role={self.system_role}>"
