import uuid
from sqlalchemy import Column, String, DateTime
from app.db.database import Base
from app.utils.helpers import utc_now


def new_uuid() -> str:
    return str(uuid.uuid4())


class TimestampMixin:
    """Mixin for created_at and updated_at timestamps"""
    created_at = Column(DateTime(timezone=True), default=utc_now, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utc_now, onupdate=utc_now, nullable=False)


class UUIDMixin:
    """Mixin for string UUID primary keys"""
    id = Column(String(36), primary_key=True, default=new_uuid)
