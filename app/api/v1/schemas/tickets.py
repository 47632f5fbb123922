# app/api/v1/schemas/tickets.py
from pydantic import BaseModel, ConfigDict, Field
from typing import Optional, List, Dict
from datetime import datetime

from app.db.models.enums import TicketStatus, TicketPriority, TicketCategory


class AttachmentIn(BaseModel):
    file_name: str = Field(..., min_length=1, max_length=255)
    file_size: int = Field(..., gt=0)
    file_type: str = Field(..., min_length=1, max_length=255)
    file_url: str = Field(..., min_length=1, max_length=2048)


class AttachmentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    ticket_id: Optional[str] = None
    comment_id: Optional[str] = None
    file_name: str
    file_size: int
    file_type: str
    file_url: str
    created_at: datetime


class TicketCreate(BaseModel):
    subject: str = Field(..., min_length=3, max_length=100)
    message: str = Field(..., min_length=10)
    category: TicketCategory = TicketCategory.GENERAL
    priority: TicketPriority = TicketPriority.MEDIUM
    organization_id: Optional[str] = Field(None, description="Defaults to the X-Organization-Id header")
    attachments: List[AttachmentIn] = Field(default_factory=list)


class TicketUpdate(BaseModel):
    subject: Optional[str] = Field(None, min_length=3, max_length=100)
    message: Optional[str] = Field(None, min_length=10)
    category: Optional[TicketCategory] = None
    priority: Optional[TicketPriority] = None


class TicketStatusUpdate(BaseModel):
    status: TicketStatus


class TicketAssign(BaseModel):
    assignee_id: Optional[str] = Field(None, description="Staff user id, or null to unassign")


class TicketResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    reference: str
    subject: str
    message: str
    status: TicketStatus
    priority: TicketPriority
    category: TicketCategory
    organization_id: Optional[str] = None
    user_id: str
    assignee_id: Optional[str] = None
    resolved_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime


class TicketListItem(TicketResponse):
    comment_count: int = 0

    @classmethod
    def from_model(cls, ticket, counts: Dict[str, int]):
        data = TicketResponse.model_validate(ticket).model_dump()
        return cls(**data, comment_count=counts.get(ticket.id, 0))


class CommentCreate(BaseModel):
    message: str = Field(..., min_length=1)
    is_internal: bool = False
    attachments: List[AttachmentIn] = Field(default_factory=list)


class CommentUpdate(BaseModel):
    message: Optional[str] = Field(None, min_length=1)
    is_internal: Optional[bool] = None


class CommentAuthor(BaseModel):
    id: str
    name: Optional[str] = None
    image: Optional[str] = None


class CommentResponse(BaseModel):
    id: str
    ticket_id: str
    user_id: str
    message: str
    is_internal: bool
    created_at: datetime
    updated_at: datetime
    author: Optional[CommentAuthor] = None
    attachments: List[AttachmentResponse] = Field(default_factory=list)

    @classmethod
    def from_model(cls, comment, attachments=None, include_author: bool = True):
        author = None
        if include_author and "author" in comment.__dict__ and comment.author is not None:
            author = CommentAuthor(id=comment.author.id, name=comment.author.name, image=comment.author.image)
        return cls(
            id=comment.id,
            ticket_id=comment.ticket_id,
            user_id=comment.user_id,
            message=comment.message,
            is_internal=comment.is_internal,
            created_at=comment.created_at,
            updated_at=comment.updated_at,
            author=author,
            attachments=[AttachmentResponse.model_validate(a) for a in attachments or []]
        )


class TicketDetailResponse(TicketResponse):
    comments: List[CommentResponse] = Field(default_factory=list)
    attachments: List[AttachmentResponse] = Field(default_factory=list)

    @classmethod
    def from_detail(cls, detail):
        data = TicketResponse.model_validate(detail.ticket).model_dump()
        return cls(
            **data,
            comments=[
                CommentResponse.from_model(c, detail.comment_attachments.get(c.id))
                for c in detail.comments
            ],
            attachments=[AttachmentResponse.model_validate(a) for a in detail.attachments]
        )
