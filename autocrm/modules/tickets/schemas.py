from pydantic import BaseModel, Field
from typing import Optional
from autocrm.schema.tables import TicketPriority, TicketStatus


class TicketCreate(BaseModel):
    id: Optional[str] = None  # client-generated id from an offline create
    organization_id: str
    title: str = Field(min_length=1)
    description: Optional[str] = None
    status: TicketStatus = "open"
    priority: TicketPriority = "medium"
    assigned_to: Optional[str] = None


class TicketUpdate(BaseModel):
    title: Optional[str] = Field(default=None, min_length=1)
    description: Optional[str] = None
    status: Optional[TicketStatus] = None
    priority: Optional[TicketPriority] = None
    assigned_to: Optional[str] = None


class TicketListQuery(BaseModel):
    organization_id: str
    status: Optional[TicketStatus] = None
    priority: Optional[TicketPriority] = None
    assigned_to: Optional[str] = None


class CommentCreate(BaseModel):
    id: Optional[str] = None
    ticket_id: str
    comment: str = Field(min_length=1)


class TicketRef(BaseModel):
    ticket_id: str


class TicketUpdateRequest(TicketUpdate):
    ticket_id: str
