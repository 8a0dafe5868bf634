from pydantic import BaseModel, EmailStr
from typing import Optional


class InvitationCreate(BaseModel):
    id: Optional[str] = None
    organization_id: str
    email: EmailStr
    role: str = "member"


class InvitationUpdate(BaseModel):
    email: Optional[EmailStr] = None
    role: Optional[str] = None


class InvitationListQuery(BaseModel):
    organization_id: Optional[str] = None


class InvitationAccept(BaseModel):
    invitation_id: str
