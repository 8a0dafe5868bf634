from pydantic import BaseModel, Field, field_validator
from typing import Optional


class OrganizationCreate(BaseModel):
    id: Optional[str] = None  # client-generated id from an offline create
    name: str = Field(min_length=1)

    @field_validator("name")
    @classmethod
    def strip_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Organization name is required")
        return v


class OrganizationUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1)


class OrganizationRef(BaseModel):
    organization_id: str


class MemberCreate(BaseModel):
    id: Optional[str] = None
    organization_id: str
    profile_id: str
    role: Optional[str] = "member"


class MemberUpdate(BaseModel):
    role: Optional[str] = None
