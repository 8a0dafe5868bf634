from pydantic import BaseModel, Field
from typing import Optional


class ProfileCreate(BaseModel):
    full_name: str = Field(min_length=1)
    avatar_url: Optional[str] = None


class ProfileUpdate(BaseModel):
    full_name: Optional[str] = Field(default=None, min_length=1)
    avatar_url: Optional[str] = None
