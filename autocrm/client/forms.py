from pydantic import BaseModel, EmailStr, Field, ValidationError, field_validator, model_validator
from typing import Optional
from autocrm.schema.tables import TicketPriority


def form_error(error: ValidationError) -> str:
    """First validation problem as a message fit to show next to the form"""
    err = error.errors()[0]
    if err["type"] == "value_error" and "error" in err.get("ctx", {}):
        return str(err["ctx"]["error"])
    field = ".".join(str(part) for part in err.get("loc", ()))
    return f"{field}: {err['msg']}" if field else err["msg"]


class LoginForm(BaseModel):
    email: EmailStr
    password: str = Field(min_length=1)


class RegistrationForm(BaseModel):
    email: EmailStr
    password: str = Field(min_length=1)
    confirm_password: str

    @model_validator(mode="after")
    def passwords_match(self):
        if self.password != self.confirm_password:
            raise ValueError("Passwords do not match")
        return self


class CreateProfileForm(BaseModel):
    full_name: str
    avatar_url: Optional[str] = None

    @field_validator("full_name")
    @classmethod
    def full_name_required(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Full name is required")
        return v

    @field_validator("avatar_url")
    @classmethod
    def blank_avatar_is_none(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        return v.strip() or None


class CreateOrganizationForm(BaseModel):
    name: str

    @field_validator("name")
    @classmethod
    def name_required(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Organization name is required")
        return v


class CreateTicketForm(BaseModel):
    title: str
    description: Optional[str] = None
    priority: TicketPriority = "medium"

    @field_validator("title")
    @classmethod
    def title_required(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Title is required")
        return v


class CommentForm(BaseModel):
    comment: str

    @field_validator("comment")
    @classmethod
    def comment_required(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Comment cannot be empty")
        return v
