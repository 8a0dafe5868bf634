from pydantic import BaseModel, EmailStr
from typing import Dict, Optional


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user_id: str
    email: str


class RegisterRequest(BaseModel):
    email: EmailStr
    password: str
    full_name: Optional[str] = None


class RegisterResponse(BaseModel):
    user_id: str
    email: str
    message: str


class AuthUser(BaseModel):
    """Authenticated caller, with its organization memberships (organization_id -> role)."""
    id: str
    email: str
    role: str = "authenticated"
    full_name: Optional[str] = None
    organizations: Dict[str, str] = {}

    def role_in(self, organization_id: str) -> Optional[str]:
        return self.organizations.get(organization_id)
