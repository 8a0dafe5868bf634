from fastapi import APIRouter, Depends, Security
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from autocrm.modules.auth.schemas import (
    LoginRequest, RegisterRequest, TokenResponse, RegisterResponse, AuthUser
)
from autocrm.modules.auth.service import AuthService
from autocrm.core.dependencies import get_auth_service, get_current_user
from autocrm.config.permissions_config import get_role_permissions

router = APIRouter(prefix="/auth", tags=["auth"])

# Security scheme for JWT Bearer token
security = HTTPBearer()


def get_current_token(
    credentials: HTTPAuthorizationCredentials = Security(security)
) -> str:
    """Extract JWT token from Authorization header"""
    return credentials.credentials


@router.post("/register", response_model=RegisterResponse, status_code=201)
async def register(
    register_data: RegisterRequest,
    service: AuthService = Depends(get_auth_service)
):
    """Register a new user"""
    return service.register(register_data)


@router.post("/login", response_model=TokenResponse)
async def login(
    login_data: LoginRequest,
    service: AuthService = Depends(get_auth_service)
):
    """Login and get access token"""
    return service.login(login_data)


@router.post("/logout", status_code=200)
async def logout(
    token: str = Depends(get_current_token),
    service: AuthService = Depends(get_auth_service)
):
    """Logout and invalidate token"""
    service.logout(token)
    return {"message": "Logged out successfully"}


@router.get("/me")
async def get_me(current_user: AuthUser = Depends(get_current_user)):
    """Current user, organization roles and the permissions each role grants."""
    permissions = {
        organization_id: get_role_permissions(role)
        for organization_id, role in current_user.organizations.items()
    }
    return {**current_user.model_dump(), "permissions": permissions}
