"""
Core dependencies for authentication and organization access checks
"""

from fastapi import Depends, HTTPException, Request, Security
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from autocrm.config import Settings
from autocrm.config.permissions_config import ADMIN_ROLE, CUSTOMER_ROLE, role_has_permission
from autocrm.core.errors import ForbiddenError
from autocrm.database.supabase_client import get_supabase
from autocrm.modules.auth.schemas import AuthUser
from autocrm.modules.auth.service import AuthService, strip_bearer
from supabase import Client
from typing import Optional
import logging

logger = logging.getLogger(__name__)

security = HTTPBearer()


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_auth_service(request: Request, supabase: Client = Depends(get_supabase)) -> AuthService:
    return AuthService(supabase, request.app.state.token_cache)


def get_current_user(
    credentials: HTTPAuthorizationCredentials = Security(security),
    auth_service: AuthService = Depends(get_auth_service)
) -> AuthUser:
    """Authenticated user from the bearer token; 401 otherwise"""
    return auth_service.authenticate(credentials.credentials)


def get_optional_user(
    request: Request,
    auth_service: AuthService = Depends(get_auth_service)
) -> Optional[AuthUser]:
    """Authenticated user when a valid token is present; anonymous (None) otherwise"""
    token = strip_bearer(request.headers.get("authorization"))
    if not token:
        return None
    try:
        return auth_service.authenticate(token)
    except HTTPException as e:
        logger.info(f"Auth error: {e.detail}")
        return None


def check_org_member(user: AuthUser, organization_id: str) -> str:
    """Role of the user in the organization; FORBIDDEN when not a member"""
    role = user.role_in(organization_id)
    if role is None:
        raise ForbiddenError("You are not a member of this organization")
    return role


def check_org_admin(user: AuthUser, organization_id: str) -> str:
    role = check_org_member(user, organization_id)
    if role != ADMIN_ROLE:
        raise ForbiddenError("You must be an organization admin to perform this action")
    return role


def check_org_permission(user: AuthUser, organization_id: str, permission: str) -> str:
    role = check_org_member(user, organization_id)
    if not role_has_permission(role, permission):
        raise ForbiddenError(f"Insufficient permissions. Required: {permission}")
    return role


def can_access_ticket(user: AuthUser, ticket: dict) -> bool:
    """Members see every ticket of their organization; customers only the ones they created"""
    role = user.role_in(ticket["organization_id"])
    if role is None:
        return False
    if role == CUSTOMER_ROLE:
        return ticket.get("created_by") == user.id
    return True
