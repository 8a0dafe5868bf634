"""Thin wrapper over Supabase Auth used by the client screens."""

import logging
from typing import Any, Optional, Tuple

from supabase import AsyncClient, acreate_client

from autocrm.config import Settings

logger = logging.getLogger(__name__)


class AuthClientError(Exception):
    """Failure reported by Supabase Auth; the message is shown to the user as is."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class AuthClient:
    def __init__(self, supabase: AsyncClient):
        self.supabase = supabase

    async def sign_up(self, email: str, password: str) -> Tuple[Any, Optional[Any]]:
        """Create an identity; returns (user, session). The session is None until the email is confirmed."""
        try:
            response = await self.supabase.auth.sign_up({"email": email, "password": password})
        except Exception as e:
            raise AuthClientError(str(e))
        if not response.user:
            raise AuthClientError("Failed to register user")
        return response.user, response.session

    async def sign_in(self, email: str, password: str) -> Any:
        try:
            response = await self.supabase.auth.sign_in_with_password({"email": email, "password": password})
        except Exception as e:
            raise AuthClientError(str(e))
        if not response.session:
            raise AuthClientError("Invalid login credentials")
        return response.session

    async def sign_out(self):
        try:
            await self.supabase.auth.sign_out()
        except Exception as e:
            raise AuthClientError(str(e))

    async def get_session(self) -> Optional[Any]:
        """Current session, or None when signed out"""
        try:
            return await self.supabase.auth.get_session()
        except Exception as e:
            logger.warning(f"Could not read auth session: {e}")
            return None


async def create_auth_client(settings: Settings) -> AuthClient:
    supabase = await acreate_client(settings.supabase_url, settings.supabase_key)
    return AuthClient(supabase)
