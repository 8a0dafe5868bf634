"""
Handles owned by one client instance. Screens receive the AppContext
explicitly instead of reaching for module-level clients.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

import httpx

from autocrm.client.auth import AuthClient, create_auth_client
from autocrm.client.mirror import ProfileMirror
from autocrm.config import Settings
from autocrm.rpc.client import RpcClient


@dataclass
class ProfileContext:
    """Profile of the signed-in user, once it is known"""
    profile: Optional[Dict[str, Any]] = None
    loading: bool = False

    def set(self, profile: Optional[Dict[str, Any]]):
        self.profile = profile
        self.loading = False

    def clear(self):
        self.profile = None
        self.loading = False


@dataclass
class AppContext:
    settings: Settings
    auth: AuthClient
    rpc: RpcClient
    mirror: ProfileMirror = field(default_factory=ProfileMirror)
    profile: ProfileContext = field(default_factory=ProfileContext)

    async def session(self) -> Optional[Any]:
        return await self.auth.get_session()

    async def user_id(self) -> Optional[str]:
        session = await self.session()
        user = getattr(session, "user", None) if session else None
        return getattr(user, "id", None)

    async def aclose(self):
        await self.rpc.aclose()


async def create_app_context(
    settings: Settings,
    auth: Optional[AuthClient] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
    mirror_path: Optional[Path] = None,
) -> AppContext:
    if auth is None:
        auth = await create_auth_client(settings)
    rpc = RpcClient(
        settings.api_url,
        session_provider=auth.get_session,
        timeout=settings.request_timeout_sec,
        transport=transport,
    )
    return AppContext(settings=settings, auth=auth, rpc=rpc, mirror=ProfileMirror(mirror_path))
