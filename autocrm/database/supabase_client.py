from typing import Optional

from fastapi import Request
from supabase import create_client, Client

from autocrm.config import Settings


class SupabaseClients:
    """Supabase clients owned by one application instance. Created lazily on first use."""

    def __init__(
        self,
        settings: Settings,
        client: Optional[Client] = None,
        service_client: Optional[Client] = None,
    ):
        self.settings = settings
        self._client = client
        self._service_client = service_client

    def get_client(self) -> Client:
        if self._client is None:
            self._client = create_client(self.settings.supabase_url, self.settings.supabase_key)
        return self._client

    def get_service_client(self) -> Client:
        """Client with service_role key; bypasses RLS. Falls back to the anon client when no key is configured."""
        if self._service_client is None and self.settings.supabase_service_role_key:
            self._service_client = create_client(
                self.settings.supabase_url, self.settings.supabase_service_role_key
            )
        return self._service_client or self.get_client()


def get_supabase(request: Request) -> Client:
    return request.app.state.supabase.get_service_client()
