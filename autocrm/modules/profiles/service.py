import logging
from supabase import Client
from autocrm.core.errors import ConflictError, NotFoundError, RpcError
from autocrm.database.queries import first, get_active_by_id, get_by_id, touch
from autocrm.modules.auth.schemas import AuthUser
from autocrm.modules.profiles.schemas import ProfileCreate, ProfileUpdate
from autocrm.schema import dump_row, validate_insert, validate_update
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)

TABLE = "profiles"


class ProfileService:
    def __init__(self, supabase: Client):
        self.supabase = supabase

    def get_profile(self, user: AuthUser) -> Optional[Dict[str, Any]]:
        """Own profile, or None when it has not been created yet"""
        profile = get_active_by_id(self.supabase, TABLE, user.id)
        return dump_row(TABLE, profile) if profile else None

    def create_profile(self, user: AuthUser, profile_data: ProfileCreate) -> Dict[str, Any]:
        """Create the caller's profile; its id is the auth identity"""
        if get_by_id(self.supabase, TABLE, user.id):
            raise ConflictError("Profile already exists")
        payload = validate_insert(TABLE, {
            "id": user.id,
            "full_name": profile_data.full_name,
            "avatar_url": profile_data.avatar_url or None,
        })
        result = self.supabase.table(TABLE).insert(payload).execute()
        profile = first(result)
        if not profile:
            raise RpcError("Failed to create profile")
        logger.info(f"Created profile {user.id}")
        return dump_row(TABLE, profile)

    def update_profile(self, user: AuthUser, profile_data: ProfileUpdate) -> Dict[str, Any]:
        """Update the caller's profile"""
        existing = get_active_by_id(self.supabase, TABLE, user.id)
        if not existing:
            raise NotFoundError("Profile not found")
        update_data = validate_update(TABLE, profile_data.model_dump(exclude_unset=True))
        if not update_data:
            return dump_row(TABLE, existing)
        result = self.supabase.table(TABLE)\
            .update(touch(update_data))\
            .eq("id", user.id)\
            .execute()
        profile = first(result)
        if not profile:
            raise NotFoundError("Profile not found")
        return dump_row(TABLE, profile)
