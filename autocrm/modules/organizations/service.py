import logging
from supabase import Client
from autocrm.config.permissions_config import ADMIN_ROLE, DEFAULT_ROLE
from autocrm.core.dependencies import check_org_admin, check_org_member
from autocrm.core.errors import ConflictError, NotFoundError, RpcError
from autocrm.database.queries import active, first, get_by_id, ids_of, soft_delete, touch
from autocrm.modules.auth.schemas import AuthUser
from autocrm.modules.organizations.schemas import (
    OrganizationCreate, OrganizationUpdate, MemberCreate, MemberUpdate
)
from autocrm.schema import dump_row, validate_insert, validate_update
from typing import Any, Dict, List

logger = logging.getLogger(__name__)

ORGANIZATIONS = "organizations"
MEMBERS = "profile_organization_members"


class OrganizationService:
    def __init__(self, supabase: Client):
        self.supabase = supabase

    def create_organization(self, user: AuthUser, organization_data: OrganizationCreate) -> Dict[str, Any]:
        """Create an organization and record the creator as its admin"""
        org_payload = {"name": organization_data.name}
        if organization_data.id:
            org_payload["id"] = organization_data.id
        result = self.supabase.table(ORGANIZATIONS)\
            .insert(validate_insert(ORGANIZATIONS, org_payload))\
            .execute()
        organization = first(result)
        if not organization:
            raise RpcError("Failed to create organization")

        try:
            self.supabase.table(MEMBERS).insert(validate_insert(MEMBERS, {
                "organization_id": organization["id"],
                "profile_id": user.id,
                "role": ADMIN_ROLE,
            })).execute()
        except Exception:
            # No transaction over PostgREST: retire the organization so it never shows up memberless
            soft_delete(self.supabase, ORGANIZATIONS, organization["id"])
            raise

        user.organizations[organization["id"]] = ADMIN_ROLE
        logger.info(f"Organization {organization['id']} created by {user.id}")
        return dump_row(ORGANIZATIONS, organization)

    def list_organizations(self, user: AuthUser) -> List[Dict[str, Any]]:
        """Active organizations the user belongs to, newest first, with the user's role"""
        members_result = active(
            self.supabase.table(MEMBERS)
            .select("organization_id, role")
            .eq("profile_id", user.id)
        ).execute()
        if not members_result.data:
            return []
        roles = {
            m["organization_id"]: m.get("role") or DEFAULT_ROLE
            for m in members_result.data
        }
        result = active(
            self.supabase.table(ORGANIZATIONS)
            .select("*")
            .in_("id", list(roles))
        ).order("created_at", desc=True).execute()
        return [
            {**dump_row(ORGANIZATIONS, org), "role": roles[org["id"]]}
            for org in result.data or []
        ]

    def update_organization(self, user: AuthUser, organization_id: str, organization_data: OrganizationUpdate) -> Dict[str, Any]:
        """Rename an organization (admins only); a deleted organization is returned unchanged"""
        check_org_admin(user, organization_id)
        existing = get_by_id(self.supabase, ORGANIZATIONS, organization_id)
        if not existing:
            raise NotFoundError("Organization not found")
        if existing.get("deleted_at"):
            return dump_row(ORGANIZATIONS, existing)
        update_data = validate_update(ORGANIZATIONS, organization_data.model_dump(exclude_unset=True))
        if not update_data:
            return dump_row(ORGANIZATIONS, existing)
        result = self.supabase.table(ORGANIZATIONS)\
            .update(touch(update_data))\
            .eq("id", organization_id)\
            .execute()
        return dump_row(ORGANIZATIONS, first(result) or existing)

    def delete_organization(self, user: AuthUser, organization_id: str) -> Dict[str, Any]:
        """Soft delete an organization (admins only)"""
        check_org_admin(user, organization_id)
        deleted = soft_delete(self.supabase, ORGANIZATIONS, organization_id)
        if not deleted:
            raise NotFoundError("Organization not found")
        logger.info(f"Organization {organization_id} deleted by {user.id}")
        return dump_row(ORGANIZATIONS, deleted)

    def list_members(self, user: AuthUser, organization_id: str) -> List[Dict[str, Any]]:
        """Active members of an organization with their profiles"""
        check_org_member(user, organization_id)
        result = active(
            self.supabase.table(MEMBERS)
            .select("*")
            .eq("organization_id", organization_id)
        ).execute()
        members = [dump_row(MEMBERS, m) for m in result.data or []]
        profile_ids = ids_of(members, "profile_id")
        profiles = {}
        if profile_ids:
            profiles_result = active(
                self.supabase.table("profiles")
                .select("*")
                .in_("id", profile_ids)
            ).execute()
            profiles = {p["id"]: dump_row("profiles", p) for p in profiles_result.data or []}
        return [{**m, "profile": profiles.get(m["profile_id"])} for m in members]

    def add_member(self, user: AuthUser, member_data: MemberCreate) -> Dict[str, Any]:
        """Add a profile to an organization (admins only)"""
        check_org_admin(user, member_data.organization_id)
        existing = active(
            self.supabase.table(MEMBERS)
            .select("id")
            .eq("organization_id", member_data.organization_id)
            .eq("profile_id", member_data.profile_id)
        ).execute()
        if existing.data:
            raise ConflictError("Profile is already a member of this organization")
        payload = member_data.model_dump(exclude_none=True)
        result = self.supabase.table(MEMBERS)\
            .insert(validate_insert(MEMBERS, payload))\
            .execute()
        member = first(result)
        if not member:
            raise RpcError("Failed to add member")
        return dump_row(MEMBERS, member)

    def update_member(self, user: AuthUser, member_id: str, member_data: MemberUpdate) -> Dict[str, Any]:
        """Change a member's role (admins only); organization and profile are never reassigned"""
        existing = get_by_id(self.supabase, MEMBERS, member_id)
        if not existing:
            raise NotFoundError("Member not found")
        check_org_admin(user, existing["organization_id"])
        update_data = validate_update(MEMBERS, member_data.model_dump(exclude_unset=True))
        # updating a membership always restores it
        update_data["deleted_at"] = None
        result = self.supabase.table(MEMBERS)\
            .update(touch(update_data))\
            .eq("id", member_id)\
            .execute()
        return dump_row(MEMBERS, first(result) or existing)

    def remove_member(self, user: AuthUser, member_id: str) -> Dict[str, Any]:
        existing = get_by_id(self.supabase, MEMBERS, member_id)
        if not existing:
            raise NotFoundError("Member not found")
        check_org_admin(user, existing["organization_id"])
        deleted = soft_delete(self.supabase, MEMBERS, member_id)
        return dump_row(MEMBERS, deleted or existing)
