import logging
from supabase import Client
from autocrm.config.permissions_config import CUSTOMER_ROLE
from autocrm.core.dependencies import check_org_admin
from autocrm.core.errors import ConflictError, ForbiddenError, NotFoundError, RpcError
from autocrm.database.queries import active, first, get_active_by_id, get_by_id, ids_of, soft_delete, touch
from autocrm.modules.auth.schemas import AuthUser
from autocrm.modules.invitations.schemas import (
    InvitationCreate, InvitationUpdate, InvitationListQuery, InvitationAccept
)
from autocrm.schema import dump_row, dump_rows, validate_insert, validate_update
from typing import Any, Dict, List

logger = logging.getLogger(__name__)

INVITATIONS = "organization_invitations"
MEMBERS = "profile_organization_members"


def _normalize_email(email: str) -> str:
    return email.strip().lower()


class InvitationService:
    def __init__(self, supabase: Client):
        self.supabase = supabase

    def create_invitation(self, user: AuthUser, invitation_data: InvitationCreate) -> Dict[str, Any]:
        """Invite an email address into an organization (admins only)"""
        check_org_admin(user, invitation_data.organization_id)
        email = _normalize_email(invitation_data.email)
        existing = active(
            self.supabase.table(INVITATIONS)
            .select("id")
            .eq("organization_id", invitation_data.organization_id)
            .eq("email", email)
        ).execute()
        if existing.data:
            raise ConflictError("An invitation for this email is already pending")
        payload = validate_insert(INVITATIONS, {
            **invitation_data.model_dump(exclude_none=True),
            "email": email,
        })
        result = self.supabase.table(INVITATIONS).insert(payload).execute()
        invitation = first(result)
        if not invitation:
            raise RpcError("Failed to create invitation")
        logger.info(f"Invitation {invitation['id']} created for organization {invitation_data.organization_id}")
        return dump_row(INVITATIONS, invitation)

    def list_invitations(self, user: AuthUser, query: InvitationListQuery) -> List[Dict[str, Any]]:
        """Admins list an organization's pending invitations; anyone lists the ones addressed to them"""
        if query.organization_id:
            check_org_admin(user, query.organization_id)
            select = self.supabase.table(INVITATIONS)\
                .select("*")\
                .eq("organization_id", query.organization_id)
        else:
            select = self.supabase.table(INVITATIONS)\
                .select("*")\
                .eq("email", _normalize_email(user.email))
        result = active(select).order("created_at", desc=True).execute()
        return dump_rows(INVITATIONS, result.data or [])

    def update_invitation(self, user: AuthUser, invitation_id: str, invitation_data: InvitationUpdate) -> Dict[str, Any]:
        existing = get_by_id(self.supabase, INVITATIONS, invitation_id)
        if not existing:
            raise NotFoundError("Invitation not found")
        check_org_admin(user, existing["organization_id"])
        if existing.get("deleted_at"):
            return dump_row(INVITATIONS, existing)
        update_data = invitation_data.model_dump(exclude_unset=True)
        if update_data.get("email"):
            update_data["email"] = _normalize_email(update_data["email"])
        update_data = validate_update(INVITATIONS, update_data)
        if not update_data:
            return dump_row(INVITATIONS, existing)
        result = self.supabase.table(INVITATIONS)\
            .update(touch(update_data))\
            .eq("id", invitation_id)\
            .execute()
        return dump_row(INVITATIONS, first(result) or existing)

    def delete_invitation(self, user: AuthUser, invitation_id: str) -> Dict[str, Any]:
        existing = get_by_id(self.supabase, INVITATIONS, invitation_id)
        if not existing:
            raise NotFoundError("Invitation not found")
        check_org_admin(user, existing["organization_id"])
        deleted = soft_delete(self.supabase, INVITATIONS, invitation_id)
        return dump_row(INVITATIONS, deleted or existing)

    def accept_invitation(self, user: AuthUser, accept_data: InvitationAccept) -> Dict[str, Any]:
        """
        Join the inviting organization. The invitation is soft-deleted once used and
        the caller gets a snapshot of the organization: customers see only their own
        tickets, every other role sees members, profiles, tickets and invitations.
        """
        invitation = get_active_by_id(self.supabase, INVITATIONS, accept_data.invitation_id)
        if not invitation:
            raise NotFoundError("Invitation not found")
        if _normalize_email(invitation["email"]) != _normalize_email(user.email or ""):
            raise ForbiddenError("You are not authorized to accept this invitation")

        organization_id = invitation["organization_id"]
        organization = get_active_by_id(self.supabase, "organizations", organization_id)
        if not organization:
            raise NotFoundError("Organization not found")

        already_member = active(
            self.supabase.table(MEMBERS)
            .select("id")
            .eq("organization_id", organization_id)
            .eq("profile_id", user.id)
        ).execute()
        if already_member.data:
            raise ConflictError("You are already a member of this organization")

        self.supabase.table(MEMBERS).insert(validate_insert(MEMBERS, {
            "organization_id": organization_id,
            "profile_id": user.id,
            "role": invitation["role"],
        })).execute()
        soft_delete(self.supabase, INVITATIONS, invitation["id"])
        user.organizations[organization_id] = invitation["role"]
        logger.info(f"{user.id} joined organization {organization_id} as {invitation['role']}")

        snapshot = {"success": True, "organization": dump_row("organizations", organization)}
        if invitation["role"] == CUSTOMER_ROLE:
            snapshot["member"] = self._own_member(user, organization_id)
            snapshot["profile"] = self._own_profile(user)
            tickets = self._tickets(organization_id, created_by=user.id)
        else:
            members_result = active(
                self.supabase.table(MEMBERS)
                .select("*")
                .eq("organization_id", organization_id)
            ).execute()
            members = members_result.data or []
            profiles_result = active(
                self.supabase.table("profiles")
                .select("*")
                .in_("id", ids_of(members, "profile_id"))
            ).execute()
            invitations_result = active(
                self.supabase.table(INVITATIONS)
                .select("*")
                .eq("organization_id", organization_id)
            ).execute()
            snapshot["members"] = dump_rows(MEMBERS, members)
            snapshot["profiles"] = dump_rows("profiles", profiles_result.data or [])
            snapshot["invitations"] = dump_rows(INVITATIONS, invitations_result.data or [])
            tickets = self._tickets(organization_id)
        snapshot["tickets"] = dump_rows("tickets", tickets)
        snapshot["comments"] = dump_rows("ticket_comments", self._comments(ids_of(tickets)))
        return snapshot

    def _own_member(self, user: AuthUser, organization_id: str):
        result = active(
            self.supabase.table(MEMBERS)
            .select("*")
            .eq("organization_id", organization_id)
            .eq("profile_id", user.id)
        ).execute()
        member = first(result)
        return dump_row(MEMBERS, member) if member else None

    def _own_profile(self, user: AuthUser):
        profile = get_active_by_id(self.supabase, "profiles", user.id)
        return dump_row("profiles", profile) if profile else None

    def _tickets(self, organization_id: str, created_by: str = None) -> List[Dict[str, Any]]:
        select = active(
            self.supabase.table("tickets")
            .select("*")
            .eq("organization_id", organization_id)
        )
        if created_by:
            select = select.eq("created_by", created_by)
        return select.execute().data or []

    def _comments(self, ticket_ids: List[str]) -> List[Dict[str, Any]]:
        if not ticket_ids:
            return []
        result = active(
            self.supabase.table("ticket_comments")
            .select("*")
            .in_("ticket_id", ticket_ids)
        ).execute()
        return result.data or []
