import logging
from postgrest.exceptions import APIError
from pydantic import ValidationError
from supabase import Client
from autocrm.core.errors import BadRequestError, ForbiddenError, RpcError
from autocrm.modules.auth.schemas import AuthUser
from autocrm.modules.invitations.schemas import InvitationCreate, InvitationUpdate
from autocrm.modules.invitations.service import InvitationService
from autocrm.modules.macros.schemas import MacroCreate, MacroUpdate
from autocrm.modules.macros.service import MacroService
from autocrm.modules.organizations.schemas import (
    OrganizationCreate, OrganizationUpdate, MemberCreate, MemberUpdate
)
from autocrm.modules.organizations.service import OrganizationService
from autocrm.modules.profiles.schemas import ProfileCreate, ProfileUpdate
from autocrm.modules.profiles.service import ProfileService
from autocrm.modules.sync.schemas import SyncInput, SyncOperation
from autocrm.modules.tags.schemas import (
    TagKeyCreate, TagKeyUpdate, EnumOptionCreate, EnumOptionUpdate, TicketTagSet
)
from autocrm.modules.tags.service import TagService
from autocrm.modules.tickets.schemas import TicketCreate, TicketUpdate, CommentCreate
from autocrm.modules.tickets.service import TicketService
from typing import Any, Dict, List, Optional, Tuple

logger = logging.getLogger(__name__)

TAG_VALUE_TYPES = {
    "ticket_tag_text_values": "text",
    "ticket_tag_number_values": "number",
    "ticket_tag_date_values": "date",
    "ticket_tag_enum_values": "enum",
}


def _split_id(data: Dict[str, Any]) -> Tuple[str, Dict[str, Any]]:
    changes = dict(data)
    row_id = changes.pop("id", None)
    if not row_id:
        raise BadRequestError("id is required")
    return row_id, changes


class SyncService:
    """
    Applies mutations recorded while offline. Every operation goes through the
    same service call as its online procedure, so role rules are identical;
    an operation that fails is logged and skipped while the rest still apply.
    """

    def __init__(self, supabase: Client):
        self.profiles = ProfileService(supabase)
        self.organizations = OrganizationService(supabase)
        self.tickets = TicketService(supabase)
        self.invitations = InvitationService(supabase)
        self.tags = TagService(supabase)
        self.macros = MacroService(supabase)

    def sync(self, user: AuthUser, operations: SyncInput) -> Dict[str, List[Dict[str, Any]]]:
        results: Dict[str, List[Dict[str, Any]]] = {}
        for op in operations.root:
            try:
                row = self.apply(user, op)
            except (RpcError, ValidationError) as e:
                logger.warning(f"Skipping sync operation {op.operation} for {user.id}: {e}")
                continue
            except APIError as e:
                logger.error(f"Store rejected sync operation {op.operation} for {user.id}: {e.message}")
                continue
            if row:
                row.pop("tag_type", None)
                results.setdefault(op.relation, []).append(row)
        return results

    def apply(self, user: AuthUser, op: SyncOperation) -> Optional[Dict[str, Any]]:
        handler = getattr(self, f"_{op.verb}_{op.relation}", None)
        if handler is None:
            tag_type = TAG_VALUE_TYPES.get(op.relation)
            if tag_type is None:
                raise BadRequestError(f"Unsupported sync operation: {op.operation}")
            return getattr(self, f"_{op.verb}_tag_value")(user, tag_type, op.data)
        return handler(user, op.data)

    # profiles: a user only ever writes their own

    def _own_profile_only(self, user: AuthUser, data: Dict[str, Any]) -> Dict[str, Any]:
        changes = dict(data)
        if changes.pop("id", user.id) != user.id:
            raise ForbiddenError("You can only modify your own profile")
        return changes

    def _create_profiles(self, user, data):
        return self.profiles.create_profile(user, ProfileCreate(**self._own_profile_only(user, data)))

    def _update_profiles(self, user, data):
        return self.profiles.update_profile(user, ProfileUpdate(**self._own_profile_only(user, data)))

    # organizations and memberships

    def _create_organizations(self, user, data):
        return self.organizations.create_organization(user, OrganizationCreate(**data))

    def _update_organizations(self, user, data):
        row_id, changes = _split_id(data)
        return self.organizations.update_organization(user, row_id, OrganizationUpdate(**changes))

    def _delete_organizations(self, user, data):
        row_id, _ = _split_id(data)
        return self.organizations.delete_organization(user, row_id)

    def _create_profile_organization_members(self, user, data):
        return self.organizations.add_member(user, MemberCreate(**data))

    def _update_profile_organization_members(self, user, data):
        row_id, changes = _split_id(data)
        changes.pop("organization_id", None)
        changes.pop("profile_id", None)
        return self.organizations.update_member(user, row_id, MemberUpdate(**changes))

    def _delete_profile_organization_members(self, user, data):
        row_id, _ = _split_id(data)
        return self.organizations.remove_member(user, row_id)

    # tickets and comments

    def _create_tickets(self, user, data):
        changes = dict(data)
        changes.pop("created_by", None)
        return self.tickets.create_ticket(user, TicketCreate(**changes))

    def _update_tickets(self, user, data):
        row_id, changes = _split_id(data)
        for immutable in ("organization_id", "created_by"):
            changes.pop(immutable, None)
        return self.tickets.update_ticket(user, row_id, TicketUpdate(**changes))

    def _delete_tickets(self, user, data):
        row_id, _ = _split_id(data)
        return self.tickets.delete_ticket(user, row_id)

    def _create_ticket_comments(self, user, data):
        changes = dict(data)
        changes.pop("user_id", None)
        return self.tickets.create_comment(user, CommentCreate(**changes))

    def _delete_ticket_comments(self, user, data):
        row_id, _ = _split_id(data)
        return self.tickets.delete_comment(user, row_id)

    # invitations

    def _create_organization_invitations(self, user, data):
        return self.invitations.create_invitation(user, InvitationCreate(**data))

    def _update_organization_invitations(self, user, data):
        row_id, changes = _split_id(data)
        changes.pop("organization_id", None)
        return self.invitations.update_invitation(user, row_id, InvitationUpdate(**changes))

    def _delete_organization_invitations(self, user, data):
        row_id, _ = _split_id(data)
        return self.invitations.delete_invitation(user, row_id)

    # tag keys, enum options, tag values

    def _create_ticket_tag_keys(self, user, data):
        return self.tags.create_tag_key(user, TagKeyCreate(**data))

    def _update_ticket_tag_keys(self, user, data):
        row_id, changes = _split_id(data)
        for immutable in ("organization_id", "tag_type"):
            changes.pop(immutable, None)
        return self.tags.update_tag_key(user, row_id, TagKeyUpdate(**changes))

    def _delete_ticket_tag_keys(self, user, data):
        row_id, _ = _split_id(data)
        return self.tags.delete_tag_key(user, row_id)

    def _create_ticket_tag_enum_options(self, user, data):
        return self.tags.create_enum_option(user, EnumOptionCreate(**data))

    def _update_ticket_tag_enum_options(self, user, data):
        row_id, changes = _split_id(data)
        changes.pop("tag_key_id", None)
        return self.tags.update_enum_option(user, row_id, EnumOptionUpdate(**changes))

    def _delete_ticket_tag_enum_options(self, user, data):
        row_id, _ = _split_id(data)
        return self.tags.delete_enum_option(user, row_id)

    def _create_tag_value(self, user, tag_type, data):
        return self.tags.set_ticket_tag(user, TicketTagSet(**data), tag_type=tag_type)

    def _update_tag_value(self, user, tag_type, data):
        row_id, changes = _split_id(data)
        return self.tags.update_tag_value(user, tag_type, row_id, changes)

    def _delete_tag_value(self, user, tag_type, data):
        row_id, _ = _split_id(data)
        return self.tags.delete_tag_value(user, tag_type, row_id)

    # macros

    def _create_macros(self, user, data):
        return self.macros.create_macro(user, MacroCreate(**data))

    def _update_macros(self, user, data):
        row_id, changes = _split_id(data)
        changes.pop("organization_id", None)
        return self.macros.update_macro(user, row_id, MacroUpdate(**changes))

    def _delete_macros(self, user, data):
        row_id, _ = _split_id(data)
        return self.macros.delete_macro(user, row_id)
