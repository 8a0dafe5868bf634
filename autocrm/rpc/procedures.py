"""Procedures served on /trpc, by name."""

from typing import Optional

from pydantic import BaseModel

from autocrm.modules.invitations.schemas import InvitationAccept, InvitationCreate, InvitationListQuery
from autocrm.modules.invitations.service import InvitationService
from autocrm.modules.macros.schemas import MacroApply, MacroStatsQuery
from autocrm.modules.macros.service import MacroService
from autocrm.modules.organizations.schemas import OrganizationCreate, OrganizationRef
from autocrm.modules.organizations.service import OrganizationService
from autocrm.modules.profiles.schemas import ProfileCreate, ProfileUpdate
from autocrm.modules.profiles.service import ProfileService
from autocrm.modules.sync.schemas import SyncInput
from autocrm.modules.sync.service import SyncService
from autocrm.modules.tags.schemas import (
    EnumOptionCreate, TagKeyCreate, TagKeyListQuery, TicketTagRemove, TicketTagSet, TicketTagsQuery
)
from autocrm.modules.tags.service import TagService
from autocrm.modules.tickets.schemas import (
    CommentCreate, TicketCreate, TicketListQuery, TicketRef, TicketUpdate, TicketUpdateRequest
)
from autocrm.modules.tickets.service import TicketService
from autocrm.rpc.context import RpcContext
from autocrm.rpc.registry import ProcedureRegistry


class HelloInput(BaseModel):
    name: Optional[str] = None


def hello(ctx: RpcContext, input: HelloInput):
    return {"greeting": f"Hello {input.name or 'world'}!"}


# Profiles

def get_profile(ctx: RpcContext):
    return ProfileService(ctx.supabase).get_profile(ctx.user)


def create_profile(ctx: RpcContext, input: ProfileCreate):
    return ProfileService(ctx.supabase).create_profile(ctx.user, input)


def update_profile(ctx: RpcContext, input: ProfileUpdate):
    return ProfileService(ctx.supabase).update_profile(ctx.user, input)


# Organizations

def get_organizations(ctx: RpcContext):
    return OrganizationService(ctx.supabase).list_organizations(ctx.user)


def create_organization(ctx: RpcContext, input: OrganizationCreate):
    return OrganizationService(ctx.supabase).create_organization(ctx.user, input)


def get_organization_members(ctx: RpcContext, input: OrganizationRef):
    return OrganizationService(ctx.supabase).list_members(ctx.user, input.organization_id)


# Tickets and comments

def get_tickets(ctx: RpcContext, input: TicketListQuery):
    return TicketService(ctx.supabase).list_tickets(ctx.user, input)


def get_ticket(ctx: RpcContext, input: TicketRef):
    return TicketService(ctx.supabase).get_ticket(ctx.user, input.ticket_id)


def create_ticket(ctx: RpcContext, input: TicketCreate):
    return TicketService(ctx.supabase).create_ticket(ctx.user, input)


def update_ticket(ctx: RpcContext, input: TicketUpdateRequest):
    changes = input.model_dump(exclude_unset=True)
    changes.pop("ticket_id", None)
    return TicketService(ctx.supabase).update_ticket(ctx.user, input.ticket_id, TicketUpdate(**changes))


def delete_ticket(ctx: RpcContext, input: TicketRef):
    return TicketService(ctx.supabase).delete_ticket(ctx.user, input.ticket_id)


def get_ticket_comments(ctx: RpcContext, input: TicketRef):
    return TicketService(ctx.supabase).list_comments(ctx.user, input.ticket_id)


def create_ticket_comment(ctx: RpcContext, input: CommentCreate):
    return TicketService(ctx.supabase).create_comment(ctx.user, input)


# Invitations

def create_invitation(ctx: RpcContext, input: InvitationCreate):
    return InvitationService(ctx.supabase).create_invitation(ctx.user, input)


def get_invitations(ctx: RpcContext, input: InvitationListQuery):
    return InvitationService(ctx.supabase).list_invitations(ctx.user, input)


def accept_invitation(ctx: RpcContext, input: InvitationAccept):
    return InvitationService(ctx.supabase).accept_invitation(ctx.user, input)


# Tags

def get_tag_keys(ctx: RpcContext, input: TagKeyListQuery):
    return TagService(ctx.supabase).list_tag_keys(ctx.user, input)


def create_tag_key(ctx: RpcContext, input: TagKeyCreate):
    return TagService(ctx.supabase).create_tag_key(ctx.user, input)


def create_enum_option(ctx: RpcContext, input: EnumOptionCreate):
    return TagService(ctx.supabase).create_enum_option(ctx.user, input)


def set_ticket_tag(ctx: RpcContext, input: TicketTagSet):
    return TagService(ctx.supabase).set_ticket_tag(ctx.user, input)


def remove_ticket_tag(ctx: RpcContext, input: TicketTagRemove):
    return TagService(ctx.supabase).remove_ticket_tag(ctx.user, input)


def get_ticket_tags(ctx: RpcContext, input: TicketTagsQuery):
    return TagService(ctx.supabase).get_ticket_tags(ctx.user, input.ticket_id)


# Macros and offline sync

def get_macro_stats(ctx: RpcContext, input: MacroStatsQuery):
    return MacroService(ctx.supabase).get_macro_stats(ctx.user, input)


def apply_macro(ctx: RpcContext, input: MacroApply):
    return MacroService(ctx.supabase).apply_macro(ctx.user, input)


def sync(ctx: RpcContext, input: SyncInput):
    return SyncService(ctx.supabase).sync(ctx.user, input)


def build_registry() -> ProcedureRegistry:
    registry = ProcedureRegistry()
    registry.query("hello", HelloInput, protected=False)(hello)

    registry.query("getProfile")(get_profile)
    registry.mutation("createProfile", ProfileCreate)(create_profile)
    registry.mutation("updateProfile", ProfileUpdate)(update_profile)

    registry.query("getOrganizations")(get_organizations)
    registry.mutation("createOrganization", OrganizationCreate)(create_organization)
    registry.query("getOrganizationMembers", OrganizationRef)(get_organization_members)

    registry.query("getTickets", TicketListQuery)(get_tickets)
    registry.query("getTicket", TicketRef)(get_ticket)
    registry.mutation("createTicket", TicketCreate)(create_ticket)
    registry.mutation("updateTicket", TicketUpdateRequest)(update_ticket)
    registry.mutation("deleteTicket", TicketRef)(delete_ticket)
    registry.query("getTicketComments", TicketRef)(get_ticket_comments)
    registry.mutation("createTicketComment", CommentCreate)(create_ticket_comment)

    registry.mutation("createInvitation", InvitationCreate)(create_invitation)
    registry.query("getInvitations", InvitationListQuery)(get_invitations)
    registry.mutation("acceptInvitation", InvitationAccept)(accept_invitation)

    registry.query("getTagKeys", TagKeyListQuery)(get_tag_keys)
    registry.mutation("createTagKey", TagKeyCreate)(create_tag_key)
    registry.mutation("createEnumOption", EnumOptionCreate)(create_enum_option)
    registry.mutation("setTicketTag", TicketTagSet)(set_ticket_tag)
    registry.mutation("removeTicketTag", TicketTagRemove)(remove_ticket_tag)
    registry.query("getTicketTags", TicketTagsQuery)(get_ticket_tags)

    registry.query("getMacroStats", MacroStatsQuery)(get_macro_stats)
    registry.mutation("applyMacro", MacroApply)(apply_macro)
    registry.mutation("sync", SyncInput)(sync)
    return registry
