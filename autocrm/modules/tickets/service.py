import logging
from supabase import Client
from autocrm.config.permissions_config import CUSTOMER_ROLE
from autocrm.core.dependencies import can_access_ticket, check_org_member
from autocrm.core.errors import ForbiddenError, NotFoundError, RpcError
from autocrm.database.queries import active, first, get_active_by_id, get_by_id, soft_delete, touch
from autocrm.modules.auth.schemas import AuthUser
from autocrm.modules.tickets.schemas import (
    TicketCreate, TicketUpdate, TicketListQuery, CommentCreate
)
from autocrm.schema import dump_row, validate_insert, validate_update
from typing import Any, Dict, List

logger = logging.getLogger(__name__)

TICKETS = "tickets"
COMMENTS = "ticket_comments"


class TicketService:
    def __init__(self, supabase: Client):
        self.supabase = supabase

    def get_accessible_ticket(self, user: AuthUser, ticket_id: str, include_deleted: bool = False) -> Dict[str, Any]:
        if include_deleted:
            ticket = get_by_id(self.supabase, TICKETS, ticket_id)
        else:
            ticket = get_active_by_id(self.supabase, TICKETS, ticket_id)
        if not ticket:
            raise NotFoundError("Ticket not found")
        check_org_member(user, ticket["organization_id"])
        if not can_access_ticket(user, ticket):
            raise ForbiddenError("You can only access tickets you created")
        return ticket

    def create_ticket(self, user: AuthUser, ticket_data: TicketCreate) -> Dict[str, Any]:
        """Open a ticket in an organization the user belongs to"""
        check_org_member(user, ticket_data.organization_id)
        payload = validate_insert(TICKETS, {
            **ticket_data.model_dump(exclude_none=True),
            "created_by": user.id,
        })
        result = self.supabase.table(TICKETS).insert(payload).execute()
        ticket = first(result)
        if not ticket:
            raise RpcError("Failed to create ticket")
        logger.info(f"Ticket {ticket['id']} created in {ticket_data.organization_id}")
        return dump_row(TICKETS, ticket)

    def list_tickets(self, user: AuthUser, query: TicketListQuery) -> List[Dict[str, Any]]:
        """Active tickets of an organization, newest first; customers only get their own"""
        role = check_org_member(user, query.organization_id)
        select = active(
            self.supabase.table(TICKETS)
            .select("*")
            .eq("organization_id", query.organization_id)
        )
        if role == CUSTOMER_ROLE:
            select = select.eq("created_by", user.id)
        if query.status:
            select = select.eq("status", query.status)
        if query.priority:
            select = select.eq("priority", query.priority)
        if query.assigned_to:
            select = select.eq("assigned_to", query.assigned_to)
        result = select.order("created_at", desc=True).execute()
        return [dump_row(TICKETS, t) for t in result.data or []]

    def get_ticket(self, user: AuthUser, ticket_id: str) -> Dict[str, Any]:
        return dump_row(TICKETS, self.get_accessible_ticket(user, ticket_id))

    def update_ticket(self, user: AuthUser, ticket_id: str, ticket_data: TicketUpdate) -> Dict[str, Any]:
        """Partial update; organization and author are never changed, a deleted ticket is returned as is"""
        existing = self.get_accessible_ticket(user, ticket_id, include_deleted=True)
        if existing.get("deleted_at"):
            return dump_row(TICKETS, existing)
        update_data = validate_update(TICKETS, ticket_data.model_dump(exclude_unset=True))
        if not update_data:
            return dump_row(TICKETS, existing)
        result = self.supabase.table(TICKETS)\
            .update(touch(update_data))\
            .eq("id", ticket_id)\
            .execute()
        return dump_row(TICKETS, first(result) or existing)

    def delete_ticket(self, user: AuthUser, ticket_id: str) -> Dict[str, Any]:
        existing = self.get_accessible_ticket(user, ticket_id, include_deleted=True)
        if existing.get("deleted_at"):
            return dump_row(TICKETS, existing)
        deleted = soft_delete(self.supabase, TICKETS, ticket_id)
        logger.info(f"Ticket {ticket_id} deleted by {user.id}")
        return dump_row(TICKETS, deleted or existing)

    def list_comments(self, user: AuthUser, ticket_id: str) -> List[Dict[str, Any]]:
        """Active comments of a ticket, oldest first"""
        self.get_accessible_ticket(user, ticket_id)
        result = active(
            self.supabase.table(COMMENTS)
            .select("*")
            .eq("ticket_id", ticket_id)
        ).order("created_at").execute()
        return [dump_row(COMMENTS, c) for c in result.data or []]

    def create_comment(self, user: AuthUser, comment_data: CommentCreate) -> Dict[str, Any]:
        self.get_accessible_ticket(user, comment_data.ticket_id)
        payload = validate_insert(COMMENTS, {
            **comment_data.model_dump(exclude_none=True),
            "user_id": user.id,
        })
        result = self.supabase.table(COMMENTS).insert(payload).execute()
        comment = first(result)
        if not comment:
            raise RpcError("Failed to create comment")
        return dump_row(COMMENTS, comment)

    def delete_comment(self, user: AuthUser, comment_id: str) -> Dict[str, Any]:
        """Users can only delete their own comments"""
        comment = get_by_id(self.supabase, COMMENTS, comment_id)
        if not comment:
            raise NotFoundError("Comment not found")
        if comment["user_id"] != user.id:
            raise ForbiddenError("You can only delete your own comments")
        if comment.get("deleted_at"):
            return dump_row(COMMENTS, comment)
        deleted = soft_delete(self.supabase, COMMENTS, comment_id)
        return dump_row(COMMENTS, deleted or comment)
