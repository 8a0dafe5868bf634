import logging
from datetime import date
from supabase import Client
from autocrm.core.dependencies import check_org_admin, check_org_member, check_org_permission
from autocrm.core.errors import BadRequestError, NotFoundError, RpcError
from autocrm.database.queries import active, first, get_active_by_id, get_by_id, ids_of, soft_delete, touch
from autocrm.modules.auth.schemas import AuthUser
from autocrm.modules.tags.schemas import (
    TagKeyCreate, TagKeyUpdate, TagKeyListQuery, EnumOptionCreate, EnumOptionUpdate,
    TicketTagSet, TicketTagRemove
)
from autocrm.modules.tickets.service import TicketService
from autocrm.schema import dump_row, dump_rows, validate_insert, validate_update
from autocrm.schema.tables import TAG_TYPES, TAG_VALUE_TABLES
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)

TAG_KEYS = "ticket_tag_keys"
ENUM_OPTIONS = "ticket_tag_enum_options"


class TagService:
    def __init__(self, supabase: Client):
        self.supabase = supabase
        self.tickets = TicketService(supabase)

    # Tag keys

    def _get_tag_key(self, tag_key_id: str, include_deleted: bool = False) -> Dict[str, Any]:
        if include_deleted:
            tag_key = get_by_id(self.supabase, TAG_KEYS, tag_key_id)
        else:
            tag_key = get_active_by_id(self.supabase, TAG_KEYS, tag_key_id)
        if not tag_key:
            raise NotFoundError("Tag key not found")
        return tag_key

    def list_tag_keys(self, user: AuthUser, query: TagKeyListQuery) -> List[Dict[str, Any]]:
        """Active tag keys of an organization; enum keys carry their active options"""
        check_org_member(user, query.organization_id)
        result = active(
            self.supabase.table(TAG_KEYS)
            .select("*")
            .eq("organization_id", query.organization_id)
        ).order("created_at").execute()
        tag_keys = dump_rows(TAG_KEYS, result.data or [])

        enum_key_ids = [k["id"] for k in tag_keys if k["tag_type"] == "enum"]
        options: Dict[str, List[Dict[str, Any]]] = {}
        if enum_key_ids:
            options_result = active(
                self.supabase.table(ENUM_OPTIONS)
                .select("*")
                .in_("tag_key_id", enum_key_ids)
            ).order("created_at").execute()
            for option in dump_rows(ENUM_OPTIONS, options_result.data or []):
                options.setdefault(option["tag_key_id"], []).append(option)

        for tag_key in tag_keys:
            if tag_key["tag_type"] == "enum":
                tag_key["options"] = options.get(tag_key["id"], [])
        return tag_keys

    def create_tag_key(self, user: AuthUser, tag_key_data: TagKeyCreate) -> Dict[str, Any]:
        check_org_admin(user, tag_key_data.organization_id)
        payload = validate_insert(TAG_KEYS, tag_key_data.model_dump(exclude_none=True))
        result = self.supabase.table(TAG_KEYS).insert(payload).execute()
        tag_key = first(result)
        if not tag_key:
            raise RpcError("Failed to create tag key")
        logger.info(f"Tag key {tag_key['id']} ({tag_key['tag_type']}) created in {tag_key_data.organization_id}")
        return dump_row(TAG_KEYS, tag_key)

    def update_tag_key(self, user: AuthUser, tag_key_id: str, tag_key_data: TagKeyUpdate) -> Dict[str, Any]:
        """Rename or describe a tag key; its type never changes"""
        existing = self._get_tag_key(tag_key_id, include_deleted=True)
        check_org_admin(user, existing["organization_id"])
        if existing.get("deleted_at"):
            return dump_row(TAG_KEYS, existing)
        update_data = validate_update(TAG_KEYS, tag_key_data.model_dump(exclude_unset=True))
        if not update_data:
            return dump_row(TAG_KEYS, existing)
        result = self.supabase.table(TAG_KEYS)\
            .update(touch(update_data))\
            .eq("id", tag_key_id)\
            .execute()
        return dump_row(TAG_KEYS, first(result) or existing)

    def delete_tag_key(self, user: AuthUser, tag_key_id: str) -> Dict[str, Any]:
        existing = self._get_tag_key(tag_key_id, include_deleted=True)
        check_org_admin(user, existing["organization_id"])
        deleted = soft_delete(self.supabase, TAG_KEYS, tag_key_id)
        return dump_row(TAG_KEYS, deleted or existing)

    # Enum options

    def create_enum_option(self, user: AuthUser, option_data: EnumOptionCreate) -> Dict[str, Any]:
        tag_key = self._get_tag_key(option_data.tag_key_id)
        check_org_admin(user, tag_key["organization_id"])
        if tag_key["tag_type"] != "enum":
            raise BadRequestError("Options can only be added to enum tag keys")
        payload = validate_insert(ENUM_OPTIONS, option_data.model_dump(exclude_none=True))
        result = self.supabase.table(ENUM_OPTIONS).insert(payload).execute()
        option = first(result)
        if not option:
            raise RpcError("Failed to create enum option")
        return dump_row(ENUM_OPTIONS, option)

    def update_enum_option(self, user: AuthUser, option_id: str, option_data: EnumOptionUpdate) -> Dict[str, Any]:
        existing = get_by_id(self.supabase, ENUM_OPTIONS, option_id)
        if not existing:
            raise NotFoundError("Enum option not found")
        tag_key = self._get_tag_key(existing["tag_key_id"], include_deleted=True)
        check_org_admin(user, tag_key["organization_id"])
        if existing.get("deleted_at"):
            return dump_row(ENUM_OPTIONS, existing)
        update_data = validate_update(ENUM_OPTIONS, option_data.model_dump(exclude_unset=True))
        if not update_data:
            return dump_row(ENUM_OPTIONS, existing)
        result = self.supabase.table(ENUM_OPTIONS)\
            .update(touch(update_data))\
            .eq("id", option_id)\
            .execute()
        return dump_row(ENUM_OPTIONS, first(result) or existing)

    def delete_enum_option(self, user: AuthUser, option_id: str) -> Dict[str, Any]:
        existing = get_by_id(self.supabase, ENUM_OPTIONS, option_id)
        if not existing:
            raise NotFoundError("Enum option not found")
        tag_key = self._get_tag_key(existing["tag_key_id"], include_deleted=True)
        check_org_admin(user, tag_key["organization_id"])
        deleted = soft_delete(self.supabase, ENUM_OPTIONS, option_id)
        return dump_row(ENUM_OPTIONS, deleted or existing)

    def _check_enum_option(self, tag_key_id: str, enum_option_id: Optional[str]) -> None:
        """The option must be active and belong to the very tag key the value is for"""
        if not enum_option_id:
            raise BadRequestError("enum_option_id is required for enum tags")
        result = active(
            self.supabase.table(ENUM_OPTIONS)
            .select("id")
            .eq("id", enum_option_id)
            .eq("tag_key_id", tag_key_id)
        ).execute()
        if not result.data:
            raise BadRequestError("Enum option does not belong to this tag key")

    # Ticket tag values

    def _value_payload(self, tag_key: Dict[str, Any], tag_data: TicketTagSet) -> Dict[str, Any]:
        tag_type = tag_key["tag_type"]
        if tag_type == "enum":
            self._check_enum_option(tag_key["id"], tag_data.enum_option_id)
            return {"enum_option_id": tag_data.enum_option_id}
        if tag_data.value is None:
            raise BadRequestError(f"A value is required for {tag_type} tags")
        if tag_type == "date":
            try:
                return {"value": date.fromisoformat(str(tag_data.value)).isoformat()}
            except ValueError:
                raise BadRequestError("Date tags expect a YYYY-MM-DD value")
        if tag_type == "text":
            return {"value": str(tag_data.value)}
        return {"value": tag_data.value}

    def _find_value(self, table: str, ticket_id: str, tag_key_id: str) -> Optional[Dict[str, Any]]:
        result = active(
            self.supabase.table(table)
            .select("*")
            .eq("ticket_id", ticket_id)
            .eq("tag_key_id", tag_key_id)
        ).limit(1).execute()
        return first(result)

    def set_ticket_tag(self, user: AuthUser, tag_data: TicketTagSet, tag_type: Optional[str] = None) -> Dict[str, Any]:
        """
        Set the value of a tag on a ticket. The value relation is picked from the tag
        key's type; an existing active value for the same ticket and key is updated
        in place, otherwise a new row is inserted.
        """
        ticket = self.tickets.get_accessible_ticket(user, tag_data.ticket_id)
        tag_key = self._get_tag_key(tag_data.tag_key_id)
        if tag_key["organization_id"] != ticket["organization_id"]:
            raise BadRequestError("Tag key belongs to another organization")
        if tag_type and tag_key["tag_type"] != tag_type:
            raise BadRequestError(f"Tag key is not of type {tag_type}")
        check_org_permission(user, ticket["organization_id"], "tags:write_values")

        table = TAG_VALUE_TABLES[tag_key["tag_type"]]
        values = self._value_payload(tag_key, tag_data)
        existing = self._find_value(table, tag_data.ticket_id, tag_data.tag_key_id)
        if existing:
            update_data = validate_update(table, values)
            result = self.supabase.table(table)\
                .update(touch(update_data))\
                .eq("id", existing["id"])\
                .execute()
            row = first(result) or existing
        else:
            payload = {"ticket_id": tag_data.ticket_id, "tag_key_id": tag_data.tag_key_id, **values}
            if tag_data.id:
                payload["id"] = tag_data.id
            result = self.supabase.table(table).insert(validate_insert(table, payload)).execute()
            row = first(result)
            if not row:
                raise RpcError("Failed to set ticket tag")
        return {"tag_type": tag_key["tag_type"], **dump_row(table, row)}

    def remove_ticket_tag(self, user: AuthUser, tag_data: TicketTagRemove) -> Optional[Dict[str, Any]]:
        ticket = self.tickets.get_accessible_ticket(user, tag_data.ticket_id)
        tag_key = self._get_tag_key(tag_data.tag_key_id, include_deleted=True)
        check_org_permission(user, ticket["organization_id"], "tags:write_values")
        table = TAG_VALUE_TABLES[tag_key["tag_type"]]
        existing = self._find_value(table, tag_data.ticket_id, tag_data.tag_key_id)
        if not existing:
            return None
        deleted = soft_delete(self.supabase, table, existing["id"])
        return {"tag_type": tag_key["tag_type"], **dump_row(table, deleted or existing)}

    def get_ticket_tags(self, user: AuthUser, ticket_id: str) -> Dict[str, List[Dict[str, Any]]]:
        """Active tag values of a ticket keyed by tag type; values of deleted tag keys are left out"""
        ticket = self.tickets.get_accessible_ticket(user, ticket_id)
        keys_result = active(
            self.supabase.table("ticket_tag_keys")
            .select("id")
            .eq("organization_id", ticket["organization_id"])
        ).execute()
        key_ids = set(ids_of(keys_result.data or []))
        grouped = {}
        for tag_type in TAG_TYPES:
            table = TAG_VALUE_TABLES[tag_type]
            result = active(
                self.supabase.table(table)
                .select("*")
                .eq("ticket_id", ticket_id)
            ).execute()
            values = [v for v in result.data or [] if v["tag_key_id"] in key_ids]
            grouped[tag_type] = dump_rows(table, values)
        return grouped

    # Value rows by id, used by offline sync

    def _get_value_with_key(self, tag_type: str, value_id: str):
        table = TAG_VALUE_TABLES[tag_type]
        existing = get_by_id(self.supabase, table, value_id)
        if not existing:
            raise NotFoundError("Tag value not found")
        return table, existing, self._get_tag_key(existing["tag_key_id"], include_deleted=True)

    def update_tag_value(self, user: AuthUser, tag_type: str, value_id: str, data: Dict[str, Any]) -> Dict[str, Any]:
        table, existing, tag_key = self._get_value_with_key(tag_type, value_id)
        check_org_permission(user, tag_key["organization_id"], "tags:write_values")
        if existing.get("deleted_at"):
            return dump_row(table, existing)
        tag_data = TicketTagSet(
            ticket_id=existing["ticket_id"],
            tag_key_id=existing["tag_key_id"],
            value=data.get("value"),
            enum_option_id=data.get("enum_option_id"),
        )
        update_data = validate_update(table, self._value_payload(tag_key, tag_data))
        result = self.supabase.table(table)\
            .update(touch(update_data))\
            .eq("id", value_id)\
            .execute()
        return dump_row(table, first(result) or existing)

    def delete_tag_value(self, user: AuthUser, tag_type: str, value_id: str) -> Dict[str, Any]:
        table, existing, tag_key = self._get_value_with_key(tag_type, value_id)
        check_org_permission(user, tag_key["organization_id"], "tags:write_values")
        deleted = soft_delete(self.supabase, table, value_id)
        return dump_row(table, deleted or existing)

