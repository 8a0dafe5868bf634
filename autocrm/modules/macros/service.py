import logging
import re
from datetime import datetime, timedelta, timezone
from pydantic import ValidationError
from supabase import Client
from autocrm.core.dependencies import check_org_member, check_org_permission
from autocrm.core.errors import BadRequestError, NotFoundError, RpcError
from autocrm.database.queries import active, first, get_by_id, ids_of, soft_delete, touch, utc_now
from autocrm.modules.auth.schemas import AuthUser
from autocrm.modules.macros.schemas import (
    MacroApply, MacroCreate, MacroData, MacroRequirements, MacroStats, MacroStatsQuery, MacroUpdate
)
from autocrm.schema import dump_row, validate_insert, validate_update
from autocrm.schema.tables import TAG_VALUE_TABLES
from typing import Any, Dict, List, Optional, Set

logger = logging.getLogger(__name__)

MACROS = "macros"
ACCEPTED = "accepted"
PARTIALLY_ACCEPTED = "partially_accepted"
DAY_MS = 24 * 60 * 60 * 1000


def _epoch_ms(value: Any) -> Optional[float]:
    if value is None:
        return None
    if not isinstance(value, datetime):
        value = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.timestamp() * 1000


def _outside(value_ms: Optional[float], before: Optional[float], after: Optional[float]) -> bool:
    if value_ms is None:
        return False
    if before is not None and value_ms >= before:
        return True
    if after is not None and value_ms <= after:
        return True
    return False


def _parse_macro(macro: Dict[str, Any]) -> MacroData:
    try:
        return MacroData.model_validate(macro.get("macro"))
    except ValidationError:
        raise BadRequestError("Invalid macro data structure")


class MacroService:
    def __init__(self, supabase: Client):
        self.supabase = supabase

    def _get_macro(self, macro_id: str, organization_id: str) -> Dict[str, Any]:
        result = active(
            self.supabase.table(MACROS)
            .select("*")
            .eq("id", macro_id)
            .eq("organization_id", organization_id)
        ).limit(1).execute()
        macro = first(result)
        if not macro:
            raise NotFoundError("Macro not found")
        return macro

    def _check_tag_keys(self, organization_id: str, macro: MacroData):
        """Every tag key a macro mentions must be an active key of the organization of the right type"""
        requirements, modify = macro.requirements, macro.actions.tags_to_modify
        typed: Dict[str, Set[str]] = {
            "date": set(requirements.date_tag_requirements) | set(modify.date_tags),
            "number": set(requirements.number_tag_requirements) | set(modify.number_tags),
            "text": set(requirements.text_tag_requirements) | set(modify.text_tags),
            "enum": set(requirements.enum_tag_requirements) | set(modify.enum_tags),
        }
        referenced = set(macro.actions.tag_keys_to_remove).union(*typed.values())
        if not referenced:
            return
        result = active(
            self.supabase.table("ticket_tag_keys")
            .select("id, tag_type")
            .eq("organization_id", organization_id)
            .in_("id", list(referenced))
        ).execute()
        key_types = {key["id"]: key["tag_type"] for key in result.data or []}
        if referenced - set(key_types):
            raise BadRequestError("Macro refers to tag keys that do not exist")
        for tag_type, key_ids in typed.items():
            if any(key_types[key_id] != tag_type for key_id in key_ids):
                raise BadRequestError(f"Macro uses a tag key as {tag_type} that is not of type {tag_type}")

    def create_macro(self, user: AuthUser, macro_data: MacroCreate) -> Dict[str, Any]:
        check_org_permission(user, macro_data.organization_id, "macros:write")
        self._check_tag_keys(macro_data.organization_id, macro_data.macro)
        payload = validate_insert(MACROS, {
            **macro_data.model_dump(exclude_none=True, include={"id", "organization_id"}),
            "macro": macro_data.macro.model_dump(mode="json", exclude_none=True),
        })
        result = self.supabase.table(MACROS).insert(payload).execute()
        macro = first(result)
        if not macro:
            raise RpcError("Failed to create macro")
        logger.info(f"Macro {macro['id']} created in organization {macro_data.organization_id}")
        return dump_row(MACROS, macro)

    def update_macro(self, user: AuthUser, macro_id: str, macro_data: MacroUpdate) -> Dict[str, Any]:
        """Replace a macro definition; a deleted macro is returned unchanged"""
        existing = get_by_id(self.supabase, MACROS, macro_id)
        if not existing:
            raise NotFoundError("Macro not found")
        check_org_permission(user, existing["organization_id"], "macros:write")
        if existing.get("deleted_at"):
            return dump_row(MACROS, existing)
        self._check_tag_keys(existing["organization_id"], macro_data.macro)
        update_data = validate_update(MACROS, {"macro": macro_data.macro.model_dump(mode="json", exclude_none=True)})
        result = self.supabase.table(MACROS)\
            .update(touch(update_data))\
            .eq("id", macro_id)\
            .execute()
        return dump_row(MACROS, first(result) or existing)

    def delete_macro(self, user: AuthUser, macro_id: str) -> Dict[str, Any]:
        existing = get_by_id(self.supabase, MACROS, macro_id)
        if not existing:
            raise NotFoundError("Macro not found")
        check_org_permission(user, existing["organization_id"], "macros:write")
        if existing.get("deleted_at"):
            return dump_row(MACROS, existing)
        deleted = soft_delete(self.supabase, MACROS, macro_id)
        return dump_row(MACROS, deleted or existing)

    def apply_macro(self, user: AuthUser, apply_data: MacroApply) -> Dict[str, Any]:
        """
        Run a macro over a set of tickets. Tickets that fail any requirement are left
        alone; the others get the status and priority changes, tag removals, tag
        writes and comment the macro describes. BAD_REQUEST when no ticket qualifies.
        """
        organization_id = apply_data.organization_id
        check_org_permission(user, organization_id, "macros:apply")
        macro_data = _parse_macro(self._get_macro(apply_data.macro_id, organization_id))

        ticket_ids = list(dict.fromkeys(apply_data.ticket_ids))
        tickets_result = active(
            self.supabase.table("tickets")
            .select("*")
            .in_("id", ticket_ids)
            .eq("organization_id", organization_id)
        ).execute()
        tickets = tickets_result.data or []
        if len(tickets) != len(ticket_ids):
            raise NotFoundError("One or more tickets not found")

        values = self._tag_values(ticket_ids)
        now_ms = datetime.now(timezone.utc).timestamp() * 1000
        valid_ids = [
            ticket["id"] for ticket in tickets
            if self._meets(ticket, values, macro_data.requirements, now_ms)
        ]
        if not valid_ids:
            raise BadRequestError("No tickets meet the macro requirements")

        self._apply_actions(user, macro_data, valid_ids, values)
        logger.info(f"Macro {apply_data.macro_id} applied to {len(valid_ids)} tickets by {user.id}")
        return {"appliedToTickets": valid_ids}

    def _tag_values(self, ticket_ids: List[str]) -> Dict[str, Dict[str, Dict[str, Dict[str, Any]]]]:
        """tag_type -> ticket_id -> tag_key_id -> active value row"""
        values = {}
        for tag_type, table in TAG_VALUE_TABLES.items():
            result = active(
                self.supabase.table(table)
                .select("*")
                .in_("ticket_id", ticket_ids)
            ).execute()
            by_ticket: Dict[str, Dict[str, Dict[str, Any]]] = {}
            for row in result.data or []:
                by_ticket.setdefault(row["ticket_id"], {})[row["tag_key_id"]] = row
            values[tag_type] = by_ticket
        return values

    def _meets(self, ticket: Dict[str, Any], values, requirements: MacroRequirements, now_ms: float) -> bool:
        if requirements.status and requirements.status != ticket.get("status"):
            return False
        if requirements.priority and requirements.priority != ticket.get("priority"):
            return False
        for column in ("created_at", "updated_at"):
            bounds = getattr(requirements, column)
            if bounds and _outside(_epoch_ms(ticket.get(column)), bounds.before, bounds.after):
                return False

        def value_of(tag_type: str, tag_key_id: str) -> Optional[Dict[str, Any]]:
            row = values[tag_type].get(ticket["id"], {}).get(tag_key_id)
            if row and tag_type != "enum" and row.get("value") is None:
                return None
            return row

        for tag_key_id, requirement in requirements.date_tag_requirements.items():
            row = value_of("date", tag_key_id)
            if not row:
                return False
            value_ms = _epoch_ms(row["value"])
            before = now_ms + requirement.before * DAY_MS if requirement.before is not None else None
            after = now_ms + requirement.after * DAY_MS if requirement.after is not None else None
            if _outside(value_ms, before, after):
                return False
            if requirement.equals is not None:
                if abs(value_ms - (now_ms + float(requirement.equals) * DAY_MS)) > DAY_MS:
                    return False

        for tag_key_id, requirement in requirements.number_tag_requirements.items():
            row = value_of("number", tag_key_id)
            if not row:
                return False
            number = float(row["value"])
            if requirement.min is not None and number < requirement.min:
                return False
            if requirement.max is not None and number > requirement.max:
                return False
            if requirement.equals is not None and number != requirement.equals:
                return False

        for tag_key_id, requirement in requirements.text_tag_requirements.items():
            row = value_of("text", tag_key_id)
            if not row:
                return False
            text = row["value"]
            if requirement.equals is not None and text != requirement.equals:
                return False
            if requirement.contains is not None and requirement.contains not in text:
                return False
            if requirement.regex is not None:
                try:
                    if not re.search(requirement.regex, text):
                        return False
                except re.error:
                    raise BadRequestError(f"Invalid pattern for tag key {tag_key_id}")

        for tag_key_id, requirement in requirements.enum_tag_requirements.items():
            row = value_of("enum", tag_key_id)
            if not row:
                return False
            if isinstance(requirement, list):
                if row["enum_option_id"] in requirement:
                    return False
            elif row["enum_option_id"] != requirement:
                return False
        return True

    def _apply_actions(self, user: AuthUser, macro_data: MacroData, ticket_ids: List[str], values):
        actions = macro_data.actions
        now = utc_now()

        ticket_changes = {}
        if actions.new_status:
            ticket_changes["status"] = actions.new_status
        if actions.new_priority:
            ticket_changes["priority"] = actions.new_priority
        if ticket_changes:
            self.supabase.table("tickets")\
                .update({**ticket_changes, "updated_at": now})\
                .in_("id", ticket_ids)\
                .execute()

        removed = set(actions.tag_keys_to_remove)
        if removed:
            for table in TAG_VALUE_TABLES.values():
                self.supabase.table(table)\
                    .update({"deleted_at": now, "updated_at": now})\
                    .in_("ticket_id", ticket_ids)\
                    .in_("tag_key_id", list(removed))\
                    .execute()

        modify = actions.tags_to_modify
        today = datetime.now(timezone.utc).date()
        writes = [
            ("date", modify.date_tags, lambda days: {"value": (today + timedelta(days=days)).isoformat()}),
            ("number", modify.number_tags, lambda number: {"value": number}),
            ("text", modify.text_tags, lambda text: {"value": text}),
            ("enum", modify.enum_tags, lambda option_id: {"enum_option_id": option_id}),
        ]
        for tag_type, tags, payload_of in writes:
            table = TAG_VALUE_TABLES[tag_type]
            for tag_key_id, value in tags.items():
                for ticket_id in ticket_ids:
                    existing = None
                    if tag_key_id not in removed:
                        existing = values[tag_type].get(ticket_id, {}).get(tag_key_id)
                    self._write_value(table, existing, ticket_id, tag_key_id, payload_of(value))

        if actions.comment:
            self.supabase.table("ticket_comments").insert([
                validate_insert("ticket_comments", {"ticket_id": ticket_id, "comment": actions.comment, "user_id": user.id})
                for ticket_id in ticket_ids
            ]).execute()

    def _write_value(self, table: str, existing: Optional[Dict[str, Any]], ticket_id: str, tag_key_id: str, changes: Dict[str, Any]):
        if existing:
            self.supabase.table(table)\
                .update(touch(validate_update(table, changes)))\
                .eq("id", existing["id"])\
                .execute()
        else:
            self.supabase.table(table).insert(validate_insert(table, {
                "ticket_id": ticket_id,
                "tag_key_id": tag_key_id,
                **changes,
            })).execute()

    def get_macro_stats(self, user: AuthUser, query: MacroStatsQuery) -> Dict[str, Any]:
        """
        Usage statistics of a macro over the active drafts it produced:
        mean latency, share of drafts accepted as is, and share accepted
        fully or partially (both in percent).
        """
        check_org_member(user, query.organization_id)
        macro_data = _parse_macro(self._get_macro(query.macro_id, query.organization_id))

        links = self.supabase.table("ticket_draft_macros")\
            .select("ticket_draft_id")\
            .eq("macro_id", query.macro_id)\
            .execute()
        draft_ids = ids_of(links.data or [], "ticket_draft_id")
        drafts = []
        if draft_ids:
            drafts_result = active(
                self.supabase.table("ticket_drafts")
                .select("id, latency, draft_status")
                .in_("id", draft_ids)
                .eq("organization_id", query.organization_id)
            ).execute()
            drafts = drafts_result.data or []

        if not drafts:
            return MacroStats(name=macro_data.name).model_dump()

        latencies = [d["latency"] for d in drafts if d.get("latency") is not None]
        accepted = sum(1 for d in drafts if d.get("draft_status") == ACCEPTED)
        partially = sum(1 for d in drafts if d.get("draft_status") == PARTIALLY_ACCEPTED)
        total = len(drafts)
        stats = MacroStats(
            name=macro_data.name,
            avgLatency=sum(latencies) / len(latencies) if latencies else 0,
            avgCompleteSuccess=accepted / total * 100,
            avgPartialSuccess=(accepted + partially) / total * 100,
        )
        logger.debug(f"Macro {query.macro_id} stats over {total} drafts")
        return stats.model_dump()
