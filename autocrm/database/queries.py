"""Small helpers shared by the services for soft-deleted relations."""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from supabase import Client


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


def active(query):
    """Restrict a select to rows that have not been soft-deleted."""
    return query.is_("deleted_at", "null")


def first(result) -> Optional[Dict[str, Any]]:
    if not result.data:
        return None
    return result.data[0]


def get_active_by_id(supabase: Client, table: str, row_id: str) -> Optional[Dict[str, Any]]:
    result = active(
        supabase.table(table)
        .select("*")
        .eq("id", row_id)
    ).limit(1).execute()
    return first(result)


def get_by_id(supabase: Client, table: str, row_id: str) -> Optional[Dict[str, Any]]:
    """Fetch a row whether or not it is soft-deleted."""
    result = supabase.table(table)\
        .select("*")\
        .eq("id", row_id)\
        .limit(1)\
        .execute()
    return first(result)


def soft_delete(supabase: Client, table: str, row_id: str) -> Optional[Dict[str, Any]]:
    now = utc_now()
    result = supabase.table(table)\
        .update({"deleted_at": now, "updated_at": now})\
        .eq("id", row_id)\
        .execute()
    return first(result)


def touch(update_data: Dict[str, Any]) -> Dict[str, Any]:
    """Stamp updated_at on a partial update payload."""
    return {**update_data, "updated_at": utc_now()}


def ids_of(rows: List[Dict[str, Any]], key: str = "id") -> List[str]:
    return [row[key] for row in rows if row.get(key)]
