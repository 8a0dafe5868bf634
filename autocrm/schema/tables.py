# Relational schema of the helpdesk backing store (Supabase / Postgres, schema "public").
# Every relation is described once, column by column; Row / Insert / Update
# models are derived from these definitions in autocrm.schema.projections.

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Literal, Optional, Tuple

TAG_TYPES = ("text", "number", "date", "enum")

TicketStatus = Literal["open", "in_progress", "closed"]
TicketPriority = Literal["low", "medium", "high"]
TagType = Literal["text", "number", "date", "enum"]

# Postgres json / jsonb
Json = Any


@dataclass(frozen=True)
class Column:
    name: str
    type: Any
    nullable: bool = False
    has_default: bool = False
    default: Any = None  # server-side default value, when it is a constant
    constraints: Dict[str, Any] = field(default_factory=dict)

    @property
    def required_on_insert(self) -> bool:
        return not self.nullable and not self.has_default


@dataclass(frozen=True)
class Relationship:
    foreign_key_name: str
    columns: Tuple[str, ...]
    referenced_relation: str
    referenced_columns: Tuple[str, ...] = ("id",)
    is_one_to_one: bool = False


@dataclass(frozen=True)
class Table:
    name: str
    columns: Tuple[Column, ...]
    relationships: Tuple[Relationship, ...] = ()

    @property
    def column_names(self) -> List[str]:
        return [c.name for c in self.columns]

    def column(self, name: str) -> Column:
        for c in self.columns:
            if c.name == name:
                return c
        raise KeyError(f"{self.name} has no column {name!r}")

    @property
    def soft_deletable(self) -> bool:
        return "deleted_at" in self.column_names


@dataclass(frozen=True)
class Function:
    name: str
    args: Dict[str, Any]
    returns: Any


def _id() -> Column:
    return Column("id", str, has_default=True)


def _fk(name: str) -> Column:
    return Column(name, str)


def _timestamps(nullable: bool) -> Tuple[Column, ...]:
    """created_at/updated_at default to now(); deleted_at marks a soft-deleted row."""
    return (
        Column("created_at", datetime, nullable=nullable, has_default=True),
        Column("updated_at", datetime, nullable=nullable, has_default=True),
        Column("deleted_at", datetime, nullable=True, has_default=True),
    )


def _refs(table: str, *targets: Tuple[str, str]) -> Tuple[Relationship, ...]:
    return tuple(
        Relationship(f"{table}_{column}_fkey", (column,), relation)
        for column, relation in targets
    )


ORGANIZATIONS = Table(
    "organizations",
    (
        _id(),
        Column("name", str, constraints={"min_length": 1}),
        *_timestamps(nullable=True),
    ),
)

PROFILES = Table(
    "profiles",
    (
        # assigned from the auth identity, never generated
        Column("id", str),
        Column("full_name", str, nullable=True, has_default=True),
        Column("avatar_url", str, nullable=True, has_default=True),
        *_timestamps(nullable=True),
    ),
)

PROFILE_ORGANIZATION_MEMBERS = Table(
    "profile_organization_members",
    (
        _id(),
        _fk("organization_id"),
        _fk("profile_id"),
        Column("role", str, nullable=True, has_default=True),
        *_timestamps(nullable=True),
    ),
    _refs(
        "profile_organization_members",
        ("organization_id", "organizations"),
        ("profile_id", "profiles"),
    ),
)

ORGANIZATION_INVITATIONS = Table(
    "organization_invitations",
    (
        _id(),
        _fk("organization_id"),
        Column("email", str),
        Column("role", str),
        *_timestamps(nullable=True),
    ),
    _refs("organization_invitations", ("organization_id", "organizations")),
)

TICKETS = Table(
    "tickets",
    (
        _id(),
        _fk("organization_id"),
        _fk("created_by"),
        Column("assigned_to", str, nullable=True, has_default=True),
        Column("title", str, constraints={"min_length": 1}),
        Column("description", str, nullable=True, has_default=True),
        Column("status", TicketStatus, has_default=True, default="open"),
        Column("priority", TicketPriority, has_default=True, default="medium"),
        *_timestamps(nullable=True),
    ),
    _refs(
        "tickets",
        ("assigned_to", "profiles"),
        ("created_by", "profiles"),
        ("organization_id", "organizations"),
    ),
)

TICKET_COMMENTS = Table(
    "ticket_comments",
    (
        _id(),
        _fk("ticket_id"),
        _fk("user_id"),
        Column("comment", str, constraints={"min_length": 1}),
        *_timestamps(nullable=True),
    ),
    _refs("ticket_comments", ("ticket_id", "tickets"), ("user_id", "profiles")),
)

TICKET_TAG_KEYS = Table(
    "ticket_tag_keys",
    (
        _id(),
        _fk("organization_id"),
        Column("name", str, constraints={"min_length": 1}),
        Column("tag_type", TagType),
        Column("description", str, nullable=True, has_default=True),
        *_timestamps(nullable=False),
    ),
    _refs("ticket_tag_keys", ("organization_id", "organizations")),
)


def _tag_value_table(name: str, value_type: Any) -> Table:
    return Table(
        name,
        (
            _id(),
            _fk("tag_key_id"),
            _fk("ticket_id"),
            Column("value", value_type),
            *_timestamps(nullable=False),
        ),
        _refs(name, ("tag_key_id", "ticket_tag_keys"), ("ticket_id", "tickets")),
    )


TICKET_TAG_TEXT_VALUES = _tag_value_table("ticket_tag_text_values", str)
TICKET_TAG_NUMBER_VALUES = _tag_value_table("ticket_tag_number_values", float)
# ISO date string (YYYY-MM-DD)
TICKET_TAG_DATE_VALUES = _tag_value_table("ticket_tag_date_values", str)

TICKET_TAG_ENUM_OPTIONS = Table(
    "ticket_tag_enum_options",
    (
        _id(),
        _fk("tag_key_id"),
        Column("value", str, constraints={"min_length": 1}),
        *_timestamps(nullable=False),
    ),
    _refs("ticket_tag_enum_options", ("tag_key_id", "ticket_tag_keys")),
)

TICKET_TAG_ENUM_VALUES = Table(
    "ticket_tag_enum_values",
    (
        _id(),
        _fk("tag_key_id"),
        _fk("ticket_id"),
        _fk("enum_option_id"),
        *_timestamps(nullable=False),
    ),
    _refs(
        "ticket_tag_enum_values",
        ("enum_option_id", "ticket_tag_enum_options"),
        ("tag_key_id", "ticket_tag_keys"),
        ("ticket_id", "tickets"),
    ),
)

MACROS = Table(
    "macros",
    (
        _id(),
        _fk("organization_id"),
        Column("macro", Json),
        *_timestamps(nullable=False),
    ),
    _refs("macros", ("organization_id", "organizations")),
)

TICKET_DRAFTS = Table(
    "ticket_drafts",
    (
        _id(),
        _fk("organization_id"),
        _fk("created_by"),
        _fk("created_by_macro"),
        Column("assigned_to", str, nullable=True, has_default=True),
        Column("original_ticket_id", str, nullable=True, has_default=True),
        Column("parent_draft_id", str, nullable=True, has_default=True),
        Column("title", str),
        Column("description", str, nullable=True, has_default=True),
        Column("status", TicketStatus, has_default=True, default="open"),
        Column("priority", TicketPriority, has_default=True, default="medium"),
        Column("draft_status", str, has_default=True),
        # milliseconds spent producing the draft
        Column("latency", float, nullable=True, has_default=True),
        *_timestamps(nullable=True),
    ),
    _refs(
        "ticket_drafts",
        ("organization_id", "organizations"),
        ("created_by", "profiles"),
        ("created_by_macro", "macros"),
        ("original_ticket_id", "tickets"),
        ("parent_draft_id", "ticket_drafts"),
    ),
)

TICKET_DRAFT_MACROS = Table(
    "ticket_draft_macros",
    (
        _id(),
        _fk("ticket_draft_id"),
        _fk("macro_id"),
        *_timestamps(nullable=True),
    ),
    _refs("ticket_draft_macros", ("ticket_draft_id", "ticket_drafts"), ("macro_id", "macros")),
)

PUBLIC_TABLES: Dict[str, Table] = {
    t.name: t
    for t in (
        MACROS,
        ORGANIZATION_INVITATIONS,
        ORGANIZATIONS,
        PROFILE_ORGANIZATION_MEMBERS,
        PROFILES,
        TICKET_COMMENTS,
        TICKET_DRAFT_MACROS,
        TICKET_DRAFTS,
        TICKET_TAG_DATE_VALUES,
        TICKET_TAG_ENUM_OPTIONS,
        TICKET_TAG_ENUM_VALUES,
        TICKET_TAG_KEYS,
        TICKET_TAG_NUMBER_VALUES,
        TICKET_TAG_TEXT_VALUES,
        TICKETS,
    )
}

# Access-control functions defined in the database; check_invitation_access is overloaded.
PUBLIC_FUNCTIONS: Dict[str, Tuple[Function, ...]] = {
    "check_invitation_access": (
        Function("check_invitation_access", {"invitation_id": str, "user_id": str}, bool),
        Function("check_invitation_access", {"org_id": str, "invite_email": str}, bool),
    ),
    "check_is_org_admin": (
        Function("check_is_org_admin", {"org_id": str, "user_id": str}, bool),
    ),
    "check_is_org_member": (
        Function("check_is_org_member", {"org_id": str, "user_id": str}, bool),
    ),
}

# Which value relation holds the values of a tag key, by tag_type
TAG_VALUE_TABLES: Dict[str, str] = {
    "text": TICKET_TAG_TEXT_VALUES.name,
    "number": TICKET_TAG_NUMBER_VALUES.name,
    "date": TICKET_TAG_DATE_VALUES.name,
    "enum": TICKET_TAG_ENUM_VALUES.name,
}

DATABASE: Dict[str, Dict[str, Any]] = {
    "public": {
        "tables": PUBLIC_TABLES,
        "views": {},
        "functions": PUBLIC_FUNCTIONS,
        "enums": {},
    },
}

DEFAULT_SCHEMA = "public"


def referencing_relations(relation: str) -> List[Tuple[str, Relationship]]:
    """Relations holding a foreign key to `relation`, e.g. everything that belongs to a ticket."""
    found = []
    for table in PUBLIC_TABLES.values():
        for rel in table.relationships:
            if rel.referenced_relation == relation:
                found.append((table.name, rel))
    return found


def find_function(name: str, args: Dict[str, Any]) -> Optional[Function]:
    for overload in PUBLIC_FUNCTIONS.get(name, ()):
        if set(overload.args) == set(args):
            return overload
    return None
