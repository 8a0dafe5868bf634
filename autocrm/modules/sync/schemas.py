from pydantic import BaseModel, Field, RootModel, field_validator
from typing import Any, Dict, List

# relation -> verbs accepted for it
SYNC_RELATIONS = {
    "profiles": ("create", "update"),
    "organizations": ("create", "update", "delete"),
    "profile_organization_members": ("create", "update", "delete"),
    "tickets": ("create", "update", "delete"),
    "ticket_comments": ("create", "delete"),
    "organization_invitations": ("create", "update", "delete"),
    "ticket_tag_keys": ("create", "update", "delete"),
    "ticket_tag_text_values": ("create", "update", "delete"),
    "ticket_tag_number_values": ("create", "update", "delete"),
    "ticket_tag_date_values": ("create", "update", "delete"),
    "ticket_tag_enum_options": ("create", "update", "delete"),
    "ticket_tag_enum_values": ("create", "update", "delete"),
    "macros": ("create", "update", "delete"),
}


def operation_name(verb: str, relation: str) -> str:
    """create + tickets -> create_ticket"""
    return f"{verb}_{relation[:-1]}"


SYNC_OPERATIONS = {
    operation_name(verb, relation): (verb, relation)
    for relation, verbs in SYNC_RELATIONS.items()
    for verb in verbs
}


class SyncOperation(BaseModel):
    operation: str
    data: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("operation")
    @classmethod
    def known_operation(cls, v: str) -> str:
        if v not in SYNC_OPERATIONS:
            raise ValueError(f"Unknown sync operation: {v}")
        return v

    @property
    def verb(self) -> str:
        return SYNC_OPERATIONS[self.operation][0]

    @property
    def relation(self) -> str:
        return SYNC_OPERATIONS[self.operation][1]


class SyncInput(RootModel[List[SyncOperation]]):
    """A batch of offline mutations, applied in order"""
