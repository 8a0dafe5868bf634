from pydantic import BaseModel, Field, field_validator
from typing import Any, Dict, List, Optional, Union
from autocrm.schema.tables import TicketPriority, TicketStatus


class DateTagRequirement(BaseModel):
    """Bounds in days relative to now; `equals` matches within one day"""
    before: Optional[float] = None
    after: Optional[float] = None
    equals: Optional[str] = None

    @field_validator("equals")
    @classmethod
    def equals_is_a_day_offset(cls, v: Optional[str]) -> Optional[str]:
        if v is not None:
            float(v)
        return v


class NumberTagRequirement(BaseModel):
    min: Optional[float] = None
    max: Optional[float] = None
    equals: Optional[float] = None


class TextTagRequirement(BaseModel):
    equals: Optional[str] = None
    contains: Optional[str] = None
    regex: Optional[str] = None


class TimeRange(BaseModel):
    """Epoch milliseconds"""
    before: Optional[float] = None
    after: Optional[float] = None


class MacroRequirements(BaseModel):
    date_tag_requirements: Dict[str, DateTagRequirement]
    number_tag_requirements: Dict[str, NumberTagRequirement]
    text_tag_requirements: Dict[str, TextTagRequirement]
    # an option id must match; a list of option ids must not match
    enum_tag_requirements: Dict[str, Union[str, List[str]]]
    created_at: Optional[TimeRange] = None
    updated_at: Optional[TimeRange] = None
    status: Optional[str] = None
    priority: Optional[str] = None


class TagsToModify(BaseModel):
    date_tags: Dict[str, float]  # days from now
    number_tags: Dict[str, float]
    text_tags: Dict[str, str]
    enum_tags: Dict[str, str]


class MacroActions(BaseModel):
    tag_keys_to_remove: List[str]
    tags_to_modify: TagsToModify
    comment: Optional[str] = None
    new_status: Optional[TicketStatus] = None
    new_priority: Optional[TicketPriority] = None


class MacroData(BaseModel):
    """Shape of macros.macro"""
    name: str = Field(min_length=1)
    description: Optional[str] = None
    requirements: MacroRequirements
    actions: MacroActions
    aiActions: Optional[Dict[str, Any]] = None


class MacroCreate(BaseModel):
    id: Optional[str] = None
    organization_id: str
    macro: MacroData


class MacroUpdate(BaseModel):
    macro: MacroData


class MacroApply(BaseModel):
    macro_id: str
    organization_id: str
    ticket_ids: List[str] = Field(min_length=1)


class MacroStatsQuery(BaseModel):
    macro_id: str
    organization_id: str


class MacroStats(BaseModel):
    name: str
    avgLatency: float = 0
    avgCompleteSuccess: float = 0
    avgPartialSuccess: float = 0
