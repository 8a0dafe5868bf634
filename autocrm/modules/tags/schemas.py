from pydantic import BaseModel, Field
from typing import Optional, Union
from autocrm.schema.tables import TagType


class TagKeyCreate(BaseModel):
    id: Optional[str] = None
    organization_id: str
    name: str = Field(min_length=1)
    tag_type: TagType
    description: Optional[str] = None


class TagKeyUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1)
    description: Optional[str] = None


class TagKeyListQuery(BaseModel):
    organization_id: str


class EnumOptionCreate(BaseModel):
    id: Optional[str] = None
    tag_key_id: str
    value: str = Field(min_length=1)


class EnumOptionUpdate(BaseModel):
    value: Optional[str] = Field(default=None, min_length=1)


class TicketTagSet(BaseModel):
    """
    Value of one tag on one ticket. `value` is used for text, number and date keys
    (dates as YYYY-MM-DD), `enum_option_id` for enum keys.
    """
    id: Optional[str] = None
    ticket_id: str
    tag_key_id: str
    value: Optional[Union[float, str]] = None
    enum_option_id: Optional[str] = None


class TicketTagRemove(BaseModel):
    ticket_id: str
    tag_key_id: str


class TicketTagsQuery(BaseModel):
    ticket_id: str
