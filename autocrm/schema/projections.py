"""
Row / Insert / Update projections of the relations in autocrm.schema.tables.

    row_model("tickets")                  -> model of a ticket as read
    insert_model("public.tickets")        -> model accepted by an insert
    update_model({"schema": "public"}, "tickets")
                                          -> model accepted by a partial update

Nullability is exact in all three shapes: a nullable column accepts an explicit
None, a non-nullable column never does (not even in an Update, where it may only
be omitted). Insert and Update models reject unknown keys.
"""

from functools import lru_cache
from typing import Any, Dict, List, Optional, Tuple, Type, Union

from pydantic import BaseModel, ConfigDict, Field, create_model

from autocrm.schema.tables import DATABASE, DEFAULT_SCHEMA, Relationship, Table

RelationRef = Union[str, Tuple[str, str], Dict[str, str]]

ROW = "Row"
INSERT = "Insert"
UPDATE = "Update"


class UnknownRelationError(LookupError):
    """Raised when a relation name or schema-qualified reference resolves to nothing."""

    def __init__(self, reference: Any):
        self.reference = reference
        super().__init__(f"Unknown relation: {reference!r}")


class RowModel(BaseModel):
    model_config = ConfigDict(extra="ignore", from_attributes=True)


class WriteModel(BaseModel):
    model_config = ConfigDict(extra="forbid")


def parse_reference(reference: RelationRef, table_name: Optional[str] = None) -> Tuple[str, str]:
    """Split a relation reference into (schema, table)."""
    if isinstance(reference, dict):
        if "schema" not in reference:
            raise UnknownRelationError(reference)
        name = table_name or reference.get("table")
        if not name:
            raise UnknownRelationError(reference)
        return reference["schema"], name
    if isinstance(reference, tuple) and len(reference) == 2:
        return reference[0], reference[1]
    if isinstance(reference, str) and reference:
        if "." in reference:
            schema, name = reference.split(".", 1)
            return schema, name
        return DEFAULT_SCHEMA, reference
    raise UnknownRelationError(reference)


def get_table(reference: RelationRef, table_name: Optional[str] = None) -> Table:
    schema, name = parse_reference(reference, table_name)
    table = DATABASE.get(schema, {}).get("tables", {}).get(name)
    if table is None:
        raise UnknownRelationError(f"{schema}.{name}")
    return table


def _model_name(table: Table, shape: str) -> str:
    return "".join(part.capitalize() for part in table.name.split("_")) + shape


def _build(schema: str, name: str, shape: str) -> Type[BaseModel]:
    table = get_table((schema, name))
    fields = {}
    for column in table.columns:
        annotation = Optional[column.type] if column.nullable else column.type
        if shape == ROW:
            optional = column.nullable
        elif shape == INSERT:
            optional = not column.required_on_insert
        else:
            optional = True
        if optional:
            fields[column.name] = (annotation, Field(default=None, **column.constraints))
        else:
            fields[column.name] = (annotation, Field(..., **column.constraints))
    base = RowModel if shape == ROW else WriteModel
    return create_model(_model_name(table, shape), __base__=base, **fields)


@lru_cache(maxsize=None)
def _projection(schema: str, name: str, shape: str) -> Type[BaseModel]:
    return _build(schema, name, shape)


def _resolve(reference: RelationRef, table_name: Optional[str], shape: str) -> Type[BaseModel]:
    schema, name = parse_reference(reference, table_name)
    get_table((schema, name))
    return _projection(schema, name, shape)


def row_model(reference: RelationRef, table_name: Optional[str] = None) -> Type[BaseModel]:
    return _resolve(reference, table_name, ROW)


def insert_model(reference: RelationRef, table_name: Optional[str] = None) -> Type[BaseModel]:
    return _resolve(reference, table_name, INSERT)


def update_model(reference: RelationRef, table_name: Optional[str] = None) -> Type[BaseModel]:
    return _resolve(reference, table_name, UPDATE)


# Names used by the generated database types
Tables = row_model
TablesInsert = insert_model
TablesUpdate = update_model


def validate_insert(reference: RelationRef, payload: Dict[str, Any]) -> Dict[str, Any]:
    """Validate an insert payload; returns the JSON-ready dict with omitted defaults left out."""
    model = insert_model(reference).model_validate(payload)
    return model.model_dump(mode="json", exclude_unset=True)


def validate_update(reference: RelationRef, payload: Dict[str, Any]) -> Dict[str, Any]:
    """Validate a partial update; only the keys present in payload are returned."""
    model = update_model(reference).model_validate(payload)
    return model.model_dump(mode="json", exclude_unset=True)


def validate_row(reference: RelationRef, data: Dict[str, Any]) -> BaseModel:
    return row_model(reference).model_validate(data)


def dump_row(reference: RelationRef, data: Dict[str, Any]) -> Dict[str, Any]:
    """Project a raw row onto the relation's Row shape, dropping unknown keys."""
    return validate_row(reference, data).model_dump(mode="json")


def dump_rows(reference: RelationRef, rows: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    return [dump_row(reference, row) for row in rows]


def relationships(reference: RelationRef, table_name: Optional[str] = None) -> Tuple[Relationship, ...]:
    return get_table(reference, table_name).relationships


def relation_names(schema: str = DEFAULT_SCHEMA) -> List[str]:
    return sorted(DATABASE.get(schema, {}).get("tables", {}))
