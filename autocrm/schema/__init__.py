from autocrm.schema.projections import (
    Tables,
    TablesInsert,
    TablesUpdate,
    UnknownRelationError,
    dump_row,
    dump_rows,
    get_table,
    insert_model,
    row_model,
    update_model,
    validate_insert,
    validate_update,
)

__all__ = [
    "Tables",
    "TablesInsert",
    "TablesUpdate",
    "UnknownRelationError",
    "dump_row",
    "dump_rows",
    "get_table",
    "insert_model",
    "row_model",
    "update_model",
    "validate_insert",
    "validate_update",
]
