from logfire_pg.schema.descriptors import (
    ColumnSchema,
    ListType,
    ScalarType,
    TypeDescriptor,
    descriptor_from_arrow,
    descriptor_from_json,
    schema_from_arrow,
)
from logfire_pg.schema.literals import format_array_literal, parse_array_literal
from logfire_pg.schema.mapping import format_timestamp, map_schema, map_type, map_value

__all__ = [
    "ColumnSchema",
    "ListType",
    "ScalarType",
    "TypeDescriptor",
    "descriptor_from_arrow",
    "descriptor_from_json",
    "format_array_literal",
    "format_timestamp",
    "map_schema",
    "map_type",
    "map_value",
    "parse_array_literal",
    "schema_from_arrow",
]
