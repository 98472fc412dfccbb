"""PostgreSQL type OIDs used as wire type tags.

Values match pg_type.oid in a stock PostgreSQL catalog.
"""

from __future__ import annotations

from typing import Final

BOOL: Final = 16
INT8: Final = 20
INT4: Final = 23
TEXT: Final = 25
JSON: Final = 114
FLOAT8: Final = 701
DATE: Final = 1082
TIMESTAMPTZ: Final = 1184

BOOL_ARRAY: Final = 1000
INT4_ARRAY: Final = 1007
TEXT_ARRAY: Final = 1009
INT8_ARRAY: Final = 1016
FLOAT8_ARRAY: Final = 1022
DATE_ARRAY: Final = 1182
TIMESTAMPTZ_ARRAY: Final = 1185

# Element type -> "array of" type. json has no array form here.
ARRAY_OF: Final[dict[int, int]] = {
    TEXT: TEXT_ARRAY,
    BOOL: BOOL_ARRAY,
    INT4: INT4_ARRAY,
    INT8: INT8_ARRAY,
    FLOAT8: FLOAT8_ARRAY,
    DATE: DATE_ARRAY,
    TIMESTAMPTZ: TIMESTAMPTZ_ARRAY,
}

ELEMENT_OF: Final[dict[int, int]] = {array: element for element, array in ARRAY_OF.items()}

# Fixed-length types report their size in RowDescription, everything else is -1.
TYPE_SIZES: Final[dict[int, int]] = {
    BOOL: 1,
    INT4: 4,
    INT8: 8,
    FLOAT8: 8,
    DATE: 4,
    TIMESTAMPTZ: 8,
}

TYPE_NAMES: Final[dict[int, str]] = {
    BOOL: "bool",
    INT8: "int8",
    INT4: "int4",
    TEXT: "text",
    JSON: "json",
    FLOAT8: "float8",
    DATE: "date",
    TIMESTAMPTZ: "timestamptz",
    BOOL_ARRAY: "_bool",
    INT4_ARRAY: "_int4",
    TEXT_ARRAY: "_text",
    INT8_ARRAY: "_int8",
    FLOAT8_ARRAY: "_float8",
    DATE_ARRAY: "_date",
    TIMESTAMPTZ_ARRAY: "_timestamptz",
}


def type_size(oid: int) -> int:
    return TYPE_SIZES.get(oid, -1)
