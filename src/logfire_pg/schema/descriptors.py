"""Upstream column schema descriptors.

A `TypeDescriptor` is either a `ScalarType` (named kind, plus unit/timezone for
timestamps) or a `ListType` wrapping another descriptor. Descriptors are built
from Arrow schemas (streaming transport) or from the JSON `datatype` field
(buffered transport). Unknown kinds are kept as-is and rejected later by
`map_type`.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Final, Literal

import pyarrow as pa

UTF8: Final = "Utf8"
LARGE_UTF8: Final = "LargeUtf8"
JSON_KIND: Final = "Json"
BOOLEAN: Final = "Boolean"
INT32: Final = "Int32"
INT64: Final = "Int64"
UINT16: Final = "UInt16"
UINT32: Final = "UInt32"
UINT64: Final = "UInt64"
FLOAT64: Final = "Float64"
DATE32: Final = "Date32"
TIMESTAMP: Final = "Timestamp"

TimeUnit = Literal["s", "ms", "us", "ns"]

# Arrow's Rust/serde unit names, as they appear in JSON datatype descriptors.
_UNIT_ALIASES: Final[dict[str, TimeUnit]] = {
    "second": "s",
    "millisecond": "ms",
    "microsecond": "us",
    "nanosecond": "ns",
    "s": "s",
    "ms": "ms",
    "us": "us",
    "ns": "ns",
}


@dataclass(frozen=True)
class ScalarType:
    kind: str
    unit: TimeUnit | None = None
    timezone: str | None = None

    def __str__(self) -> str:
        if self.kind == TIMESTAMP:
            return f"Timestamp({self.unit}, {self.timezone})"
        return self.kind


@dataclass(frozen=True)
class ListType:
    inner: TypeDescriptor

    def __str__(self) -> str:
        return f"List({self.inner})"


TypeDescriptor = ScalarType | ListType


@dataclass(frozen=True)
class ColumnSchema:
    name: str
    declared_type: TypeDescriptor
    nullable: bool = True


def timestamp(unit: TimeUnit = "us", timezone: str | None = "UTC") -> ScalarType:
    return ScalarType(TIMESTAMP, unit=unit, timezone=timezone)


def _normalize_unit(raw: Any) -> TimeUnit:
    if isinstance(raw, str) and raw.lower() in _UNIT_ALIASES:
        return _UNIT_ALIASES[raw.lower()]
    raise ValueError(f"unknown time unit: {raw!r}")


def descriptor_from_arrow(data_type: pa.DataType) -> TypeDescriptor:
    """Build a descriptor from a pyarrow data type."""
    if pa.types.is_list(data_type) or pa.types.is_large_list(data_type):
        return ListType(descriptor_from_arrow(data_type.value_type))
    if pa.types.is_string(data_type):
        return ScalarType(UTF8)
    if pa.types.is_large_string(data_type):
        return ScalarType(LARGE_UTF8)
    if pa.types.is_boolean(data_type):
        return ScalarType(BOOLEAN)
    if pa.types.is_int32(data_type):
        return ScalarType(INT32)
    if pa.types.is_int64(data_type):
        return ScalarType(INT64)
    if pa.types.is_uint16(data_type):
        return ScalarType(UINT16)
    if pa.types.is_uint32(data_type):
        return ScalarType(UINT32)
    if pa.types.is_uint64(data_type):
        return ScalarType(UINT64)
    if pa.types.is_float64(data_type):
        return ScalarType(FLOAT64)
    if pa.types.is_date32(data_type):
        return ScalarType(DATE32)
    if pa.types.is_timestamp(data_type):
        return timestamp(_normalize_unit(data_type.unit), data_type.tz)
    if isinstance(data_type, pa.BaseExtensionType) and "json" in data_type.extension_name:
        return ScalarType(JSON_KIND)
    # Kept by name so the mapping error can say what was received.
    return ScalarType(str(data_type))


def descriptor_from_json(raw: Any) -> TypeDescriptor:
    """Build a descriptor from a JSON `datatype` value.

    Accepted forms: `"Int64"`, `{"Timestamp": ["Microsecond", "UTC"]}`,
    `{"List": {"data_type": "Utf8", ...}}` and `{"List": "Utf8"}`.
    """
    if isinstance(raw, str):
        return ScalarType(raw)

    if isinstance(raw, dict) and len(raw) == 1:
        ((tag, payload),) = raw.items()
        if tag == TIMESTAMP:
            if isinstance(payload, list | tuple) and payload:
                unit = _normalize_unit(payload[0])
                tz = payload[1] if len(payload) > 1 else None
                return timestamp(unit, tz)
            raise ValueError(f"malformed Timestamp datatype: {payload!r}")
        if tag in ("List", "LargeList"):
            if isinstance(payload, dict) and "data_type" in payload:
                return ListType(descriptor_from_json(payload["data_type"]))
            return ListType(descriptor_from_json(payload))
        return ScalarType(tag)

    raise ValueError(f"unrecognized datatype descriptor: {raw!r}")


def schema_from_arrow(schema: pa.Schema) -> list[ColumnSchema]:
    return [
        ColumnSchema(
            name=field.name,
            declared_type=descriptor_from_arrow(field.type),
            nullable=field.nullable,
        )
        for field in schema
    ]
