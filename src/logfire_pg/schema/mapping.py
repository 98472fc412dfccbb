"""Mapping from upstream column types and values to wire types and text values.

`map_type` picks the wire type tag (pg_type OID) for a column descriptor.
`map_value` renders a single value in PostgreSQL text format for a wire type
tag; None at any depth becomes SQL NULL.
"""

from __future__ import annotations

import json
import math
from collections.abc import Sequence
from datetime import UTC, date, datetime, timedelta
from decimal import Decimal
from typing import Any, Final

from logfire_pg.errors import UnsupportedType
from logfire_pg.schema import descriptors as d
from logfire_pg.schema.descriptors import ColumnSchema, ListType, TypeDescriptor
from logfire_pg.schema.literals import format_array_literal
from logfire_pg.wire import oids

SCALAR_OIDS: Final[dict[str, int]] = {
    d.UTF8: oids.TEXT,
    d.LARGE_UTF8: oids.TEXT,
    d.JSON_KIND: oids.JSON,
    d.BOOLEAN: oids.BOOL,
    d.INT32: oids.INT4,
    d.INT64: oids.INT8,
    d.UINT16: oids.INT4,
    d.UINT32: oids.INT8,
    d.UINT64: oids.INT8,
    d.FLOAT64: oids.FLOAT8,
    d.DATE32: oids.DATE,
    d.TIMESTAMP: oids.TIMESTAMPTZ,
}

TIMESTAMP_FORMAT: Final = "%Y-%m-%dT%H:%M:%S.%fZ"

_EPOCH_DATE: Final = date(1970, 1, 1)
_EPOCH: Final = datetime(1970, 1, 1, tzinfo=UTC)
_UNIT_DIVISORS: Final[dict[str, int]] = {
    "s": 1,
    "ms": 1_000,
    "us": 1_000_000,
    "ns": 1_000_000_000,
}


def map_type(descriptor: TypeDescriptor) -> int:
    """Return the wire type tag for a column type.

    Raises:
        UnsupportedType: For unknown scalar kinds, lists of lists, and lists whose
            element type has no array equivalent.
    """
    if isinstance(descriptor, ListType):
        inner = descriptor.inner
        if isinstance(inner, ListType):
            raise UnsupportedType(f"unsupported list inner type: {inner} (nested lists)")
        element_oid = map_type(inner)
        array_oid = oids.ARRAY_OF.get(element_oid)
        if array_oid is None:
            raise UnsupportedType(
                f"unsupported list inner type: {inner} ({oids.TYPE_NAMES[element_oid]})"
            )
        return array_oid

    oid = SCALAR_OIDS.get(descriptor.kind)
    if oid is None:
        raise UnsupportedType(f"unsupported upstream type: {descriptor}")
    return oid


def map_schema(schema: Sequence[ColumnSchema]) -> list[int]:
    """Map every column, failing on the first unsupported one."""
    mapped = []
    for index, column in enumerate(schema):
        try:
            mapped.append(map_type(column.declared_type))
        except UnsupportedType as exc:
            raise UnsupportedType(
                f"type mapping error for column {column.name!r}: {exc}", column_index=index
            ) from exc
    return mapped


def map_value(oid: int, raw: Any) -> str | None:
    """Render `raw` as PostgreSQL text for the given wire type tag.

    Raises:
        TypeError: If the value's Python type does not fit the wire type.
        ValueError: If the value cannot be parsed for the wire type.
    """
    if raw is None:
        return None

    element_oid = oids.ELEMENT_OF.get(oid)
    if element_oid is not None:
        if isinstance(raw, str | bytes | dict) or not isinstance(raw, Sequence):
            raise TypeError(
                f"expected a list for {oids.TYPE_NAMES[oid]}, got {type(raw).__name__}"
            )
        return format_array_literal(map_value(element_oid, item) for item in raw)

    if oid == oids.TEXT:
        if isinstance(raw, str):
            return raw
        if isinstance(raw, bytes):
            return raw.decode("utf-8", errors="replace")
        return json.dumps(raw, separators=(",", ":"), default=str)
    if oid == oids.JSON:
        if isinstance(raw, str):
            return raw
        return json.dumps(raw, separators=(",", ":"), default=str)
    if oid == oids.BOOL:
        if not isinstance(raw, bool):
            raise TypeError(f"expected a boolean, got {type(raw).__name__}")
        return "t" if raw else "f"
    if oid in (oids.INT4, oids.INT8):
        return _format_integer(raw)
    if oid == oids.FLOAT8:
        return _format_float(raw)
    if oid == oids.DATE:
        return _to_date(raw).isoformat()
    if oid == oids.TIMESTAMPTZ:
        return format_timestamp(_to_datetime(raw))

    raise TypeError(f"no value conversion for wire type {oid}")


def format_timestamp(value: datetime) -> str:
    """Format as UTC with microsecond precision and a trailing Z."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value.astimezone(UTC).strftime(TIMESTAMP_FORMAT)


def from_epoch(value: int, unit: str) -> datetime:
    """Convert an integer epoch offset in `unit` to an aware datetime.

    Sub-microsecond precision is truncated.
    """
    divisor = _UNIT_DIVISORS[unit]
    seconds, remainder = divmod(value, divisor)
    micros = remainder * 1_000_000 // divisor
    return _EPOCH + timedelta(seconds=seconds, microseconds=micros)


def from_epoch_days(value: int) -> date:
    return _EPOCH_DATE + timedelta(days=value)


def _format_integer(raw: Any) -> str:
    if isinstance(raw, bool):
        raise TypeError("expected an integer, got bool")
    if isinstance(raw, int):
        return str(raw)
    if isinstance(raw, float) and raw.is_integer():
        return str(int(raw))
    if isinstance(raw, Decimal) and raw.is_finite() and raw == raw.to_integral_value():
        return str(int(raw))
    if isinstance(raw, str):
        return str(int(raw))
    raise TypeError(f"expected an integer, got {type(raw).__name__}")


def _format_float(raw: Any) -> str:
    if isinstance(raw, bool):
        raise TypeError("expected a number, got bool")
    if isinstance(raw, str):
        raw = float(raw)
    if not isinstance(raw, int | float | Decimal):
        raise TypeError(f"expected a number, got {type(raw).__name__}")
    value = float(raw)
    if math.isnan(value):
        return "NaN"
    if math.isinf(value):
        return "Infinity" if value > 0 else "-Infinity"
    return repr(value)


def _to_date(raw: Any) -> date:
    if isinstance(raw, datetime):
        return raw.date()
    if isinstance(raw, date):
        return raw
    if isinstance(raw, str):
        return date.fromisoformat(raw[:10])
    if isinstance(raw, int) and not isinstance(raw, bool):
        return from_epoch_days(raw)
    raise TypeError(f"expected a date, got {type(raw).__name__}")


def _to_datetime(raw: Any) -> datetime:
    if isinstance(raw, datetime):
        return raw
    if isinstance(raw, str):
        return datetime.fromisoformat(raw)
    if isinstance(raw, date):
        return datetime(raw.year, raw.month, raw.day, tzinfo=UTC)
    if isinstance(raw, int) and not isinstance(raw, bool):
        return from_epoch(raw, "us")
    raise TypeError(f"expected a timestamp, got {type(raw).__name__}")

