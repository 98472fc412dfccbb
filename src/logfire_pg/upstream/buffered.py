"""Buffered JSON transport.

The upstream returns one document with a schema-and-values block per column:

    {"columns": [{"name": "n", "datatype": "Int64", "nullable": false, "values": [1, 2]}]}

The whole document is decoded before the result set is handed out.
"""

from __future__ import annotations

import json
from collections.abc import Callable, Iterator, Sequence
from typing import Any

from logfire_pg.errors import UpstreamProtocolError
from logfire_pg.schema import descriptors as d
from logfire_pg.schema.descriptors import (
    ColumnSchema,
    ListType,
    TypeDescriptor,
    descriptor_from_json,
)
from logfire_pg.schema.mapping import from_epoch, from_epoch_days
from logfire_pg.upstream.interface import BaseResultSet, Row

# Rows handed to the writer per batch; bounds how often the writer drains.
DEFAULT_BATCH_ROWS = 1024


class BufferedResultSet(BaseResultSet):
    """Materialized result set with column-major storage."""

    is_streaming = False

    def __init__(
        self,
        schema: Sequence[ColumnSchema],
        columns: Sequence[Sequence[Any]],
        *,
        batch_rows: int = DEFAULT_BATCH_ROWS,
    ) -> None:
        super().__init__(schema)
        if len(columns) != len(self._schema):
            raise ValueError(
                f"got {len(columns)} value arrays for {len(self._schema)} columns"
            )
        lengths = {len(values) for values in columns}
        if len(lengths) > 1:
            raise ValueError(f"column value arrays have different lengths: {sorted(lengths)}")
        self._columns = [list(values) for values in columns]
        self._row_count = lengths.pop() if lengths else 0
        self._batch_rows = max(1, batch_rows)

    @property
    def row_count(self) -> int:
        return self._row_count

    def __len__(self) -> int:
        return self._row_count

    def _iter_batches(self) -> Iterator[list[Row]]:
        for start in range(0, self._row_count, self._batch_rows):
            stop = min(start + self._batch_rows, self._row_count)
            yield [
                tuple(values[i] for values in self._columns) for i in range(start, stop)
            ]

    def _release(self) -> None:
        self._columns = [[] for _ in self._columns]


def _is_integer(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _temporal_converter(descriptor: TypeDescriptor) -> Callable[[Any], Any] | None:
    """Return a per-value converter for integer dates/timestamps, if the type has any."""
    if isinstance(descriptor, ListType):
        convert_item = _temporal_converter(descriptor.inner)
        if convert_item is None:
            return None

        def convert_list(value: Any) -> Any:
            if not isinstance(value, list):
                return value
            return [None if item is None else convert_item(item) for item in value]

        return convert_list

    if descriptor.kind == d.DATE32:
        return lambda value: from_epoch_days(value) if _is_integer(value) else value
    if descriptor.kind == d.TIMESTAMP and descriptor.unit is not None:
        unit = descriptor.unit
        return lambda value: from_epoch(value, unit) if _is_integer(value) else value
    return None


def _normalize_temporal(descriptor: TypeDescriptor, values: list[Any]) -> list[Any]:
    """Interpret integer dates/timestamps in the column's declared unit, in lists too."""
    convert = _temporal_converter(descriptor)
    if convert is None:
        return values
    return [None if value is None else convert(value) for value in values]


def parse_columns_document(document: Any) -> BufferedResultSet:
    """Build a result set from a decoded JSON document.

    Raises:
        UpstreamProtocolError: If the document does not have the expected shape.
    """
    if not isinstance(document, dict) or not isinstance(document.get("columns"), list):
        raise UpstreamProtocolError("malformed JSON response: missing 'columns' array")

    schema: list[ColumnSchema] = []
    columns: list[list[Any]] = []
    for index, raw_column in enumerate(document["columns"]):
        if not isinstance(raw_column, dict):
            raise UpstreamProtocolError(f"malformed JSON response: column {index} is not an object")
        values = raw_column.get("values", [])
        if not isinstance(values, list):
            raise UpstreamProtocolError(
                f"malformed JSON response: column {index} 'values' is not an array"
            )
        try:
            declared_type = descriptor_from_json(raw_column.get("datatype"))
        except ValueError as exc:
            raise UpstreamProtocolError(
                f"malformed JSON response: column {index} datatype: {exc}"
            ) from exc

        try:
            values = _normalize_temporal(declared_type, values)
        except OverflowError as exc:
            raise UpstreamProtocolError(
                f"malformed JSON response: column {index} value out of range: {exc}"
            ) from exc

        schema.append(
            ColumnSchema(
                name=str(raw_column.get("name", f"column{index}")),
                declared_type=declared_type,
                nullable=bool(raw_column.get("nullable", True)),
            )
        )
        columns.append(values)

    try:
        return BufferedResultSet(schema, columns)
    except ValueError as exc:
        raise UpstreamProtocolError(f"malformed JSON response: {exc}") from exc


def parse_columns_body(body: bytes) -> BufferedResultSet:
    try:
        document = json.loads(body)
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise UpstreamProtocolError(f"failed to decode JSON response: {exc}") from exc
    return parse_columns_document(document)
