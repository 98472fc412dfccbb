"""Streaming Arrow IPC transport.

The response body is read incrementally: the schema message is decoded when
the result set is opened, record batches are decoded one at a time as rows are
consumed. Nothing beyond the current batch is held in memory.
"""

from __future__ import annotations

import io
from collections.abc import Iterator

import httpx
import pyarrow as pa

from logfire_pg.errors import UpstreamProtocolError, UpstreamUnavailable
from logfire_pg.schema.descriptors import schema_from_arrow
from logfire_pg.upstream.interface import BaseResultSet, Row

ARROW_STREAM_MEDIA_TYPE = "application/vnd.apache.arrow.stream"


class ResponseReader(io.RawIOBase):
    """Read-only, forward-only file object over an httpx streaming response."""

    def __init__(self, response: httpx.Response) -> None:
        super().__init__()
        self._chunks = response.iter_bytes()
        self._pending = b""
        self._position = 0

    def readable(self) -> bool:
        return True

    def readinto(self, buffer: memoryview) -> int:  # type: ignore[override]
        while not self._pending:
            try:
                self._pending = next(self._chunks)
            except StopIteration:
                return 0
            except httpx.HTTPError as exc:
                raise UpstreamUnavailable(f"error reading upstream response: {exc}") from exc
        size = min(len(buffer), len(self._pending))
        buffer[:size] = self._pending[:size]
        self._pending = self._pending[size:]
        self._position += size
        return size

    def tell(self) -> int:
        return self._position


def _microsecond_type(data_type: pa.DataType) -> pa.DataType | None:
    if pa.types.is_timestamp(data_type) and data_type.unit == "ns":
        return pa.timestamp("us", tz=data_type.tz)
    if pa.types.is_list(data_type) or pa.types.is_large_list(data_type):
        inner = _microsecond_type(data_type.value_type)
        if inner is not None:
            return pa.list_(inner)
    return None


def _cast_timestamps(batch: pa.RecordBatch) -> pa.RecordBatch:
    """Truncate timestamps to microseconds so they convert to datetime."""
    arrays = []
    changed = False
    for array in batch.columns:
        target = _microsecond_type(array.type)
        if target is not None:
            array = array.cast(target, safe=False)
            changed = True
        arrays.append(array)
    if not changed:
        return batch
    return pa.RecordBatch.from_arrays(arrays, names=batch.schema.names)


class ArrowStreamResultSet(BaseResultSet):
    """Lazy, single-pass result set over an Arrow IPC stream."""

    is_streaming = True

    def __init__(self, response: httpx.Response) -> None:
        self._response = response
        try:
            self._reader = pa.ipc.open_stream(io.BufferedReader(ResponseReader(response)))
        except pa.ArrowException as exc:
            response.close()
            raise UpstreamProtocolError(f"failed to create arrow reader: {exc}") from exc
        except BaseException:
            response.close()
            raise
        super().__init__(schema_from_arrow(self._reader.schema))

    def _iter_batches(self) -> Iterator[list[Row]]:
        width = len(self._schema)
        while True:
            try:
                batch = self._reader.read_next_batch()
            except StopIteration:
                return
            except pa.ArrowException as exc:
                raise UpstreamProtocolError(f"error reading arrow stream: {exc}") from exc
            if batch.num_columns != width:
                raise UpstreamProtocolError(
                    f"record batch has {batch.num_columns} columns, schema has {width}"
                )
            columns = [array.to_pylist() for array in _cast_timestamps(batch).columns]
            yield list(zip(*columns, strict=True)) if columns else []

    def _release(self) -> None:
        self._response.close()
