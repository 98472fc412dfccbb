"""In-process stand-in for the upstream query API, built on httpx.MockTransport."""

from __future__ import annotations

import json
import threading
from collections.abc import Callable, Iterator
from dataclasses import dataclass, field
from typing import Any

import httpx
import pyarrow as pa

ARROW = "application/vnd.apache.arrow.stream"
VALID_TOKEN = "good-token"


def arrow_stream(table: pa.Table, *, max_chunksize: int | None = None) -> bytes:
    """Serialize `table` as an Arrow IPC stream body."""
    sink = pa.BufferOutputStream()
    with pa.ipc.new_stream(sink, table.schema) as writer:
        for batch in table.to_batches(max_chunksize=max_chunksize):
            writer.write_batch(batch)
    return sink.getvalue().to_pybytes()


def arrow_response(table: pa.Table, *, max_chunksize: int | None = None) -> httpx.Response:
    body = arrow_stream(table, max_chunksize=max_chunksize)
    return httpx.Response(200, headers={"content-type": ARROW}, content=body)


def json_response(columns: list[dict[str, Any]]) -> httpx.Response:
    return httpx.Response(
        200,
        headers={"content-type": "application/json"},
        content=json.dumps({"columns": columns}).encode(),
    )


def probe_table(value: Any = 1) -> pa.Table:
    return pa.table({"?column?": pa.array([value], type=pa.int32())})


class StalledArrowStream(httpx.SyncByteStream):
    """Sends the schema and first batch of `table`, then hangs until closed."""

    def __init__(self, table: pa.Table, *, stall_timeout: float = 10.0) -> None:
        first = table.to_batches()[0]
        self._head = table.schema.serialize().to_pybytes() + first.serialize().to_pybytes()
        self._stall_timeout = stall_timeout
        self.closed = threading.Event()

    def __iter__(self) -> Iterator[bytes]:
        yield self._head
        self.closed.wait(self._stall_timeout)

    def close(self) -> None:
        self.closed.set()

    def response(self) -> httpx.Response:
        return httpx.Response(200, headers={"content-type": ARROW}, stream=self)


Responder = Callable[[httpx.Request], httpx.Response]


@dataclass
class FakeUpstream:
    """Routes queries by SQL text; rejects any token but VALID_TOKEN with 401."""

    responses: dict[str, Responder] = field(default_factory=dict)
    requests: list[httpx.Request] = field(default_factory=list)

    def __post_init__(self) -> None:
        self.responses.setdefault("SELECT 1", lambda request: arrow_response(probe_table()))

    @property
    def queries(self) -> list[str]:
        return [request.url.params["sql"] for request in self.requests]

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.headers.get("authorization") != f"Bearer {VALID_TOKEN}":
            return httpx.Response(401, text="Invalid token")
        sql = request.url.params.get("sql", "")
        responder = self.responses.get(sql)
        if responder is None:
            return httpx.Response(400, text=f"syntax error in query: {sql!r}")
        return responder(request)

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)
