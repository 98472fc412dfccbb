"""Query execution for authenticated sessions.

Each query is checked for client tool introspection, forwarded upstream with
the session credential, and its result is translated column by column into
wire types. Rows are streamed batch by batch: blocking network reads run in a
worker thread so one slow upstream does not stall other connections.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterator, Sequence

from logfire_pg.errors import ClientToolQueryRejected, RowConversionError
from logfire_pg.policy.client_tools import detect_client_tool_query
from logfire_pg.schema.mapping import map_schema, map_value
from logfire_pg.session.state import AuthenticatedSession
from logfire_pg.upstream.client import UpstreamClient
from logfire_pg.upstream.interface import ResultSet, Row
from logfire_pg.wire.messages import ColumnDescription
from logfire_pg.wire.server import DataWriter

logger = logging.getLogger(__name__)


def _close_abandoned(task: asyncio.Future[ResultSet]) -> None:
    if task.cancelled() or task.exception() is not None:
        return
    task.result().close()


def _discard_abandoned(task: asyncio.Future[list[Row] | None]) -> None:
    if not task.cancelled():
        task.exception()


class PreparedQuery:
    """An upstream result whose columns are mapped and ready to stream."""

    def __init__(self, result: ResultSet, type_oids: Sequence[int]) -> None:
        self._result = result
        self._type_oids = list(type_oids)
        self._columns = [
            ColumnDescription(name=column.name, type_oid=oid)
            for column, oid in zip(result.schema, self._type_oids, strict=True)
        ]

    @property
    def columns(self) -> Sequence[ColumnDescription]:
        return self._columns

    async def run(self, writer: DataWriter) -> int:
        """Write every row, then the `SELECT <n>` completion tag.

        Returns the number of rows written. If the client goes away while a
        batch is being read, the upstream response is closed right away.

        Raises:
            RowConversionError: A value could not be rendered for its column.
            UpstreamUnavailable: The upstream stream broke mid-result.
            UpstreamProtocolError: A batch could not be decoded.
            ConnectionAbortedError: The client disconnected mid-result.
        """
        row_count = 0
        disconnected = asyncio.ensure_future(writer.wait_disconnected())
        try:
            batches = self._result.batches()
            while True:
                if self._result.is_streaming:
                    batch = await self._read_batch(batches, disconnected)
                else:
                    batch = _next_batch(batches)
                if batch is None:
                    break
                for row in batch:
                    await writer.row(self._convert_row(row, row_count))
                    row_count += 1
                await writer.flush()
        finally:
            disconnected.cancel()
            self.close()

        await writer.complete(f"SELECT {row_count}")
        logger.debug("query returned %d rows", row_count)
        return row_count

    async def _read_batch(
        self, batches: Iterator[list[Row]], disconnected: asyncio.Future[None]
    ) -> list[Row] | None:
        read = asyncio.ensure_future(asyncio.to_thread(_next_batch, batches))
        try:
            await asyncio.wait({read, disconnected}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            read.add_done_callback(_discard_abandoned)
            raise
        if read.done():
            return read.result()

        # Closing the response unblocks the reader thread; its outcome is discarded.
        read.add_done_callback(_discard_abandoned)
        self.close()
        raise ConnectionAbortedError("client disconnected while the result was streaming")

    def _convert_row(self, row: Row, row_index: int) -> list[str | None]:
        values: list[str | None] = []
        for column_index, (oid, raw) in enumerate(zip(self._type_oids, row, strict=True)):
            try:
                values.append(map_value(oid, raw))
            except (TypeError, ValueError, OverflowError) as exc:
                raise RowConversionError(column_index, row_index, exc) from exc
        return values

    def close(self) -> None:
        self._result.close()


def _next_batch(batches: Iterator[list[Row]]) -> list[Row] | None:
    return next(batches, None)


class SessionCoordinator:
    """Runs queries for authenticated sessions."""

    def __init__(self, client: UpstreamClient) -> None:
        self._client = client

    async def prepare(self, session: AuthenticatedSession, query: str) -> PreparedQuery:
        """Forward `query` upstream and map its result schema.

        Raises:
            ClientToolQueryRejected: The query is a client tool catalog query.
            UpstreamQueryError: The upstream rejected the query.
            UpstreamUnavailable: The upstream could not be reached.
            UnsupportedType: A result column has no wire type.
        """
        logger.info("incoming SQL query from %s: %s", session, query)

        match = detect_client_tool_query(query)
        if match is not None:
            logger.info("rejected client tool query %s from %s", match.detected_command, session)
            raise ClientToolQueryRejected(match.detected_command, match.suggested_query)

        task = asyncio.ensure_future(
            asyncio.to_thread(self._client.execute, query, session.credential)
        )
        try:
            result = await asyncio.shield(task)
        except asyncio.CancelledError:
            # The thread keeps running; close whatever it eventually returns.
            task.add_done_callback(_close_abandoned)
            raise

        try:
            type_oids = map_schema(result.schema)
        except BaseException:
            result.close()
            raise
        return PreparedQuery(result, type_oids)
