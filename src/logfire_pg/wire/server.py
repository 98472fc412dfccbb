"""PostgreSQL wire protocol server on asyncio streams.

Implements what a read-only query gateway needs from the protocol:

- startup (SSL and GSSAPI encryption requests are declined)
- clear-text password authentication through a pluggable callback
- the simple query protocol, one result set per query
- the extended query protocol for statements without parameters, text format only
- ErrorResponse reporting; FATAL errors close the connection

Query semantics live outside this module: the server calls `authenticate`
once per connection and `handle_query` once per query, then writes whatever
the returned statement produces.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import secrets
from collections.abc import Awaitable, Callable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any, Generic, Protocol, TypeVar

from logfire_pg.wire import errors as pgerr
from logfire_pg.wire import messages
from logfire_pg.wire.errors import PgError, Severity, as_pg_error
from logfire_pg.wire.messages import ColumnDescription, ProtocolViolation

logger = logging.getLogger(__name__)

SessionT = TypeVar("SessionT")

# Rows are flushed to the socket at least this often.
DEFAULT_FLUSH_ROWS = 1000

# Seconds between checks for a client that went away while a query runs.
DISCONNECT_POLL_INTERVAL = 0.1


@dataclass(frozen=True)
class ConnectionInfo:
    """What the client told us at startup."""

    user: str
    database: str | None
    application_name: str | None
    remote_address: str
    params: Mapping[str, str] = field(default_factory=dict)


class DataWriter(Protocol):
    """Result-writing interface handed to statements."""

    @property
    def rows_written(self) -> int: ...

    async def row(self, values: Sequence[str | None]) -> None:
        """Queue one DataRow; values are text-format, None is NULL."""
        ...

    async def flush(self) -> None: ...

    async def complete(self, tag: str) -> None:
        """Send CommandComplete; no rows may follow."""
        ...

    async def wait_disconnected(self) -> None:
        """Return once the client has gone away. Never returns while it is connected."""
        ...


class Statement(Protocol):
    """A query ready to stream its result."""

    @property
    def columns(self) -> Sequence[ColumnDescription]: ...

    async def run(self, writer: DataWriter) -> Any: ...

    def close(self) -> None: ...


AuthenticateFn = Callable[[ConnectionInfo, str], Awaitable[SessionT]]
HandleQueryFn = Callable[[SessionT, str], Awaitable[Statement]]


class StreamDataWriter:
    """DataWriter over an asyncio StreamWriter."""

    def __init__(
        self,
        writer: asyncio.StreamWriter,
        reader: asyncio.StreamReader | None = None,
        *,
        flush_rows: int = DEFAULT_FLUSH_ROWS,
        poll_interval: float = DISCONNECT_POLL_INTERVAL,
    ):
        self._writer = writer
        self._reader = reader
        self._flush_rows = flush_rows
        self._poll_interval = poll_interval
        self._pending_rows = 0
        self._rows_written = 0
        self._completed = False

    @property
    def rows_written(self) -> int:
        return self._rows_written

    async def row(self, values: Sequence[str | None]) -> None:
        if self._completed:
            raise RuntimeError("cannot write rows after the command completed")
        self._writer.write(messages.data_row(values))
        self._rows_written += 1
        self._pending_rows += 1
        if self._pending_rows >= self._flush_rows:
            await self.flush()

    async def flush(self) -> None:
        self._pending_rows = 0
        await self._writer.drain()

    async def complete(self, tag: str) -> None:
        if self._completed:
            raise RuntimeError("command already completed")
        self._completed = True
        self._writer.write(messages.command_complete(tag))
        await self.flush()

    async def wait_disconnected(self) -> None:
        while not self._peer_closed():
            await asyncio.sleep(self._poll_interval)

    def _peer_closed(self) -> bool:
        if self._writer.is_closing():
            return True
        reader = self._reader
        if reader is None:
            return False
        # Unread bytes mean the client is still talking; EOF is only seen behind them.
        return reader.at_eof() or reader.exception() is not None


class _ClientGone(Exception):
    """The client closed the connection."""


@dataclass
class _Portal:
    query: str
    statement: Statement | None = None
    exhausted: bool = False

    def close(self) -> None:
        if self.statement is not None:
            self.statement.close()
            self.statement = None


@dataclass
class _Connection(Generic[SessionT]):
    """Per-connection state for the query phase."""

    reader: asyncio.StreamReader
    writer: asyncio.StreamWriter
    session: SessionT
    # Prepared statement name -> query text.
    statements: dict[str, str] = field(default_factory=dict)
    # Statements run by Describe, waiting to be picked up by the next Bind.
    described: dict[str, Statement] = field(default_factory=dict)
    portals: dict[str, _Portal] = field(default_factory=dict)

    def data_writer(self) -> StreamDataWriter:
        return StreamDataWriter(self.writer, self.reader)

    def drop_described(self, name: str) -> None:
        statement = self.described.pop(name, None)
        if statement is not None:
            statement.close()

    def drop_portal(self, name: str) -> None:
        portal = self.portals.pop(name, None)
        if portal is not None:
            portal.close()

    def drop_portals(self) -> None:
        for name in list(self.portals):
            self.drop_portal(name)

    def close(self) -> None:
        self.drop_portals()
        for name in list(self.described):
            self.drop_described(name)
        self.statements.clear()


def _not_supported(message: str) -> PgError:
    return PgError(message, code=pgerr.FEATURE_NOT_SUPPORTED)


class PgWireServer(Generic[SessionT]):
    """Accepts PostgreSQL client connections and dispatches queries."""

    def __init__(
        self,
        *,
        authenticate: AuthenticateFn[SessionT],
        handle_query: HandleQueryFn[SessionT],
        server_version: str = "17.0",
        parameters: Mapping[str, str] | None = None,
    ) -> None:
        self._authenticate = authenticate
        self._handle_query = handle_query
        self._parameters = {
            "server_version": server_version,
            "server_encoding": "UTF8",
            "client_encoding": "UTF8",
            "DateStyle": "ISO, MDY",
            "TimeZone": "UTC",
            "integer_datetimes": "on",
            "standard_conforming_strings": "on",
            **(parameters or {}),
        }
        self._server: asyncio.Server | None = None

    @property
    def sockets(self) -> list[Any]:
        if self._server is None:
            return []
        return list(self._server.sockets)

    @property
    def port(self) -> int:
        """The bound port (useful when started on port 0)."""
        for sock in self.sockets:
            return int(sock.getsockname()[1])
        raise RuntimeError("server is not listening")

    async def start(self, host: str, port: int) -> asyncio.Server:
        self._server = await asyncio.start_server(self.handle_connection, host, port)
        return self._server

    async def close(self) -> None:
        if self._server is not None:
            self._server.close()
            await self._server.wait_closed()
            self._server = None

    async def handle_connection(
        self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter
    ) -> None:
        peer = writer.get_extra_info("peername")
        remote_address = f"{peer[0]}:{peer[1]}" if isinstance(peer, tuple) else str(peer)
        logger.info("new session established: %s", remote_address)
        try:
            session = await self._startup(reader, writer, remote_address)
            if session is not None:
                conn = _Connection(reader, writer, session)
                try:
                    await self._query_loop(conn)
                finally:
                    conn.close()
        except (_ClientGone, asyncio.IncompleteReadError, ConnectionError):
            pass
        except ProtocolViolation as exc:
            logger.warning("protocol violation from %s: %s", remote_address, exc)
            error = exc.to_pg_error()
            error.severity = Severity.fatal
            await self._send_error(writer, error)
        finally:
            logger.info("session terminated: %s", remote_address)
            writer.close()
            with contextlib.suppress(Exception):
                await writer.wait_closed()

    async def _startup(
        self,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
        remote_address: str,
    ) -> SessionT | None:
        startup = await messages.read_startup_message(reader)
        while startup.is_ssl_request or startup.is_gssenc_request:
            writer.write(b"N")
            await writer.drain()
            startup = await messages.read_startup_message(reader)

        if startup.is_cancel_request:
            # Queries are not cancellable here; closing the connection is the answer.
            return None

        if startup.protocol != messages.PROTOCOL_VERSION:
            major, minor = startup.protocol >> 16, startup.protocol & 0xFFFF
            raise ProtocolViolation(f"unsupported frontend protocol {major}.{minor}")

        info = ConnectionInfo(
            user=startup.params.get("user", ""),
            database=startup.params.get("database"),
            application_name=startup.params.get("application_name"),
            remote_address=remote_address,
            params=dict(startup.params),
        )

        writer.write(messages.authentication_cleartext_password())
        await writer.drain()
        msg_type, payload = await messages.read_message(reader)
        if msg_type != messages.PASSWORD:
            raise ProtocolViolation(f"expected password message, got {msg_type!r}")
        password = messages.decode_cstring(payload)

        try:
            session = await self._authenticate(info, password)
        except Exception as exc:
            error = as_pg_error(exc)
            if error is None:
                logger.error("authentication error for %s: %s", remote_address, exc, exc_info=True)
                error = PgError(
                    "internal error during authentication",
                    code=pgerr.INTERNAL_ERROR,
                    severity=Severity.fatal,
                )
            # Authentication failures always end the connection.
            error.severity = Severity.fatal
            await self._send_error(writer, error)
            return None

        writer.write(messages.authentication_ok())
        parameters = dict(self._parameters)
        if info.application_name:
            parameters["application_name"] = info.application_name
        for name, value in parameters.items():
            writer.write(messages.parameter_status(name, value))
        writer.write(messages.backend_key_data(secrets.randbits(31), secrets.randbits(31)))
        writer.write(messages.ready_for_query())
        await writer.drain()
        return session

    async def _query_loop(self, conn: _Connection[SessionT]) -> None:
        writer = conn.writer
        skipping_to_sync = False
        while True:
            msg_type, payload = await messages.read_message(conn.reader)

            if msg_type == messages.TERMINATE:
                return
            if msg_type == messages.SYNC:
                # Outside a transaction block every portal ends at Sync.
                skipping_to_sync = False
                conn.drop_portals()
                writer.write(messages.ready_for_query())
                await writer.drain()
                continue
            if msg_type == messages.FLUSH:
                await writer.drain()
                continue
            if msg_type in messages.EXTENDED_QUERY_MESSAGES:
                if skipping_to_sync:
                    continue
                error = await self._guard(conn, self._extended_message(conn, msg_type, payload))
                if error is not None:
                    if error.is_fatal:
                        return
                    # After an error everything up to the next Sync is discarded.
                    skipping_to_sync = True
                continue
            if msg_type != messages.QUERY:
                raise ProtocolViolation(f"unexpected message type {msg_type!r}")

            error = await self._guard(conn, self._simple_query(conn, payload))
            if error is not None and error.is_fatal:
                return
            writer.write(messages.ready_for_query())
            await writer.drain()

    async def _guard(self, conn: _Connection[SessionT], step: Awaitable[None]) -> PgError | None:
        """Run one query step and report its error, if any, to the client."""
        try:
            await step
        except (ConnectionError, asyncio.IncompleteReadError):
            raise _ClientGone() from None
        except Exception as exc:
            error = as_pg_error(exc)
            if error is None:
                logger.error("unexpected error handling query: %s", exc, exc_info=True)
                error = PgError(f"internal error: {exc}", code=pgerr.INTERNAL_ERROR)
            await self._send_error(conn.writer, error)
            return error
        return None

    async def _simple_query(self, conn: _Connection[SessionT], payload: bytes) -> None:
        query = messages.decode_cstring(payload)
        if not query.strip():
            conn.writer.write(messages.empty_query_response())
            return

        statement = await self._handle_query(conn.session, query)
        try:
            conn.writer.write(messages.row_description(statement.columns))
            await self._run(statement, conn)
        finally:
            statement.close()

    async def _run(self, statement: Statement, conn: _Connection[SessionT]) -> None:
        data_writer = conn.data_writer()
        try:
            await statement.run(data_writer)
        except Exception as exc:
            if data_writer.rows_written:
                logger.warning("query aborted after %d rows: %s", data_writer.rows_written, exc)
            raise

    # --- Extended query protocol ------------------------------------------------

    async def _extended_message(
        self, conn: _Connection[SessionT], msg_type: bytes, payload: bytes
    ) -> None:
        if msg_type == messages.PARSE:
            await self._parse(conn, messages.decode_parse(payload))
        elif msg_type == messages.BIND:
            self._bind(conn, messages.decode_bind(payload))
        elif msg_type == messages.DESCRIBE:
            await self._describe(conn, messages.decode_target(payload))
        elif msg_type == messages.EXECUTE:
            await self._execute(conn, messages.decode_execute(payload))
        else:
            self._close_target(conn, messages.decode_target(payload))

    async def _parse(self, conn: _Connection[SessionT], msg: messages.Parse) -> None:
        if msg.parameter_types:
            raise _not_supported("parameterized queries are not supported")
        if msg.statement and msg.statement in conn.statements:
            raise PgError(
                f'prepared statement "{msg.statement}" already exists',
                code=pgerr.DUPLICATE_PREPARED_STATEMENT,
            )
        conn.drop_described(msg.statement)
        conn.statements[msg.statement] = msg.query
        conn.writer.write(messages.parse_complete())

    def _bind(self, conn: _Connection[SessionT], msg: messages.Bind) -> None:
        query = self._statement_query(conn, msg.statement)
        if msg.parameter_count:
            raise _not_supported("parameterized queries are not supported")
        if any(code != messages.TEXT_FORMAT for code in msg.result_formats):
            raise _not_supported("binary result format is not supported")
        if msg.portal and msg.portal in conn.portals:
            raise PgError(f'cursor "{msg.portal}" already exists', code=pgerr.DUPLICATE_CURSOR)
        conn.drop_portal(msg.portal)
        conn.portals[msg.portal] = _Portal(query, conn.described.pop(msg.statement, None))
        conn.writer.write(messages.bind_complete())

    async def _describe(self, conn: _Connection[SessionT], msg: messages.Target) -> None:
        if msg.kind == messages.STATEMENT:
            query = self._statement_query(conn, msg.name)
            conn.writer.write(messages.parameter_description())
            if not query.strip():
                conn.writer.write(messages.no_data())
                return
            statement = conn.described.get(msg.name)
            if statement is None:
                statement = await self._handle_query(conn.session, query)
                conn.described[msg.name] = statement
            conn.writer.write(messages.row_description(statement.columns))
            return

        portal = self._portal(conn, msg.name)
        if not portal.query.strip() or portal.exhausted:
            conn.writer.write(messages.no_data())
            return
        if portal.statement is None:
            portal.statement = await self._handle_query(conn.session, portal.query)
        conn.writer.write(messages.row_description(portal.statement.columns))

    async def _execute(self, conn: _Connection[SessionT], msg: messages.Execute) -> None:
        # Row limits are not honored: a portal always runs to completion.
        portal = self._portal(conn, msg.portal)
        if not portal.query.strip():
            conn.writer.write(messages.empty_query_response())
            return
        if portal.exhausted:
            conn.writer.write(messages.command_complete("SELECT 0"))
            return

        statement = portal.statement
        if statement is None:
            statement = await self._handle_query(conn.session, portal.query)
        portal.statement = None
        portal.exhausted = True
        try:
            await self._run(statement, conn)
        finally:
            statement.close()

    def _close_target(self, conn: _Connection[SessionT], msg: messages.Target) -> None:
        if msg.kind == messages.STATEMENT:
            conn.drop_described(msg.name)
            conn.statements.pop(msg.name, None)
        else:
            conn.drop_portal(msg.name)
        conn.writer.write(messages.close_complete())

    def _statement_query(self, conn: _Connection[SessionT], name: str) -> str:
        query = conn.statements.get(name)
        if query is None:
            raise PgError(
                f'prepared statement "{name}" does not exist',
                code=pgerr.INVALID_SQL_STATEMENT_NAME,
            )
        return query

    def _portal(self, conn: _Connection[SessionT], name: str) -> _Portal:
        portal = conn.portals.get(name)
        if portal is None:
            raise PgError(f'portal "{name}" does not exist', code=pgerr.INVALID_CURSOR_NAME)
        return portal

    async def _send_error(self, writer: asyncio.StreamWriter, error: PgError) -> None:
        writer.write(messages.error_response(error))
        with contextlib.suppress(ConnectionError):
            await writer.drain()
