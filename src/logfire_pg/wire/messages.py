"""PostgreSQL v3 protocol message encoding and decoding.

Reference: https://www.postgresql.org/docs/current/protocol-message-formats.html

Regular messages are `[1 byte type][int32 length incl. itself][payload]`.
The startup packet has no type byte.
"""

from __future__ import annotations

import asyncio
import struct
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Final

from logfire_pg.wire import oids
from logfire_pg.wire import errors as pgerr
from logfire_pg.wire.errors import PgError, Severity

PROTOCOL_VERSION: Final = 196608  # 3.0
SSL_REQUEST_CODE: Final = 80877103
GSSENC_REQUEST_CODE: Final = 80877104
CANCEL_REQUEST_CODE: Final = 80877102

# Larger startup packets or messages are treated as garbage.
MAX_STARTUP_LENGTH: Final = 10_000
MAX_MESSAGE_LENGTH: Final = 64 * 1024 * 1024

# Frontend message types
QUERY: Final = b"Q"
TERMINATE: Final = b"X"
PASSWORD: Final = b"p"
PARSE: Final = b"P"
BIND: Final = b"B"
DESCRIBE: Final = b"D"
EXECUTE: Final = b"E"
CLOSE: Final = b"C"
SYNC: Final = b"S"
FLUSH: Final = b"H"

EXTENDED_QUERY_MESSAGES: Final = frozenset({PARSE, BIND, DESCRIBE, EXECUTE, CLOSE})

# Describe and Close targets
STATEMENT: Final = b"S"
PORTAL: Final = b"P"

# Backend message types
AUTHENTICATION: Final = b"R"
PARAMETER_STATUS: Final = b"S"
BACKEND_KEY_DATA: Final = b"K"
READY_FOR_QUERY: Final = b"Z"
ROW_DESCRIPTION: Final = b"T"
DATA_ROW: Final = b"D"
COMMAND_COMPLETE: Final = b"C"
EMPTY_QUERY_RESPONSE: Final = b"I"
ERROR_RESPONSE: Final = b"E"
PARSE_COMPLETE: Final = b"1"
BIND_COMPLETE: Final = b"2"
CLOSE_COMPLETE: Final = b"3"
NO_DATA: Final = b"n"
PARAMETER_DESCRIPTION: Final = b"t"

AUTH_OK: Final = 0
AUTH_CLEARTEXT_PASSWORD: Final = 3

TEXT_FORMAT: Final = 0


class ProtocolViolation(Exception):
    """The client sent bytes that do not form a valid message."""

    def to_pg_error(self) -> PgError:
        return PgError(str(self), code=pgerr.PROTOCOL_VIOLATION, severity=Severity.fatal)


class InvalidEncoding(ProtocolViolation):
    """A client string is not valid UTF-8.

    The message itself was framed correctly, so the connection can continue.
    """

    def to_pg_error(self) -> PgError:
        return PgError(str(self), code=pgerr.CHARACTER_NOT_IN_REPERTOIRE)


@dataclass(frozen=True)
class StartupMessage:
    protocol: int
    params: dict[str, str] = field(default_factory=dict)

    @property
    def is_ssl_request(self) -> bool:
        return self.protocol == SSL_REQUEST_CODE

    @property
    def is_gssenc_request(self) -> bool:
        return self.protocol == GSSENC_REQUEST_CODE

    @property
    def is_cancel_request(self) -> bool:
        return self.protocol == CANCEL_REQUEST_CODE


@dataclass(frozen=True)
class ColumnDescription:
    """One RowDescription field."""

    name: str
    type_oid: int
    table_oid: int = 0
    column_number: int = 0
    type_modifier: int = -1

    @property
    def type_size(self) -> int:
        return oids.type_size(self.type_oid)


def _cstring(value: str) -> bytes:
    return value.encode("utf-8") + b"\x00"


def build_message(msg_type: bytes, payload: bytes = b"") -> bytes:
    return msg_type + struct.pack("!I", len(payload) + 4) + payload


# --- Reading -----------------------------------------------------------------


async def read_startup_message(reader: asyncio.StreamReader) -> StartupMessage:
    """Read a startup packet (also SSL/GSSENC/cancel requests).

    Raises:
        asyncio.IncompleteReadError: The client disconnected.
        ProtocolViolation: The packet is malformed.
    """
    header = await reader.readexactly(4)
    (length,) = struct.unpack("!I", header)
    if length < 8 or length > MAX_STARTUP_LENGTH:
        raise ProtocolViolation(f"invalid startup packet length: {length}")
    payload = await reader.readexactly(length - 4)
    (protocol,) = struct.unpack("!I", payload[:4])
    if protocol in (SSL_REQUEST_CODE, GSSENC_REQUEST_CODE, CANCEL_REQUEST_CODE):
        return StartupMessage(protocol)
    return StartupMessage(protocol, parse_startup_params(payload[4:]))


def parse_startup_params(data: bytes) -> dict[str, str]:
    """Parse `key\\0value\\0...\\0` pairs."""
    parts = data.split(b"\x00")
    params: dict[str, str] = {}
    for i in range(0, len(parts) - 1, 2):
        key = parts[i]
        if not key:
            break
        params[key.decode("utf-8", errors="replace")] = parts[i + 1].decode(
            "utf-8", errors="replace"
        )
    return params


async def read_message(reader: asyncio.StreamReader) -> tuple[bytes, bytes]:
    """Read one regular message and return `(type, payload)`.

    Raises:
        asyncio.IncompleteReadError: The client disconnected.
        ProtocolViolation: The length field is invalid.
    """
    header = await reader.readexactly(5)
    msg_type = header[:1]
    (length,) = struct.unpack("!I", header[1:])
    if length < 4 or length > MAX_MESSAGE_LENGTH:
        raise ProtocolViolation(f"invalid message length {length} for type {msg_type!r}")
    payload = await reader.readexactly(length - 4) if length > 4 else b""
    return msg_type, payload


def decode_cstring(payload: bytes) -> str:
    """Decode a payload holding a single null-terminated string."""
    end = payload.find(b"\x00")
    if end == -1:
        raise ProtocolViolation("string is not null-terminated")
    return _decode_utf8(payload[:end])


def _decode_utf8(raw: bytes) -> str:
    try:
        return raw.decode("utf-8")
    except UnicodeDecodeError as exc:
        bad = raw[exc.start : exc.end]
        raise InvalidEncoding(
            f'invalid byte sequence for encoding "UTF8": 0x{bad.hex()}'
        ) from None


class PayloadReader:
    """Sequential decoder over one message payload."""

    def __init__(self, payload: bytes) -> None:
        self._payload = payload
        self._offset = 0

    def _take(self, size: int) -> bytes:
        end = self._offset + size
        if size < 0 or end > len(self._payload):
            raise ProtocolViolation("message is truncated")
        chunk = self._payload[self._offset : end]
        self._offset = end
        return chunk

    def skip(self, size: int) -> None:
        self._take(size)

    def byte(self) -> bytes:
        return self._take(1)

    def int16(self) -> int:
        (value,) = struct.unpack("!h", self._take(2))
        return int(value)

    def int32(self) -> int:
        (value,) = struct.unpack("!i", self._take(4))
        return int(value)

    def cstring(self) -> str:
        end = self._payload.find(b"\x00", self._offset)
        if end == -1:
            raise ProtocolViolation("string is not null-terminated")
        raw = self._payload[self._offset : end]
        self._offset = end + 1
        return _decode_utf8(raw)

    def int16_array(self) -> tuple[int, ...]:
        count = self.int16()
        if count < 0:
            raise ProtocolViolation(f"invalid array length {count}")
        return tuple(self.int16() for _ in range(count))


@dataclass(frozen=True)
class Parse:
    statement: str
    query: str
    parameter_types: tuple[int, ...]


@dataclass(frozen=True)
class Bind:
    portal: str
    statement: str
    parameter_count: int
    result_formats: tuple[int, ...]


@dataclass(frozen=True)
class Target:
    """The subject of a Describe or Close message."""

    kind: bytes
    name: str


@dataclass(frozen=True)
class Execute:
    portal: str
    max_rows: int


def decode_parse(payload: bytes) -> Parse:
    reader = PayloadReader(payload)
    statement = reader.cstring()
    query = reader.cstring()
    count = reader.int16()
    if count < 0:
        raise ProtocolViolation(f"invalid parameter type count {count}")
    return Parse(statement, query, tuple(reader.int32() for _ in range(count)))


def decode_bind(payload: bytes) -> Bind:
    """Decode a Bind message; parameter values are skipped, only counted."""
    reader = PayloadReader(payload)
    portal = reader.cstring()
    statement = reader.cstring()
    reader.int16_array()  # parameter format codes
    count = reader.int16()
    if count < 0:
        raise ProtocolViolation(f"invalid parameter count {count}")
    for _ in range(count):
        length = reader.int32()
        if length > 0:
            reader.skip(length)
    return Bind(portal, statement, count, reader.int16_array())


def decode_target(payload: bytes) -> Target:
    reader = PayloadReader(payload)
    kind = reader.byte()
    if kind not in (STATEMENT, PORTAL):
        raise ProtocolViolation(f"invalid describe/close target {kind!r}")
    return Target(kind, reader.cstring())


def decode_execute(payload: bytes) -> Execute:
    reader = PayloadReader(payload)
    return Execute(reader.cstring(), reader.int32())


# --- Writing -----------------------------------------------------------------


def authentication_ok() -> bytes:
    return build_message(AUTHENTICATION, struct.pack("!I", AUTH_OK))


def authentication_cleartext_password() -> bytes:
    return build_message(AUTHENTICATION, struct.pack("!I", AUTH_CLEARTEXT_PASSWORD))


def parameter_status(name: str, value: str) -> bytes:
    return build_message(PARAMETER_STATUS, _cstring(name) + _cstring(value))


def backend_key_data(process_id: int, secret_key: int) -> bytes:
    return build_message(BACKEND_KEY_DATA, struct.pack("!II", process_id, secret_key))


def ready_for_query(status: bytes = b"I") -> bytes:
    return build_message(READY_FOR_QUERY, status)


def row_description(columns: Sequence[ColumnDescription]) -> bytes:
    parts = [struct.pack("!H", len(columns))]
    for column in columns:
        parts.append(_cstring(column.name))
        parts.append(
            struct.pack(
                "!IhIhih",
                column.table_oid,
                column.column_number,
                column.type_oid,
                column.type_size,
                column.type_modifier,
                TEXT_FORMAT,
            )
        )
    return build_message(ROW_DESCRIPTION, b"".join(parts))


def data_row(values: Sequence[str | None]) -> bytes:
    """Encode a row of text-format values; None is SQL NULL."""
    parts = [struct.pack("!H", len(values))]
    for value in values:
        if value is None:
            parts.append(struct.pack("!i", -1))
        else:
            encoded = value.encode("utf-8")
            parts.append(struct.pack("!i", len(encoded)))
            parts.append(encoded)
    return build_message(DATA_ROW, b"".join(parts))


def command_complete(tag: str) -> bytes:
    return build_message(COMMAND_COMPLETE, _cstring(tag))


def empty_query_response() -> bytes:
    return build_message(EMPTY_QUERY_RESPONSE)


def error_response(error: PgError) -> bytes:
    """Encode an ErrorResponse (S/V severity, C code, M message, D detail, H hint)."""
    severity = error.severity.value
    fields = [
        b"S" + _cstring(severity),
        b"V" + _cstring(severity),
        b"C" + _cstring(error.code),
        b"M" + _cstring(error.message),
    ]
    if error.detail:
        fields.append(b"D" + _cstring(error.detail))
    if error.hint:
        fields.append(b"H" + _cstring(error.hint))
    return build_message(ERROR_RESPONSE, b"".join(fields) + b"\x00")


def parse_complete() -> bytes:
    return build_message(PARSE_COMPLETE)


def bind_complete() -> bytes:
    return build_message(BIND_COMPLETE)


def close_complete() -> bytes:
    return build_message(CLOSE_COMPLETE)


def no_data() -> bytes:
    return build_message(NO_DATA)


def parameter_description(type_oids: Sequence[int] = ()) -> bytes:
    return build_message(
        PARAMETER_DESCRIPTION,
        struct.pack("!H", len(type_oids)) + b"".join(struct.pack("!I", oid) for oid in type_oids),
    )
