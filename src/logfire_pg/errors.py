"""Error taxonomy for the query pipeline.

Every error knows how it is reported to the database client through
`to_pg_error()`. Messages never include the connection credential.
"""

from __future__ import annotations

from logfire_pg.wire import errors as pgerr
from logfire_pg.wire.errors import PgError, Severity

# Upstream bodies can be large HTML error pages; keep client messages readable.
UPSTREAM_BODY_CAP_CHARS = 2 * 1024


class LogfirePgError(Exception):
    """Base class for all errors raised by logfire-pg."""

    code: str = pgerr.INTERNAL_ERROR
    severity: Severity = Severity.error

    def to_pg_error(self) -> PgError:
        return PgError(str(self), code=self.code, severity=self.severity)


class InvalidCredentials(LogfirePgError):
    """The connection could not be authenticated against the upstream API."""

    code = pgerr.INVALID_PASSWORD
    severity = Severity.fatal


class ClientToolQueryRejected(LogfirePgError):
    """A catalog introspection query from an interactive client was intercepted."""

    code = pgerr.FEATURE_NOT_SUPPORTED

    def __init__(self, detected_command: str, suggested_query: str) -> None:
        super().__init__(
            f"psql commands are not supported. Detected trying to use: {detected_command}. "
            f"Please run instead:\n\n{suggested_query}"
        )
        self.detected_command = detected_command
        self.suggested_query = suggested_query

    def to_pg_error(self) -> PgError:
        return PgError(
            str(self),
            code=self.code,
            severity=self.severity,
            hint=f"Run instead: {self.suggested_query}",
        )


class UpstreamError(LogfirePgError):
    """Base class for failures talking to the upstream query API."""


class UpstreamQueryError(UpstreamError):
    """The upstream API answered with a non-success status."""

    code = pgerr.SYNTAX_ERROR_OR_ACCESS_RULE_VIOLATION

    def __init__(self, status_code: int, body: str) -> None:
        self.status_code = status_code
        self.body = body
        if len(body) > UPSTREAM_BODY_CAP_CHARS:
            body = body[:UPSTREAM_BODY_CAP_CHARS] + "..."
        super().__init__(f"query failed. Status code: {status_code}, body: {body}")


class UpstreamProtocolError(UpstreamError):
    """The upstream response body could not be decoded."""

    code = pgerr.DATA_EXCEPTION
    severity = Severity.fatal


class UpstreamUnavailable(UpstreamError):
    """The upstream API could not be reached."""

    code = pgerr.CONNECTION_FAILURE
    severity = Severity.fatal


class UnsupportedType(LogfirePgError):
    """A column type has no wire type mapping."""

    code = pgerr.DATATYPE_MISMATCH

    def __init__(self, message: str, *, column_index: int | None = None) -> None:
        self.column_index = column_index
        super().__init__(message)


class RowConversionError(LogfirePgError):
    """A value could not be converted while streaming rows."""

    code = pgerr.DATA_EXCEPTION

    def __init__(self, column_index: int, row_index: int, cause: Exception) -> None:
        self.column_index = column_index
        self.row_index = row_index
        super().__init__(f"failed to convert column {column_index} row {row_index}: {cause}")
