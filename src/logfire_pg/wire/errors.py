"""Protocol-level errors sent to clients as ErrorResponse messages."""

from __future__ import annotations

from enum import Enum
from typing import Final, Protocol, runtime_checkable

# SQLSTATE codes, see https://www.postgresql.org/docs/current/errcodes-appendix.html
CONNECTION_FAILURE: Final = "08006"
PROTOCOL_VIOLATION: Final = "08P01"
FEATURE_NOT_SUPPORTED: Final = "0A000"
DATA_EXCEPTION: Final = "22000"
CHARACTER_NOT_IN_REPERTOIRE: Final = "22021"
INVALID_SQL_STATEMENT_NAME: Final = "26000"
INVALID_PASSWORD: Final = "28P01"
INVALID_CURSOR_NAME: Final = "34000"
SYNTAX_ERROR_OR_ACCESS_RULE_VIOLATION: Final = "42000"
DATATYPE_MISMATCH: Final = "42804"
DUPLICATE_CURSOR: Final = "42P03"
DUPLICATE_PREPARED_STATEMENT: Final = "42P05"
INTERNAL_ERROR: Final = "XX000"


class Severity(str, Enum):
    error = "ERROR"
    fatal = "FATAL"
    panic = "PANIC"


class PgError(Exception):
    """An error rendered to the client with a SQLSTATE and severity.

    FATAL errors terminate the connection after the ErrorResponse is sent.
    """

    def __init__(
        self,
        message: str,
        *,
        code: str = INTERNAL_ERROR,
        severity: Severity = Severity.error,
        detail: str | None = None,
        hint: str | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code
        self.severity = severity
        self.detail = detail
        self.hint = hint

    @property
    def is_fatal(self) -> bool:
        return self.severity in (Severity.fatal, Severity.panic)

    def __repr__(self) -> str:
        return f"PgError({self.severity.value} {self.code}: {self.message!r})"


@runtime_checkable
class SupportsPgError(Protocol):
    """Exceptions that know how they are reported to the client."""

    def to_pg_error(self) -> PgError: ...


def as_pg_error(exc: BaseException) -> PgError | None:
    """Return the client-facing form of `exc`, or None for unexpected errors."""
    if isinstance(exc, PgError):
        return exc
    if isinstance(exc, SupportsPgError):
        return exc.to_pg_error()
    return None
