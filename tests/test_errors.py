"""Tests for how errors are reported to clients."""

from __future__ import annotations

import pytest

from logfire_pg.errors import (
    ClientToolQueryRejected,
    InvalidCredentials,
    LogfirePgError,
    RowConversionError,
    UnsupportedType,
    UpstreamProtocolError,
    UpstreamQueryError,
    UpstreamUnavailable,
)
from logfire_pg.wire.errors import PgError, Severity, as_pg_error


@pytest.mark.parametrize(
    ("error", "code", "severity"),
    [
        (InvalidCredentials("no"), "28P01", Severity.fatal),
        (ClientToolQueryRejected("\\dt", "show tables;"), "0A000", Severity.error),
        (UpstreamQueryError(400, "syntax error"), "42000", Severity.error),
        (UpstreamProtocolError("garbage"), "22000", Severity.fatal),
        (UpstreamUnavailable("down"), "08006", Severity.fatal),
        (UnsupportedType("Interval"), "42804", Severity.error),
        (RowConversionError(0, 3, ValueError("bad")), "22000", Severity.error),
    ],
)
def test_sqlstate_and_severity(error: LogfirePgError, code: str, severity: Severity) -> None:
    pg_error = as_pg_error(error)
    assert pg_error is not None
    assert pg_error.code == code
    assert pg_error.severity == severity
    assert pg_error.message == str(error)


def test_client_tool_rejection_message() -> None:
    error = ClientToolQueryRejected("\\d records", "show columns from records;")
    assert str(error) == (
        "psql commands are not supported. Detected trying to use: \\d records. "
        "Please run instead:\n\nshow columns from records;"
    )
    assert error.to_pg_error().hint == "Run instead: show columns from records;"


def test_row_conversion_error_names_position() -> None:
    error = RowConversionError(2, 17, TypeError("expected a boolean, got str"))
    assert "column 2 row 17" in str(error)


def test_pg_error_passes_through() -> None:
    error = PgError("custom", code="42P01")
    assert as_pg_error(error) is error


def test_unexpected_exceptions_are_not_converted() -> None:
    assert as_pg_error(KeyError("boom")) is None
