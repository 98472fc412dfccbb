"""Minimal PostgreSQL v3 wire protocol server."""

from logfire_pg.wire.errors import PgError, Severity, as_pg_error
from logfire_pg.wire.messages import ColumnDescription
from logfire_pg.wire.server import ConnectionInfo, DataWriter, PgWireServer, Statement

__all__ = [
    "ColumnDescription",
    "ConnectionInfo",
    "DataWriter",
    "PgError",
    "PgWireServer",
    "Severity",
    "Statement",
    "as_pg_error",
]
