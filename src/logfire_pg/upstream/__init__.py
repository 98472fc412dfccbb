"""Upstream query API client and result sets."""

from logfire_pg.upstream.buffered import BufferedResultSet, parse_columns_document
from logfire_pg.upstream.client import UpstreamClient
from logfire_pg.upstream.interface import BaseResultSet, ResultSet, Row
from logfire_pg.upstream.streaming import ArrowStreamResultSet

__all__ = [
    "ArrowStreamResultSet",
    "BaseResultSet",
    "BufferedResultSet",
    "ResultSet",
    "Row",
    "UpstreamClient",
    "parse_columns_document",
]
