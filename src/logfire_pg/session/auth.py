"""Connection authentication by probe query.

The connection password is treated as an upstream API token. It is accepted
when a trivial probe query run with it returns exactly one column and one row
holding the number 1 (numeric text such as "1" counts).
"""

from __future__ import annotations

import logging
from decimal import Decimal, InvalidOperation
from typing import Any

from logfire_pg.errors import InvalidCredentials, UpstreamError, UpstreamUnavailable
from logfire_pg.session.state import AuthenticatedSession, Credential
from logfire_pg.upstream.client import UpstreamClient
from logfire_pg.upstream.interface import ResultSet

logger = logging.getLogger(__name__)


def _is_one(value: Any) -> bool:
    if isinstance(value, bool):
        return False
    if isinstance(value, str | bytes):
        text = value.decode("utf-8", errors="replace") if isinstance(value, bytes) else value
        try:
            value = Decimal(text.strip())
        except InvalidOperation:
            return False
        if not value.is_finite():
            return False
    if not isinstance(value, int | float | Decimal):
        return False
    return value == 1


def _check_probe_result(result: ResultSet) -> None:
    if len(result.schema) != 1:
        raise InvalidCredentials(
            f"authentication failed: probe returned {len(result.schema)} columns, expected 1"
        )

    # Read at most two rows; anything past the second means the shape is wrong anyway.
    rows = []
    for row in result.rows():
        rows.append(row)
        if len(rows) > 1:
            break
    if len(rows) != 1:
        raise InvalidCredentials("authentication failed: probe did not return exactly one row")

    (value,) = rows[0]
    if not _is_one(value):
        raise InvalidCredentials("authentication failed: unexpected probe result")


class Gatekeeper:
    """Validates connection credentials against the upstream API."""

    def __init__(self, client: UpstreamClient) -> None:
        self._client = client

    @property
    def probe_query(self) -> str:
        return self._client.config.probe_query

    def authenticate(
        self,
        username: str,
        password: str,
        *,
        database: str | None = None,
        application_name: str | None = None,
        remote_address: str | None = None,
    ) -> AuthenticatedSession:
        """Authenticate a connection. Blocks on one upstream round trip.

        Raises:
            InvalidCredentials: Empty username, rejected token or unexpected probe result.
            UpstreamUnavailable: The upstream could not be reached to check the token.
        """
        if not username:
            raise InvalidCredentials("username cannot be empty")

        credential = Credential(password)
        try:
            with self._client.execute(self.probe_query, credential) as result:
                _check_probe_result(result)
        except UpstreamUnavailable:
            raise
        except UpstreamError as exc:
            logger.info("authentication failed for user %s: %s", username, exc)
            raise InvalidCredentials(f"authentication failed: {exc}") from exc
        except InvalidCredentials as exc:
            logger.info("authentication failed for user %s: %s", username, exc)
            raise

        logger.info("successful authentication for user: %s", username)
        return AuthenticatedSession(
            username=username,
            credential=credential,
            database=database,
            application_name=application_name,
            remote_address=remote_address,
        )
