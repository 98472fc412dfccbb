"""HTTP client for the upstream query API.

Queries are forwarded verbatim as the `sql` query-string parameter with the
connection credential as a bearer token:

    GET <base_url>/v1/query?sql=<urlencoded sql>
    Authorization: Bearer <credential>

The response body decides the result set type: an Arrow IPC stream is decoded
lazily, a JSON document is decoded eagerly.
"""

from __future__ import annotations

import logging

import httpx

from logfire_pg.config.settings import Transport, UpstreamConfig
from logfire_pg.errors import UpstreamProtocolError, UpstreamQueryError, UpstreamUnavailable
from logfire_pg.session.state import Credential
from logfire_pg.upstream.buffered import parse_columns_body
from logfire_pg.upstream.interface import ResultSet
from logfire_pg.upstream.streaming import ARROW_STREAM_MEDIA_TYPE, ArrowStreamResultSet

logger = logging.getLogger(__name__)

JSON_MEDIA_TYPE = "application/json"

_ACCEPT: dict[Transport, str] = {
    Transport.arrow: ARROW_STREAM_MEDIA_TYPE,
    Transport.json: JSON_MEDIA_TYPE,
}


class UpstreamClient:
    """Executes SQL against the upstream query endpoint.

    The underlying `httpx.Client` is safe to share between connections; every
    call uses its own response.
    """

    def __init__(
        self,
        config: UpstreamConfig,
        *,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.config = config
        self._client = httpx.Client(
            timeout=config.http_timeout_s,
            transport=transport,
            headers={"User-Agent": config.user_agent},
        )

    @property
    def query_url(self) -> str:
        return self.config.query_url

    def execute(self, sql: str, credential: Credential) -> ResultSet:
        """Run `sql` upstream and return its result set.

        The caller owns the returned result set and must close it.

        Raises:
            UpstreamQueryError: Non-200 response; carries status and body text.
            UpstreamProtocolError: The body could not be decoded.
            UpstreamUnavailable: Network-level failure.
        """
        request = self._client.build_request(
            "GET",
            self.query_url,
            params={"sql": sql},
            headers={
                "Authorization": f"Bearer {credential.get_secret_value()}",
                "Accept": _ACCEPT[self.config.transport],
            },
        )

        try:
            response = self._client.send(request, stream=True)
        except httpx.HTTPError as exc:
            raise UpstreamUnavailable(f"failed to execute query: {exc}") from exc

        logger.debug(
            "upstream responded %s (%s)",
            response.status_code,
            response.headers.get("content-type", "no content type"),
        )

        try:
            if response.status_code != 200:
                body = response.read().decode("utf-8", errors="replace")
                raise UpstreamQueryError(response.status_code, body)

            if self._is_arrow(response):
                # The result set takes ownership of the response from here.
                return ArrowStreamResultSet(response)

            body_bytes = response.read()
        except httpx.HTTPError as exc:
            response.close()
            raise UpstreamUnavailable(f"error reading upstream response: {exc}") from exc
        except BaseException:
            response.close()
            raise

        response.close()
        return parse_columns_body(body_bytes)

    def _is_arrow(self, response: httpx.Response) -> bool:
        content_type = response.headers.get("content-type", "").lower()
        if "arrow" in content_type:
            return True
        if "json" in content_type:
            return False
        if content_type:
            raise UpstreamProtocolError(f"unexpected upstream content type: {content_type}")
        return self.config.transport == Transport.arrow

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> UpstreamClient:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()
