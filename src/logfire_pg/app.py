from __future__ import annotations

import asyncio
import logging

import httpx

from logfire_pg.config.settings import ServerConfig
from logfire_pg.session.auth import Gatekeeper
from logfire_pg.session.coordinator import PreparedQuery, SessionCoordinator
from logfire_pg.session.state import AuthenticatedSession
from logfire_pg.upstream.client import UpstreamClient
from logfire_pg.wire.server import ConnectionInfo, PgWireServer

logger = logging.getLogger("logfire_pg")


class LogfirePgApp:
    """Wires the upstream client, authentication and query handling into a server."""

    def __init__(
        self,
        config: ServerConfig,
        *,
        http_transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.config = config
        self.client = UpstreamClient(config.upstream, transport=http_transport)
        self.gatekeeper = Gatekeeper(self.client)
        self.coordinator = SessionCoordinator(self.client)
        self.server: PgWireServer[AuthenticatedSession] = PgWireServer(
            authenticate=self.authenticate,
            handle_query=self.handle_query,
            server_version=config.server_version,
        )

    async def authenticate(self, info: ConnectionInfo, password: str) -> AuthenticatedSession:
        return await asyncio.to_thread(
            self.gatekeeper.authenticate,
            info.user,
            password,
            database=info.database,
            application_name=info.application_name,
            remote_address=info.remote_address,
        )

    async def handle_query(self, session: AuthenticatedSession, query: str) -> PreparedQuery:
        return await self.coordinator.prepare(session, query)

    async def start(self) -> None:
        await self.server.start(self.config.host, self.config.port)
        logger.info(
            "listening on %s:%d, forwarding to %s",
            self.config.host,
            self.server.port,
            self.config.upstream.query_url,
        )

    async def aclose(self) -> None:
        await self.server.close()
        self.client.close()


def create_app(
    config: ServerConfig | None = None,
    *,
    http_transport: httpx.BaseTransport | None = None,
) -> LogfirePgApp:
    return LogfirePgApp(config or ServerConfig(), http_transport=http_transport)
