from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator

DEFAULT_BASE_URL = "https://logfire-us.pydantic.dev"
DEFAULT_QUERY_PATH = "/v1/query"
DEFAULT_SERVER_VERSION = "17.0"
PROBE_QUERY = "SELECT 1"


class Transport(str, Enum):
    arrow = "arrow"
    json = "json"


def _default_user_agent() -> str:
    from logfire_pg import __version__

    return f"logfire-pg/{__version__}"


class UpstreamConfig(BaseModel):
    """Where and how queries are forwarded."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    base_url: str = DEFAULT_BASE_URL
    query_path: str = DEFAULT_QUERY_PATH
    transport: Transport = Transport.arrow
    http_timeout_s: float = Field(default=60.0, gt=0)
    probe_query: str = PROBE_QUERY
    user_agent: str = Field(default_factory=_default_user_agent)

    @field_validator("base_url")
    @classmethod
    def _strip_trailing_slash(cls, value: str) -> str:
        if not value.startswith(("http://", "https://")):
            raise ValueError(f"base_url must be an http(s) URL, got {value!r}")
        return value.rstrip("/")

    @field_validator("query_path")
    @classmethod
    def _ensure_leading_slash(cls, value: str) -> str:
        return value if value.startswith("/") else f"/{value}"

    @property
    def query_url(self) -> str:
        return f"{self.base_url}{self.query_path}"


class ServerConfig(BaseModel):
    """Process-wide configuration, built once at startup and never mutated."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    host: str = "127.0.0.1"
    port: int = Field(default=5432, ge=0, le=65535)
    server_version: str = DEFAULT_SERVER_VERSION
    upstream: UpstreamConfig = Field(default_factory=UpstreamConfig)
