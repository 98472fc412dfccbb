from logfire_pg.config.loader import (
    get_platform_config_path,
    load_server_config,
    resolve_config_path,
)
from logfire_pg.config.settings import ServerConfig, Transport, UpstreamConfig

__all__ = [
    "ServerConfig",
    "Transport",
    "UpstreamConfig",
    "get_platform_config_path",
    "load_server_config",
    "resolve_config_path",
]
