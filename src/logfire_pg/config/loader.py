"""Config loader for the logfire-pg server.

Search order: ./logfire_pg.toml -> platform config path.
Environment variables override the file, CLI flags override both.
Uses stdlib tomllib (Python 3.11+).
"""

from __future__ import annotations

import os
import platform
import tomllib
from collections.abc import Mapping
from pathlib import Path
from typing import Any

from logfire_pg.config.settings import ServerConfig

# Environment variable -> (section, key). Section None means top level.
_ENV_OVERRIDES: dict[str, tuple[str | None, str]] = {
    "LOGFIRE_PG_HOST": (None, "host"),
    "LOGFIRE_PG_PORT": (None, "port"),
    "LOGFIRE_PG_BASE_URL": ("upstream", "base_url"),
    "LOGFIRE_PG_TRANSPORT": ("upstream", "transport"),
}

# CLI override name -> (section, key).
_CLI_OVERRIDES: dict[str, tuple[str | None, str]] = {
    "host": (None, "host"),
    "port": (None, "port"),
    "base_url": ("upstream", "base_url"),
    "transport": ("upstream", "transport"),
}


def get_platform_config_path() -> Path:
    """Return the platform-specific config.toml path."""
    system = platform.system().lower()
    if system == "darwin":
        return Path.home() / "Library" / "Application Support" / "logfire_pg" / "config.toml"
    if system == "windows":
        appdata = os.environ.get("APPDATA")
        if appdata:
            return Path(appdata) / "logfire_pg" / "config.toml"
        return Path.home() / "AppData" / "Roaming" / "logfire_pg" / "config.toml"

    xdg_config = os.environ.get("XDG_CONFIG_HOME")
    if xdg_config:
        return Path(xdg_config) / "logfire_pg" / "config.toml"
    return Path.home() / ".config" / "logfire_pg" / "config.toml"


def get_config_search_paths() -> list[Path]:
    """Return config search paths in priority order."""
    return [Path("./logfire_pg.toml"), get_platform_config_path()]


def _find_config_file() -> Path | None:
    for path in get_config_search_paths():
        if path.exists():
            return path
    return None


def _parse_toml(path: Path) -> dict[str, Any]:
    with path.open("rb") as f:
        return tomllib.load(f)


def resolve_config_path(config_path: Path | None = None) -> Path | None:
    """Resolve the config file that will be used, if any."""
    if config_path:
        return config_path
    return _find_config_file()


def _apply(data: dict[str, Any], section: str | None, key: str, value: Any) -> None:
    if section is None:
        data[key] = value
    else:
        data.setdefault(section, {})[key] = value


def load_server_config(
    config_path: Path | None = None,
    *,
    cli_overrides: Mapping[str, Any] | None = None,
    environ: Mapping[str, str] | None = None,
) -> ServerConfig:
    """Load server configuration.

    Args:
        config_path: Explicit path to config file. If None, searches default locations.
        cli_overrides: CLI values to apply last; None values are ignored.
        environ: Environment to read overrides from (defaults to os.environ).

    Returns:
        A frozen ServerConfig.

    Raises:
        FileNotFoundError: If an explicit config_path is provided but does not exist.
        RuntimeError: If the config file cannot be parsed.
    """
    if config_path:
        if not config_path.exists():
            raise FileNotFoundError(
                f"Configuration file not found at explicitly provided path: {config_path}. "
                "Ensure the file exists or omit the argument to use default search paths."
            )
        path: Path | None = config_path
    else:
        path = _find_config_file()

    data: dict[str, Any] = {}
    if path is not None:
        try:
            data = _parse_toml(path)
        except Exception as e:
            raise RuntimeError(f"Failed to parse configuration file at {path}: {e}") from e

    env = os.environ if environ is None else environ
    for name, (section, key) in _ENV_OVERRIDES.items():
        if env.get(name):
            _apply(data, section, key, env[name])

    for name, value in (cli_overrides or {}).items():
        if value is None or name not in _CLI_OVERRIDES:
            continue
        section, key = _CLI_OVERRIDES[name]
        _apply(data, section, key, value)

    return ServerConfig.model_validate(data)
