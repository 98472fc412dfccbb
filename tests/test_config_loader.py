"""Tests for config loader."""

from __future__ import annotations

import platform
from pathlib import Path
from textwrap import dedent

import pytest

from logfire_pg.config import ServerConfig, Transport, load_server_config


@pytest.fixture(autouse=True)
def _isolated_search_path(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep the developer's own config files out of the search path."""
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "xdg"))


def test_load_server_config_no_file() -> None:
    """Loading with no config file returns defaults."""
    config = load_server_config(environ={})
    assert config == ServerConfig()
    assert config.host == "127.0.0.1"
    assert config.port == 5432
    assert config.server_version == "17.0"
    assert config.upstream.query_url == "https://logfire-us.pydantic.dev/v1/query"
    assert config.upstream.transport == Transport.arrow
    assert config.upstream.http_timeout_s == 60.0


def test_load_server_config_from_toml(tmp_path: Path) -> None:
    """Loading from a TOML file parses correctly."""
    config_file = tmp_path / "custom.toml"
    config_file.write_text(
        dedent("""
        host = "0.0.0.0"
        port = 6543

        [upstream]
        base_url = "https://logfire-eu.pydantic.dev/"
        transport = "json"
        http_timeout_s = 5
        """)
    )

    config = load_server_config(config_file, environ={})

    assert config.host == "0.0.0.0"
    assert config.port == 6543
    assert config.upstream.base_url == "https://logfire-eu.pydantic.dev"
    assert config.upstream.query_url == "https://logfire-eu.pydantic.dev/v1/query"
    assert config.upstream.transport == Transport.json
    assert config.upstream.http_timeout_s == 5


def test_local_file_is_found(tmp_path: Path) -> None:
    """./logfire_pg.toml is picked up without an explicit path."""
    (tmp_path / "logfire_pg.toml").write_text("port = 7000\n")
    assert load_server_config(environ={}).port == 7000


def test_platform_file_is_found(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(platform, "system", lambda: "Linux")
    platform_file = tmp_path / "xdg" / "logfire_pg" / "config.toml"
    platform_file.parent.mkdir(parents=True)
    platform_file.write_text("port = 7001\n")
    assert load_server_config(environ={}).port == 7001


def test_explicit_missing_file_raises(tmp_path: Path) -> None:
    with pytest.raises(FileNotFoundError):
        load_server_config(tmp_path / "missing.toml", environ={})


def test_unparseable_file_raises(tmp_path: Path) -> None:
    config_file = tmp_path / "broken.toml"
    config_file.write_text("port = = 1")
    with pytest.raises(RuntimeError, match="Failed to parse"):
        load_server_config(config_file, environ={})


def test_invalid_values_raise(tmp_path: Path) -> None:
    config_file = tmp_path / "bad.toml"
    config_file.write_text('[upstream]\ntransport = "csv"\n')
    with pytest.raises(ValueError):
        load_server_config(config_file, environ={})


def test_unknown_keys_raise(tmp_path: Path) -> None:
    config_file = tmp_path / "bad.toml"
    config_file.write_text("colour = 'blue'\n")
    with pytest.raises(ValueError):
        load_server_config(config_file, environ={})


def test_environment_overrides_file(tmp_path: Path) -> None:
    config_file = tmp_path / "custom.toml"
    config_file.write_text('[upstream]\nbase_url = "https://from-file.example"\n')

    config = load_server_config(
        config_file,
        environ={
            "LOGFIRE_PG_BASE_URL": "https://from-env.example",
            "LOGFIRE_PG_TRANSPORT": "json",
            "LOGFIRE_PG_PORT": "15432",
        },
    )

    assert config.upstream.base_url == "https://from-env.example"
    assert config.upstream.transport == Transport.json
    assert config.port == 15432


def test_cli_overrides_win(tmp_path: Path) -> None:
    """CLI overrides take precedence over file and environment."""
    config_file = tmp_path / "custom.toml"
    config_file.write_text("port = 6000\n")

    config = load_server_config(
        config_file,
        cli_overrides={"port": 6001, "host": None, "transport": "json"},
        environ={"LOGFIRE_PG_PORT": "6002"},
    )

    assert config.port == 6001
    assert config.host == "127.0.0.1"
    assert config.upstream.transport == Transport.json
