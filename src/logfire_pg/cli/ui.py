"""Shared UI components for the logfire-pg CLI."""

from __future__ import annotations

from pathlib import Path

from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text
from rich.theme import Theme

from logfire_pg.config.settings import ServerConfig

theme = Theme(
    {
        "info": "dim cyan",
        "warning": "yellow",
        "error": "bold red",
        "success": "bold green",
        "tip": "blue",
        "heading": "bold magenta",
    }
)

console = Console(theme=theme)
error_console = Console(theme=theme, stderr=True)


def print_banner(config: ServerConfig, port: int, config_path: Path | None) -> None:
    """Print the startup banner with connection details."""
    from logfire_pg import __version__

    table = Table(show_header=False, box=None, padding=(0, 2))
    table.add_column("Key", style="bold white", justify="right")
    table.add_column("Value", style="magenta")

    table.add_row("Listening", f"{config.host}:{port}")
    table.add_row("Upstream", config.upstream.query_url)
    table.add_row("Transport", config.upstream.transport.value)
    table.add_row("Config", str(config_path) if config_path else "[dim]defaults[/dim]")

    console.print(
        Panel(
            table,
            title=f"[bold]logfire-pg {__version__}[/bold]",
            border_style="magenta",
            padding=(1, 1),
        )
    )

    tips = Text()
    tips.append("Connect with: ", style="dim")
    tips.append(f"psql 'postgresql://<user>@{config.host}:{port}/logfire'", style="white")
    tips.append("\nUse a Logfire read token as the password.", style="dim")
    console.print(tips)
    console.print()


def print_error(title: str, message: str, tip: str | None = None) -> None:
    """Print a styled error message with an optional actionable tip."""
    content = Text()
    content.append(f"{message}\n", style="white")

    if tip:
        content.append("\nTip: ", style="bold blue")
        content.append(tip, style="blue")

    error_console.print(
        Panel(
            content,
            title=f"[bold red]Error: {title}[/bold red]",
            border_style="red",
            padding=(1, 1),
        )
    )
