from __future__ import annotations

import argparse
import asyncio
import contextlib
import logging

from logfire_pg.app import create_app
from logfire_pg.config import load_server_config, resolve_config_path


def _is_shutdown_noise(exc: BaseException) -> bool:
    if isinstance(exc, asyncio.CancelledError | KeyboardInterrupt | GeneratorExit):
        return True
    if isinstance(exc, BaseExceptionGroup):
        return all(_is_shutdown_noise(sub_exc) for sub_exc in exc.exceptions)
    return False


class NoisyShutdownFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        if record.exc_info:
            _, exc, _ = record.exc_info
            if exc is not None and _is_shutdown_noise(exc):
                return False
        return True


def configure_logging(verbose: bool = False) -> logging.Handler:
    from rich.logging import RichHandler

    # rich_tracebacks=False keeps shutdown output short
    rich_handler = RichHandler(rich_tracebacks=False, markup=False)
    rich_handler.addFilter(NoisyShutdownFilter())
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[rich_handler],
        force=True,
    )
    # Per-request lines from httpx are noise unless debugging.
    logging.getLogger("httpx").setLevel(logging.DEBUG if verbose else logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.INFO if verbose else logging.WARNING)
    return rich_handler


def run_serve(args: argparse.Namespace) -> int:
    config = load_server_config(
        args.config,
        cli_overrides={
            "host": args.host,
            "port": args.port,
            "base_url": args.base_url,
            "transport": args.transport,
        },
    )
    config_path = resolve_config_path(args.config)
    configure_logging(args.verbose)
    app = create_app(config)

    async def runner() -> None:
        from logfire_pg.cli.ui import print_banner

        await app.start()
        print_banner(config, app.server.port, config_path)
        try:
            await asyncio.Event().wait()
        finally:
            await app.aclose()

    with contextlib.suppress(asyncio.CancelledError):
        asyncio.run(runner())
    return 0
