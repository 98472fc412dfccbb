from __future__ import annotations

import argparse
import os
from pathlib import Path

from logfire_pg.cli.serve import run_serve
from logfire_pg.config.settings import Transport


def build_parser() -> argparse.ArgumentParser:
    from logfire_pg import __version__

    parser = argparse.ArgumentParser(
        prog="logfire-pg",
        description="Serve the Logfire query API over the PostgreSQL wire protocol",
    )
    parser.set_defaults(func=run_serve)
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
        help="Print version and exit",
    )
    parser.add_argument("--host", help="Host to bind (default: 127.0.0.1)")
    parser.add_argument("--port", type=int, help="Port to bind (default: 5432)")
    parser.add_argument("--config", type=Path, help="Path to logfire_pg.toml")
    parser.add_argument("--base-url", help="Upstream API base URL")
    parser.add_argument(
        "--transport",
        choices=[t.value for t in Transport],
        help="Upstream result encoding (default: arrow)",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    parser.add_argument(
        "--trace",
        action="store_true",
        help="Print full traceback on errors (or set LOGFIRE_PG_TRACE=1)",
    )
    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    want_trace = bool(args.trace) or os.environ.get("LOGFIRE_PG_TRACE") in {
        "1",
        "true",
        "TRUE",
        "yes",
        "YES",
    }
    try:
        return int(args.func(args))
    except KeyboardInterrupt:
        # Keep Ctrl-C quiet by default.
        return 130
    except Exception as exc:
        if want_trace:
            from rich.console import Console

            Console().print_exception()
        else:
            from logfire_pg.cli.ui import print_error

            tip = "re-run with --trace to see the full traceback."
            if "Address already in use" in str(exc) or "address already in use" in str(exc):
                tip = "Another process is using this port; pick one with --port."
            elif isinstance(exc, FileNotFoundError):
                tip = "Check that your config file path is correct."
            elif "validation error" in str(exc):
                tip = "Check the values in your config file and environment."

            print_error(type(exc).__name__, str(exc), tip=tip)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
