"""CLI entry point for the SlidesGPT MCP server."""

from __future__ import annotations

import argparse
import logging
import sys

import uvicorn
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel

from src import config
from src.server import HEALTH_PATH, MESSAGE_PATH, SSE_PATH, WELL_KNOWN_PATH, build_app
from src.widgets import WidgetAssetsError

console = Console()


def _print_banner(host: str, port: int):
    base = f"http://{'localhost' if host == '0.0.0.0' else host}:{port}"
    console.print(Panel(
        "[bold blue]SlidesGPT MCP Server[/bold blue]\n"
        f"[dim]SSE stream:          GET  {base}{SSE_PATH}\n"
        f"Message endpoint:    POST {base}{MESSAGE_PATH}?session_id=...\n"
        f"Domain verification: GET  {base}{WELL_KNOWN_PATH}\n"
        f"Health:              GET  {base}{HEALTH_PATH}[/dim]",
        border_style="blue",
    ))


def _configure_logging(level: str):
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True, show_path=False)],
    )


def main(argv: list[str] | None = None):
    parser = argparse.ArgumentParser(description="SlidesGPT MCP server (SSE transport)")
    parser.add_argument("--host", default=config.HOST, help=f"Bind address (default: {config.HOST})")
    parser.add_argument("--port", type=int, default=config.PORT, help=f"Port (default: {config.PORT})")
    parser.add_argument("--log-level", default=config.LOG_LEVEL, help="Log level (default: INFO)")
    args = parser.parse_args(argv)

    _configure_logging(args.log_level.upper())

    try:
        app = build_app()
    except WidgetAssetsError as exc:
        console.print(f"[red]{exc}[/red]")
        sys.exit(1)

    _print_banner(args.host, args.port)
    uvicorn.run(app, host=args.host, port=args.port, log_config=None)


if __name__ == "__main__":
    main()
