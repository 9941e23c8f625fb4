"""Helpers shared by CLI commands."""

from __future__ import annotations

import typer
from rich.console import Console

from scrapegate.core.config import AppConfig, ConfigError, load_app_config
from scrapegate.core.logging import setup_logging

console = Console()
err_console = Console(stderr=True)


def load_config(ctx: typer.Context) -> AppConfig:
    """Load configuration from the global --config option, exiting on errors."""
    options = ctx.obj or {}
    try:
        return load_app_config(options.get("config_path"))
    except ConfigError as e:
        err_console.print(f"[red]{e}[/red]")
        if e.details:
            err_console.print(e.details, style="dim", markup=False)
        raise typer.Exit(1)


def configure_logging(ctx: typer.Context, config: AppConfig) -> None:
    options = ctx.obj or {}
    setup_logging(
        level=options.get("log_level") or config.logging.level,
        log_file=config.logging.file,
        json_format=config.logging.json_format,
        rich_console=config.logging.rich_console,
    )
