"""
Configuration commands.
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional

import typer
from rich.table import Table

from scrapegate.core.config import validate_config_file
from scrapegate.core.config.loader import resolve_config_path

from ._common import console, err_console, load_config

app = typer.Typer(
    help="Inspect and validate configuration",
    no_args_is_help=True,
)


@app.command("validate")
def validate(
    ctx: typer.Context,
    path: Optional[Path] = typer.Argument(
        None,
        help="Config file (default: the global --config path)",
    ),
) -> None:
    """Validate a configuration file."""
    options = ctx.obj or {}
    path = resolve_config_path(path or options.get("config_path"))

    errors = validate_config_file(path)
    if errors:
        err_console.print(f"[red]{path} is invalid:[/red]")
        for error in errors:
            err_console.print(f"  - {error}")
        raise typer.Exit(1)

    console.print(f"[green]OK[/green] - {path} is valid")


@app.command("show")
def show(ctx: typer.Context) -> None:
    """Show the effective fetch, cache and site settings."""
    config = load_config(ctx)

    settings = Table(title="Settings", show_header=True, header_style="bold magenta")
    settings.add_column("Key", style="cyan")
    settings.add_column("Value")
    for key, value in config.fetch.model_dump().items():
        if isinstance(value, frozenset):
            value = ", ".join(str(v) for v in sorted(value))
        settings.add_row(f"fetch.{key}", str(value))
    for key, value in config.cache.model_dump().items():
        settings.add_row(f"cache.{key}", str(value))
    console.print(settings)

    sites = Table(title="Sites", show_header=True, header_style="bold magenta")
    sites.add_column("Name", style="cyan", no_wrap=True)
    sites.add_column("Base URL")
    sites.add_column("Cookies", justify="center")
    sites.add_column("RPS / Burst", justify="right")
    sites.add_column("Selectors")
    for site in config.sites:
        sites.add_row(
            site.name,
            site.base_url,
            "set" if site.cookies else "-",
            f"{site.rps or config.fetch.rps} / {site.burst or config.fetch.burst}",
            site.selector_version or "-",
        )
    if config.sites:
        console.print(sites)
    else:
        console.print("[dim]No sites configured.[/dim]")
