"""
scrapegate CLI - Main entry point.

Operate the fetch pipeline by hand: fetch pages through the same throttling,
retry and cookie machinery the API uses, resolve redirect targets, and
validate configuration.
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional

import typer
from dotenv import load_dotenv
from rich.panel import Panel
from rich.traceback import install as install_rich_traceback

from scrapegate import __app_name__, __version__

from .commands._common import console, err_console

# Load environment variables from .env (if present)
load_dotenv()

install_rich_traceback(show_locals=False, width=120)

app = typer.Typer(
    name=__app_name__,
    help="Resilient fetch and caching pipeline for scraping APIs",
    rich_markup_mode="rich",
    no_args_is_help=True,
    pretty_exceptions_show_locals=False,
)


def _show_version(value: bool) -> None:
    if not value:
        return
    console.print(f"[bold cyan]{__app_name__}[/bold cyan] {__version__}")
    raise typer.Exit()


@app.callback()
def main(
    ctx: typer.Context,
    config: Optional[Path] = typer.Option(
        None,
        "--config",
        "-c",
        help="Path to app.yaml (default: $SCRAPEGATE_CONFIG or configs/app.yaml)",
    ),
    log_level: Optional[str] = typer.Option(
        None,
        "--log-level",
        "-l",
        help="Override the configured log level",
    ),
    version: Optional[bool] = typer.Option(
        None,
        "--version",
        "-v",
        help="Show version and exit",
        callback=_show_version,
        is_eager=True,
    ),
) -> None:
    """scrapegate - resilient scraping fetch pipeline."""
    ctx.obj = {"config_path": config, "log_level": log_level}


# =============================================================================
# Import and register subcommand modules
# =============================================================================

from .commands import config as config_commands, fetch  # noqa: E402

app.add_typer(fetch.app, name="fetch", help="Fetch pages and resolve redirects")
app.add_typer(config_commands.app, name="config", help="Inspect and validate configuration")


# =============================================================================
# Init Command
# =============================================================================


DEFAULT_APP_CONFIG = """\
# scrapegate configuration
# Values support ${VAR} and ${VAR:-default} environment expansion.

logging:
  level: INFO
  file: logs/scrapegate.log
  json_format: true
  rich_console: true

fetch:
  max_retries: 3
  timeout_ms: 25000
  rps: 0.5
  burst: 2

cache:
  max_entries: 1000
  default_ttl_minutes: 1

sites:
  - name: otakudesu
    base_url: ${OTAKUDESU_BASE_URL:-https://otakudesu.cloud}
    cookies: ${OTAKUDESU_COOKIES:-}
  - name: samehadaku
    base_url: ${SAMEHADAKU_BASE_URL:-https://v1.samehadaku.how}
    cookies: ${SAMEHADAKU_COOKIES:-}
"""


@app.command()
def init(
    force: bool = typer.Option(
        False,
        "--force",
        "-f",
        help="Overwrite existing configuration",
    ),
) -> None:
    """Write a default configs/app.yaml."""
    path = Path("configs/app.yaml")
    if path.exists() and not force:
        err_console.print(f"[yellow]{path} already exists (use --force to overwrite)[/yellow]")
        raise typer.Exit(1)

    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(DEFAULT_APP_CONFIG, encoding="utf-8")

    console.print(Panel.fit(
        f"[bold green]Wrote {path}[/bold green]\n\n"
        "Next steps:\n"
        "  1. Set site cookies in [cyan].env[/cyan] (e.g. OTAKUDESU_COOKIES)\n"
        "  2. Check it: [yellow]scrapegate config validate[/yellow]\n"
        "  3. Try a fetch: [yellow]scrapegate fetch page <url>[/yellow]",
        title="[bold]Initialization Complete[/bold]",
        border_style="green",
    ))


# =============================================================================
# Entry Point
# =============================================================================


def run() -> None:
    """Run the CLI application."""
    app()


if __name__ == "__main__":
    run()
