"""
Fetch commands.

Run single fetches through the full pipeline and show the resulting
response and site health.
"""

from __future__ import annotations

import asyncio
from typing import Optional

import typer
from rich.table import Table

from scrapegate.core.errors import ScraperError
from scrapegate.core.fetch import HealthMetrics, ScrapeContext
from scrapegate.core.services import SiteClient

from ._common import configure_logging, console, err_console, load_config

app = typer.Typer(
    help="Fetch pages and resolve redirects",
    no_args_is_help=True,
)


def _show_health(health: HealthMetrics) -> None:
    table = Table(title="Site Health", show_header=True, header_style="bold magenta")
    table.add_column("Site", style="cyan")
    table.add_column("Last Success", justify="right")
    table.add_column("Last Error")
    table.add_column("Failures", justify="right")

    for site, snapshot in sorted(health.get_all().items()):
        error = snapshot.last_error
        table.add_row(
            site,
            str(snapshot.last_success or "-"),
            f"{error.status or '-'} {error.message}" if error else "-",
            str(snapshot.consecutive_failures),
        )

    console.print(table)


@app.command("page")
def fetch_page(
    ctx: typer.Context,
    url: str = typer.Argument(..., help="URL to fetch"),
    ref: Optional[str] = typer.Option(
        None,
        "--ref",
        "-r",
        help="Referer (defaults to the URL's origin)",
    ),
    retries: int = typer.Option(
        3,
        "--retries",
        "-n",
        help="Retries after the first attempt",
    ),
    timeout_ms: Optional[int] = typer.Option(
        None,
        "--timeout-ms",
        help="Per-attempt timeout in milliseconds",
    ),
    cookie: Optional[str] = typer.Option(
        None,
        "--cookie",
        help="Extra cookies, e.g. 'cf_clearance=...'",
    ),
    show_body: bool = typer.Option(
        False,
        "--body",
        "-b",
        help="Print the response body",
    ),
) -> None:
    """Fetch one page through throttling, retries and cookie handling.

    Examples:
        scrapegate fetch page https://otakudesu.cloud/ongoing-anime/
        scrapegate fetch page https://example.com --cookie "session=abc" --body
    """
    config = load_config(ctx)
    configure_logging(ctx, config)
    context = ScrapeContext()

    async def _run() -> str:
        async with SiteClient.from_config(config, context) as client:
            headers = {"Cookie": cookie} if cookie else None
            return await client.fetch(
                url,
                ref,
                headers=headers,
                max_retries=retries,
                timeout_ms=timeout_ms,
            )

    try:
        body = asyncio.run(_run())
    except ScraperError as e:
        err_console.print(f"[red]{type(e).__name__}: {e.message}[/red]")
        _show_health(context.health)
        raise typer.Exit(1)

    console.print(f"[green]OK[/green] - {len(body)} characters")
    if show_body:
        console.print(body, markup=False, highlight=False)
    _show_health(context.health)


@app.command("resolve")
def resolve_urls(
    ctx: typer.Context,
    urls: list[str] = typer.Argument(..., help="URLs to resolve"),
    ref: Optional[str] = typer.Option(
        None,
        "--ref",
        "-r",
        help="Referer sent with every request",
    ),
    retries: int = typer.Option(
        3,
        "--retries",
        "-n",
        help="Tries per URL",
    ),
) -> None:
    """Resolve one redirect hop for each URL.

    URLs that cannot be resolved are shown as empty.
    """
    config = load_config(ctx)
    configure_logging(ctx, config)

    async def _run() -> list[str]:
        async with SiteClient.from_config(config) as client:
            return await client.get_final_urls(urls, ref, retries=retries)

    results = asyncio.run(_run())

    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("URL", style="cyan")
    table.add_column("Final URL")
    for url, final in zip(urls, results):
        table.add_row(url, final or "[red]-[/red]")
    console.print(table)

    if not all(results):
        raise typer.Exit(1)
