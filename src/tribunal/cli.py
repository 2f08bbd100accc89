"""
Tribunal CLI - Command Line Interface for the cheater report pipeline

Provides commands for:
- Inspecting a demo's map and roster
- Extracting match statistics
- Valuing a player's inventory
- Running the worker API
"""

import asyncio
import json
import logging
from pathlib import Path

import httpx
import typer
from rich.console import Console
from rich.panel import Panel
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.table import Table

from tribunal import __version__
from tribunal.core.config import configure_logging, get_config, load_config, set_config
from tribunal.core.extraction import extract_identity, extract_statistics
from tribunal.core.schemas import InventoryValuation, MatchStatisticsView
from tribunal.infra.cache import StatisticsCache
from tribunal.pricing.valuation import InventoryValuator

app = typer.Typer(
    name="tribunal",
    help="CS2 cheater report tooling - demo statistics and inventory valuation",
    add_completion=False,
)
console = Console()
logger = logging.getLogger(__name__)


def version_callback(value: bool) -> None:
    """Show version and exit."""
    if value:
        console.print(f"[bold blue]Tribunal[/bold blue] v{__version__}")
        raise typer.Exit()


@app.callback()
def main_callback(
    version: bool = typer.Option(
        None, "--version", "-v", callback=version_callback, is_eager=True, help="Show version and exit"
    ),
    verbose: bool = typer.Option(False, "--verbose", "-V", help="Enable verbose output"),
    config_file: Path | None = typer.Option(
        None, "--config", "-c", exists=True, dir_okay=False, help="Configuration file (YAML, TOML or JSON)"
    ),
) -> None:
    """Tribunal - CS2 cheater report pipeline"""
    config = load_config(config_file)
    if verbose:
        config.logging.level = "DEBUG"
    set_config(config)
    configure_logging(config.logging)


def _format_cents(cents: int | None, currency: str | None) -> str:
    if cents is None:
        return "-"
    return f"{cents / 100:,.2f} {currency or ''}".strip()


@app.command()
def inspect(
    demo_path: Path = typer.Argument(
        ..., help="Path to the .dem file", exists=True, dir_okay=False, resolve_path=True
    ),
    as_json: bool = typer.Option(False, "--json", help="Print the raw identity view as JSON"),
) -> None:
    """Show the map and roster of a demo (suspect selection)."""
    view = extract_identity(demo_path)

    if as_json:
        console.print_json(json.dumps(view.to_dict()))
        return

    console.print(f"\n[bold]Map:[/bold] {view.header.map_name or 'unknown'}")
    console.print(f"[bold]Server:[/bold] {view.header.server_name or 'unknown'}\n")
    if not view.players:
        console.print("[yellow]No players found - enter the suspect manually.[/yellow]")
        return

    table = Table(title="Players")
    table.add_column("Name", style="cyan")
    table.add_column("SteamID64")
    table.add_column("Team", justify="center")
    for player in view.players:
        table.add_row(player.name, player.steam_id, player.team.value if player.team else "-")
    console.print(table)


def _print_statistics(view: MatchStatisticsView) -> None:
    info = Table(title="Match", show_header=False)
    info.add_column("Property", style="cyan")
    info.add_column("Value", style="green")
    info.add_row("Map", view.header.map_name or "unknown")
    duration = view.header.playback_seconds
    info.add_row("Duration", f"{duration // 60}m {duration % 60}s" if duration is not None else "-")
    info.add_row("Score", f"CT {view.score_ct} - {view.score_t} T")
    info.add_row("Score source", view.score_source)
    info.add_row("Rounds", str(len(view.rounds)))
    console.print(info)
    console.print()

    table = Table(title="Scoreboard")
    table.add_column("Player", style="cyan")
    table.add_column("Team", justify="center")
    for column in ("K", "D", "A", "HS%", "K/D", "ADR"):
        table.add_column(column, justify="right")
    for p in view.players:
        table.add_row(
            p.name,
            p.team.value if p.team else "-",
            str(p.kills),
            str(p.deaths),
            str(p.assists),
            f"{p.hs_percent}%",
            f"{p.kd:.2f}",
            str(p.adr),
        )
    console.print(table)

    for warning in view.warnings:
        console.print(f"[yellow]warning:[/yellow] {warning}")


@app.command()
def stats(
    demo_path: Path = typer.Argument(
        ..., help="Path to the .dem file", exists=True, dir_okay=False, resolve_path=True
    ),
    as_json: bool = typer.Option(False, "--json", help="Print the raw statistics view as JSON"),
    no_cache: bool = typer.Option(False, "--no-cache", help="Bypass the statistics result cache"),
) -> None:
    """Extract full match statistics from a demo."""
    config = get_config()
    cache = None
    if config.parser.cache_statistics and not no_cache:
        cache = StatisticsCache(config.resolved_results_dir())

    view = cache.get(demo_path) if cache else None
    if view is None:
        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            console=console,
            transient=True,
        ) as progress:
            progress.add_task("Parsing demo file...", total=None)
            view = extract_statistics(demo_path)
        if cache:
            cache.put(demo_path, view)

    if as_json:
        console.print_json(json.dumps(view.to_dict()))
    else:
        _print_statistics(view)


async def _valuate(steam_id: str, force: bool) -> InventoryValuation:
    config = get_config()
    async with httpx.AsyncClient(follow_redirects=True) as client:
        valuator = InventoryValuator.from_config(config, client)
        try:
            return await valuator.valuate(steam_id, force_refresh=force)
        finally:
            await valuator.price_cache.drain()


@app.command()
def inventory(
    steam_id: str = typer.Argument(..., help="SteamID64 of the player"),
    force: bool = typer.Option(False, "--force", "-f", help="Ignore the cached valuation"),
    as_json: bool = typer.Option(False, "--json", help="Print the raw valuation as JSON"),
) -> None:
    """Value a player's CS2 inventory."""
    try:
        with console.status("Fetching inventory and prices..."):
            valuation = asyncio.run(_valuate(steam_id, force))
    except ValueError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1) from e

    if as_json:
        console.print_json(json.dumps(valuation.to_dict()))
        return

    body = f"[bold green]{_format_cents(valuation.value_cents, valuation.currency)}[/bold green]"
    body += f"\n{valuation.priced_count} priced of {valuation.item_count} items"
    if valuation.error:
        body += f"\n[red]{valuation.error}[/red]"
    console.print(Panel(body, title=f"Inventory {steam_id}"))

    if valuation.top_items:
        table = Table(title="Top items")
        table.add_column("Item", style="cyan")
        table.add_column("Price", justify="right")
        for item in valuation.top_items:
            table.add_row(item.name, _format_cents(item.price_cents, valuation.currency))
        console.print(table)


@app.command()
def serve(
    host: str | None = typer.Option(None, "--host", help="Host to bind to"),
    port: int | None = typer.Option(None, "--port", "-p", help="Port to bind to"),
    reload: bool = typer.Option(False, "--reload", help="Enable auto-reload (development)"),
) -> None:
    """Run the worker API."""
    import uvicorn

    config = get_config()
    host = host or config.worker.host
    port = port or config.worker.port
    console.print(f"Starting Tribunal worker on http://{host}:{port}")
    uvicorn.run(
        "tribunal.api:app",
        host=host,
        port=port,
        reload=reload,
        log_level=config.logging.level.lower(),
    )


def main() -> None:
    app()


if __name__ == "__main__":
    main()
