"""
CLI for the blob storage server.

Commands:
    bss serve - Run the HTTP server
    bss config - Show current configuration
    bss sweep - Evict expired blobs once
    bss version - Print version
"""

from __future__ import annotations

import asyncio
from typing import Annotated, Optional

import typer
from pydantic import ValidationError
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from bss import __version__
from bss.config import Settings, clear_settings_cache, get_settings
from bss.engine.lifecycle import LifecycleEngine
from bss.logging import setup_logging
from bss.storage.file_store import FileObjectStore
from bss.types import SweepReport

app = typer.Typer(
    name="bss",
    help="Blossom Server - content-addressed blob storage with Nostr authorization",
    no_args_is_help=True,
)

console = Console()
error_console = Console(stderr=True)


def _get_settings_safe() -> Settings | None:
    """Get settings, returning None if configuration is invalid."""
    try:
        clear_settings_cache()
        return get_settings()
    except ValidationError as e:
        error_console.print(f"[red]Invalid configuration:[/red] {e}")
        return None


def _require_settings() -> Settings:
    settings = _get_settings_safe()
    if settings is None:
        error_console.print("Run 'bss config' to inspect the environment.")
        raise typer.Exit(1)
    return settings


@app.command()
def serve(
    host: Annotated[
        Optional[str],
        typer.Option("--host", help="Bind host (default: HOST setting)"),
    ] = None,
    port: Annotated[
        Optional[int],
        typer.Option("--port", "-p", help="Bind port (default: PORT setting)"),
    ] = None,
    reload: Annotated[
        bool,
        typer.Option("--reload", help="Reload on code changes (development)"),
    ] = False,
) -> None:
    """Run the Blossom HTTP server."""
    from bss.api.server import main as run_server

    _require_settings()
    run_server(host=host, port=port, reload=reload)


@app.command()
def config() -> None:
    """Show current configuration and the effective upload policy."""
    console.print()
    console.print("[bold]Blossom Server Configuration[/bold]")
    console.print()

    settings = _require_settings()

    table = Table(title="Settings", show_header=True)
    table.add_column("Setting", style="cyan")
    table.add_column("Value", style="green")

    for key, value in settings.redacted_display().items():
        display_value = str(value) if value is not None else "[dim]not set[/dim]"
        table.add_row(key, display_value)

    console.print(table)

    policy = settings.policy()
    console.print()
    console.print(
        f"[bold]Blob TTL:[/bold] {int(policy.blob_ttl.total_seconds())}s  "
        f"[bold]Credential max age:[/bold] {policy.auth_max_age_seconds}s"
    )
    if not policy.allowed_pubkeys:
        console.print("[yellow]No pubkey allow-list: any key may upload.[/yellow]")
    console.print()


async def _run_sweep(settings: Settings) -> tuple[SweepReport, int]:
    store = FileObjectStore(settings.STORAGE_DIR)
    await store.init()
    try:
        report = await LifecycleEngine(store).sweep()
        remaining = await store.count()
    finally:
        await store.close()
    return report, remaining


@app.command()
def sweep() -> None:
    """Evict every expired blob from the configured store."""
    settings = _require_settings()
    setup_logging(settings.LOG_LEVEL, settings.LOG_FILE)

    report, remaining = asyncio.run(_run_sweep(settings))

    border = "yellow" if report.failed else "green"
    console.print(
        Panel(
            f"[bold]Examined:[/bold] {report.examined}\n"
            f"[bold]Evicted:[/bold] {len(report.evicted)}\n"
            f"[bold]Failed:[/bold] {len(report.failed)}\n"
            f"[bold]Remaining:[/bold] {remaining}",
            title="[bold]Expiry Sweep[/bold]",
            border_style=border,
        )
    )
    if report.failed:
        raise typer.Exit(1)


@app.command()
def version() -> None:
    """Print the version number."""
    console.print(f"blossom-server version {__version__}")


def main() -> None:
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
