"""CLI entry point for iRacing Setup Sync."""

import asyncio
import logging
from pathlib import Path

import typer
from aiohttp import web
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from iracing_setup_sync import __version__
from iracing_setup_sync.catalog import CatalogCache
from iracing_setup_sync.client import RemoteClient
from iracing_setup_sync.config import Settings, get_settings, load_bootstrap
from iracing_setup_sync.credentials import CredentialFile, CredentialStore
from iracing_setup_sync.engine import SyncEngine
from iracing_setup_sync.exceptions import (
    AuthError,
    ConfigurationError,
    ProtocolError,
    SetupSyncError,
)
from iracing_setup_sync.models import AdminCredential
from iracing_setup_sync.scheduler import SyncScheduler
from iracing_setup_sync.web import create_app

app = typer.Typer(
    name="iracing-setup-sync",
    help="Keep a local iRacing setups folder in sync with a datapack service.",
    add_completion=False,
)
console = Console()


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"iracing-setup-sync version: {__version__}")
        raise typer.Exit()


def setup_logging(verbose: bool = False) -> None:
    """Configure logging for the application.

    Args:
        verbose: If True, set log level to DEBUG, otherwise INFO
    """
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


@app.callback()
def main(
    version: bool = typer.Option(
        None,
        "--version",
        "-v",
        help="Show version and exit.",
        callback=version_callback,
        is_eager=True,
    ),
) -> None:
    """iRacing Setup Sync - mirror datapack setups into a local folder."""


def _load_settings(
    config_file: Path | None,
    setups_path: Path | None,
    port: int | None = None,
) -> Settings:
    settings = get_settings()
    if config_file:
        settings.config_file = config_file
    if setups_path:
        settings.setups_path = setups_path
    if port is not None:
        settings.port = port
    return settings


def _build_engine(
    settings: Settings,
) -> tuple[SyncEngine, RemoteClient, AdminCredential]:
    credential, admin, credential_file = load_bootstrap(settings)
    client = RemoteClient(timeout=settings.timeout)
    engine = SyncEngine(
        client=client,
        credentials=CredentialStore(credential, credential_file),
        catalog=CatalogCache(),
        setups_path=settings.setups_path,
        continue_on_error=settings.continue_on_error,
    )
    return engine, client, admin


def _print_refresh_token_help() -> None:
    console.print(
        "\n[yellow]Hint:[/yellow] The refresh token is invalid or expired. "
        "Log into the application, capture the refresh-token response and "
        "copy its 'refreshToken' value into REFRESH_TOKEN or your config file."
    )


@app.command("serve")
def serve(
    config_file: Path | None = typer.Option(
        None,
        "--config",
        "-c",
        help="JSON config file holding persisted credentials (overrides env var)",
        envvar="CONFIG_FILE",
    ),
    setups_path: Path | None = typer.Option(
        None,
        "--setups-path",
        "-o",
        help="Root directory of the local setups mirror",
    ),
    port: int | None = typer.Option(
        None,
        "--port",
        "-p",
        help="Port for the control surface",
        min=1,
        max=65535,
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        help="Enable verbose logging",
    ),
) -> None:
    """Run the sync agent with its scheduler and HTTP control surface.

    Example:
        iracing-setup-sync serve --config config.json --port 3000
    """
    setup_logging(verbose)

    try:
        settings = _load_settings(config_file, setups_path, port)
        engine, client, admin = _build_engine(settings)
        asyncio.run(_serve_async(settings, engine, client, admin))

    except typer.Exit:
        raise
    except ConfigurationError as e:
        console.print(f"[red]Configuration Error:[/red] {e}")
        raise typer.Exit(code=1) from e
    except KeyboardInterrupt:
        console.print("\n[yellow]Shutting down.[/yellow]")
        raise typer.Exit(code=130) from None
    except Exception as e:
        console.print(f"[red]Unexpected error:[/red] {e}")
        if verbose:
            console.print_exception()
        raise typer.Exit(code=1) from e


async def _serve_async(
    settings: Settings,
    engine: SyncEngine,
    client: RemoteClient,
    admin: AdminCredential,
) -> None:
    """Bootstrap the engine, then run scheduler and HTTP server until cancelled."""
    console.print("[bold]Initializing...[/bold]")
    try:
        await engine.bootstrap()
    except (AuthError, ProtocolError) as e:
        await client.close()
        console.print(f"[red]Failed to refresh access token:[/red] {e}")
        _print_refresh_token_help()
        raise typer.Exit(code=1) from e
    except SetupSyncError as e:
        await client.close()
        console.print(f"[red]Failed to refresh access token:[/red] {e}")
        raise typer.Exit(code=1) from e

    scheduler = SyncScheduler(
        engine,
        credential_refresh_interval=settings.credential_refresh_interval,
        sync_interval=settings.sync_interval,
    )
    runner = web.AppRunner(create_app(engine, admin))
    await runner.setup()
    site = web.TCPSite(runner, settings.host, settings.port)

    try:
        await site.start()
        scheduler.start()

        status = Table(show_header=False, box=None)
        status.add_row("Server:", f"[cyan]http://localhost:{settings.port}[/cyan]")
        status.add_row(
            "Credential refresh:", f"every {settings.credential_refresh_interval}s"
        )
        status.add_row("Download:", f"every {settings.sync_interval}s")
        status.add_row("Setups path:", str(settings.setups_path))
        console.print(Panel(status, title="Setup Sync running", border_style="green"))

        await asyncio.Event().wait()
    finally:
        await scheduler.stop()
        await runner.cleanup()
        await client.close()


@app.command("sync")
def sync(
    config_file: Path | None = typer.Option(
        None,
        "--config",
        "-c",
        help="JSON config file holding persisted credentials (overrides env var)",
        envvar="CONFIG_FILE",
    ),
    setups_path: Path | None = typer.Option(
        None,
        "--setups-path",
        "-o",
        help="Root directory of the local setups mirror",
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        help="Enable verbose logging",
    ),
) -> None:
    """Refresh the credential and catalog once, then download new setups.

    Example:
        iracing-setup-sync sync --setups-path ~/Documents/iRacing/setups
    """
    setup_logging(verbose)

    try:
        settings = _load_settings(config_file, setups_path)
        engine, client, _ = _build_engine(settings)
        downloaded = asyncio.run(_sync_async(engine, client))

        results = Table(show_header=False, box=None, padding=(0, 2))
        results.add_column("Label", style="bold")
        results.add_column("Value")
        results.add_row("Downloaded:", f"[green]{downloaded}[/green]")
        results.add_row("Setups path:", str(settings.setups_path))
        console.print(Panel(results, title="Sync Results", border_style="green"))

    except typer.Exit:
        raise
    except ConfigurationError as e:
        console.print(f"[red]Configuration Error:[/red] {e}")
        raise typer.Exit(code=1) from e
    except (AuthError, ProtocolError) as e:
        console.print(f"[red]Authentication Error:[/red] {e}")
        _print_refresh_token_help()
        raise typer.Exit(code=1) from e
    except SetupSyncError as e:
        console.print(f"[red]Sync Error:[/red] {e}")
        raise typer.Exit(code=1) from e
    except KeyboardInterrupt:
        console.print("\n[yellow]Sync cancelled by user.[/yellow]")
        raise typer.Exit(code=130) from None
    except Exception as e:
        console.print(f"[red]Unexpected error:[/red] {e}")
        if verbose:
            console.print_exception()
        raise typer.Exit(code=1) from e


async def _sync_async(engine: SyncEngine, client: RemoteClient) -> int:
    """Run one full sync pass and return the number of files written."""
    try:
        await engine.refresh_credential()
        await engine.refresh_catalog()
        return await engine.reconcile_files()
    finally:
        await client.close()


@app.command("init-config")
def init_config(
    path: Path = typer.Argument(
        Path("config.json"),
        help="Where to write the config file",
    ),
    force: bool = typer.Option(
        False,
        "--force",
        help="Overwrite an existing file",
    ),
) -> None:
    """Write a config file with a placeholder refresh token to fill in.

    Example:
        iracing-setup-sync init-config config.json
    """
    if path.exists() and not force:
        console.print(
            f"[red]Error:[/red] {path} already exists. Use --force to overwrite."
        )
        raise typer.Exit(code=1)

    try:
        CredentialFile(path).write_default()
    except OSError as e:
        console.print(f"[red]Error:[/red] Could not write {path}: {e}")
        raise typer.Exit(code=1) from e

    console.print(f"[green]Created {path}[/green]")
    console.print(
        "Edit it and replace the placeholder refresh token, then run "
        f"[cyan]iracing-setup-sync serve --config {path}[/cyan]"
    )
