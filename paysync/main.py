"""
paysync - CLI Entry Point

Command-line interface for connector syncs and webhook ingestion.

Usage:
    # List available plugins
    paysync connectors

    # Sync all streams of one connector
    paysync sync --connector acme

    # Register webhooks at the provider
    paysync install-webhooks --connector acme --base-url https://hooks.example.com/webhooks/acme

    # Run the scheduler daemon
    paysync daemon
"""

from typing import Optional

import typer
import uvicorn
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from paysync.config import settings
from paysync.connectors import Connector, build_connectors, load_connector_specs
from paysync.errors import PaysyncError
from paysync.log import configure_logging
from paysync.metrics import metrics
from paysync.plugins import build_default_registry
from paysync.storage import StateStorage
from paysync.sync.runner import RunResult, StreamRunner

app = typer.Typer(
    name="paysync",
    help="Incremental sync and webhook ingestion for payment connectors",
    add_completion=False,
)
console = Console()


def print_banner() -> None:
    """Print the application banner."""
    console.print(Panel.fit(
        "[bold blue]paysync[/bold blue]\n"
        "[dim]Payment connector sync engine[/dim]",
        border_style="blue",
    ))
    console.print()


def load_connectors(connectors_file: Optional[str]) -> dict[str, Connector]:
    """Build the connectors of a connectors file, exiting on config errors."""
    registry = build_default_registry()
    try:
        specs = load_connector_specs(connectors_file or settings.connectors_file)
        return build_connectors(registry, specs)
    except PaysyncError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)


def open_storage() -> StateStorage:
    storage = StateStorage()
    storage.initialize()
    return storage


def print_results(results: list[RunResult]) -> None:
    """Print a table of stream run results."""
    table = Table(show_header=True, header_style="bold")
    table.add_column("Stream", style="cyan")
    table.add_column("Pages", justify="right")
    table.add_column("Records", justify="right", style="green")
    table.add_column("More", justify="center")
    table.add_column("Status")

    for result in results:
        status = "[green]ok[/green]" if result.success else f"[red]{'; '.join(result.errors)}[/red]"
        table.add_row(
            result.stream,
            str(result.pages),
            f"{result.records:,}",
            "yes" if result.has_more else "",
            status,
        )
    console.print(table)


@app.callback()
def main(
    log_level: Optional[str] = typer.Option(None, "--log-level", help="Log level"),
) -> None:
    configure_logging(log_level or settings.log_level)


@app.command()
def connectors() -> None:
    """List available plugins and their capabilities."""
    registry = build_default_registry()

    table = Table(title="Plugins")
    table.add_column("Provider", style="green")
    table.add_column("Capabilities", style="dim")
    for name in registry.names():
        capabilities = sorted(capability.value for capability in registry.capabilities(name))
        table.add_row(name, ", ".join(capabilities))
    console.print(table)


@app.command()
def sync(
    connector: Optional[list[str]] = typer.Option(
        None, "--connector", "-c", help="Connector name(s) to sync (default: all)"
    ),
    stream: Optional[list[str]] = typer.Option(
        None, "--stream", "-s", help="Restrict to these streams"
    ),
    connectors_file: Optional[str] = typer.Option(
        None, "--connectors-file", "-f", help="Connectors JSON file"
    ),
    max_pages: Optional[int] = typer.Option(
        None, "--max-pages", help="Page budget per stream"
    ),
) -> None:
    """
    Synchronize connectors once.

    Examples:

        # Sync every configured connector
        paysync sync

        # Only payments of one connector
        paysync sync --connector acme --stream accounts --stream payments
    """
    print_banner()

    available = load_connectors(connectors_file)
    selected = connector or list(available)
    unknown = [name for name in selected if name not in available]
    if unknown:
        console.print(f"[red]Error:[/red] unknown connector(s): {', '.join(unknown)}")
        raise typer.Exit(1)

    storage = open_storage()
    failed = False
    try:
        for name in selected:
            item = available[name]
            console.print(f"[blue]Syncing {name}[/blue] [dim]({item.spec.provider})[/dim]")
            runner = StreamRunner(
                name,
                item.plugin,
                storage,
                page_size=item.spec.page_size,
                max_pages=max_pages,
            )
            results = runner.sync_connector(streams=stream, others=item.spec.others)
            print_results(results)
            failed = failed or any(not result.success for result in results)
    except KeyboardInterrupt:
        console.print("\n[yellow]Sync interrupted by user[/yellow]")
        raise typer.Exit(130)
    finally:
        for item in available.values():
            item.plugin.close()
        storage.close()

    if failed:
        raise typer.Exit(1)


@app.command()
def status(
    connector: Optional[str] = typer.Option(None, "--connector", "-c", help="Connector name"),
) -> None:
    """Show stored cursors."""
    storage = open_storage()
    try:
        states = storage.list_states(connector)
    finally:
        storage.close()

    if not states:
        console.print("[yellow]No sync state stored yet[/yellow]")
        return

    table = Table(show_header=True, header_style="bold")
    table.add_column("Connector", style="cyan")
    table.add_column("Stream")
    table.add_column("More", justify="center")
    table.add_column("Updated", style="dim")
    for state in states:
        table.add_row(
            state.connector,
            state.stream,
            "yes" if state.has_more else "",
            state.updated_at.strftime("%Y-%m-%d %H:%M:%S") if state.updated_at else "",
        )
    console.print(table)


@app.command("install-webhooks")
def install_webhooks(
    connector: str = typer.Option(..., "--connector", "-c", help="Connector name"),
    base_url: Optional[str] = typer.Option(
        None, "--base-url", help="Public webhook base URL (default: settings + connector)"
    ),
    connectors_file: Optional[str] = typer.Option(
        None, "--connectors-file", "-f", help="Connectors JSON file"
    ),
) -> None:
    """Register webhooks at the provider and store their configs."""
    available = load_connectors(connectors_file)
    if connector not in available:
        console.print(f"[red]Error:[/red] unknown connector: {connector}")
        raise typer.Exit(1)

    if base_url is None and settings.webhook_base_url:
        base_url = f"{settings.webhook_base_url.rstrip('/')}/webhooks/{connector}"

    storage = open_storage()
    plugin = available[connector].plugin
    try:
        configs = plugin.create_webhooks(base_url or "")
        storage.save_webhook_configs(connector, configs)
    except PaysyncError as e:
        console.print(f"[red]Webhook installation failed: {e}[/red]")
        raise typer.Exit(1)
    finally:
        plugin.close()
        storage.close()

    table = Table(title=f"Webhooks of {connector}")
    table.add_column("Event", style="green")
    table.add_column("Path")
    table.add_column("Signed", justify="center")
    for config in configs:
        table.add_row(config.name, config.url_path, "yes" if "secret" in config.metadata else "")
    console.print(table)


@app.command("serve-webhooks")
def serve_webhooks(
    host: Optional[str] = typer.Option(None, "--host", help="Bind address"),
    port: Optional[int] = typer.Option(None, "--port", "-p", help="Bind port"),
    connectors_file: Optional[str] = typer.Option(
        None, "--connectors-file", "-f", help="Connectors JSON file"
    ),
) -> None:
    """Serve the webhook API with uvicorn."""
    from paysync.api import create_app

    print_banner()
    available = load_connectors(connectors_file)
    storage = open_storage()
    try:
        uvicorn.run(
            create_app(available, storage),
            host=host or settings.webhook_host,
            port=port or settings.webhook_port,
            log_config=None,
        )
    finally:
        storage.close()


@app.command()
def daemon(
    interval: Optional[int] = typer.Option(
        None, "--interval", "-i", help="Minutes between syncs"
    ),
    metrics_port: Optional[int] = typer.Option(
        None, "--metrics-port", help="Port for Prometheus metrics server"
    ),
    connectors_file: Optional[str] = typer.Option(
        None, "--connectors-file", "-f", help="Connectors JSON file"
    ),
) -> None:
    """
    Start the sync scheduler daemon.

    Runs every configured connector at a regular interval and exposes
    Prometheus metrics on /metrics. Use Ctrl+C to stop.
    """
    from paysync.scheduler import SyncScheduler

    print_banner()
    available = load_connectors(connectors_file)
    port = metrics_port or settings.metrics_port

    console.print("[bold]Starting Sync Daemon[/bold]")
    console.print(f"  Connectors: {len(available)}")
    console.print(f"  Metrics server: http://0.0.0.0:{port}/metrics")
    console.print()

    storage = open_storage()
    metrics.start_server(port=port)
    scheduler = SyncScheduler(available, storage, sync_interval_minutes=interval)
    try:
        scheduler.start()
    except KeyboardInterrupt:
        console.print("\n[yellow]Daemon stopped by user[/yellow]")
    finally:
        for item in available.values():
            item.plugin.close()
        storage.close()


if __name__ == "__main__":
    app()
