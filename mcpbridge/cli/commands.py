"""CLI commands for mcpbridge.

Single entry point: onboard writes a default config, serve runs the HTTP
bridge, status and sessions inspect a running instance.
"""

import json
from pathlib import Path

import typer
from rich.console import Console
from rich.table import Table

from mcpbridge import __logo__, __version__
from mcpbridge.cli.shared.http_utils import get_bridge_base_url, http_json
from mcpbridge.cli.shared.logging_utils import configure_console_logging, ensure_rotating_log_file
from mcpbridge.cli.shared.network_utils import is_port_in_use

app = typer.Typer(
    name="mcpbridge",
    help=f"{__logo__} mcpbridge - stdio MCP servers over HTTP",
    no_args_is_help=True,
)

console = Console()


def version_callback(value: bool):
    if value:
        console.print(f"{__logo__} mcpbridge v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        None, "--version", "-v", callback=version_callback, is_eager=True
    ),
):
    """mcpbridge - stdio MCP servers over HTTP."""
    pass


def _load(config_path: Path | None):
    from mcpbridge.config.access import get_config as get_cached_config

    try:
        return get_cached_config(config_path=config_path)
    except ValueError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)


@app.command()
def onboard(
    force: bool = typer.Option(False, "--force", "-f", help="Overwrite an existing config"),
):
    """Write a default configuration file."""
    from mcpbridge.config.loader import get_config_path, save_config
    from mcpbridge.config.schema import Config

    config_path = get_config_path()
    if config_path.exists() and not force:
        console.print(f"[yellow]Config already exists at {config_path}[/yellow] (use --force to overwrite)")
        raise typer.Exit(1)
    save_config(Config(), config_path)
    console.print(f"[green]✓[/green] Created config at {config_path}")
    console.print("Edit [cyan]peer.command[/cyan] / [cyan]peer.args[/cyan] to point at your MCP server.")


@app.command()
def serve(
    host: str | None = typer.Option(None, "--host", "-h", help="Bind host (default from config)"),
    port: int | None = typer.Option(None, "--port", "-p", help="Bind port (default from config)"),
    config_path: Path | None = typer.Option(None, "--config", "-c", help="Config file path"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """Start the HTTP bridge."""
    from mcpbridge.api.server import run_server

    config = _load(config_path)
    host = host or config.gateway.host
    port = port or config.gateway.port
    if is_port_in_use(host, port):
        console.print(
            f"[red]Port {port} is already in use.[/red] "
            f"Close the process using it, or pass [cyan]--port[/cyan] (current: {host}:{port})."
        )
        raise typer.Exit(1)

    configure_console_logging(verbose)
    log_path = ensure_rotating_log_file("serve", level="DEBUG" if verbose else "INFO")

    console.print(f"{__logo__} mcpbridge running on http://{host}:{port}/mcp")
    console.print(f"[dim]Health: http://{host}:{port}/health[/dim]")
    console.print(f"[dim]Peer: {' '.join(config.peer.argv)}[/dim]")
    console.print(f"[dim]Logs: {log_path}[/dim]")
    run_server(config, host=host, port=port)


@app.command()
def status(
    config_path: Path | None = typer.Option(None, "--config", "-c", help="Config file path"),
):
    """Show configuration and the health of a running bridge."""
    from mcpbridge.config.loader import get_config_path

    config = _load(config_path)
    path = config_path or get_config_path()
    console.print(f"{__logo__} mcpbridge Status\n")
    console.print(f"Config: {path} {'[green]✓[/green]' if path.exists() else '[dim](defaults)[/dim]'}")
    console.print(f"Peer: {' '.join(config.peer.argv)}")
    console.print(f"Session policy: {config.bridge.session_policy}")
    base_url = get_bridge_base_url(config)
    try:
        health = http_json("GET", f"{base_url}/health")
    except RuntimeError as e:
        console.print(f"Bridge: [red]✗[/red] {e}")
        raise typer.Exit(1)
    console.print(f"Bridge: [green]✓[/green] {base_url} ({health.get('activeSessions', 0)} active sessions)")


@app.command()
def sessions(
    config_path: Path | None = typer.Option(None, "--config", "-c", help="Config file path"),
    as_json: bool = typer.Option(False, "--json", help="Print raw JSON"),
):
    """List the sessions of a running bridge."""
    config = _load(config_path)
    try:
        data = http_json("GET", f"{get_bridge_base_url(config)}/sessions")
    except RuntimeError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)
    rows = data.get("sessions") or []
    if as_json:
        console.print_json(json.dumps(rows, ensure_ascii=False))
        return
    if not rows:
        console.print("No active sessions.")
        return
    table = Table(title="Sessions")
    for column in ("Session", "PID", "State", "Pending", "Created"):
        table.add_column(column)
    for row in rows:
        table.add_row(
            str(row.get("sessionId", "")),
            str(row.get("pid", "")),
            str(row.get("state", "")),
            str(row.get("pendingCalls", 0)),
            str(row.get("createdAt", "")),
        )
    console.print(table)


if __name__ == "__main__":
    app()
