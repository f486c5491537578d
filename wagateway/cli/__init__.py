"""
wagateway - Command Line Interface

Built with Typer for the command-line surface and Rich for output.

Usage:
    $ wagateway --help
    $ wagateway serve --port 3000
    $ wagateway status --url http://localhost:3000
    $ wagateway doctor run
    $ wagateway config show

Sub-command Groups:
    doctor - Troubleshooting and diagnostic commands
    config - Configuration inspection
"""

from __future__ import annotations

from typing import Optional

import httpx
import typer
from rich.panel import Panel

from wagateway import __version__
from wagateway.cli.output import console, err_console, print_error, print_json, print_status
from wagateway.config import configure_logging, settings

app = typer.Typer(
    name="wagateway",
    help="wagateway - HTTP gateway for a paired chat session",
    no_args_is_help=True,
    rich_markup_mode="rich",
    pretty_exceptions_show_locals=False,
)

doctor_app = typer.Typer(
    name="doctor",
    help="Troubleshooting and diagnostic commands",
    no_args_is_help=True,
)

config_app = typer.Typer(
    name="config",
    help="Configuration inspection commands",
    no_args_is_help=True,
)

app.add_typer(doctor_app, name="doctor")
app.add_typer(config_app, name="config")


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"wagateway version {__version__}")
        raise typer.Exit()


def verbose_callback(value: bool) -> None:
    """Set verbose mode."""
    if value:
        configure_logging("DEBUG", settings.LOG_FORMAT)


@app.callback()
def main(
    version: bool = typer.Option(
        False,
        "--version",
        "-V",
        callback=version_callback,
        is_eager=True,
        help="Show version and exit.",
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        callback=verbose_callback,
        help="Enable verbose output.",
    ),
) -> None:
    """
    wagateway - HTTP gateway for a paired chat session

    Use --help on any subcommand for detailed information.
    """


@app.command()
def serve(
    host: Optional[str] = typer.Option(
        None,
        "--host",
        "-h",
        help="Host to bind to. Defaults to HOST.",
    ),
    port: Optional[int] = typer.Option(
        None,
        "--port",
        "-p",
        help="Port to bind to. Defaults to PORT.",
    ),
    reload: bool = typer.Option(
        False,
        "--reload",
        "-r",
        help="Enable auto-reload for development.",
    ),
) -> None:
    """
    Start the gateway API server.

    The chat session is opened on startup; scan the QR code printed in
    the terminal or served at /api/v1/qr/image to pair it.
    """
    import uvicorn

    host = host or settings.HOST
    port = port or settings.PORT

    console.print(Panel.fit(
        f"Starting wagateway on [cyan]http://{host}:{port}[/cyan]",
        title="Server",
    ))
    if reload:
        console.print("[yellow]Auto-reload enabled (development mode)[/yellow]")
    if not settings.auth_required:
        console.print("[yellow]API_TOKEN is not set, authentication is disabled[/yellow]")

    uvicorn.run(
        "wagateway.main:app",
        host=host,
        port=port,
        reload=reload,
        log_level=settings.LOG_LEVEL.lower(),
    )


@app.command()
def status(
    url: str = typer.Option(
        "http://127.0.0.1:3000",
        "--url",
        "-u",
        help="Base URL of a running gateway.",
    ),
    token: Optional[str] = typer.Option(
        None,
        "--token",
        "-t",
        help="API token. Defaults to API_TOKEN.",
        envvar="API_TOKEN",
    ),
    format: str = typer.Option(
        "table",
        "--format",
        "-f",
        help="Output format: table, json.",
    ),
) -> None:
    """
    Show the connection status of a running gateway.
    """
    headers = {"Authorization": f"Bearer {token}"} if token else {}
    try:
        response = httpx.get(f"{url.rstrip('/')}/api/v1/status", headers=headers, timeout=5.0)
    except httpx.HTTPError as e:
        print_error(f"Cannot reach gateway at {url}: {e}")
        raise typer.Exit(1)

    if response.status_code != 200:
        print_error(f"Gateway returned HTTP {response.status_code}", hint=response.text[:200])
        raise typer.Exit(1)

    data = response.json().get("data", {})
    if format == "json":
        print_json(data)
        return

    state = data.get("connectionStatus", "unknown")
    checks = [
        ("Connection", bool(data.get("isConnected")), state),
        ("Session", bool(data.get("serviceAlive")), "alive" if data.get("serviceAlive") else "none"),
    ]
    if data.get("qrCodeImageUrl"):
        checks.append(("Pairing QR", True, data["qrCodeImageUrl"]))
    if data.get("error"):
        checks.append(("Last error", False, data["error"]))
    print_status(checks, title=f"Gateway at {url}")


__all__ = [
    "app",
    "doctor_app",
    "config_app",
    "console",
    "err_console",
]

# Sub-command modules register on doctor_app / config_app when imported.
from wagateway.cli import config, doctor  # noqa: E402,F401
