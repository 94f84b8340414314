"""
releasedash CLI - Serve command.

Run the release dashboard API server.
"""

import logging

import typer
from rich.console import Console

console = Console()
logger = logging.getLogger(__name__)


def serve(
    ctx: typer.Context,
    host: str = typer.Option(
        "127.0.0.1",
        "--host",
        help="Interface to bind",
    ),
    port: int = typer.Option(
        8000,
        "--port",
        "-p",
        help="Port to run the server on",
    ),
    reload: bool = typer.Option(
        False,
        "--reload",
        help="Restart the server when source files change",
    ),
) -> None:
    """
    Run the release dashboard API.

    The server schedules, refreshes, modifies and deletes releases, and
    receives GitHub webhook deliveries at /api/webhooks/github.

    Examples:
        releasedash serve                 # Serve on 127.0.0.1:8000
        releasedash serve --port 3000     # Serve on port 3000
        releasedash serve --host 0.0.0.0  # Listen on all interfaces
    """
    import uvicorn

    debug = ctx.obj.get("debug", False) if ctx.obj else False

    url = f"http://{host}:{port}"
    console.print("[bold cyan]Starting release dashboard server...[/bold cyan]")
    console.print(f"[dim]API: {url}/api/releases[/dim]")
    console.print(f"[dim]Docs: {url}/docs[/dim]")
    console.print("\n[dim]Press Ctrl+C to stop[/dim]\n")

    try:
        # Run server (this blocks)
        uvicorn.run(
            "releasedash.core.dashboard.api.app:create_app",
            factory=True,
            host=host,
            port=port,
            reload=reload,
            log_level="info" if debug else "warning",
        )
    except KeyboardInterrupt:
        console.print("\n[yellow]Server stopped[/yellow]")
        raise typer.Exit(0)
