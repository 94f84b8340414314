"""
releasedash CLI - Main application entry point.

This module sets up the Typer CLI application with all subcommands.
"""

import logging

import typer
from rich.console import Console

from releasedash import __version__
from releasedash.cli import dashboard, releases
from releasedash.core.config.env import load_layered_env

# Create the main Typer app
app = typer.Typer(
    name="releasedash",
    help="Release tracking dashboard backed by GitHub",
    no_args_is_help=True,
    add_completion=True,
    context_settings={"help_option_names": ["--help", "-h"]},
)

console = Console()


def _version_callback(value: bool) -> None:
    if value:
        console.print(f"releasedash {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    ctx: typer.Context,
    debug: bool = typer.Option(
        False,
        "--debug",
        help="Enable debug output with detailed logging",
    ),
    version: bool = typer.Option(
        False,
        "--version",
        callback=_version_callback,
        is_eager=True,
        help="Show the version and exit",
    ),
) -> None:
    """
    releasedash - Release dashboard.

    Tracks scheduled releases: their lifecycle state, the libraries each
    release ships, the commits behind every library version and the CI
    checks on the release branch.

    Examples:
        releasedash init-db              # Create the release database
        releasedash list                 # Show tracked releases
        releasedash sync M135            # Re-sync one release from GitHub
        releasedash serve --port 8000    # Run the API server
    """
    # Precedence: OS env > project .env > user .env
    load_layered_env()

    logging.basicConfig(
        level=logging.DEBUG if debug else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    # Store debug flag in context for subcommands
    ctx.obj = {"debug": debug}


app.command(name="init-db")(releases.init_db_command)
app.command(name="list")(releases.list_command)
app.command(name="sync")(releases.sync_command)
app.command(name="serve")(dashboard.serve)


def cli_main() -> None:
    """Main CLI entry point."""
    app()


__all__ = ["app", "cli_main"]
