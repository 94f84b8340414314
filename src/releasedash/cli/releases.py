"""
releasedash CLI - Release commands.

Inspect and sync the releases in the local release database.
"""

import asyncio
import logging

import typer
from rich.console import Console
from rich.table import Table

from releasedash.core.config import load_config
from releasedash.core.config.models import ReleaseDashConfig
from releasedash.core.dashboard.db import SqliteReleaseStore, init_db
from releasedash.core.dashboard.sync import SyncOrchestrator
from releasedash.core.exceptions import ReleaseDashError
from releasedash.core.github.client import GitHubClient
from releasedash.core.releases.models import ReleaseState, ReleaseView, SyncResult

console = Console()
err_console = Console(stderr=True)
logger = logging.getLogger(__name__)

STATE_STYLES = {
    ReleaseState.SCHEDULED: "dim",
    ReleaseState.CODE_FREEZE: "cyan",
    ReleaseState.RELEASE_DAY: "yellow",
    ReleaseState.RELEASED: "green",
    ReleaseState.DELAYED: "magenta",
    ReleaseState.ERROR: "red",
}


def _store(config: ReleaseDashConfig) -> SqliteReleaseStore:
    store = SqliteReleaseStore(config.store.db_path, config.branch_naming())
    store.ensure_schema()
    return store


def init_db_command(
    force: bool = typer.Option(
        False,
        "--force",
        help="Drop and recreate all tables",
    ),
) -> None:
    """
    Create the release database.

    Examples:
        releasedash init-db
        releasedash init-db --force   # Start from an empty database
    """
    config = load_config()
    conn = init_db(config.store.db_path, force_recreate=force)
    conn.close()
    console.print(f"[green]✓[/green] Release database ready at {config.store.db_path}")


def _render_releases(views: list[ReleaseView]) -> Table:
    table = Table(title="Releases")
    table.add_column("Name", style="bold")
    table.add_column("State")
    table.add_column("Code freeze")
    table.add_column("Release")
    table.add_column("Libraries", justify="right")
    table.add_column("Checks", justify="right")
    table.add_column("Last error")

    for view in views:
        style = STATE_STYLES.get(view.state, "")
        table.add_row(
            view.release_name,
            f"[{style}]{view.state.value}[/{style}]" if style else view.state.value,
            view.code_freeze_date.strftime("%Y-%m-%d"),
            view.release_date.strftime("%Y-%m-%d"),
            str(len(view.libraries)),
            str(len(view.checks)),
            view.error.message if view.error else "",
        )
    return table


def list_command() -> None:
    """
    Show all tracked releases.

    Examples:
        releasedash list
    """
    config = load_config()
    views = asyncio.run(_store(config).get_releases_denormalized())
    if not views:
        console.print("[dim]No releases scheduled.[/dim]")
        return
    console.print(_render_releases(views))


async def _sync(config: ReleaseDashConfig, name_or_id: str) -> SyncResult:
    store = _store(config)
    release_id = await store.get_release_id_by_name(name_or_id) or name_or_id
    async with GitHubClient.from_config(config) as client:
        orchestrator = SyncOrchestrator(
            store,
            client,
            companion_suffix=config.layout.companion_suffix,
        )
        return await orchestrator.sync(release_id)


def sync_command(
    ctx: typer.Context,
    release: str = typer.Argument(..., help="Release name (e.g. M135) or id"),
) -> None:
    """
    Sync one release from GitHub.

    Examples:
        releasedash sync M135
        releasedash --debug sync 4f1c2d...   # Sync by id with debug logging
    """
    debug = ctx.obj.get("debug", False) if ctx.obj else False
    config = load_config()

    try:
        result = asyncio.run(_sync(config, release))
    except ReleaseDashError as e:
        err_console.print(f"[red]Sync failed:[/red] {e}")
        if debug:
            err_console.print_exception()
        raise typer.Exit(1)

    if result.fetched:
        console.print(
            f"[green]✓[/green] {release} is {result.state.value}: "
            f"{result.libraries_written} libraries, {result.changes_written} changes, "
            f"{result.check_runs_written} check runs ({result.duration_seconds:.2f}s)"
        )
    else:
        console.print(
            f"[green]✓[/green] {release} is {result.state.value} "
            "[dim](nothing to fetch yet)[/dim]"
        )
