"""Main CLI commands — config, auth-test, projects, select, tree, serve."""

from __future__ import annotations

import asyncio
import logging
from typing import List, Optional

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

app = typer.Typer(
    name="trackertree",
    help="TrackerTree — Azure DevOps and Jira work items as one project hierarchy.",
    add_completion=False,
    rich_markup_mode="rich",
)

console = Console()
logger = logging.getLogger(__name__)


def _setup_logging(verbose: bool = False) -> None:
    from trackertree.config import get_settings
    from trackertree.logging_config import configure_from_settings

    configure_from_settings(get_settings(), verbose)


def _tracker_name(ctx: typer.Context) -> str:
    from trackertree.config import TRACKERS, get_settings

    name = ((ctx.obj or {}).get("tracker") or get_settings().tracker).lower()
    if name == "ado":
        name = "azure"
    if name not in TRACKERS:
        console.print(f"[red]Unknown tracker: {name}. Use {' or '.join(TRACKERS)}.[/red]")
        raise typer.Exit(2)
    return name


@app.callback()
def main(
    ctx: typer.Context,
    tracker: Optional[str] = typer.Option(
        None, "--tracker", "-t", help="Tracker to use: azure or jira (default: TRACKER setting)"
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
) -> None:
    """TrackerTree CLI root."""
    _setup_logging(verbose)
    ctx.obj = {"tracker": tracker}


# ── config show ──────────────────────────────────────────────────────

@app.command(name="config")
def config_show(ctx: typer.Context) -> None:
    """Print resolved configuration (sensitive values masked)."""
    from trackertree.config import get_settings

    settings = get_settings()
    table = Table(
        title="TrackerTree Configuration",
        show_lines=True,
        header_style="bold cyan",
    )
    table.add_column("Setting", style="bold yellow", no_wrap=True)
    table.add_column("Value")
    for key, val in settings.as_display_dict().items():
        table.add_row(key, val)
    console.print(table)

    errors = settings.validate_tracker_config(_tracker_name(ctx))
    if errors:
        console.print("\n[bold red]⚠️  Configuration issues:[/bold red]")
        for err in errors:
            console.print(f"  • {err}")
    else:
        console.print("\n[bold green]✅ Configuration looks valid[/bold green]")


# ── auth-test ─────────────────────────────────────────────────────────

@app.command(name="auth-test")
def auth_test(ctx: typer.Context) -> None:
    """Test tracker authentication and display current user info."""
    from trackertree.trackers import TrackerClientError, get_tracker

    name = _tracker_name(ctx)
    console.print(f"🔐 Testing {name} authentication...")

    async def _run() -> dict:
        async with get_tracker(name) as tracker:
            return await tracker.test_auth()

    try:
        user = asyncio.run(_run())
    except TrackerClientError as exc:
        console.print(f"[bold red]❌ Authentication failed:[/bold red] {exc}")
        raise typer.Exit(1)

    console.print(Panel(
        f"✅ [bold green]Authentication successful![/bold green]\n\n"
        f"  User: {user.get('user', '?')}\n"
        f"  ID: {user.get('id') or 'N/A'}",
        style="green",
    ))


# ── projects ──────────────────────────────────────────────────────────

@app.command()
def projects(ctx: typer.Context) -> None:
    """List projects visible to the configured credentials."""
    from trackertree.renderer import render_projects_table
    from trackertree.storage import SelectionStore
    from trackertree.trackers import TrackerClientError, get_tracker

    name = _tracker_name(ctx)

    async def _run():
        async with get_tracker(name) as tracker:
            return await tracker.list_projects()

    try:
        found = asyncio.run(_run())
    except TrackerClientError as exc:
        console.print(f"[bold red]❌ {name} error:[/bold red] {exc}")
        raise typer.Exit(1)

    if not found:
        console.print("[yellow]No projects visible to these credentials.[/yellow]")
        return
    render_projects_table(found, console, selected=SelectionStore().load(name))


# ── select ────────────────────────────────────────────────────────────

@app.command()
def select(
    ctx: typer.Context,
    project_ids: Optional[List[str]] = typer.Argument(None, help="Project ids to select"),
    remove: bool = typer.Option(False, "--remove", help="Remove the given ids instead of adding"),
    clear: bool = typer.Option(False, "--clear", help="Clear the selection"),
) -> None:
    """Show or change the cached project selection."""
    from trackertree.storage import SelectionStore

    name = _tracker_name(ctx)
    store = SelectionStore()
    ids = project_ids or []

    if clear:
        store.clear(name)
        console.print(f"🧹 Cleared {name} selection")
        return
    if ids:
        current = store.remove(name, ids) if remove else store.add(name, ids)
    else:
        current = store.load(name)

    if current:
        console.print(f"📌 Selected {name} projects: [bold]{', '.join(current)}[/bold]")
    else:
        console.print(f"[yellow]No {name} projects selected.[/yellow]")


# ── tree ──────────────────────────────────────────────────────────────

@app.command()
def tree(
    ctx: typer.Context,
    project: Optional[List[str]] = typer.Option(
        None, "--project", "-p", help="Project id (repeatable); defaults to the cached selection"
    ),
    as_json: bool = typer.Option(False, "--json", help="Print the forest as JSON"),
    collapsed: Optional[List[str]] = typer.Option(
        None, "--collapse", help="Collapse this node id (repeatable)"
    ),
) -> None:
    """Fetch work items for the selected projects and print the hierarchy."""
    from trackertree.config import get_settings
    from trackertree.fetcher import FetchError
    from trackertree.renderer import render_forest, render_json
    from trackertree.session import HierarchySession
    from trackertree.storage import SelectionStore
    from trackertree.trackers import TrackerClientError, get_tracker
    from trackertree.tree import find_node

    name = _tracker_name(ctx)
    settings = get_settings()
    selection = project or SelectionStore(settings).load(name)
    if not selection:
        console.print(
            f"[yellow]No {name} projects selected. "
            "Run 'trackertree select <id>' or pass --project.[/yellow]"
        )
        raise typer.Exit(1)

    async def _run():
        async with get_tracker(name, settings) as tracker:
            session = HierarchySession(tracker, settings)
            await session.load_projects()
            await session.refresh(selection)
            for node_id in collapsed or []:
                node = find_node(session.forest, node_id)
                if node is not None and node.expanded:
                    session.toggle(node_id)
            return session.forest

    try:
        forest = asyncio.run(_run())
    except (FetchError, TrackerClientError) as exc:
        console.print(f"[bold red]❌ Fetch failed:[/bold red] {exc}")
        console.print("[dim]Previous data left untouched; re-run to retry.[/dim]")
        raise typer.Exit(1)

    if as_json:
        console.print_json(render_json(forest))
        return
    if not forest:
        console.print("[yellow]No work items found for the selected projects.[/yellow]")
        return
    render_forest(forest, console, title=f"{name} work items")


# ── serve ─────────────────────────────────────────────────────────────

@app.command()
def serve(
    ctx: typer.Context,
    port: int = typer.Option(8765, help="Port to run the API server on"),
    host: str = typer.Option("127.0.0.1", help="Host to bind the API server to"),
) -> None:
    """Start the TrackerTree HTTP API server."""
    try:
        import uvicorn
        from trackertree.api import create_app
    except ImportError:
        console.print("[bold red]Server dependencies not installed.[/bold red]")
        console.print("Run: [yellow]pip install trackertree[gui][/yellow]")
        raise typer.Exit(1)

    console.print(Panel(
        f"🚀 [bold green]TrackerTree API running![/bold green]\n\n"
        f"  API Documentation: http://localhost:{port}/docs\n\n"
        "Press [bold]Ctrl+C[/bold] to stop.",
        style="green",
    ))
    uvicorn.run(create_app(tracker_name=_tracker_name(ctx)), host=host, port=port, log_level="info")
