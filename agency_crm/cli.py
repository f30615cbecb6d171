"""Agency CRM CLI - serve the API, issue actor tokens, run retention."""

from __future__ import annotations

import asyncio

import typer
from rich.console import Console
from rich.table import Table

from .config import settings
from .security.actor import ROLES, Actor, issue_actor_token

app = typer.Typer(
    name="agency-crm",
    help="Insurance agency CRM activity feed",
    no_args_is_help=True,
)
console = Console()


@app.command("serve")
def serve(
    port: int = typer.Option(8030, "--port", "-p", help="Port to run on"),
    host: str = typer.Option("127.0.0.1", "--host", help="Host to bind to"),
    reload: bool = typer.Option(False, "--reload", help="Reload on code changes"),
):
    """Launch the activity API."""
    import uvicorn

    console.print(f"[bold cyan]Starting {settings.app_title} at http://{host}:{port}[/bold cyan]")
    uvicorn.run("agency_crm.app:app", host=host, port=port, reload=reload)


@app.command("token")
def token(
    user_id: str = typer.Argument(..., help="Actor id"),
    role: str = typer.Option("agent", "--role", "-r", help=f"One of: {', '.join(ROLES)}"),
    first_name: str = typer.Option("", "--first-name", help="Actor first name"),
    last_name: str = typer.Option("", "--last-name", help="Actor last name"),
    ttl: int = typer.Option(0, "--ttl", help="Lifetime in seconds (0 = configured default)"),
):
    """Issue a bearer token for an actor."""
    if role not in ROLES:
        console.print(f"[red]Unknown role '{role}'. Expected one of: {', '.join(ROLES)}[/red]")
        raise typer.Exit(1)
    if not settings.auth_secret.strip():
        console.print("[red]AGENCY_CRM_AUTH_SECRET is not set.[/red]")
        raise typer.Exit(1)

    actor = Actor(id=user_id, role=role, first_name=first_name, last_name=last_name)
    value = issue_actor_token(actor, ttl_seconds=ttl or None)
    console.print(f"[green]Token for {actor.display_name} ({role})[/green]")
    typer.echo(value)


@app.command("archive-expired")
def archive_expired(
    days: int = typer.Option(0, "--days", "-d", help="Age threshold in days (0 = configured retention)"),
    actor_id: str = typer.Option("system", "--as", help="Manager id recorded as the actor"),
):
    """Archive active activities older than the retention window."""
    from .app import configure_logging
    from .database import async_session_factory, engine
    from .services import activity_svc

    configure_logging()
    actor = Actor(id=actor_id, role="super_admin", first_name="Retention", last_name="Job")

    async def _run() -> dict:
        try:
            async with async_session_factory() as db:
                return await activity_svc.archive_expired(db, actor, older_than_days=days or None, scheduled=not days)
        finally:
            await engine.dispose()

    result = asyncio.run(_run())
    if result.get("skipped"):
        console.print("[yellow]Auto-archive is disabled in activity settings; nothing archived.[/yellow]")
        return

    table = Table(title="Activity Retention")
    table.add_column("Setting", style="cyan")
    table.add_column("Value", style="green")
    table.add_row("Older than (days)", str(result["olderThanDays"]))
    table.add_row("Cutoff", result["cutoff"])
    table.add_row("Archived", str(result["archivedCount"]))
    console.print(table)


if __name__ == "__main__":
    app()
