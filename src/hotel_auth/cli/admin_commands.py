"""Operator commands for the identity store."""

from datetime import timedelta

import typer
from rich.console import Console
from rich.table import Table

from src.hotel_auth.core.services.auth import OrphanReaper
from src.hotel_auth.core.services.database.db_session import DbSessionService
from src.hotel_auth.core.storage import SqlCredentialStore
from src.hotel_auth.runtime.context import get_config
from src.hotel_auth.runtime.init_db import init_db

console = Console()

db_app = typer.Typer(help="Manage the credential store database")
orphans_app = typer.Typer(help="Reconcile accounts that never linked externally")


@db_app.command("init")
def init_db_command() -> None:
    """Create all database tables."""
    config = get_config()
    try:
        init_db()
    except Exception as e:
        console.print(f"[red]❌ Failed to create tables: {e}[/red]")
        raise typer.Exit(code=1) from e
    console.print(
        f"[green]✅ Tables created for {config.app.environment} database[/green]"
    )


@db_app.command("check")
def check_db() -> None:
    """Check database connectivity."""
    db_service = DbSessionService()
    try:
        healthy = db_service.health_check()
    finally:
        db_service.dispose()
    if not healthy:
        console.print("[red]❌ Database is not reachable[/red]")
        raise typer.Exit(code=1)
    console.print("[green]✅ Database is reachable[/green]")


@orphans_app.command("sweep")
def sweep_orphans(
    older_than: int | None = typer.Option(
        None,
        "--older-than",
        "-o",
        help="Age threshold in minutes (defaults to orphans.default_grace_minutes)",
    ),
    policy: str | None = typer.Option(
        None,
        "--policy",
        "-p",
        help="any_unlinked or failed_link_only (defaults to orphans.policy)",
    ),
) -> None:
    """Soft-delete local accounts that never linked to the external provider."""
    config = get_config()
    minutes = older_than if older_than is not None else config.orphans.default_grace_minutes
    chosen_policy = policy or config.orphans.policy
    if chosen_policy not in ("any_unlinked", "failed_link_only"):
        console.print(f"[red]❌ Unknown policy '{chosen_policy}'[/red]")
        raise typer.Exit(code=2)
    if minutes < 0:
        console.print("[red]❌ --older-than must not be negative[/red]")
        raise typer.Exit(code=2)

    db_service = DbSessionService()
    try:
        reaper = OrphanReaper(SqlCredentialStore(db_service), chosen_policy)
        cleaned = reaper.sweep(timedelta(minutes=minutes))
    finally:
        db_service.dispose()

    table = Table(title="Orphan sweep")
    table.add_column("Policy", style="cyan")
    table.add_column("Older than (min)", style="magenta")
    table.add_column("Soft-deleted", style="green")
    table.add_row(chosen_policy, str(minutes), str(cleaned))
    console.print(table)


def serve(
    host: str | None = typer.Option(None, "--host", help="Bind address"),
    port: int | None = typer.Option(None, "--port", help="Bind port"),
    reload: bool = typer.Option(False, "--reload", help="Reload on code changes"),
) -> None:
    """Run the HTTP API with uvicorn."""
    import uvicorn

    config = get_config()
    uvicorn.run(
        "src.hotel_auth.api.http.app:app",
        host=host or config.app.host,
        port=port or config.app.port,
        reload=reload,
        access_log=False,
    )
