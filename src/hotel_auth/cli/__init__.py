"""Main CLI application module."""

import typer

from .admin_commands import db_app, orphans_app, serve

# Create the main CLI application
app = typer.Typer(
    help="Hotel Auth CLI - database setup and account maintenance",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

# Register command groups
app.add_typer(db_app, name="db")
app.add_typer(orphans_app, name="orphans")
app.command("serve")(serve)


def main() -> None:
    """Main entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
