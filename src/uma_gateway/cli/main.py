"""Main uma-gateway CLI application."""

import typer
from rich.console import Console

from uma_gateway import __version__
from uma_gateway.cli.commands import tenant, user
from uma_gateway.core.logging import configure_logging


console = Console()

app = typer.Typer(
    name="uma-gateway",
    help="Provision tenants and receivers of the UMA gateway.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

# Register command groups
app.add_typer(tenant.app, name="tenant")
app.add_typer(user.app, name="user")


@app.callback(invoke_without_command=True)
def root(
    ctx: typer.Context,
    version: bool = typer.Option(
        False, "--version", "-v", help="Show version and exit."
    ),
    database_url: str | None = typer.Option(
        None,
        "--db-url",
        help="Database URL (default: DATABASE_URL from the environment)",
    ),
) -> None:
    """uma-gateway CLI - Provision tenants and receivers."""
    if version:
        console.print(f"[bold cyan]uma-gateway[/bold cyan] version {__version__}")
        raise typer.Exit()
    configure_logging("WARNING")
    ctx.obj = {"database_url": database_url}


def main() -> None:
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
