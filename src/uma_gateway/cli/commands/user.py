"""Commands: uma-gateway user - Manage the receivers of a tenant."""

import typer
from rich.table import Table

from uma_gateway.cli.utils import console, resolve_settings, run
from uma_gateway.core.errors import NotFoundError
from uma_gateway.protocol.adapter import TenantAdapterFactory
from uma_gateway.receivers import ReceiverProfile, ReceiverRepository
from uma_gateway.receivers.schemas import ReceiverCreate
from uma_gateway.tenants.directory import TenantDirectory


app = typer.Typer(help="Manage the receivers of a tenant.", no_args_is_help=True)


async def _receivers(
    directory: TenantDirectory, adapters: TenantAdapterFactory, tenant_id: str
) -> ReceiverRepository:
    tenant = await directory.get(tenant_id)
    if tenant is None:
        raise NotFoundError(f'Tenant "{tenant_id}" not found', resource="tenant")
    return adapters.receivers_for(tenant)


@app.command("add")
def add(
    ctx: typer.Context,
    tenant_id: str = typer.Argument(..., help="Tenant identifier"),
    username: str = typer.Argument(..., help="Receiver username"),
    callback_id: str | None = typer.Option(
        None, "--callback-id", help="Opaque id accepted on the pay-request callback"
    ),
    kyc_status: str | None = typer.Option(None, "--kyc-status", help="e.g. VERIFIED"),
    node_pubkey: str | None = typer.Option(None, "--node-pubkey", help="Node identity"),
    travel_rule: bool = typer.Option(
        True, "--travel-rule/--no-travel-rule", help="Expect travel-rule disclosures"
    ),
) -> None:
    """Add a receiver to a tenant."""
    try:
        data = ReceiverCreate(
            username=username,
            callback_id=callback_id,
            kyc_status=kyc_status,
            node_pubkey=node_pubkey,
            travel_rule_required=travel_rule,
        )
    except ValueError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1) from None

    async def action(
        directory: TenantDirectory, adapters: TenantAdapterFactory
    ) -> ReceiverProfile:
        receivers = await _receivers(directory, adapters, tenant_id)
        return await receivers.add(data)

    receiver = run(resolve_settings(ctx), action)
    console.print(
        f"[green]✓[/green] User [bold]{receiver.username}[/bold] added to {tenant_id}"
    )


@app.command("list")
def list_users(
    ctx: typer.Context,
    tenant_id: str = typer.Argument(..., help="Tenant identifier"),
) -> None:
    """List the receivers of a tenant."""

    async def action(
        directory: TenantDirectory, adapters: TenantAdapterFactory
    ) -> list[ReceiverProfile]:
        receivers = await _receivers(directory, adapters, tenant_id)
        return await receivers.list_all()

    receivers = run(resolve_settings(ctx), action)
    if not receivers:
        console.print(f"[yellow]No users for tenant {tenant_id}.[/yellow]")
        return

    table = Table(title=f"Users of {tenant_id}", show_header=True)
    table.add_column("Username", style="cyan", no_wrap=True)
    table.add_column("Callback ID")
    table.add_column("KYC")
    table.add_column("Travel rule", no_wrap=True)
    table.add_column("Status", no_wrap=True)
    for receiver in receivers:
        table.add_row(
            receiver.username,
            receiver.callback_id or "",
            receiver.kyc_status or "",
            "yes" if receiver.travel_rule_required else "no",
            receiver.status,
        )

    console.print()
    console.print(table)
    console.print()


@app.command("remove")
def remove(
    ctx: typer.Context,
    tenant_id: str = typer.Argument(..., help="Tenant identifier"),
    username: str = typer.Argument(..., help="Receiver username"),
) -> None:
    """Remove a receiver from a tenant."""

    async def action(
        directory: TenantDirectory, adapters: TenantAdapterFactory
    ) -> bool:
        receivers = await _receivers(directory, adapters, tenant_id)
        return await receivers.remove(username)

    if not run(resolve_settings(ctx), action):
        console.print(f"[red]Error:[/red] User '{username}' not found.")
        raise typer.Exit(1)
    console.print(f"[green]✓[/green] User [bold]{username}[/bold] removed")
