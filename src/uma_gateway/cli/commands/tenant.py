"""Commands: uma-gateway tenant - Provision and manage tenants."""

from pathlib import Path
from typing import Any

import typer
from rich.table import Table

from uma_gateway.cli.utils import console, load_tenant_file, resolve_settings, run
from uma_gateway.protocol.adapter import TenantAdapterFactory
from uma_gateway.protocol.keys import public_key_hex
from uma_gateway.tenants.directory import TenantDirectory
from uma_gateway.tenants.record import TenantKeys, TenantRecord


app = typer.Typer(help="Provision and manage tenants.", no_args_is_help=True)


def _keys_from_hex(signing_key: str, encryption_key: str) -> TenantKeys:
    try:
        signing_private = bytes.fromhex(signing_key)
        encryption_private = bytes.fromhex(encryption_key)
        return TenantKeys(
            signing_private_key=signing_private,
            signing_public_key=public_key_hex(signing_private),
            encryption_private_key=encryption_private,
            encryption_public_key=public_key_hex(encryption_private),
        )
    except ValueError as e:
        raise typer.BadParameter(f"Invalid private key: {e}") from None


def _print_tenant(tenant: TenantRecord) -> None:
    console.print(f"  [cyan]id:[/cyan]       {tenant.id}")
    console.print(f"  [cyan]name:[/cyan]     {tenant.name}")
    console.print(f"  [cyan]domain:[/cyan]   {tenant.domain}")
    console.print(f"  [cyan]base url:[/cyan] {tenant.base_url}")
    console.print(
        f"  [cyan]limits:[/cyan]   {tenant.min_sendable_sats}"
        f" - {tenant.max_sendable_sats} sats"
    )
    console.print(f"  [cyan]active:[/cyan]   {tenant.active}")


@app.command("add")
def add(
    ctx: typer.Context,
    tenant_id: str = typer.Option(..., "--id", help="Unique tenant identifier"),
    name: str = typer.Option(..., "--name", help="Tenant display name"),
    domain: str = typer.Option(
        ..., "--domain", help="VASP domain, e.g. ab.example.com"
    ),
    base_url: str | None = typer.Option(
        None, "--base-url", help="Base URL for callbacks (default: https://{domain})"
    ),
    min_sats: int | None = typer.Option(
        None, "--min-sats", help="Minimum sendable sats"
    ),
    max_sats: int | None = typer.Option(
        None, "--max-sats", help="Maximum sendable sats"
    ),
    signing_key: str | None = typer.Option(
        None, "--signing-key", help="Hex signing private key (generated if omitted)"
    ),
    encryption_key: str | None = typer.Option(
        None,
        "--encryption-key",
        help="Hex encryption private key (generated if omitted)",
    ),
    config_file: Path | None = typer.Option(
        None,
        "--config",
        exists=True,
        dir_okay=False,
        help="YAML file with further tenant fields (currencies, payerDataOptions, ...)",
    ),
    inactive: bool = typer.Option(
        False, "--inactive", help="Create the tenant inactive"
    ),
) -> None:
    """Add a tenant. Key pairs are generated unless both keys are given."""
    if bool(signing_key) != bool(encryption_key):
        console.print(
            "[red]Error:[/red] Both --signing-key and --encryption-key are required "
            "when not generating keys"
        )
        raise typer.Exit(1)

    generated = signing_key is None
    if signing_key and encryption_key:
        keys = _keys_from_hex(signing_key, encryption_key)
    else:
        keys = TenantKeys.generate()

    config: dict[str, Any] = load_tenant_file(config_file) if config_file else {}
    config.update({"id": tenant_id, "name": name, "domain": domain, "keys": keys})
    if base_url:
        config["baseUrl"] = base_url
    if min_sats is not None:
        config["minSendableSats"] = min_sats
    if max_sats is not None:
        config["maxSendableSats"] = max_sats
    if inactive:
        config["active"] = False

    async def action(
        directory: TenantDirectory, _: TenantAdapterFactory
    ) -> TenantRecord:
        return await directory.add(config)

    tenant = run(resolve_settings(ctx), action)

    console.print(f"\n[green]✓[/green] Tenant [bold]{tenant.id}[/bold] created\n")
    _print_tenant(tenant)
    if generated:
        console.print("\n[bold]Generated keys (save these securely!):[/bold]")
        console.print(f"  Signing private key:    {keys.signing_private_key.hex()}")
        console.print(f"  Signing public key:     {keys.signing_public_key}")
        console.print(f"  Encryption private key: {keys.encryption_private_key.hex()}")
        console.print(f"  Encryption public key:  {keys.encryption_public_key}")


@app.command("list")
def list_tenants(
    ctx: typer.Context,
    active: bool | None = typer.Option(
        None, "--active/--inactive", help="Show only active or only inactive tenants"
    ),
) -> None:
    """List tenants stored in the database."""

    async def action(
        directory: TenantDirectory, _: TenantAdapterFactory
    ) -> list[TenantRecord]:
        return await directory.list_tenants(active=active)

    tenants = run(resolve_settings(ctx), action)
    if not tenants:
        console.print("[yellow]No tenants found.[/yellow]")
        return

    table = Table(title="Tenants", show_header=True)
    table.add_column("ID", style="cyan", no_wrap=True)
    table.add_column("Name")
    table.add_column("Domain", no_wrap=True)
    table.add_column("Limits (sats)", no_wrap=True)
    table.add_column("Status", no_wrap=True)
    for tenant in tenants:
        table.add_row(
            tenant.id,
            tenant.name,
            tenant.domain,
            f"{tenant.min_sendable_sats}-{tenant.max_sendable_sats}",
            "[green]active[/green]" if tenant.active else "[dim]inactive[/dim]",
        )

    console.print()
    console.print(table)
    console.print()


@app.command("update")
def update(
    ctx: typer.Context,
    tenant_id: str = typer.Option(..., "--id", help="Tenant identifier"),
    name: str | None = typer.Option(None, "--name", help="New display name"),
    domain: str | None = typer.Option(None, "--domain", help="New domain"),
    base_url: str | None = typer.Option(None, "--base-url", help="New base URL"),
    min_sats: int | None = typer.Option(None, "--min-sats", help="New minimum sats"),
    max_sats: int | None = typer.Option(None, "--max-sats", help="New maximum sats"),
    active: bool | None = typer.Option(
        None, "--activate/--deactivate", help="Activate or deactivate the tenant"
    ),
    config_file: Path | None = typer.Option(
        None,
        "--config",
        exists=True,
        dir_okay=False,
        help="YAML file with further fields to change",
    ),
) -> None:
    """Update a tenant. Only the given fields change."""
    changes: dict[str, Any] = load_tenant_file(config_file) if config_file else {}
    for key, value in (
        ("name", name),
        ("domain", domain),
        ("baseUrl", base_url),
        ("minSendableSats", min_sats),
        ("maxSendableSats", max_sats),
        ("active", active),
    ):
        if value is not None:
            changes[key] = value

    if not changes:
        console.print("[yellow]Nothing to update.[/yellow]")
        raise typer.Exit(0)

    async def action(
        directory: TenantDirectory, _: TenantAdapterFactory
    ) -> TenantRecord | None:
        return await directory.update(tenant_id, changes)

    tenant = run(resolve_settings(ctx), action)
    if tenant is None:
        console.print(f"[red]Error:[/red] Tenant '{tenant_id}' not found.")
        raise typer.Exit(1)

    console.print(f"\n[green]✓[/green] Tenant [bold]{tenant.id}[/bold] updated\n")
    _print_tenant(tenant)


def _set_active(ctx: typer.Context, tenant_id: str, active: bool) -> None:
    async def action(
        directory: TenantDirectory, _: TenantAdapterFactory
    ) -> TenantRecord | None:
        if active:
            return await directory.activate(tenant_id)
        return await directory.deactivate(tenant_id)

    tenant = run(resolve_settings(ctx), action)
    if tenant is None:
        console.print(f"[red]Error:[/red] Tenant '{tenant_id}' not found.")
        raise typer.Exit(1)
    state = "activated" if active else "deactivated"
    console.print(f"[green]✓[/green] Tenant [bold]{tenant_id}[/bold] {state}")


@app.command("activate")
def activate(
    ctx: typer.Context,
    tenant_id: str = typer.Argument(..., help="Tenant identifier"),
) -> None:
    """Activate a tenant."""
    _set_active(ctx, tenant_id, True)


@app.command("deactivate")
def deactivate(
    ctx: typer.Context,
    tenant_id: str = typer.Argument(..., help="Tenant identifier"),
) -> None:
    """Deactivate a tenant. It stays stored but stops serving requests."""
    _set_active(ctx, tenant_id, False)


@app.command("remove")
def remove(
    ctx: typer.Context,
    tenant_id: str = typer.Argument(..., help="Tenant identifier"),
    force: bool = typer.Option(False, "--force", "-f", help="Skip confirmation"),
) -> None:
    """Remove a tenant and its key material."""
    if not force:
        confirm = typer.confirm(f"Remove tenant '{tenant_id}' and its keys?")
        if not confirm:
            console.print("Cancelled.")
            raise typer.Exit(0)

    async def action(directory: TenantDirectory, _: TenantAdapterFactory) -> bool:
        return await directory.remove(tenant_id)

    if not run(resolve_settings(ctx), action):
        console.print(f"[red]Error:[/red] Tenant '{tenant_id}' not found.")
        raise typer.Exit(1)
    console.print(f"[green]✓[/green] Tenant [bold]{tenant_id}[/bold] removed")
