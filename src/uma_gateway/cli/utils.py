"""Utility functions for the uma-gateway CLI."""

import asyncio
from collections.abc import AsyncIterator, Awaitable, Callable, Coroutine
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, TypeVar

import typer
import yaml
from rich.console import Console

from uma_gateway.config import Settings, get_settings
from uma_gateway.core.database import build_engine, build_session_factory
from uma_gateway.core.errors import AppException
from uma_gateway.protocol.adapter import TenantAdapterFactory
from uma_gateway.tenants.ciphers import build_key_cipher
from uma_gateway.tenants.directory import TenantDirectory
from uma_gateway.tenants.store import TenantStore


T = TypeVar("T")

console = Console()


def resolve_settings(ctx: typer.Context) -> Settings:
    """Settings with the ``--db-url`` override from the root command applied."""
    settings = get_settings()
    database_url = (ctx.obj or {}).get("database_url")
    if database_url:
        settings = settings.model_copy(update={"database_url": database_url})
    return settings


@asynccontextmanager
async def open_directory(
    settings: Settings,
) -> AsyncIterator[tuple[TenantDirectory, TenantAdapterFactory]]:
    """Open the tenant directory for one command and dispose of it afterwards.

    Yields:
        The initialized directory and an adapter factory for receiver access
    """
    engine = build_engine(settings)
    session_factory = build_session_factory(engine)
    store = TenantStore(engine, session_factory)
    directory = TenantDirectory(store, build_key_cipher(settings.key_encryption_secret))
    try:
        await directory.initialize()
        yield directory, TenantAdapterFactory(session_factory)
    finally:
        await engine.dispose()


def run(
    settings: Settings,
    action: Callable[[TenantDirectory, TenantAdapterFactory], Awaitable[T]],
) -> T:
    """Run ``action`` against the directory, turning errors into exit code 1."""

    async def _main() -> T:
        async with open_directory(settings) as (directory, adapters):
            return await action(directory, adapters)

    return run_async(_main())


def run_async(coro: Coroutine[Any, Any, T]) -> T:
    try:
        return asyncio.run(coro)
    except AppException as e:
        console.print(f"[red]Error:[/red] {e.message}")
        raise typer.Exit(1) from None


def load_tenant_file(path: Path) -> dict[str, Any]:
    """Load tenant fields (currencies, payer data options, ...) from YAML.

    Raises:
        typer.BadParameter: If the file is not a YAML mapping
    """
    with path.open() as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise typer.BadParameter(f"{path} must contain a mapping of tenant fields")
    return data
