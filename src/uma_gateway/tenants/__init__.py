"""Tenants: records, durable store, directory cache and host resolution."""

from uma_gateway.tenants.directory import TenantDirectory, TenantSnapshot
from uma_gateway.tenants.record import Currency, TenantKeys, TenantRecord, TenantTables
from uma_gateway.tenants.store import TenantStore


__all__ = [
    "Currency",
    "TenantDirectory",
    "TenantKeys",
    "TenantRecord",
    "TenantSnapshot",
    "TenantStore",
    "TenantTables",
]
