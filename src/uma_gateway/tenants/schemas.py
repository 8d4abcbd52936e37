"""Pydantic schemas for the tenant admin API."""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from uma_gateway.core.constants import (
    MAX_DOMAIN_LENGTH,
    MAX_NAME_LENGTH,
    MAX_TENANT_ID_LENGTH,
    MAX_URL_LENGTH,
)
from uma_gateway.tenants.record import Currency, TenantKeys


TENANT_ID_PATTERN = r"^[a-zA-Z0-9_-]+$"
DOMAIN_PATTERN = r"^[a-zA-Z0-9.-]+(:\d+)?$"


class _AdminModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ============================================================
# Tenant Schemas
# ============================================================


class TenantTablesInput(_AdminModel):
    """Partition name overrides. Omitted names are derived from the id."""

    users: str | None = None
    payments: str | None = None
    utxos: str | None = None


class TenantCreate(_AdminModel):
    """Schema for creating a tenant.

    When ``keys`` is omitted, fresh signing and encryption key pairs are
    generated.
    """

    id: str = Field(
        ..., min_length=1, max_length=MAX_TENANT_ID_LENGTH, pattern=TENANT_ID_PATTERN
    )
    name: str = Field(..., min_length=1, max_length=MAX_NAME_LENGTH)
    domain: str = Field(
        ..., min_length=1, max_length=MAX_DOMAIN_LENGTH, pattern=DOMAIN_PATTERN
    )
    base_url: str | None = Field(None, max_length=MAX_URL_LENGTH)
    keys: TenantKeys | None = None
    tables: TenantTablesInput | None = None
    currencies: list[Currency] = Field(default_factory=list)
    payer_data_options: dict[str, Any] | None = None
    min_sendable_sats: int | None = Field(None, ge=0)
    max_sendable_sats: int | None = Field(None, ge=0)
    active: bool = True
    metadata: dict[str, Any] = Field(default_factory=dict)

    def to_config(self) -> dict[str, Any]:
        """Provisioning fields for ``TenantDirectory.add``."""
        config = self.model_dump(by_alias=True, exclude_none=True, exclude={"keys"})
        config["keys"] = self.keys or TenantKeys.generate()
        return config


class TenantUpdate(_AdminModel):
    """Schema for a partial tenant update. Only supplied fields change."""

    name: str | None = Field(None, min_length=1, max_length=MAX_NAME_LENGTH)
    domain: str | None = Field(
        None, min_length=1, max_length=MAX_DOMAIN_LENGTH, pattern=DOMAIN_PATTERN
    )
    base_url: str | None = Field(None, max_length=MAX_URL_LENGTH)
    keys: TenantKeys | None = None
    tables: TenantTablesInput | None = None
    currencies: list[Currency] | None = None
    payer_data_options: dict[str, Any] | None = None
    min_sendable_sats: int | None = Field(None, ge=0)
    max_sendable_sats: int | None = Field(None, ge=0)
    active: bool | None = None
    metadata: dict[str, Any] | None = None

    def to_changes(self) -> dict[str, Any]:
        """The supplied fields, keyed by their camelCase names."""
        changes: dict[str, Any] = {}
        for name in self.model_fields_set:
            value = getattr(self, name)
            if value is None:
                continue
            alias = type(self).model_fields[name].alias or name
            changes[alias] = value
        return changes


class RefreshResponse(BaseModel):
    """Result of a tenant cache refresh."""

    status: str = "OK"
    cached: int
