"""Tenant record: the per-VASP identity, keys, limits and currency table.

A ``TenantRecord`` is immutable. Updates go through ``patched()``, which
returns a new record, so a snapshot handed to a request never changes
underneath it.
"""

from collections.abc import Mapping
from datetime import datetime
from typing import Any

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_serializer,
    field_validator,
    model_validator,
)
from pydantic import ValidationError as PydanticValidationError
from pydantic.alias_generators import to_camel

from uma_gateway.core.constants import (
    DEFAULT_MAX_SENDABLE_SATS,
    DEFAULT_MIN_SENDABLE_SATS,
)
from uma_gateway.core.database import utcnow
from uma_gateway.core.errors import ValidationError
from uma_gateway.protocol import keys


DEFAULT_PAYER_DATA_OPTIONS: dict[str, bool] = {
    "identifier": True,
    "name": False,
    "email": False,
    "compliance": True,
}

REQUIRED_TENANT_FIELDS = ("id", "name", "domain", "keys")


class _CamelModel(BaseModel):
    """Base for records exchanged in camelCase and built in snake_case."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
    )


# ============================================================
# Keys
# ============================================================


def _decode_key_bytes(value: Any) -> Any:
    """Accept raw bytes, a hex string or a list of byte values."""
    if isinstance(value, str):
        try:
            return bytes.fromhex(value)
        except ValueError as exc:
            raise ValueError("private key must be hex encoded") from exc
    if isinstance(value, list):
        return bytes(value)
    return value


class TenantKeys(_CamelModel):
    """Signing and encryption key pairs of a tenant.

    Private keys are raw 32-byte secp256k1 scalars. Public keys are
    hex-encoded SEC1 points. The JSON form carries private keys as hex and
    is only ever written to the separately stored, enciphered key blob.
    """

    signing_private_key: bytes = Field(repr=False)
    signing_public_key: str
    encryption_private_key: bytes = Field(repr=False)
    encryption_public_key: str
    signing_cert_chain: list[str] | None = None
    encryption_cert_chain: list[str] | None = None

    @field_validator("signing_private_key", "encryption_private_key", mode="before")
    @classmethod
    def decode_private_key(cls, v: Any) -> Any:
        return _decode_key_bytes(v)

    @field_validator("signing_private_key", "encryption_private_key")
    @classmethod
    def require_private_key(cls, v: bytes) -> bytes:
        if not v:
            raise ValueError("private key must not be empty")
        return v

    @field_serializer("signing_private_key", "encryption_private_key", when_used="json")
    def encode_private_key(self, v: bytes) -> str:
        return v.hex()

    @classmethod
    def generate(cls) -> "TenantKeys":
        """Fresh secp256k1 signing and encryption key pairs."""
        signing_private, signing_public = keys.generate_keypair()
        encryption_private, encryption_public = keys.generate_keypair()
        return cls(
            signing_private_key=signing_private,
            signing_public_key=signing_public,
            encryption_private_key=encryption_private,
            encryption_public_key=encryption_public,
        )

    def public(self) -> dict[str, Any]:
        """Public halves only, in wire (camelCase) form."""
        data: dict[str, Any] = {
            "signingPublicKey": self.signing_public_key,
            "encryptionPublicKey": self.encryption_public_key,
        }
        if self.signing_cert_chain:
            data["signingCertChain"] = list(self.signing_cert_chain)
        if self.encryption_cert_chain:
            data["encryptionCertChain"] = list(self.encryption_cert_chain)
        return data


# ============================================================
# Tables and currencies
# ============================================================


class TenantTables(_CamelModel):
    """Names of the tenant's storage partitions."""

    users: str
    payments: str
    utxos: str

    @classmethod
    def for_tenant(
        cls, tenant_id: str, overrides: Mapping[str, Any] | None = None
    ) -> "TenantTables":
        """Defaults derived from ``tenant_id``, with explicit overrides applied."""
        overrides = overrides or {}
        return cls(
            users=overrides.get("users") or f"{tenant_id}_users",
            payments=overrides.get("payments") or f"{tenant_id}_payments",
            utxos=overrides.get("utxos") or f"{tenant_id}_utxos",
        )


class Currency(_CamelModel):
    """A currency the tenant can settle a quote in.

    Attributes:
        code: ISO 4217 style code (``USD``, ``SAT``, ...)
        name: Display name
        symbol: Display symbol
        multiplier: Millisatoshis per smallest unit of the currency
        min_sendable: Minimum amount, in smallest units
        max_sendable: Maximum amount, in smallest units
        decimals: Number of digits after the decimal point
    """

    code: str = Field(..., min_length=1, max_length=8)
    name: str
    symbol: str = ""
    multiplier: float = Field(..., gt=0)
    min_sendable: int = Field(1, ge=0)
    max_sendable: int = Field(..., ge=0)
    decimals: int = Field(2, ge=0, le=8)

    @field_validator("code")
    @classmethod
    def normalize_code(cls, v: str) -> str:
        return v.upper()


# ============================================================
# Tenant record
# ============================================================


class TenantRecord(_CamelModel):
    """A tenant (VASP) served by this process."""

    id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)
    domain: str = Field(..., min_length=1)
    base_url: str
    keys: TenantKeys
    tables: TenantTables
    currencies: list[Currency] = Field(default_factory=list)
    payer_data_options: dict[str, bool] = Field(
        default_factory=lambda: dict(DEFAULT_PAYER_DATA_OPTIONS)
    )
    min_sendable_sats: int = Field(DEFAULT_MIN_SENDABLE_SATS, ge=0)
    max_sendable_sats: int = Field(DEFAULT_MAX_SENDABLE_SATS, ge=0)
    active: bool = True
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @model_validator(mode="before")
    @classmethod
    def apply_defaults(cls, data: Any) -> Any:
        """Derive ``baseUrl`` and partition names from ``domain`` and ``id``."""
        if not isinstance(data, Mapping):
            return data
        data = dict(data)

        base_url = data.pop("baseUrl", None) or data.pop("base_url", None)
        domain = data.get("domain")
        if not base_url and domain:
            base_url = f"https://{domain}"
        if base_url:
            data["baseUrl"] = str(base_url).rstrip("/")

        tenant_id = data.get("id")
        tables = data.get("tables")
        if isinstance(tables, TenantTables):
            tables = tables.model_dump()
        if tenant_id:
            data["tables"] = TenantTables.for_tenant(tenant_id, tables)
        return data

    @field_validator("payer_data_options", mode="before")
    @classmethod
    def flatten_payer_data_options(cls, v: Any) -> Any:
        """Accept both ``{"name": true}`` and ``{"name": {"mandatory": true}}``."""
        if not isinstance(v, Mapping):
            return v
        flat = {}
        for field, option in v.items():
            if isinstance(option, Mapping):
                option = option.get("mandatory", False)
            flat[field] = bool(option)
        return flat

    @model_validator(mode="after")
    def check_bounds(self) -> "TenantRecord":
        if self.min_sendable_sats > self.max_sendable_sats:
            raise ValueError("minSendableSats must not exceed maxSendableSats")
        return self

    @property
    def hostname(self) -> str:
        """Routing token: the first label of the tenant's domain."""
        return self.domain.split(".", 1)[0]

    @classmethod
    def from_config(cls, config: Mapping[str, Any]) -> "TenantRecord":
        """Build a record from provisioning input.

        Args:
            config: Tenant fields in camelCase or snake_case

        Returns:
            The validated record

        Raises:
            ValidationError: If a required field is missing or a value is invalid
        """
        for field in REQUIRED_TENANT_FIELDS:
            if not config.get(field):
                raise ValidationError(
                    f"Tenant {field} is required", details={"field": field}
                )
        return _validate(config)

    def payer_data_wire(self) -> dict[str, dict[str, bool]]:
        """Payer data options in wire form (``{"field": {"mandatory": bool}}``)."""
        return {
            field: {"mandatory": mandatory}
            for field, mandatory in self.payer_data_options.items()
        }

    def to_public(self) -> dict[str, Any]:
        """JSON-ready representation without private key material."""
        data = self.model_dump(mode="json", by_alias=True, exclude={"keys"})
        data["keys"] = self.keys.public()
        data["payerDataOptions"] = self.payer_data_wire()
        return data

    def patched(self, changes: Mapping[str, Any]) -> "TenantRecord":
        """Return a copy with ``changes`` applied.

        ``tables`` and ``metadata`` are merged into the current values; every
        other supplied field replaces its current value. ``updatedAt`` is
        always refreshed.

        Raises:
            ValidationError: On an unknown field, an attempt to change ``id``,
                or an invalid resulting record
        """
        current = self.model_dump(by_alias=True)
        for key, value in changes.items():
            name = _FIELD_NAMES.get(key)
            if name is None:
                raise ValidationError(f"Unknown tenant field: {key}")
            if name in ("created_at", "updated_at"):
                continue
            if name == "id":
                if value != self.id:
                    raise ValidationError("Tenant id cannot be changed")
                continue

            alias = _ALIASES[name]
            if isinstance(value, BaseModel):
                value = value.model_dump(exclude_none=True)
            if name == "tables":
                value = {
                    **current[alias],
                    **{k: v for k, v in (value or {}).items() if v},
                }
            elif name == "metadata":
                value = {**current[alias], **(value or {})}
            current[alias] = value

        current["updatedAt"] = utcnow()
        return _validate(current)


_FIELD_NAMES: dict[str, str] = {}
_ALIASES: dict[str, str] = {}
for _name, _info in TenantRecord.model_fields.items():
    _alias = _info.alias or _name
    _FIELD_NAMES[_name] = _name
    _FIELD_NAMES[_alias] = _name
    _ALIASES[_name] = _alias


def _validate(data: Mapping[str, Any]) -> TenantRecord:
    try:
        return TenantRecord.model_validate(data)
    except PydanticValidationError as exc:
        errors = exc.errors(
            include_url=False, include_context=False, include_input=False
        )
        fields = [".".join(str(p) for p in err["loc"]) or "record" for err in errors]
        raise ValidationError(
            f"Invalid tenant: {', '.join(fields)}",
            details={"errors": errors},
        ) from exc
