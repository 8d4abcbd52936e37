"""Pydantic schemas for receivers."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from uma_gateway.core.constants import MAX_KYC_STATUS_LENGTH, MAX_USERNAME_LENGTH


USERNAME_PATTERN = r"^[a-zA-Z0-9._+-]+$"


class ReceiverCreate(BaseModel):
    """Schema for adding a receiver to a tenant."""

    username: str = Field(
        ..., min_length=1, max_length=MAX_USERNAME_LENGTH, pattern=USERNAME_PATTERN
    )
    callback_id: str | None = Field(None, max_length=MAX_USERNAME_LENGTH)
    kyc_status: str | None = Field(None, max_length=MAX_KYC_STATUS_LENGTH)
    travel_rule_required: bool = True
    channel_utxos: list[str] = Field(default_factory=list)
    node_pubkey: str | None = None


class ReceiverProfile(BaseModel):
    """Read-only view of a receiver handed to the protocol layer."""

    username: str
    callback_id: str | None = None
    kyc_status: str | None = None
    travel_rule_required: bool = True
    channel_utxos: list[str] = Field(default_factory=list)
    node_pubkey: str | None = None
    status: str = "active"
    created_at: datetime | None = None

    model_config = ConfigDict(from_attributes=True, frozen=True)

    @property
    def is_active(self) -> bool:
        return self.status == "active"
