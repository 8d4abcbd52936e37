"""Interfaces between the protocol handlers and their collaborators.

The handlers depend only on these protocols. ``UmaCodec``,
``SenderKeyCache``, the nonce validators and ``TenantProtocolAdapter`` are
the shipped implementations. Tests substitute their own.
"""

from typing import TYPE_CHECKING, Any, Protocol

import uma

from uma_gateway.protocol.messages import PayRequest


if TYPE_CHECKING:
    from uma_gateway.receivers import ReceiverProfile
    from uma_gateway.tenants.record import Currency, TenantRecord


class NonceValidator(Protocol):
    """Rejects (domain, nonce) pairs seen within the retention window."""

    async def check_and_save(self, domain: str, nonce: str, timestamp: int) -> bool:
        """Record the pair and return True if it was not seen before.

        Timestamps older than the retention window are rejected.
        """
        ...


class SenderKeyResolver(Protocol):
    """Resolves a sending VASP's published keys by domain."""

    async def fetch(self, domain: str) -> uma.PubkeyResponse: ...


class InvoiceCreator(Protocol):
    """Maps an amount and metadata to a settlement invoice reference."""

    async def __call__(
        self,
        amount_msats: int,
        metadata: str,
        receiver: "ReceiverProfile",
        tenant: "TenantRecord",
    ) -> str: ...


class RateProvider(Protocol):
    """Multiplier converting one unit of ``from_currency`` to ``to_currency``."""

    async def __call__(
        self,
        from_currency: str,
        to_currency: str,
        tenant: "TenantRecord",
    ) -> float: ...


class ProtocolCodec(Protocol):
    """Parsing, verification and response construction for the wire protocol."""

    def parse_lnurlp_request(self, url: str) -> uma.LnurlpRequest: ...

    def parse_pay_request(self, body: bytes) -> PayRequest: ...

    def parse_post_transaction_callback(
        self, body: bytes
    ) -> uma.PostTransactionCallback: ...

    def is_uma_lnurlp_query(self, request: uma.LnurlpRequest) -> bool: ...

    def is_uma_pay_request(self, request: PayRequest) -> bool: ...

    async def verify_lnurlp_query(
        self,
        request: uma.LnurlpRequest,
        sender_keys: uma.PubkeyResponse,
        nonce_validator: NonceValidator,
    ) -> bool: ...

    def verify_lnurlp_backing_signature(
        self,
        request: uma.LnurlpRequest,
        backing: uma.BackingSignature,
        backer_keys: uma.PubkeyResponse,
    ) -> bool: ...

    async def verify_pay_request(
        self,
        request: PayRequest,
        sender_keys: uma.PubkeyResponse,
        nonce_validator: NonceValidator,
    ) -> bool: ...

    async def verify_post_transaction_callback(
        self,
        callback: uma.PostTransactionCallback,
        sender_keys: uma.PubkeyResponse,
        nonce_validator: NonceValidator,
    ) -> bool: ...

    def decrypt_travel_rule_info(self, sealed: str, private_key: bytes) -> str: ...

    def build_lnurlp_response(
        self,
        *,
        request: uma.LnurlpRequest,
        callback: str,
        metadata: str,
        min_sendable_sats: int,
        max_sendable_sats: int,
        signing_private_key: bytes,
        receiver_kyc_status: str,
        requires_travel_rule: bool,
        payer_data_options: dict[str, dict[str, bool]],
        currencies: "list[Currency]",
        comment_allowed: int | None = None,
    ) -> uma.LnurlpResponse: ...

    def build_pay_response(
        self,
        *,
        request: PayRequest,
        invoice: str,
        metadata: str,
        receiving_currency_code: str,
        receiving_amount: int,
        receiving_currency_decimals: int,
        msats_per_currency_unit: float,
        payee_identifier: str,
        signing_private_key: bytes,
        utxo_callback: str,
        receiver_utxos: list[str],
        receiver_node_pubkey: str | None,
    ) -> uma.PayReqResponse: ...


class ProtocolCapabilities(Protocol):
    """Everything a handler needs from the tenant it serves."""

    # Keys
    def get_signing_private_key(self) -> bytes: ...

    def get_signing_public_key(self) -> str: ...

    def get_encryption_private_key(self) -> bytes: ...

    def get_encryption_public_key(self) -> str: ...

    def get_signing_cert_chain(self) -> list[str] | None: ...

    def get_encryption_cert_chain(self) -> list[str] | None: ...

    def get_expiration_timestamp(self) -> int | None: ...

    # Receivers
    async def get_receiver_by_username(
        self, username: str
    ) -> "ReceiverProfile | None": ...

    async def get_receiver_by_callback_id(
        self, callback_id: str
    ) -> "ReceiverProfile | None": ...

    # VASP configuration
    def get_vasp_domain(self) -> str: ...

    def get_callback_url(self, username: str) -> str: ...

    def get_utxo_callback(self) -> str: ...

    def get_min_sendable_sats(self) -> int: ...

    def get_max_sendable_sats(self) -> int: ...

    # Currencies
    def get_currencies(self) -> "list[Currency]": ...

    def get_payer_data_options(self) -> dict[str, dict[str, bool]]: ...

    async def get_conversion_rate(
        self, from_currency: str, to_currency: str
    ) -> float: ...

    # Side effects
    async def create_invoice(
        self, amount_msats: int, metadata: str, receiver: "ReceiverProfile"
    ) -> str: ...

    async def on_travel_rule_info(
        self, info: str, request: PayRequest, receiver: "ReceiverProfile"
    ) -> None: ...

    async def on_utxos_received(
        self, utxos: list[dict[str, Any]], vasp_domain: str
    ) -> None: ...

    async def record_payment(self, payload: dict[str, Any]) -> None: ...

    async def record_utxos(self, payload: dict[str, Any]) -> None: ...
