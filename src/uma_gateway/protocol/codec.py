"""Wire codec: parse, verify and build protocol messages with the ``uma`` SDK."""

import dataclasses
import json
from collections.abc import Callable
from datetime import datetime
from typing import Any

import ecies
import structlog
import uma
from pydantic import ValidationError as PydanticValidationError

from uma_gateway.core.errors import ParseError
from uma_gateway.protocol.interfaces import NonceValidator
from uma_gateway.protocol.messages import PayRequest
from uma_gateway.tenants.record import Currency


logger = structlog.get_logger()


class DeferredNonceCache(uma.INonceCache):
    """Nonce cache handed to the SDK verifiers.

    Accepts every nonce. ``UmaCodec`` consults the gateway's own
    ``NonceValidator`` once the signature has verified, so an unsigned
    request cannot burn a nonce.
    """

    def check_and_save_nonce(self, nonce: str, timestamp: datetime) -> None:
        return None

    def purge_nonces_older_than(self, timestamp: datetime) -> None:
        return None


class IssuedInvoice(uma.IUmaInvoiceCreator):
    """Invoice creator returning an invoice the gateway already issued."""

    def __init__(self, invoice: str) -> None:
        self.invoice = invoice

    def create_uma_invoice(
        self, amount_msats: int, metadata: str, receiver_identifier: str | None
    ) -> str:
        return self.invoice


def _well_formed_callback(callback: uma.PostTransactionCallback) -> bool:
    return (
        isinstance(callback.utxos, list)
        and all(
            isinstance(item, uma.UtxoWithAmount)
            and isinstance(item.utxo, str)
            and isinstance(item.amount_msats, int)
            for item in callback.utxos
        )
        and isinstance(callback.vasp_domain, str)
        and bool(callback.vasp_domain)
        and isinstance(callback.signature, str)
        and isinstance(callback.signature_nonce, str)
        and isinstance(callback.signature_timestamp, int)
    )


def _kyc_status(value: str) -> uma.KycStatus:
    try:
        return uma.KycStatus(value.upper())
    except ValueError:
        return uma.KycStatus.UNKNOWN


def sdk_currency(currency: Currency) -> uma.Currency:
    return uma.Currency(
        code=currency.code,
        name=currency.name,
        symbol=currency.symbol,
        millisatoshi_per_unit=currency.multiplier,
        min_sendable=currency.min_sendable,
        max_sendable=currency.max_sendable,
        decimals=currency.decimals,
    )


class UmaCodec:
    """Codec for the UMA flavour of LNURL-pay, backed by the ``uma`` SDK.

    The SDK parses, checks signatures and signs responses. Nonces go
    through the injected ``NonceValidator`` after the signature verifies.

    Example:
        codec = UmaCodec()
        query = codec.parse_lnurlp_request(url)
        if codec.is_uma_lnurlp_query(query):
            ok = await codec.verify_lnurlp_query(query, keys, nonces)
    """

    def __init__(self) -> None:
        self.sdk_nonces = DeferredNonceCache()

    # ============================================================
    # Parsing
    # ============================================================

    def parse_lnurlp_request(self, url: str) -> uma.LnurlpRequest:
        """Parse a discovery URL.

        Raises:
            ParseError: If the path is not a discovery path, only some of the
                protocol query parameters are present, or the version is not
                supported
        """
        try:
            return uma.parse_lnurlp_request(url)
        except (uma.UmaException, ValueError) as exc:
            raise ParseError(
                "Invalid LNURLP request format", details={"error": str(exc)}
            ) from exc

    def parse_pay_request(self, body: bytes) -> PayRequest:
        """Parse a pay-request body.

        Raises:
            ParseError: If the body is not a valid pay request
        """
        try:
            return PayRequest.model_validate_json(body)
        except PydanticValidationError as exc:
            raise ParseError("Invalid pay request format") from exc

    def parse_post_transaction_callback(
        self, body: bytes
    ) -> uma.PostTransactionCallback:
        """Parse a settlement-callback body.

        Raises:
            ParseError: If the body is not a signed callback
        """
        try:
            callback = uma.parse_post_transaction_callback(body.decode("utf-8"))
        except (ValueError, KeyError, TypeError, AttributeError) as exc:
            raise ParseError("Invalid callback format") from exc
        if not _well_formed_callback(callback):
            raise ParseError("Invalid callback format")
        return callback

    # ============================================================
    # Classification
    # ============================================================

    def is_uma_lnurlp_query(self, request: uma.LnurlpRequest) -> bool:
        return request.is_uma_request() and bool(request.vasp_domain)

    def is_uma_pay_request(self, request: PayRequest) -> bool:
        compliance = request.compliance
        return bool(
            compliance is not None
            and request.sender_identifier
            and compliance.signature
            and compliance.signature_nonce
            and compliance.signature_timestamp is not None
        )

    # ============================================================
    # Verification
    # ============================================================

    def _signature_verifies(self, verify: Callable[..., None], *args: Any) -> bool:
        try:
            verify(*args, self.sdk_nonces)
        except (uma.UmaException, ValueError) as exc:
            logger.debug("signature_rejected", error_type=type(exc).__name__)
            return False
        return True

    async def verify_lnurlp_query(
        self,
        request: uma.LnurlpRequest,
        sender_keys: uma.PubkeyResponse,
        nonce_validator: NonceValidator,
    ) -> bool:
        if not self.is_uma_lnurlp_query(request):
            return False
        if not self._signature_verifies(
            uma.verify_uma_lnurlp_query_signature, request, sender_keys
        ):
            return False
        return await nonce_validator.check_and_save(
            request.vasp_domain, request.nonce, int(request.timestamp.timestamp())
        )

    def verify_lnurlp_backing_signature(
        self,
        request: uma.LnurlpRequest,
        backing: uma.BackingSignature,
        backer_keys: uma.PubkeyResponse,
    ) -> bool:
        """Check one backing VASP signature over the query's signed payload."""
        backed = dataclasses.replace(request, signature=backing.signature)
        return self._signature_verifies(
            uma.verify_uma_lnurlp_query_signature, backed, backer_keys
        )

    async def verify_pay_request(
        self,
        request: PayRequest,
        sender_keys: uma.PubkeyResponse,
        nonce_validator: NonceValidator,
    ) -> bool:
        if not self.is_uma_pay_request(request):
            return False
        if not self._signature_verifies(
            uma.verify_pay_request_signature, request.to_uma(), sender_keys
        ):
            return False
        compliance = request.compliance
        return await nonce_validator.check_and_save(
            request.sender_domain or "",
            compliance.signature_nonce,
            compliance.signature_timestamp,
        )

    async def verify_post_transaction_callback(
        self,
        callback: uma.PostTransactionCallback,
        sender_keys: uma.PubkeyResponse,
        nonce_validator: NonceValidator,
    ) -> bool:
        if not self._signature_verifies(
            uma.verify_post_transaction_callback_signature, callback, sender_keys
        ):
            return False
        return await nonce_validator.check_and_save(
            callback.vasp_domain,
            callback.signature_nonce,
            callback.signature_timestamp,
        )

    def decrypt_travel_rule_info(self, sealed: str, private_key: bytes) -> str:
        """Open a travel-rule disclosure encrypted for this VASP with ECIES.

        Raises:
            ValueError: If the payload cannot be decrypted
        """
        return ecies.decrypt(private_key, bytes.fromhex(sealed)).decode("utf-8")

    # ============================================================
    # Responses
    # ============================================================

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
        currencies: list[Currency],
        comment_allowed: int | None = None,
    ) -> uma.LnurlpResponse:
        """Build and sign an enhanced discovery response."""
        return uma.create_uma_lnurlp_response(
            request=request,
            signing_private_key=signing_private_key,
            requires_travel_rule_info=requires_travel_rule,
            callback=callback,
            encoded_metadata=metadata,
            min_sendable_sats=min_sendable_sats,
            max_sendable_sats=max_sendable_sats,
            payer_data_options=uma.create_counterparty_data_options(
                {
                    field: bool(option.get("mandatory"))
                    for field, option in payer_data_options.items()
                }
            ),
            currency_options=[sdk_currency(currency) for currency in currencies],
            receiver_kyc_status=_kyc_status(receiver_kyc_status),
            comment_chars_allowed=comment_allowed,
        )

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
    ) -> uma.PayReqResponse:
        """Build and sign an enhanced quote response around ``invoice``.

        The receiving amount is locked in ``receiving_currency_code``, so the
        SDK reports it as given instead of deriving it from millisatoshis.
        """
        return uma.create_pay_req_response(
            request=request.to_uma(receiving_amount, receiving_currency_code),
            invoice_creator=IssuedInvoice(invoice),
            metadata=metadata,
            receiving_currency_code=receiving_currency_code,
            receiving_currency_decimals=receiving_currency_decimals,
            msats_per_currency_unit=msats_per_currency_unit,
            receiver_fees_msats=0,
            receiver_node_pubkey=receiver_node_pubkey,
            utxo_callback=utxo_callback,
            payee_identifier=payee_identifier,
            signing_private_key=signing_private_key,
            receiver_utxos=receiver_utxos,
        )


def encode_metadata(receiver_address: str) -> str:
    """LNURL metadata string for a receiver address (``$alice@vasp``)."""
    return json.dumps(
        [
            ["text/plain", f"Pay to {receiver_address}"],
            ["text/identifier", receiver_address],
        ]
    )


def invoice_metadata(metadata: str, request: PayRequest) -> str:
    """Metadata committed to by an enhanced quote's invoice.

    The payer data is appended to the LNURL metadata the way the SDK does
    when it creates the invoice itself.
    """
    if request.payer_data is None:
        return metadata
    return metadata + json.dumps(request.payer_data.to_wire())
