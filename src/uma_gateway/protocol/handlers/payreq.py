"""Quote: ``POST /payreq/{callback_id}``."""

from typing import Any

import structlog

from uma_gateway.core.constants import MSATS_PER_SAT
from uma_gateway.core.errors import NotFoundError, ValidationError, VerificationError
from uma_gateway.protocol.codec import encode_metadata, invoice_metadata
from uma_gateway.protocol.currency import CurrencyConverter
from uma_gateway.protocol.handlers.base import InboundRequest, ProtocolHandler
from uma_gateway.protocol.handlers.lnurlp import receiver_address
from uma_gateway.protocol.interfaces import (
    NonceValidator,
    ProtocolCapabilities,
    ProtocolCodec,
    SenderKeyResolver,
)
from uma_gateway.protocol.messages import PayRequest
from uma_gateway.receivers import ReceiverProfile


logger = structlog.get_logger()

DEFAULT_RECEIVING_CURRENCY = "SAT"


class PayReqHandler(ProtocolHandler):
    """Turns a quote request into a settlement invoice.

    Flow: receiver lookup, parse, verify (enhanced requests only), optional
    travel-rule disclosure, amount resolution, invoice creation, response,
    compliance record (enhanced requests only).
    """

    name = "payreq"

    def __init__(
        self,
        codec: ProtocolCodec,
        sender_keys: SenderKeyResolver,
        nonces: NonceValidator,
        converter: CurrencyConverter | None = None,
    ) -> None:
        self.codec = codec
        self.sender_keys = sender_keys
        self.nonces = nonces
        self.converter = converter or CurrencyConverter()

    async def process(
        self, adapter: ProtocolCapabilities, request: InboundRequest
    ) -> dict[str, Any]:
        callback_id = request.path_params["callback_id"]
        receiver = await adapter.get_receiver_by_callback_id(callback_id)
        if receiver is None:
            raise NotFoundError(
                "Receiver not found", resource="receiver", resource_id=callback_id
            )

        pay_request = self.codec.parse_pay_request(request.body)
        is_uma = self.codec.is_uma_pay_request(pay_request)
        if is_uma:
            await self._verify(pay_request)
            await self._disclose_travel_rule_info(adapter, pay_request, receiver)

        amount_msats, currency = await self._resolve_amount(adapter, pay_request)

        address = receiver_address(receiver.username, adapter.get_vasp_domain())
        metadata = encode_metadata(address)

        if not is_uma:
            invoice = await adapter.create_invoice(amount_msats, metadata, receiver)
            return {"pr": invoice, "routes": [], "disposable": True}

        invoice = await adapter.create_invoice(
            amount_msats, invoice_metadata(metadata, pay_request), receiver
        )
        receiving_currency = (
            pay_request.convert or currency or DEFAULT_RECEIVING_CURRENCY
        ).upper()
        receiving_amount, multiplier = await self._converted(
            adapter, amount_msats, receiving_currency
        )
        response = self.codec.build_pay_response(
            request=pay_request,
            invoice=invoice,
            metadata=metadata,
            receiving_currency_code=receiving_currency,
            receiving_amount=receiving_amount,
            receiving_currency_decimals=self._decimals(adapter, receiving_currency),
            msats_per_currency_unit=multiplier,
            payee_identifier=address,
            signing_private_key=adapter.get_signing_private_key(),
            utxo_callback=adapter.get_utxo_callback(),
            receiver_utxos=receiver.channel_utxos,
            receiver_node_pubkey=receiver.node_pubkey,
        )
        body = response.to_dict()

        await adapter.record_payment(
            {
                "payRequest": pay_request.to_wire(),
                "response": body,
                "receiver": receiver.username,
                "amountMsats": amount_msats,
                "vaspDomain": pay_request.sender_domain,
            }
        )
        logger.info(
            "pay_request_quoted",
            receiver=receiver.username,
            amount_msats=amount_msats,
            currency=receiving_currency,
        )
        return body

    async def _verify(self, pay_request: PayRequest) -> None:
        vasp_domain = pay_request.sender_domain
        if not vasp_domain:
            raise VerificationError(
                "Invalid pay request signature", details={"reason": "no sender domain"}
            )
        keys = await self.sender_keys.fetch(vasp_domain)
        if not await self.codec.verify_pay_request(pay_request, keys, self.nonces):
            raise VerificationError(
                "Invalid pay request signature", details={"vasp_domain": vasp_domain}
            )

    async def _disclose_travel_rule_info(
        self,
        adapter: ProtocolCapabilities,
        pay_request: PayRequest,
        receiver: ReceiverProfile,
    ) -> None:
        compliance = pay_request.compliance
        if compliance is None or not compliance.encrypted_travel_rule_info:
            return
        try:
            info = self.codec.decrypt_travel_rule_info(
                compliance.encrypted_travel_rule_info,
                adapter.get_encryption_private_key(),
            )
            await adapter.on_travel_rule_info(info, pay_request, receiver)
        except Exception as exc:
            logger.warning(
                "travel_rule_decrypt_failed",
                receiver=receiver.username,
                sender=pay_request.sender_identifier,
                error_type=type(exc).__name__,
            )

    async def _resolve_amount(
        self, adapter: ProtocolCapabilities, pay_request: PayRequest
    ) -> tuple[int, str | None]:
        """Amount in millisatoshis plus the currency the sender quoted in.

        Raises:
            ValidationError: If the amount is degenerate or out of range
        """
        amount, currency = self.converter.parse_amount(pay_request.amount)
        if amount <= 0:
            raise ValidationError(
                "Invalid amount", details={"amount": str(pay_request.amount)}
            )

        if currency is None:
            amount_msats = amount
        else:
            amount_msats = await self.converter.to_msats(
                amount, currency, adapter.get_conversion_rate
            )

        min_msats = adapter.get_min_sendable_sats() * MSATS_PER_SAT
        max_msats = adapter.get_max_sendable_sats() * MSATS_PER_SAT
        if not min_msats <= amount_msats <= max_msats:
            raise ValidationError(
                "Amount out of range",
                details={
                    "amount_msats": amount_msats,
                    "min": min_msats,
                    "max": max_msats,
                },
            )
        return amount_msats, currency

    def _decimals(self, adapter: ProtocolCapabilities, code: str) -> int:
        for currency in adapter.get_currencies():
            if currency.code == code:
                return currency.decimals
        return self.converter.get_decimals(code)

    async def _converted(
        self, adapter: ProtocolCapabilities, amount_msats: int, code: str
    ) -> tuple[int, float]:
        """Receiving amount in ``code`` plus the millisatoshis per unit."""
        rate = adapter.get_conversion_rate
        amount = await self.converter.from_msats(amount_msats, code, rate)
        multiplier = float(await self.converter.msats_per_unit(code, rate))
        return amount, multiplier
