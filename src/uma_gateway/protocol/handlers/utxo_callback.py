"""Settlement callback: ``POST /utxocallback``."""

import time
from collections.abc import Callable
from typing import Any

from uma_gateway.core.errors import VerificationError
from uma_gateway.protocol.handlers.base import InboundRequest, ProtocolHandler
from uma_gateway.protocol.interfaces import (
    NonceValidator,
    ProtocolCapabilities,
    ProtocolCodec,
    SenderKeyResolver,
)


class UtxoCallbackHandler(ProtocolHandler):
    """Records the utxos a sending VASP reports after settlement."""

    name = "utxo_callback"

    def __init__(
        self,
        codec: ProtocolCodec,
        sender_keys: SenderKeyResolver,
        nonces: NonceValidator,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.codec = codec
        self.sender_keys = sender_keys
        self.nonces = nonces
        self.clock = clock

    async def process(
        self, adapter: ProtocolCapabilities, request: InboundRequest
    ) -> dict[str, Any]:
        callback = self.codec.parse_post_transaction_callback(request.body)

        keys = await self.sender_keys.fetch(callback.vasp_domain)
        if not await self.codec.verify_post_transaction_callback(
            callback, keys, self.nonces
        ):
            raise VerificationError(
                "Invalid callback signature",
                details={"vasp_domain": callback.vasp_domain},
            )

        utxos = [
            {"utxo": item.utxo, "amountMsats": item.amount_msats}
            for item in callback.utxos
        ]
        await adapter.on_utxos_received(utxos, callback.vasp_domain)
        await adapter.record_utxos(
            {
                "utxos": utxos,
                "vaspDomain": callback.vasp_domain,
                "signatureNonce": callback.signature_nonce,
                "signatureTimestamp": callback.signature_timestamp,
                "receivedAt": int(self.clock() * 1000),
            }
        )
        return {"status": "OK"}
