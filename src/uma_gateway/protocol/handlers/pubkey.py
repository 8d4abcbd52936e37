"""Key publication: ``GET /.well-known/lnurlpubkey``."""

from datetime import datetime, timezone
from typing import Any

import uma

from uma_gateway.protocol.handlers.base import InboundRequest, ProtocolHandler
from uma_gateway.protocol.interfaces import ProtocolCapabilities
from uma_gateway.protocol.keys import load_cert_chain


def _key_bytes(public_key: str) -> bytes | None:
    return bytes.fromhex(public_key) if public_key else None


class PubKeyHandler(ProtocolHandler):
    """Publishes the tenant's public keys, or certificate chains if configured."""

    name = "pubkey"
    failure_reason = "Failed to retrieve public keys"

    async def process(
        self, adapter: ProtocolCapabilities, request: InboundRequest
    ) -> dict[str, Any]:
        signing_chain = load_cert_chain(adapter.get_signing_cert_chain())
        encryption_chain = load_cert_chain(adapter.get_encryption_cert_chain())
        expires = adapter.get_expiration_timestamp()
        response = uma.PubkeyResponse(
            signing_cert_chain=signing_chain,
            encryption_cert_chain=encryption_chain,
            signing_pubkey=_key_bytes(adapter.get_signing_public_key()),
            encryption_pubkey=_key_bytes(adapter.get_encryption_public_key()),
            expiration_timestamp=(
                datetime.fromtimestamp(expires, timezone.utc) if expires else None
            ),
        )
        return response.to_dict()
