"""Protocol handlers and the registry that names them."""

from uma_gateway.protocol.currency import CurrencyConverter
from uma_gateway.protocol.handlers.base import (
    HandlerResult,
    InboundRequest,
    ProtocolHandler,
)
from uma_gateway.protocol.handlers.lnurlp import LnurlpHandler
from uma_gateway.protocol.handlers.payreq import PayReqHandler
from uma_gateway.protocol.handlers.pubkey import PubKeyHandler
from uma_gateway.protocol.handlers.utxo_callback import UtxoCallbackHandler
from uma_gateway.protocol.interfaces import (
    NonceValidator,
    ProtocolCodec,
    SenderKeyResolver,
)


def build_handler_registry(
    codec: ProtocolCodec,
    sender_keys: SenderKeyResolver,
    nonces: NonceValidator,
    converter: CurrencyConverter | None = None,
    comment_allowed: int | None = None,
) -> dict[str, ProtocolHandler]:
    """Map each operation name to its handler instance.

    Built once at startup. Routes look handlers up by these names.
    """
    handlers: list[ProtocolHandler] = [
        PubKeyHandler(),
        LnurlpHandler(codec, sender_keys, nonces, comment_allowed=comment_allowed),
        PayReqHandler(codec, sender_keys, nonces, converter=converter),
        UtxoCallbackHandler(codec, sender_keys, nonces),
    ]
    return {handler.name: handler for handler in handlers}


__all__ = [
    "HandlerResult",
    "InboundRequest",
    "LnurlpHandler",
    "PayReqHandler",
    "ProtocolHandler",
    "PubKeyHandler",
    "UtxoCallbackHandler",
    "build_handler_registry",
]
