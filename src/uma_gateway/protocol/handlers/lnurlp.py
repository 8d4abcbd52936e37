"""Discovery: ``GET /.well-known/lnurlp/{username}``."""

from typing import Any

import structlog
import uma

from uma_gateway.core.constants import MSATS_PER_SAT
from uma_gateway.core.errors import NotFoundError, VerificationError
from uma_gateway.protocol.codec import encode_metadata
from uma_gateway.protocol.handlers.base import InboundRequest, ProtocolHandler
from uma_gateway.protocol.interfaces import (
    NonceValidator,
    ProtocolCapabilities,
    ProtocolCodec,
    SenderKeyResolver,
)
from uma_gateway.receivers import ReceiverProfile


logger = structlog.get_logger()

DEFAULT_KYC_STATUS = "VERIFIED"


def receiver_address(username: str, vasp_domain: str) -> str:
    """Payable address of a receiver, e.g. ``$alice@vasp.example``."""
    return f"${username}@{vasp_domain}"


class LnurlpHandler(ProtocolHandler):
    """Answers discovery queries, bare or protocol-enhanced.

    Enhanced queries are verified against the sending VASP's published
    signing key and the nonce registry before a signed response is built.
    Backing signatures, when present, are checked too but only warned about.
    """

    name = "lnurlp"

    def __init__(
        self,
        codec: ProtocolCodec,
        sender_keys: SenderKeyResolver,
        nonces: NonceValidator,
        comment_allowed: int | None = None,
    ) -> None:
        self.codec = codec
        self.sender_keys = sender_keys
        self.nonces = nonces
        self.comment_allowed = comment_allowed

    async def process(
        self, adapter: ProtocolCapabilities, request: InboundRequest
    ) -> dict[str, Any]:
        username = request.path_params["username"]
        receiver = await adapter.get_receiver_by_username(username)
        if receiver is None:
            raise NotFoundError(
                "User not found", resource="receiver", resource_id=username
            )

        query = self.codec.parse_lnurlp_request(request.url)
        if not self.codec.is_uma_lnurlp_query(query):
            return self._bare_response(adapter, receiver)

        await self._verify(query)
        return self._enhanced_response(adapter, receiver, query)

    async def _verify(self, query: uma.LnurlpRequest) -> None:
        vasp_domain = query.vasp_domain or ""
        keys = await self.sender_keys.fetch(vasp_domain)
        if not await self.codec.verify_lnurlp_query(query, keys, self.nonces):
            raise VerificationError(details={"vasp_domain": vasp_domain})
        await self._check_backing_signatures(query)

    async def _check_backing_signatures(self, query: uma.LnurlpRequest) -> None:
        for backing in query.backing_signatures or []:
            try:
                keys = await self.sender_keys.fetch(backing.domain)
            except VerificationError:
                valid = False
            else:
                valid = self.codec.verify_lnurlp_backing_signature(
                    query, backing, keys
                )
            if not valid:
                logger.warning(
                    "lnurlp_backing_signature_invalid",
                    vasp_domain=query.vasp_domain,
                    backing_domain=backing.domain,
                )

    def _bare_response(
        self, adapter: ProtocolCapabilities, receiver: ReceiverProfile
    ) -> dict[str, Any]:
        address = receiver_address(receiver.username, adapter.get_vasp_domain())
        body: dict[str, Any] = {
            "tag": "payRequest",
            "callback": adapter.get_callback_url(receiver.username),
            "minSendable": adapter.get_min_sendable_sats() * MSATS_PER_SAT,
            "maxSendable": adapter.get_max_sendable_sats() * MSATS_PER_SAT,
            "metadata": encode_metadata(address),
        }
        if self.comment_allowed is not None:
            body["commentAllowed"] = self.comment_allowed
        return body

    def _enhanced_response(
        self,
        adapter: ProtocolCapabilities,
        receiver: ReceiverProfile,
        query: uma.LnurlpRequest,
    ) -> dict[str, Any]:
        address = receiver_address(receiver.username, adapter.get_vasp_domain())
        response = self.codec.build_lnurlp_response(
            request=query,
            callback=adapter.get_callback_url(receiver.username),
            metadata=encode_metadata(address),
            min_sendable_sats=adapter.get_min_sendable_sats(),
            max_sendable_sats=adapter.get_max_sendable_sats(),
            signing_private_key=adapter.get_signing_private_key(),
            receiver_kyc_status=receiver.kyc_status or DEFAULT_KYC_STATUS,
            requires_travel_rule=receiver.travel_rule_required,
            payer_data_options=adapter.get_payer_data_options(),
            currencies=adapter.get_currencies(),
            comment_allowed=self.comment_allowed,
        )
        logger.info(
            "lnurlp_response_signed",
            receiver=receiver.username,
            vasp_domain=query.vasp_domain,
        )
        return response.to_dict()
