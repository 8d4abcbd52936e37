"""Base class for protocol request handlers.

Handlers are stateless. Each dispatch receives the tenant's
``ProtocolCapabilities`` and a transport-neutral ``InboundRequest`` and
returns a ``HandlerResult``. Failures never escape ``handle()``: they are
logged and rendered as ``{"status": "ERROR", "reason": ...}``.
"""

from abc import ABC, abstractmethod
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, ClassVar

import structlog

from uma_gateway.core.constants import INTERNAL_ERROR_REASON
from uma_gateway.core.errors import AppException, error_body
from uma_gateway.protocol.interfaces import ProtocolCapabilities


logger = structlog.get_logger()


@dataclass(frozen=True)
class InboundRequest:
    """The parts of an HTTP request a handler may read.

    Attributes:
        method: HTTP method
        url: Full request URL as seen by the sender (scheme, host, query)
        path_params: Route parameters such as ``username`` or ``callback_id``
        body: Raw request body
        headers: Request headers
    """

    method: str
    url: str
    path_params: Mapping[str, str] = field(default_factory=dict)
    body: bytes = b""
    headers: Mapping[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class HandlerResult:
    """Status code and JSON body produced by a handler."""

    status_code: int
    body: dict[str, Any]

    @property
    def ok(self) -> bool:
        return self.status_code < 400


class ProtocolHandler(ABC):
    """Runs one protocol operation and maps failures to error bodies.

    Subclasses implement ``process`` and raise ``AppException`` subclasses
    for expected failures. Client errors render their own message; server
    errors render ``failure_reason``.
    """

    name: ClassVar[str]
    failure_reason: ClassVar[str] = INTERNAL_ERROR_REASON

    async def handle(
        self, adapter: ProtocolCapabilities, request: InboundRequest
    ) -> HandlerResult:
        try:
            body = await self.process(adapter, request)
        except AppException as exc:
            if exc.is_server_error:
                logger.error(
                    "protocol_request_failed",
                    handler=self.name,
                    error_code=exc.error_code,
                    message=exc.message,
                    details=exc.details,
                )
                return HandlerResult(exc.status_code, error_body(self.failure_reason))
            logger.warning(
                "protocol_request_rejected",
                handler=self.name,
                error_code=exc.error_code,
                reason=exc.message,
                details=exc.details,
            )
            return HandlerResult(exc.status_code, error_body(exc.message))
        except Exception:
            logger.exception("protocol_request_failed", handler=self.name)
            return HandlerResult(500, error_body(self.failure_reason))
        return HandlerResult(200, body)

    @abstractmethod
    async def process(
        self, adapter: ProtocolCapabilities, request: InboundRequest
    ) -> dict[str, Any]:
        """Run the operation and return the success body."""
