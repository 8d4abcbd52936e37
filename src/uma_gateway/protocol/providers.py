"""Shipped rate provider and invoice creator."""

from typing import TYPE_CHECKING

import httpx
import structlog

from uma_gateway.core.errors import InternalError, UnsupportedConversionError
from uma_gateway.protocol.currency import SETTLEMENT_MSATS_PER_UNIT


if TYPE_CHECKING:
    from uma_gateway.receivers import ReceiverProfile
    from uma_gateway.tenants.record import TenantRecord


logger = structlog.get_logger()


class CurrencyTableRateProvider:
    """Rates derived from the tenant's currency table.

    Each currency descriptor carries a multiplier in millisatoshis per
    smallest unit. The rate between two currencies is the ratio of those
    multipliers. Settlement currencies use their fixed multiplier.
    """

    def _msats_per_unit(self, code: str, tenant: "TenantRecord") -> float:
        code = code.upper()
        if code in SETTLEMENT_MSATS_PER_UNIT:
            return float(SETTLEMENT_MSATS_PER_UNIT[code])
        for currency in tenant.currencies:
            if currency.code == code:
                return currency.multiplier
        raise KeyError(code)

    async def __call__(
        self, from_currency: str, to_currency: str, tenant: "TenantRecord"
    ) -> float:
        try:
            source = self._msats_per_unit(from_currency, tenant)
            target = self._msats_per_unit(to_currency, tenant)
        except KeyError as exc:
            raise UnsupportedConversionError(from_currency, to_currency) from exc
        return source / target


class HttpInvoiceCreator:
    """Requests invoices from an external invoice service.

    Sends ``POST {url}`` with ``amountMsats``, ``metadata``, ``receiver`` and
    ``tenantId``. The response must carry the invoice in ``invoice`` or ``pr``.
    """

    def __init__(self, url: str, client: httpx.AsyncClient) -> None:
        self.url = url
        self.client = client

    async def __call__(
        self,
        amount_msats: int,
        metadata: str,
        receiver: "ReceiverProfile",
        tenant: "TenantRecord",
    ) -> str:
        try:
            response = await self.client.post(
                self.url,
                json={
                    "amountMsats": amount_msats,
                    "metadata": metadata,
                    "receiver": receiver.username,
                    "nodePubKey": receiver.node_pubkey,
                    "tenantId": tenant.id,
                },
                headers={"Accept": "application/json"},
            )
            response.raise_for_status()
            data = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            logger.error(
                "invoice_creation_failed",
                tenant_id=tenant.id,
                error_type=type(exc).__name__,
            )
            raise InternalError("Invoice creation failed") from exc

        invoice = None
        if isinstance(data, dict):
            invoice = data.get("invoice") or data.get("pr")
        if not invoice:
            raise InternalError(
                "Invoice service returned no invoice", details={"tenant_id": tenant.id}
            )
        return invoice
