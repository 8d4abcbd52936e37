"""Wire model for the quote request body.

Discovery queries, settlement callbacks, key publications and every
response use the ``uma`` SDK types directly. The quote body keeps its own
model because its ``amount`` may be a bare number or ``"<amount>.<CODE>"``
and must reach ``CurrencyConverter.parse_amount`` untouched, where the SDK
parser would split it with ``int()``.
"""

from typing import Any

import uma
from pydantic import BaseModel, ConfigDict, model_validator
from pydantic.alias_generators import to_camel

from uma_gateway.core.constants import UMA_MAJOR_VERSION


class WireModel(BaseModel):
    """Base for protocol messages."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="allow",
    )

    def to_wire(self) -> dict[str, Any]:
        """JSON-ready dict with camelCase keys and unset optionals omitted."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class PayerData(WireModel):
    identifier: str | None = None
    name: str | None = None
    email: str | None = None
    compliance: dict[str, Any] | None = None


class PayRequest(WireModel):
    """A quote request posted to the pay-request callback.

    ``amount`` is either a bare number of millisatoshis or a string
    ``"<amount>"`` / ``"<amount>.<CURRENCY>"``. ``convert`` names the
    currency the receiver should be credited in.
    """

    amount: int | float | str
    convert: str | None = None
    payer_data: PayerData | None = None
    payee_data: dict[str, Any] | None = None
    comment: str | None = None
    uma_major_version: int | None = None

    @model_validator(mode="after")
    def check_compliance(self) -> "PayRequest":
        try:
            compliance = self.compliance
        except (KeyError, TypeError) as exc:
            raise ValueError("malformed payer compliance data") from exc
        if compliance is not None and not (
            isinstance(compliance.signature, str | None)
            and isinstance(compliance.signature_nonce, str | None)
            and isinstance(compliance.signature_timestamp, int | None)
            and isinstance(compliance.encrypted_travel_rule_info, str | None)
        ):
            raise ValueError("malformed payer compliance signature")
        return self

    @property
    def compliance(self) -> uma.CompliancePayerData | None:
        if self.payer_data is None or self.payer_data.compliance is None:
            return None
        return uma.compliance_from_payer_data(self.payer_data.to_wire())

    @property
    def sender_identifier(self) -> str | None:
        return self.payer_data.identifier if self.payer_data else None

    @property
    def sender_domain(self) -> str | None:
        """Domain part of the payer identifier (``$alice@vasp.example``)."""
        identifier = self.sender_identifier
        if not identifier or "@" not in identifier:
            return None
        return identifier.rsplit("@", 1)[1] or None

    def to_uma(
        self, amount: int = 0, currency_code: str | None = None
    ) -> uma.PayRequest:
        """The SDK form of this request.

        ``amount`` is given in ``currency_code`` units when a code is set and
        in millisatoshis otherwise. The raw ``amount`` field is not carried
        over.
        """
        return uma.PayRequest(
            sending_amount_currency_code=currency_code,
            receiving_currency_code=currency_code,
            amount=amount,
            payer_data=self.payer_data.to_wire() if self.payer_data else None,
            requested_payee_data=None,
            comment=self.comment,
            uma_major_version=(
                UMA_MAJOR_VERSION
                if self.uma_major_version is None
                else self.uma_major_version
            ),
        )
