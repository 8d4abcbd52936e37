"""Currency conversion between payer currencies and millisatoshis.

Amounts are integers in a currency's smallest unit (cents for USD,
satoshis for SAT and BTC). Rates come from a lookup coroutine and are
applied with ``Decimal`` arithmetic, rounding half up to whole units.
"""

import re
from collections.abc import Awaitable, Callable
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any

from uma_gateway.core.constants import MSATS_PER_SAT


RateLookup = Callable[[str, str], Awaitable[float]]

DEFAULT_DECIMALS: dict[str, int] = {
    "USD": 2,
    "EUR": 2,
    "GBP": 2,
    "SAT": 0,
    "BTC": 8,
    "MXN": 2,
    "BRL": 2,
    "JPY": 0,
    "CNY": 2,
    "KRW": 0,
    "INR": 2,
    "AUD": 2,
    "CAD": 2,
    "CHF": 2,
}
FALLBACK_DECIMALS = 2

SETTLEMENT_CURRENCIES = frozenset({"SAT", "BTC", "MSAT"})

# Millisatoshis per smallest unit of each settlement currency.
# BTC amounts are carried in satoshis.
SETTLEMENT_MSATS_PER_UNIT: dict[str, int] = {
    "SAT": MSATS_PER_SAT,
    "BTC": MSATS_PER_SAT,
    "MSAT": 1,
}

# Digit runs are bounded so int() never sees an over-long string.
AMOUNT_PATTERN = re.compile(r"^(\d{1,30})(?:\.([A-Za-z]{3,5}))?$")


def _round(value: Decimal) -> int:
    return int(value.quantize(Decimal(1), rounding=ROUND_HALF_UP))


def _decimal(value: float | int) -> Decimal:
    return Decimal(str(value))


class CurrencyConverter:
    """Parses, converts and formats currency amounts.

    Example:
        converter = CurrencyConverter()
        amount, code = converter.parse_amount("500.USD")   # (500, "USD")
        msats = await converter.to_msats(amount, code, adapter.get_conversion_rate)
    """

    def __init__(self, custom_decimals: dict[str, int] | None = None) -> None:
        self.decimals = {**DEFAULT_DECIMALS, **(custom_decimals or {})}

    def parse_amount(self, amount: Any) -> tuple[int, str | None]:
        """Split a wire amount into (amount, currency code).

        A bare number has no currency. A string is ``"<int>"`` or
        ``"<int>.<CODE>"``. Anything else yields ``(0, None)``.
        """
        if isinstance(amount, bool):
            return 0, None
        if isinstance(amount, int):
            return (amount, None) if amount >= 0 else (0, None)
        if isinstance(amount, float):
            if amount.is_integer() and amount >= 0:
                return int(amount), None
            return 0, None
        if isinstance(amount, str):
            match = AMOUNT_PATTERN.match(amount.strip())
            if match is None:
                return 0, None
            code = match.group(2)
            return int(match.group(1)), code.upper() if code else None
        return 0, None

    def get_decimals(self, currency: str) -> int:
        """Decimal places of ``currency``; 2 for unknown codes."""
        return self.decimals.get(currency.upper(), FALLBACK_DECIMALS)

    def set_decimals(self, currency: str, decimals: int) -> None:
        if decimals < 0:
            raise ValueError("decimals must be zero or positive")
        self.decimals[currency.upper()] = decimals

    def is_settlement_currency(self, currency: str) -> bool:
        return currency.upper() in SETTLEMENT_CURRENCIES

    async def msats_per_unit(self, currency: str, get_rate: RateLookup) -> Decimal:
        """Millisatoshis per smallest unit of ``currency``."""
        code = currency.upper()
        if code in SETTLEMENT_MSATS_PER_UNIT:
            return Decimal(SETTLEMENT_MSATS_PER_UNIT[code])
        rate = await get_rate(code, "SAT")
        return _decimal(rate) * MSATS_PER_SAT

    async def to_msats(self, amount: int, currency: str, get_rate: RateLookup) -> int:
        """Convert smallest units of ``currency`` to millisatoshis.

        Settlement currencies use their fixed multiplier. Others look up
        the ``currency -> SAT`` rate.
        """
        code = currency.upper()
        if code in SETTLEMENT_MSATS_PER_UNIT:
            return amount * SETTLEMENT_MSATS_PER_UNIT[code]
        rate = await get_rate(code, "SAT")
        return _round(Decimal(amount) * _decimal(rate) * MSATS_PER_SAT)

    async def from_msats(self, msats: int, currency: str, get_rate: RateLookup) -> int:
        """Convert millisatoshis to smallest units of ``currency``."""
        code = currency.upper()
        if code in SETTLEMENT_MSATS_PER_UNIT:
            return _round(Decimal(msats) / SETTLEMENT_MSATS_PER_UNIT[code])
        rate = await get_rate("SAT", code)
        return _round(Decimal(msats) / MSATS_PER_SAT * _decimal(rate))

    def format_amount(self, amount: int, currency: str, symbol: str = "") -> str:
        """Render smallest units as a decimal string.

        ``format_amount(1050, "USD", "$")`` gives ``"$10.50"``;
        without a symbol the code is appended: ``"10.50 USD"``.
        """
        decimals = self.get_decimals(currency)
        value = Decimal(amount).scaleb(-decimals)
        formatted = f"{value:.{decimals}f}"
        return f"{symbol}{formatted}" if symbol else f"{formatted} {currency.upper()}"

    def parse_formatted_amount(self, text: str, currency: str) -> int:
        """Parse ``"$10.50"`` style text back to smallest units.

        Raises:
            ValueError: If no number can be read from ``text``
        """
        cleaned = re.sub(r"[^0-9.]", "", text)
        try:
            value = Decimal(cleaned)
        except InvalidOperation as exc:
            raise ValueError(f"not an amount: {text!r}") from exc
        return _round(value.scaleb(self.get_decimals(currency)))
