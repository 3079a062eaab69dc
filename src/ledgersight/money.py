# SMB LedgerSight - Financial statements engine for SMBs
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
Money values, currency formatting and exchange-rate conversion.

All currency arithmetic in LedgerSight uses ``decimal.Decimal``. Floats are
only accepted at the boundary (``to_decimal``) and are converted through
their string representation so that ``0.1`` stays ``Decimal("0.1")``.

Formatting rules
----------------
- ISO currencies with a known symbol: ``$1,234.56``, ``-€12.00``,
  ``¥1,235`` (JPY/KRW have no minor unit).
- Crypto assets: ``BTC 0.123457``. BTC, ETH, LTC and BCH use 6 decimals,
  SHIB and DOGE 8, stablecoins (USDT, USDC) 2.
- Any other code: ``XYZ 1,234.56``.

Rate tables
-----------
``RateTable`` stores rates as *base-currency units per one unit of the
foreign currency* (USD by default, i.e. ``EUR = 1.08`` means 1 EUR is worth
1.08 USD). Conversions between two non-base currencies go through the base.
"""

from collections.abc import Mapping
from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Union

from .errors import CurrencyMismatch, MissingRate

ZERO = Decimal("0")
CENT = Decimal("0.01")

_SYMBOLS: dict[str, str] = {
    "USD": "$",
    "EUR": "€",
    "GBP": "£",
    "JPY": "¥",
    "CNY": "CN¥",
    "INR": "₹",
    "KRW": "₩",
    "CAD": "CA$",
    "AUD": "A$",
    "NZD": "NZ$",
    "CHF": "CHF ",
    "SEK": "SEK ",
    "BRL": "R$",
    "MXN": "MX$",
    "ZAR": "R",
    "NGN": "₦",
}

_ISO_WITHOUT_SYMBOL = {"NOK", "DKK", "PLN", "CZK", "HUF", "SGD", "HKD", "TRY"}

_ZERO_DECIMAL_CURRENCIES = {"JPY", "KRW"}

_CRYPTO_DECIMALS: dict[str, int] = {
    "BTC": 6,
    "ETH": 6,
    "LTC": 6,
    "BCH": 6,
    "SHIB": 8,
    "DOGE": 8,
    "USDT": 2,
    "USDC": 2,
}

Number = Union[Decimal, int, float, str]


def to_decimal(value: Any) -> Decimal:
    """Convert a number-like value to Decimal.

    Raises:
        ValueError: if the value is empty or not numeric.
    """
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool):
        raise ValueError(f"Invalid amount: {value!r}")
    if isinstance(value, int):
        return Decimal(value)
    if isinstance(value, float):
        return Decimal(repr(value))
    text = str(value).strip().replace(",", "")
    if not text:
        raise ValueError("Invalid amount: empty value.")
    try:
        return Decimal(text)
    except InvalidOperation as exc:
        raise ValueError(f"Invalid amount: {value!r}") from exc


def decimal_places(currency: str) -> int:
    """Number of decimals used to display (and round) the currency."""
    code = currency.upper()
    if code in _CRYPTO_DECIMALS:
        return _CRYPTO_DECIMALS[code]
    if code in _ZERO_DECIMAL_CURRENCIES:
        return 0
    return 2


def quantize(amount: Decimal, currency: str) -> Decimal:
    """Round an amount half-up to the currency's display precision."""
    exponent = Decimal(1).scaleb(-decimal_places(currency))
    return amount.quantize(exponent, rounding=ROUND_HALF_UP)


def format_amount(amount: Number, currency: str) -> str:
    """Format an amount for display in the given currency."""
    code = currency.upper()
    value = quantize(to_decimal(amount), code)
    places = decimal_places(code)
    sign = "-" if value < 0 else ""
    digits = f"{abs(value):,.{places}f}"

    if code in _CRYPTO_DECIMALS:
        return f"{sign}{code} {digits}"
    symbol = _SYMBOLS.get(code)
    if symbol is not None:
        return f"{sign}{symbol}{digits}"
    if code in _ISO_WITHOUT_SYMBOL:
        return f"{sign}{digits} {code}"
    return f"{sign}{code} {digits}"


@dataclass(frozen=True)
class Money:
    """Amount + currency + formatted display string.

    ``formatted`` is derived from the other two fields at construction time.
    Arithmetic between two Money values requires the same currency.
    """

    amount: Decimal
    currency: str
    formatted: str = field(init=False, compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "amount", to_decimal(self.amount))
        object.__setattr__(self, "currency", self.currency.upper())
        object.__setattr__(self, "formatted", format_amount(self.amount, self.currency))

    @classmethod
    def zero(cls, currency: str) -> "Money":
        return cls(ZERO, currency)

    def _check(self, other: "Money") -> None:
        if self.currency != other.currency:
            raise CurrencyMismatch(self.currency, other.currency)

    def __add__(self, other: "Money") -> "Money":
        self._check(other)
        return Money(self.amount + other.amount, self.currency)

    def __sub__(self, other: "Money") -> "Money":
        self._check(other)
        return Money(self.amount - other.amount, self.currency)

    def __neg__(self) -> "Money":
        return Money(-self.amount, self.currency)

    def __abs__(self) -> "Money":
        return Money(abs(self.amount), self.currency)

    def is_zero(self) -> bool:
        return self.amount == 0


def money_sum(values, currency: str) -> Money:
    """Sum Money values, starting from zero in ``currency``."""
    total = Money.zero(currency)
    for value in values:
        total = total + value
    return total


@dataclass(frozen=True)
class RateTable:
    """Exchange rates quoted as base-currency units per foreign unit."""

    rates: Mapping[str, Decimal]
    base: str = "USD"

    def __post_init__(self) -> None:
        normalized = {
            str(code).upper(): to_decimal(rate) for code, rate in self.rates.items()
        }
        for code, rate in normalized.items():
            if rate <= 0:
                raise ValueError(f"Exchange rate for {code} must be positive.")
        normalized[self.base.upper()] = Decimal(1)
        object.__setattr__(self, "rates", normalized)
        object.__setattr__(self, "base", self.base.upper())

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "RateTable":
        """Build a table from a ``{"base": "USD", "EUR": "1.08"}`` mapping."""
        base = str(data.get("base") or "USD")
        rates = {k: v for k, v in data.items() if k != "base"}
        return cls(rates=rates, base=base)

    def rate(self, currency: str) -> Decimal:
        code = currency.upper()
        try:
            return self.rates[code]
        except KeyError:
            raise MissingRate(code, self.base) from None

    def convert(self, amount: Number, from_currency: str, to_currency: str) -> Decimal:
        """Convert ``amount`` between two currencies through the base."""
        value = to_decimal(amount)
        if from_currency.upper() == to_currency.upper():
            return value
        in_base = value * self.rate(from_currency)
        return in_base / self.rate(to_currency)
