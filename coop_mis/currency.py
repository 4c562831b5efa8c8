"""
Money and Currency Module

Peso-denominated money handling with proper Decimal precision.
NEVER uses float for stored monetary values.
"""

from decimal import Decimal, ROUND_HALF_UP, InvalidOperation, getcontext
from dataclasses import dataclass
from functools import total_ordering
from typing import Any, Union
from enum import Enum
import re

# Set global decimal context for financial precision
getcontext().prec = 28

TWO_PLACES = Decimal('0.01')


class Currency(Enum):
    """ISO 4217 currency codes with display symbol and precision"""
    PHP = ("PHP", "₱", 2)  # Philippine Peso
    USD = ("USD", "$", 2)  # US Dollar

    def __init__(self, code: str, symbol: str, precision: int):
        self.code = code
        self.symbol = symbol
        self.precision = precision

    @classmethod
    def from_code(cls, code: str) -> 'Currency':
        for currency in cls:
            if currency.code == code.upper():
                return currency
        raise ValueError(f"Unsupported currency: {code}")


@total_ordering
@dataclass(frozen=True, eq=False)
class Money:
    """
    Immutable amount in one currency, held at the currency's precision.

    Used for display and for arithmetic that must not mix currencies; stored
    figures are plain Decimals produced by round_money.
    """
    amount: Decimal
    currency: Currency = Currency.PHP

    def __post_init__(self):
        quantum = Decimal(1).scaleb(-self.currency.precision)
        object.__setattr__(self, 'amount', to_decimal(self.amount).quantize(quantum, rounding=ROUND_HALF_UP))

    def _same(self, other: 'Money', verb: str) -> Decimal:
        if self.currency != other.currency:
            raise ValueError(f"Cannot {verb} {self.currency.code} and {other.currency.code}")
        return other.amount

    def __add__(self, other: 'Money') -> 'Money':
        return Money(self.amount + self._same(other, "add"), self.currency)

    def __sub__(self, other: 'Money') -> 'Money':
        return Money(self.amount - self._same(other, "subtract"), self.currency)

    def __mul__(self, factor) -> 'Money':
        return Money(self.amount * to_decimal(factor), self.currency)

    def __truediv__(self, divisor) -> 'Money':
        return Money(self.amount / to_decimal(divisor), self.currency)

    def __neg__(self) -> 'Money':
        return Money(-self.amount, self.currency)

    def __eq__(self, other) -> bool:
        return (isinstance(other, Money) and self.currency == other.currency
                and self.amount == other.amount)

    def __lt__(self, other: 'Money') -> bool:
        return self.amount < self._same(other, "compare")

    def __hash__(self):
        return hash((self.amount, self.currency))

    def is_zero(self) -> bool:
        return not self.amount

    def is_positive(self) -> bool:
        return self.amount > 0

    def is_negative(self) -> bool:
        return self.amount < 0

    def to_string(self) -> str:
        """Display form, e.g. ₱1,234.50 or -₱50.00"""
        sign = "-" if self.amount < 0 else ""
        return f"{sign}{self.currency.symbol}{abs(self.amount):,.{self.currency.precision}f}"


def to_decimal(value: Union[Decimal, int, float, str, None]) -> Decimal:
    """
    Convert an incoming numeric value to Decimal.

    Floats go through str() so 0.1 stays 0.1. Strings may carry a currency
    symbol and thousands separators ("₱1,500.00").

    Raises:
        ValueError: If the value cannot be read as a number
    """
    if value is None or value == "":
        return Decimal('0')
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool):
        raise ValueError(f"Cannot convert {value!r} to Decimal")
    if isinstance(value, (int, float)):
        return Decimal(str(value))
    if isinstance(value, str):
        clean_value = re.sub(r'[^\d.\-+]', '', value.strip())
        try:
            return Decimal(clean_value)
        except InvalidOperation:
            raise ValueError(f"Cannot convert '{value}' to Decimal")
    raise ValueError(f"Cannot convert {value!r} to Decimal")


def round_money(value: Any) -> Decimal:
    """Round to 2 decimal places using ROUND_HALF_UP"""
    return to_decimal(value).quantize(TWO_PLACES, rounding=ROUND_HALF_UP)


def format_peso(value: Any) -> str:
    """Format an amount as pesos for descriptions and flags"""
    return Money(to_decimal(value), Currency.PHP).to_string()
