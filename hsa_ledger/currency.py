"""
Money Module

Decimal-backed monetary values rounded to the precision of their currency,
plus the parsers used to validate amounts and rates arriving from callers.
NEVER uses float for stored monetary values.
"""

from decimal import Decimal, ROUND_HALF_UP, getcontext
from dataclasses import dataclass
from typing import Any
from enum import Enum

from .exceptions import InvalidAmountError

getcontext().prec = 28


class Currency(Enum):
    """ISO 4217 currency codes with precision info"""
    USD = ("USD", 2)
    EUR = ("EUR", 2)
    GBP = ("GBP", 2)
    JPY = ("JPY", 0)

    def __init__(self, code: str, precision: int):
        self.code = code
        self.precision = precision


@dataclass(frozen=True)
class Money:
    """
    Immutable amount in a single currency.

    The amount is quantized to the currency precision on construction, so two
    Money values compare equal whenever they would display the same.
    """
    amount: Decimal
    currency: Currency

    def __post_init__(self):
        if not isinstance(self.amount, Decimal):
            object.__setattr__(self, 'amount', Decimal(str(self.amount)))

        rounded = self.amount.quantize(
            Decimal('0.1') ** self.currency.precision,
            rounding=ROUND_HALF_UP
        )
        object.__setattr__(self, 'amount', rounded)

    @classmethod
    def zero(cls, currency: Currency) -> 'Money':
        return cls(Decimal('0'), currency)

    def _check_currency(self, other: 'Money') -> None:
        if self.currency != other.currency:
            raise ValueError(f"Currency mismatch: {self.currency.code} and {other.currency.code}")

    def __add__(self, other: 'Money') -> 'Money':
        self._check_currency(other)
        return Money(self.amount + other.amount, self.currency)

    def __sub__(self, other: 'Money') -> 'Money':
        self._check_currency(other)
        return Money(self.amount - other.amount, self.currency)

    def __mul__(self, multiplier: Decimal) -> 'Money':
        if not isinstance(multiplier, Decimal):
            multiplier = Decimal(str(multiplier))
        return Money(self.amount * multiplier, self.currency)

    def __neg__(self) -> 'Money':
        return Money(-self.amount, self.currency)

    def __lt__(self, other: 'Money') -> bool:
        self._check_currency(other)
        return self.amount < other.amount

    def is_zero(self) -> bool:
        return self.amount == Decimal('0')

    def is_positive(self) -> bool:
        return self.amount > Decimal('0')

    def is_negative(self) -> bool:
        return self.amount < Decimal('0')


def parse_decimal(value: Any, field_name: str = "amount") -> Decimal:
    """
    Convert caller input to a finite Decimal.

    Accepts int, float and Decimal. Strings are rejected even when they
    hold a number, as are booleans and None.

    Raises:
        InvalidAmountError: If the value is not a finite number
    """
    # bool is an int subclass
    if isinstance(value, bool) or not isinstance(value, (int, float, Decimal)):
        raise InvalidAmountError(f"{field_name} must be a number")

    # str() first so floats keep their shortest repr (0.1, not 0.1000000000000000055...)
    result = Decimal(str(value))

    if not result.is_finite():
        raise InvalidAmountError(f"{field_name} must be a finite number")

    return result


def parse_money(value: Any, currency: Currency, field_name: str = "Amount") -> Money:
    """
    Parse a strictly positive monetary amount.

    The positivity check runs after rounding, so 0.001 USD is rejected
    rather than recorded as 0.00.
    """
    money = Money(parse_decimal(value, field_name), currency)
    if not money.is_positive():
        raise InvalidAmountError(f"{field_name} must be positive")
    return money


def parse_rate(value: Any) -> Decimal:
    """Parse a non-negative, finite interest rate"""
    rate = parse_decimal(value, "Interest rate")
    if rate < Decimal('0'):
        raise InvalidAmountError("Interest rate must not be negative")
    return rate
