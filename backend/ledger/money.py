"""
Money helpers.

All amounts are `decimal.Decimal` values quantized to two places with
ROUND_HALF_UP. Binary floats never take part in money arithmetic: values
coming from JSON are converted through their string form first.

In the database, money columns are stored as integer cents (MoneyType), the
same way the rest of the schema stores amounts, and surface as Decimal.
"""

from __future__ import annotations

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Iterable

from sqlalchemy.types import BigInteger, TypeDecorator

from .errors import InvalidAmount

MONEY_QUANTUM = Decimal("0.01")
ZERO = Decimal("0.00")
_CENTS = Decimal(100)
# Largest magnitude whose cents fit the signed 64-bit MoneyType column
MAX_AMOUNT = Decimal("9999999999999999.99")


def quantize(value: Decimal) -> Decimal:
    return value.quantize(MONEY_QUANTUM, rounding=ROUND_HALF_UP)


def to_money(value, *, field: str = "amount") -> Decimal:
    """
    Coerce user or database input to a 2-place Decimal.

    Accepts Decimal, int, str and float (floats go through str() so 0.1
    stays 0.1). Rejects bools, None, NaN, infinities and anything larger
    than MAX_AMOUNT.
    """
    if value is None or isinstance(value, bool):
        raise InvalidAmount(f"{field} must be a number", field=field, value=value)
    if isinstance(value, Decimal):
        dec = value
    elif isinstance(value, (int, float, str)):
        try:
            dec = Decimal(str(value).strip())
        except InvalidOperation:
            raise InvalidAmount(f"{field} must be a number", field=field, value=value)
    else:
        raise InvalidAmount(f"{field} must be a number", field=field, value=str(value))

    if not dec.is_finite():
        raise InvalidAmount(f"{field} must be a finite number", field=field, value=str(value))
    if dec.copy_abs() > MAX_AMOUNT:
        raise InvalidAmount(
            f"{field} exceeds the maximum of {MAX_AMOUNT}",
            field=field,
            value=str(value),
            maximum=MAX_AMOUNT,
        )
    try:
        return quantize(dec)
    except InvalidOperation:
        raise InvalidAmount(f"{field} cannot be represented in cents", field=field, value=str(value))


def to_positive_money(value, *, field: str = "amount") -> Decimal:
    amount = to_money(value, field=field)
    if amount <= ZERO:
        raise InvalidAmount(f"{field} must be greater than zero", field=field, value=amount)
    return amount


def is_zero(value: Decimal) -> bool:
    return quantize(value) == ZERO


def money_sum(values: Iterable) -> Decimal:
    total = ZERO
    for value in values:
        total += to_money(value)
    return quantize(total)


def format_money(value: Decimal) -> str:
    """Human-readable amount for error messages: $1,234.50 / -$20.00."""
    value = quantize(value)
    sign = "-" if value < 0 else ""
    return f"{sign}${abs(value):,.2f}"


def to_cents(value) -> int:
    return int((to_money(value) * _CENTS).to_integral_value(rounding=ROUND_HALF_UP))


def from_cents(cents: int) -> Decimal:
    return quantize(Decimal(int(cents)) / _CENTS)


class MoneyType(TypeDecorator):
    """Decimal in Python, integer cents in the database."""

    impl = BigInteger
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        return to_cents(value)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return from_cents(value)
