# receivables/services/money.py
"""
Exact currency arithmetic. Amounts are Decimals quantized to cents;
binary floats never take part in a comparison or a sum.
"""

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Iterable, Optional, Union

from receivables.services.errors import InvalidAmount

CENT = Decimal("0.01")
ZERO = Decimal("0.00")

MoneyLike = Union[Decimal, int, float, str, None]


def to_money(value: MoneyLike) -> Decimal:
    if value is None:
        return ZERO
    if isinstance(value, float):
        value = str(value)
    if isinstance(value, str):
        value = value.strip()
        if value == "":
            return ZERO
    try:
        return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)
    except (InvalidOperation, ValueError, TypeError):
        raise InvalidAmount(f"{value!r} is not a valid amount", value=str(value))


def parse_money(value: Optional[str]) -> Decimal:
    """Parse a money cell from a CSV file ("$1,250.00", "1250", "")."""
    if value is None:
        return ZERO
    cleaned = value.strip().replace("$", "").replace(",", "")
    return to_money(cleaned)


def total(values: Iterable[MoneyLike]) -> Decimal:
    result = ZERO
    for value in values:
        result += to_money(value)
    return result


def within_cent(a: Decimal, b: Decimal) -> bool:
    return abs(a - b) < CENT


def format_money(amount: MoneyLike) -> str:
    return f"${to_money(amount):,.2f}"
