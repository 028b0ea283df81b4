"""Conversion between major (rupee) and minor (paise) currency units.

Internal calculations use ``Decimal`` rupees; the gateway speaks integer
paise. Conversion happens only at the gateway boundary.
"""

from decimal import Decimal, ROUND_HALF_UP
from typing import Union

MINOR_UNITS_PER_MAJOR = 100

PAISE = Decimal("0.01")

Number = Union[Decimal, int, float, str]


def to_decimal(value: Number) -> Decimal:
    """Coerce a numeric value to a two-place Decimal."""
    if isinstance(value, float):
        value = repr(value)
    return Decimal(value).quantize(PAISE, rounding=ROUND_HALF_UP)


def to_minor_units(amount: Number) -> int:
    """Convert rupees to integer paise, rounding half up.

    Args:
        amount: Amount in rupees

    Returns:
        Amount in paise
    """
    paise = Decimal(to_decimal(amount)) * MINOR_UNITS_PER_MAJOR
    return int(paise.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def from_minor_units(amount: int) -> Decimal:
    """Convert integer paise to rupees."""
    return (Decimal(int(amount)) / MINOR_UNITS_PER_MAJOR).quantize(PAISE)
