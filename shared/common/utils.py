# shared/common/utils.py
"""
Common Utility Functions

Money is stored as integer minor units (cents) and exchanged over the API
as decimal strings with two places.
"""

from decimal import Decimal, InvalidOperation
from typing import Union

MINOR_UNITS = 100


# =============================================================================
# MONEY UTILITIES
# =============================================================================

def to_minor_units(amount: Union[Decimal, int, str]) -> int:
    """
    Convert a major-unit amount to minor units.

    Raises ValueError for amounts with more than two decimal places, so
    that no money is silently rounded away.
    """
    try:
        value = amount if isinstance(amount, Decimal) else Decimal(str(amount))
    except InvalidOperation:
        raise ValueError(f"'{amount}' is not a valid amount")
    if not value.is_finite():
        raise ValueError(f"'{amount}' is not a valid amount")
    cents = value * MINOR_UNITS
    if cents != cents.to_integral_value():
        raise ValueError(f"'{amount}' has more than two decimal places")
    return int(cents)


def from_minor_units(cents: int) -> Decimal:
    """Convert minor units back to a two-place Decimal"""
    return (Decimal(cents) / MINOR_UNITS).quantize(Decimal('0.01'))
