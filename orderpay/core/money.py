"""Major/minor currency unit conversions.

The processor speaks minor units (cents) on the wire; orders hold Decimal
major units. Convert once at the boundary and never mix the two in one call.
"""

from decimal import ROUND_HALF_UP, Decimal

CENT = Decimal("0.01")


def as_decimal(x) -> Decimal:
    if isinstance(x, Decimal):
        return x
    return Decimal(str(x))


def quantize(amount) -> Decimal:
    return as_decimal(amount).quantize(CENT, rounding=ROUND_HALF_UP)


def to_minor_units(amount) -> int:
    """Decimal major units -> integer minor units. Rejects negatives."""
    value = quantize(amount)
    if value < 0:
        raise ValueError(f"Negative amount: {amount}")
    return int(value * 100)


def from_minor_units(minor: int) -> Decimal:
    """Integer minor units -> Decimal major units with two places."""
    if isinstance(minor, bool) or not isinstance(minor, int):
        raise TypeError(f"Minor units must be an int, got {type(minor).__name__}")
    if minor < 0:
        raise ValueError(f"Negative amount: {minor}")
    return (Decimal(minor) / 100).quantize(CENT)
