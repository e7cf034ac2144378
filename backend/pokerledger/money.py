# pokerledger/money.py
"""Fixed-point money helpers.

Every balance in the ledger is an ``int`` of minor currency units (cents).
Decimal is only used at the edges: parsing user input and applying a
session's point-to-cash rate.
"""

from decimal import Decimal, ROUND_FLOOR, ROUND_HALF_UP, InvalidOperation

MINOR_PER_MAJOR = 100


def to_decimal(value) -> Decimal:
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        # repr() keeps 0.1 as "0.1" instead of the binary expansion
        value = repr(value)
    try:
        return Decimal(str(value))
    except InvalidOperation:
        raise ValueError(f"not a number: {value!r}")


def to_minor(amount) -> int:
    """Major units (e.g. ``"12.34"``) to minor units, rounding half up."""
    d = to_decimal(amount) * MINOR_PER_MAJOR
    return int(d.quantize(Decimal(1), rounding=ROUND_HALF_UP))


def from_minor(minor: int) -> Decimal:
    return (Decimal(minor) / MINOR_PER_MAJOR).quantize(Decimal("0.01"))


def format_minor(minor: int, symbol: str = "$") -> str:
    sign = "-" if minor < 0 else ""
    return f"{sign}{symbol}{from_minor(abs(minor))}"


def points_for_amount(amount_minor: int, rate) -> int:
    """Points handed out for a buy-in. Partial points are never issued."""
    rate = to_decimal(rate)
    if rate <= 0:
        raise ValueError("point to cash rate must be positive")
    points = from_minor(amount_minor) / rate
    return int(points.to_integral_value(rounding=ROUND_FLOOR))


def points_to_minor(points: int, rate) -> int:
    """Cash value of a point count at ``rate`` major units per point."""
    return to_minor(Decimal(points) * to_decimal(rate))
