"""
Numeric helpers shared by the tax model and the budget summary.
"""
import math
from decimal import Decimal, ROUND_HALF_UP, localcontext
from typing import Any


CENT = Decimal('0.01')


def round_to_cents(amount: float) -> float:
    """Round amount to the nearest cent, halves away from zero. Non-finite amounts become 0."""
    value = Decimal(str(amount))
    if not value.is_finite():
        return 0.0
    with localcontext() as ctx:
        # Room for every integer digit plus the two cents digits
        ctx.prec = max(ctx.prec, value.adjusted() + 3)
        return float(value.quantize(CENT, rounding=ROUND_HALF_UP))


def to_number(value: Any) -> float:
    """Coerce a loosely typed value to a finite float, falling back to 0."""
    if isinstance(value, bool):
        return 0.0
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str) and value.strip():
        try:
            number = float(value)
        except ValueError:
            return 0.0
    else:
        return 0.0
    return number if math.isfinite(number) else 0.0


def non_negative(value: Any) -> float:
    """Clamp a value to zero or above; NaN and infinities become zero."""
    return max(0.0, to_number(value))


def clamp(value: float, minimum: float, maximum: float) -> float:
    return min(max(value, minimum), maximum)
