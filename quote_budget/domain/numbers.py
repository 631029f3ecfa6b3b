"""
Numeric coalescing shared by the budget entities and the aggregation engine.

Every "missing numeric field counts as zero" rule goes through num_or_zero.
"""
import math
from typing import Any, Optional


def num_or_zero(value: Any) -> float:
    """Coerce a field value to float; None, NaN, infinities and non-numbers give 0."""
    if value is None or isinstance(value, bool):
        return 0.0
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0.0
    if math.isnan(number) or math.isinf(number):
        return 0.0
    return number


def optional_number(value: Any) -> Optional[float]:
    """Like num_or_zero, but an absent value stays absent."""
    if value is None:
        return None
    return num_or_zero(value)
