"""
Money helpers - amounts are whole RUB, points are whole units (1 point = 1 RUB)
"""

import math
from decimal import Decimal


def percent_of(amount: int, percent: float) -> int:
    """
    floor(amount * percent / 100) in exact decimal arithmetic

    Floats like 0.1 * 3 would misround on the boundary, so the percent
    goes through its string form.
    """
    if amount <= 0 or not percent:
        return 0
    value = Decimal(amount) * Decimal(str(percent)) / Decimal(100)
    return max(0, math.floor(value))
