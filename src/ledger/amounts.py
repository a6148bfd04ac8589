"""Money input validation. Everything stored is rounded to cents."""

import math


def money(value) -> float:
    return round(float(value or 0), 2) + 0.0  # normalize -0.0


def parse_amount(value, allow_zero: bool = False):
    """Parse a payment/advance amount from user input.

    Returns the amount rounded to cents, or None when the value is not a
    finite number, is negative, or is zero (unless allow_zero).
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, str):
        value = value.strip().replace(",", "").lstrip("$")
        if not value:
            return None
    try:
        amount = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(amount):
        return None
    amount = round(amount, 2)
    if amount < 0 or (amount == 0 and not allow_zero):
        return None
    return amount
