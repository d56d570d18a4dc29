"""Utility helper functions."""
from decimal import Decimal, ROUND_HALF_UP
from typing import Union

Number = Union[int, float, Decimal]


def round_money(amount: Number, places: int = 2) -> float:
    """Round a monetary amount half-up.

    Args:
        amount: Amount to round
        places: Decimal places to keep

    Returns:
        Rounded amount as float
    """
    quantum = Decimal(1).scaleb(-places)
    return float(Decimal(str(amount)).quantize(quantum, rounding=ROUND_HALF_UP))


def format_percentage(value: Number) -> str:
    """Format a percentage with two decimals, e.g. ``"66.67%"``."""
    return f"{float(value):.2f}%"


def calculate_profit_percentage(baseline: Number, value: Number) -> float:
    """Calculate profit percentage of ``value`` relative to ``baseline``.

    Args:
        baseline: Reference amount
        value: Current amount

    Returns:
        Profit percentage, 0 when baseline is 0
    """
    if baseline == 0:
        return 0.0
    return (float(value) - float(baseline)) / float(baseline) * 100
