"""Utility / helper functions for the FnO Scanner."""

from __future__ import annotations

from datetime import date, datetime
from typing import Iterator, Sequence, TypeVar

T = TypeVar("T")


def chunked(items: Sequence[T], size: int) -> Iterator[list[T]]:
    """Yield consecutive slices of *items* no longer than *size*.

    Examples::

        list(chunked([1, 2, 3, 4, 5], 2)) -> [[1, 2], [3, 4], [5]]
    """
    if size <= 0:
        raise ValueError(f"size must be positive, got {size}")
    for start in range(0, len(items), size):
        yield list(items[start:start + size])


def parse_kite_date(value: str) -> date:
    """Parse a Kite candle timestamp into the trading date.

    Kite sends ``2024-01-15T00:00:00+0530``; only the leading date part
    matters for daily bars.

    Args:
        value: Timestamp string from the historical API.

    Returns:
        The calendar date of the bar.
    """
    try:
        return datetime.strptime(value, "%Y-%m-%dT%H:%M:%S%z").date()
    except ValueError:
        return date.fromisoformat(value[:10])


def format_inr(amount: float) -> str:
    """Format a rupee amount with a currency sign and commas.

    Examples::

        format_inr(1234.5) -> "₹1,234.50"
        format_inr(-50)    -> "-₹50.00"
    """
    formatted = f"₹{abs(amount):,.2f}"
    return f"-{formatted}" if amount < 0 else formatted


def format_percent(value: float) -> str:
    """Format a signed percentage, e.g. ``+1.25%`` / ``-0.40%``."""
    return f"{value:+.2f}%"
