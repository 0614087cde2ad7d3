from __future__ import annotations

from typing import Optional

NOT_AVAILABLE = "N/A"

# (threshold, suffix), checked top-down
CURRENCY_SCALES = (
    (1_000_000_000, "B"),
    (1_000_000, "M"),
    (1_000, "K"),
)


def _plain(value: float) -> str:
    if float(value).is_integer():
        return f"{int(value):,}"
    return f"{value:,.2f}"


def format_currency(value: Optional[float], symbol: str = "$") -> str:
    """
    Compact money format for display: 2.61e9 -> "$2.6B", 4.5e6 -> "$4.5M",
    12_300 -> "$12.3K", smaller values are printed in full.
    """
    if value is None:
        return NOT_AVAILABLE

    sign = "-" if value < 0 else ""
    magnitude = abs(value)

    for threshold, suffix in CURRENCY_SCALES:
        if magnitude >= threshold:
            return f"{sign}{symbol}{magnitude / threshold:.1f}{suffix}"

    return f"{sign}{symbol}{_plain(magnitude)}"


def format_number(value: Optional[float]) -> str:
    if value is None:
        return NOT_AVAILABLE
    return _plain(value)


def format_percentage(value: Optional[float]) -> str:
    if value is None:
        return NOT_AVAILABLE
    return f"{value:.1f}%"


def calculate_profit_margin(revenue: Optional[float], profit: Optional[float]) -> Optional[float]:
    """Profit as a percentage of revenue; None when either side is missing or revenue is zero."""
    if not revenue or profit is None:
        return None
    return profit / revenue * 100
