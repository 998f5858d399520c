"""
General helper utilities
"""
import math
from datetime import date, timedelta
from typing import Iterator


def round_half_up(value: float) -> int:
    """Round to the nearest integer, halves away from zero for positives"""
    return int(math.floor(value + 0.5))


def money(value: float) -> float:
    """Round a monetary value to paise"""
    return round(value + 0.0, 2)


def to_float(value) -> float:
    """Lenient numeric coercion for amounts that may arrive as str/None"""
    if value is None:
        return 0.0
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


def each_day(start: date, end: date) -> Iterator[date]:
    """Yield every calendar day from start to end inclusive"""
    current = start
    while current <= end:
        yield current
        current += timedelta(days=1)


def hours_between(start_time: str, end_time: str) -> float:
    """Hours between two HH:MM strings on the same day, never negative"""
    if not start_time or not end_time:
        return 0.0
    start_h, start_m = (int(p) for p in start_time.split(":")[:2])
    end_h, end_m = (int(p) for p in end_time.split(":")[:2])
    diff_minutes = (end_h * 60 + end_m) - (start_h * 60 + start_m)
    return max(0.0, diff_minutes / 60)


def item_number_key(item_number: str):
    """Sort key so that '1.2' orders before '1.10'"""
    parts = []
    for part in str(item_number or "").split("."):
        part = part.strip()
        if part.isdigit():
            parts.append((0, int(part), ""))
        else:
            parts.append((1, 0, part))
    return parts


def format_compact_currency(value: float, symbol: str = "₹") -> str:
    """Short Indian-style amount for dashboard cards (K / L / Cr)"""
    if value >= 10000000:
        return f"{symbol}{value / 10000000:.2f} Cr"
    if value >= 100000:
        return f"{symbol}{value / 100000:.2f} L"
    if value >= 1000:
        return f"{symbol}{value / 1000:.1f} K"
    return f"{symbol}{value:.0f}"
