"""
Input validation utilities
"""
import re

ALLOWED_GST_RATES = (5, 12, 18)

_TIME_RE = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")


def validate_gst_rate(rate: float) -> float:
    """GST slab must be one of the supported rates"""
    if rate not in ALLOWED_GST_RATES:
        raise ValueError(f"GST rate must be one of: {', '.join(str(r) for r in ALLOWED_GST_RATES)}")
    return rate


def validate_positive(value: float, field: str = "Value") -> float:
    if value is None or value <= 0:
        raise ValueError(f"{field} must be greater than zero")
    return value


def validate_non_negative(value: float, field: str = "Value") -> float:
    if value is None or value < 0:
        raise ValueError(f"{field} cannot be negative")
    return value


def validate_time_of_day(value: str) -> str:
    """HH:MM, 24-hour clock"""
    if not _TIME_RE.match(value or ""):
        raise ValueError("Time must be in HH:MM format")
    return value


def validate_required_text(value: str, field: str = "Value") -> str:
    if value is None or not value.strip():
        raise ValueError(f"{field} is required")
    return value.strip()
