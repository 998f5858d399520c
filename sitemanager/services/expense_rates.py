"""
Charges for manpower and equipment entries, computed from master rates at
the time of entry. The results are stored on the expense row as a snapshot.
"""
from typing import NamedTuple

from sitemanager.utils.helpers import hours_between, money

DEFAULT_DAILY_HOURS = 8


class Charge(NamedTuple):
    hours: float
    rate: float
    amount: float


def hourly_rate(daily_rate: float, daily_hours: float) -> float:
    return daily_rate / (daily_hours or DEFAULT_DAILY_HOURS)


def manpower_charge(daily_rate: float, daily_hours: float, start_time: str, end_time: str, persons: int) -> Charge:
    """Hourly rate from the daily rate, times hours worked, times head count"""
    hours = hours_between(start_time, end_time)
    rate = hourly_rate(daily_rate, daily_hours)
    return Charge(hours=hours, rate=rate, amount=money(rate * hours * persons))


def equipment_charge(hourly: float, hours: float) -> Charge:
    return Charge(hours=hours, rate=hourly, amount=money(hours * hourly))
