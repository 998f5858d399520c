"""
Daily expense series for the site expense dashboard.

Four categories (material, manpower, equipment, other) are bucketed into one
entry per calendar day of the requested range. Records dated outside the
range are ignored. Every summary figure is reduced from the dense series.
"""
import datetime
from datetime import date
from enum import Enum
from typing import Dict, Iterable, List, NamedTuple

from pydantic import BaseModel

from sitemanager.utils.helpers import each_day, money, to_float

LAST_DAYS_WINDOW = 7


class ExpenseCategory(str, Enum):
    MATERIAL = "material"
    MANPOWER = "manpower"
    EQUIPMENT = "equipment"
    OTHER = "other"


CATEGORY_LABELS = {
    ExpenseCategory.MATERIAL: "Material",
    ExpenseCategory.MANPOWER: "Manpower",
    ExpenseCategory.EQUIPMENT: "Equipment",
    ExpenseCategory.OTHER: "Other",
}


class ExpensePoint(NamedTuple):
    expense_date: date
    amount: float


class DailyExpense(BaseModel):
    date: datetime.date
    day: str = ""
    material: float = 0
    manpower: float = 0
    equipment: float = 0
    other: float = 0
    total: float = 0


class CategoryTotals(BaseModel):
    material: float = 0
    manpower: float = 0
    equipment: float = 0
    other: float = 0
    total: float = 0


class PieSlice(BaseModel):
    category: ExpenseCategory
    name: str
    value: float
    percentage: float


class Trend(BaseModel):
    percentage: float = 0
    is_up: bool = True


def material_points(invoices: Iterable, line_items: Iterable) -> List[ExpensePoint]:
    """One point per GRN invoice row, valued at its line items' amount with GST"""
    totals: Dict[int, float] = {}
    for item in line_items:
        totals[item.grn_invoice_id] = totals.get(item.grn_invoice_id, 0.0) + to_float(item.amount_with_gst)
    return [ExpensePoint(inv.grn_date, totals.get(inv.id, 0.0)) for inv in invoices]


def build_daily_series(
    start: date,
    end: date,
    material: Iterable = (),
    manpower: Iterable = (),
    equipment: Iterable = (),
    other: Iterable = (),
) -> List[DailyExpense]:
    """
    Dense day-by-day buckets for [start, end].

    Each collection holds records with `expense_date` and `amount`
    attributes (ORM rows or ExpensePoint). An empty range (end before start)
    yields an empty series.
    """
    buckets: Dict[date, DailyExpense] = {
        day: DailyExpense(date=day, day=day.strftime("%a"))
        for day in each_day(start, end)
    }

    sources = (
        (ExpenseCategory.MATERIAL, material),
        (ExpenseCategory.MANPOWER, manpower),
        (ExpenseCategory.EQUIPMENT, equipment),
        (ExpenseCategory.OTHER, other),
    )
    for category, records in sources:
        field = category.value
        for record in records:
            bucket = buckets.get(record.expense_date)
            if bucket is None:
                continue
            setattr(bucket, field, getattr(bucket, field) + to_float(record.amount))

    series = [buckets[day] for day in sorted(buckets)]
    for bucket in series:
        bucket.material = money(bucket.material)
        bucket.manpower = money(bucket.manpower)
        bucket.equipment = money(bucket.equipment)
        bucket.other = money(bucket.other)
        bucket.total = money(bucket.material + bucket.manpower + bucket.equipment + bucket.other)
    return series


def category_totals(series: Iterable[DailyExpense]) -> CategoryTotals:
    totals = CategoryTotals()
    for day in series:
        totals.material += day.material
        totals.manpower += day.manpower
        totals.equipment += day.equipment
        totals.other += day.other
    totals.material = money(totals.material)
    totals.manpower = money(totals.manpower)
    totals.equipment = money(totals.equipment)
    totals.other = money(totals.other)
    totals.total = money(totals.material + totals.manpower + totals.equipment + totals.other)
    return totals


def pie_shares(totals: CategoryTotals) -> List[PieSlice]:
    """Non-zero categories with their share of the grand total"""
    slices = []
    for category, label in CATEGORY_LABELS.items():
        value = getattr(totals, category.value)
        if value <= 0:
            continue
        percentage = round(value / totals.total * 100, 1) if totals.total else 0
        slices.append(PieSlice(category=category, name=label, value=value, percentage=percentage))
    return slices


def last_days(series: List[DailyExpense], days: int = LAST_DAYS_WINDOW) -> List[DailyExpense]:
    """The trailing window of the series, ending at the range end"""
    if days <= 0:
        return []
    return series[-days:]


def expense_trend(series: List[DailyExpense]) -> Trend:
    """Second half of the range against the first half"""
    if len(series) < 2:
        return Trend()

    midpoint = len(series) // 2
    first_half = sum(d.total for d in series[:midpoint])
    second_half = sum(d.total for d in series[midpoint:])

    if first_half == 0:
        return Trend()

    change = (second_half - first_half) / first_half * 100
    return Trend(percentage=round(abs(change), 1), is_up=change >= 0)


def daily_average(series: List[DailyExpense]) -> float:
    if not series:
        return 0.0
    return money(sum(d.total for d in series) / len(series))
