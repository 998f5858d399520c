"""
Expense dashboard API - daily series, totals, shares and trend for a site
"""
import logging
from datetime import date, timedelta
from typing import Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from sitemanager.api.auth import get_current_user
from sitemanager.api.common import fetch_optional, get_or_404
from sitemanager.config import get_settings
from sitemanager.database import get_db
from sitemanager.models.expense import EquipmentExpense, ManpowerExpense, OtherExpense
from sitemanager.models.grn import GRNInvoice, GRNLineItem
from sitemanager.models.site import Site
from sitemanager.models.user import User
from sitemanager.services.expense_series import (
    CategoryTotals,
    DailyExpense,
    PieSlice,
    Trend,
    build_daily_series,
    category_totals,
    daily_average,
    expense_trend,
    last_days,
    material_points,
    pie_shares,
)
from sitemanager.utils.helpers import format_compact_currency

logger = logging.getLogger(__name__)
settings = get_settings()

router = APIRouter()

RANGE_OPTIONS = (7, 30, 90)


class ExpenseDashboardResponse(BaseModel):
    site_id: int
    site_name: str
    from_date: date
    to_date: date
    request_id: Optional[str] = None
    series: List[DailyExpense]
    totals: CategoryTotals
    total_labels: Dict[str, str]
    pie: List[PieSlice]
    last_7_days: List[DailyExpense]
    trend: Trend
    daily_average: float


def resolve_range(days: Optional[int], from_date: Optional[date], to_date: Optional[date]):
    """A custom range wins over a preset window"""
    if from_date or to_date:
        if not (from_date and to_date):
            raise HTTPException(status_code=400, detail="Both from_date and to_date are required")
        if to_date < from_date:
            raise HTTPException(status_code=400, detail="to_date must not be before from_date")
        return from_date, to_date

    days = days or 7
    if days not in RANGE_OPTIONS:
        raise HTTPException(
            status_code=400,
            detail=f"days must be one of: {', '.join(str(d) for d in RANGE_OPTIONS)}",
        )
    today = date.today()
    return today - timedelta(days=days), today


@router.get("/sites/{site_id}", response_model=ExpenseDashboardResponse)
async def get_expense_dashboard(
    site_id: int,
    days: Optional[int] = Query(None),
    from_date: Optional[date] = None,
    to_date: Optional[date] = None,
    request_id: Optional[str] = None,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    site = await get_or_404(db, Site, site_id, "Site")
    start, end = resolve_range(days, from_date, to_date)

    invoices = await fetch_optional(
        db,
        select(GRNInvoice).where(
            GRNInvoice.site_id == site_id,
            GRNInvoice.grn_date >= start,
            GRNInvoice.grn_date <= end,
        ),
        "GRN invoices",
    )
    line_items = []
    if invoices:
        line_items = await fetch_optional(
            db,
            select(GRNLineItem).where(GRNLineItem.grn_invoice_id.in_([i.id for i in invoices])),
            "GRN line items",
        )

    def _ranged(model):
        return select(model).where(
            model.site_id == site_id,
            model.expense_date >= start,
            model.expense_date <= end,
        )

    manpower = await fetch_optional(db, _ranged(ManpowerExpense), "manpower expenses")
    equipment = await fetch_optional(db, _ranged(EquipmentExpense), "equipment expenses")
    other = await fetch_optional(db, _ranged(OtherExpense), "other expenses")

    series = build_daily_series(
        start, end,
        material=material_points(invoices, line_items),
        manpower=manpower,
        equipment=equipment,
        other=other,
    )
    totals = category_totals(series)
    logger.info(f"Expense dashboard for site {site_id}: {start} to {end}, total {totals.total}")

    return ExpenseDashboardResponse(
        site_id=site_id,
        site_name=site.name,
        from_date=start,
        to_date=end,
        request_id=request_id,
        series=series,
        totals=totals,
        total_labels={
            key: format_compact_currency(value, settings.CURRENCY_SYMBOL)
            for key, value in totals.model_dump().items()
        },
        pie=pie_shares(totals),
        last_7_days=last_days(series),
        trend=expense_trend(series),
        daily_average=daily_average(series),
    )
