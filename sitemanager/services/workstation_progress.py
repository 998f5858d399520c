"""
BOQ progress summary for a site workstation.

For every line item a workstation has logged against: the latest entry
(by entry date, then creation time) is the "new" quantity, everything
before it is "previous", and the sum is the up-to-date quantity.
"""
from collections import OrderedDict, defaultdict
from datetime import date, datetime
from typing import Dict, Iterable, List, Optional

from pydantic import BaseModel

from sitemanager.utils.helpers import item_number_key, to_float


class LineItemProgress(BaseModel):
    boq_line_item_id: int
    item_number: Optional[str] = None
    description: Optional[str] = None
    unit: Optional[str] = None
    boq_quantity: float = 0
    previous_quantity: float = 0
    new_quantity: float = 0
    upto_date_quantity: float = 0
    entry_count: int = 0
    last_entry_date: Optional[date] = None


class ProgressSummary(BaseModel):
    line_items: List[LineItemProgress]
    total_previous: float = 0
    total_new: float = 0
    total_upto_date: float = 0


def _entry_order(entry):
    return (entry.entry_date, entry.created_at or datetime.min, entry.id or 0)


def summarize_progress(entries: Iterable, line_items: Optional[Dict[int, object]] = None) -> ProgressSummary:
    """`line_items` maps line item id to BOQLineItem for labels and BOQ quantity"""
    line_items = line_items or {}
    by_item = defaultdict(list)
    for entry in entries:
        by_item[entry.boq_line_item_id].append(entry)

    rows = []
    for line_item_id, item_entries in by_item.items():
        item_entries.sort(key=_entry_order)
        latest = item_entries[-1]
        previous = sum(to_float(e.quantity) for e in item_entries[:-1])
        new = to_float(latest.quantity)

        line_item = line_items.get(line_item_id) or getattr(latest, "line_item", None)
        rows.append(LineItemProgress(
            boq_line_item_id=line_item_id,
            item_number=str(line_item.item_number) if line_item is not None else None,
            description=line_item.description if line_item is not None else None,
            unit=line_item.unit if line_item is not None else None,
            boq_quantity=to_float(line_item.quantity) if line_item is not None else 0,
            previous_quantity=previous,
            new_quantity=new,
            upto_date_quantity=previous + new,
            entry_count=len(item_entries),
            last_entry_date=latest.entry_date,
        ))

    rows.sort(key=lambda r: (item_number_key(r.item_number), r.boq_line_item_id))
    return ProgressSummary(
        line_items=rows,
        total_previous=sum(r.previous_quantity for r in rows),
        total_new=sum(r.new_quantity for r in rows),
        total_upto_date=sum(r.upto_date_quantity for r in rows),
    )


def group_entries_by_date(entries: Iterable) -> Dict[date, List]:
    """Entries keyed by date, most recent date first"""
    grouped = defaultdict(list)
    for entry in entries:
        grouped[entry.entry_date].append(entry)
    ordered = OrderedDict()
    for entry_date in sorted(grouped, reverse=True):
        ordered[entry_date] = sorted(grouped[entry_date], key=_entry_order)
    return ordered
