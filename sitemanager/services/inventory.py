"""
Site inventory: received quantity per material across all GRNs of a site.

Receipts come from both GRN line items and the legacy register. They are
keyed by master material id, or by normalised name when a receipt names a
material outside the catalogue.
"""
from collections import OrderedDict
from datetime import date
from typing import Dict, Iterable, List, Optional

from pydantic import BaseModel

from sitemanager.utils.helpers import money, to_float

UNCATEGORIZED = "Uncategorized"


class Receipt(BaseModel):
    material_id: Optional[int] = None
    material_name: str
    quantity: float
    unit: str
    grn_date: date


class InventoryItem(BaseModel):
    material_id: Optional[int] = None
    material_name: str
    category: str
    unit: str
    total_quantity: float
    receipt_count: int
    last_receipt_date: date


class InventoryCategory(BaseModel):
    category: str
    items: List[InventoryItem]
    total_items: int


def receipts_from_invoices(invoices: Iterable) -> List[Receipt]:
    return [
        Receipt(
            material_id=item.material_id,
            material_name=item.material_name,
            quantity=to_float(item.quantity),
            unit=item.unit,
            grn_date=inv.grn_date,
        )
        for inv in invoices
        for item in inv.line_items
    ]


def receipts_from_register(grns: Iterable) -> List[Receipt]:
    return [
        Receipt(
            material_id=grn.material_id,
            material_name=grn.material_name,
            quantity=to_float(grn.quantity),
            unit=grn.unit,
            grn_date=grn.grn_date,
        )
        for grn in grns
    ]


def _key(receipt: Receipt):
    if receipt.material_id is not None:
        return receipt.material_id
    return " ".join(receipt.material_name.lower().split())


def summarize_inventory(receipts: Iterable[Receipt], categories: Optional[Dict[int, str]] = None) -> List[InventoryItem]:
    """
    One item per material: summed quantity, receipt count and last receipt
    date. Name and unit follow the latest receipt. Sorted by name.
    """
    categories = categories or {}
    items: Dict[object, InventoryItem] = OrderedDict()

    for receipt in sorted(receipts, key=lambda r: r.grn_date, reverse=True):
        key = _key(receipt)
        item = items.get(key)
        if item is None:
            items[key] = InventoryItem(
                material_id=receipt.material_id,
                material_name=receipt.material_name,
                category=categories.get(receipt.material_id) or UNCATEGORIZED,
                unit=receipt.unit,
                total_quantity=money(receipt.quantity),
                receipt_count=1,
                last_receipt_date=receipt.grn_date,
            )
            continue
        item.total_quantity = money(item.total_quantity + receipt.quantity)
        item.receipt_count += 1

    return sorted(items.values(), key=lambda i: (i.material_name.lower(), i.unit))


def filter_inventory(items: Iterable[InventoryItem], search: Optional[str]) -> List[InventoryItem]:
    if not search:
        return list(items)
    term = search.strip().lower()
    return [i for i in items if term in i.material_name.lower() or term in i.category.lower()]


def group_by_category(items: Iterable[InventoryItem]) -> List[InventoryCategory]:
    grouped: Dict[str, List[InventoryItem]] = {}
    for item in items:
        grouped.setdefault(item.category, []).append(item)
    return [
        InventoryCategory(category=name, items=grouped[name], total_items=len(grouped[name]))
        for name in sorted(grouped)
    ]
