"""
Invoice grouping for material GRNs.

Several GRN invoice rows may share a supplier and invoice number when one
commercial invoice is delivered in parts. They are grouped by
(supplier_id, invoice_number) and summed; the delivery challan is taken
from the first delivery of the group.
"""
from collections import defaultdict
from datetime import date
from typing import Dict, Iterable, List, Optional, Tuple

from pydantic import BaseModel

from sitemanager.models.grn import LINE_ITEM_DOCUMENT_TYPES
from sitemanager.services.document_status import (
    ComplianceCount,
    DocumentStatus,
    ReadinessStatus,
    count_compliance,
    single_record_status,
)
from sitemanager.utils.helpers import money, to_float

GroupKey = Tuple[int, str]


class GRNLineItemCompliance(BaseModel):
    grn_line_item_id: int
    grn_invoice_id: int
    material_name: str
    quantity: float
    unit: str
    rate: float
    gst_rate: float
    amount_without_gst: float
    amount_with_gst: float
    compliance: ComplianceCount


class GRNDelivery(BaseModel):
    grn_invoice_id: int
    grn_date: date
    notes: Optional[str] = None
    line_item_count: int
    amount_without_gst: float
    amount_with_gst: float


class InvoiceGroup(BaseModel):
    supplier_id: int
    supplier_name: str
    invoice_number: str
    deliveries: List[GRNDelivery]
    latest_grn_date: date
    amount_without_gst: float
    gst_amount: float
    total_amount: float
    dc_grn_invoice_id: int
    dc: DocumentStatus
    line_items: List[GRNLineItemCompliance]
    compliance: ComplianceCount

    @property
    def key(self) -> GroupKey:
        return (self.supplier_id, self.invoice_number)


def group_key(invoice) -> GroupKey:
    return (invoice.supplier_id, invoice.invoice_number)


def dc_contribution(dc: DocumentStatus) -> ComplianceCount:
    if dc.status == ReadinessStatus.NOT_APPLICABLE:
        return ComplianceCount(not_applicable=1)
    if dc.status == ReadinessStatus.YES:
        return ComplianceCount(applicable=1, uploaded=1)
    return ComplianceCount(applicable=1)


def line_item_compliance(line_item, documents: Iterable) -> GRNLineItemCompliance:
    return GRNLineItemCompliance(
        grn_line_item_id=line_item.id,
        grn_invoice_id=line_item.grn_invoice_id,
        material_name=line_item.material_name,
        quantity=to_float(line_item.quantity),
        unit=line_item.unit,
        rate=to_float(line_item.rate),
        gst_rate=to_float(line_item.gst_rate),
        amount_without_gst=to_float(line_item.amount_without_gst),
        amount_with_gst=to_float(line_item.amount_with_gst),
        compliance=count_compliance(documents, LINE_ITEM_DOCUMENT_TYPES),
    )


def group_invoices(
    invoices: Iterable,
    line_items: Iterable,
    dc_records: Iterable,
    line_item_documents: Iterable,
    supplier_names: Optional[Dict[int, str]] = None,
) -> List[InvoiceGroup]:
    """
    Group GRN invoice rows by (supplier_id, invoice_number).

    All collections are flat row sets for the same site; they are matched to
    invoices by `grn_invoice_id` / `grn_line_item_id`. Input order does not
    affect the result. Groups come out by supplier name, then invoice number;
    deliveries inside a group are newest first.
    """
    supplier_names = supplier_names or {}

    rows_by_key: Dict[GroupKey, List] = defaultdict(list)
    for invoice in invoices:
        rows_by_key[group_key(invoice)].append(invoice)

    items_by_invoice = defaultdict(list)
    for item in line_items:
        items_by_invoice[item.grn_invoice_id].append(item)

    dc_by_invoice = {}
    for dc in dc_records:
        dc_by_invoice.setdefault(dc.grn_invoice_id, dc)

    docs_by_item = defaultdict(list)
    for doc in line_item_documents:
        docs_by_item[doc.grn_line_item_id].append(doc)

    groups = []
    for (supplier_id, invoice_number), rows in rows_by_key.items():
        # DC belongs to the earliest delivery of the group
        first = min(rows, key=lambda r: (r.grn_date, r.id))
        dc = single_record_status(dc_by_invoice.get(first.id))

        deliveries = []
        evaluated_items = []
        for row in sorted(rows, key=lambda r: (r.grn_date, r.id), reverse=True):
            row_items = sorted(items_by_invoice.get(row.id, []), key=lambda i: i.id)
            row_without = sum(to_float(i.amount_without_gst) for i in row_items)
            row_with = sum(to_float(i.amount_with_gst) for i in row_items)
            deliveries.append(GRNDelivery(
                grn_invoice_id=row.id,
                grn_date=row.grn_date,
                notes=row.notes,
                line_item_count=len(row_items),
                amount_without_gst=money(row_without),
                amount_with_gst=money(row_with),
            ))
            for item in row_items:
                evaluated_items.append(line_item_compliance(item, docs_by_item.get(item.id, [])))

        compliance = ComplianceCount()
        for item in evaluated_items:
            compliance = compliance + item.compliance
        compliance = compliance + dc_contribution(dc)

        amount_without_gst = sum(i.amount_without_gst for i in evaluated_items)
        total_amount = sum(i.amount_with_gst for i in evaluated_items)

        name = supplier_names.get(supplier_id)
        if name is None and getattr(first, "supplier", None) is not None:
            name = first.supplier.supplier_name

        groups.append(InvoiceGroup(
            supplier_id=supplier_id,
            supplier_name=name or "Unknown supplier",
            invoice_number=invoice_number,
            deliveries=deliveries,
            latest_grn_date=deliveries[0].grn_date,
            amount_without_gst=money(amount_without_gst),
            gst_amount=money(total_amount - amount_without_gst),
            total_amount=money(total_amount),
            dc_grn_invoice_id=first.id,
            dc=dc,
            line_items=evaluated_items,
            compliance=compliance,
        ))

    groups.sort(key=lambda g: (g.supplier_name.lower(), g.supplier_id, g.invoice_number))
    return groups
