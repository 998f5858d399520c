"""
Material inspection reports (MIR) for GRN invoices.

Each distinct GRN date of a site is one MIR, numbered from 1 in date order.
A report lists every line item received that day with its DC, test
certificate and TDS status.
"""
from datetime import date
from typing import Iterable, List, Optional

from pydantic import BaseModel

from sitemanager.models.material import DocumentType
from sitemanager.services.document_status import ReadinessStatus, single_record_status
from sitemanager.utils.helpers import to_float


class MIROption(BaseModel):
    grn_date: date
    mir_number: int
    label: str
    formatted_date: str


class MIRRow(BaseModel):
    sno: int
    grn_invoice_id: int
    invoice_number: str
    supplier_name: Optional[str] = None
    material: str
    quantity: float
    unit: str
    # shown on the first line item of an invoice only
    dc: Optional[ReadinessStatus] = None
    test_certificate: ReadinessStatus
    tds: ReadinessStatus


class MIRReport(BaseModel):
    site_id: int
    mir: MIROption
    rows: List[MIRRow]


def format_mir_date(value: date) -> str:
    return value.strftime("%d %b %Y")


def mir_options(invoices: Iterable) -> List[MIROption]:
    dates = sorted({inv.grn_date for inv in invoices})
    return [
        MIROption(
            grn_date=d,
            mir_number=number,
            label=f"MIR {number} - {format_mir_date(d)}",
            formatted_date=format_mir_date(d),
        )
        for number, d in enumerate(dates, start=1)
    ]


def find_mir_option(invoices: Iterable, grn_date: date) -> Optional[MIROption]:
    return next((o for o in mir_options(invoices) if o.grn_date == grn_date), None)


def _document(documents: Iterable, document_type: DocumentType):
    return next((d for d in documents if d.document_type == document_type), None)


def build_mir_rows(invoices: Iterable, grn_date: date) -> List[MIRRow]:
    """Rows of the MIR for `grn_date`; invoices and their line items in id order"""
    rows = []
    selected = sorted((inv for inv in invoices if inv.grn_date == grn_date), key=lambda inv: inv.id)

    for inv in selected:
        supplier = getattr(inv, "supplier", None)
        dc_status = single_record_status(getattr(inv, "dc", None)).status

        for index, item in enumerate(sorted(inv.line_items, key=lambda i: i.id)):
            documents = list(item.documents or [])
            rows.append(MIRRow(
                sno=len(rows) + 1,
                grn_invoice_id=inv.id,
                invoice_number=inv.invoice_number,
                supplier_name=supplier.supplier_name if supplier else None,
                material=item.material_name,
                quantity=to_float(item.quantity),
                unit=item.unit,
                dc=dc_status if index == 0 else None,
                test_certificate=single_record_status(_document(documents, DocumentType.TEST_CERTIFICATE)).status,
                tds=single_record_status(_document(documents, DocumentType.TDS)).status,
            ))

    return rows
