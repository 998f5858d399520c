"""
Excel reports built with openpyxl: the legacy GRN register, the
material inspection report (MIR) of one GRN date and the daily site expense
report.
"""
import re
from datetime import date, datetime
from io import BytesIO
from typing import Iterable, List, Sequence

from openpyxl import Workbook
from openpyxl.styles import Font
from openpyxl.utils import get_column_letter

from sitemanager.models.material import DocumentType
from sitemanager.services.document_status import legacy_document_status
from sitemanager.utils.helpers import money, to_float

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"

GRN_REGISTER_COLUMNS = [
    ("S.No", 6),
    ("Date", 12),
    ("Material", 30),
    ("Vendor", 20),
    ("Invoice No.", 15),
    ("Invoice Amount (₹)", 15),
    ("Quantity", 10),
    ("Unit", 8),
    ("DC", 6),
    ("MIR", 6),
    ("Test Certificate", 15),
    ("TDS", 6),
    ("Notes", 30),
]


def safe_name(value: str, limit: int = 0) -> str:
    cleaned = re.sub(r"[^a-zA-Z0-9]", "_", value or "Unknown Site")
    return cleaned[:limit] if limit else cleaned


def _set_widths(ws, widths: Sequence[int]) -> None:
    for idx, width in enumerate(widths, start=1):
        ws.column_dimensions[get_column_letter(idx)].width = width


def _bold_row(ws, row_idx: int) -> None:
    for cell in ws[row_idx]:
        cell.font = Font(bold=True)


def _save(wb: Workbook) -> BytesIO:
    output = BytesIO()
    wb.save(output)
    output.seek(0)
    return output


def grn_register_filename(site_name: str, on: date = None) -> str:
    on = on or date.today()
    return f"MIR_Report_{safe_name(site_name)}_{on.isoformat()}.xlsx"


def build_grn_register(grns: Iterable) -> BytesIO:
    """One row per legacy GRN record with its four document statuses"""
    wb = Workbook()
    ws = wb.active
    ws.title = "MIR Report"

    ws.append([title for title, _ in GRN_REGISTER_COLUMNS])
    _bold_row(ws, 1)

    for index, grn in enumerate(grns, start=1):
        docs = list(grn.compliance_docs or [])
        ws.append([
            index,
            grn.grn_date.strftime("%d/%m/%Y") if grn.grn_date else "",
            grn.material_name,
            grn.vendor_name,
            grn.invoice_number or "",
            grn.invoice_amount if grn.invoice_amount is not None else "",
            grn.quantity,
            grn.unit,
            legacy_document_status(docs, DocumentType.DC).value,
            legacy_document_status(docs, DocumentType.MIR).value,
            legacy_document_status(docs, DocumentType.TEST_CERTIFICATE).value,
            legacy_document_status(docs, DocumentType.TDS).value,
            grn.notes or "",
        ])

    _set_widths(ws, [width for _, width in GRN_REGISTER_COLUMNS])
    return _save(wb)


MIR_COLUMNS = [
    ("S.No", 6),
    ("Invoice No.", 15),
    ("Material", 35),
    ("Qty", 10),
    ("Unit", 8),
    ("DC", 6),
    ("Test Cert", 10),
    ("TDS", 6),
]


def mir_report_filename(site_name: str, mir_number: int, grn_date: date) -> str:
    return f"MIR_{mir_number}_{safe_name(site_name)}_{grn_date.isoformat()}.xlsx"


def build_mir_report(site_name: str, report) -> BytesIO:
    """Header block (site, MIR reference, date) followed by one row per line item"""
    wb = Workbook()
    ws = wb.active
    ws.title = f"MIR {report.mir.mir_number}"

    ws.append(["MATERIAL INSPECTION REPORT"])
    ws.append([])
    ws.append(["Site:", site_name])
    ws.append(["MIR Reference:", f"MIR {report.mir.mir_number}"])
    ws.append(["Date:", report.mir.formatted_date])
    ws.append([])
    ws.append([title for title, _ in MIR_COLUMNS])
    _bold_row(ws, 1)
    _bold_row(ws, 7)

    for row in report.rows:
        ws.append([
            row.sno,
            row.invoice_number,
            row.material,
            row.quantity,
            row.unit,
            row.dc.value if row.dc else None,
            row.test_certificate.value,
            row.tds.value,
        ])

    _set_widths(ws, [width for _, width in MIR_COLUMNS])
    return _save(wb)


def daily_report_filename(site_name: str, on: date) -> str:
    return f"Expenses_{safe_name(site_name, 20)}_{on.strftime('%Y%m%d')}.xlsx"


def build_daily_expense_report(
    site_name: str,
    on: date,
    invoices: List,
    manpower: List,
    equipment: List,
    other: List,
) -> BytesIO:
    """Summary sheet plus one sheet per expense category"""
    material_without = sum(to_float(i.amount_without_gst) for inv in invoices for i in inv.line_items)
    material_total = money(sum(to_float(i.amount_with_gst) for inv in invoices for i in inv.line_items))
    manpower_total = money(sum(to_float(e.amount) for e in manpower))
    equipment_total = money(sum(to_float(e.amount) for e in equipment))
    other_total = money(sum(to_float(e.amount) for e in other))
    grand_total = money(material_total + manpower_total + equipment_total + other_total)

    wb = Workbook()

    # Summary
    ws = wb.active
    ws.title = "Summary"
    for row in [
        ["DAILY EXPENSE REPORT"],
        [],
        ["Site:", site_name],
        ["Date:", on.strftime("%d %b %Y")],
        ["Generated:", datetime.now().strftime("%d/%m/%Y %H:%M")],
        [],
        ["EXPENSE SUMMARY"],
        [],
        ["Category", "Amount (INR)"],
        ["Material (from GRN)", material_total],
        ["Manpower", manpower_total],
        ["Equipment", equipment_total],
        ["Other", other_total],
        [],
        ["GRAND TOTAL", grand_total],
    ]:
        ws.append(row)
    _bold_row(ws, 1)
    _bold_row(ws, 15)
    _set_widths(ws, [25, 20])

    # Material
    ws = wb.create_sheet("Material")
    ws.append(["MATERIAL EXPENSES (FROM GRN)"])
    ws.append([])
    ws.append(["Invoice No", "Supplier", "Material", "Quantity", "Unit", "Amount (Excl GST)", "Amount (Incl GST)"])
    for invoice in invoices:
        supplier_name = invoice.supplier.supplier_name if invoice.supplier else ""
        for idx, item in enumerate(invoice.line_items):
            ws.append([
                invoice.invoice_number if idx == 0 else "",
                supplier_name if idx == 0 else "",
                item.material_name,
                item.quantity,
                item.unit,
                item.amount_without_gst,
                item.amount_with_gst,
            ])
    if invoices:
        ws.append([])
        ws.append(["", "", "", "", "TOTAL", money(material_without), material_total])
    _set_widths(ws, [15, 20, 25, 10, 8, 15, 15])

    # Manpower
    ws = wb.create_sheet("Manpower")
    ws.append(["MANPOWER EXPENSES"])
    ws.append([])
    ws.append(["Contractor", "Category", "Gender", "Persons", "Start Time", "End Time", "Hours", "Rate/Hr", "Amount", "Remarks"])
    for exp in manpower:
        ws.append([
            exp.contractor_name or "-",
            exp.manpower_category,
            exp.gender or "-",
            exp.num_persons or 1,
            exp.start_time or "-",
            exp.end_time or "-",
            exp.hours,
            exp.rate,
            exp.amount,
            exp.notes or "",
        ])
    if manpower:
        ws.append([])
        ws.append(["", "", "", "", "", "", "", "TOTAL", manpower_total, ""])
    _set_widths(ws, [18, 15, 8, 8, 10, 10, 8, 10, 12, 25])

    # Equipment
    ws = wb.create_sheet("Equipment")
    ws.append(["EQUIPMENT EXPENSES"])
    ws.append([])
    ws.append(["Equipment", "Hours", "Rate/Hr", "Amount", "Notes"])
    for exp in equipment:
        ws.append([exp.equipment_name, exp.hours, exp.rate, exp.amount, exp.notes or ""])
    if equipment:
        ws.append([])
        ws.append(["", "", "TOTAL", equipment_total, ""])
    _set_widths(ws, [25, 10, 12, 12, 30])

    # Other
    ws = wb.create_sheet("Other")
    ws.append(["OTHER EXPENSES"])
    ws.append([])
    ws.append(["Description", "Amount", "Notes"])
    for exp in other:
        ws.append([exp.description, exp.amount, exp.notes or ""])
    if other:
        ws.append([])
        ws.append(["TOTAL", other_total, ""])
    _set_widths(ws, [35, 15, 30])

    return _save(wb)
