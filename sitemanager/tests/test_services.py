"""
Blob store, BOQ workbook import and Excel report tests
"""
from datetime import date
from io import BytesIO
from types import SimpleNamespace as Row

import pytest
from openpyxl import Workbook, load_workbook

from sitemanager.models.material import DocumentType
from sitemanager.services.boq_import import parse_boq_workbook, parse_sheet
from sitemanager.services.excel_export import (
    build_daily_expense_report,
    build_grn_register,
    build_mir_report,
    daily_report_filename,
    grn_register_filename,
    mir_report_filename,
)
from sitemanager.services.document_status import ReadinessStatus
from sitemanager.services.mir_report import MIROption, MIRReport, MIRRow
from sitemanager.services.storage import (
    BlobStore,
    StorageError,
    StorageErrorKind,
    build_object_path,
    classify_storage_error,
    storage_error_status,
)


def workbook_bytes(sheets):
    wb = Workbook()
    wb.remove(wb.active)
    for title, rows in sheets.items():
        ws = wb.create_sheet(title)
        for row in rows:
            ws.append(row)
    output = BytesIO()
    wb.save(output)
    return output.getvalue()


# ===================== BLOB STORE =====================


class TestBlobStore:
    def test_upload_sign_and_resolve(self, tmp_path):
        store = BlobStore(root=str(tmp_path), secret_key="s3cret")
        store.upload("compliance-docs", "7/dc_1.pdf", b"%PDF-1.4")
        assert store.exists("compliance-docs", "7/dc_1.pdf")

        signed = store.create_signed_url("compliance-docs", "7/dc_1.pdf")
        assert signed["expires_in"] == 3600
        assert signed["signed_url"].startswith("/api/files/")

        token = signed["signed_url"].rsplit("/", 1)[1]
        assert store.resolve_signed_token(token) == ("compliance-docs", "7/dc_1.pdf")

    def test_upload_without_upsert_refuses_overwrite(self, tmp_path):
        store = BlobStore(root=str(tmp_path), secret_key="s3cret")
        store.upload("grn-documents", "1/mir.pdf", b"a")
        with pytest.raises(StorageError):
            store.upload("grn-documents", "1/mir.pdf", b"b")
        store.upload("grn-documents", "1/mir.pdf", b"b", upsert=True)
        assert store.open_path("grn-documents", "1/mir.pdf").read_bytes() == b"b"

    def test_missing_bucket_without_auto_create(self, tmp_path):
        store = BlobStore(root=str(tmp_path), secret_key="s3cret", auto_create_buckets=False)
        with pytest.raises(StorageError) as exc:
            store.upload("compliance-docs", "1/dc.pdf", b"x")
        assert storage_error_status(exc.value)[0] == 503

    def test_path_traversal_rejected(self, tmp_path):
        store = BlobStore(root=str(tmp_path), secret_key="s3cret")
        with pytest.raises(StorageError):
            store.upload("compliance-docs", "../escape.pdf", b"x")

    def test_delete_twice(self, tmp_path):
        store = BlobStore(root=str(tmp_path), secret_key="s3cret")
        store.upload("compliance-docs", "1/tds.pdf", b"x")
        assert store.delete("compliance-docs", "1/tds.pdf") is True
        assert store.delete("compliance-docs", "1/tds.pdf") is False

    def test_token_from_other_key_rejected(self, tmp_path):
        store = BlobStore(root=str(tmp_path), secret_key="s3cret")
        other = BlobStore(root=str(tmp_path), secret_key="different")
        store.upload("compliance-docs", "1/dc.pdf", b"x")
        token = other.create_signed_url("compliance-docs", "1/dc.pdf")["signed_url"].rsplit("/", 1)[1]
        with pytest.raises(StorageError):
            store.resolve_signed_token(token)

    def test_object_path_layout(self):
        path = build_object_path(42, "test_certificate", "Report.PDF")
        owner, name = path.split("/")
        assert owner == "42"
        assert name.startswith("test_certificate_")
        assert name.endswith(".pdf")

    @pytest.mark.parametrize("message,kind", [
        ("Bucket not found: compliance-docs", StorageErrorKind.BUCKET_NOT_FOUND),
        ("new row violates row-level security policy", StorageErrorKind.PERMISSION_DENIED),
        ("Permission denied writing 1/dc.pdf", StorageErrorKind.PERMISSION_DENIED),
        ("Object not found: 1/dc.pdf", StorageErrorKind.NOT_FOUND),
        ("disk full", StorageErrorKind.GENERIC),
    ])
    def test_classification(self, message, kind):
        assert classify_storage_error(StorageError(message))[0] == kind


# ===================== BOQ IMPORT =====================


class TestBOQImport:
    def test_parse_workbook(self):
        content = workbook_bytes({
            "Civil": [
                ["Civil & Interior Package"],
                ["S.No", "Description", "Location", "Unit", "Qty"],
                [1, "Flooring", None, None, None],
                [1.1, "Vitrified tiles", "Lobby", "sqm", 120],
                ["1.10", "Skirting", "Lobby", "rmt", "n/a"],
                [2, "Painting", None, None, None],
                [2.1, "Emulsion", "All floors", "sqm", 900.5],
            ],
            "Notes": [["just a note"]],
        })
        result = parse_boq_workbook(content)

        assert result.success
        assert len(result.packages) == 1
        package = result.packages[0]
        assert package.package_name == "Civil & Interior Package"
        assert [h.name for h in package.headlines] == ["Flooring", "Painting"]

        flooring = package.headlines[0]
        assert [li.item_number for li in flooring.line_items] == ["1.1", "1.10"]
        assert flooring.line_items[0].quantity == 120
        assert flooring.line_items[1].quantity == 0
        assert package.headlines[1].line_items[0].quantity == 900.5
        assert any("insufficient data" in w for w in result.warnings)

    def test_line_item_before_headline_opens_default(self):
        warnings = []
        rows = [
            ("Sl.No", "Description", "Location", "Unit", "Qty"),
            (3.1, "Conduit", "Level 2", "rmt", 40),
            (3.2, "Wiring", "Level 2", "rmt", 80),
        ]
        package = parse_sheet(rows, "Electrical", warnings)
        assert package.package_name == "Electrical"
        assert package.headlines[0].serial_number == 3
        assert package.headlines[0].name == "Item 3"
        assert len(package.headlines[0].line_items) == 2

    def test_sheet_without_header(self):
        warnings = []
        rows = [("a", "b", "c", "d"), (1, "x", "", ""), (1.1, "y", "", "")]
        assert parse_sheet(rows, "Loose", warnings) is None
        assert warnings == ['No header row found in sheet "Loose"']

    def test_non_finite_cells_are_skipped(self):
        content = workbook_bytes({
            "Civil": [
                ["Civil Package"],
                ["S.No", "Description", "Location", "Unit", "Qty"],
                ["inf", "bad row", None, None, None],
                [1, "Flooring", None, None, None],
                ["nan", "not a number", None, None, None],
                [1.1, "Vitrified tiles", "Lobby", "sqm", "inf"],
            ],
        })
        result = parse_boq_workbook(content)

        assert result.success
        flooring = result.packages[0].headlines[0]
        assert flooring.name == "Flooring"
        assert [li.description for li in flooring.line_items] == ["Vitrified tiles"]
        assert flooring.line_items[0].quantity == 0

    def test_unreadable_file(self):
        result = parse_boq_workbook(b"not an excel file")
        assert not result.success
        assert result.error


# ===================== EXCEL REPORTS =====================


class TestExcelReports:
    def test_grn_register(self):
        grn = Row(
            grn_date=date(2026, 2, 14), material_name="TMT Bar 12mm", vendor_name="Bharat Steel",
            invoice_number="BS-901", invoice_amount=52000.0, quantity=2.5, unit="MT", notes=None,
            compliance_docs=[
                Row(document_type=DocumentType.DC, is_applicable=True, is_uploaded=True),
                Row(document_type=DocumentType.MIR, is_applicable=False, is_uploaded=False),
            ],
        )
        ws = load_workbook(build_grn_register([grn])).active
        assert ws.title == "MIR Report"
        row = [c.value for c in ws[2]]
        assert row[:3] == [1, "14/02/2026", "TMT Bar 12mm"]
        assert row[8:12] == ["Y", "NA", "N", "N"]
        assert grn_register_filename("Tower A", date(2026, 2, 14)) == "MIR_Report_Tower_A_2026-02-14.xlsx"

    def test_mir_report(self):
        report = MIRReport(
            site_id=1,
            mir=MIROption(grn_date=date(2026, 1, 22), mir_number=3, label="MIR 3 - 22 Jan 2026",
                          formatted_date="22 Jan 2026"),
            rows=[
                MIRRow(sno=1, grn_invoice_id=1, invoice_number="INV-1", material="Cement", quantity=50, unit="bag",
                       dc=ReadinessStatus.YES, test_certificate=ReadinessStatus.NO, tds=ReadinessStatus.NOT_APPLICABLE),
                MIRRow(sno=2, grn_invoice_id=1, invoice_number="INV-1", material="Sand", quantity=200, unit="cft",
                       test_certificate=ReadinessStatus.YES, tds=ReadinessStatus.NO),
            ],
        )
        ws = load_workbook(build_mir_report("Tower A", report)).active
        assert ws.title == "MIR 3"
        assert ws.cell(row=1, column=1).value == "MATERIAL INSPECTION REPORT"
        assert ws.cell(row=4, column=2).value == "MIR 3"
        assert [c.value for c in ws[8]] == [1, "INV-1", "Cement", 50, "bag", "Y", "N", "NA"]
        assert ws.cell(row=9, column=6).value is None
        assert mir_report_filename("Tower A", 3, date(2026, 1, 22)) == "MIR_3_Tower_A_2026-01-22.xlsx"

    def test_daily_expense_report(self):
        invoices = [Row(
            invoice_number="INV-1", grn_date=date(2026, 5, 3),
            supplier=Row(supplier_name="Acme"),
            line_items=[Row(material_name="Cement", quantity=10, unit="bag", rate=100,
                            gst_rate=18, amount_without_gst=1000, amount_with_gst=1180)],
        )]
        manpower = [Row(manpower_category="Mason", contractor_name="RK Labour", gender="male", num_persons=2,
                        start_time="09:00", end_time="17:00", hours=8, rate=100, amount=1600, notes=None)]
        other = [Row(description="Site tea", amount=220, notes=None)]

        wb = load_workbook(build_daily_expense_report("Tower A", date(2026, 5, 3), invoices, manpower, [], other))
        assert wb.sheetnames[0] == "Summary"
        summary = {r[0]: r[1] for r in wb["Summary"].iter_rows(values_only=True) if r and r[0]}
        assert summary["Material (from GRN)"] == 1180
        assert summary["Manpower"] == 1600
        assert summary["GRAND TOTAL"] == 3000
        assert daily_report_filename("Tower A", date(2026, 5, 3)) == "Expenses_Tower_A_20260503.xlsx"
