"""
API endpoint tests for all routes.
Uses in-memory SQLite + dependency-overridden FastAPI test client.
"""
from contextlib import asynccontextmanager
from datetime import date, timedelta
from io import BytesIO

import pytest
from openpyxl import Workbook, load_workbook
from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from sitemanager import main
from sitemanager.config import get_settings
from sitemanager.models.boq import BOQHeadline, BOQLineItem
from sitemanager.models.expense import ManpowerExpense
from sitemanager.models.master_material import MasterMaterial
from sitemanager.models.material import Material
from sitemanager.models.supplier import Supplier
from sitemanager.models.user import User


PDF = ("doc.pdf", b"%PDF-1.4 test document", "application/pdf")
XLSX = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


async def make_line_item(db, package, item_number="1.1", quantity=100):
    headline = BOQHeadline(package_id=package.id, serial_number=1, name="Flooring")
    db.add(headline)
    await db.flush()
    item = BOQLineItem(
        headline_id=headline.id, item_number=item_number, description="Vitrified tiles",
        unit="sqm", quantity=quantity,
    )
    db.add(item)
    await db.commit()
    return headline, item


async def make_material(db, line_item, name="Tiles", unit="box"):
    material = Material(line_item_id=line_item.id, name=name, unit=unit)
    db.add(material)
    await db.commit()
    return material


async def make_supplier(db, name="Acme Traders"):
    supplier = Supplier(supplier_name=name, is_active=True)
    db.add(supplier)
    await db.commit()
    return supplier


# ===================== HEALTH / ROOT =====================


async def test_root(client):
    r = await client.get("/")
    assert r.status_code == 200
    assert r.json()["status"] == "running"


async def test_health(client):
    r = await client.get("/health")
    assert r.status_code == 200
    assert r.json()["status"] == "healthy"


async def test_seed_admin_runs_once(db_session, monkeypatch):
    @asynccontextmanager
    async def scope():
        yield db_session
        await db_session.commit()

    monkeypatch.setattr(main, "session_scope", scope)
    await main.seed_admin()
    await main.seed_admin()

    email = get_settings().DEFAULT_ADMIN_EMAIL
    count = await db_session.scalar(select(func.count()).select_from(User).where(User.email == email))
    assert count == 1


# ===================== AUTH =====================


async def test_login_success(unauth_client, seed_data):
    r = await unauth_client.post(
        "/api/auth/login",
        data={"username": "test@site.local", "password": "testpass123"},
    )
    assert r.status_code == 200
    assert "access_token" in r.json()


async def test_login_wrong_password(unauth_client, seed_data):
    r = await unauth_client.post(
        "/api/auth/login",
        data={"username": "test@site.local", "password": "wrong"},
    )
    assert r.status_code == 401


async def test_register_new_user(unauth_client, seed_data):
    r = await unauth_client.post(
        "/api/auth/register",
        json={"email": "engineer@site.local", "full_name": "Site Engineer", "password": "pass123"},
    )
    assert r.status_code == 200
    assert r.json()["email"] == "engineer@site.local"


async def test_register_duplicate_email(unauth_client, seed_data):
    r = await unauth_client.post(
        "/api/auth/register",
        json={"email": "test@site.local", "full_name": "Dup", "password": "pass123"},
    )
    assert r.status_code == 400


async def test_get_me(client):
    r = await client.get("/api/auth/me")
    assert r.status_code == 200
    assert r.json()["email"] == "test@site.local"


async def test_protected_route_no_token(unauth_client, seed_data):
    r = await unauth_client.get("/api/sites/")
    assert r.status_code == 401


# ===================== SITES =====================


async def test_list_sites(client):
    r = await client.get("/api/sites/")
    assert r.status_code == 200
    assert {s["name"] for s in r.json()} == {"Tower A", "City Mall"}


async def test_create_site_duplicate_name(client):
    r = await client.post("/api/sites/", json={"name": "Tower A"})
    assert r.status_code == 409


async def test_update_site_status(client, seed_data):
    r = await client.put(f"/api/sites/{seed_data['mall'].id}", json={"status": "on_hold"})
    assert r.status_code == 200
    assert r.json()["status"] == "on_hold"

    r = await client.get("/api/sites/", params={"status": "on_hold"})
    assert [s["name"] for s in r.json()] == ["City Mall"]


async def test_packages(client, seed_data):
    site_id = seed_data["mall"].id
    r = await client.post(f"/api/sites/{site_id}/packages", json={"name": "MEP", "code": "MEP"})
    assert r.status_code == 200
    package_id = r.json()["id"]

    r = await client.get(f"/api/sites/{site_id}/packages")
    assert [p["name"] for p in r.json()] == ["MEP"]

    r = await client.delete(f"/api/sites/packages/{package_id}")
    assert r.status_code == 200


async def test_get_site_not_found(client):
    r = await client.get("/api/sites/9999")
    assert r.status_code == 404


# ===================== BOQ =====================


async def test_headline_and_line_items_sorted(client, seed_data):
    r = await client.post("/api/boq/headlines", json={
        "package_id": seed_data["civil"].id, "serial_number": 1, "name": "Flooring",
    })
    assert r.status_code == 200
    headline_id = r.json()["id"]

    for number in ("1.10", "1.2", "1.1"):
        r = await client.post("/api/boq/line-items", json={
            "headline_id": headline_id, "item_number": number,
            "description": f"Item {number}", "unit": "sqm", "quantity": 10,
        })
        assert r.status_code == 200

    r = await client.get(f"/api/boq/headlines/{headline_id}/line-items")
    assert [li["item_number"] for li in r.json()] == ["1.1", "1.2", "1.10"]

    r = await client.get("/api/boq/headlines", params={"site_id": seed_data["tower"].id})
    assert [h["name"] for h in r.json()] == ["Flooring"]


async def test_line_item_negative_quantity(client, db_session, seed_data):
    headline, _ = await make_line_item(db_session, seed_data["civil"])
    r = await client.post("/api/boq/line-items", json={
        "headline_id": headline.id, "item_number": "1.2",
        "description": "Skirting", "unit": "rmt", "quantity": -1,
    })
    assert r.status_code == 422


async def test_headlines_need_scope(client):
    r = await client.get("/api/boq/headlines")
    assert r.status_code == 400


def _boq_workbook():
    wb = Workbook()
    ws = wb.active
    ws.title = "Interiors"
    for row in [
        ["Interior Fit-out"],
        ["S.No", "Description", "Location", "Unit", "Qty"],
        [1, "False ceiling", None, None, None],
        [1.1, "Gypsum board ceiling", "Level 1", "sqm", 450],
        [1.2, "Grid ceiling", "Level 2", "sqm", 300],
    ]:
        ws.append(row)
    output = BytesIO()
    wb.save(output)
    return output.getvalue()


async def test_boq_import_dry_run_and_commit(client, seed_data):
    site_id = seed_data["mall"].id
    upload = {"file": ("boq.xlsx", _boq_workbook(), XLSX)}

    r = await client.post(f"/api/boq/sites/{site_id}/import", params={"dry_run": True}, files=upload)
    assert r.status_code == 200
    data = r.json()
    assert data["dry_run"] is True
    assert data["packages_created"] == 0
    assert data["parse"]["packages"][0]["package_name"] == "Interior Fit-out"

    r = await client.get(f"/api/sites/{site_id}/packages")
    assert r.json() == []

    r = await client.post(f"/api/boq/sites/{site_id}/import", files=upload)
    data = r.json()
    assert (data["packages_created"], data["headlines_created"], data["line_items_created"]) == (1, 1, 2)

    r = await client.get("/api/boq/headlines", params={"site_id": site_id})
    assert r.json()[0]["name"] == "False ceiling"


async def test_boq_import_rejects_other_files(client, seed_data):
    r = await client.post(
        f"/api/boq/sites/{seed_data['mall'].id}/import",
        files={"file": ("boq.pdf", b"%PDF", "application/pdf")},
    )
    assert r.status_code == 400


# ===================== MATERIALS & DOCUMENTS =====================


async def test_material_receipts_total(client, db_session, seed_data):
    _, item = await make_line_item(db_session, seed_data["civil"])
    r = await client.post("/api/materials/", json={
        "line_item_id": item.id, "name": "Tile adhesive", "unit": "bag", "required_quantity": 40,
    })
    assert r.status_code == 200
    material_id = r.json()["id"]

    for qty in (10, 15.5):
        r = await client.post(f"/api/materials/{material_id}/receipts", json={
            "receipt_date": "2026-04-02", "quantity_received": qty, "vendor_name": "Acme",
        })
        assert r.status_code == 200

    r = await client.post(f"/api/materials/{material_id}/receipts", json={
        "receipt_date": "2026-04-03", "quantity_received": 0,
    })
    assert r.status_code == 422

    r = await client.get(f"/api/materials/{material_id}")
    assert r.json()["received_quantity"] == 25.5


async def test_document_placeholders_upload_and_signed_url(client, db_session, seed_data, blob_store):
    _, item = await make_line_item(db_session, seed_data["civil"])
    material = await make_material(db_session, item)

    r = await client.get(f"/api/materials/{material.id}/documents")
    assert r.status_code == 200
    docs = r.json()
    assert sorted(d["document_type"] for d in docs) == ["dc", "mir", "tds", "test_certificate"]
    assert all(d["is_applicable"] and not d["is_uploaded"] for d in docs)

    r = await client.post(f"/api/materials/{material.id}/documents/dc/upload", files={"file": PDF})
    assert r.status_code == 200
    dc = r.json()
    assert dc["is_uploaded"] is True
    assert dc["file_path"].startswith(f"{material.id}/dc_")

    r = await client.get(f"/api/materials/{material.id}/documents/dc/signed-url")
    assert r.status_code == 200
    signed = r.json()
    assert signed["expires_in"] == 3600

    r = await client.get(signed["signed_url"])
    assert r.status_code == 200
    assert r.content == PDF[1]

    # Marking NA discards the stored file
    r = await client.put(f"/api/materials/{material.id}/documents/dc/applicability", json={"is_applicable": False})
    assert r.status_code == 200
    assert r.json()["file_path"] is None
    assert not blob_store.exists("compliance-docs", dc["file_path"])

    r = await client.post(f"/api/materials/{material.id}/documents/dc/upload", files={"file": PDF})
    assert r.status_code == 400


async def test_upload_rejects_unknown_extension(client, db_session, seed_data):
    _, item = await make_line_item(db_session, seed_data["civil"])
    material = await make_material(db_session, item)

    r = await client.post(
        f"/api/materials/{material.id}/documents/mir/upload",
        files={"file": ("run.exe", b"MZ", "application/octet-stream")},
    )
    assert r.status_code == 400


async def test_signed_url_invalid_token(unauth_client):
    r = await unauth_client.get("/api/files/not-a-token")
    assert r.status_code == 401


async def test_material_files_kept_until_delete_commits(client, db_session, seed_data, blob_store, monkeypatch):
    _, item = await make_line_item(db_session, seed_data["civil"])
    material = await make_material(db_session, item)
    material_id = material.id
    r = await client.post(f"/api/materials/{material_id}/documents/mir/upload", files={"file": PDF})
    path = r.json()["file_path"]

    async def failing_commit(self):
        raise SQLAlchemyError("database is locked")

    with monkeypatch.context() as patched:
        patched.setattr(AsyncSession, "commit", failing_commit)
        with pytest.raises(SQLAlchemyError):
            await client.delete(f"/api/materials/{material_id}")
    assert blob_store.exists("compliance-docs", path)

    await db_session.rollback()
    r = await client.delete(f"/api/materials/{material_id}")
    assert r.status_code == 200
    assert not blob_store.exists("compliance-docs", path)


# ===================== BILLING READINESS =====================


async def test_readiness_dc_with_uploaded_and_na(client, db_session, seed_data):
    _, item = await make_line_item(db_session, seed_data["civil"])
    tiles = await make_material(db_session, item)
    grout = await make_material(db_session, item, name="Grout", unit="kg")

    await client.post(f"/api/materials/{tiles.id}/documents/dc/upload", files={"file": PDF})
    await client.put(f"/api/materials/{grout.id}/documents/dc/applicability", json={"is_applicable": False})

    r = await client.get(
        f"/api/billing-readiness/sites/{seed_data['tower'].id}", params={"request_id": "req-7"},
    )
    assert r.status_code == 200
    data = r.json()
    assert data["request_id"] == "req-7"
    assert data["total_line_items"] == 1

    line = data["headlines"][0]["line_items"][0]
    assert line["dc"]["status"] == "Y"
    assert len(line["dc"]["files"]) == 1
    assert line["mir"]["status"] == "N"
    assert line["progress"] == 17
    assert data["headlines"][0]["badge"] == "Pending"


async def test_readiness_full_line_item(client, db_session, seed_data):
    _, item = await make_line_item(db_session, seed_data["civil"])
    material = await make_material(db_session, item)

    for doc_type in ("dc", "mir", "test_certificate", "tds"):
        r = await client.post(f"/api/materials/{material.id}/documents/{doc_type}/upload", files={"file": PDF})
        assert r.status_code == 200

    r = await client.post("/api/checklists/templates", json={
        "name": "Tiling QC", "items": ["Surface level checked", "Joints filled"],
    })
    template_id = r.json()["id"]
    r = await client.post("/api/checklists/boq", json={
        "line_item_id": item.id, "template_id": template_id,
        "clearances": [{"clearance_type": "cw", "representative_name": "R. Iyer"}],
    })
    assert r.status_code == 200
    checklist = r.json()
    assert [i["status"] for i in checklist["items"]] == [None, None]
    assert checklist["clearances"][0]["clearance_type"] == "cw"

    r = await client.post(f"/api/checklists/boq/{checklist['id']}/signed-copy", files={"file": PDF})
    assert r.json()["status"] == "completed"

    r = await client.post("/api/jmr/", json={"line_item_id": item.id, "jmr_number": "JMR-01", "status": "approved"})
    assert r.json()["boq_quantity"] == 100
    jmr_id = r.json()["id"]
    r = await client.post(f"/api/jmr/{jmr_id}/file", files={"file": PDF})
    assert r.status_code == 200

    r = await client.get(f"/api/billing-readiness/sites/{seed_data['tower'].id}")
    data = r.json()
    line = data["headlines"][0]["line_items"][0]
    assert line["checklist"]["status"] == "Y"
    assert line["jmr"]["status"] == "Y"
    assert line["progress"] == 100
    assert line["ready_for_billing"] is True
    assert data["ready_line_items"] == 1
    assert data["overall_progress"] == 100
    assert data["headlines"][0]["badge"] == "Ready"


async def test_readiness_empty_site(client, seed_data):
    r = await client.get(f"/api/billing-readiness/sites/{seed_data['mall'].id}")
    assert r.status_code == 200
    assert r.json()["overall_progress"] == 0
    assert r.json()["headlines"] == []


# ===================== CHECKLISTS =====================


async def test_simple_checklist_complete_and_revert(client, db_session, seed_data):
    headline, _ = await make_line_item(db_session, seed_data["civil"])
    r = await client.post("/api/checklists/headline", json={
        "headline_id": headline.id, "name": "Flooring activities",
        "activities": ["Screed", "Tile laying"],
    })
    assert r.status_code == 200
    item_id = r.json()["items"][0]["id"]

    r = await client.put(f"/api/checklists/headline/items/{item_id}", json={"status": "completed"})
    assert r.json()["completed_at"] is not None
    assert r.json()["completed_by"] == "Test User"

    r = await client.put(f"/api/checklists/headline/items/{item_id}", json={"status": "pending"})
    assert r.json()["completed_at"] is None


async def test_duplicate_template(client):
    await client.post("/api/checklists/templates", json={"name": "Paint QC", "items": ["Primer"]})
    r = await client.post("/api/checklists/templates", json={"name": "Paint QC", "items": []})
    assert r.status_code == 409


# ===================== SUPPLIERS =====================


async def test_supplier_crud(client):
    r = await client.post("/api/suppliers/", json={"supplier_name": "Bharat Steel", "gstin": "27abcde1234f1z5"})
    assert r.status_code == 200
    assert r.json()["gstin"] == "27ABCDE1234F1Z5"

    r = await client.post("/api/suppliers/", json={"supplier_name": "Bharat Steel"})
    assert r.status_code == 409

    r = await client.post("/api/suppliers/", json={"supplier_name": "Other", "gstin": "123"})
    assert r.status_code == 422

    r = await client.post("/api/suppliers/", json={"supplier_name": "Other", "gstin": "27ABCDE1234F1Z5"})
    assert r.status_code == 409

    r = await client.get("/api/suppliers/", params={"search": "27abcde"})
    assert [s["supplier_name"] for s in r.json()] == ["Bharat Steel"]


async def test_supplier_with_grns_is_only_deactivated(client, db_session, seed_data):
    used = await make_supplier(db_session, "Used Supplier")
    unused = await make_supplier(db_session, "Unused Supplier")
    await client.post("/api/grn/invoices", json={
        "site_id": seed_data["tower"].id, "supplier_id": used.id,
        "invoice_number": "INV-1", "grn_date": "2026-03-01",
        "line_items": [{"material_name": "Sand", "unit": "cft", "quantity": 1, "rate": 10, "gst_rate": 5}],
    })

    r = await client.delete(f"/api/suppliers/{used.id}")
    assert r.json()["deleted"] is False
    r = await client.get(f"/api/suppliers/{used.id}")
    assert r.json()["is_active"] is False

    r = await client.delete(f"/api/suppliers/{unused.id}")
    assert r.json()["deleted"] is True
    r = await client.get(f"/api/suppliers/{unused.id}")
    assert r.status_code == 404


# ===================== GRN =====================


async def test_create_grn_invoice_amounts(client, db_session, seed_data):
    supplier = await make_supplier(db_session)
    cement = MasterMaterial(name="OPC Cement", category="civil", unit="bag", is_active=True)
    db_session.add(cement)
    await db_session.commit()

    r = await client.post("/api/grn/invoices", json={
        "site_id": seed_data["tower"].id, "supplier_id": supplier.id,
        "invoice_number": "INV-100", "grn_date": "2026-03-01",
        "line_items": [
            {"material_id": cement.id, "quantity": 50, "rate": 380, "gst_rate": 18},
            {"material_name": "River sand", "unit": "cft", "quantity": 200, "rate": 45.5, "gst_rate": 5},
        ],
    })
    assert r.status_code == 200
    data = r.json()
    assert data["line_items"][0]["material_name"] == "OPC Cement"
    assert data["line_items"][0]["unit"] == "bag"
    assert data["line_items"][0]["amount_without_gst"] == 19000
    assert data["line_items"][0]["amount_with_gst"] == 22420
    assert data["line_items"][1]["amount_with_gst"] == 9555
    assert data["amount_with_gst"] == 31975
    assert data["dc_status"] == "N"
    assert data["line_items"][0]["compliance"] == {"applicable": 3, "uploaded": 0, "not_applicable": 0}


async def test_grn_rejects_bad_gst_rate(client, db_session, seed_data):
    supplier = await make_supplier(db_session)
    r = await client.post("/api/grn/invoices", json={
        "site_id": seed_data["tower"].id, "supplier_id": supplier.id,
        "invoice_number": "INV-1", "grn_date": "2026-03-01",
        "line_items": [{"material_name": "Sand", "unit": "cft", "quantity": 1, "rate": 10, "gst_rate": 7}],
    })
    assert r.status_code == 422


async def test_grn_documents(client, db_session, seed_data):
    supplier = await make_supplier(db_session)
    r = await client.post("/api/grn/invoices", json={
        "site_id": seed_data["tower"].id, "supplier_id": supplier.id,
        "invoice_number": "INV-5", "grn_date": "2026-03-01",
        "line_items": [{"material_name": "Sand", "unit": "cft", "quantity": 10, "rate": 50, "gst_rate": 5}],
    })
    invoice = r.json()
    line_id = invoice["line_items"][0]["id"]

    r = await client.post(f"/api/grn/invoices/{invoice['id']}/dc/upload", files={"file": PDF})
    assert r.status_code == 200
    r = await client.put(f"/api/grn/line-items/{line_id}/documents/tds/applicability", json={"is_applicable": False})
    assert r.status_code == 200
    r = await client.post(f"/api/grn/line-items/{line_id}/documents/dc/upload", files={"file": PDF})
    assert r.status_code == 400

    r = await client.get(f"/api/grn/invoices/{invoice['id']}")
    data = r.json()
    assert data["dc_status"] == "Y"
    assert data["line_items"][0]["compliance"] == {"applicable": 2, "uploaded": 0, "not_applicable": 1}

    r = await client.get(f"/api/grn/invoices/{invoice['id']}/dc/url")
    assert r.status_code == 200

    r = await client.delete(f"/api/grn/invoices/{invoice['id']}")
    assert r.status_code == 200
    r = await client.get(f"/api/grn/invoices/{invoice['id']}")
    assert r.status_code == 404


async def test_legacy_grn_register(client, seed_data):
    site_id = seed_data["tower"].id
    r = await client.get("/api/grn/legacy/export", params={"site_id": site_id})
    assert r.status_code == 404

    r = await client.post("/api/grn/legacy", json={
        "site_id": site_id, "grn_date": "2026-02-14", "vendor_name": "Bharat Steel",
        "invoice_number": "BS-901", "material_name": "TMT Bar", "quantity": 2.5, "unit": "MT",
    })
    assert r.status_code == 200
    grn = r.json()
    assert grn["compliance"] == {"applicable": 4, "uploaded": 0, "not_applicable": 0}

    r = await client.put(f"/api/grn/legacy/{grn['id']}/documents/mir/applicability", json={"is_applicable": False})
    assert r.status_code == 200
    r = await client.post(f"/api/grn/legacy/{grn['id']}/documents/dc/upload", files={"file": PDF})
    assert r.status_code == 200

    r = await client.get("/api/grn/legacy", params={"site_id": site_id})
    record = r.json()[0]
    assert record["document_status"] == {"dc": "Y", "mir": "NA", "test_certificate": "N", "tds": "N"}

    r = await client.get("/api/grn/legacy/export", params={"site_id": site_id})
    assert r.status_code == 200
    ws = load_workbook(BytesIO(r.content)).active
    assert ws.cell(row=2, column=3).value == "TMT Bar"


async def test_mir_report_by_grn_date(client, db_session, seed_data):
    supplier = await make_supplier(db_session)
    site_id = seed_data["tower"].id
    invoices = []
    for number, grn_date, items in (
        ("INV-1", "2026-01-22", [("Cement", "bag", 50), ("Sand", "cft", 200)]),
        ("INV-2", "2026-01-25", [("TMT Bar", "MT", 2)]),
    ):
        r = await client.post("/api/grn/invoices", json={
            "site_id": site_id, "supplier_id": supplier.id, "invoice_number": number, "grn_date": grn_date,
            "line_items": [
                {"material_name": name, "unit": unit, "quantity": qty, "rate": 100, "gst_rate": 18}
                for name, unit, qty in items
            ],
        })
        assert r.status_code == 200
        invoices.append(r.json())

    first = invoices[0]
    await client.post(f"/api/grn/invoices/{first['id']}/dc/upload", files={"file": PDF})
    sand_id = first["line_items"][1]["id"]
    await client.put(f"/api/grn/line-items/{sand_id}/documents/tds/applicability", json={"is_applicable": False})

    r = await client.get(f"/api/grn/sites/{site_id}/mir")
    assert r.status_code == 200
    assert [o["label"] for o in r.json()] == ["MIR 1 - 22 Jan 2026", "MIR 2 - 25 Jan 2026"]

    r = await client.get(f"/api/grn/sites/{site_id}/mir/2026-01-22")
    assert r.status_code == 200
    report = r.json()
    assert report["mir"]["mir_number"] == 1
    rows = report["rows"]
    assert [row["material"] for row in rows] == ["Cement", "Sand"]
    assert [row["dc"] for row in rows] == ["Y", None]
    assert rows[0]["test_certificate"] == "N"
    assert rows[1]["tds"] == "NA"

    r = await client.get(f"/api/grn/sites/{site_id}/mir/2026-01-23")
    assert r.status_code == 404

    r = await client.get(f"/api/grn/sites/{site_id}/mir/2026-01-25/export")
    assert r.status_code == 200
    assert "MIR_2_Tower_A_2026-01-25.xlsx" in r.headers["content-disposition"]
    ws = load_workbook(BytesIO(r.content)).active
    assert ws.title == "MIR 2"
    assert ws.cell(row=8, column=3).value == "TMT Bar"


async def test_site_inventory(client, db_session, seed_data):
    site_id = seed_data["tower"].id
    r = await client.get(f"/api/grn/sites/{site_id}/inventory")
    assert r.status_code == 200
    assert r.json() == {"site_id": site_id, "total_materials": 0, "categories": []}

    supplier = await make_supplier(db_session)
    cement = MasterMaterial(name="OPC Cement", category="Civil", unit="bag", is_active=True)
    db_session.add(cement)
    await db_session.commit()
    cement_id = cement.id

    for number, grn_date, qty in (("INV-1", "2026-03-01", 50), ("INV-2", "2026-03-09", 30)):
        r = await client.post("/api/grn/invoices", json={
            "site_id": site_id, "supplier_id": supplier.id, "invoice_number": number, "grn_date": grn_date,
            "line_items": [{"material_id": cement_id, "quantity": qty, "rate": 380, "gst_rate": 18}],
        })
        assert r.status_code == 200
    r = await client.post("/api/grn/legacy", json={
        "site_id": site_id, "grn_date": "2026-03-05", "vendor_name": "Bharat Steel",
        "material_name": "Binding wire", "quantity": 25, "unit": "kg",
    })
    assert r.status_code == 200

    r = await client.get(f"/api/grn/sites/{site_id}/inventory")
    data = r.json()
    assert data["total_materials"] == 2
    assert [c["category"] for c in data["categories"]] == ["Civil", "Uncategorized"]
    cement_row = data["categories"][0]["items"][0]
    assert cement_row["total_quantity"] == 80
    assert cement_row["receipt_count"] == 2
    assert cement_row["last_receipt_date"] == "2026-03-09"
    assert data["categories"][1]["items"][0]["material_name"] == "Binding wire"

    r = await client.get(f"/api/grn/sites/{site_id}/inventory", params={"search": "wire"})
    assert r.json()["total_materials"] == 1


async def test_grn_files_kept_until_delete_commits(client, db_session, seed_data, blob_store, monkeypatch):
    supplier = await make_supplier(db_session)
    r = await client.post("/api/grn/invoices", json={
        "site_id": seed_data["tower"].id, "supplier_id": supplier.id,
        "invoice_number": "INV-8", "grn_date": "2026-03-01",
        "line_items": [{"material_name": "Sand", "unit": "cft", "quantity": 10, "rate": 50, "gst_rate": 5}],
    })
    invoice_id = r.json()["id"]
    r = await client.post(f"/api/grn/invoices/{invoice_id}/dc/upload", files={"file": PDF})
    path = r.json()["file_path"]

    async def failing_commit(self):
        raise SQLAlchemyError("database is locked")

    with monkeypatch.context() as patched:
        patched.setattr(AsyncSession, "commit", failing_commit)
        with pytest.raises(SQLAlchemyError):
            await client.delete(f"/api/grn/invoices/{invoice_id}")
    assert blob_store.exists("grn-documents", path)

    await db_session.rollback()
    r = await client.delete(f"/api/grn/invoices/{invoice_id}")
    assert r.status_code == 200
    assert not blob_store.exists("grn-documents", path)


# ===================== SUPPLIER INVOICES & PAYMENTS =====================


async def _two_deliveries(client, db_session, seed_data):
    supplier = await make_supplier(db_session, "Acme")
    for grn_date, rate in (("2026-03-01", 10000), ("2026-03-04", 5000)):
        r = await client.post("/api/grn/invoices", json={
            "site_id": seed_data["tower"].id, "supplier_id": supplier.id,
            "invoice_number": "INV-100", "grn_date": grn_date,
            "line_items": [{"material_name": "Cement", "unit": "bag", "quantity": 1, "rate": rate, "gst_rate": 5}],
        })
        assert r.status_code == 200
    return supplier


async def test_invoice_grouping_and_payments(client, db_session, seed_data):
    supplier = await _two_deliveries(client, db_session, seed_data)
    site_id = seed_data["tower"].id

    r = await client.get(f"/api/supplier-invoices/sites/{site_id}", params={"request_id": "r1"})
    assert r.status_code == 200
    data = r.json()
    assert data["request_id"] == "r1"
    assert len(data["invoices"]) == 1
    group = data["invoices"][0]["invoice"]
    assert group["total_amount"] == 15750
    assert len(group["deliveries"]) == 2
    assert data["invoices"][0]["payment"]["payment_status"] == "pending"

    r = await client.post(f"/api/supplier-invoices/sites/{site_id}/payments", json={
        "supplier_id": supplier.id, "invoice_number": "INV-100",
        "amount": 12000, "payment_reference": "UTR-001",
    })
    assert r.status_code == 200
    assert r.json()["payment_status"] == "partial"
    assert r.json()["balance"] == 3750

    r = await client.get(f"/api/supplier-invoices/sites/{site_id}")
    payment = r.json()["invoices"][0]["payment"]
    assert payment["payment_status"] == "partial"
    assert payment["balance"] == 3750

    r = await client.post(f"/api/supplier-invoices/sites/{site_id}/payments", json={
        "supplier_id": supplier.id, "invoice_number": "INV-100",
        "amount": 3750, "payment_reference": "UTR-002",
    })
    assert r.json()["payment_status"] == "paid"
    assert r.json()["payment_amount"] == 15750
    assert r.json()["balance"] == 0

    r = await client.get(f"/api/supplier-invoices/sites/{site_id}")
    summary = r.json()["suppliers"][0]
    assert summary["paid_count"] == 1
    assert summary["pending_amount"] == 0


async def test_paid_invoice_reopens_after_later_delivery(client, db_session, seed_data):
    supplier = await _two_deliveries(client, db_session, seed_data)
    site_id = seed_data["tower"].id

    r = await client.post(f"/api/supplier-invoices/sites/{site_id}/payments", json={
        "supplier_id": supplier.id, "invoice_number": "INV-100",
        "amount": 15750, "payment_reference": "UTR-001",
    })
    assert r.json()["payment_status"] == "paid"

    r = await client.post("/api/grn/invoices", json={
        "site_id": site_id, "supplier_id": supplier.id,
        "invoice_number": "INV-100", "grn_date": "2026-03-08",
        "line_items": [{"material_name": "Cement", "unit": "bag", "quantity": 1, "rate": 1000, "gst_rate": 5}],
    })
    assert r.status_code == 200

    r = await client.get(f"/api/supplier-invoices/sites/{site_id}")
    data = r.json()
    payment = data["invoices"][0]["payment"]
    assert payment["payment_status"] == "partial"
    assert payment["paid_amount"] == 15750
    assert payment["balance"] == 1050
    assert data["suppliers"][0]["paid_count"] == 0
    assert data["suppliers"][0]["pending_amount"] == 1050


async def test_payment_validation(client, db_session, seed_data):
    supplier = await _two_deliveries(client, db_session, seed_data)
    url = f"/api/supplier-invoices/sites/{seed_data['tower'].id}/payments"

    r = await client.post(url, json={
        "supplier_id": supplier.id, "invoice_number": "INV-999", "amount": 10, "payment_reference": "X",
    })
    assert r.status_code == 404

    r = await client.post(url, json={
        "supplier_id": supplier.id, "invoice_number": "INV-100", "amount": 0, "payment_reference": "X",
    })
    assert r.status_code == 422

    r = await client.post(url, json={
        "supplier_id": supplier.id, "invoice_number": "INV-100", "amount": 10, "payment_reference": "  ",
    })
    assert r.status_code == 422


# ===================== EXPENSES =====================


async def _manpower_rate(client):
    r = await client.post("/api/expenses/contractors", json={"name": "RK Labour Supply"})
    contractor_id = r.json()["id"]
    r = await client.post("/api/expenses/categories", json={"name": "Mason"})
    category_id = r.json()["id"]
    r = await client.post("/api/expenses/manpower", json={
        "contractor_id": contractor_id, "category_id": category_id,
        "gender": "male", "rate": 800, "daily_hours": 8,
    })
    assert r.status_code == 200
    assert r.json()["hourly_rate"] == 100
    return r.json()["id"]


async def test_daily_expenses(client, db_session, seed_data):
    site_id = seed_data["tower"].id
    manpower_id = await _manpower_rate(client)

    r = await client.post("/api/expenses/manpower-entries", json={
        "site_id": site_id, "expense_date": "2026-05-03", "manpower_id": manpower_id,
        "num_persons": 3, "start_time": "09:00", "end_time": "13:30",
    })
    assert r.status_code == 200
    entry = r.json()
    assert entry["hours"] == 4.5
    assert entry["amount"] == 1350
    assert entry["manpower_category"] == "Mason"
    assert entry["contractor_name"] == "RK Labour Supply"

    r = await client.post("/api/expenses/equipment", json={"name": "JCB", "hourly_rate": 1200})
    equipment_id = r.json()["id"]
    r = await client.post("/api/expenses/equipment-entries", json={
        "site_id": site_id, "expense_date": "2026-05-03", "equipment_id": equipment_id, "hours": 2.5,
    })
    assert r.json()["amount"] == 3000

    r = await client.post("/api/expenses/other-entries", json={
        "site_id": site_id, "expense_date": "2026-05-03", "description": "Site tea", "amount": 220,
    })
    assert r.status_code == 200

    supplier = await make_supplier(db_session)
    await client.post("/api/grn/invoices", json={
        "site_id": site_id, "supplier_id": supplier.id, "invoice_number": "INV-9", "grn_date": "2026-05-03",
        "line_items": [{"material_name": "Cement", "unit": "bag", "quantity": 10, "rate": 100, "gst_rate": 18}],
    })

    r = await client.get("/api/expenses/daily", params={"site_id": site_id, "expense_date": "2026-05-03"})
    assert r.status_code == 200
    data = r.json()
    assert data["material_total"] == 1180
    assert data["manpower_total"] == 1350
    assert data["equipment_total"] == 3000
    assert data["other_total"] == 220
    assert data["grand_total"] == 5750

    r = await client.get("/api/expenses/daily/export", params={"site_id": site_id, "expense_date": "2026-05-03"})
    assert r.status_code == 200
    assert load_workbook(BytesIO(r.content)).sheetnames == ["Summary", "Material", "Manpower", "Equipment", "Other"]


async def test_rate_change_keeps_recorded_amounts(client, db_session, seed_data):
    manpower_id = await _manpower_rate(client)
    r = await client.post("/api/expenses/manpower-entries", json={
        "site_id": seed_data["tower"].id, "expense_date": "2026-05-03", "manpower_id": manpower_id,
        "num_persons": 1, "start_time": "08:00", "end_time": "16:00",
    })
    entry_id = r.json()["id"]

    r = await client.put(f"/api/expenses/manpower/{manpower_id}", json={"rate": 1600})
    assert r.json()["hourly_rate"] == 200

    expense = await db_session.get(ManpowerExpense, entry_id)
    await db_session.refresh(expense)
    assert expense.amount == 800


async def test_manpower_entry_validation(client, seed_data):
    manpower_id = await _manpower_rate(client)
    base = {"site_id": seed_data["tower"].id, "expense_date": "2026-05-03", "manpower_id": manpower_id}

    r = await client.post("/api/expenses/manpower-entries", json={**base, "start_time": "17:00", "end_time": "09:00"})
    assert r.status_code == 422
    r = await client.post("/api/expenses/manpower-entries", json={**base, "start_time": "9am", "end_time": "17:00"})
    assert r.status_code == 422
    r = await client.post("/api/expenses/manpower-entries", json={
        **base, "start_time": "09:00", "end_time": "17:00", "num_persons": 0,
    })
    assert r.status_code == 422


# ===================== EXPENSE DASHBOARD =====================


async def test_expense_dashboard_custom_range(client, seed_data):
    site_id = seed_data["tower"].id
    r = await client.post("/api/expenses/other-entries", json={
        "site_id": site_id, "expense_date": "2026-05-03", "description": "Diesel", "amount": 500,
    })
    assert r.status_code == 200

    r = await client.get(f"/api/expense-dashboard/sites/{site_id}", params={
        "from_date": "2026-05-01", "to_date": "2026-05-07", "request_id": "d1",
    })
    assert r.status_code == 200
    data = r.json()
    assert data["request_id"] == "d1"
    assert len(data["series"]) == 7
    assert data["series"][2]["total"] == 500
    assert data["totals"]["total"] == 500
    assert data["daily_average"] == 71.43
    assert data["pie"] == [{"category": "other", "name": "Other", "value": 500, "percentage": 100}]
    assert len(data["last_7_days"]) == 7


async def test_expense_dashboard_preset(client, seed_data):
    site_id = seed_data["tower"].id
    r = await client.get(f"/api/expense-dashboard/sites/{site_id}", params={"days": 30})
    assert r.status_code == 200
    data = r.json()
    assert data["to_date"] == date.today().isoformat()
    assert data["from_date"] == (date.today() - timedelta(days=30)).isoformat()
    assert data["totals"]["total"] == 0
    assert data["pie"] == []

    r = await client.get(f"/api/expense-dashboard/sites/{site_id}", params={"days": 12})
    assert r.status_code == 400

    r = await client.get(f"/api/expense-dashboard/sites/{site_id}", params={"from_date": "2026-05-01"})
    assert r.status_code == 400


# ===================== WORKSTATIONS =====================


async def test_workstation_progress(client, db_session, seed_data):
    _, item = await make_line_item(db_session, seed_data["civil"], item_number="1.2", quantity=500)
    site_id = seed_data["tower"].id

    r = await client.post("/api/workstations/master", json={"name": "Tiling crew"})
    workstation_id = r.json()["id"]
    r = await client.post(f"/api/workstations/sites/{site_id}", json={"workstation_id": workstation_id})
    assert r.status_code == 200
    assert r.json()["workstation_name"] == "Tiling crew"
    site_ws_id = r.json()["id"]

    r = await client.post(f"/api/workstations/sites/{site_id}", json={"workstation_id": workstation_id})
    assert r.status_code == 409

    url = f"/api/workstations/site-workstations/{site_ws_id}/entries"
    r = await client.post(url, json={
        "boq_line_item_id": item.id, "entry_date": "2026-06-01", "quantity": 25,
        "material_consumption": [{"material_name": "Tile adhesive", "unit": "bag", "quantity": 4}],
    })
    assert r.status_code == 200
    first_id = r.json()["id"]
    assert r.json()["material_consumption"][0]["quantity"] == 4

    r = await client.post(url, json={"boq_line_item_id": item.id, "entry_date": "2026-06-03", "quantity": 40})
    assert r.status_code == 200

    r = await client.get(f"/api/workstations/site-workstations/{site_ws_id}/summary")
    row = r.json()["line_items"][0]
    assert (row["previous_quantity"], row["new_quantity"], row["upto_date_quantity"]) == (25, 40, 65)
    assert row["boq_quantity"] == 500

    r = await client.put(f"/api/workstations/entries/{first_id}", json={
        "boq_line_item_id": item.id, "entry_date": "2026-06-01", "quantity": 30,
        "material_consumption": [{"material_name": "Grout", "unit": "kg", "quantity": 2}],
    })
    assert r.status_code == 200
    assert [c["material_name"] for c in r.json()["material_consumption"]] == ["Grout"]

    r = await client.get(url)
    assert [g["entry_date"] for g in r.json()] == ["2026-06-03", "2026-06-01"]


async def test_workstation_reassignment_and_validation(client, db_session, seed_data):
    _, item = await make_line_item(db_session, seed_data["civil"])
    site_id = seed_data["tower"].id
    r = await client.post("/api/workstations/master", json={"name": "Painting crew"})
    workstation_id = r.json()["id"]
    r = await client.post(f"/api/workstations/sites/{site_id}", json={"workstation_id": workstation_id})
    site_ws_id = r.json()["id"]
    url = f"/api/workstations/site-workstations/{site_ws_id}/entries"

    r = await client.post(url, json={"boq_line_item_id": item.id, "entry_date": "2026-06-01", "quantity": -1})
    assert r.status_code == 422
    r = await client.post(url, json={
        "boq_line_item_id": item.id, "entry_date": "2026-06-01", "quantity": 1,
        "material_consumption": [{"material_name": "Paint", "unit": "L", "quantity": 0}],
    })
    assert r.status_code == 422

    await client.delete(f"/api/workstations/site-workstations/{site_ws_id}")
    r = await client.post(url, json={"boq_line_item_id": item.id, "entry_date": "2026-06-01", "quantity": 1})
    assert r.status_code == 400

    r = await client.post(f"/api/workstations/sites/{site_id}", json={"workstation_id": workstation_id})
    assert r.status_code == 200
    assert r.json()["id"] == site_ws_id
