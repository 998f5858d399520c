"""
Material GRN API.

/invoices/...  supplier invoices with GST line items, one DC per invoice row
               and MIR / test certificate / TDS per line item
/legacy/...    the older flat register: one material per record with four
               compliance documents, kept readable and exportable
/sites/...     MIR reports by GRN date and the site inventory roll-up
"""
import logging
from datetime import date, datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, field_validator
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from sitemanager.api.auth import get_current_user
from sitemanager.api.common import (
    clear_document_file,
    get_or_404,
    remove_stored_file,
    set_document_applicability,
    signed_url_or_error,
    store_document_file,
)
from sitemanager.config import get_settings
from sitemanager.database import get_db
from sitemanager.models.grn import (
    GRNComplianceDocument,
    GRNInvoice,
    GRNInvoiceDC,
    GRNLineItem,
    GRNLineItemDocument,
    LINE_ITEM_DOCUMENT_TYPES,
    MaterialGRN,
)
from sitemanager.models.master_material import MasterMaterial
from sitemanager.models.material import DocumentType, MATERIAL_DOCUMENT_TYPES
from sitemanager.models.site import Site
from sitemanager.models.supplier import Supplier
from sitemanager.models.user import User
from sitemanager.services.document_status import (
    ComplianceCount,
    ReadinessStatus,
    count_compliance,
    legacy_compliance_count,
    legacy_document_status,
    single_record_status,
)
from sitemanager.services.excel_export import (
    XLSX_MEDIA_TYPE,
    build_grn_register,
    build_mir_report,
    grn_register_filename,
    mir_report_filename,
)
from sitemanager.services.inventory import (
    InventoryCategory,
    filter_inventory,
    group_by_category,
    receipts_from_invoices,
    receipts_from_register,
    summarize_inventory,
)
from sitemanager.services.mir_report import MIROption, MIRReport, build_mir_rows, find_mir_option, mir_options
from sitemanager.services.storage import BlobStore, get_blob_store
from sitemanager.utils.helpers import money
from sitemanager.utils.validators import (
    validate_gst_rate,
    validate_non_negative,
    validate_positive,
    validate_required_text,
)

logger = logging.getLogger(__name__)
settings = get_settings()

router = APIRouter()


# ─── Schemas ───

class ApplicabilityUpdate(BaseModel):
    is_applicable: bool


class DocumentResponse(BaseModel):
    id: int
    document_type: Optional[DocumentType] = None
    is_applicable: bool
    is_uploaded: bool
    file_path: Optional[str]
    file_name: Optional[str]
    uploaded_at: Optional[datetime]

    class Config:
        from_attributes = True


class GRNLineItemCreate(BaseModel):
    material_id: Optional[int] = None
    material_name: Optional[str] = None
    quantity: float
    unit: Optional[str] = None
    rate: float = 0
    gst_rate: float = 18

    @field_validator("quantity")
    @classmethod
    def validate_quantity(cls, v: float) -> float:
        return validate_positive(v, "Quantity")

    @field_validator("rate")
    @classmethod
    def validate_rate(cls, v: float) -> float:
        return validate_non_negative(v, "Rate")

    @field_validator("gst_rate")
    @classmethod
    def validate_gst(cls, v: float) -> float:
        return validate_gst_rate(v)


class GRNInvoiceCreate(BaseModel):
    site_id: int
    supplier_id: int
    invoice_number: str
    grn_date: date
    notes: Optional[str] = None
    line_items: List[GRNLineItemCreate]

    @field_validator("invoice_number")
    @classmethod
    def validate_invoice_number(cls, v: str) -> str:
        return validate_required_text(v, "invoice_number")

    @field_validator("line_items")
    @classmethod
    def validate_line_items(cls, v: List[GRNLineItemCreate]) -> List[GRNLineItemCreate]:
        if not v:
            raise ValueError("At least one line item is required")
        return v


class GRNLineItemResponse(BaseModel):
    id: int
    material_id: Optional[int]
    material_name: str
    quantity: float
    unit: str
    rate: float
    gst_rate: float
    amount_without_gst: float
    amount_with_gst: float
    documents: List[DocumentResponse] = []
    compliance: ComplianceCount


class GRNInvoiceResponse(BaseModel):
    id: int
    site_id: int
    supplier_id: int
    supplier_name: Optional[str]
    invoice_number: str
    grn_date: date
    notes: Optional[str]
    dc: Optional[DocumentResponse]
    dc_status: ReadinessStatus
    line_items: List[GRNLineItemResponse] = []
    amount_without_gst: float
    amount_with_gst: float


class LegacyGRNCreate(BaseModel):
    site_id: int
    grn_date: date
    vendor_name: str
    invoice_number: Optional[str] = None
    invoice_amount: Optional[float] = None
    material_id: Optional[int] = None
    material_name: str
    quantity: float
    unit: str
    notes: Optional[str] = None

    @field_validator("vendor_name", "material_name", "unit")
    @classmethod
    def validate_text(cls, v: str, info) -> str:
        return validate_required_text(v, info.field_name)

    @field_validator("quantity")
    @classmethod
    def validate_quantity(cls, v: float) -> float:
        return validate_positive(v, "Quantity")


class LegacyGRNResponse(BaseModel):
    id: int
    site_id: int
    grn_date: date
    vendor_name: str
    invoice_number: Optional[str]
    invoice_amount: Optional[float]
    material_id: Optional[int]
    material_name: str
    quantity: float
    unit: str
    notes: Optional[str]
    documents: List[DocumentResponse] = []
    document_status: dict
    compliance: ComplianceCount


# ─── Helpers ───

def line_amounts(quantity: float, rate: float, gst_rate: float):
    without_gst = money(quantity * rate)
    return without_gst, money(without_gst * (1 + gst_rate / 100))


def _invoice_response(invoice: GRNInvoice) -> GRNInvoiceResponse:
    items = []
    for item in sorted(invoice.line_items, key=lambda i: i.id):
        items.append(GRNLineItemResponse(
            id=item.id,
            material_id=item.material_id,
            material_name=item.material_name,
            quantity=item.quantity,
            unit=item.unit,
            rate=item.rate,
            gst_rate=item.gst_rate,
            amount_without_gst=item.amount_without_gst,
            amount_with_gst=item.amount_with_gst,
            documents=[DocumentResponse.model_validate(d) for d in item.documents],
            compliance=count_compliance(item.documents, LINE_ITEM_DOCUMENT_TYPES),
        ))

    return GRNInvoiceResponse(
        id=invoice.id,
        site_id=invoice.site_id,
        supplier_id=invoice.supplier_id,
        supplier_name=invoice.supplier.supplier_name if invoice.supplier else None,
        invoice_number=invoice.invoice_number,
        grn_date=invoice.grn_date,
        notes=invoice.notes,
        dc=DocumentResponse.model_validate(invoice.dc) if invoice.dc else None,
        dc_status=single_record_status(invoice.dc).status,
        line_items=items,
        amount_without_gst=money(sum(i.amount_without_gst for i in items)),
        amount_with_gst=money(sum(i.amount_with_gst for i in items)),
    )


def _legacy_response(grn: MaterialGRN) -> LegacyGRNResponse:
    docs = list(grn.compliance_docs)
    return LegacyGRNResponse(
        id=grn.id,
        site_id=grn.site_id,
        grn_date=grn.grn_date,
        vendor_name=grn.vendor_name,
        invoice_number=grn.invoice_number,
        invoice_amount=grn.invoice_amount,
        material_id=grn.material_id,
        material_name=grn.material_name,
        quantity=grn.quantity,
        unit=grn.unit,
        notes=grn.notes,
        documents=[DocumentResponse.model_validate(d) for d in docs],
        document_status={t.value: legacy_document_status(docs, t).value for t in MATERIAL_DOCUMENT_TYPES},
        compliance=legacy_compliance_count(docs),
    )


INVOICE_LOAD_OPTIONS = (
    selectinload(GRNInvoice.supplier),
    selectinload(GRNInvoice.dc),
    selectinload(GRNInvoice.line_items).selectinload(GRNLineItem.documents),
)


async def _load_invoice(db: AsyncSession, invoice_id: int) -> GRNInvoice:
    return await get_or_404(db, GRNInvoice, invoice_id, "GRN invoice", *INVOICE_LOAD_OPTIONS)


async def _load_legacy(db: AsyncSession, grn_id: int) -> MaterialGRN:
    return await get_or_404(db, MaterialGRN, grn_id, "GRN", selectinload(MaterialGRN.compliance_docs))


def _line_item_type(document_type: DocumentType) -> DocumentType:
    if document_type not in LINE_ITEM_DOCUMENT_TYPES:
        raise HTTPException(
            status_code=400,
            detail="Line item documents are mir, test_certificate or tds; DC belongs to the invoice",
        )
    return document_type


async def _line_item_document(db: AsyncSession, line_item_id: int, document_type: DocumentType) -> GRNLineItemDocument:
    _line_item_type(document_type)
    await get_or_404(db, GRNLineItem, line_item_id, "GRN line item")
    result = await db.execute(
        select(GRNLineItemDocument).where(
            GRNLineItemDocument.grn_line_item_id == line_item_id,
            GRNLineItemDocument.document_type == document_type,
        )
    )
    doc = result.scalar_one_or_none()
    if doc is None:
        doc = GRNLineItemDocument(
            grn_line_item_id=line_item_id, document_type=document_type, is_applicable=True, is_uploaded=False
        )
        db.add(doc)
        await db.flush()
    return doc


async def _invoice_dc(db: AsyncSession, invoice_id: int) -> GRNInvoiceDC:
    await get_or_404(db, GRNInvoice, invoice_id, "GRN invoice")
    result = await db.execute(select(GRNInvoiceDC).where(GRNInvoiceDC.grn_invoice_id == invoice_id))
    dc = result.scalar_one_or_none()
    if dc is None:
        dc = GRNInvoiceDC(grn_invoice_id=invoice_id, is_applicable=True, is_uploaded=False)
        db.add(dc)
        await db.flush()
    return dc


async def _legacy_document(db: AsyncSession, grn_id: int, document_type: DocumentType) -> GRNComplianceDocument:
    await get_or_404(db, MaterialGRN, grn_id, "GRN")
    result = await db.execute(
        select(GRNComplianceDocument).where(
            GRNComplianceDocument.grn_id == grn_id,
            GRNComplianceDocument.document_type == document_type,
        )
    )
    doc = result.scalar_one_or_none()
    if doc is None:
        doc = GRNComplianceDocument(grn_id=grn_id, document_type=document_type, is_applicable=True, is_uploaded=False)
        db.add(doc)
        await db.flush()
    return doc


# ==================== GRN invoices ====================

@router.get("/invoices", response_model=List[GRNInvoiceResponse])
async def list_invoices(
    site_id: int,
    supplier_id: Optional[int] = None,
    from_date: Optional[date] = None,
    to_date: Optional[date] = None,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    query = (
        select(GRNInvoice)
        .where(GRNInvoice.site_id == site_id)
        .options(*INVOICE_LOAD_OPTIONS)
        .order_by(GRNInvoice.grn_date.desc(), GRNInvoice.id.desc())
    )
    if supplier_id is not None:
        query = query.where(GRNInvoice.supplier_id == supplier_id)
    if from_date:
        query = query.where(GRNInvoice.grn_date >= from_date)
    if to_date:
        query = query.where(GRNInvoice.grn_date <= to_date)

    result = await db.execute(query)
    return [_invoice_response(inv) for inv in result.scalars().all()]


@router.get("/invoices/{invoice_id}", response_model=GRNInvoiceResponse)
async def get_invoice(
    invoice_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    return _invoice_response(await _load_invoice(db, invoice_id))


@router.post("/invoices", response_model=GRNInvoiceResponse)
async def create_invoice(
    data: GRNInvoiceCreate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """
    Record a delivery against a supplier invoice. Amounts are computed here;
    the DC and per-line-item document placeholders are created with it.
    Several deliveries may share one invoice number.
    """
    await get_or_404(db, Site, data.site_id, "Site")
    await get_or_404(db, Supplier, data.supplier_id, "Supplier")

    invoice = GRNInvoice(
        site_id=data.site_id,
        supplier_id=data.supplier_id,
        invoice_number=data.invoice_number,
        grn_date=data.grn_date,
        notes=data.notes,
    )
    db.add(invoice)
    await db.flush()
    db.add(GRNInvoiceDC(grn_invoice_id=invoice.id, is_applicable=True, is_uploaded=False))

    for entry in data.line_items:
        name, unit = entry.material_name, entry.unit
        if entry.material_id is not None:
            master = await get_or_404(db, MasterMaterial, entry.material_id, "Material")
            name = name or master.name
            unit = unit or master.unit
        if not name or not unit:
            raise HTTPException(status_code=400, detail="Each line item needs a material and a unit")

        without_gst, with_gst = line_amounts(entry.quantity, entry.rate, entry.gst_rate)
        item = GRNLineItem(
            grn_invoice_id=invoice.id,
            material_id=entry.material_id,
            material_name=name,
            quantity=entry.quantity,
            unit=unit,
            rate=entry.rate,
            gst_rate=entry.gst_rate,
            amount_without_gst=without_gst,
            amount_with_gst=with_gst,
        )
        db.add(item)
        await db.flush()
        for doc_type in LINE_ITEM_DOCUMENT_TYPES:
            db.add(GRNLineItemDocument(
                grn_line_item_id=item.id, document_type=doc_type, is_applicable=True, is_uploaded=False
            ))

    await db.commit()
    logger.info(
        f"User {current_user.id} recorded GRN {invoice.id} for invoice {invoice.invoice_number} "
        f"({len(data.line_items)} line items)"
    )
    return _invoice_response(await _load_invoice(db, invoice.id))


@router.delete("/invoices/{invoice_id}")
async def delete_invoice(
    invoice_id: int,
    db: AsyncSession = Depends(get_db),
    store: BlobStore = Depends(get_blob_store),
    current_user: User = Depends(get_current_user)
):
    """Delete an invoice row with its line items and stored files"""
    invoice = await _load_invoice(db, invoice_id)
    paths = [doc.file_path for item in invoice.line_items for doc in item.documents]
    if invoice.dc:
        paths.append(invoice.dc.file_path)

    await db.delete(invoice)
    await db.commit()
    for path in paths:
        remove_stored_file(store, settings.GRN_BUCKET, path)
    logger.info(f"User {current_user.id} deleted GRN {invoice_id}")
    return {"success": True, "message": "GRN deleted"}


# ─── Invoice DC ───

@router.put("/invoices/{invoice_id}/dc/applicability", response_model=DocumentResponse)
async def update_dc_applicability(
    invoice_id: int,
    data: ApplicabilityUpdate,
    db: AsyncSession = Depends(get_db),
    store: BlobStore = Depends(get_blob_store),
    current_user: User = Depends(get_current_user)
):
    dc = await _invoice_dc(db, invoice_id)
    stale = set_document_applicability(dc, data.is_applicable)
    await db.commit()
    remove_stored_file(store, settings.GRN_BUCKET, stale)
    await db.refresh(dc)
    return dc


@router.post("/invoices/{invoice_id}/dc/upload", response_model=DocumentResponse)
async def upload_dc(
    invoice_id: int,
    file: UploadFile = File(...),
    db: AsyncSession = Depends(get_db),
    store: BlobStore = Depends(get_blob_store),
    current_user: User = Depends(get_current_user)
):
    dc = await _invoice_dc(db, invoice_id)
    stale = await store_document_file(dc, file, store, settings.GRN_BUCKET, f"invoices/{invoice_id}")
    await db.commit()
    remove_stored_file(store, settings.GRN_BUCKET, stale)
    await db.refresh(dc)
    return dc


@router.delete("/invoices/{invoice_id}/dc/file", response_model=DocumentResponse)
async def delete_dc_file(
    invoice_id: int,
    db: AsyncSession = Depends(get_db),
    store: BlobStore = Depends(get_blob_store),
    current_user: User = Depends(get_current_user)
):
    dc = await _invoice_dc(db, invoice_id)
    if not dc.file_path:
        raise HTTPException(status_code=404, detail="No file uploaded")
    stale = clear_document_file(dc)
    await db.commit()
    remove_stored_file(store, settings.GRN_BUCKET, stale)
    await db.refresh(dc)
    return dc


@router.get("/invoices/{invoice_id}/dc/url")
async def dc_signed_url(
    invoice_id: int,
    db: AsyncSession = Depends(get_db),
    store: BlobStore = Depends(get_blob_store),
    current_user: User = Depends(get_current_user)
):
    dc = await _invoice_dc(db, invoice_id)
    return signed_url_or_error(store, settings.GRN_BUCKET, dc.file_path)


# ─── Line item documents ───

@router.put("/line-items/{line_item_id}/documents/{document_type}/applicability", response_model=DocumentResponse)
async def update_line_item_document_applicability(
    line_item_id: int,
    document_type: DocumentType,
    data: ApplicabilityUpdate,
    db: AsyncSession = Depends(get_db),
    store: BlobStore = Depends(get_blob_store),
    current_user: User = Depends(get_current_user)
):
    doc = await _line_item_document(db, line_item_id, document_type)
    stale = set_document_applicability(doc, data.is_applicable)
    await db.commit()
    remove_stored_file(store, settings.GRN_BUCKET, stale)
    await db.refresh(doc)
    return doc


@router.post("/line-items/{line_item_id}/documents/{document_type}/upload", response_model=DocumentResponse)
async def upload_line_item_document(
    line_item_id: int,
    document_type: DocumentType,
    file: UploadFile = File(...),
    db: AsyncSession = Depends(get_db),
    store: BlobStore = Depends(get_blob_store),
    current_user: User = Depends(get_current_user)
):
    doc = await _line_item_document(db, line_item_id, document_type)
    stale = await store_document_file(doc, file, store, settings.GRN_BUCKET, line_item_id)
    await db.commit()
    remove_stored_file(store, settings.GRN_BUCKET, stale)
    await db.refresh(doc)
    return doc


@router.delete("/line-items/{line_item_id}/documents/{document_type}/file", response_model=DocumentResponse)
async def delete_line_item_document_file(
    line_item_id: int,
    document_type: DocumentType,
    db: AsyncSession = Depends(get_db),
    store: BlobStore = Depends(get_blob_store),
    current_user: User = Depends(get_current_user)
):
    doc = await _line_item_document(db, line_item_id, document_type)
    if not doc.file_path:
        raise HTTPException(status_code=404, detail="No file uploaded")
    stale = clear_document_file(doc)
    await db.commit()
    remove_stored_file(store, settings.GRN_BUCKET, stale)
    await db.refresh(doc)
    return doc


@router.get("/line-items/{line_item_id}/documents/{document_type}/url")
async def line_item_document_url(
    line_item_id: int,
    document_type: DocumentType,
    db: AsyncSession = Depends(get_db),
    store: BlobStore = Depends(get_blob_store),
    current_user: User = Depends(get_current_user)
):
    doc = await _line_item_document(db, line_item_id, document_type)
    return signed_url_or_error(store, settings.GRN_BUCKET, doc.file_path)


# ==================== Reports ====================

class SiteInventoryResponse(BaseModel):
    site_id: int
    total_materials: int
    categories: List[InventoryCategory]


async def _site_invoices(db: AsyncSession, site_id: int) -> List[GRNInvoice]:
    query = (
        select(GRNInvoice)
        .where(GRNInvoice.site_id == site_id)
        .options(*INVOICE_LOAD_OPTIONS)
        .order_by(GRNInvoice.grn_date, GRNInvoice.id)
        .execution_options(populate_existing=True)
    )
    result = await db.execute(query)
    return result.scalars().all()


async def _mir_report(db: AsyncSession, site_id: int, grn_date: date) -> MIRReport:
    invoices = await _site_invoices(db, site_id)
    option = find_mir_option(invoices, grn_date)
    if option is None:
        raise HTTPException(status_code=404, detail=f"No GRN recorded on {grn_date.isoformat()}")
    return MIRReport(site_id=site_id, mir=option, rows=build_mir_rows(invoices, grn_date))


@router.get("/sites/{site_id}/mir", response_model=List[MIROption])
async def list_mir_options(
    site_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """One MIR per distinct GRN date, numbered in date order"""
    await get_or_404(db, Site, site_id, "Site")
    return mir_options(await _site_invoices(db, site_id))


@router.get("/sites/{site_id}/mir/{grn_date}", response_model=MIRReport)
async def get_mir_report(
    site_id: int,
    grn_date: date,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    await get_or_404(db, Site, site_id, "Site")
    return await _mir_report(db, site_id, grn_date)


@router.get("/sites/{site_id}/mir/{grn_date}/export")
async def export_mir_report(
    site_id: int,
    grn_date: date,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    site = await get_or_404(db, Site, site_id, "Site")
    report = await _mir_report(db, site_id, grn_date)

    filename = mir_report_filename(site.name, report.mir.mir_number, grn_date)
    return StreamingResponse(
        build_mir_report(site.name, report),
        media_type=XLSX_MEDIA_TYPE,
        headers={"Content-Disposition": f"attachment; filename={filename}"},
    )


@router.get("/sites/{site_id}/inventory", response_model=SiteInventoryResponse)
async def get_site_inventory(
    site_id: int,
    search: Optional[str] = None,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Received quantity per material from GRN line items and the legacy register"""
    await get_or_404(db, Site, site_id, "Site")

    register = await db.execute(select(MaterialGRN).where(MaterialGRN.site_id == site_id))
    receipts = receipts_from_invoices(await _site_invoices(db, site_id))
    receipts += receipts_from_register(register.scalars().all())

    material_ids = {r.material_id for r in receipts if r.material_id is not None}
    categories = {}
    if material_ids:
        result = await db.execute(
            select(MasterMaterial.id, MasterMaterial.category).where(MasterMaterial.id.in_(material_ids))
        )
        categories = {row.id: row.category for row in result.all()}

    items = filter_inventory(summarize_inventory(receipts, categories), search)
    return SiteInventoryResponse(
        site_id=site_id,
        total_materials=len(items),
        categories=group_by_category(items),
    )


# ==================== Legacy register ====================

@router.get("/legacy", response_model=List[LegacyGRNResponse])
async def list_legacy_grns(
    site_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    result = await db.execute(
        select(MaterialGRN)
        .where(MaterialGRN.site_id == site_id)
        .options(selectinload(MaterialGRN.compliance_docs))
        .order_by(MaterialGRN.grn_date.desc(), MaterialGRN.id.desc())
    )
    return [_legacy_response(g) for g in result.scalars().all()]


@router.get("/legacy/export")
async def export_legacy_grns(
    site_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """MIR register of a site as .xlsx"""
    site = await get_or_404(db, Site, site_id, "Site")
    result = await db.execute(
        select(MaterialGRN)
        .where(MaterialGRN.site_id == site_id)
        .options(selectinload(MaterialGRN.compliance_docs))
        .order_by(MaterialGRN.grn_date.desc(), MaterialGRN.id.desc())
    )
    grns = result.scalars().all()
    if not grns:
        raise HTTPException(status_code=404, detail="No data to export")

    filename = grn_register_filename(site.name)
    return StreamingResponse(
        build_grn_register(grns),
        media_type=XLSX_MEDIA_TYPE,
        headers={"Content-Disposition": f"attachment; filename={filename}"},
    )


@router.post("/legacy", response_model=LegacyGRNResponse)
async def create_legacy_grn(
    data: LegacyGRNCreate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    await get_or_404(db, Site, data.site_id, "Site")
    grn = MaterialGRN(**data.model_dump(exclude_none=True))
    db.add(grn)
    await db.flush()
    for doc_type in MATERIAL_DOCUMENT_TYPES:
        db.add(GRNComplianceDocument(grn_id=grn.id, document_type=doc_type, is_applicable=True, is_uploaded=False))
    await db.commit()
    return _legacy_response(await _load_legacy(db, grn.id))


@router.delete("/legacy/{grn_id}")
async def delete_legacy_grn(
    grn_id: int,
    db: AsyncSession = Depends(get_db),
    store: BlobStore = Depends(get_blob_store),
    current_user: User = Depends(get_current_user)
):
    grn = await _load_legacy(db, grn_id)
    paths = [doc.file_path for doc in grn.compliance_docs]
    await db.delete(grn)
    await db.commit()
    for path in paths:
        remove_stored_file(store, settings.GRN_BUCKET, path)
    return {"success": True, "message": "GRN deleted"}


@router.put("/legacy/{grn_id}/documents/{document_type}/applicability", response_model=DocumentResponse)
async def update_legacy_document_applicability(
    grn_id: int,
    document_type: DocumentType,
    data: ApplicabilityUpdate,
    db: AsyncSession = Depends(get_db),
    store: BlobStore = Depends(get_blob_store),
    current_user: User = Depends(get_current_user)
):
    doc = await _legacy_document(db, grn_id, document_type)
    stale = set_document_applicability(doc, data.is_applicable)
    await db.commit()
    remove_stored_file(store, settings.GRN_BUCKET, stale)
    await db.refresh(doc)
    return doc


@router.post("/legacy/{grn_id}/documents/{document_type}/upload", response_model=DocumentResponse)
async def upload_legacy_document(
    grn_id: int,
    document_type: DocumentType,
    file: UploadFile = File(...),
    db: AsyncSession = Depends(get_db),
    store: BlobStore = Depends(get_blob_store),
    current_user: User = Depends(get_current_user)
):
    doc = await _legacy_document(db, grn_id, document_type)
    stale = await store_document_file(doc, file, store, settings.GRN_BUCKET, f"legacy/{grn_id}")
    await db.commit()
    remove_stored_file(store, settings.GRN_BUCKET, stale)
    await db.refresh(doc)
    return doc


@router.delete("/legacy/{grn_id}/documents/{document_type}/file", response_model=DocumentResponse)
async def delete_legacy_document_file(
    grn_id: int,
    document_type: DocumentType,
    db: AsyncSession = Depends(get_db),
    store: BlobStore = Depends(get_blob_store),
    current_user: User = Depends(get_current_user)
):
    doc = await _legacy_document(db, grn_id, document_type)
    if not doc.file_path:
        raise HTTPException(status_code=404, detail="No file uploaded")
    stale = clear_document_file(doc)
    await db.commit()
    remove_stored_file(store, settings.GRN_BUCKET, stale)
    await db.refresh(doc)
    return doc
