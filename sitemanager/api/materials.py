"""
Materials API - materials per line item, receipts and compliance documents
"""
import logging
from datetime import date, datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile
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
from sitemanager.models.boq import BOQLineItem
from sitemanager.models.material import (
    ComplianceDocument,
    DocumentType,
    MATERIAL_DOCUMENT_TYPES,
    Material,
    MaterialReceipt,
    MaterialType,
)
from sitemanager.models.user import User
from sitemanager.services.document_status import count_compliance
from sitemanager.services.storage import BlobStore, get_blob_store
from sitemanager.utils.validators import validate_positive, validate_required_text

logger = logging.getLogger(__name__)
settings = get_settings()

router = APIRouter()


class MaterialResponse(BaseModel):
    id: int
    line_item_id: int
    name: str
    material_type: MaterialType
    unit: str
    required_quantity: Optional[float]
    received_quantity: float = 0
    documents_uploaded: int = 0
    documents_applicable: int = 0


class MaterialCreate(BaseModel):
    line_item_id: int
    name: str
    material_type: MaterialType = MaterialType.DIRECT
    unit: str
    required_quantity: Optional[float] = None

    @field_validator("name", "unit")
    @classmethod
    def validate_text(cls, v: str, info) -> str:
        return validate_required_text(v, info.field_name)


class MaterialUpdate(BaseModel):
    name: Optional[str] = None
    material_type: Optional[MaterialType] = None
    unit: Optional[str] = None
    required_quantity: Optional[float] = None


class ReceiptResponse(BaseModel):
    id: int
    material_id: int
    receipt_date: date
    quantity_received: float
    vendor_name: Optional[str]
    invoice_number: Optional[str]
    notes: Optional[str]

    class Config:
        from_attributes = True


class ReceiptCreate(BaseModel):
    receipt_date: date
    quantity_received: float
    vendor_name: Optional[str] = None
    invoice_number: Optional[str] = None
    notes: Optional[str] = None

    @field_validator("quantity_received")
    @classmethod
    def validate_quantity(cls, v: float) -> float:
        return validate_positive(v, "Quantity received")


class ReceiptUpdate(BaseModel):
    receipt_date: Optional[date] = None
    quantity_received: Optional[float] = None
    vendor_name: Optional[str] = None
    invoice_number: Optional[str] = None
    notes: Optional[str] = None

    @field_validator("quantity_received")
    @classmethod
    def validate_quantity(cls, v: Optional[float]) -> Optional[float]:
        if v is None:
            return v
        return validate_positive(v, "Quantity received")


class DocumentResponse(BaseModel):
    id: int
    material_id: int
    document_type: DocumentType
    is_applicable: bool
    is_uploaded: bool
    file_path: Optional[str]
    file_name: Optional[str]
    uploaded_at: Optional[datetime]
    notes: Optional[str]

    class Config:
        from_attributes = True


class ApplicabilityUpdate(BaseModel):
    is_applicable: bool


def _material_response(material: Material) -> MaterialResponse:
    counts = count_compliance(material.documents, MATERIAL_DOCUMENT_TYPES)
    return MaterialResponse(
        id=material.id,
        line_item_id=material.line_item_id,
        name=material.name,
        material_type=material.material_type,
        unit=material.unit,
        required_quantity=material.required_quantity,
        received_quantity=sum(r.quantity_received or 0 for r in material.receipts),
        documents_uploaded=counts.uploaded,
        documents_applicable=counts.applicable,
    )


async def _load_material(db: AsyncSession, material_id: int) -> Material:
    return await get_or_404(
        db, Material, material_id, "Material",
        selectinload(Material.receipts), selectinload(Material.documents),
    )


async def ensure_document_placeholders(db: AsyncSession, material_id: int) -> List[ComplianceDocument]:
    """Create any missing (material, type) placeholders and return all four in order"""
    result = await db.execute(
        select(ComplianceDocument).where(ComplianceDocument.material_id == material_id)
    )
    existing = {doc.document_type: doc for doc in result.scalars().all()}

    created = False
    for doc_type in MATERIAL_DOCUMENT_TYPES:
        if doc_type not in existing:
            doc = ComplianceDocument(
                material_id=material_id,
                document_type=doc_type,
                is_applicable=True,
                is_uploaded=False,
            )
            db.add(doc)
            existing[doc_type] = doc
            created = True

    if created:
        await db.commit()
        logger.info(f"Initialized compliance documents for material {material_id}")

    return [existing[t] for t in MATERIAL_DOCUMENT_TYPES]


async def _get_document(db: AsyncSession, material_id: int, document_type: DocumentType) -> ComplianceDocument:
    await get_or_404(db, Material, material_id, "Material")
    docs = await ensure_document_placeholders(db, material_id)
    return next(d for d in docs if d.document_type == document_type)


# ==================== Materials ====================

@router.get("/", response_model=List[MaterialResponse])
async def list_materials(
    line_item_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    result = await db.execute(
        select(Material)
        .where(Material.line_item_id == line_item_id)
        .options(selectinload(Material.receipts), selectinload(Material.documents))
        .order_by(Material.name)
    )
    return [_material_response(m) for m in result.scalars().all()]


@router.get("/{material_id}", response_model=MaterialResponse)
async def get_material(
    material_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    return _material_response(await _load_material(db, material_id))


@router.post("/", response_model=MaterialResponse)
async def create_material(
    data: MaterialCreate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    await get_or_404(db, BOQLineItem, data.line_item_id, "Line item")
    material = Material(**data.model_dump(exclude_none=True))
    db.add(material)
    await db.commit()
    return _material_response(await _load_material(db, material.id))


@router.put("/{material_id}", response_model=MaterialResponse)
async def update_material(
    material_id: int,
    data: MaterialUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    material = await _load_material(db, material_id)
    for key, value in data.model_dump(exclude_none=True).items():
        setattr(material, key, value)
    await db.commit()
    return _material_response(material)


@router.delete("/{material_id}")
async def delete_material(
    material_id: int,
    db: AsyncSession = Depends(get_db),
    store: BlobStore = Depends(get_blob_store),
    current_user: User = Depends(get_current_user)
):
    material = await _load_material(db, material_id)
    paths = [doc.file_path for doc in material.documents]
    await db.delete(material)
    await db.commit()
    # files go only once the rows are gone
    for path in paths:
        remove_stored_file(store, settings.COMPLIANCE_BUCKET, path)
    return {"success": True, "message": "Material deleted"}


# ==================== Receipts ====================

@router.get("/{material_id}/receipts", response_model=List[ReceiptResponse])
async def list_receipts(
    material_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    result = await db.execute(
        select(MaterialReceipt)
        .where(MaterialReceipt.material_id == material_id)
        .order_by(MaterialReceipt.receipt_date.desc(), MaterialReceipt.id.desc())
    )
    return result.scalars().all()


@router.post("/{material_id}/receipts", response_model=ReceiptResponse)
async def create_receipt(
    material_id: int,
    data: ReceiptCreate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    await get_or_404(db, Material, material_id, "Material")
    receipt = MaterialReceipt(material_id=material_id, **data.model_dump(exclude_none=True))
    db.add(receipt)
    await db.commit()
    await db.refresh(receipt)
    return receipt


@router.put("/receipts/{receipt_id}", response_model=ReceiptResponse)
async def update_receipt(
    receipt_id: int,
    data: ReceiptUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    receipt = await get_or_404(db, MaterialReceipt, receipt_id, "Receipt")
    for key, value in data.model_dump(exclude_none=True).items():
        setattr(receipt, key, value)
    await db.commit()
    await db.refresh(receipt)
    return receipt


@router.delete("/receipts/{receipt_id}")
async def delete_receipt(
    receipt_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    receipt = await get_or_404(db, MaterialReceipt, receipt_id, "Receipt")
    await db.delete(receipt)
    await db.commit()
    return {"success": True, "message": "Receipt deleted"}


# ==================== Compliance documents ====================

@router.get("/{material_id}/documents", response_model=List[DocumentResponse])
async def list_documents(
    material_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """The four compliance documents, created on first access"""
    await get_or_404(db, Material, material_id, "Material")
    return await ensure_document_placeholders(db, material_id)


@router.put("/{material_id}/documents/{document_type}/applicability", response_model=DocumentResponse)
async def update_document_applicability(
    material_id: int,
    document_type: DocumentType,
    data: ApplicabilityUpdate,
    db: AsyncSession = Depends(get_db),
    store: BlobStore = Depends(get_blob_store),
    current_user: User = Depends(get_current_user)
):
    """Marking a document not applicable discards any stored file"""
    doc = await _get_document(db, material_id, document_type)
    stale = set_document_applicability(doc, data.is_applicable)
    await db.commit()
    remove_stored_file(store, settings.COMPLIANCE_BUCKET, stale)
    await db.refresh(doc)
    return doc


@router.post("/{material_id}/documents/{document_type}/upload", response_model=DocumentResponse)
async def upload_document(
    material_id: int,
    document_type: DocumentType,
    file: UploadFile = File(...),
    db: AsyncSession = Depends(get_db),
    store: BlobStore = Depends(get_blob_store),
    current_user: User = Depends(get_current_user)
):
    doc = await _get_document(db, material_id, document_type)
    stale = await store_document_file(doc, file, store, settings.COMPLIANCE_BUCKET, material_id)
    await db.commit()
    remove_stored_file(store, settings.COMPLIANCE_BUCKET, stale)
    await db.refresh(doc)
    logger.info(f"User {current_user.id} uploaded {document_type.value} for material {material_id}")
    return doc


@router.delete("/{material_id}/documents/{document_type}/file", response_model=DocumentResponse)
async def delete_document_file(
    material_id: int,
    document_type: DocumentType,
    db: AsyncSession = Depends(get_db),
    store: BlobStore = Depends(get_blob_store),
    current_user: User = Depends(get_current_user)
):
    doc = await _get_document(db, material_id, document_type)
    if not doc.file_path:
        raise HTTPException(status_code=404, detail="No file uploaded")

    stale = clear_document_file(doc)
    await db.commit()
    remove_stored_file(store, settings.COMPLIANCE_BUCKET, stale)
    await db.refresh(doc)
    return doc


@router.get("/{material_id}/documents/{document_type}/signed-url")
async def document_signed_url(
    material_id: int,
    document_type: DocumentType,
    db: AsyncSession = Depends(get_db),
    store: BlobStore = Depends(get_blob_store),
    current_user: User = Depends(get_current_user)
):
    doc = await _get_document(db, material_id, document_type)
    return signed_url_or_error(store, settings.COMPLIANCE_BUCKET, doc.file_path)
