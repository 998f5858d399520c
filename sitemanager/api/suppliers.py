"""
Suppliers API - the vendor register used by GRN and supplier payments
"""
import logging
import re
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import func, or_, select
from typing import List, Optional
from pydantic import BaseModel, field_validator

from sitemanager.api.common import get_or_404
from sitemanager.database import get_db
from sitemanager.models.grn import GRNInvoice
from sitemanager.models.user import User
from sitemanager.models.supplier import Supplier
from sitemanager.api.auth import get_current_user
from sitemanager.utils.validators import validate_required_text

logger = logging.getLogger(__name__)

router = APIRouter()

_GSTIN_RE = re.compile(r"^[0-9]{2}[A-Z0-9]{13}$")


def _clean_gstin(v: Optional[str]) -> Optional[str]:
    if v is None or not v.strip():
        return None
    v = v.strip().upper()
    if not _GSTIN_RE.match(v):
        raise ValueError("GSTIN must be 15 characters starting with the state code")
    return v


class SupplierResponse(BaseModel):
    id: int
    supplier_name: str
    gstin: Optional[str]
    contact_person: Optional[str]
    phone: Optional[str]
    email: Optional[str]
    address: Optional[str]
    state: Optional[str]
    notes: Optional[str]
    is_active: bool

    class Config:
        from_attributes = True


class SupplierCreate(BaseModel):
    supplier_name: str
    gstin: Optional[str] = None
    contact_person: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    address: Optional[str] = None
    state: Optional[str] = None
    notes: Optional[str] = None

    @field_validator("supplier_name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        return validate_required_text(v, "supplier_name")

    @field_validator("gstin")
    @classmethod
    def validate_gstin(cls, v: Optional[str]) -> Optional[str]:
        return _clean_gstin(v)


class SupplierUpdate(BaseModel):
    supplier_name: Optional[str] = None
    gstin: Optional[str] = None
    contact_person: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    address: Optional[str] = None
    state: Optional[str] = None
    notes: Optional[str] = None
    is_active: Optional[bool] = None

    @field_validator("gstin")
    @classmethod
    def validate_gstin(cls, v: Optional[str]) -> Optional[str]:
        return _clean_gstin(v)


async def _ensure_unique(db: AsyncSession, data, supplier_id: Optional[int] = None):
    """Supplier names are unique; a GSTIN may belong to one supplier only"""
    checks = [("supplier_name", Supplier.supplier_name, "A supplier with this name already exists")]
    if data.gstin:
        checks.append(("gstin", Supplier.gstin, "Another supplier is registered with this GSTIN"))

    for field, column, message in checks:
        value = getattr(data, field)
        if value is None:
            continue
        query = select(Supplier.id).where(column == value)
        if supplier_id is not None:
            query = query.where(Supplier.id != supplier_id)
        if (await db.execute(query)).first():
            raise HTTPException(status_code=409, detail=message)


@router.get("/", response_model=List[SupplierResponse])
async def list_suppliers(
    active_only: bool = False,
    search: Optional[str] = None,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Suppliers by name; `search` matches name or GSTIN"""
    query = select(Supplier).order_by(Supplier.supplier_name)
    if active_only:
        query = query.where(Supplier.is_active == True)
    if search and search.strip():
        pattern = f"%{search.strip()}%"
        query = query.where(or_(Supplier.supplier_name.ilike(pattern), Supplier.gstin.ilike(pattern)))

    result = await db.execute(query)
    return result.scalars().all()


@router.get("/{supplier_id}", response_model=SupplierResponse)
async def get_supplier(
    supplier_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    return await get_or_404(db, Supplier, supplier_id, "Supplier")


@router.post("/", response_model=SupplierResponse)
async def create_supplier(
    data: SupplierCreate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    await _ensure_unique(db, data)

    supplier = Supplier(**data.model_dump(exclude_none=True), is_active=True)
    db.add(supplier)
    await db.commit()
    await db.refresh(supplier)
    logger.info(f"User {current_user.id} added supplier {supplier.id} ({supplier.supplier_name})")
    return supplier


@router.put("/{supplier_id}", response_model=SupplierResponse)
async def update_supplier(
    supplier_id: int,
    data: SupplierUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    supplier = await get_or_404(db, Supplier, supplier_id, "Supplier")
    await _ensure_unique(db, data, supplier_id)

    for key, value in data.model_dump(exclude_none=True).items():
        setattr(supplier, key, value)

    await db.commit()
    await db.refresh(supplier)
    return supplier


@router.delete("/{supplier_id}")
async def delete_supplier(
    supplier_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """
    Remove a supplier. One with recorded GRNs is only deactivated so its
    invoices and payments keep their supplier.
    """
    supplier = await get_or_404(db, Supplier, supplier_id, "Supplier")

    grn_count = await db.scalar(
        select(func.count()).select_from(GRNInvoice).where(GRNInvoice.supplier_id == supplier_id)
    )
    if grn_count:
        supplier.is_active = False
        await db.commit()
        logger.info(f"Supplier {supplier_id} deactivated ({grn_count} GRNs on record)")
        return {"message": "Supplier deactivated", "deleted": False}

    await db.delete(supplier)
    await db.commit()
    logger.info(f"Supplier {supplier_id} deleted")
    return {"message": "Supplier deleted", "deleted": True}
