"""
Joint measurement records API
"""
import logging
from datetime import date, datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile
from pydantic import BaseModel, field_validator
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from sitemanager.api.auth import get_current_user
from sitemanager.api.common import (
    get_or_404,
    raise_storage_error,
    read_upload,
    remove_stored_file,
    signed_url_or_error,
)
from sitemanager.config import get_settings
from sitemanager.database import get_db
from sitemanager.models.boq import BOQLineItem
from sitemanager.models.jmr import BOQJMR, JMRStatus
from sitemanager.models.user import User
from sitemanager.services.storage import BlobStore, StorageError, build_object_path, get_blob_store
from sitemanager.utils.validators import validate_non_negative

logger = logging.getLogger(__name__)
settings = get_settings()

router = APIRouter()


class JMRResponse(BaseModel):
    id: int
    line_item_id: int
    jmr_number: Optional[str]
    jmr_date: Optional[date]
    measurement_date: Optional[date]
    boq_quantity: Optional[float]
    executed_quantity: Optional[float]
    approved_quantity: Optional[float]
    customer_representative: Optional[str]
    contractor_representative: Optional[str]
    remarks: Optional[str]
    status: JMRStatus
    file_path: Optional[str]
    file_name: Optional[str]
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class JMRBase(BaseModel):
    jmr_number: Optional[str] = None
    jmr_date: Optional[date] = None
    measurement_date: Optional[date] = None
    boq_quantity: Optional[float] = None
    executed_quantity: Optional[float] = None
    approved_quantity: Optional[float] = None
    customer_representative: Optional[str] = None
    contractor_representative: Optional[str] = None
    remarks: Optional[str] = None

    @field_validator("boq_quantity", "executed_quantity", "approved_quantity")
    @classmethod
    def validate_quantity(cls, v: Optional[float], info) -> Optional[float]:
        if v is None:
            return v
        return validate_non_negative(v, info.field_name)


class JMRCreate(JMRBase):
    line_item_id: int
    status: JMRStatus = JMRStatus.DRAFT


class JMRUpdate(JMRBase):
    status: Optional[JMRStatus] = None


@router.get("/line-item/{line_item_id}", response_model=List[JMRResponse])
async def list_jmrs(
    line_item_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    result = await db.execute(
        select(BOQJMR)
        .where(BOQJMR.line_item_id == line_item_id)
        .order_by(BOQJMR.created_at.desc(), BOQJMR.id.desc())
    )
    return result.scalars().all()


@router.post("/", response_model=JMRResponse)
async def create_jmr(
    data: JMRCreate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """New JMR; BOQ quantity defaults to the line item's quantity"""
    line_item = await get_or_404(db, BOQLineItem, data.line_item_id, "Line item")
    values = data.model_dump(exclude_none=True)
    values.setdefault("boq_quantity", line_item.quantity)

    jmr = BOQJMR(**values)
    db.add(jmr)
    await db.commit()
    await db.refresh(jmr)
    logger.info(f"User {current_user.id} created JMR {jmr.id} for line item {line_item.id}")
    return jmr


@router.put("/{jmr_id}", response_model=JMRResponse)
async def update_jmr(
    jmr_id: int,
    data: JMRUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    jmr = await get_or_404(db, BOQJMR, jmr_id, "JMR")
    for key, value in data.model_dump(exclude_none=True).items():
        setattr(jmr, key, value)
    await db.commit()
    await db.refresh(jmr)
    return jmr


@router.delete("/{jmr_id}")
async def delete_jmr(
    jmr_id: int,
    db: AsyncSession = Depends(get_db),
    store: BlobStore = Depends(get_blob_store),
    current_user: User = Depends(get_current_user)
):
    jmr = await get_or_404(db, BOQJMR, jmr_id, "JMR")
    stale = jmr.file_path
    await db.delete(jmr)
    await db.commit()
    remove_stored_file(store, settings.COMPLIANCE_BUCKET, stale)
    return {"success": True, "message": "JMR deleted"}


@router.post("/{jmr_id}/file", response_model=JMRResponse)
async def upload_jmr_file(
    jmr_id: int,
    file: UploadFile = File(...),
    db: AsyncSession = Depends(get_db),
    store: BlobStore = Depends(get_blob_store),
    current_user: User = Depends(get_current_user)
):
    jmr = await get_or_404(db, BOQJMR, jmr_id, "JMR")
    content = await read_upload(file)
    path = build_object_path(f"jmr/{jmr.id}", "jmr", file.filename)
    try:
        store.upload(settings.COMPLIANCE_BUCKET, path, content, upsert=True)
    except StorageError as e:
        raise_storage_error(e)

    old_path = jmr.file_path
    jmr.file_path = path
    jmr.file_name = file.filename
    await db.commit()
    await db.refresh(jmr)

    if old_path and old_path != path:
        remove_stored_file(store, settings.COMPLIANCE_BUCKET, old_path)
    return jmr


@router.delete("/{jmr_id}/file", response_model=JMRResponse)
async def delete_jmr_file(
    jmr_id: int,
    db: AsyncSession = Depends(get_db),
    store: BlobStore = Depends(get_blob_store),
    current_user: User = Depends(get_current_user)
):
    jmr = await get_or_404(db, BOQJMR, jmr_id, "JMR")
    if not jmr.file_path:
        raise HTTPException(status_code=404, detail="No file uploaded")

    stale = jmr.file_path
    jmr.file_path = None
    jmr.file_name = None
    await db.commit()
    remove_stored_file(store, settings.COMPLIANCE_BUCKET, stale)
    await db.refresh(jmr)
    return jmr


@router.get("/{jmr_id}/file/url")
async def jmr_file_url(
    jmr_id: int,
    db: AsyncSession = Depends(get_db),
    store: BlobStore = Depends(get_blob_store),
    current_user: User = Depends(get_current_user)
):
    jmr = await get_or_404(db, BOQJMR, jmr_id, "JMR")
    return signed_url_or_error(store, settings.COMPLIANCE_BUCKET, jmr.file_path)
