"""
Checklists API.

/headline/...  simple activity checklists per BOQ headline
/templates/... quality checklist templates
/boq/...       template-based checklists per BOQ line item, whose signed copy
               counts toward billing readiness
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
    get_or_404,
    raise_storage_error,
    read_upload,
    remove_stored_file,
    signed_url_or_error,
)
from sitemanager.config import get_settings
from sitemanager.database import get_db
from sitemanager.models.boq import BOQHeadline, BOQLineItem, WorkStatus
from sitemanager.models.checklist import (
    BOQChecklist,
    BOQChecklistClearance,
    BOQChecklistItem,
    BOQChecklistStatus,
    CheckMark,
    Checklist,
    ChecklistItem,
    ChecklistTemplate,
    ChecklistTemplateItem,
    ClearanceType,
)
from sitemanager.models.user import User
from sitemanager.services.storage import BlobStore, StorageError, build_object_path, get_blob_store
from sitemanager.utils.validators import validate_required_text

logger = logging.getLogger(__name__)
settings = get_settings()

router = APIRouter()


# ─── Simple checklist schemas ───

class ChecklistItemResponse(BaseModel):
    id: int
    activity_name: str
    sort_order: Optional[int]
    status: WorkStatus
    completed_at: Optional[datetime]
    completed_by: Optional[str]
    notes: Optional[str]

    class Config:
        from_attributes = True


class ChecklistResponse(BaseModel):
    id: int
    headline_id: int
    name: str
    items: List[ChecklistItemResponse] = []
    completed_count: int = 0


class ChecklistCreate(BaseModel):
    headline_id: int
    name: str
    activities: List[str] = []

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        return validate_required_text(v, "name")


class ChecklistItemUpdate(BaseModel):
    status: WorkStatus
    notes: Optional[str] = None


# ─── Template schemas ───

class TemplateItemResponse(BaseModel):
    id: int
    item_no: int
    description: str

    class Config:
        from_attributes = True


class TemplateResponse(BaseModel):
    id: int
    name: str
    description: Optional[str]
    notes_template: Optional[str]
    items: List[TemplateItemResponse] = []

    class Config:
        from_attributes = True


class TemplateCreate(BaseModel):
    name: str
    description: Optional[str] = None
    notes_template: Optional[str] = None
    items: List[str] = []

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        return validate_required_text(v, "name")


class TemplateUpdate(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    notes_template: Optional[str] = None
    items: Optional[List[str]] = None


# ─── BOQ checklist schemas ───

class BOQChecklistItemResponse(BaseModel):
    id: int
    item_no: int
    description: str
    status: Optional[CheckMark]
    remarks: Optional[str]

    class Config:
        from_attributes = True


class ClearanceResponse(BaseModel):
    id: int
    clearance_type: ClearanceType
    representative_name: Optional[str]
    clearance_date: Optional[date]
    signature: Optional[str]

    class Config:
        from_attributes = True


class BOQChecklistResponse(BaseModel):
    id: int
    line_item_id: int
    template_id: Optional[int]
    checklist_name: str
    project: Optional[str]
    shop_drawing_no: Optional[str]
    make: Optional[str]
    checklist_date: Optional[date]
    location: Optional[str]
    notes: Optional[str]
    status: BOQChecklistStatus
    signed_copy_path: Optional[str]
    signed_copy_name: Optional[str]
    signed_uploaded_at: Optional[datetime]
    items: List[BOQChecklistItemResponse] = []
    clearances: List[ClearanceResponse] = []

    class Config:
        from_attributes = True


class ClearanceInput(BaseModel):
    clearance_type: ClearanceType
    representative_name: Optional[str] = None
    clearance_date: Optional[date] = None
    signature: Optional[str] = None


class BOQChecklistCreate(BaseModel):
    line_item_id: int
    template_id: int
    checklist_name: Optional[str] = None
    project: Optional[str] = None
    shop_drawing_no: Optional[str] = None
    make: Optional[str] = None
    checklist_date: Optional[date] = None
    location: Optional[str] = None
    notes: Optional[str] = None
    clearances: List[ClearanceInput] = []


class BOQChecklistUpdate(BaseModel):
    checklist_name: Optional[str] = None
    project: Optional[str] = None
    shop_drawing_no: Optional[str] = None
    make: Optional[str] = None
    checklist_date: Optional[date] = None
    location: Optional[str] = None
    notes: Optional[str] = None
    status: Optional[BOQChecklistStatus] = None
    clearances: Optional[List[ClearanceInput]] = None


class BOQChecklistItemUpdate(BaseModel):
    status: Optional[CheckMark] = None
    remarks: Optional[str] = None


def _checklist_response(checklist: Checklist) -> ChecklistResponse:
    items = [ChecklistItemResponse.model_validate(i) for i in checklist.items]
    return ChecklistResponse(
        id=checklist.id,
        headline_id=checklist.headline_id,
        name=checklist.name,
        items=items,
        completed_count=sum(1 for i in checklist.items if i.status == WorkStatus.COMPLETED),
    )


async def _load_checklist(db: AsyncSession, checklist_id: int) -> Checklist:
    return await get_or_404(db, Checklist, checklist_id, "Checklist", selectinload(Checklist.items))


async def _load_template(db: AsyncSession, template_id: int) -> ChecklistTemplate:
    return await get_or_404(
        db, ChecklistTemplate, template_id, "Checklist template", selectinload(ChecklistTemplate.items)
    )


async def _load_boq_checklist(db: AsyncSession, checklist_id: int) -> BOQChecklist:
    return await get_or_404(
        db, BOQChecklist, checklist_id, "Checklist",
        selectinload(BOQChecklist.items), selectinload(BOQChecklist.clearances),
    )


# ==================== Headline checklists ====================

@router.get("/headline/{headline_id}", response_model=List[ChecklistResponse])
async def list_headline_checklists(
    headline_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    result = await db.execute(
        select(Checklist)
        .where(Checklist.headline_id == headline_id)
        .options(selectinload(Checklist.items))
        .order_by(Checklist.id)
    )
    return [_checklist_response(c) for c in result.scalars().all()]


@router.post("/headline", response_model=ChecklistResponse)
async def create_headline_checklist(
    data: ChecklistCreate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    await get_or_404(db, BOQHeadline, data.headline_id, "Headline")
    checklist = Checklist(headline_id=data.headline_id, name=data.name)
    db.add(checklist)
    await db.flush()

    activities = [a.strip() for a in data.activities if a and a.strip()]
    for index, activity in enumerate(activities, start=1):
        db.add(ChecklistItem(checklist_id=checklist.id, activity_name=activity, sort_order=index))

    await db.commit()
    return _checklist_response(await _load_checklist(db, checklist.id))


@router.put("/headline/items/{item_id}", response_model=ChecklistItemResponse)
async def update_headline_checklist_item(
    item_id: int,
    data: ChecklistItemUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Completing an item stamps it; moving it back clears the stamp"""
    item = await get_or_404(db, ChecklistItem, item_id, "Checklist item")
    item.status = data.status
    if data.status == WorkStatus.COMPLETED:
        item.completed_at = datetime.utcnow()
        item.completed_by = current_user.full_name
    else:
        item.completed_at = None
        item.completed_by = None
    if data.notes is not None:
        item.notes = data.notes

    await db.commit()
    await db.refresh(item)
    return item


@router.delete("/headline/{checklist_id}")
async def delete_headline_checklist(
    checklist_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    checklist = await _load_checklist(db, checklist_id)
    await db.delete(checklist)
    await db.commit()
    return {"success": True, "message": "Checklist deleted"}


# ==================== Templates ====================

@router.get("/templates", response_model=List[TemplateResponse])
async def list_templates(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    result = await db.execute(
        select(ChecklistTemplate).options(selectinload(ChecklistTemplate.items)).order_by(ChecklistTemplate.name)
    )
    return result.scalars().all()


@router.get("/templates/{template_id}", response_model=TemplateResponse)
async def get_template(
    template_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    return await _load_template(db, template_id)


@router.post("/templates", response_model=TemplateResponse)
async def create_template(
    data: TemplateCreate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    existing = await db.execute(select(ChecklistTemplate).where(ChecklistTemplate.name == data.name))
    if existing.scalar_one_or_none():
        raise HTTPException(status_code=409, detail="A template with this name already exists")

    template = ChecklistTemplate(
        name=data.name, description=data.description, notes_template=data.notes_template
    )
    db.add(template)
    await db.flush()
    for index, description in enumerate(data.items, start=1):
        db.add(ChecklistTemplateItem(template_id=template.id, item_no=index, description=description))

    await db.commit()
    return await _load_template(db, template.id)


@router.put("/templates/{template_id}", response_model=TemplateResponse)
async def update_template(
    template_id: int,
    data: TemplateUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Replacing items renumbers them from 1"""
    template = await _load_template(db, template_id)
    updates = data.model_dump(exclude_none=True, exclude={"items"})
    for key, value in updates.items():
        setattr(template, key, value)

    if data.items is not None:
        template.items.clear()
        await db.flush()
        for index, description in enumerate(data.items, start=1):
            template.items.append(ChecklistTemplateItem(item_no=index, description=description))

    await db.commit()
    return await _load_template(db, template_id)


@router.delete("/templates/{template_id}")
async def delete_template(
    template_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    template = await _load_template(db, template_id)
    await db.delete(template)
    await db.commit()
    return {"success": True, "message": "Template deleted"}


# ==================== BOQ line item checklists ====================

@router.get("/boq/line-item/{line_item_id}", response_model=List[BOQChecklistResponse])
async def list_boq_checklists(
    line_item_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    result = await db.execute(
        select(BOQChecklist)
        .where(BOQChecklist.line_item_id == line_item_id)
        .options(selectinload(BOQChecklist.items), selectinload(BOQChecklist.clearances))
        .order_by(BOQChecklist.created_at.desc(), BOQChecklist.id.desc())
    )
    return result.scalars().all()


@router.get("/boq/{checklist_id}", response_model=BOQChecklistResponse)
async def get_boq_checklist(
    checklist_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    return await _load_boq_checklist(db, checklist_id)


@router.post("/boq", response_model=BOQChecklistResponse)
async def create_boq_checklist(
    data: BOQChecklistCreate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Raise a checklist for a line item; template items are copied unmarked"""
    await get_or_404(db, BOQLineItem, data.line_item_id, "Line item")
    template = await _load_template(db, data.template_id)

    checklist = BOQChecklist(
        line_item_id=data.line_item_id,
        template_id=template.id,
        checklist_name=data.checklist_name or template.name,
        project=data.project,
        shop_drawing_no=data.shop_drawing_no,
        make=data.make,
        checklist_date=data.checklist_date,
        location=data.location,
        notes=data.notes if data.notes is not None else template.notes_template,
        status=BOQChecklistStatus.DRAFT,
    )
    db.add(checklist)
    await db.flush()

    for template_item in template.items:
        db.add(BOQChecklistItem(
            checklist_id=checklist.id,
            item_no=template_item.item_no,
            description=template_item.description,
        ))
    for clearance in data.clearances:
        db.add(BOQChecklistClearance(checklist_id=checklist.id, **clearance.model_dump()))

    await db.commit()
    logger.info(f"User {current_user.id} created checklist {checklist.id} for line item {data.line_item_id}")
    return await _load_boq_checklist(db, checklist.id)


@router.put("/boq/{checklist_id}", response_model=BOQChecklistResponse)
async def update_boq_checklist(
    checklist_id: int,
    data: BOQChecklistUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    checklist = await _load_boq_checklist(db, checklist_id)
    for key, value in data.model_dump(exclude_none=True, exclude={"clearances"}).items():
        setattr(checklist, key, value)

    if data.clearances is not None:
        checklist.clearances.clear()
        await db.flush()
        for clearance in data.clearances:
            checklist.clearances.append(BOQChecklistClearance(**clearance.model_dump()))

    await db.commit()
    return await _load_boq_checklist(db, checklist_id)


@router.put("/boq/items/{item_id}", response_model=BOQChecklistItemResponse)
async def update_boq_checklist_item(
    item_id: int,
    data: BOQChecklistItemUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    item = await get_or_404(db, BOQChecklistItem, item_id, "Checklist item")
    item.status = data.status
    if data.remarks is not None:
        item.remarks = data.remarks
    await db.commit()
    await db.refresh(item)
    return item


@router.delete("/boq/{checklist_id}")
async def delete_boq_checklist(
    checklist_id: int,
    db: AsyncSession = Depends(get_db),
    store: BlobStore = Depends(get_blob_store),
    current_user: User = Depends(get_current_user)
):
    checklist = await _load_boq_checklist(db, checklist_id)
    stale = checklist.signed_copy_path
    await db.delete(checklist)
    await db.commit()
    remove_stored_file(store, settings.COMPLIANCE_BUCKET, stale)
    return {"success": True, "message": "Checklist deleted"}


@router.post("/boq/{checklist_id}/signed-copy", response_model=BOQChecklistResponse)
async def upload_signed_copy(
    checklist_id: int,
    file: UploadFile = File(...),
    db: AsyncSession = Depends(get_db),
    store: BlobStore = Depends(get_blob_store),
    current_user: User = Depends(get_current_user)
):
    checklist = await _load_boq_checklist(db, checklist_id)
    content = await read_upload(file)
    path = build_object_path(f"checklists/{checklist.id}", "signed", file.filename)
    try:
        store.upload(settings.COMPLIANCE_BUCKET, path, content, upsert=True)
    except StorageError as e:
        raise_storage_error(e)

    old_path = checklist.signed_copy_path
    checklist.signed_copy_path = path
    checklist.signed_copy_name = file.filename
    checklist.signed_uploaded_at = datetime.utcnow()
    checklist.status = BOQChecklistStatus.COMPLETED
    await db.commit()

    if old_path and old_path != path:
        remove_stored_file(store, settings.COMPLIANCE_BUCKET, old_path)

    logger.info(f"User {current_user.id} uploaded signed copy for checklist {checklist_id}")
    return await _load_boq_checklist(db, checklist_id)


@router.delete("/boq/{checklist_id}/signed-copy", response_model=BOQChecklistResponse)
async def delete_signed_copy(
    checklist_id: int,
    db: AsyncSession = Depends(get_db),
    store: BlobStore = Depends(get_blob_store),
    current_user: User = Depends(get_current_user)
):
    checklist = await _load_boq_checklist(db, checklist_id)
    if not checklist.signed_copy_path:
        raise HTTPException(status_code=404, detail="No signed copy uploaded")

    stale = checklist.signed_copy_path
    checklist.signed_copy_path = None
    checklist.signed_copy_name = None
    checklist.signed_uploaded_at = None
    checklist.status = BOQChecklistStatus.DRAFT
    await db.commit()
    remove_stored_file(store, settings.COMPLIANCE_BUCKET, stale)
    return await _load_boq_checklist(db, checklist_id)


@router.get("/boq/{checklist_id}/signed-copy/url")
async def signed_copy_url(
    checklist_id: int,
    db: AsyncSession = Depends(get_db),
    store: BlobStore = Depends(get_blob_store),
    current_user: User = Depends(get_current_user)
):
    checklist = await get_or_404(db, BOQChecklist, checklist_id, "Checklist")
    return signed_url_or_error(store, settings.COMPLIANCE_BUCKET, checklist.signed_copy_path)
