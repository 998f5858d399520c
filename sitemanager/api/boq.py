"""
Bill of quantities API - headlines, line items and workbook import
"""
import logging
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, File, HTTPException, Query, UploadFile
from pydantic import BaseModel, field_validator
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from sitemanager.api.auth import get_current_user
from sitemanager.api.common import get_or_404, read_upload
from sitemanager.database import get_db
from sitemanager.models.boq import BOQHeadline, BOQLineItem, WorkStatus
from sitemanager.models.site import Package, Site
from sitemanager.models.user import User
from sitemanager.services.boq_import import BOQParseResult, parse_boq_workbook
from sitemanager.utils.helpers import item_number_key
from sitemanager.utils.validators import validate_non_negative, validate_required_text

logger = logging.getLogger(__name__)

router = APIRouter()


class HeadlineResponse(BaseModel):
    id: int
    package_id: int
    serial_number: int
    name: str
    description: Optional[str]
    status: WorkStatus

    class Config:
        from_attributes = True


class HeadlineCreate(BaseModel):
    package_id: int
    serial_number: int
    name: str
    description: Optional[str] = None
    status: WorkStatus = WorkStatus.PENDING

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        return validate_required_text(v, "name")


class HeadlineUpdate(BaseModel):
    serial_number: Optional[int] = None
    name: Optional[str] = None
    description: Optional[str] = None
    status: Optional[WorkStatus] = None


class LineItemResponse(BaseModel):
    id: int
    headline_id: int
    item_number: str
    description: str
    location: Optional[str]
    unit: str
    quantity: float
    status: WorkStatus

    class Config:
        from_attributes = True


class LineItemCreate(BaseModel):
    headline_id: int
    item_number: str
    description: str
    location: Optional[str] = None
    unit: str
    quantity: float = 0
    status: WorkStatus = WorkStatus.PENDING

    @field_validator("quantity")
    @classmethod
    def validate_quantity(cls, v: float) -> float:
        return validate_non_negative(v, "Quantity")

    @field_validator("item_number", "description", "unit")
    @classmethod
    def validate_text(cls, v: str, info) -> str:
        return validate_required_text(v, info.field_name)


class LineItemUpdate(BaseModel):
    item_number: Optional[str] = None
    description: Optional[str] = None
    location: Optional[str] = None
    unit: Optional[str] = None
    quantity: Optional[float] = None
    status: Optional[WorkStatus] = None

    @field_validator("quantity")
    @classmethod
    def validate_quantity(cls, v: Optional[float]) -> Optional[float]:
        if v is None:
            return v
        return validate_non_negative(v, "Quantity")


class ImportSummary(BaseModel):
    parse: BOQParseResult
    dry_run: bool
    packages_created: int = 0
    headlines_created: int = 0
    line_items_created: int = 0


# ==================== Headlines ====================

@router.get("/headlines", response_model=List[HeadlineResponse])
async def list_headlines(
    package_id: Optional[int] = None,
    site_id: Optional[int] = None,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Headlines of a package, or of every package on a site"""
    if package_id is None and site_id is None:
        raise HTTPException(status_code=400, detail="package_id or site_id is required")

    query = select(BOQHeadline).order_by(BOQHeadline.serial_number, BOQHeadline.id)
    if package_id is not None:
        query = query.where(BOQHeadline.package_id == package_id)
    else:
        package_ids = select(Package.id).where(Package.site_id == site_id)
        query = query.where(BOQHeadline.package_id.in_(package_ids))

    result = await db.execute(query)
    return result.scalars().all()


@router.post("/headlines", response_model=HeadlineResponse)
async def create_headline(
    data: HeadlineCreate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    await get_or_404(db, Package, data.package_id, "Package")
    headline = BOQHeadline(**data.model_dump(exclude_none=True))
    db.add(headline)
    await db.commit()
    await db.refresh(headline)
    return headline


@router.put("/headlines/{headline_id}", response_model=HeadlineResponse)
async def update_headline(
    headline_id: int,
    data: HeadlineUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    headline = await get_or_404(db, BOQHeadline, headline_id, "Headline")
    for key, value in data.model_dump(exclude_none=True).items():
        setattr(headline, key, value)
    await db.commit()
    await db.refresh(headline)
    return headline


@router.delete("/headlines/{headline_id}")
async def delete_headline(
    headline_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    headline = await get_or_404(db, BOQHeadline, headline_id, "Headline")
    await db.delete(headline)
    await db.commit()
    return {"success": True, "message": "Headline deleted"}


# ==================== Line items ====================

@router.get("/headlines/{headline_id}/line-items", response_model=List[LineItemResponse])
async def list_line_items(
    headline_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    result = await db.execute(select(BOQLineItem).where(BOQLineItem.headline_id == headline_id))
    items = result.scalars().all()
    return sorted(items, key=lambda li: (item_number_key(li.item_number), li.id))


@router.get("/line-items/{line_item_id}", response_model=LineItemResponse)
async def get_line_item(
    line_item_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    return await get_or_404(db, BOQLineItem, line_item_id, "Line item")


@router.post("/line-items", response_model=LineItemResponse)
async def create_line_item(
    data: LineItemCreate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    await get_or_404(db, BOQHeadline, data.headline_id, "Headline")
    item = BOQLineItem(**data.model_dump(exclude_none=True))
    db.add(item)
    await db.commit()
    await db.refresh(item)
    return item


@router.put("/line-items/{line_item_id}", response_model=LineItemResponse)
async def update_line_item(
    line_item_id: int,
    data: LineItemUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    item = await get_or_404(db, BOQLineItem, line_item_id, "Line item")
    for key, value in data.model_dump(exclude_none=True).items():
        setattr(item, key, value)
    await db.commit()
    await db.refresh(item)
    return item


@router.delete("/line-items/{line_item_id}")
async def delete_line_item(
    line_item_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    item = await get_or_404(db, BOQLineItem, line_item_id, "Line item")
    await db.delete(item)
    await db.commit()
    return {"success": True, "message": "Line item deleted"}


# ==================== Workbook import ====================

@router.post("/sites/{site_id}/import", response_model=ImportSummary)
async def import_boq(
    site_id: int,
    file: UploadFile = File(...),
    dry_run: bool = Query(False),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Import an .xlsx BOQ: one package per sheet"""
    await get_or_404(db, Site, site_id, "Site")
    content = await read_upload(file, allowed={".xlsx"})

    parsed = parse_boq_workbook(content)
    if not parsed.success:
        raise HTTPException(status_code=400, detail=parsed.error)

    summary = ImportSummary(parse=parsed, dry_run=dry_run)
    if dry_run:
        return summary

    for parsed_package in parsed.packages:
        package = Package(site_id=site_id, name=parsed_package.package_name)
        db.add(package)
        await db.flush()
        summary.packages_created += 1

        for parsed_headline in parsed_package.headlines:
            headline = BOQHeadline(
                package_id=package.id,
                serial_number=parsed_headline.serial_number,
                name=parsed_headline.name,
            )
            db.add(headline)
            await db.flush()
            summary.headlines_created += 1

            for parsed_item in parsed_headline.line_items:
                db.add(BOQLineItem(
                    headline_id=headline.id,
                    item_number=parsed_item.item_number,
                    description=parsed_item.description,
                    location=parsed_item.location or None,
                    unit=parsed_item.unit,
                    quantity=parsed_item.quantity,
                ))
                summary.line_items_created += 1

    await db.commit()
    logger.info(
        f"User {current_user.id} imported BOQ into site {site_id}: "
        f"{summary.packages_created} packages, {summary.headlines_created} headlines, "
        f"{summary.line_items_created} line items"
    )
    return summary
