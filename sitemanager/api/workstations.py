"""
Workstations API - site crews logging daily BOQ progress and material use
"""
import logging
from datetime import date, datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, field_validator
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from sitemanager.api.auth import get_current_user
from sitemanager.api.common import get_or_404
from sitemanager.database import get_db
from sitemanager.models.boq import BOQLineItem
from sitemanager.models.master_material import MasterMaterial
from sitemanager.models.site import Site
from sitemanager.models.user import User
from sitemanager.models.workstation import (
    MasterWorkstation,
    SiteWorkstation,
    WorkstationBOQProgress,
    WorkstationMaterialConsumption,
)
from sitemanager.services.workstation_progress import (
    ProgressSummary,
    group_entries_by_date,
    summarize_progress,
)
from sitemanager.utils.validators import validate_non_negative, validate_positive, validate_required_text

logger = logging.getLogger(__name__)

router = APIRouter()


# ─── Schemas ───

class WorkstationResponse(BaseModel):
    id: int
    name: str
    description: Optional[str]
    is_active: bool

    class Config:
        from_attributes = True


class WorkstationCreate(BaseModel):
    name: str
    description: Optional[str] = None

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        return validate_required_text(v, "name")


class WorkstationUpdate(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    is_active: Optional[bool] = None


class SiteWorkstationResponse(BaseModel):
    id: int
    site_id: int
    workstation_id: int
    workstation_name: str
    is_active: bool
    created_at: Optional[datetime]


class SiteWorkstationCreate(BaseModel):
    workstation_id: int


class ConsumptionIn(BaseModel):
    material_id: Optional[int] = None
    material_name: Optional[str] = None
    quantity: float
    unit: Optional[str] = None
    notes: Optional[str] = None

    @field_validator("quantity")
    @classmethod
    def validate_quantity(cls, v: float) -> float:
        return validate_positive(v, "Consumption quantity")


class ConsumptionResponse(BaseModel):
    id: int
    material_id: Optional[int]
    material_name: str
    quantity: float
    unit: str
    notes: Optional[str]

    class Config:
        from_attributes = True


class ProgressEntryCreate(BaseModel):
    boq_line_item_id: int
    entry_date: date
    quantity: float = 0
    notes: Optional[str] = None
    material_consumption: List[ConsumptionIn] = []

    @field_validator("quantity")
    @classmethod
    def validate_quantity(cls, v: float) -> float:
        return validate_non_negative(v, "Quantity")


class ProgressEntryResponse(BaseModel):
    id: int
    site_workstation_id: int
    boq_line_item_id: int
    item_number: Optional[str] = None
    line_item_description: Optional[str] = None
    entry_date: date
    quantity: float
    notes: Optional[str]
    created_at: Optional[datetime]
    material_consumption: List[ConsumptionResponse] = []


class EntriesByDate(BaseModel):
    entry_date: date
    entries: List[ProgressEntryResponse]


def _site_workstation_response(sw: SiteWorkstation) -> SiteWorkstationResponse:
    return SiteWorkstationResponse(
        id=sw.id,
        site_id=sw.site_id,
        workstation_id=sw.workstation_id,
        workstation_name=sw.workstation.name if sw.workstation else "",
        is_active=sw.is_active,
        created_at=sw.created_at,
    )


def _entry_response(entry: WorkstationBOQProgress) -> ProgressEntryResponse:
    line_item = entry.line_item
    return ProgressEntryResponse(
        id=entry.id,
        site_workstation_id=entry.site_workstation_id,
        boq_line_item_id=entry.boq_line_item_id,
        item_number=line_item.item_number if line_item else None,
        line_item_description=line_item.description if line_item else None,
        entry_date=entry.entry_date,
        quantity=entry.quantity,
        notes=entry.notes,
        created_at=entry.created_at,
        material_consumption=[ConsumptionResponse.model_validate(c) for c in entry.material_consumption],
    )


ENTRY_LOAD_OPTIONS = (
    selectinload(WorkstationBOQProgress.line_item),
    selectinload(WorkstationBOQProgress.material_consumption),
)


async def _load_entry(db: AsyncSession, entry_id: int) -> WorkstationBOQProgress:
    return await get_or_404(db, WorkstationBOQProgress, entry_id, "Progress entry", *ENTRY_LOAD_OPTIONS)


async def _build_consumptions(db: AsyncSession, items: List[ConsumptionIn]) -> List[WorkstationMaterialConsumption]:
    """Material name and unit default to the catalogue entry"""
    rows = []
    for item in items:
        name, unit = item.material_name, item.unit
        if item.material_id is not None:
            master = await get_or_404(db, MasterMaterial, item.material_id, "Material")
            name = name or master.name
            unit = unit or master.unit
        if not name or not unit:
            raise HTTPException(status_code=400, detail="Consumed material needs a name and unit")
        rows.append(WorkstationMaterialConsumption(
            material_id=item.material_id,
            material_name=name,
            quantity=item.quantity,
            unit=unit,
            notes=item.notes,
        ))
    return rows


# ==================== Master workstations ====================

@router.get("/master", response_model=List[WorkstationResponse])
async def list_workstations(
    active_only: bool = True,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    query = select(MasterWorkstation).order_by(MasterWorkstation.name)
    if active_only:
        query = query.where(MasterWorkstation.is_active == True)
    return (await db.execute(query)).scalars().all()


@router.post("/master", response_model=WorkstationResponse)
async def create_workstation(
    data: WorkstationCreate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    existing = await db.execute(select(MasterWorkstation).where(MasterWorkstation.name == data.name))
    if existing.scalar_one_or_none():
        raise HTTPException(status_code=409, detail="Workstation already exists")
    workstation = MasterWorkstation(**data.model_dump(exclude_none=True), is_active=True)
    db.add(workstation)
    await db.commit()
    await db.refresh(workstation)
    return workstation


@router.put("/master/{workstation_id}", response_model=WorkstationResponse)
async def update_workstation(
    workstation_id: int,
    data: WorkstationUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    workstation = await get_or_404(db, MasterWorkstation, workstation_id, "Workstation")
    for key, value in data.model_dump(exclude_none=True).items():
        setattr(workstation, key, value)
    await db.commit()
    await db.refresh(workstation)
    return workstation


@router.delete("/master/{workstation_id}")
async def delete_workstation(
    workstation_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    workstation = await get_or_404(db, MasterWorkstation, workstation_id, "Workstation")
    workstation.is_active = False
    await db.commit()
    return {"message": "Workstation deactivated"}


# ==================== Site assignment ====================

@router.get("/sites/{site_id}", response_model=List[SiteWorkstationResponse])
async def list_site_workstations(
    site_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    await get_or_404(db, Site, site_id, "Site")
    result = await db.execute(
        select(SiteWorkstation)
        .where(SiteWorkstation.site_id == site_id, SiteWorkstation.is_active == True)
        .options(selectinload(SiteWorkstation.workstation))
        .order_by(SiteWorkstation.created_at, SiteWorkstation.id)
    )
    return [_site_workstation_response(sw) for sw in result.scalars().all()]


@router.post("/sites/{site_id}", response_model=SiteWorkstationResponse)
async def assign_workstation(
    site_id: int,
    data: SiteWorkstationCreate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    await get_or_404(db, Site, site_id, "Site")
    await get_or_404(db, MasterWorkstation, data.workstation_id, "Workstation")

    result = await db.execute(
        select(SiteWorkstation).where(
            SiteWorkstation.site_id == site_id,
            SiteWorkstation.workstation_id == data.workstation_id,
        )
    )
    assignment = result.scalar_one_or_none()
    if assignment and assignment.is_active:
        raise HTTPException(status_code=409, detail="Workstation already assigned to this site")
    if assignment:
        # Re-assigning a removed workstation brings back its history
        assignment.is_active = True
    else:
        assignment = SiteWorkstation(site_id=site_id, workstation_id=data.workstation_id, is_active=True)
        db.add(assignment)
    await db.commit()

    logger.info(f"Workstation {data.workstation_id} assigned to site {site_id}")
    loaded = await get_or_404(
        db, SiteWorkstation, assignment.id, "Site workstation", selectinload(SiteWorkstation.workstation)
    )
    return _site_workstation_response(loaded)


@router.delete("/site-workstations/{site_workstation_id}")
async def remove_site_workstation(
    site_workstation_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    assignment = await get_or_404(db, SiteWorkstation, site_workstation_id, "Site workstation")
    assignment.is_active = False
    await db.commit()
    return {"message": "Workstation removed from site"}


# ==================== Progress entries ====================

@router.get("/site-workstations/{site_workstation_id}/entries", response_model=List[EntriesByDate])
async def list_progress_entries(
    site_workstation_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    await get_or_404(db, SiteWorkstation, site_workstation_id, "Site workstation")
    result = await db.execute(
        select(WorkstationBOQProgress)
        .where(WorkstationBOQProgress.site_workstation_id == site_workstation_id)
        .options(*ENTRY_LOAD_OPTIONS)
    )
    grouped = group_entries_by_date(result.scalars().all())
    return [
        EntriesByDate(entry_date=entry_date, entries=[_entry_response(e) for e in entries])
        for entry_date, entries in grouped.items()
    ]


@router.get("/site-workstations/{site_workstation_id}/summary", response_model=ProgressSummary)
async def get_progress_summary(
    site_workstation_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    await get_or_404(db, SiteWorkstation, site_workstation_id, "Site workstation")
    result = await db.execute(
        select(WorkstationBOQProgress)
        .where(WorkstationBOQProgress.site_workstation_id == site_workstation_id)
        .options(selectinload(WorkstationBOQProgress.line_item))
    )
    return summarize_progress(result.scalars().all())


@router.post("/site-workstations/{site_workstation_id}/entries", response_model=ProgressEntryResponse)
async def create_progress_entry(
    site_workstation_id: int,
    data: ProgressEntryCreate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    assignment = await get_or_404(db, SiteWorkstation, site_workstation_id, "Site workstation")
    if not assignment.is_active:
        raise HTTPException(status_code=400, detail="Workstation is no longer assigned to this site")
    await get_or_404(db, BOQLineItem, data.boq_line_item_id, "Line item")

    entry = WorkstationBOQProgress(
        site_workstation_id=site_workstation_id,
        boq_line_item_id=data.boq_line_item_id,
        entry_date=data.entry_date,
        quantity=data.quantity,
        notes=data.notes,
    )
    entry.material_consumption = await _build_consumptions(db, data.material_consumption)
    db.add(entry)
    await db.commit()

    logger.info(
        f"Progress entry {entry.id}: workstation {site_workstation_id}, "
        f"line item {data.boq_line_item_id}, qty {data.quantity}"
    )
    return _entry_response(await _load_entry(db, entry.id))


@router.put("/entries/{entry_id}", response_model=ProgressEntryResponse)
async def update_progress_entry(
    entry_id: int,
    data: ProgressEntryCreate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Replaces the entry's material consumption with the submitted list"""
    entry = await _load_entry(db, entry_id)
    await get_or_404(db, BOQLineItem, data.boq_line_item_id, "Line item")

    consumptions = await _build_consumptions(db, data.material_consumption)
    entry.boq_line_item_id = data.boq_line_item_id
    entry.entry_date = data.entry_date
    entry.quantity = data.quantity
    entry.notes = data.notes
    entry.material_consumption = consumptions
    await db.commit()

    db.expire(entry, ["line_item"])
    return _entry_response(await _load_entry(db, entry_id))


@router.delete("/entries/{entry_id}")
async def delete_progress_entry(
    entry_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    entry = await _load_entry(db, entry_id)
    await db.delete(entry)
    await db.commit()
    return {"success": True, "message": "Progress entry deleted"}
