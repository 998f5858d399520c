"""
Site expenses API - master rates and daily manpower / equipment / other
entries. Material expense for a day is the value of that day's GRNs.
"""
import logging
from datetime import date, datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, field_validator, model_validator
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from sitemanager.api.auth import get_current_user
from sitemanager.api.common import get_or_404
from sitemanager.database import get_db
from sitemanager.models.expense import (
    Equipment,
    EquipmentExpense,
    Gender,
    LabourContractor,
    Manpower,
    ManpowerCategory,
    ManpowerExpense,
    OtherExpense,
)
from sitemanager.models.grn import GRNInvoice
from sitemanager.models.site import Site
from sitemanager.models.user import User
from sitemanager.services.excel_export import (
    XLSX_MEDIA_TYPE,
    build_daily_expense_report,
    daily_report_filename,
)
from sitemanager.services.expense_rates import equipment_charge, hourly_rate, manpower_charge
from sitemanager.utils.helpers import money
from sitemanager.utils.validators import (
    validate_non_negative,
    validate_positive,
    validate_required_text,
    validate_time_of_day,
)

logger = logging.getLogger(__name__)

router = APIRouter()


# ─── Master data schemas ───

class ContractorResponse(BaseModel):
    id: int
    name: str
    contact_person: Optional[str]
    contact_number: Optional[str]
    is_active: bool

    class Config:
        from_attributes = True


class ContractorCreate(BaseModel):
    name: str
    contact_person: Optional[str] = None
    contact_number: Optional[str] = None

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        return validate_required_text(v, "name")


class ContractorUpdate(BaseModel):
    name: Optional[str] = None
    contact_person: Optional[str] = None
    contact_number: Optional[str] = None
    is_active: Optional[bool] = None


class CategoryResponse(BaseModel):
    id: int
    name: str
    description: Optional[str]
    is_active: bool

    class Config:
        from_attributes = True


class CategoryCreate(BaseModel):
    name: str
    description: Optional[str] = None

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        return validate_required_text(v, "name")


class CategoryUpdate(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    is_active: Optional[bool] = None


class ManpowerResponse(BaseModel):
    id: int
    contractor_id: Optional[int]
    contractor_name: Optional[str]
    category_id: int
    category_name: Optional[str]
    gender: Gender
    description: Optional[str]
    rate: float
    daily_hours: float
    hourly_rate: float
    is_active: bool


class ManpowerCreate(BaseModel):
    contractor_id: Optional[int] = None
    category_id: int
    gender: Gender = Gender.ANY
    description: Optional[str] = None
    rate: float
    daily_hours: float = 8

    @field_validator("rate", "daily_hours")
    @classmethod
    def validate_amounts(cls, v: float, info) -> float:
        return validate_positive(v, info.field_name)


class ManpowerUpdate(BaseModel):
    contractor_id: Optional[int] = None
    category_id: Optional[int] = None
    gender: Optional[Gender] = None
    description: Optional[str] = None
    rate: Optional[float] = None
    daily_hours: Optional[float] = None
    is_active: Optional[bool] = None

    @field_validator("rate", "daily_hours")
    @classmethod
    def validate_amounts(cls, v: Optional[float], info) -> Optional[float]:
        if v is None:
            return v
        return validate_positive(v, info.field_name)


class EquipmentResponse(BaseModel):
    id: int
    name: str
    description: Optional[str]
    hourly_rate: float
    is_active: bool

    class Config:
        from_attributes = True


class EquipmentCreate(BaseModel):
    name: str
    description: Optional[str] = None
    hourly_rate: float

    @field_validator("hourly_rate")
    @classmethod
    def validate_rate(cls, v: float) -> float:
        return validate_non_negative(v, "Hourly rate")


class EquipmentUpdate(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    hourly_rate: Optional[float] = None
    is_active: Optional[bool] = None


# ─── Daily entry schemas ───

class ManpowerExpenseResponse(BaseModel):
    id: int
    site_id: int
    expense_date: date
    manpower_id: Optional[int]
    manpower_category: str
    contractor_name: Optional[str]
    gender: Optional[str]
    num_persons: int
    start_time: Optional[str]
    end_time: Optional[str]
    hours: float
    rate: float
    amount: float
    notes: Optional[str]

    class Config:
        from_attributes = True


class ManpowerExpenseCreate(BaseModel):
    site_id: int
    expense_date: date
    manpower_id: int
    num_persons: int = 1
    start_time: str
    end_time: str
    notes: Optional[str] = None

    @field_validator("num_persons")
    @classmethod
    def validate_persons(cls, v: int) -> int:
        if v < 1:
            raise ValueError("Number of persons must be at least 1")
        return v

    @field_validator("start_time", "end_time")
    @classmethod
    def validate_time(cls, v: str) -> str:
        return validate_time_of_day(v)

    @model_validator(mode="after")
    def validate_span(self):
        if self.end_time <= self.start_time:
            raise ValueError("End time must be after start time")
        return self


class EquipmentExpenseResponse(BaseModel):
    id: int
    site_id: int
    expense_date: date
    equipment_id: Optional[int]
    equipment_name: str
    hours: float
    rate: float
    amount: float
    notes: Optional[str]

    class Config:
        from_attributes = True


class EquipmentExpenseCreate(BaseModel):
    site_id: int
    expense_date: date
    equipment_id: int
    hours: float
    notes: Optional[str] = None

    @field_validator("hours")
    @classmethod
    def validate_hours(cls, v: float) -> float:
        return validate_positive(v, "Hours")


class OtherExpenseResponse(BaseModel):
    id: int
    site_id: int
    expense_date: date
    description: str
    amount: float
    notes: Optional[str]

    class Config:
        from_attributes = True


class OtherExpenseCreate(BaseModel):
    site_id: int
    expense_date: date
    description: str
    amount: float
    notes: Optional[str] = None

    @field_validator("description")
    @classmethod
    def validate_description(cls, v: str) -> str:
        return validate_required_text(v, "description")

    @field_validator("amount")
    @classmethod
    def validate_amount(cls, v: float) -> float:
        return validate_positive(v, "Amount")


class MaterialExpenseLine(BaseModel):
    grn_invoice_id: int
    invoice_number: str
    supplier_name: Optional[str]
    line_item_count: int
    amount_without_gst: float
    amount_with_gst: float


class DailyExpensesResponse(BaseModel):
    site_id: int
    expense_date: date
    material: List[MaterialExpenseLine]
    manpower: List[ManpowerExpenseResponse]
    equipment: List[EquipmentExpenseResponse]
    other: List[OtherExpenseResponse]
    material_total: float
    manpower_total: float
    equipment_total: float
    other_total: float
    grand_total: float


def _manpower_response(mp: Manpower) -> ManpowerResponse:
    return ManpowerResponse(
        id=mp.id,
        contractor_id=mp.contractor_id,
        contractor_name=mp.contractor.name if mp.contractor else None,
        category_id=mp.category_id,
        category_name=mp.category.name if mp.category else None,
        gender=mp.gender,
        description=mp.description,
        rate=mp.rate,
        daily_hours=mp.daily_hours,
        hourly_rate=round(hourly_rate(mp.rate, mp.daily_hours), 2),
        is_active=mp.is_active,
    )


async def _load_manpower(db: AsyncSession, manpower_id: int) -> Manpower:
    return await get_or_404(
        db, Manpower, manpower_id, "Manpower rate",
        selectinload(Manpower.contractor), selectinload(Manpower.category),
    )


async def _daily_records(db: AsyncSession, site_id: int, on: date):
    invoices = (await db.execute(
        select(GRNInvoice)
        .where(GRNInvoice.site_id == site_id, GRNInvoice.grn_date == on)
        .options(selectinload(GRNInvoice.line_items), selectinload(GRNInvoice.supplier))
        .order_by(GRNInvoice.created_at, GRNInvoice.id)
    )).scalars().all()
    manpower = (await db.execute(
        select(ManpowerExpense)
        .where(ManpowerExpense.site_id == site_id, ManpowerExpense.expense_date == on)
        .order_by(ManpowerExpense.created_at, ManpowerExpense.id)
    )).scalars().all()
    equipment = (await db.execute(
        select(EquipmentExpense)
        .where(EquipmentExpense.site_id == site_id, EquipmentExpense.expense_date == on)
        .order_by(EquipmentExpense.created_at, EquipmentExpense.id)
    )).scalars().all()
    other = (await db.execute(
        select(OtherExpense)
        .where(OtherExpense.site_id == site_id, OtherExpense.expense_date == on)
        .order_by(OtherExpense.created_at, OtherExpense.id)
    )).scalars().all()
    return list(invoices), list(manpower), list(equipment), list(other)


# ==================== Labour contractors ====================

@router.get("/contractors", response_model=List[ContractorResponse])
async def list_contractors(
    active_only: bool = True,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    query = select(LabourContractor).order_by(LabourContractor.name)
    if active_only:
        query = query.where(LabourContractor.is_active == True)
    return (await db.execute(query)).scalars().all()


@router.post("/contractors", response_model=ContractorResponse)
async def create_contractor(
    data: ContractorCreate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    existing = await db.execute(select(LabourContractor).where(LabourContractor.name == data.name))
    if existing.scalar_one_or_none():
        raise HTTPException(status_code=409, detail="Contractor already exists")
    contractor = LabourContractor(**data.model_dump(exclude_none=True), is_active=True)
    db.add(contractor)
    await db.commit()
    await db.refresh(contractor)
    return contractor


@router.put("/contractors/{contractor_id}", response_model=ContractorResponse)
async def update_contractor(
    contractor_id: int,
    data: ContractorUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    contractor = await get_or_404(db, LabourContractor, contractor_id, "Contractor")
    for key, value in data.model_dump(exclude_none=True).items():
        setattr(contractor, key, value)
    await db.commit()
    await db.refresh(contractor)
    return contractor


@router.delete("/contractors/{contractor_id}")
async def delete_contractor(
    contractor_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    contractor = await get_or_404(db, LabourContractor, contractor_id, "Contractor")
    contractor.is_active = False
    await db.commit()
    return {"message": "Contractor deactivated"}


# ==================== Manpower categories ====================

@router.get("/categories", response_model=List[CategoryResponse])
async def list_categories(
    active_only: bool = True,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    query = select(ManpowerCategory).order_by(ManpowerCategory.name)
    if active_only:
        query = query.where(ManpowerCategory.is_active == True)
    return (await db.execute(query)).scalars().all()


@router.post("/categories", response_model=CategoryResponse)
async def create_category(
    data: CategoryCreate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    existing = await db.execute(select(ManpowerCategory).where(ManpowerCategory.name == data.name))
    if existing.scalar_one_or_none():
        raise HTTPException(status_code=409, detail="Category already exists")
    category = ManpowerCategory(**data.model_dump(exclude_none=True), is_active=True)
    db.add(category)
    await db.commit()
    await db.refresh(category)
    return category


@router.put("/categories/{category_id}", response_model=CategoryResponse)
async def update_category(
    category_id: int,
    data: CategoryUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    category = await get_or_404(db, ManpowerCategory, category_id, "Category")
    for key, value in data.model_dump(exclude_none=True).items():
        setattr(category, key, value)
    await db.commit()
    await db.refresh(category)
    return category


@router.delete("/categories/{category_id}")
async def delete_category(
    category_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    category = await get_or_404(db, ManpowerCategory, category_id, "Category")
    category.is_active = False
    await db.commit()
    return {"message": "Category deactivated"}


# ==================== Manpower rates ====================

@router.get("/manpower", response_model=List[ManpowerResponse])
async def list_manpower(
    active_only: bool = True,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    query = (
        select(Manpower)
        .options(selectinload(Manpower.contractor), selectinload(Manpower.category))
        .order_by(Manpower.id)
    )
    if active_only:
        query = query.where(Manpower.is_active == True)
    return [_manpower_response(m) for m in (await db.execute(query)).scalars().all()]


@router.post("/manpower", response_model=ManpowerResponse)
async def create_manpower(
    data: ManpowerCreate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    await get_or_404(db, ManpowerCategory, data.category_id, "Category")
    if data.contractor_id is not None:
        await get_or_404(db, LabourContractor, data.contractor_id, "Contractor")
    manpower = Manpower(**data.model_dump(exclude_none=True), is_active=True)
    db.add(manpower)
    await db.commit()
    return _manpower_response(await _load_manpower(db, manpower.id))


@router.put("/manpower/{manpower_id}", response_model=ManpowerResponse)
async def update_manpower(
    manpower_id: int,
    data: ManpowerUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Rate changes apply to new entries only"""
    manpower = await _load_manpower(db, manpower_id)
    for key, value in data.model_dump(exclude_none=True).items():
        setattr(manpower, key, value)
    await db.commit()
    db.expire(manpower, ["contractor", "category"])
    return _manpower_response(await _load_manpower(db, manpower_id))


@router.delete("/manpower/{manpower_id}")
async def delete_manpower(
    manpower_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    manpower = await get_or_404(db, Manpower, manpower_id, "Manpower rate")
    manpower.is_active = False
    await db.commit()
    return {"message": "Manpower rate deactivated"}


# ==================== Equipment ====================

@router.get("/equipment", response_model=List[EquipmentResponse])
async def list_equipment(
    active_only: bool = True,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    query = select(Equipment).order_by(Equipment.name)
    if active_only:
        query = query.where(Equipment.is_active == True)
    return (await db.execute(query)).scalars().all()


@router.post("/equipment", response_model=EquipmentResponse)
async def create_equipment(
    data: EquipmentCreate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    existing = await db.execute(select(Equipment).where(Equipment.name == data.name))
    if existing.scalar_one_or_none():
        raise HTTPException(status_code=409, detail="Equipment already exists")
    equipment = Equipment(**data.model_dump(exclude_none=True), is_active=True)
    db.add(equipment)
    await db.commit()
    await db.refresh(equipment)
    return equipment


@router.put("/equipment/{equipment_id}", response_model=EquipmentResponse)
async def update_equipment(
    equipment_id: int,
    data: EquipmentUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    equipment = await get_or_404(db, Equipment, equipment_id, "Equipment")
    for key, value in data.model_dump(exclude_none=True).items():
        setattr(equipment, key, value)
    await db.commit()
    await db.refresh(equipment)
    return equipment


@router.delete("/equipment/{equipment_id}")
async def delete_equipment(
    equipment_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    equipment = await get_or_404(db, Equipment, equipment_id, "Equipment")
    equipment.is_active = False
    await db.commit()
    return {"message": "Equipment deactivated"}


# ==================== Daily entries ====================

@router.get("/daily", response_model=DailyExpensesResponse)
async def get_daily_expenses(
    site_id: int,
    expense_date: date,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Everything spent on a site on one day"""
    await get_or_404(db, Site, site_id, "Site")
    invoices, manpower, equipment, other = await _daily_records(db, site_id, expense_date)

    material = [
        MaterialExpenseLine(
            grn_invoice_id=inv.id,
            invoice_number=inv.invoice_number,
            supplier_name=inv.supplier.supplier_name if inv.supplier else None,
            line_item_count=len(inv.line_items),
            amount_without_gst=money(sum(i.amount_without_gst or 0 for i in inv.line_items)),
            amount_with_gst=money(sum(i.amount_with_gst or 0 for i in inv.line_items)),
        )
        for inv in invoices
    ]
    material_total = money(sum(m.amount_with_gst for m in material))
    manpower_total = money(sum(e.amount for e in manpower))
    equipment_total = money(sum(e.amount for e in equipment))
    other_total = money(sum(e.amount for e in other))

    return DailyExpensesResponse(
        site_id=site_id,
        expense_date=expense_date,
        material=material,
        manpower=[ManpowerExpenseResponse.model_validate(e) for e in manpower],
        equipment=[EquipmentExpenseResponse.model_validate(e) for e in equipment],
        other=[OtherExpenseResponse.model_validate(e) for e in other],
        material_total=material_total,
        manpower_total=manpower_total,
        equipment_total=equipment_total,
        other_total=other_total,
        grand_total=money(material_total + manpower_total + equipment_total + other_total),
    )


@router.get("/daily/export")
async def export_daily_expenses(
    site_id: int,
    expense_date: date,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    site = await get_or_404(db, Site, site_id, "Site")
    invoices, manpower, equipment, other = await _daily_records(db, site_id, expense_date)
    workbook = build_daily_expense_report(site.name, expense_date, invoices, manpower, equipment, other)
    filename = daily_report_filename(site.name, expense_date)
    return StreamingResponse(
        workbook,
        media_type=XLSX_MEDIA_TYPE,
        headers={"Content-Disposition": f"attachment; filename={filename}"},
    )


def _apply_manpower(expense: ManpowerExpense, manpower: Manpower, data: ManpowerExpenseCreate) -> None:
    charge = manpower_charge(manpower.rate, manpower.daily_hours, data.start_time, data.end_time, data.num_persons)
    expense.manpower_id = manpower.id
    expense.manpower_category = manpower.category.name if manpower.category else "Manpower"
    expense.contractor_name = manpower.contractor.name if manpower.contractor else None
    expense.gender = manpower.gender.value if isinstance(manpower.gender, Gender) else manpower.gender
    expense.num_persons = data.num_persons
    expense.start_time = data.start_time
    expense.end_time = data.end_time
    expense.hours = charge.hours
    expense.rate = charge.rate
    expense.amount = charge.amount
    expense.notes = data.notes


@router.post("/manpower-entries", response_model=ManpowerExpenseResponse)
async def create_manpower_expense(
    data: ManpowerExpenseCreate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    await get_or_404(db, Site, data.site_id, "Site")
    manpower = await _load_manpower(db, data.manpower_id)

    expense = ManpowerExpense(site_id=data.site_id, expense_date=data.expense_date)
    _apply_manpower(expense, manpower, data)
    db.add(expense)
    await db.commit()
    await db.refresh(expense)
    logger.info(f"Manpower expense {expense.id} on site {data.site_id}: {expense.amount}")
    return expense


@router.put("/manpower-entries/{expense_id}", response_model=ManpowerExpenseResponse)
async def update_manpower_expense(
    expense_id: int,
    data: ManpowerExpenseCreate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Editing recomputes the charge from the current master rate"""
    expense = await get_or_404(db, ManpowerExpense, expense_id, "Manpower expense")
    manpower = await _load_manpower(db, data.manpower_id)
    expense.site_id = data.site_id
    expense.expense_date = data.expense_date
    _apply_manpower(expense, manpower, data)
    await db.commit()
    await db.refresh(expense)
    return expense


@router.delete("/manpower-entries/{expense_id}")
async def delete_manpower_expense(
    expense_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    expense = await get_or_404(db, ManpowerExpense, expense_id, "Manpower expense")
    await db.delete(expense)
    await db.commit()
    return {"success": True, "message": "Expense deleted"}


@router.post("/equipment-entries", response_model=EquipmentExpenseResponse)
async def create_equipment_expense(
    data: EquipmentExpenseCreate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    await get_or_404(db, Site, data.site_id, "Site")
    equipment = await get_or_404(db, Equipment, data.equipment_id, "Equipment")
    charge = equipment_charge(equipment.hourly_rate, data.hours)

    expense = EquipmentExpense(
        site_id=data.site_id,
        expense_date=data.expense_date,
        equipment_id=equipment.id,
        equipment_name=equipment.name,
        hours=charge.hours,
        rate=charge.rate,
        amount=charge.amount,
        notes=data.notes,
    )
    db.add(expense)
    await db.commit()
    await db.refresh(expense)
    return expense


@router.put("/equipment-entries/{expense_id}", response_model=EquipmentExpenseResponse)
async def update_equipment_expense(
    expense_id: int,
    data: EquipmentExpenseCreate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    expense = await get_or_404(db, EquipmentExpense, expense_id, "Equipment expense")
    equipment = await get_or_404(db, Equipment, data.equipment_id, "Equipment")
    charge = equipment_charge(equipment.hourly_rate, data.hours)

    expense.site_id = data.site_id
    expense.expense_date = data.expense_date
    expense.equipment_id = equipment.id
    expense.equipment_name = equipment.name
    expense.hours = charge.hours
    expense.rate = charge.rate
    expense.amount = charge.amount
    expense.notes = data.notes
    await db.commit()
    await db.refresh(expense)
    return expense


@router.delete("/equipment-entries/{expense_id}")
async def delete_equipment_expense(
    expense_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    expense = await get_or_404(db, EquipmentExpense, expense_id, "Equipment expense")
    await db.delete(expense)
    await db.commit()
    return {"success": True, "message": "Expense deleted"}


@router.post("/other-entries", response_model=OtherExpenseResponse)
async def create_other_expense(
    data: OtherExpenseCreate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    await get_or_404(db, Site, data.site_id, "Site")
    expense = OtherExpense(**data.model_dump(exclude_none=True))
    db.add(expense)
    await db.commit()
    await db.refresh(expense)
    return expense


@router.put("/other-entries/{expense_id}", response_model=OtherExpenseResponse)
async def update_other_expense(
    expense_id: int,
    data: OtherExpenseCreate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    expense = await get_or_404(db, OtherExpense, expense_id, "Other expense")
    for key, value in data.model_dump().items():
        setattr(expense, key, value)
    await db.commit()
    await db.refresh(expense)
    return expense


@router.delete("/other-entries/{expense_id}")
async def delete_other_expense(
    expense_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    expense = await get_or_404(db, OtherExpense, expense_id, "Other expense")
    await db.delete(expense)
    await db.commit()
    return {"success": True, "message": "Expense deleted"}
