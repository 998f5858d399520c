"""
Master material catalogue API
"""
from typing import List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, field_validator
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from sitemanager.api.auth import get_current_user
from sitemanager.api.common import get_or_404
from sitemanager.database import get_db
from sitemanager.models.master_material import MasterMaterial
from sitemanager.models.user import User
from sitemanager.utils.validators import validate_required_text

router = APIRouter()


class MasterMaterialResponse(BaseModel):
    id: int
    name: str
    category: str
    unit: str
    is_active: bool

    class Config:
        from_attributes = True


class MasterMaterialCreate(BaseModel):
    name: str
    category: str = "general"
    unit: str

    @field_validator("name", "unit")
    @classmethod
    def validate_text(cls, v: str, info) -> str:
        return validate_required_text(v, info.field_name)


class MasterMaterialUpdate(BaseModel):
    name: Optional[str] = None
    category: Optional[str] = None
    unit: Optional[str] = None
    is_active: Optional[bool] = None


@router.get("/", response_model=List[MasterMaterialResponse])
async def list_master_materials(
    category: Optional[str] = None,
    active_only: bool = True,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    query = select(MasterMaterial).order_by(MasterMaterial.category, MasterMaterial.name)
    if category:
        query = query.where(MasterMaterial.category == category)
    if active_only:
        query = query.where(MasterMaterial.is_active == True)
    result = await db.execute(query)
    return result.scalars().all()


@router.post("/", response_model=MasterMaterialResponse)
async def create_master_material(
    data: MasterMaterialCreate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    material = MasterMaterial(**data.model_dump(), is_active=True)
    db.add(material)
    await db.commit()
    await db.refresh(material)
    return material


@router.put("/{material_id}", response_model=MasterMaterialResponse)
async def update_master_material(
    material_id: int,
    data: MasterMaterialUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    material = await get_or_404(db, MasterMaterial, material_id, "Material")
    for key, value in data.model_dump(exclude_none=True).items():
        setattr(material, key, value)
    await db.commit()
    await db.refresh(material)
    return material


@router.delete("/{material_id}")
async def delete_master_material(
    material_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Deactivate (soft delete)"""
    material = await get_or_404(db, MasterMaterial, material_id, "Material")
    material.is_active = False
    await db.commit()
    return {"message": "Material deactivated"}
