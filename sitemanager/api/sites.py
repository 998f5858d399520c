"""
Sites and packages API endpoints
"""
import logging
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, field_validator
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from sitemanager.api.auth import get_current_user
from sitemanager.api.common import get_or_404
from sitemanager.database import get_db
from sitemanager.models.site import Package, Site, SiteStatus
from sitemanager.models.user import User
from sitemanager.utils.validators import validate_required_text

logger = logging.getLogger(__name__)

router = APIRouter()


class SiteResponse(BaseModel):
    id: int
    name: str
    client_name: Optional[str]
    location: Optional[str]
    status: SiteStatus
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class SiteCreate(BaseModel):
    name: str
    client_name: Optional[str] = None
    location: Optional[str] = None
    status: SiteStatus = SiteStatus.ACTIVE

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        return validate_required_text(v, "name")


class SiteUpdate(BaseModel):
    name: Optional[str] = None
    client_name: Optional[str] = None
    location: Optional[str] = None
    status: Optional[SiteStatus] = None


class PackageResponse(BaseModel):
    id: int
    site_id: int
    name: str
    code: Optional[str]

    class Config:
        from_attributes = True


class PackageCreate(BaseModel):
    name: str
    code: Optional[str] = None

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        return validate_required_text(v, "name")


# ==================== Sites ====================

@router.get("/", response_model=List[SiteResponse])
async def list_sites(
    status: Optional[SiteStatus] = None,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """List all sites"""
    query = select(Site).order_by(Site.name)
    if status:
        query = query.where(Site.status == status)
    result = await db.execute(query)
    return result.scalars().all()


@router.get("/{site_id}", response_model=SiteResponse)
async def get_site(
    site_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    return await get_or_404(db, Site, site_id, "Site")


@router.post("/", response_model=SiteResponse)
async def create_site(
    data: SiteCreate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    existing = await db.execute(select(Site).where(Site.name == data.name))
    if existing.scalar_one_or_none():
        raise HTTPException(status_code=409, detail="A site with this name already exists")

    site = Site(**data.model_dump(exclude_none=True))
    db.add(site)
    await db.commit()
    await db.refresh(site)
    logger.info(f"User {current_user.id} created site {site.id} ({site.name})")
    return site


@router.put("/{site_id}", response_model=SiteResponse)
async def update_site(
    site_id: int,
    data: SiteUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    site = await get_or_404(db, Site, site_id, "Site")
    for key, value in data.model_dump(exclude_none=True).items():
        setattr(site, key, value)
    await db.commit()
    await db.refresh(site)
    return site


@router.delete("/{site_id}")
async def delete_site(
    site_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    site = await get_or_404(db, Site, site_id, "Site")
    await db.delete(site)
    await db.commit()
    logger.info(f"User {current_user.id} deleted site {site_id}")
    return {"success": True, "message": "Site deleted"}


# ==================== Packages ====================

@router.get("/{site_id}/packages", response_model=List[PackageResponse])
async def list_packages(
    site_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    await get_or_404(db, Site, site_id, "Site")
    result = await db.execute(
        select(Package).where(Package.site_id == site_id).order_by(Package.name)
    )
    return result.scalars().all()


@router.post("/{site_id}/packages", response_model=PackageResponse)
async def create_package(
    site_id: int,
    data: PackageCreate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    await get_or_404(db, Site, site_id, "Site")
    package = Package(site_id=site_id, **data.model_dump(exclude_none=True))
    db.add(package)
    await db.commit()
    await db.refresh(package)
    return package


@router.delete("/packages/{package_id}")
async def delete_package(
    package_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    package = await get_or_404(db, Package, package_id, "Package")
    await db.delete(package)
    await db.commit()
    return {"success": True, "message": "Package deleted"}
