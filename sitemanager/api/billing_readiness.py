"""
Billing readiness API - six-facet status per BOQ line item, rolled up by
headline and site. Computed from scratch on every request.
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from sitemanager.api.auth import get_current_user
from sitemanager.api.common import fetch_optional, get_or_404
from sitemanager.database import get_db
from sitemanager.models.boq import BOQHeadline, BOQLineItem
from sitemanager.models.checklist import BOQChecklist
from sitemanager.models.jmr import BOQJMR
from sitemanager.models.material import ComplianceDocument, Material
from sitemanager.models.site import Package, Site
from sitemanager.models.user import User
from sitemanager.services.readiness import SiteReadiness, build_headline_readiness, summarize_site

logger = logging.getLogger(__name__)

router = APIRouter()


class BillingReadinessResponse(SiteReadiness):
    site_name: str
    request_id: Optional[str] = None


@router.get("/sites/{site_id}", response_model=BillingReadinessResponse)
async def get_site_readiness(
    site_id: int,
    package_id: Optional[int] = None,
    request_id: Optional[str] = None,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """
    Readiness of every line item on a site (optionally one package).
    `request_id` is echoed back so a client can drop responses to
    selections it has since moved away from.
    """
    site = await get_or_404(db, Site, site_id, "Site")

    package_query = select(Package.id).where(Package.site_id == site_id)
    if package_id is not None:
        package_query = package_query.where(Package.id == package_id)
    package_ids = list((await db.execute(package_query)).scalars().all())

    headlines, line_items, materials = [], [], []
    if package_ids:
        headlines = list((await db.execute(
            select(BOQHeadline).where(BOQHeadline.package_id.in_(package_ids))
        )).scalars().all())

    headline_ids = [h.id for h in headlines]
    if headline_ids:
        line_items = list((await db.execute(
            select(BOQLineItem).where(BOQLineItem.headline_id.in_(headline_ids))
        )).scalars().all())

    line_item_ids = [li.id for li in line_items]
    if line_item_ids:
        materials = list((await db.execute(
            select(Material).where(Material.line_item_id.in_(line_item_ids))
        )).scalars().all())

    material_ids = [m.id for m in materials]
    documents, checklists, jmrs = [], [], []
    if material_ids:
        documents = await fetch_optional(
            db,
            select(ComplianceDocument).where(ComplianceDocument.material_id.in_(material_ids)),
            "compliance documents",
        )
    if line_item_ids:
        checklists = await fetch_optional(
            db, select(BOQChecklist).where(BOQChecklist.line_item_id.in_(line_item_ids)), "checklists"
        )
        jmrs = await fetch_optional(
            db, select(BOQJMR).where(BOQJMR.line_item_id.in_(line_item_ids)), "JMRs"
        )

    evaluated = build_headline_readiness(headlines, line_items, materials, documents, checklists, jmrs)
    summary = summarize_site(site_id, evaluated)
    logger.debug(
        f"Readiness for site {site_id}: {summary.ready_line_items}/{summary.total_line_items} ready, "
        f"{summary.overall_progress}% overall"
    )
    return BillingReadinessResponse(
        **summary.model_dump(),
        site_name=site.name,
        request_id=request_id,
    )
