"""
Billing readiness for BOQ line items, headlines and a whole site.

A line item is evaluated on six facets: DC, MIR, Test Certificate and TDS
(pooled over the item's materials), the signed quality checklist and an
approved JMR. Callers fetch flat row sets by foreign key and hand them over
as-is; grouping happens here.
"""
from collections import defaultdict
from typing import Dict, Iterable, List, Optional

from pydantic import BaseModel

from sitemanager.models.jmr import JMRStatus
from sitemanager.models.material import DocumentType
from sitemanager.services.document_status import (
    DocumentStatus,
    FileRef,
    ReadinessStatus,
    resolve_document_status,
)
from sitemanager.utils.helpers import item_number_key, round_half_up


FACET_COUNT = 6

BADGE_READY = "Ready"
BADGE_IN_PROGRESS = "In Progress"
BADGE_PENDING = "Pending"


class LineItemReadiness(BaseModel):
    line_item_id: int
    headline_id: int
    item_number: str
    description: str
    location: Optional[str] = None
    unit: Optional[str] = None
    quantity: float = 0
    material_count: int = 0
    dc: DocumentStatus
    mir: DocumentStatus
    test_certificate: DocumentStatus
    tds: DocumentStatus
    checklist: DocumentStatus
    jmr: DocumentStatus
    progress: int
    ready_for_billing: bool

    def facets(self) -> List[DocumentStatus]:
        return [self.dc, self.mir, self.test_certificate, self.tds, self.checklist, self.jmr]


class HeadlineReadiness(BaseModel):
    headline_id: int
    package_id: int
    serial_number: int
    name: str
    line_items: List[LineItemReadiness]
    progress: int
    badge: str


class SiteReadiness(BaseModel):
    site_id: int
    headlines: List[HeadlineReadiness]
    overall_progress: int
    total_line_items: int
    ready_line_items: int


def checklist_status(checklists: Iterable) -> DocumentStatus:
    """Y once any checklist has a signed copy; never NA"""
    signed = [c for c in checklists if c.signed_copy_path]
    if signed:
        return DocumentStatus(
            status=ReadinessStatus.YES,
            files=[
                FileRef(path=c.signed_copy_path, name=c.signed_copy_name or "Signed checklist")
                for c in signed
            ],
        )
    return DocumentStatus(status=ReadinessStatus.NO)


def jmr_status(jmrs: Iterable) -> DocumentStatus:
    """Y once any JMR is approved and carries a file; never NA"""
    approved = [
        j for j in jmrs
        if j.status == JMRStatus.APPROVED and j.file_path
    ]
    if approved:
        return DocumentStatus(
            status=ReadinessStatus.YES,
            files=[FileRef(path=j.file_path, name=j.file_name or "JMR") for j in approved],
        )
    return DocumentStatus(status=ReadinessStatus.NO)


def facet_progress(facets: Iterable[DocumentStatus]) -> int:
    satisfied = sum(1 for f in facets if f.satisfied)
    return round_half_up(satisfied / FACET_COUNT * 100)


def readiness_badge(progress: int) -> str:
    if progress == 100:
        return BADGE_READY
    if progress >= 50:
        return BADGE_IN_PROGRESS
    return BADGE_PENDING


def evaluate_line_item(line_item, materials: List, documents: List, checklists: List, jmrs: List) -> LineItemReadiness:
    """
    Evaluate one line item. `documents` are the compliance documents of
    `materials`; the other collections are already restricted to the item.
    """
    has_materials = len(materials) > 0

    dc = resolve_document_status(documents, DocumentType.DC, has_materials)
    mir = resolve_document_status(documents, DocumentType.MIR, has_materials)
    test_certificate = resolve_document_status(documents, DocumentType.TEST_CERTIFICATE, has_materials)
    tds = resolve_document_status(documents, DocumentType.TDS, has_materials)
    checklist = checklist_status(checklists)
    jmr = jmr_status(jmrs)

    facets = [dc, mir, test_certificate, tds, checklist, jmr]

    return LineItemReadiness(
        line_item_id=line_item.id,
        headline_id=line_item.headline_id,
        item_number=str(line_item.item_number),
        description=line_item.description,
        location=line_item.location,
        unit=line_item.unit,
        quantity=float(line_item.quantity or 0),
        material_count=len(materials),
        dc=dc,
        mir=mir,
        test_certificate=test_certificate,
        tds=tds,
        checklist=checklist,
        jmr=jmr,
        progress=facet_progress(facets),
        ready_for_billing=all(f.satisfied for f in facets),
    )


def headline_progress(line_items: List[LineItemReadiness]) -> int:
    if not line_items:
        return 0
    return round_half_up(sum(li.progress for li in line_items) / len(line_items))


def _group(rows: Iterable, key: str) -> Dict[int, List]:
    grouped = defaultdict(list)
    for row in rows:
        grouped[getattr(row, key)].append(row)
    return grouped


def build_headline_readiness(
    headlines: Iterable,
    line_items: Iterable,
    materials: Iterable,
    documents: Iterable,
    checklists: Iterable,
    jmrs: Iterable,
) -> List[HeadlineReadiness]:
    """Group flat row sets by foreign key and evaluate every headline"""
    items_by_headline = _group(line_items, "headline_id")
    materials_by_item = _group(materials, "line_item_id")
    docs_by_material = _group(documents, "material_id")
    checklists_by_item = _group(checklists, "line_item_id")
    jmrs_by_item = _group(jmrs, "line_item_id")

    result = []
    for headline in sorted(headlines, key=lambda h: (h.serial_number, h.id)):
        evaluated = []
        items = sorted(
            items_by_headline.get(headline.id, []),
            key=lambda li: (item_number_key(li.item_number), li.id),
        )
        for item in items:
            item_materials = materials_by_item.get(item.id, [])
            item_docs = []
            for material in item_materials:
                item_docs.extend(docs_by_material.get(material.id, []))
            evaluated.append(evaluate_line_item(
                item,
                item_materials,
                item_docs,
                checklists_by_item.get(item.id, []),
                jmrs_by_item.get(item.id, []),
            ))

        progress = headline_progress(evaluated)
        result.append(HeadlineReadiness(
            headline_id=headline.id,
            package_id=headline.package_id,
            serial_number=headline.serial_number,
            name=headline.name,
            line_items=evaluated,
            progress=progress,
            badge=readiness_badge(progress),
        ))
    return result


def summarize_site(site_id: int, headlines: List[HeadlineReadiness]) -> SiteReadiness:
    """Site roll-up; overall progress is the plain mean of headline progress"""
    all_items = [li for h in headlines for li in h.line_items]
    overall = 0
    if headlines:
        overall = round_half_up(sum(h.progress for h in headlines) / len(headlines))

    return SiteReadiness(
        site_id=site_id,
        headlines=headlines,
        overall_progress=overall,
        total_line_items=len(all_items),
        ready_line_items=sum(1 for li in all_items if li.ready_for_billing),
    )
