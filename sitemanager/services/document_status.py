"""
Document applicability resolution.

Every compliance view in the app reduces to the same three-valued status per
document type:

    Y   every applicable document of the type has a stored file
    N   at least one applicable document is still missing its file
    NA  nothing of the type is required

Y and NA both count as satisfied.
"""
from enum import Enum
from typing import Iterable, List, Optional, Sequence

from pydantic import BaseModel


class ReadinessStatus(str, Enum):
    YES = "Y"
    NO = "N"
    NOT_APPLICABLE = "NA"


SATISFIED = (ReadinessStatus.YES, ReadinessStatus.NOT_APPLICABLE)


class FileRef(BaseModel):
    path: str
    name: str


class DocumentStatus(BaseModel):
    status: ReadinessStatus
    files: List[FileRef] = []

    @property
    def satisfied(self) -> bool:
        return self.status in SATISFIED


class ComplianceCount(BaseModel):
    applicable: int = 0
    uploaded: int = 0
    not_applicable: int = 0

    @property
    def complete(self) -> bool:
        return self.uploaded >= self.applicable

    def __add__(self, other: "ComplianceCount") -> "ComplianceCount":
        return ComplianceCount(
            applicable=self.applicable + other.applicable,
            uploaded=self.uploaded + other.uploaded,
            not_applicable=self.not_applicable + other.not_applicable,
        )


def has_file(doc) -> bool:
    """An applicable document counts as uploaded only when a file is stored"""
    return bool(doc.is_applicable and doc.is_uploaded and doc.file_path)


def file_ref(doc, fallback: str = "Document") -> FileRef:
    return FileRef(path=doc.file_path, name=doc.file_name or fallback)


def resolve_document_status(
    documents: Iterable,
    document_type: Optional[str] = None,
    has_owners: bool = True,
) -> DocumentStatus:
    """
    Resolve Y/N/NA for one document type across the documents of an owner.

    `documents` may hold several types; only `document_type` is considered when
    given. `has_owners` says whether the owner has anything that needs documents
    at all (a line item with no materials does not), which decides what an empty
    collection means.
    """
    docs = [
        d for d in documents
        if document_type is None or d.document_type == document_type
    ]

    if not docs:
        if not has_owners:
            return DocumentStatus(status=ReadinessStatus.NOT_APPLICABLE)
        return DocumentStatus(status=ReadinessStatus.NO)

    applicable = [d for d in docs if d.is_applicable]
    if not applicable:
        return DocumentStatus(status=ReadinessStatus.NOT_APPLICABLE)

    uploaded = [d for d in applicable if has_file(d)]
    files = [file_ref(d) for d in uploaded]

    if len(uploaded) == len(applicable):
        return DocumentStatus(status=ReadinessStatus.YES, files=files)
    return DocumentStatus(status=ReadinessStatus.NO, files=files)


def count_compliance(documents: Iterable, document_types: Sequence[str]) -> ComplianceCount:
    """
    Count applicable / uploaded / not-applicable documents over the given types.

    A type with no record yet counts as applicable and outstanding, the same
    state a freshly created placeholder has.
    """
    by_type = {}
    for doc in documents:
        by_type.setdefault(doc.document_type, doc)

    count = ComplianceCount()
    for doc_type in document_types:
        doc = by_type.get(doc_type)
        if doc is None:
            count.applicable += 1
        elif not doc.is_applicable:
            count.not_applicable += 1
        else:
            count.applicable += 1
            if has_file(doc):
                count.uploaded += 1
    return count


def single_record_status(doc) -> DocumentStatus:
    """Status of one optional record (e.g. an invoice's delivery challan)"""
    if doc is None:
        return DocumentStatus(status=ReadinessStatus.NO)
    if not doc.is_applicable:
        return DocumentStatus(status=ReadinessStatus.NOT_APPLICABLE)
    if has_file(doc):
        return DocumentStatus(status=ReadinessStatus.YES, files=[file_ref(doc)])
    return DocumentStatus(status=ReadinessStatus.NO)


# --- Legacy flat GRN register ---

def legacy_document_status(documents: Iterable, document_type: str) -> ReadinessStatus:
    doc = next((d for d in documents if d.document_type == document_type), None)
    if doc is None:
        return ReadinessStatus.NO
    if not doc.is_applicable:
        return ReadinessStatus.NOT_APPLICABLE
    if doc.is_uploaded:
        return ReadinessStatus.YES
    return ReadinessStatus.NO


def legacy_compliance_count(documents: Sequence, expected_types: int = 4) -> ComplianceCount:
    """Register summary: 'uploaded of applicable (n NA)'; no placeholders yet means all expected types are due"""
    if not documents:
        return ComplianceCount(applicable=expected_types)
    return ComplianceCount(
        applicable=sum(1 for d in documents if d.is_applicable),
        uploaded=sum(1 for d in documents if d.is_applicable and d.is_uploaded),
        not_applicable=sum(1 for d in documents if not d.is_applicable),
    )
