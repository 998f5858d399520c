"""
Supplier invoices API - GRN deliveries grouped by commercial invoice, with
compliance counts and payment status.
"""
import logging
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, field_validator
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from sitemanager.api.auth import get_current_user
from sitemanager.api.common import fetch_optional, get_or_404
from sitemanager.database import get_db
from sitemanager.models.grn import GRNInvoice, GRNInvoiceDC, GRNLineItem, GRNLineItemDocument
from sitemanager.models.payment import PaymentStatus, SupplierInvoicePayment
from sitemanager.models.site import Site
from sitemanager.models.supplier import Supplier
from sitemanager.models.user import User
from sitemanager.services.invoice_grouping import InvoiceGroup, group_invoices
from sitemanager.services.payments import (
    InvoicePaymentView,
    SupplierPaymentSummary,
    apply_payment,
    build_payment_views,
    summarize_suppliers,
)
from sitemanager.utils.helpers import money
from sitemanager.utils.validators import validate_positive, validate_required_text

logger = logging.getLogger(__name__)

router = APIRouter()


class SupplierInvoiceEntry(BaseModel):
    invoice: InvoiceGroup
    payment: InvoicePaymentView


class SupplierInvoicesResponse(BaseModel):
    site_id: int
    request_id: Optional[str] = None
    invoices: List[SupplierInvoiceEntry]
    suppliers: List[SupplierPaymentSummary]
    total_amount: float
    pending_amount: float
    paid_amount: float


class PaymentCreate(BaseModel):
    supplier_id: int
    invoice_number: str
    amount: float
    payment_reference: str
    notes: Optional[str] = None

    @field_validator("amount")
    @classmethod
    def validate_amount(cls, v: float) -> float:
        return validate_positive(v, "Payment amount")

    @field_validator("invoice_number", "payment_reference")
    @classmethod
    def validate_text(cls, v: str, info) -> str:
        return validate_required_text(v, info.field_name)


class PaymentResponse(BaseModel):
    id: int
    site_id: int
    supplier_id: int
    invoice_number: str
    payment_status: PaymentStatus
    payment_amount: float
    payment_reference: Optional[str]
    paid_at: Optional[datetime]
    paid_by: Optional[str]
    notes: Optional[str]
    invoice_total: float
    balance: float


async def load_invoice_groups(db: AsyncSession, site_id: int, supplier_id: Optional[int] = None) -> List[InvoiceGroup]:
    """Fetch the site's GRN rows, their line items and documents, and group them"""
    query = select(GRNInvoice).where(GRNInvoice.site_id == site_id)
    if supplier_id is not None:
        query = query.where(GRNInvoice.supplier_id == supplier_id)
    invoices = list((await db.execute(query)).scalars().all())
    if not invoices:
        return []

    invoice_ids = [inv.id for inv in invoices]
    supplier_ids = sorted({inv.supplier_id for inv in invoices})

    line_items = list((await db.execute(
        select(GRNLineItem).where(GRNLineItem.grn_invoice_id.in_(invoice_ids))
    )).scalars().all())
    suppliers = list((await db.execute(
        select(Supplier).where(Supplier.id.in_(supplier_ids))
    )).scalars().all())

    dc_records = await fetch_optional(
        db, select(GRNInvoiceDC).where(GRNInvoiceDC.grn_invoice_id.in_(invoice_ids)), "delivery challans"
    )
    documents = []
    if line_items:
        documents = await fetch_optional(
            db,
            select(GRNLineItemDocument).where(
                GRNLineItemDocument.grn_line_item_id.in_([i.id for i in line_items])
            ),
            "GRN line item documents",
        )

    return group_invoices(
        invoices,
        line_items,
        dc_records,
        documents,
        supplier_names={s.id: s.supplier_name for s in suppliers},
    )


@router.get("/sites/{site_id}", response_model=SupplierInvoicesResponse)
async def list_supplier_invoices(
    site_id: int,
    supplier_id: Optional[int] = None,
    request_id: Optional[str] = None,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    await get_or_404(db, Site, site_id, "Site")
    groups = await load_invoice_groups(db, site_id, supplier_id)

    payment_query = select(SupplierInvoicePayment).where(SupplierInvoicePayment.site_id == site_id)
    if supplier_id is not None:
        payment_query = payment_query.where(SupplierInvoicePayment.supplier_id == supplier_id)
    payments = await fetch_optional(db, payment_query, "payment ledger")

    views = build_payment_views(groups, payments)
    summaries = summarize_suppliers(groups, views)

    return SupplierInvoicesResponse(
        site_id=site_id,
        request_id=request_id,
        invoices=[SupplierInvoiceEntry(invoice=g, payment=v) for g, v in zip(groups, views)],
        suppliers=summaries,
        total_amount=money(sum(g.total_amount for g in groups)),
        pending_amount=money(sum(s.pending_amount for s in summaries)),
        paid_amount=money(sum(s.paid_amount for s in summaries)),
    )


@router.post("/sites/{site_id}/payments", response_model=PaymentResponse)
async def record_payment(
    site_id: int,
    data: PaymentCreate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """
    Add a payment to the invoice's running total. The ledger keeps one row
    per (site, supplier, invoice number); its status follows the total.
    """
    await get_or_404(db, Site, site_id, "Site")
    groups = await load_invoice_groups(db, site_id, data.supplier_id)
    group = next((g for g in groups if g.invoice_number == data.invoice_number), None)
    if group is None:
        raise HTTPException(status_code=404, detail="Invoice not found for this supplier")

    result = await db.execute(
        select(SupplierInvoicePayment).where(
            SupplierInvoicePayment.site_id == site_id,
            SupplierInvoicePayment.supplier_id == data.supplier_id,
            SupplierInvoicePayment.invoice_number == data.invoice_number,
        )
    )
    ledger = result.scalar_one_or_none()

    previous = ledger.payment_amount if ledger else 0
    cumulative, status = apply_payment(previous, data.amount, group.total_amount)

    if ledger is None:
        ledger = SupplierInvoicePayment(
            site_id=site_id,
            supplier_id=data.supplier_id,
            invoice_number=data.invoice_number,
        )
        db.add(ledger)

    ledger.payment_amount = cumulative
    ledger.payment_status = status
    ledger.payment_reference = data.payment_reference
    ledger.paid_at = datetime.utcnow()
    ledger.paid_by = current_user.full_name
    if data.notes is not None:
        ledger.notes = data.notes

    await db.commit()
    await db.refresh(ledger)
    logger.info(
        f"User {current_user.id} recorded payment {data.amount} on invoice {data.invoice_number} "
        f"(supplier {data.supplier_id}): cumulative {cumulative} of {group.total_amount}, {status.value}"
    )

    return PaymentResponse(
        id=ledger.id,
        site_id=ledger.site_id,
        supplier_id=ledger.supplier_id,
        invoice_number=ledger.invoice_number,
        payment_status=ledger.payment_status,
        payment_amount=ledger.payment_amount,
        payment_reference=ledger.payment_reference,
        paid_at=ledger.paid_at,
        paid_by=ledger.paid_by,
        notes=ledger.notes,
        invoice_total=group.total_amount,
        balance=money(max(group.total_amount - cumulative, 0)),
    )
