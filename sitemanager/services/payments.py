"""
Supplier invoice payment status.

One ledger row per (site, supplier, invoice_number) holds the cumulative
amount paid against an invoice group. Status is derived from that amount
and the group total.
"""
from collections import OrderedDict
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Tuple

from pydantic import BaseModel

from sitemanager.models.payment import PaymentStatus
from sitemanager.services.invoice_grouping import InvoiceGroup
from sitemanager.utils.helpers import money, to_float


class InvoicePaymentView(BaseModel):
    supplier_id: int
    invoice_number: str
    total_amount: float
    payment_status: PaymentStatus
    paid_amount: float
    balance: float
    payment_reference: Optional[str] = None
    paid_at: Optional[datetime] = None


class SupplierPaymentSummary(BaseModel):
    supplier_id: int
    supplier_name: str
    total_invoices: int = 0
    pending_count: int = 0
    partial_count: int = 0
    paid_count: int = 0
    total_amount: float = 0
    pending_amount: float = 0
    paid_amount: float = 0


def derive_payment_status(cumulative: float, invoice_total: float) -> PaymentStatus:
    """paid once the cumulative amount covers the total, partial while anything is paid"""
    cumulative = money(to_float(cumulative))
    if cumulative >= money(to_float(invoice_total)):
        return PaymentStatus.PAID
    if cumulative > 0:
        return PaymentStatus.PARTIAL
    return PaymentStatus.PENDING


def apply_payment(previous_cumulative: Optional[float], amount: float, invoice_total: float) -> Tuple[float, PaymentStatus]:
    """New cumulative amount and status after recording one more payment"""
    cumulative = money(to_float(previous_cumulative) + to_float(amount))
    return cumulative, derive_payment_status(cumulative, invoice_total)


def index_payments(payments: Iterable) -> Dict[Tuple[int, str], object]:
    """Ledger rows keyed by (supplier_id, invoice_number); the first row wins on duplicates"""
    indexed = {}
    for payment in payments:
        indexed.setdefault((payment.supplier_id, payment.invoice_number), payment)
    return indexed


def invoice_payment_view(group: InvoiceGroup, payment=None) -> InvoicePaymentView:
    total = group.total_amount

    if payment is None:
        return InvoicePaymentView(
            supplier_id=group.supplier_id,
            invoice_number=group.invoice_number,
            total_amount=total,
            payment_status=PaymentStatus.PENDING,
            paid_amount=0,
            balance=total,
        )

    # the stored status may predate a later delivery under the same invoice number
    status = derive_payment_status(payment.payment_amount, total)
    paid_amount = min(money(to_float(payment.payment_amount)), total)
    balance = money(max(total - paid_amount, 0))

    return InvoicePaymentView(
        supplier_id=group.supplier_id,
        invoice_number=group.invoice_number,
        total_amount=total,
        payment_status=status,
        paid_amount=money(paid_amount),
        balance=balance,
        payment_reference=payment.payment_reference,
        paid_at=payment.paid_at,
    )


def build_payment_views(groups: Iterable[InvoiceGroup], payments: Iterable) -> List[InvoicePaymentView]:
    ledger = index_payments(payments)
    return [invoice_payment_view(g, ledger.get(g.key)) for g in groups]


def summarize_suppliers(groups: Iterable[InvoiceGroup], views: Iterable[InvoicePaymentView]) -> List[SupplierPaymentSummary]:
    """Per-supplier counts and amounts, sorted by supplier name"""
    names = {g.supplier_id: g.supplier_name for g in groups}
    summaries: Dict[int, SupplierPaymentSummary] = OrderedDict()

    for view in views:
        summary = summaries.get(view.supplier_id)
        if summary is None:
            summary = SupplierPaymentSummary(
                supplier_id=view.supplier_id,
                supplier_name=names.get(view.supplier_id, "Unknown supplier"),
            )
            summaries[view.supplier_id] = summary

        summary.total_invoices += 1
        summary.total_amount = money(summary.total_amount + view.total_amount)

        if view.payment_status == PaymentStatus.PAID:
            summary.paid_count += 1
            summary.paid_amount = money(summary.paid_amount + view.total_amount)
        elif view.payment_status == PaymentStatus.PARTIAL:
            summary.partial_count += 1
            summary.pending_amount = money(summary.pending_amount + view.balance)
            summary.paid_amount = money(summary.paid_amount + view.paid_amount)
        else:
            summary.pending_count += 1
            summary.pending_amount = money(summary.pending_amount + view.total_amount)

    return sorted(summaries.values(), key=lambda s: (s.supplier_name.lower(), s.supplier_id))
