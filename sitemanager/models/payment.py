"""
Supplier invoice payment ledger - one row per (site, supplier, invoice number)
"""
from enum import Enum
from sqlalchemy import Column, Integer, String, Text, Float, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship
from datetime import datetime
from sitemanager.database import Base, enum_values_type


class PaymentStatus(str, Enum):
    PENDING = "pending"
    PARTIAL = "partial"
    PAID = "paid"


class SupplierInvoicePayment(Base):
    __tablename__ = "supplier_invoice_payments"
    __table_args__ = (
        UniqueConstraint("site_id", "supplier_id", "invoice_number", name="uq_supplier_invoice_payment"),
    )

    id = Column(Integer, primary_key=True, index=True)
    site_id = Column(Integer, ForeignKey("sites.id"), nullable=False, index=True)
    supplier_id = Column(Integer, ForeignKey("suppliers.id"), nullable=False, index=True)
    invoice_number = Column(String, nullable=False)

    payment_status = Column(enum_values_type(PaymentStatus), nullable=False, default=PaymentStatus.PENDING)
    payment_amount = Column(Float, nullable=False, default=0)  # cumulative
    payment_reference = Column(String, nullable=True)
    paid_at = Column(DateTime, nullable=True)
    paid_by = Column(String, nullable=True)
    notes = Column(Text, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    supplier = relationship("Supplier")
