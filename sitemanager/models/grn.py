"""
Goods receipt notes.

Current model: GRNInvoice (one delivery against a supplier invoice number) owns a
single delivery-challan record and several line items; each line item owns its
MIR / test certificate / TDS records. Several GRNInvoice rows may carry the same
supplier + invoice number (partial deliveries) and are grouped for payment.

Legacy model: MaterialGRN is a flat one-material-per-record register with its
own four compliance placeholders. It is read as-is and never grouped.
"""
from sqlalchemy import (
    Column, Integer, String, Text, Float, Date, DateTime, Boolean, ForeignKey, UniqueConstraint,
)
from sqlalchemy.orm import relationship
from datetime import datetime
from sitemanager.database import Base, enum_values_type
from sitemanager.models.material import DocumentType

# Documents that belong to a GRN line item; DC belongs to the invoice
LINE_ITEM_DOCUMENT_TYPES = (
    DocumentType.MIR,
    DocumentType.TEST_CERTIFICATE,
    DocumentType.TDS,
)


class GRNInvoice(Base):
    __tablename__ = "grn_invoices"

    id = Column(Integer, primary_key=True, index=True)
    site_id = Column(Integer, ForeignKey("sites.id"), nullable=False, index=True)
    supplier_id = Column(Integer, ForeignKey("suppliers.id"), nullable=False, index=True)
    invoice_number = Column(String, nullable=False, index=True)
    grn_date = Column(Date, nullable=False)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    supplier = relationship("Supplier")
    site = relationship("Site")
    line_items = relationship("GRNLineItem", back_populates="invoice", cascade="all, delete-orphan")
    dc = relationship("GRNInvoiceDC", back_populates="invoice", uselist=False, cascade="all, delete-orphan")


class GRNInvoiceDC(Base):
    __tablename__ = "grn_invoice_dc"

    id = Column(Integer, primary_key=True, index=True)
    grn_invoice_id = Column(Integer, ForeignKey("grn_invoices.id"), nullable=False, unique=True)
    is_applicable = Column(Boolean, nullable=False, default=True)
    is_uploaded = Column(Boolean, nullable=False, default=False)
    file_path = Column(String, nullable=True)
    file_name = Column(String, nullable=True)
    uploaded_at = Column(DateTime, nullable=True)

    invoice = relationship("GRNInvoice", back_populates="dc")


class GRNLineItem(Base):
    __tablename__ = "grn_line_items"

    id = Column(Integer, primary_key=True, index=True)
    grn_invoice_id = Column(Integer, ForeignKey("grn_invoices.id"), nullable=False, index=True)
    material_id = Column(Integer, ForeignKey("master_materials.id"), nullable=True)
    material_name = Column(String, nullable=False)
    quantity = Column(Float, nullable=False)
    unit = Column(String, nullable=False)
    rate = Column(Float, nullable=False, default=0)
    gst_rate = Column(Float, nullable=False, default=18)
    amount_without_gst = Column(Float, nullable=False, default=0)
    amount_with_gst = Column(Float, nullable=False, default=0)
    created_at = Column(DateTime, default=datetime.utcnow)

    invoice = relationship("GRNInvoice", back_populates="line_items")
    documents = relationship("GRNLineItemDocument", back_populates="line_item", cascade="all, delete-orphan")


class GRNLineItemDocument(Base):
    __tablename__ = "grn_line_item_documents"
    __table_args__ = (UniqueConstraint("grn_line_item_id", "document_type", name="uq_grn_line_item_document"),)

    id = Column(Integer, primary_key=True, index=True)
    grn_line_item_id = Column(Integer, ForeignKey("grn_line_items.id"), nullable=False, index=True)
    document_type = Column(enum_values_type(DocumentType), nullable=False)
    is_applicable = Column(Boolean, nullable=False, default=True)
    is_uploaded = Column(Boolean, nullable=False, default=False)
    file_path = Column(String, nullable=True)
    file_name = Column(String, nullable=True)
    uploaded_at = Column(DateTime, nullable=True)

    line_item = relationship("GRNLineItem", back_populates="documents")


# --- Legacy register ---

class MaterialGRN(Base):
    __tablename__ = "material_grn"

    id = Column(Integer, primary_key=True, index=True)
    site_id = Column(Integer, ForeignKey("sites.id"), nullable=False, index=True)
    grn_date = Column(Date, nullable=False)
    vendor_name = Column(String, nullable=False)
    invoice_number = Column(String, nullable=True)
    invoice_amount = Column(Float, nullable=True)
    material_id = Column(Integer, ForeignKey("master_materials.id"), nullable=True)
    material_name = Column(String, nullable=False)
    quantity = Column(Float, nullable=False)
    unit = Column(String, nullable=False)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    compliance_docs = relationship("GRNComplianceDocument", back_populates="grn", cascade="all, delete-orphan")


class GRNComplianceDocument(Base):
    __tablename__ = "grn_compliance_documents"

    id = Column(Integer, primary_key=True, index=True)
    grn_id = Column(Integer, ForeignKey("material_grn.id"), nullable=False, index=True)
    document_type = Column(enum_values_type(DocumentType), nullable=False)
    is_applicable = Column(Boolean, nullable=False, default=True)
    is_uploaded = Column(Boolean, nullable=False, default=False)
    file_path = Column(String, nullable=True)
    file_name = Column(String, nullable=True)
    document_date = Column(Date, nullable=True)
    uploaded_at = Column(DateTime, nullable=True)

    grn = relationship("MaterialGRN", back_populates="compliance_docs")
