"""
Materials tracked per BOQ line item, their receipts and compliance documents
"""
from enum import Enum
from sqlalchemy import (
    Column, Integer, String, Text, Float, Date, DateTime, Boolean, ForeignKey, UniqueConstraint,
)
from sqlalchemy.orm import relationship
from datetime import datetime
from sitemanager.database import Base, enum_values_type


class MaterialType(str, Enum):
    DIRECT = "direct"
    INDIRECT = "indirect"


class DocumentType(str, Enum):
    DC = "dc"
    MIR = "mir"
    TEST_CERTIFICATE = "test_certificate"
    TDS = "tds"


# Order matters: it is the column order of every compliance view
MATERIAL_DOCUMENT_TYPES = (
    DocumentType.DC,
    DocumentType.MIR,
    DocumentType.TEST_CERTIFICATE,
    DocumentType.TDS,
)

DOCUMENT_LABELS = {
    DocumentType.DC: "Delivery Challan",
    DocumentType.MIR: "Material Inspection Report",
    DocumentType.TEST_CERTIFICATE: "Test Certificate",
    DocumentType.TDS: "Technical Data Sheet",
}


class Material(Base):
    __tablename__ = "materials"

    id = Column(Integer, primary_key=True, index=True)
    line_item_id = Column(Integer, ForeignKey("boq_line_items.id"), nullable=False, index=True)
    name = Column(String, nullable=False)
    material_type = Column(enum_values_type(MaterialType), nullable=False, default=MaterialType.DIRECT)
    unit = Column(String, nullable=False)
    required_quantity = Column(Float, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    line_item = relationship("BOQLineItem", back_populates="materials")
    receipts = relationship("MaterialReceipt", back_populates="material", cascade="all, delete-orphan")
    documents = relationship("ComplianceDocument", back_populates="material", cascade="all, delete-orphan")


class MaterialReceipt(Base):
    __tablename__ = "material_receipts"

    id = Column(Integer, primary_key=True, index=True)
    material_id = Column(Integer, ForeignKey("materials.id"), nullable=False, index=True)
    receipt_date = Column(Date, nullable=False)
    quantity_received = Column(Float, nullable=False)
    vendor_name = Column(String, nullable=True)
    invoice_number = Column(String, nullable=True)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    material = relationship("Material", back_populates="receipts")


class ComplianceDocument(Base):
    """One placeholder per (material, document type)"""
    __tablename__ = "compliance_documents"
    __table_args__ = (UniqueConstraint("material_id", "document_type", name="uq_material_document_type"),)

    id = Column(Integer, primary_key=True, index=True)
    material_id = Column(Integer, ForeignKey("materials.id"), nullable=False, index=True)
    document_type = Column(enum_values_type(DocumentType), nullable=False)
    is_applicable = Column(Boolean, nullable=False, default=True)
    is_uploaded = Column(Boolean, nullable=False, default=False)
    file_path = Column(String, nullable=True)
    file_name = Column(String, nullable=True)
    uploaded_at = Column(DateTime, nullable=True)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    material = relationship("Material", back_populates="documents")
