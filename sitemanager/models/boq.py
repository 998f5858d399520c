"""
Bill of quantities - headlines (billable groups) and their line items
"""
from enum import Enum
from sqlalchemy import Column, Integer, String, Text, Float, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from datetime import datetime
from sitemanager.database import Base, enum_values_type


class WorkStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


class BOQHeadline(Base):
    __tablename__ = "boq_headlines"

    id = Column(Integer, primary_key=True, index=True)
    package_id = Column(Integer, ForeignKey("packages.id"), nullable=False, index=True)
    serial_number = Column(Integer, nullable=False)
    name = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    status = Column(enum_values_type(WorkStatus), nullable=False, default=WorkStatus.PENDING)
    created_at = Column(DateTime, default=datetime.utcnow)

    package = relationship("Package", back_populates="headlines")
    line_items = relationship("BOQLineItem", back_populates="headline", cascade="all, delete-orphan")


class BOQLineItem(Base):
    __tablename__ = "boq_line_items"

    id = Column(Integer, primary_key=True, index=True)
    headline_id = Column(Integer, ForeignKey("boq_headlines.id"), nullable=False, index=True)
    item_number = Column(String, nullable=False)  # "1.1", "1.2", ...
    description = Column(Text, nullable=False)
    location = Column(String, nullable=True)
    unit = Column(String, nullable=False)
    quantity = Column(Float, nullable=False, default=0)
    status = Column(enum_values_type(WorkStatus), nullable=False, default=WorkStatus.PENDING)
    created_at = Column(DateTime, default=datetime.utcnow)

    headline = relationship("BOQHeadline", back_populates="line_items")
    materials = relationship("Material", back_populates="line_item", cascade="all, delete-orphan")
    checklists = relationship("BOQChecklist", back_populates="line_item", cascade="all, delete-orphan")
    jmrs = relationship("BOQJMR", back_populates="line_item", cascade="all, delete-orphan")
