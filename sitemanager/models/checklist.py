"""
Checklist models.

Two subsystems live side by side:
  * a simple per-headline activity checklist (Checklist / ChecklistItem)
  * template-based quality checklists raised per BOQ line item
    (ChecklistTemplate -> BOQChecklist with items and clearances); the signed
    copy of a BOQChecklist is what billing readiness looks at.
"""
from enum import Enum
from sqlalchemy import Column, Integer, String, Text, Date, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from datetime import datetime
from sitemanager.database import Base, enum_values_type
from sitemanager.models.boq import WorkStatus


class BOQChecklistStatus(str, Enum):
    DRAFT = "draft"
    COMPLETED = "completed"


class CheckMark(str, Enum):
    YES = "Y"
    NO = "N"
    NOT_APPLICABLE = "NA"


class ClearanceType(str, Enum):
    CIVIL_WORKS = "cw"
    ELECTRICAL = "electrical"
    HVAC = "hvac"


# --- Per-headline activity checklist ---

class Checklist(Base):
    __tablename__ = "checklists"

    id = Column(Integer, primary_key=True, index=True)
    headline_id = Column(Integer, ForeignKey("boq_headlines.id"), nullable=False, index=True)
    name = Column(String, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)

    items = relationship(
        "ChecklistItem",
        back_populates="checklist",
        cascade="all, delete-orphan",
        order_by="ChecklistItem.sort_order",
    )


class ChecklistItem(Base):
    __tablename__ = "checklist_items"

    id = Column(Integer, primary_key=True, index=True)
    checklist_id = Column(Integer, ForeignKey("checklists.id"), nullable=False, index=True)
    activity_name = Column(String, nullable=False)
    sort_order = Column(Integer, nullable=True)
    status = Column(enum_values_type(WorkStatus), nullable=False, default=WorkStatus.PENDING)
    completed_at = Column(DateTime, nullable=True)
    completed_by = Column(String, nullable=True)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    checklist = relationship("Checklist", back_populates="items")


# --- Template-based quality checklist ---

class ChecklistTemplate(Base):
    __tablename__ = "checklist_templates"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, unique=True, nullable=False)
    description = Column(Text, nullable=True)
    notes_template = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    items = relationship(
        "ChecklistTemplateItem",
        back_populates="template",
        cascade="all, delete-orphan",
        order_by="ChecklistTemplateItem.item_no",
    )


class ChecklistTemplateItem(Base):
    __tablename__ = "checklist_template_items"

    id = Column(Integer, primary_key=True, index=True)
    template_id = Column(Integer, ForeignKey("checklist_templates.id"), nullable=False, index=True)
    item_no = Column(Integer, nullable=False)
    description = Column(Text, nullable=False)

    template = relationship("ChecklistTemplate", back_populates="items")


class BOQChecklist(Base):
    __tablename__ = "boq_checklists"

    id = Column(Integer, primary_key=True, index=True)
    line_item_id = Column(Integer, ForeignKey("boq_line_items.id"), nullable=False, index=True)
    template_id = Column(Integer, ForeignKey("checklist_templates.id"), nullable=True)
    checklist_name = Column(String, nullable=False)
    project = Column(String, nullable=True)
    shop_drawing_no = Column(String, nullable=True)
    make = Column(String, nullable=True)
    checklist_date = Column(Date, nullable=True)
    location = Column(String, nullable=True)
    notes = Column(Text, nullable=True)
    status = Column(enum_values_type(BOQChecklistStatus), nullable=False, default=BOQChecklistStatus.DRAFT)

    # Signed copy
    signed_copy_path = Column(String, nullable=True)
    signed_copy_name = Column(String, nullable=True)
    signed_uploaded_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)

    line_item = relationship("BOQLineItem", back_populates="checklists")
    items = relationship(
        "BOQChecklistItem",
        back_populates="checklist",
        cascade="all, delete-orphan",
        order_by="BOQChecklistItem.item_no",
    )
    clearances = relationship("BOQChecklistClearance", back_populates="checklist", cascade="all, delete-orphan")


class BOQChecklistItem(Base):
    __tablename__ = "boq_checklist_items"

    id = Column(Integer, primary_key=True, index=True)
    checklist_id = Column(Integer, ForeignKey("boq_checklists.id"), nullable=False, index=True)
    item_no = Column(Integer, nullable=False)
    description = Column(Text, nullable=False)
    status = Column(enum_values_type(CheckMark), nullable=True)
    remarks = Column(Text, nullable=True)

    checklist = relationship("BOQChecklist", back_populates="items")


class BOQChecklistClearance(Base):
    __tablename__ = "boq_checklist_clearances"

    id = Column(Integer, primary_key=True, index=True)
    checklist_id = Column(Integer, ForeignKey("boq_checklists.id"), nullable=False, index=True)
    clearance_type = Column(enum_values_type(ClearanceType), nullable=False)
    representative_name = Column(String, nullable=True)
    clearance_date = Column(Date, nullable=True)
    signature = Column(String, nullable=True)

    checklist = relationship("BOQChecklist", back_populates="clearances")
