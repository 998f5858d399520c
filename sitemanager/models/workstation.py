"""
Workstations - crews/areas assigned to a site that log daily BOQ progress
"""
from sqlalchemy import (
    Column, Integer, Float, String, Text, Date, DateTime, Boolean, ForeignKey, UniqueConstraint,
)
from sqlalchemy.orm import relationship
from datetime import datetime
from sitemanager.database import Base


class MasterWorkstation(Base):
    __tablename__ = "master_workstations"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False, unique=True)
    description = Column(Text, nullable=True)
    is_active = Column(Boolean, default=True)


class SiteWorkstation(Base):
    __tablename__ = "site_workstations"
    __table_args__ = (UniqueConstraint("site_id", "workstation_id", name="uq_site_workstation"),)

    id = Column(Integer, primary_key=True, index=True)
    site_id = Column(Integer, ForeignKey("sites.id"), nullable=False, index=True)
    workstation_id = Column(Integer, ForeignKey("master_workstations.id"), nullable=False)
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    workstation = relationship("MasterWorkstation")


class WorkstationBOQProgress(Base):
    __tablename__ = "workstation_boq_progress"

    id = Column(Integer, primary_key=True, index=True)
    site_workstation_id = Column(Integer, ForeignKey("site_workstations.id"), nullable=False, index=True)
    boq_line_item_id = Column(Integer, ForeignKey("boq_line_items.id"), nullable=False, index=True)
    entry_date = Column(Date, nullable=False)
    quantity = Column(Float, nullable=False, default=0)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    line_item = relationship("BOQLineItem")
    material_consumption = relationship(
        "WorkstationMaterialConsumption",
        back_populates="progress",
        cascade="all, delete-orphan",
    )


class WorkstationMaterialConsumption(Base):
    __tablename__ = "workstation_material_consumption"

    id = Column(Integer, primary_key=True, index=True)
    workstation_boq_progress_id = Column(
        Integer, ForeignKey("workstation_boq_progress.id"), nullable=False, index=True
    )
    material_id = Column(Integer, ForeignKey("master_materials.id"), nullable=True)
    material_name = Column(String, nullable=False)
    quantity = Column(Float, nullable=False)
    unit = Column(String, nullable=False)
    notes = Column(Text, nullable=True)

    progress = relationship("WorkstationBOQProgress", back_populates="material_consumption")
