"""
Master material catalogue (what can be received on a GRN)
"""
from sqlalchemy import Column, Integer, String, Boolean
from sitemanager.database import Base


class MasterMaterial(Base):
    __tablename__ = "master_materials"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False, index=True)
    category = Column(String, nullable=False, default="general")
    unit = Column(String, nullable=False)
    is_active = Column(Boolean, default=True)
