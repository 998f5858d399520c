"""
Joint measurement record - the as-executed quantity agreed with the client
"""
from enum import Enum
from sqlalchemy import Column, Integer, String, Text, Float, Date, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from datetime import datetime
from sitemanager.database import Base, enum_values_type


class JMRStatus(str, Enum):
    DRAFT = "draft"
    SUBMITTED = "submitted"
    APPROVED = "approved"
    DISPUTED = "disputed"


class BOQJMR(Base):
    __tablename__ = "boq_jmr"

    id = Column(Integer, primary_key=True, index=True)
    line_item_id = Column(Integer, ForeignKey("boq_line_items.id"), nullable=False, index=True)

    jmr_number = Column(String, nullable=True)
    jmr_date = Column(Date, nullable=True)
    measurement_date = Column(Date, nullable=True)

    # Quantities
    boq_quantity = Column(Float, nullable=True)
    executed_quantity = Column(Float, nullable=True)
    approved_quantity = Column(Float, nullable=True)

    customer_representative = Column(String, nullable=True)
    contractor_representative = Column(String, nullable=True)
    remarks = Column(Text, nullable=True)
    status = Column(enum_values_type(JMRStatus), nullable=False, default=JMRStatus.DRAFT)

    # File
    file_path = Column(String, nullable=True)
    file_name = Column(String, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)

    line_item = relationship("BOQLineItem", back_populates="jmrs")
