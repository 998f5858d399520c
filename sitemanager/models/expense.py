"""
Expense models - master rates and daily site expenses.

Manpower and equipment expenses store the hourly rate and amount computed at entry
time; later master-rate changes do not touch recorded expenses.
"""
from enum import Enum
from sqlalchemy import Column, Integer, Float, String, Text, Date, DateTime, Boolean, ForeignKey
from sqlalchemy.orm import relationship
from datetime import datetime
from sitemanager.database import Base, enum_values_type


class Gender(str, Enum):
    MALE = "male"
    FEMALE = "female"
    ANY = "any"


# --- Master data ---

class LabourContractor(Base):
    __tablename__ = "master_labour_contractors"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False, unique=True)
    contact_person = Column(String, nullable=True)
    contact_number = Column(String, nullable=True)
    is_active = Column(Boolean, default=True)


class ManpowerCategory(Base):
    __tablename__ = "master_manpower_categories"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False, unique=True)
    description = Column(Text, nullable=True)
    is_active = Column(Boolean, default=True)


class Manpower(Base):
    """Daily rate for a contractor / category / gender combination"""
    __tablename__ = "master_manpower"

    id = Column(Integer, primary_key=True, index=True)
    contractor_id = Column(Integer, ForeignKey("master_labour_contractors.id"), nullable=True)
    category_id = Column(Integer, ForeignKey("master_manpower_categories.id"), nullable=False)
    gender = Column(enum_values_type(Gender), nullable=False, default=Gender.ANY)
    description = Column(Text, nullable=True)
    rate = Column(Float, nullable=False)  # per day
    daily_hours = Column(Float, nullable=False, default=8)
    is_active = Column(Boolean, default=True)

    contractor = relationship("LabourContractor")
    category = relationship("ManpowerCategory")


class Equipment(Base):
    __tablename__ = "master_equipment"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False, unique=True)
    description = Column(Text, nullable=True)
    hourly_rate = Column(Float, nullable=False)
    is_active = Column(Boolean, default=True)


# --- Daily expenses ---

class ManpowerExpense(Base):
    __tablename__ = "expense_manpower"

    id = Column(Integer, primary_key=True, index=True)
    site_id = Column(Integer, ForeignKey("sites.id"), nullable=False, index=True)
    expense_date = Column(Date, nullable=False, index=True)
    manpower_id = Column(Integer, ForeignKey("master_manpower.id"), nullable=True)

    # Denormalised at entry time
    manpower_category = Column(String, nullable=False)
    contractor_name = Column(String, nullable=True)
    gender = Column(String, nullable=True)

    num_persons = Column(Integer, nullable=False, default=1)
    start_time = Column(String, nullable=True)  # HH:MM
    end_time = Column(String, nullable=True)
    hours = Column(Float, nullable=False)
    rate = Column(Float, nullable=False)  # per hour
    amount = Column(Float, nullable=False)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)


class EquipmentExpense(Base):
    __tablename__ = "expense_equipment"

    id = Column(Integer, primary_key=True, index=True)
    site_id = Column(Integer, ForeignKey("sites.id"), nullable=False, index=True)
    expense_date = Column(Date, nullable=False, index=True)
    equipment_id = Column(Integer, ForeignKey("master_equipment.id"), nullable=True)
    equipment_name = Column(String, nullable=False)
    hours = Column(Float, nullable=False)
    rate = Column(Float, nullable=False)
    amount = Column(Float, nullable=False)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)


class OtherExpense(Base):
    __tablename__ = "expense_other"

    id = Column(Integer, primary_key=True, index=True)
    site_id = Column(Integer, ForeignKey("sites.id"), nullable=False, index=True)
    expense_date = Column(Date, nullable=False, index=True)
    description = Column(String, nullable=False)
    amount = Column(Float, nullable=False)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
