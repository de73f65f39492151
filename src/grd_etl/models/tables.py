"""
ORM models for the GRD episode database.
"""

from datetime import datetime
from sqlalchemy.orm import DeclarativeBase, relationship
from sqlalchemy import (
    Column, String, Boolean, DateTime, Integer, Numeric, ForeignKey, Text, JSON
)

class Base(DeclarativeBase):
    pass

class Patient(Base):
    __tablename__ = "patients"

    id         = Column(Integer, primary_key=True, autoincrement=True)
    rut        = Column(String(20), unique=True, nullable=False)
    name       = Column(String(200))
    age        = Column(Integer)
    sex        = Column(String(10))
    created_at = Column(DateTime, default=datetime.utcnow)

    episodes = relationship("Episode", back_populates="patient")

class GrdNorm(Base):
    __tablename__ = "grd_norms"

    id          = Column(Integer, primary_key=True, autoincrement=True)
    code        = Column(String(20), unique=True, nullable=False)
    description = Column(Text)
    weight      = Column(Numeric(10, 4))
    lower_cut   = Column(Integer)
    upper_cut   = Column(Integer)
    base_tariff = Column(Numeric(14, 2))
    p25         = Column(Numeric(10, 2))
    p50         = Column(Numeric(10, 2))
    p75         = Column(Numeric(10, 2))
    loaded_at   = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    episodes = relationship("Episode", back_populates="norm")

class Episode(Base):
    __tablename__ = "episodes"

    id                = Column(Integer, primary_key=True, autoincrement=True)
    episode_cmbd      = Column(String(100), unique=True, nullable=False)
    facility          = Column(Text, nullable=False)
    folio             = Column(String(100))
    episode_type      = Column(Text)
    discharge_service = Column(Text)
    agreement         = Column(String(100))
    admission_dt      = Column(DateTime)
    discharge_dt      = Column(DateTime)
    grd_code          = Column(String(20))
    grd_weight        = Column(Numeric(10, 4))

    length_of_stay = Column(Integer)
    stay_tag       = Column(String(30))

    # billing
    technology_flag    = Column(Boolean, default=False, nullable=False)
    technology_detail  = Column(Text)
    technology_amount  = Column(Numeric(14, 2))
    newborn_amount     = Column(Numeric(14, 2))
    rescue_delay_days  = Column(Integer)
    delay_payment      = Column(Numeric(14, 2))
    outlier_payment    = Column(Numeric(14, 2))
    base_tariff        = Column(Numeric(14, 2))
    tariff_override    = Column(Numeric(14, 2))
    agreement_tariff   = Column(Numeric(14, 2))
    final_amount       = Column(Numeric(16, 2))
    finance_status     = Column(String(20))
    documentation      = Column(JSON)

    # management review
    validated          = Column(Boolean)
    review_comment     = Column(Text)
    reviewed_at        = Column(DateTime)
    reviewed_by        = Column(String(200))

    patient_id = Column(Integer, ForeignKey("patients.id"), nullable=False)
    norm_id    = Column(Integer, ForeignKey("grd_norms.id"))
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    patient = relationship("Patient", back_populates="episodes")
    norm    = relationship("GrdNorm", back_populates="episodes")

class AgreementPrice(Base):
    """Base price per agreement; ``tier`` is NULL for single-price agreements."""
    __tablename__ = "agreement_prices"

    id          = Column(Integer, primary_key=True, autoincrement=True)
    agreement   = Column(String(100), nullable=False, index=True)
    tier        = Column(String(10))
    price       = Column(Numeric(14, 2), nullable=False)
    description = Column(Text)
    created_at  = Column(DateTime, default=datetime.utcnow)
