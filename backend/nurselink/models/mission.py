"""
Mission Model - SQLAlchemy ORM model for shift offers

Missions are created and edited by the establishment-facing CRUD layer.
The matching engine only reads them, through SqlMatchingRepository.

Status Flow (owned outside the engine):
    draft → published → in_progress → completed/cancelled
"""

from sqlalchemy import Column, String, Integer, Float, Text, DateTime, JSON
from sqlalchemy.sql import func
from nurselink.database import Base
import uuid


class Mission(Base):
    """
    Short-term shift posted by an establishment.

    Attributes:
        id: UUID primary key
        establishment_id: Owning establishment
        specialization: Required specialization tag (e.g., "urgences")
        required_experience_years: Minimum years asked for
        required_certifications: JSON list of certification codes
        shift: "day", "night" or "weekend"
        urgency: "low", "medium" or "high"
        start_date/end_date: Mission window (end > start)
        latitude/longitude: Mission site coordinates
        hourly_rate: Offered rate (> 0)
        max_candidates: Upper bound on ranked matches (nullable → settings default)
        max_distance_km: Hard distance limit (nullable → settings default)
        min_rating: Minimum nurse rating (nullable → settings default)
    """

    __tablename__ = "missions"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    establishment_id = Column(String, nullable=False, index=True)
    title = Column(String(500), nullable=False)
    description = Column(Text, nullable=True)
    specialization = Column(String(100), nullable=False)
    required_experience_years = Column(Integer, nullable=False, default=0)
    required_certifications = Column(JSON, nullable=False, default=list)
    shift = Column(String(20), nullable=False, default="day")
    urgency = Column(String(20), nullable=False, default="medium")
    start_date = Column(DateTime, nullable=False)
    end_date = Column(DateTime, nullable=False)
    latitude = Column(Float, nullable=False)
    longitude = Column(Float, nullable=False)
    hourly_rate = Column(Float, nullable=False)
    max_candidates = Column(Integer, nullable=True)
    max_distance_km = Column(Float, nullable=True)
    min_rating = Column(Float, nullable=True)
    status = Column(String(20), nullable=False, default="published", index=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())
