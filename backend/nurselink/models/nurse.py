"""
Nurse Models - candidate profiles and per-establishment exclusions

NurseProfile rows are maintained by the profile CRUD layer; the engine reads
them as NurseCandidate snapshots. EstablishmentExclusion lists nurses an
establishment has blacklisted or who declined its missions.
"""

from sqlalchemy import Column, String, Integer, Float, Boolean, DateTime, JSON, UniqueConstraint
from sqlalchemy.sql import func
from nurselink.database import Base
import uuid


class NurseProfile(Base):
    """
    Nurse profile used as a matching candidate.

    Attributes:
        specializations: JSON list of specialization tags
        certifications: JSON list of certification codes
        experience_years: Years of practice
        rating: Average rating in [0, 5]
        latitude/longitude: Home base (nullable → never ranked)
        is_available: Global availability switch
        available_from/available_until: Optional availability window
    """

    __tablename__ = "nurse_profiles"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String, nullable=True, index=True)
    first_name = Column(String(200), nullable=True)
    last_name = Column(String(200), nullable=True)
    specializations = Column(JSON, nullable=False, default=list)
    certifications = Column(JSON, nullable=False, default=list)
    experience_years = Column(Integer, nullable=False, default=0)
    rating = Column(Float, nullable=False, default=0.0)
    latitude = Column(Float, nullable=True)
    longitude = Column(Float, nullable=True)
    is_available = Column(Boolean, nullable=False, default=True, index=True)
    available_from = Column(DateTime, nullable=True)
    available_until = Column(DateTime, nullable=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())


class EstablishmentExclusion(Base):
    """Nurse excluded from an establishment's missions."""

    __tablename__ = "establishment_exclusions"
    __table_args__ = (
        UniqueConstraint("establishment_id", "nurse_id", name="uq_exclusion_establishment_nurse"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    establishment_id = Column(String, nullable=False, index=True)
    nurse_id = Column(String, nullable=False)
    reason = Column(String(50), nullable=False, default="blacklisted")  # or "declined"
    created_at = Column(DateTime, server_default=func.now())
