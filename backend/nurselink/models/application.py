"""
MissionApplication Model - nurse applications to missions

The matching engine creates provisional rows with source="auto-matched".
Manual applications share the table, so the (mission_id, nurse_id) unique
constraint makes an auto-application for an already-applied pair a no-op.

Status Flow (owned by the application-response workflow):
    pending → accepted/rejected
"""

from sqlalchemy import Column, String, Float, DateTime, UniqueConstraint
from sqlalchemy.sql import func
from nurselink.database import Base
import uuid

AUTO_MATCHED_SOURCE = "auto-matched"


class MissionApplication(Base):
    __tablename__ = "mission_applications"
    __table_args__ = (
        UniqueConstraint("mission_id", "nurse_id", name="uq_application_mission_nurse"),
    )

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    mission_id = Column(String, nullable=False, index=True)
    nurse_id = Column(String, nullable=False, index=True)
    source = Column(String(20), nullable=False, default=AUTO_MATCHED_SOURCE)
    status = Column(String(20), nullable=False, default="pending", index=True)
    ai_match_score = Column(Float, nullable=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())
