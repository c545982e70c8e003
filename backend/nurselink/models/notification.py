"""
Notification Model - "should be delivered" records for matched nurses

One row per (mission, nurse, delivery attempt). Ordinary re-runs reuse
attempt 0; an explicit re-notify allocates the next attempt number.
delivered_at is set once the channel accepted the message; a row left
undelivered is sent again by the next run for the same attempt.
is_read is flipped by the notification-read workflow, never by the engine.
"""

from sqlalchemy import Column, String, Integer, Float, Boolean, DateTime, UniqueConstraint
from sqlalchemy.sql import func
from nurselink.database import Base
import uuid


class Notification(Base):
    __tablename__ = "notifications"
    __table_args__ = (
        UniqueConstraint(
            "mission_id", "nurse_id", "delivery_attempt",
            name="uq_notification_mission_nurse_attempt",
        ),
    )

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    mission_id = Column(String, nullable=False, index=True)
    nurse_id = Column(String, nullable=False, index=True)
    delivery_attempt = Column(Integer, nullable=False, default=0)
    type = Column(String(50), nullable=False, default="new_mission_match")
    score = Column(Float, nullable=False)
    distance_km = Column(Float, nullable=False)
    urgency_bucket = Column(String(10), nullable=False)
    is_read = Column(Boolean, nullable=False, default=False)
    delivered_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, server_default=func.now())
