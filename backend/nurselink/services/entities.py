"""
Matching Entities - immutable snapshots passed through the engine

Missions and candidates are read once per run from the repository and never
mutated. MatchScore is ephemeral; Application and Notification mirror the
rows the engine writes.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import FrozenSet, List, Optional


class Shift(str, Enum):
    DAY = "day"
    NIGHT = "night"
    WEEKEND = "weekend"


class Urgency(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class ApplicationStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"


@dataclass(frozen=True)
class Coordinates:
    lat: float
    lng: float


@dataclass(frozen=True)
class Mission:
    id: str
    establishment_id: str
    title: str
    specialization: str
    start_date: datetime
    end_date: datetime
    location: Coordinates
    hourly_rate: float
    required_experience_years: int = 0
    required_certifications: FrozenSet[str] = frozenset()
    shift: Shift = Shift.DAY
    urgency: Urgency = Urgency.MEDIUM
    max_candidates: int = 10
    max_distance_km: float = 50.0
    min_rating: float = 3.0

    def __post_init__(self):
        if self.max_distance_km <= 0:
            raise ValueError(f"Mission {self.id}: max_distance_km must be > 0")
        if self.start_date >= self.end_date:
            raise ValueError(f"Mission {self.id}: start_date must be before end_date")
        if self.hourly_rate <= 0:
            raise ValueError(f"Mission {self.id}: hourly_rate must be > 0")


@dataclass(frozen=True)
class NurseCandidate:
    id: str
    specializations: FrozenSet[str] = frozenset()
    experience_years: int = 0
    rating: float = 0.0
    certifications: FrozenSet[str] = frozenset()
    location: Optional[Coordinates] = None
    is_available: bool = True
    available_from: Optional[datetime] = None
    available_until: Optional[datetime] = None
    excluded_by: FrozenSet[str] = frozenset()  # establishment ids


@dataclass(frozen=True)
class MatchScore:
    nurse_id: str
    specialization_score: float
    experience_score: float
    rating_score: float
    distance_score: float
    certification_bonus: float
    total_score: float
    distance_km: float
    confidence: str = "low"
    matching_factors: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class Application:
    id: str
    mission_id: str
    nurse_id: str
    source: str
    status: ApplicationStatus
    ai_match_score: Optional[float]
    created_at: Optional[datetime]


@dataclass(frozen=True)
class Notification:
    id: str
    mission_id: str
    nurse_id: str
    score: float
    distance_km: float
    urgency_bucket: str
    delivery_attempt: int
    created_at: Optional[datetime]
    delivered_at: Optional[datetime] = None

    @property
    def delivered(self) -> bool:
        return self.delivered_at is not None


def urgency_bucket(score: float) -> str:
    """Derive the notification urgency from the match score."""
    if score > 80:
        return Urgency.HIGH.value
    if score > 60:
        return Urgency.MEDIUM.value
    return Urgency.LOW.value
