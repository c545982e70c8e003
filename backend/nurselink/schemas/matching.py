from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field, model_validator

from nurselink.services.entities import (
    ApplicationStatus,
    Coordinates,
    Mission,
    NurseCandidate,
    Shift,
    Urgency,
)


class CoordinatesSchema(BaseModel):
    lat: float = Field(ge=-90, le=90)
    lng: float = Field(ge=-180, le=180)

    def to_entity(self) -> Coordinates:
        return Coordinates(lat=self.lat, lng=self.lng)


class MissionInput(BaseModel):
    id: str
    establishment_id: str
    title: str
    specialization: str
    start_date: datetime
    end_date: datetime
    location: CoordinatesSchema
    hourly_rate: float = Field(gt=0)
    required_experience_years: int = Field(default=0, ge=0)
    required_certifications: list[str] = []
    shift: Shift = Shift.DAY
    urgency: Urgency = Urgency.MEDIUM
    max_candidates: int = Field(default=10, ge=1, le=50)
    max_distance_km: float = Field(default=50.0, gt=0, le=200)
    min_rating: float = Field(default=3.0, ge=0, le=5)

    @model_validator(mode="after")
    def check_dates(self):
        if self.end_date <= self.start_date:
            raise ValueError("end_date must be after start_date")
        return self

    def to_entity(self) -> Mission:
        return Mission(
            id=self.id,
            establishment_id=self.establishment_id,
            title=self.title,
            specialization=self.specialization,
            start_date=self.start_date,
            end_date=self.end_date,
            location=self.location.to_entity(),
            hourly_rate=self.hourly_rate,
            required_experience_years=self.required_experience_years,
            required_certifications=frozenset(self.required_certifications),
            shift=self.shift,
            urgency=self.urgency,
            max_candidates=self.max_candidates,
            max_distance_km=self.max_distance_km,
            min_rating=self.min_rating,
        )


class CandidateInput(BaseModel):
    id: str
    specializations: list[str] = []
    experience_years: int = Field(default=0, ge=0)
    rating: float = Field(default=0.0, ge=0, le=5)
    certifications: list[str] = []
    location: Optional[CoordinatesSchema] = None
    is_available: bool = True
    available_from: Optional[datetime] = None
    available_until: Optional[datetime] = None

    def to_entity(self) -> NurseCandidate:
        return NurseCandidate(
            id=self.id,
            specializations=frozenset(self.specializations),
            experience_years=self.experience_years,
            rating=self.rating,
            certifications=frozenset(self.certifications),
            location=self.location.to_entity() if self.location else None,
            is_available=self.is_available,
            available_from=self.available_from,
            available_until=self.available_until,
        )


class RankingRequest(BaseModel):
    mission: MissionInput
    candidates: list[CandidateInput]


class MatchScoreResponse(BaseModel):
    nurse_id: str
    specialization_score: float
    experience_score: float
    rating_score: float
    distance_score: float
    certification_bonus: float
    total_score: float
    distance_km: float
    confidence: str
    matching_factors: list[str]

    class Config:
        from_attributes = True


class RankingResponse(BaseModel):
    mission_id: str
    total_matches: int
    matches: list[MatchScoreResponse]


class ApplicationResponse(BaseModel):
    id: str
    mission_id: str
    nurse_id: str
    source: str
    status: ApplicationStatus
    ai_match_score: Optional[float] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class NotificationResponse(BaseModel):
    id: str
    mission_id: str
    nurse_id: str
    score: float
    distance_km: float
    urgency_bucket: str
    delivery_attempt: int
    delivered_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class MatchingResultsResponse(BaseModel):
    mission_id: str
    applications: list[ApplicationResponse]
    notifications: list[NotificationResponse]


class TriggerResponse(BaseModel):
    mission_id: str
    status: str = "scheduled"
    delivery_attempt: int = 0


class WriteFailureResponse(BaseModel):
    nurse_id: str
    operation: str
    error: str


class RunStatusResponse(BaseModel):
    mission_id: str
    delivery_attempt: int
    state: str
    failure_reason: Optional[str] = None
    detail: Optional[str] = None
    history: list[str]
    candidates_fetched: int = 0
    filtered_out: dict[str, int] = {}
    ranked: int = 0
    ranked_nurse_ids: list[str] = []
    applications_created: int = 0
    applications_existing: int = 0
    notifications_created: int = 0
    notifications_existing: int = 0
    notifications_delivered: int = 0
    failures: list[WriteFailureResponse] = []
    duration_seconds: float = 0.0
