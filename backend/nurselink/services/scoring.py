"""
Nurse-Mission Scoring Policy

Deterministic multi-factor score of how well a nurse fits a mission.

Score Composition (default maximum points):
    - Specialization (40): nurse holds the mission's specialization
    - Experience (25): linear ramp, saturates at 10 years
    - Rating (20): linear, full marks at 5/5
    - Distance (15): linear decay to zero at the mission's max distance
    - Certification bonus (5): shares a required certification, or holds
      any certification when the mission requires none

Score Range: 0-100. Each factor is clamped to its own range before summing
and the total is clamped again, so a bad input can never push one factor
past its weight.

The policy is pure: no I/O, no clock, no randomness. Re-runs of the
orchestrator depend on identical inputs giving identical rankings.
"""

from dataclasses import dataclass
from typing import List, Optional, Tuple

from nurselink.config import get_settings
from nurselink.services.entities import Mission, NurseCandidate, MatchScore
from nurselink.services.geo import distance_km


@dataclass(frozen=True)
class ScoringWeights:
    specialization: float = 40.0
    experience: float = 25.0
    rating: float = 20.0
    distance: float = 15.0
    certification: float = 5.0
    experience_saturation_years: float = 10.0

    @classmethod
    def from_settings(cls) -> "ScoringWeights":
        settings = get_settings()
        return cls(
            specialization=settings.weight_specialization,
            experience=settings.weight_experience,
            rating=settings.weight_rating,
            distance=settings.weight_distance,
            certification=settings.weight_certification,
            experience_saturation_years=settings.experience_saturation_years,
        )


DEFAULT_WEIGHTS = ScoringWeights()

MAX_RATING = 5.0


def _clamp(value: float, upper: float) -> float:
    return max(0.0, min(upper, value))


def score_specialization(
    mission: Mission, candidate: NurseCandidate, weights: ScoringWeights
) -> Tuple[float, Optional[str]]:
    if mission.specialization in candidate.specializations:
        return weights.specialization, "Specialization match"
    return 0.0, None


def score_experience(
    candidate: NurseCandidate, weights: ScoringWeights
) -> Tuple[float, Optional[str]]:
    score = (candidate.experience_years / weights.experience_saturation_years) * weights.experience
    score = _clamp(score, weights.experience)
    if score > 0:
        return score, f"{candidate.experience_years} years of experience"
    return 0.0, None


def score_rating(
    candidate: NurseCandidate, weights: ScoringWeights
) -> Tuple[float, Optional[str]]:
    score = _clamp((candidate.rating / MAX_RATING) * weights.rating, weights.rating)
    if score > 0:
        return score, f"Rating {candidate.rating:.1f}/5"
    return 0.0, None


def score_distance(
    distance: float, max_distance_km: float, weights: ScoringWeights
) -> Tuple[float, Optional[str]]:
    """Linear decay from full weight at 0 km to zero at the boundary."""
    score = _clamp(weights.distance * (1 - distance / max_distance_km), weights.distance)
    if score > 0:
        return score, f"{distance:.1f} km away"
    return 0.0, None


def score_certifications(
    mission: Mission, candidate: NurseCandidate, weights: ScoringWeights
) -> Tuple[float, Optional[str]]:
    if mission.required_certifications:
        shared = mission.required_certifications & candidate.certifications
        if shared:
            return weights.certification, f"Certifications: {', '.join(sorted(shared))}"
        return 0.0, None

    if candidate.certifications:
        return weights.certification, "Certifications validated"
    return 0.0, None


def calculate_confidence(total_score: float, factor_count: int) -> str:
    if total_score >= 85 and factor_count >= 4:
        return "high"
    if total_score >= 70 and factor_count >= 3:
        return "medium"
    return "low"


def score_candidate(
    mission: Mission,
    candidate: NurseCandidate,
    weights: ScoringWeights = DEFAULT_WEIGHTS,
    distance: Optional[float] = None,
) -> MatchScore:
    """
    Score one candidate against a mission.

    Args:
        mission: Mission snapshot
        candidate: Candidate that already passed the eligibility filter
            (has a location within the mission's max distance)
        weights: Maximum points per factor
        distance: Precomputed distance in km, computed here when omitted

    Returns:
        MatchScore with per-factor scores, clamped total and the factors
        that contributed, in a fixed order

    Example:
        >>> match = score_candidate(mission, nurse)
        >>> match.total_score
        98.6
        >>> match.matching_factors[0]
        'Specialization match'
    """
    if distance is None:
        distance = distance_km(mission.location, candidate.location)

    specialization, spec_reason = score_specialization(mission, candidate, weights)
    experience, exp_reason = score_experience(candidate, weights)
    rating, rating_reason = score_rating(candidate, weights)
    proximity, distance_reason = score_distance(distance, mission.max_distance_km, weights)
    certification, cert_reason = score_certifications(mission, candidate, weights)

    reasons: List[str] = [
        reason
        for reason in (spec_reason, exp_reason, rating_reason, distance_reason, cert_reason)
        if reason
    ]

    total = specialization + experience + rating + proximity + certification
    total = round(_clamp(total, 100.0), 2)

    return MatchScore(
        nurse_id=candidate.id,
        specialization_score=specialization,
        experience_score=experience,
        rating_score=rating,
        distance_score=proximity,
        certification_bonus=certification,
        total_score=total,
        distance_km=distance,
        confidence=calculate_confidence(total, len(reasons)),
        matching_factors=reasons,
    )
